# backend/wsgi.py
from siteledger import create_app

app = create_app()
