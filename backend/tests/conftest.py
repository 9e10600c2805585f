"""
Pytest fixtures for SiteLedger backend tests.

Provides the test app, per-test database cleanup, two tenants with one user
per role, and a recording notification sink.
"""

import pytest

from siteledger import create_app
from siteledger.config import TestConfig
from siteledger.extensions import db
from siteledger.models import Company, User, Vendor
from siteledger.notifications import RecordingNotificationSink
from siteledger.permissions import Actor
from siteledger.services import material_service, project_service
from siteledger.services.auth_service import hash_password
from siteledger.storage import LocalDirectoryBlobStore


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    blob_dir = tmp_path_factory.mktemp("blobs")
    app = create_app(
        TestConfig,
        notifier=RecordingNotificationSink(),
        blob_store=LocalDirectoryBlobStore(str(blob_dir), "/uploads"),
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def services(app):
    return app.extensions["siteledger"]


@pytest.fixture(scope='function')
def sink(services):
    """The app's recording sink, emptied for this test."""
    services.notifier.clear()
    return services.notifier


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Acme Builders", code="ACME", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Beta Infra", code="BETA", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def make_actor(db_session, password_hash):
    """Factory: create a user with a role in a company and return its Actor."""
    def _make(company, role, username=None):
        username = username or f"{role.lower()}_{company.code.lower()}"
        user = User(
            company_id=company.id,
            username=username,
            email=f"{username}@example.test",
            name=username.replace("_", " ").title(),
            password_hash=password_hash,
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        return Actor(user_id=user.id, name=user.display_name, company_id=company.id, role=role)
    return _make


@pytest.fixture(scope='function')
def admin_a(make_actor, company_a):
    return make_actor(company_a, "ADMIN")


@pytest.fixture(scope='function')
def admin_b(make_actor, company_b):
    return make_actor(company_b, "ADMIN")


@pytest.fixture(scope='function')
def engineer_a(make_actor, company_a):
    return make_actor(company_a, "SITE_ENGINEER")


@pytest.fixture(scope='function')
def supervisor_a(make_actor, company_a):
    return make_actor(company_a, "SUPERVISOR")


@pytest.fixture(scope='function')
def storekeeper_a(make_actor, company_a):
    return make_actor(company_a, "STOREKEEPER")


@pytest.fixture(scope='function')
def manager_a(make_actor, company_a):
    return make_actor(company_a, "PROJECT_MANAGER")


@pytest.fixture(scope='function')
def accountant_a(make_actor, company_a):
    return make_actor(company_a, "ACCOUNTANT")


@pytest.fixture(scope='function')
def finance_a(make_actor, company_a):
    return make_actor(company_a, "FINANCE_HEAD")


@pytest.fixture(scope='function')
def project_a(admin_a):
    """A project in Company A with a 10,00,000.00 budget."""
    return project_service.create_project(admin_a, name="Tower A", code="TWR-A", budget_cents=100_000_000)


@pytest.fixture(scope='function')
def project_b(admin_b):
    return project_service.create_project(admin_b, name="Bridge B", code="BRG-B", budget_cents=50_000_000)


@pytest.fixture(scope='function')
def vendor_a(db_session, company_a):
    """Vendor in Company A with a 10,000.00 credit limit."""
    vendor = Vendor(company_id=company_a.id, name="Shree Cement Traders", code="SCT", credit_limit_cents=1_000_000)
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture(scope='function')
def vendor_b(db_session, company_b):
    vendor = Vendor(company_id=company_b.id, name="Beta Steel", code="BST", credit_limit_cents=1_000_000)
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture(scope='function')
def cement_a(admin_a):
    return material_service.create_material(
        admin_a, item_code="CEM-OPC53", name="OPC 53 Cement", category="Cement", unit="Bags"
    )


@pytest.fixture(scope='function')
def cement_b(admin_b):
    return material_service.create_material(
        admin_b, item_code="CEM-OPC53", name="OPC 53 Cement", category="Cement", unit="Bags"
    )


@pytest.fixture(scope='function')
def stocked_cement_a(services, storekeeper_a, cement_a):
    """Cement with 30 bags on hand at 380.00 per bag, reorder level 10."""
    services.stock.create_stock_record(
        cement_a.id,
        storekeeper_a,
        reorder_level=10,
        opening_quantity=30,
        batch={"batch_number": "OPC-2610-01", "unit_cost_cents": 38000},
    )
    return cement_a
