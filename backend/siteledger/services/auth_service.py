# Overview: Password hashing, company registration and user management.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable. Uses bcrypt for password hashing
and validates password strength.

MULTI-TENANT: Users belong to exactly one company (company_id).
Username/email uniqueness is company-scoped. Registering a company creates
its first ADMIN user and its default chart of accounts in one commit.
"""

import re

import bcrypt

from ..errors import ValidationError
from ..extensions import db
from ..models import Company, User
from ..permissions import ADMIN, ROLES
from ..time_utils import utcnow
from .concurrency import run_in_transaction


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash is treated as a
    mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _new_user(company_id: int, username: str, email: str, password: str, name: str | None, role: str) -> User:
    if not username or not username.strip():
        raise ValidationError("username is required")
    if not email or not email.strip():
        raise ValidationError("email is required")
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")

    username = username.strip()
    email = email.strip().lower()

    existing = db.session.query(User).filter(
        User.company_id == company_id,
        db.or_(User.username == username, User.email == email),
    ).first()
    if existing:
        raise ValidationError("Username or email already exists in this company")

    user = User(
        company_id=company_id,
        username=username,
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.flush()
    return user


def register_company(
    *,
    company_name: str,
    company_code: str | None,
    admin_username: str,
    admin_email: str,
    admin_password: str,
    admin_name: str | None = None,
    gst_number: str | None = None,
    address: str | None = None,
) -> tuple[Company, User]:
    """
    Create a company, its ADMIN user and its default chart of accounts.

    All three commit together; a duplicate company code or a weak password
    leaves nothing behind.
    """
    from .finance_service import init_default_coa

    if not company_name or not company_name.strip():
        raise ValidationError("company name is required")
    code = company_code.strip().upper() if company_code else None

    def _op():
        if code and db.session.query(Company).filter_by(code=code).first():
            raise ValidationError(f"Company code '{code}' already exists")
        company = Company(name=company_name.strip(), code=code, gst_number=gst_number, address=address)
        db.session.add(company)
        db.session.flush()
        admin = _new_user(company.id, admin_username, admin_email, admin_password, admin_name, ADMIN)
        init_default_coa(company.id)
        return company, admin

    return run_in_transaction(_op)


def create_user(
    *,
    company_id: int,
    username: str,
    email: str,
    password: str,
    name: str | None = None,
    role: str = "SITE_ENGINEER",
) -> User:
    """
    Create a user inside an existing, active company.

    Raises ValidationError for a duplicate username/email, weak password or
    unknown role.
    """
    def _op():
        company = db.session.query(Company).filter_by(id=company_id).first()
        if not company or not company.is_active:
            raise ValidationError("Company not found or inactive")
        return _new_user(company_id, username, email, password, name, role)

    return run_in_transaction(_op)


def authenticate(username: str, password: str, company_code: str | None = None) -> User | None:
    """
    Authenticate user with username (or email) and password.

    MULTI-TENANT: company_code scopes the lookup; usernames are only unique
    within a company. Returns None on any mismatch, inactive user or
    inactive company. Updates last_login_at on success.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == (username or "").lower()),
        User.is_active.is_(True),
    )
    if company_code:
        query = query.join(Company, Company.id == User.company_id).filter(
            Company.code == company_code.strip().upper()
        )

    user = query.first()
    if not user:
        return None
    if not user.company or not user.company.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user
    return None
