# Overview: Flask API routes for company registration, login and sessions.

"""
Authentication API routes

- POST /api/auth/register   create a company and its ADMIN user (public)
- POST /api/auth/login      exchange credentials for a bearer token
- POST /api/auth/logout     revoke the current token
- GET  /api/auth/me         current user and tenant context
- POST /api/auth/users      ADMIN creates a user in their company
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..permissions import require_role
from ..services import auth_service
from ..services import session_service
from siteledger.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Register a company (tenant) with its first ADMIN user.

    Request body:
    {
        "company_name": "Acme Builders",   // required
        "company_code": "ACME",            // optional, globally unique
        "username": "owner",               // required
        "email": "owner@acme.test",        // required
        "password": "Str0ngPass",          // required
        "name": "Owner Name",
        "gst_number": "...",
        "address": "..."
    }
    """
    data = request.get_json() or {}
    username = data.get("username")
    email = data.get("email")
    password = data.get("password")
    if not all([data.get("company_name"), username, email, password]):
        return jsonify({
            "error": "ValidationError",
            "message": "company_name, username, email and password required",
        }), 400

    company, admin = auth_service.register_company(
        company_name=data["company_name"],
        company_code=data.get("company_code"),
        admin_username=username,
        admin_email=email,
        admin_password=password,
        admin_name=data.get("name"),
        gst_number=data.get("gst_number"),
        address=data.get("address"),
    )
    current_app.logger.info("Registered company %s (%s)", company.id, company.name)
    return jsonify({"company": company.to_dict(), "user": admin.to_dict()}), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json() or {}
    username = data.get("username") or data.get("email")
    password = data.get("password")
    if not all([username, password]):
        return jsonify({"error": "ValidationError", "message": "username/email and password required"}), 400

    user = auth_service.authenticate(username, password, company_code=data.get("company_code"))
    if not user:
        current_app.logger.warning("Failed login for %s from %s", username, request.remote_addr)
        return jsonify({"error": "Unauthenticated", "message": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "company_id": session.company_id,
        "expires_at": to_utc_z(session.expires_at),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "company_id": g.actor.company_id,
        "role": g.actor.role,
    }), 200


@auth_bp.post("/users")
@require_auth
def create_user_route():
    """
    Create a user in the caller's company. ADMIN only.

    Request body: {username, email, password, name?, role?}
    """
    require_role(g.actor, "user.manage")
    data = request.get_json() or {}
    user = auth_service.create_user(
        company_id=g.actor.company_id,
        username=data.get("username"),
        email=data.get("email"),
        password=data.get("password"),
        name=data.get("name"),
        role=data.get("role", "SITE_ENGINEER"),
    )
    return jsonify({"user": user.to_dict()}), 201
