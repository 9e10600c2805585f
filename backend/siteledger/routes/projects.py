# Overview: Flask API routes for projects and their budget health.

"""
Project Routes

SECURITY: All routes require authentication. Projects are scoped to the
caller's company; create/update require the project.manage role.
"""

from flask import Blueprint, request, jsonify, g

from ..container import services
from ..decorators import require_auth
from ..services import project_service


projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@projects_bp.get("")
@require_auth
def list_projects_route():
    projects = project_service.list_projects(g.actor, status=request.args.get("status"))
    return jsonify({"items": [p.to_dict() for p in projects], "count": len(projects)})


@projects_bp.post("")
@require_auth
def create_project_route():
    """
    Create a project.

    Request body:
    {
        "name": "Tower A",               // required
        "code": "TWR-A",
        "budget_cents": 500000000,
        "approved_budget_cents": ...,    // defaults to budget_cents
        "contingency_fund_cents": ...,   // defaults to 5% of budget_cents
        "status": "Planning",
        "progress": 0,
        "start_date": "2026-01-01",
        ...
    }
    """
    data = request.get_json() or {}
    project = project_service.create_project(g.actor, notifier=services().notifier, **data)
    return jsonify({"project": project.to_dict()}), 201


@projects_bp.get("/<int:project_id>")
@require_auth
def get_project_route(project_id: int):
    project = project_service.get_project(project_id, g.actor)
    return jsonify({"project": project.to_dict()})


@projects_bp.patch("/<int:project_id>")
@require_auth
def update_project_route(project_id: int):
    data = request.get_json() or {}
    project = project_service.update_project(project_id, g.actor, notifier=services().notifier, **data)
    return jsonify({"project": project.to_dict()})


@projects_bp.get("/<int:project_id>/budget-health")
@require_auth
def budget_health_route(project_id: int):
    """Utilisation vs. progress; publishes BUDGET_ALERT above the threshold."""
    return jsonify(services().ledger.budget_health(project_id, g.actor))
