# Overview: Project CRUD; budget consumption fields are owned by the workflows.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Project
from ..notifications import company_topic, publish_safely
from ..permissions import require_role
from ..time_utils import to_calendar_date
from .concurrency import run_in_transaction
from .tenant_service import get_owned, scoped


PROJECT_STATUSES = ("Planning", "In Progress", "Ongoing", "On Hold", "Completed", "Cancelled")

# Never writable through create/update; moved only by payment, material and
# payroll workflows.
WORKFLOW_OWNED_FIELDS = ("locked_amount_cents", "actual_spend_cents")

EDITABLE_FIELDS = (
    "name",
    "code",
    "location",
    "client_name",
    "description",
    "status",
    "progress",
    "start_date",
    "end_date",
    "budget_cents",
    "approved_budget_cents",
    "revised_budget_cents",
    "contingency_fund_cents",
)

MONEY_FIELDS = ("budget_cents", "approved_budget_cents", "revised_budget_cents", "contingency_fund_cents")


def _clean(fields: dict) -> dict:
    protected = [f for f in WORKFLOW_OWNED_FIELDS if f in fields]
    if protected:
        raise ValidationError(f"Fields are managed by workflows: {', '.join(protected)}")

    unknown = [f for f in fields if f not in EDITABLE_FIELDS]
    if unknown:
        raise ValidationError(f"Unknown project fields: {', '.join(sorted(unknown))}")

    cleaned = dict(fields)
    for key in MONEY_FIELDS:
        if key in cleaned and cleaned[key] is not None:
            try:
                cleaned[key] = int(cleaned[key])
            except (TypeError, ValueError):
                raise ValidationError(f"{key} must be an integer")
            if cleaned[key] < 0:
                raise ValidationError(f"{key} must be >= 0")

    if "progress" in cleaned and cleaned["progress"] is not None:
        try:
            progress = int(cleaned["progress"])
        except (TypeError, ValueError):
            raise ValidationError("progress must be an integer")
        if progress < 0 or progress > 100:
            raise ValidationError("progress must be between 0 and 100")
        cleaned["progress"] = progress

    if "status" in cleaned and cleaned["status"] not in PROJECT_STATUSES:
        raise ValidationError(f"Invalid project status: {cleaned['status']}")

    for key in ("start_date", "end_date"):
        if key in cleaned:
            try:
                cleaned[key] = to_calendar_date(cleaned[key])
            except ValueError:
                raise ValidationError(f"{key} must be an ISO date")

    if "code" in cleaned and cleaned["code"]:
        cleaned["code"] = cleaned["code"].strip().upper()
    return cleaned


def create_project(actor, notifier=None, **fields) -> Project:
    """
    Create a project.

    approved_budget_cents defaults to budget_cents and contingency_fund_cents
    to 5% of budget_cents when not supplied.
    """
    require_role(actor, "project.manage")
    cleaned = _clean(fields)
    if not (cleaned.get("name") or "").strip():
        raise ValidationError("Project name is required")

    budget = cleaned.get("budget_cents") or 0
    cleaned["budget_cents"] = budget
    if cleaned.get("approved_budget_cents") is None:
        cleaned["approved_budget_cents"] = budget
    if cleaned.get("contingency_fund_cents") is None:
        cleaned["contingency_fund_cents"] = budget * 5 // 100
    cleaned["revised_budget_cents"] = cleaned.get("revised_budget_cents") or 0

    def _op():
        project = Project(
            company_id=actor.company_id,
            created_by_user_id=actor.user_id,
            **cleaned,
        )
        db.session.add(project)
        db.session.flush()
        return project

    project = run_in_transaction(_op)
    publish_safely(notifier, company_topic(actor.company_id), "PROJECT_CREATED", {
        "project_id": project.id,
        "message": f"New Project: {project.name}",
        "created_by": actor.name,
    })
    return project


def update_project(project_id: int, actor, notifier=None, **fields) -> Project:
    require_role(actor, "project.manage")
    cleaned = _clean(fields)
    if "name" in cleaned and not (cleaned["name"] or "").strip():
        raise ValidationError("Project name is required")

    def _op():
        project = get_owned(Project, project_id, actor, for_update=True)
        for key, value in cleaned.items():
            setattr(project, key, value)
        return project

    project = run_in_transaction(_op)
    publish_safely(notifier, company_topic(actor.company_id), "PROJECT_UPDATED", {
        "project_id": project.id,
        "message": f"Project Updated: {project.name}",
        "status": project.status,
    })
    return project


def get_project(project_id: int, actor) -> Project:
    return get_owned(Project, project_id, actor)


def list_projects(actor, *, status: str | None = None) -> list[Project]:
    query = scoped(Project, actor)
    if status:
        query = query.filter(Project.status == status)
    return query.order_by(Project.created_at.desc(), Project.id.desc()).all()
