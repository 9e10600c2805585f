"""
Roles and action permissions.

WHY: Centralized role mapping keeps the workflow services free of role
lists. Every workflow action names an action code here; ADMIN may perform
every action.

Actor is the identity context handed to services: built by require_auth
from the session, or directly by tests and CLI commands.
"""

from dataclasses import dataclass

from .errors import UnauthorizedError


# =============================================================================
# ROLES
# =============================================================================

ADMIN = "ADMIN"
PROJECT_MANAGER = "PROJECT_MANAGER"
SITE_ENGINEER = "SITE_ENGINEER"
SUPERVISOR = "SUPERVISOR"
STOREKEEPER = "STOREKEEPER"
ACCOUNTANT = "ACCOUNTANT"
FINANCE_HEAD = "FINANCE_HEAD"

ROLES = (
    ADMIN,
    PROJECT_MANAGER,
    SITE_ENGINEER,
    SUPERVISOR,
    STOREKEEPER,
    ACCOUNTANT,
    FINANCE_HEAD,
)


# =============================================================================
# ACTION -> ROLES
# =============================================================================

ACTION_ROLES = {
    # Projects
    "project.manage": {PROJECT_MANAGER},

    # Materials and stock
    "material.manage": {PROJECT_MANAGER, STOREKEEPER},
    "stock.adjust": {STOREKEEPER},

    # Material requests
    "material_request.create": {SITE_ENGINEER, SUPERVISOR, PROJECT_MANAGER, STOREKEEPER},
    "material_request.approve": {SUPERVISOR, PROJECT_MANAGER},
    "material_request.reject": {SUPERVISOR, PROJECT_MANAGER},
    "material_request.issue": {STOREKEEPER},
    "material_request.cancel": {SITE_ENGINEER, SUPERVISOR, PROJECT_MANAGER},
    "material_request.relink_expense": {ACCOUNTANT, FINANCE_HEAD},

    # Procurement
    "vendor.manage": {PROJECT_MANAGER, ACCOUNTANT},
    "purchase_order.create": {PROJECT_MANAGER, STOREKEEPER},
    "purchase_order.submit": {PROJECT_MANAGER, STOREKEEPER},
    "purchase_order.approve": {PROJECT_MANAGER, FINANCE_HEAD},
    "purchase_order.issue": {PROJECT_MANAGER},
    "purchase_order.receive": {STOREKEEPER, SITE_ENGINEER},
    "purchase_order.close": {PROJECT_MANAGER},
    "purchase_order.cancel": {PROJECT_MANAGER},

    # Finance
    "transaction.create": {ACCOUNTANT, FINANCE_HEAD, PROJECT_MANAGER},
    "transaction.approve": {FINANCE_HEAD},
    "transaction.settle": {ACCOUNTANT, FINANCE_HEAD},
    "transaction.cancel": {FINANCE_HEAD},
    "account.manage": {ACCOUNTANT, FINANCE_HEAD},
    "finance.view": {ACCOUNTANT, FINANCE_HEAD, PROJECT_MANAGER},

    # Payment requests
    "payment_request.create": {PROJECT_MANAGER, SITE_ENGINEER, ACCOUNTANT},
    "payment_request.verify": {ACCOUNTANT},
    "payment_request.release": {FINANCE_HEAD},
    "payment_request.reject": {ACCOUNTANT, FINANCE_HEAD},

    # Labour
    "labour.manage": {SUPERVISOR, SITE_ENGINEER, PROJECT_MANAGER},
    "labour.settle": {ACCOUNTANT, FINANCE_HEAD, PROJECT_MANAGER},

    # Users
    "user.manage": set(),
}


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation, and for which company."""
    user_id: int
    name: str
    company_id: int
    role: str


def has_permission(actor: Actor, action: str) -> bool:
    if actor.role == ADMIN:
        return True
    if action not in ACTION_ROLES:
        raise KeyError(f"Unknown action: {action}")
    return actor.role in ACTION_ROLES[action]


def require_role(actor: Actor, action: str) -> None:
    """Raise UnauthorizedError unless actor's role may perform action."""
    if not has_permission(actor, action):
        raise UnauthorizedError(f"Role {actor.role} may not perform {action}")
