# Overview: Domain error kinds surfaced to API callers.

"""
SiteLedger error kinds.

Every failure a caller can act on is one of these. Each carries a stable
`kind` string (returned as the JSON "error" field) and the HTTP status the
API layer maps it to. Storage errors are never passed through raw; services
translate IntegrityError and friends into ValidationError before raising.
"""


class SiteLedgerError(Exception):
    """Base class for domain errors."""

    kind = "Error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class NotFoundError(SiteLedgerError):
    """Entity or referenced entity is missing."""

    kind = "NotFound"
    status_code = 404


class InvalidTransitionError(SiteLedgerError):
    """Action is not valid from the entity's current state."""

    kind = "InvalidTransition"
    status_code = 409


class InsufficientStockError(SiteLedgerError):
    """Adjustment would drive available or reserved stock negative."""

    kind = "InsufficientStock"
    status_code = 409


class CreditLimitExceededError(SiteLedgerError):
    """Order would push vendor outstanding payables above the credit limit."""

    kind = "CreditLimitExceeded"
    status_code = 409


class ValidationError(SiteLedgerError):
    """Missing or malformed input."""

    kind = "ValidationError"
    status_code = 400


class UnauthorizedError(SiteLedgerError):
    """Cross-tenant access or role mismatch."""

    kind = "Unauthorized"
    status_code = 403
