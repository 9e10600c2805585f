# Overview: Scoped per-company counters behind every human-readable document number.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import period_code


def next_number(company_id: int, scope: str) -> int:
    """
    Atomically lease the next number for (company_id, scope).

    Runs inside the caller's transaction: the number is only consumed if
    the caller commits. First use of a scope inserts the counter row under
    a savepoint so a concurrent insert falls back to the UPDATE path.
    """
    if not company_id:
        raise ValueError("company_id is required")
    if not scope:
        raise ValueError("scope is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.company_id == company_id,
            DocumentSequence.scope == scope,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current(company_id, scope) - 1

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(company_id=company_id, scope=scope, next_number=2))
        return 1
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _current(company_id, scope) - 1


def _current(company_id: int, scope: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(company_id=company_id, scope=scope)
        .scalar()
    )


def next_material_request_number(company_id: int) -> str:
    scope = f"REQ-{period_code()}"
    return f"{scope}-{next_number(company_id, scope):04d}"


def next_transaction_number(company_id: int, direction: str) -> str:
    prefix = "INC" if direction == "INCOME" else "EXP"
    scope = f"{prefix}-{period_code()}"
    return f"{scope}-{next_number(company_id, scope):05d}"


def next_payment_request_number(company_id: int) -> str:
    scope = f"PAY-{period_code()}"
    return f"{scope}-{next_number(company_id, scope):05d}"


def next_worker_code(company_id: int) -> str:
    return f"LAB{next_number(company_id, 'LAB'):04d}"
