# Overview: Flask API routes for transactions, chart of accounts and payment requests.

"""
Finance Routes

Transactions:      /api/finance/transactions[/<id>[/<action>]]
                   actions: approve, settle, cancel
Chart of accounts: /api/finance/coa, /api/finance/coa/defaults
Payment requests:  /api/finance/payment-requests[/<id>[/<action>]]
                   actions: verify, release, reject
Reporting:         /api/finance/cash-flow
"""

from flask import Blueprint, request, jsonify, g

from ..container import services
from ..decorators import require_auth
from ..errors import ValidationError
from ..services.payment_request_service import ENTITY as PAYMENT_REQUEST_ENTITY
from ..services.timeline_service import timeline_for
from siteledger.time_utils import parse_iso_datetime


finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO datetime")


# ----------------------------------------------------------------------
# Transactions
# ----------------------------------------------------------------------

@finance_bp.get("/transactions")
@require_auth
def list_transactions_route():
    """
    Query parameters: project_id, category, direction (INCOME|EXPENSE),
    status, account_id, start, end (ISO datetimes on created_at).
    """
    transactions = services().ledger.list(
        g.actor,
        project_id=request.args.get("project_id", type=int),
        category=request.args.get("category"),
        direction=request.args.get("direction"),
        status=request.args.get("status"),
        account_id=request.args.get("account_id", type=int),
        start=_date_arg("start"),
        end=_date_arg("end"),
    )
    return jsonify({"items": [t.to_dict() for t in transactions], "count": len(transactions)})


@finance_bp.post("/transactions")
@require_auth
def create_transaction_route():
    """
    Record a manual transaction (status PENDING).

    Request body:
    {
        "direction": "EXPENSE", "category": "Material", "amount_cents": 125000,
        "project_id": 1, "vendor_id": 2, "account_id": 7,
        "cgst_cents": 0, "sgst_cents": 0, "igst_cents": 0,
        "payment_mode": "Bank", "reference_id": "INV-22",
        "boq_item": "2.1", "description": "...", "ledger_date": "2026-10-01"
    }
    """
    data = request.get_json() or {}
    txn = services().ledger.create_transaction(
        g.actor,
        direction=data.get("direction"),
        category=data.get("category"),
        amount_cents=data.get("amount_cents"),
        project_id=data.get("project_id"),
        vendor_id=data.get("vendor_id"),
        account_id=data.get("account_id"),
        cgst_cents=data.get("cgst_cents", 0),
        sgst_cents=data.get("sgst_cents", 0),
        igst_cents=data.get("igst_cents", 0),
        payment_mode=data.get("payment_mode"),
        reference_id=data.get("reference_id"),
        boq_item=data.get("boq_item"),
        description=data.get("description"),
        ledger_date=data.get("ledger_date"),
    )
    return jsonify({"transaction": txn.to_dict()}), 201


@finance_bp.get("/transactions/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    txn = services().ledger.get(transaction_id, g.actor)
    return jsonify({
        "transaction": txn.to_dict(),
        "timeline": [t.to_dict() for t in timeline_for("transaction", txn.id)],
    })


@finance_bp.post("/transactions/<int:transaction_id>/<action>")
@require_auth
def transition_transaction_route(transaction_id: int, action: str):
    data = request.get_json(silent=True) or {}
    txn = services().ledger.transition(transaction_id, action, g.actor, data)
    return jsonify({"transaction": txn.to_dict()})


# ----------------------------------------------------------------------
# Chart of accounts
# ----------------------------------------------------------------------

@finance_bp.get("/coa")
@require_auth
def list_accounts_route():
    accounts = services().ledger.list_accounts(g.actor)
    return jsonify({"items": [a.to_dict() for a in accounts], "count": len(accounts)})


@finance_bp.post("/coa")
@require_auth
def create_account_route():
    data = request.get_json() or {}
    account = services().ledger.create_account(
        g.actor,
        code=data.get("code"),
        name=data.get("name"),
        type=data.get("type"),
        description=data.get("description"),
        opening_balance_cents=data.get("opening_balance_cents", 0),
    )
    return jsonify({"account": account.to_dict()}), 201


@finance_bp.post("/coa/defaults")
@require_auth
def setup_default_coa_route():
    accounts = services().ledger.setup_default_coa(g.actor)
    return jsonify({"items": [a.to_dict() for a in accounts], "count": len(accounts)}), 201


# ----------------------------------------------------------------------
# Payment requests
# ----------------------------------------------------------------------

@finance_bp.get("/payment-requests")
@require_auth
def list_payment_requests_route():
    payment_requests = services().payments.list(
        g.actor,
        status=request.args.get("status"),
        project_id=request.args.get("project_id", type=int),
        vendor_id=request.args.get("vendor_id", type=int),
    )
    return jsonify({"items": [p.to_dict() for p in payment_requests], "count": len(payment_requests)})


@finance_bp.post("/payment-requests")
@require_auth
def create_payment_request_route():
    """
    Raise a payment request; its amount is locked against the project budget.

    Request body:
    {
        "vendor_id": 1, "project_id": 2, "amount_cents": 2000000,
        "purpose": "RA bill 3", "category": "Contractor",
        "advance": {"paid_cents": 0, "adjusted_cents": 0},
        "retention": {"percentage_bps": 500, "release_condition": "...", "release_date": "2027-03-31"},
        "invoice": {"number": "INV-9", "date": "2026-10-01", "url": "..."}
    }
    """
    data = request.get_json() or {}
    payment_request = services().payments.create(
        g.actor,
        vendor_id=data.get("vendor_id"),
        project_id=data.get("project_id"),
        amount_cents=data.get("amount_cents"),
        purpose=data.get("purpose"),
        category=data.get("category", "Other"),
        advance=data.get("advance"),
        retention=data.get("retention"),
        invoice=data.get("invoice"),
    )
    return jsonify({"payment_request": payment_request.to_dict()}), 201


@finance_bp.get("/payment-requests/<int:request_id>")
@require_auth
def get_payment_request_route(request_id: int):
    payment_request = services().payments.get(request_id, g.actor)
    return jsonify({
        "payment_request": payment_request.to_dict(),
        "timeline": [t.to_dict() for t in timeline_for(PAYMENT_REQUEST_ENTITY, payment_request.id)],
    })


@finance_bp.post("/payment-requests/<int:request_id>/invoice")
@require_auth
def upload_invoice_route(request_id: int):
    """multipart/form-data with a single "file" field."""
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("file is required")
    payment_request = services().payments.attach_invoice(
        request_id, g.actor, upload.read(), upload.filename
    )
    return jsonify({"payment_request": payment_request.to_dict()})


@finance_bp.post("/payment-requests/<int:request_id>/<action>")
@require_auth
def transition_payment_request_route(request_id: int, action: str):
    """Actions: verify, release ({payment_mode, reference_id}), reject. Body: {note?}"""
    data = request.get_json(silent=True) or {}
    payment_request = services().payments.transition(request_id, action, g.actor, data)
    return jsonify({"payment_request": payment_request.to_dict()})


# ----------------------------------------------------------------------
# Reporting
# ----------------------------------------------------------------------

@finance_bp.get("/cash-flow")
@require_auth
def cash_flow_route():
    return jsonify(services().ledger.cash_flow_forecast(g.actor))
