# Overview: Pytest coverage for the material request workflow.

"""
Material Request Workflow Tests

- approve reserves and issue consumes stock in the same commit as the status
- a failed reservation leaves the request PENDING and stock untouched
- the issue-time expense is best-effort and can be relinked later
"""

import pytest

from siteledger.errors import InsufficientStockError, InvalidTransitionError, UnauthorizedError, ValidationError
from siteledger.extensions import db
from siteledger.models import MaterialRequest, Project, StockRecord, Transaction
from siteledger.services.timeline_service import timeline_for


def _stock(material):
    return db.session.query(StockRecord).filter_by(material_id=material.id).one()


@pytest.fixture
def raise_request(services, engineer_a, project_a, stocked_cement_a):
    def _raise(quantity=12, **kwargs):
        return services.material_requests.create(
            engineer_a,
            material_id=stocked_cement_a.id,
            project_id=project_a.id,
            quantity=quantity,
            purpose="Slab casting, level 3",
            **kwargs,
        )
    return _raise


class TestCreate:

    def test_create_assigns_number_and_publishes(self, sink, raise_request):
        request = raise_request()
        assert request.status == "PENDING"
        assert request.request_number.startswith("REQ-")
        assert request.request_number.endswith("-0001")
        assert sink.topics("MATERIAL_REQUEST_CREATED") == [
            f"company_{request.company_id}",
            f"project_{request.project_id}",
        ]

    def test_numbers_increase_per_company(self, raise_request):
        first = raise_request()
        second = raise_request()
        assert first.request_number[-4:] == "0001"
        assert second.request_number[-4:] == "0002"

    def test_invalid_priority(self, raise_request):
        with pytest.raises(ValidationError):
            raise_request(priority="WHENEVER")

    def test_accountant_cannot_request(self, services, accountant_a, project_a, stocked_cement_a):
        with pytest.raises(UnauthorizedError):
            services.material_requests.create(
                accountant_a, material_id=stocked_cement_a.id, project_id=project_a.id, quantity=1
            )


class TestApprove:

    def test_approve_reserves_stock(self, services, sink, supervisor_a, raise_request, stocked_cement_a):
        request = raise_request()
        services.material_requests.approve(request.id, supervisor_a)

        stock = _stock(stocked_cement_a)
        assert (stock.available_stock, stock.reserved_stock) == (18, 12)
        assert db.session.get(MaterialRequest, request.id).status == "APPROVED"
        assert len(sink.topics("MATERIAL_REQUEST_APPROVED")) == 2

    def test_insufficient_stock_keeps_request_pending(self, services, supervisor_a, raise_request, stocked_cement_a):
        request = raise_request(quantity=50)

        with pytest.raises(InsufficientStockError):
            services.material_requests.approve(request.id, supervisor_a)

        assert db.session.get(MaterialRequest, request.id).status == "PENDING"
        stock = _stock(stocked_cement_a)
        assert (stock.available_stock, stock.reserved_stock) == (30, 0)

    def test_approve_twice_is_invalid(self, services, supervisor_a, raise_request):
        request = raise_request()
        services.material_requests.approve(request.id, supervisor_a)
        with pytest.raises(InvalidTransitionError):
            services.material_requests.approve(request.id, supervisor_a)


class TestIssue:

    def test_issue_consumes_reservation_and_books_expense(
        self, services, sink, supervisor_a, storekeeper_a, raise_request, stocked_cement_a, project_a
    ):
        request = raise_request()
        services.material_requests.approve(request.id, supervisor_a)
        issued = services.material_requests.issue(request.id, storekeeper_a)

        stock = _stock(stocked_cement_a)
        assert (stock.total_stock, stock.available_stock, stock.reserved_stock) == (18, 18, 0)

        assert issued.status == "ISSUED"
        assert issued.expense_status == "LINKED"
        txn = db.session.get(Transaction, issued.expense_transaction_id)
        assert txn.amount_cents == 12 * 38000
        assert txn.category == "Material"
        assert txn.source == "MATERIAL_ISSUE"
        assert db.session.get(Project, project_a.id).actual_spend_cents == 12 * 38000
        assert len(sink.topics("MATERIAL_ISSUED")) == 2

    def test_issue_on_pending_leaves_stock_untouched(self, services, storekeeper_a, raise_request, stocked_cement_a):
        request = raise_request()
        with pytest.raises(InvalidTransitionError):
            services.material_requests.issue(request.id, storekeeper_a)

        stock = _stock(stocked_cement_a)
        assert (stock.total_stock, stock.available_stock, stock.reserved_stock) == (30, 30, 0)
        assert db.session.get(MaterialRequest, request.id).status == "PENDING"

    def test_refused_transition_adds_no_timeline_entry(self, services, supervisor_a, storekeeper_a, raise_request):
        request = raise_request()
        before = len(timeline_for("material_request", request.id))
        with pytest.raises(InvalidTransitionError):
            services.material_requests.issue(request.id, storekeeper_a)
        assert len(timeline_for("material_request", request.id)) == before

        services.material_requests.approve(request.id, supervisor_a)
        approved = len(timeline_for("material_request", request.id))
        with pytest.raises(InvalidTransitionError):
            services.material_requests.approve(request.id, supervisor_a)
        assert len(timeline_for("material_request", request.id)) == approved

    def test_repeated_get_is_stable(self, services, engineer_a, raise_request):
        request = raise_request()
        first = services.material_requests.get(request.id, engineer_a).to_dict()
        assert services.material_requests.get(request.id, engineer_a).to_dict() == first

    def test_expense_failure_does_not_roll_back_issue(
        self, services, supervisor_a, storekeeper_a, admin_a, raise_request, stocked_cement_a, project_a, monkeypatch
    ):
        request = raise_request()
        services.material_requests.approve(request.id, supervisor_a)

        def broken_record(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(services.ledger, "record", broken_record)
        issued = services.material_requests.issue(request.id, storekeeper_a)
        monkeypatch.undo()

        assert issued.status == "ISSUED"
        assert issued.expense_status == "FAILED"
        assert _stock(stocked_cement_a).total_stock == 18
        assert db.session.get(Project, project_a.id).actual_spend_cents == 0

        relinked = services.material_requests.relink_expense(request.id, admin_a)
        assert relinked.expense_status == "LINKED"
        assert db.session.get(Project, project_a.id).actual_spend_cents == 12 * 38000

        with pytest.raises(InvalidTransitionError):
            services.material_requests.relink_expense(request.id, admin_a)

    def test_zero_cost_material_is_skipped(self, services, supervisor_a, storekeeper_a, engineer_a, project_a, cement_a):
        services.stock.create_stock_record(cement_a.id, storekeeper_a, opening_quantity=10)
        request = services.material_requests.create(
            engineer_a, material_id=cement_a.id, project_id=project_a.id, quantity=4
        )
        services.material_requests.approve(request.id, supervisor_a)
        issued = services.material_requests.issue(request.id, storekeeper_a)
        assert issued.expense_status == "SKIPPED"
        assert issued.expense_transaction_id is None


class TestRejectAndCancel:

    def test_reject_pending(self, services, supervisor_a, raise_request):
        request = raise_request()
        rejected = services.material_requests.reject(request.id, supervisor_a, note="Use existing stock")
        assert rejected.status == "REJECTED"

    def test_cancel_approved_releases_reservation(self, services, supervisor_a, engineer_a, raise_request, stocked_cement_a):
        request = raise_request()
        services.material_requests.approve(request.id, supervisor_a)
        services.material_requests.cancel(request.id, engineer_a)

        stock = _stock(stocked_cement_a)
        assert (stock.available_stock, stock.reserved_stock) == (30, 0)

    def test_cannot_cancel_issued(self, services, supervisor_a, storekeeper_a, engineer_a, raise_request):
        request = raise_request()
        services.material_requests.approve(request.id, supervisor_a)
        services.material_requests.issue(request.id, storekeeper_a)
        with pytest.raises(InvalidTransitionError):
            services.material_requests.cancel(request.id, engineer_a)

    def test_timeline_records_each_step(self, services, supervisor_a, storekeeper_a, raise_request):
        request = raise_request()
        services.material_requests.transition(request.id, "approve", supervisor_a)
        services.material_requests.transition(request.id, "issue", storekeeper_a, {"note": "Handed to site"})

        statuses = [t.status for t in timeline_for("material_request", request.id)]
        assert statuses == ["PENDING", "APPROVED", "ISSUED"]

    def test_unknown_action(self, services, supervisor_a, raise_request):
        request = raise_request()
        with pytest.raises(ValidationError):
            services.material_requests.transition(request.id, "teleport", supervisor_a)
