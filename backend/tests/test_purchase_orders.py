# Overview: Pytest coverage for purchase orders: credit limit, approvals, issue and deliveries.

import pytest

from siteledger.errors import CreditLimitExceededError, InvalidTransitionError, UnauthorizedError, ValidationError
from siteledger.extensions import db
from siteledger.models import PurchaseOrder, StockRecord, Vendor
from siteledger.services import material_service
from siteledger.services.purchase_order_service import delivered_quantities


@pytest.fixture
def steel_a(admin_a):
    return material_service.create_material(
        admin_a, item_code="TMT-12", name="TMT Bar 12mm", category="Steel", unit="Tons"
    )


@pytest.fixture
def draft_order(services, manager_a, vendor_a, project_a, cement_a, steel_a):
    """Cement 10 bags @ 380.00 and steel 5 t @ 1,000.00 = 8,800.00."""
    return services.purchase_orders.create(
        manager_a,
        vendor_id=vendor_a.id,
        project_id=project_a.id,
        lines=[
            {"material_id": cement_a.id, "quantity": 10, "rate_cents": 38000},
            {"material_id": steel_a.id, "quantity": 5, "rate_cents": 100000},
        ],
        po_number="PO-ACME-001",
    )


@pytest.fixture
def issued_order(services, manager_a, finance_a, draft_order):
    services.purchase_orders.submit(draft_order.id, manager_a)
    services.purchase_orders.approve(draft_order.id, 1, manager_a)
    services.purchase_orders.approve(draft_order.id, 2, finance_a)
    return services.purchase_orders.issue(draft_order.id, manager_a)


def _stock_total(material):
    record = db.session.query(StockRecord).filter_by(material_id=material.id).first()
    return record.total_stock if record else 0


class TestCreate:

    def test_totals(self, draft_order):
        assert draft_order.status == "DRAFT"
        assert draft_order.total_cents == 880000
        assert draft_order.grand_total_cents == 880000

    def test_credit_limit_exceeded(self, db_session, services, manager_a, vendor_a, project_a, cement_a):
        vendor_a.outstanding_payables_cents = 950000
        db_session.commit()

        with pytest.raises(CreditLimitExceededError):
            services.purchase_orders.create(
                manager_a,
                vendor_id=vendor_a.id,
                project_id=project_a.id,
                lines=[{"material_id": cement_a.id, "quantity": 1, "rate_cents": 100000}],
            )
        assert db_session.query(PurchaseOrder).count() == 0

    def test_order_up_to_the_limit_is_accepted(self, db_session, services, manager_a, vendor_a, project_a, cement_a):
        vendor_a.outstanding_payables_cents = 950000
        db_session.commit()

        order = services.purchase_orders.create(
            manager_a,
            vendor_id=vendor_a.id,
            project_id=project_a.id,
            lines=[{"material_id": cement_a.id, "quantity": 1, "rate_cents": 50000}],
        )
        assert order.grand_total_cents == 50000

    def test_inactive_vendor_rejected(self, db_session, services, manager_a, vendor_a, project_a, cement_a):
        vendor_a.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            services.purchase_orders.create(
                manager_a,
                vendor_id=vendor_a.id,
                project_id=project_a.id,
                lines=[{"material_id": cement_a.id, "quantity": 1, "rate_cents": 100}],
            )

    def test_duplicate_material_lines_rejected(self, services, manager_a, vendor_a, project_a, cement_a):
        with pytest.raises(ValidationError):
            services.purchase_orders.create(
                manager_a,
                vendor_id=vendor_a.id,
                project_id=project_a.id,
                lines=[
                    {"material_id": cement_a.id, "quantity": 1, "rate_cents": 100},
                    {"material_id": cement_a.id, "quantity": 2, "rate_cents": 100},
                ],
            )


class TestApprovalLadder:

    def test_all_levels_required(self, services, sink, manager_a, finance_a, draft_order):
        services.purchase_orders.submit(draft_order.id, manager_a)
        assert sink.topics("PO_APPROVAL_PENDING") == [
            f"company_{draft_order.company_id}",
            f"project_{draft_order.project_id}",
        ]

        order = services.purchase_orders.approve(draft_order.id, 1, manager_a)
        assert order.status == "PENDING_APPROVAL"
        assert sink.of_type("PO_APPROVED") == []

        order = services.purchase_orders.approve(draft_order.id, 2, finance_a)
        assert order.status == "APPROVED"
        assert len(sink.topics("PO_APPROVED")) == 2

    def test_reject_returns_to_draft_and_resubmit_resets(self, services, manager_a, finance_a, draft_order):
        services.purchase_orders.submit(draft_order.id, manager_a)
        services.purchase_orders.approve(draft_order.id, 1, manager_a)
        order = services.purchase_orders.reject(draft_order.id, 2, finance_a, comments="Rate too high")
        assert order.status == "DRAFT"

        order = services.purchase_orders.submit(draft_order.id, manager_a)
        assert sorted(a.level for a in order.approvals) == [1, 2]
        assert all(a.status == "PENDING" for a in order.approvals)

    def test_approving_same_level_twice(self, services, manager_a, draft_order):
        services.purchase_orders.submit(draft_order.id, manager_a)
        services.purchase_orders.approve(draft_order.id, 1, manager_a)
        with pytest.raises(InvalidTransitionError):
            services.purchase_orders.approve(draft_order.id, 1, manager_a)

    def test_unknown_level(self, services, manager_a, draft_order):
        services.purchase_orders.submit(draft_order.id, manager_a)
        with pytest.raises(ValidationError):
            services.purchase_orders.transition(draft_order.id, "approve", manager_a, {"level": 7})

    def test_storekeeper_cannot_approve(self, services, manager_a, storekeeper_a, draft_order):
        services.purchase_orders.submit(draft_order.id, manager_a)
        with pytest.raises(UnauthorizedError):
            services.purchase_orders.approve(draft_order.id, 1, storekeeper_a)

    def test_issue_requires_approval(self, services, manager_a, draft_order):
        with pytest.raises(InvalidTransitionError):
            services.purchase_orders.issue(draft_order.id, manager_a)


class TestIssueAndDelivery:

    def test_issue_adds_outstanding_payables(self, db_session, vendor_a, issued_order):
        assert issued_order.status == "ISSUED"
        assert db_session.get(Vendor, vendor_a.id).outstanding_payables_cents == 880000

    def test_partial_then_complete_delivery(self, services, storekeeper_a, issued_order, cement_a, steel_a):
        order = services.purchase_orders.record_delivery(
            issued_order.id, storekeeper_a,
            lines=[{"material_id": cement_a.id, "quantity": 10}, {"material_id": steel_a.id, "quantity": 3}],
        )
        assert order.status == "IN_TRANSIT"
        assert order.delivery_status == "PARTIAL"
        assert _stock_total(cement_a) == 10
        assert _stock_total(steel_a) == 3

        order = services.purchase_orders.record_delivery(
            issued_order.id, storekeeper_a, lines=[{"material_id": steel_a.id, "quantity": 2}],
        )
        assert order.status == "DELIVERED"
        assert order.delivery_status == "COMPLETE"
        assert delivered_quantities(order) == {cement_a.id: 10, steel_a.id: 5}
        assert _stock_total(steel_a) == 5

    def test_delivery_of_unordered_material(self, services, storekeeper_a, admin_a, issued_order):
        other = material_service.create_material(admin_a, item_code="SAND", name="River Sand", category="Aggregates", unit="Trucks")
        with pytest.raises(ValidationError):
            services.purchase_orders.record_delivery(
                issued_order.id, storekeeper_a, lines=[{"material_id": other.id, "quantity": 1}]
            )
        assert _stock_total(other) == 0

    def test_delivery_before_issue(self, services, storekeeper_a, draft_order, cement_a):
        with pytest.raises(InvalidTransitionError):
            services.purchase_orders.record_delivery(
                draft_order.id, storekeeper_a, lines=[{"material_id": cement_a.id, "quantity": 1}]
            )

    def test_cancel_issued_without_delivery_releases_payables(self, db_session, services, manager_a, vendor_a, issued_order):
        services.purchase_orders.cancel(issued_order.id, manager_a)
        assert db_session.get(Vendor, vendor_a.id).outstanding_payables_cents == 0

    def test_close_then_cancel_is_refused(self, services, manager_a, issued_order):
        order = services.purchase_orders.close(issued_order.id, manager_a)
        assert order.status == "CLOSED"
        with pytest.raises(InvalidTransitionError):
            services.purchase_orders.cancel(issued_order.id, manager_a)
