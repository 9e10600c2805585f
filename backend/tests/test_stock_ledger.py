# Overview: Pytest coverage for stock ledger adjustments and their invariants.

"""
Stock Ledger Tests

Every kind keeps total == available + reserved, never lets available or
reserved go negative, and appends exactly one movement per adjustment.
"""

import pytest

from siteledger.errors import InsufficientStockError, NotFoundError, UnauthorizedError, ValidationError
from siteledger.models import StockBatch, StockMovement, StockRecord


def _record(db_session, material):
    return db_session.query(StockRecord).filter_by(material_id=material.id).one()


def _assert_balanced(record):
    assert record.total_stock == record.available_stock + record.reserved_stock
    assert record.available_stock >= 0
    assert record.reserved_stock >= 0


class TestAdjustKinds:

    def test_opening_stock_is_booked_as_add(self, db_session, services, storekeeper_a, stocked_cement_a):
        record = _record(db_session, stocked_cement_a)
        assert record.total_stock == 30
        assert record.available_stock == 30
        movements = services.stock.list_movements(stocked_cement_a.id, storekeeper_a)
        assert [m.kind for m in movements] == ["ADD"]

    def test_reserve_then_issue(self, db_session, services, storekeeper_a, stocked_cement_a):
        services.stock.adjust(stocked_cement_a.id, 12, "RESERVE", storekeeper_a)
        record = _record(db_session, stocked_cement_a)
        assert (record.total_stock, record.available_stock, record.reserved_stock) == (30, 18, 12)
        _assert_balanced(record)

        services.stock.adjust(stocked_cement_a.id, 12, "ISSUE", storekeeper_a)
        record = _record(db_session, stocked_cement_a)
        assert (record.total_stock, record.available_stock, record.reserved_stock) == (18, 18, 0)
        _assert_balanced(record)

    def test_unreserve_returns_to_available(self, db_session, services, storekeeper_a, stocked_cement_a):
        services.stock.adjust(stocked_cement_a.id, 5, "RESERVE", storekeeper_a)
        services.stock.adjust(stocked_cement_a.id, 5, "UNRESERVE", storekeeper_a)
        record = _record(db_session, stocked_cement_a)
        assert (record.total_stock, record.available_stock, record.reserved_stock) == (30, 30, 0)

    def test_waste_and_damage_leave_the_total(self, db_session, services, storekeeper_a, stocked_cement_a):
        services.stock.adjust(stocked_cement_a.id, 2, "WASTE", storekeeper_a)
        services.stock.adjust(stocked_cement_a.id, 3, "DAMAGE", storekeeper_a)
        record = _record(db_session, stocked_cement_a)
        assert record.total_stock == 25
        assert record.available_stock == 25
        assert record.wastage == 2
        assert record.damaged_stock == 3
        _assert_balanced(record)

    def test_deliver_creates_missing_record(self, db_session, services, storekeeper_a, cement_a):
        services.stock.adjust(
            cement_a.id, 40, "DELIVER", storekeeper_a,
            batch={"batch_number": "GRN-1", "unit_cost_cents": 37500},
        )
        record = _record(db_session, cement_a)
        assert record.total_stock == 40
        assert services.stock.latest_unit_cost_cents(cement_a.id, cement_a.company_id) == 37500
        assert db_session.query(StockBatch).filter_by(stock_record_id=record.id).one().quantity == 40

    def test_add_without_record_is_not_found(self, services, storekeeper_a, cement_a):
        with pytest.raises(NotFoundError):
            services.stock.adjust(cement_a.id, 5, "ADD", storekeeper_a)


class TestAdjustRejections:

    def test_reserve_more_than_available_changes_nothing(self, db_session, services, storekeeper_a, stocked_cement_a):
        with pytest.raises(InsufficientStockError):
            services.stock.adjust(stocked_cement_a.id, 50, "RESERVE", storekeeper_a)

        record = _record(db_session, stocked_cement_a)
        assert (record.total_stock, record.available_stock, record.reserved_stock) == (30, 30, 0)
        assert db_session.query(StockMovement).filter_by(stock_record_id=record.id).count() == 1

    def test_issue_without_reservation_is_refused(self, services, storekeeper_a, stocked_cement_a):
        with pytest.raises(InsufficientStockError):
            services.stock.adjust(stocked_cement_a.id, 1, "ISSUE", storekeeper_a)

    @pytest.mark.parametrize("quantity", [0, -3, 2.5, True, "4"])
    def test_quantity_must_be_positive_integer(self, services, storekeeper_a, stocked_cement_a, quantity):
        with pytest.raises(ValidationError):
            services.stock.adjust(stocked_cement_a.id, quantity, "ADD", storekeeper_a)

    def test_unknown_kind(self, services, storekeeper_a, stocked_cement_a):
        with pytest.raises(ValidationError):
            services.stock.adjust(stocked_cement_a.id, 1, "TELEPORT", storekeeper_a)

    def test_batch_only_on_inbound_kinds(self, services, storekeeper_a, stocked_cement_a):
        with pytest.raises(ValidationError):
            services.stock.adjust(
                stocked_cement_a.id, 1, "WASTE", storekeeper_a, batch={"batch_number": "X"}
            )

    def test_batch_quantity_must_match_adjustment(self, db_session, services, storekeeper_a, stocked_cement_a):
        with pytest.raises(ValidationError):
            services.stock.adjust(
                stocked_cement_a.id, 5, "ADD", storekeeper_a,
                batch={"batch_number": "GRN-9", "quantity": 500},
            )
        assert _record(db_session, stocked_cement_a).total_stock == 30

    def test_engineer_cannot_adjust(self, services, engineer_a, stocked_cement_a):
        with pytest.raises(UnauthorizedError):
            services.stock.adjust(stocked_cement_a.id, 1, "ADD", engineer_a)


class TestReorderAlerts:

    def test_low_stock_alert_at_reorder_level(self, services, sink, storekeeper_a, stocked_cement_a):
        services.stock.adjust(stocked_cement_a.id, 19, "RESERVE", storekeeper_a)
        assert sink.of_type("LOW_STOCK_ALERT") == []

        services.stock.adjust(stocked_cement_a.id, 1, "RESERVE", storekeeper_a)
        alerts = sink.of_type("LOW_STOCK_ALERT")
        assert len(alerts) == 1
        topic, _, payload = alerts[0]
        assert topic == f"company_{storekeeper_a.company_id}"
        assert payload["available_stock"] == 10

    def test_failing_sink_does_not_undo_adjustment(self, db_session, services, storekeeper_a, stocked_cement_a, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("sink down")

        monkeypatch.setattr(services.notifier, "publish", boom)
        services.stock.adjust(stocked_cement_a.id, 25, "WASTE", storekeeper_a)
        assert _record(db_session, stocked_cement_a).available_stock == 5
