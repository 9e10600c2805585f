# Overview: Pytest coverage for worker attendance, advances and payroll settlement.

"""
Payroll Settlement Tests

net = unpaid earnings + previous dues - unsettled advances
pending dues after settlement = net - amount paid
"""

import pytest

from siteledger.errors import InvalidTransitionError, UnauthorizedError, ValidationError
from siteledger.extensions import db
from siteledger.models import AttendanceEntry, Project, Transaction, Worker


WAGE = 50000


@pytest.fixture
def worker(services, supervisor_a):
    return services.payroll.create_worker(
        supervisor_a,
        full_name="Ramesh Kumar",
        id_number="1234 5678 9012",
        category="Mason (Mistri)",
        daily_wage_cents=WAGE,
    )


def _present(services, actor, worker, *days):
    services.payroll.mark_attendance_batch(
        worker.id, actor, [{"work_date": day, "status": "Present"} for day in days]
    )


def _worker(worker):
    return db.session.get(Worker, worker.id)


class TestWorkers:

    def test_worker_code_sequence(self, services, supervisor_a, worker):
        second = services.payroll.create_worker(supervisor_a, full_name="Suresh")
        assert worker.worker_code == "LAB0001"
        assert second.worker_code == "LAB0002"
        assert second.category == "Helper / Mazdoor"

    def test_duplicate_id_number(self, services, supervisor_a, worker):
        with pytest.raises(ValidationError):
            services.payroll.create_worker(supervisor_a, full_name="Clone", id_number="1234 5678 9012")

    def test_invalid_category(self, services, supervisor_a):
        with pytest.raises(ValidationError):
            services.payroll.create_worker(supervisor_a, full_name="X", category="Astronaut")

    def test_pending_dues_not_editable(self, services, supervisor_a, worker):
        with pytest.raises(ValidationError):
            services.payroll.update_worker(worker.id, supervisor_a, pending_dues_cents=0)

    def test_deactivated_workers_hidden_by_default(self, services, supervisor_a, worker):
        services.payroll.deactivate_worker(worker.id, supervisor_a)
        assert services.payroll.list_workers(supervisor_a) == []
        assert len(services.payroll.list_workers(supervisor_a, include_inactive=True)) == 1

    @pytest.mark.parametrize("fields", [
        {"full_name": 5},
        {"full_name": "Ramu", "id_number": 123456789012},
        {"full_name": "Ramu", "mobile": ["98"]},
    ])
    def test_text_fields_must_be_strings(self, services, supervisor_a, fields):
        with pytest.raises(ValidationError):
            services.payroll.create_worker(supervisor_a, **fields)

    def test_upload_photo(self, services, supervisor_a, worker):
        updated = services.payroll.upload_photo(worker.id, supervisor_a, b"\xff\xd8jpeg", "ramesh.jpg")
        assert updated.photo_url.endswith("ramesh.jpg")


class TestAttendance:

    def test_same_calendar_day_is_upserted(self, services, supervisor_a, worker):
        services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01T09:00:00", "Present")
        services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01T18:30:00Z", "HalfDay")

        entries = db.session.query(AttendanceEntry).filter_by(worker_id=worker.id).all()
        assert len(entries) == 1
        assert entries[0].status == "HalfDay"

    def test_none_removes_unpaid_entry(self, services, supervisor_a, worker):
        services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01", "Present")
        services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01", "None")
        assert db.session.query(AttendanceEntry).filter_by(worker_id=worker.id).count() == 0

    def test_settled_entry_cannot_change(self, services, supervisor_a, accountant_a, worker):
        services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01", "Present")
        services.payroll.settle(worker.id, accountant_a)
        with pytest.raises(InvalidTransitionError):
            services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01", "Absent")

    def test_batch_clears_and_remarks_same_date(self, services, supervisor_a, worker):
        services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01", "Present")
        services.payroll.mark_attendance_batch(worker.id, supervisor_a, [
            {"work_date": "2026-10-01", "status": "None"},
            {"work_date": "2026-10-01", "status": "HalfDay"},
        ])

        entries = db.session.query(AttendanceEntry).filter_by(worker_id=worker.id).all()
        assert len(entries) == 1
        assert entries[0].status == "HalfDay"

    def test_invalid_status(self, services, supervisor_a, worker):
        with pytest.raises(ValidationError):
            services.payroll.mark_attendance(worker.id, supervisor_a, "2026-10-01", "Holiday")

    def test_batch_is_all_or_nothing(self, services, supervisor_a, worker):
        with pytest.raises(ValidationError):
            services.payroll.mark_attendance_batch(worker.id, supervisor_a, [
                {"work_date": "2026-10-01", "status": "Present"},
                {"work_date": "not-a-date", "status": "Present"},
            ])
        assert db.session.query(AttendanceEntry).filter_by(worker_id=worker.id).count() == 0

    def test_storekeeper_cannot_mark(self, services, storekeeper_a, worker):
        with pytest.raises(UnauthorizedError):
            services.payroll.mark_attendance(worker.id, storekeeper_a, "2026-10-01", "Present")


class TestSettlement:

    def test_full_settlement_then_nothing_left(self, services, sink, supervisor_a, accountant_a, worker):
        _present(services, supervisor_a, worker, "2026-10-01", "2026-10-02", "2026-10-03")
        services.payroll.add_advance(worker.id, supervisor_a, 20000, reason="Festival")

        settlement = services.payroll.settle(worker.id, accountant_a)
        assert settlement.total_earnings_cents == 150000
        assert settlement.total_deductions_cents == 20000
        assert settlement.net_payable_cents == 130000
        assert settlement.amount_paid_cents == 130000
        assert settlement.carry_forward_cents == 0
        assert "3 attendance entries" in settlement.notes
        assert "1 advances" in settlement.notes

        refreshed = _worker(worker)
        assert refreshed.pending_dues_cents == 0
        assert all(entry.paid for entry in refreshed.attendance)
        assert all(advance.settled for advance in refreshed.advances)
        assert len(sink.of_type("WORKER_SETTLED")) == 1

        again = services.payroll.settle(worker.id, accountant_a)
        assert again.net_payable_cents == 0
        assert again.total_earnings_cents == 0

    def test_partial_payment_carries_forward(self, services, supervisor_a, accountant_a, worker):
        _present(services, supervisor_a, worker, "2026-10-01", "2026-10-02")

        first = services.payroll.settle(worker.id, accountant_a, amount_paid_cents=70000)
        assert first.net_payable_cents == 100000
        assert first.carry_forward_cents == 30000
        assert _worker(worker).pending_dues_cents == 30000

        _present(services, supervisor_a, worker, "2026-10-03")
        second = services.payroll.settle(worker.id, accountant_a)
        assert second.previous_dues_cents == 30000
        assert second.net_payable_cents == 80000
        assert _worker(worker).pending_dues_cents == 0

    def test_overpayment_leaves_negative_dues(self, services, supervisor_a, accountant_a, worker):
        _present(services, supervisor_a, worker, "2026-10-01")
        services.payroll.settle(worker.id, accountant_a, amount_paid_cents=60000)
        assert _worker(worker).pending_dues_cents == -10000

    def test_half_day_late_and_absent(self, services, supervisor_a, accountant_a, worker):
        services.payroll.mark_attendance_batch(worker.id, supervisor_a, [
            {"work_date": "2026-10-01", "status": "HalfDay"},
            {"work_date": "2026-10-02", "status": "Late", "late_fee_cents": 5000},
            {"work_date": "2026-10-03", "status": "Absent"},
        ])
        settlement = services.payroll.settle(worker.id, accountant_a)
        assert settlement.total_earnings_cents == 25000 + 45000

    def test_payroll_expense_for_project_worker(self, services, supervisor_a, accountant_a, worker, project_a):
        services.payroll.update_worker(worker.id, supervisor_a, project_id=project_a.id)
        _present(services, supervisor_a, worker, "2026-10-01")

        settlement = services.payroll.settle(worker.id, accountant_a)
        txn = db.session.get(Transaction, settlement.transaction_id)
        assert txn.category == "Payroll"
        assert txn.source == "PAYROLL"
        assert txn.amount_cents == WAGE
        assert db.session.get(Project, project_a.id).actual_spend_cents == WAGE

    def test_payroll_expense_failure_keeps_settlement(self, services, supervisor_a, accountant_a, worker, project_a, monkeypatch):
        services.payroll.update_worker(worker.id, supervisor_a, project_id=project_a.id)
        _present(services, supervisor_a, worker, "2026-10-01")

        def broken_record(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(services.ledger, "record", broken_record)
        settlement = services.payroll.settle(worker.id, accountant_a)

        assert settlement.transaction_id is None
        assert settlement.amount_paid_cents == WAGE
        assert all(entry.paid for entry in _worker(worker).attendance)

    def test_relink_books_failed_payroll_expense(self, app, services, supervisor_a, accountant_a, worker,
                                                 project_a, monkeypatch):
        services.payroll.update_worker(worker.id, supervisor_a, project_id=project_a.id)
        _present(services, supervisor_a, worker, "2026-10-01")

        def broken_record(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        with monkeypatch.context() as patch:
            patch.setattr(services.ledger, "record", broken_record)
            settlement = services.payroll.settle(worker.id, accountant_a)

        assert [s.id for s in services.payroll.list_unlinked_settlements(accountant_a)] == [settlement.id]
        output = app.test_cli_runner().invoke(args=["reconcile", "expenses"]).output
        assert f"settlement {settlement.id} for LAB0001" in output

        relinked = services.payroll.relink_settlement_expense(settlement.id, accountant_a)
        txn = db.session.get(Transaction, relinked.transaction_id)
        assert txn.source == "PAYROLL"
        assert txn.source_id == settlement.id
        assert txn.amount_cents == WAGE
        assert db.session.get(Project, project_a.id).actual_spend_cents == WAGE
        assert services.payroll.list_unlinked_settlements(accountant_a) == []
        assert "PASS No unlinked expenses." in app.test_cli_runner().invoke(args=["reconcile", "expenses"]).output

        with pytest.raises(InvalidTransitionError):
            services.payroll.relink_settlement_expense(settlement.id, accountant_a)

    def test_relink_requires_project_and_role(self, services, supervisor_a, accountant_a, worker):
        _present(services, supervisor_a, worker, "2026-10-01")
        settlement = services.payroll.settle(worker.id, accountant_a)
        assert settlement.transaction_id is None
        with pytest.raises(UnauthorizedError):
            services.payroll.relink_settlement_expense(settlement.id, supervisor_a)
        with pytest.raises(InvalidTransitionError):
            services.payroll.relink_settlement_expense(settlement.id, accountant_a)

    def test_amount_paid_must_be_non_negative(self, services, accountant_a, worker):
        with pytest.raises(ValidationError):
            services.payroll.settle(worker.id, accountant_a, amount_paid_cents=-1)
