# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

Two companies are created with their own users, then:
1. An actor from Company B cannot read or mutate Company A entities
2. Referencing a foreign id in a create call is rejected as Unauthorized
3. List endpoints only ever return the caller's rows
4. Document numbers are counted per company
"""

import pytest

from siteledger.errors import NotFoundError, UnauthorizedError
from siteledger.extensions import db
from siteledger.models import Project, StockRecord
from siteledger.services import material_service, project_service, vendor_service
from siteledger.services.tenant_service import get_owned, scoped


@pytest.fixture
def manager_b(make_actor, company_b):
    return make_actor(company_b, "PROJECT_MANAGER")


@pytest.fixture
def storekeeper_b(make_actor, company_b):
    return make_actor(company_b, "STOREKEEPER")


@pytest.fixture
def engineer_b(make_actor, company_b):
    return make_actor(company_b, "SITE_ENGINEER")


@pytest.fixture
def accountant_b(make_actor, company_b):
    return make_actor(company_b, "ACCOUNTANT")


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_get_owned_same_company(self, admin_a, project_a):
        assert get_owned(Project, project_a.id, admin_a).id == project_a.id

    def test_get_owned_cross_tenant(self, admin_b, project_a):
        with pytest.raises(UnauthorizedError):
            get_owned(Project, project_a.id, admin_b)

    def test_get_owned_missing(self, admin_a):
        with pytest.raises(NotFoundError):
            get_owned(Project, 99999, admin_a)

    def test_scoped_filters_company(self, admin_a, admin_b, project_a, project_b):
        assert [p.id for p in scoped(Project, admin_a).all()] == [project_a.id]
        assert [p.id for p in scoped(Project, admin_b).all()] == [project_b.id]


class TestCrossTenantReads:

    def test_project(self, admin_b, project_a):
        with pytest.raises(UnauthorizedError):
            project_service.get_project(project_a.id, admin_b)

    def test_vendor(self, admin_b, vendor_a):
        with pytest.raises(UnauthorizedError):
            vendor_service.get_vendor(vendor_a.id, admin_b)

    def test_material_and_stock(self, services, storekeeper_b, stocked_cement_a):
        with pytest.raises(UnauthorizedError):
            material_service.get_material(stocked_cement_a.id, storekeeper_b)
        with pytest.raises(UnauthorizedError):
            services.stock.get_stock(stocked_cement_a.id, storekeeper_b)

    def test_lists_are_scoped(self, services, admin_a, admin_b, project_a, project_b, vendor_a, vendor_b, cement_a, cement_b):
        assert [p.id for p in project_service.list_projects(admin_b)] == [project_b.id]
        assert [v.id for v in vendor_service.list_vendors(admin_b)] == [vendor_b.id]
        assert [m.id for m in material_service.list_materials(admin_b)] == [cement_b.id]
        assert services.ledger.list(admin_b) == []


class TestCrossTenantWrites:

    def test_stock_adjust(self, services, storekeeper_b, stocked_cement_a):
        with pytest.raises(UnauthorizedError):
            services.stock.adjust(stocked_cement_a.id, 5, "WASTE", storekeeper_b)
        record = db.session.query(StockRecord).filter_by(material_id=stocked_cement_a.id).one()
        assert record.total_stock == 30

    def test_stock_record_with_foreign_project(self, services, storekeeper_a, cement_a, project_b):
        with pytest.raises(UnauthorizedError):
            services.stock.create_stock_record(cement_a.id, storekeeper_a, project_id=project_b.id)
        assert db.session.query(StockRecord).filter_by(material_id=cement_a.id).count() == 0

    def test_stock_adjust_with_foreign_project(self, services, storekeeper_a, stocked_cement_a, project_b):
        with pytest.raises(UnauthorizedError):
            services.stock.adjust(stocked_cement_a.id, 5, "ADD", storekeeper_a, project_id=project_b.id)
        with pytest.raises(UnauthorizedError):
            services.stock.update_settings(stocked_cement_a.id, storekeeper_a, project_id=project_b.id)
        record = db.session.query(StockRecord).filter_by(material_id=stocked_cement_a.id).one()
        assert record.total_stock == 30
        assert record.project_id != project_b.id

    def test_material_request_with_foreign_material(self, services, engineer_b, project_b, stocked_cement_a):
        with pytest.raises(UnauthorizedError):
            services.material_requests.create(
                engineer_b, material_id=stocked_cement_a.id, project_id=project_b.id, quantity=1
            )

    def test_approve_foreign_material_request(self, services, engineer_a, manager_b, project_a, stocked_cement_a):
        request = services.material_requests.create(
            engineer_a, material_id=stocked_cement_a.id, project_id=project_a.id, quantity=2
        )
        with pytest.raises(UnauthorizedError):
            services.material_requests.approve(request.id, manager_b)

    def test_purchase_order_with_foreign_vendor(self, services, manager_b, vendor_a, project_b, cement_b):
        with pytest.raises(UnauthorizedError):
            services.purchase_orders.create(
                manager_b,
                vendor_id=vendor_a.id,
                project_id=project_b.id,
                lines=[{"material_id": cement_b.id, "quantity": 1, "rate_cents": 100}],
            )

    def test_payment_request_against_foreign_project(self, services, accountant_b, vendor_b, project_a):
        with pytest.raises(UnauthorizedError):
            services.payments.create(
                accountant_b, vendor_id=vendor_b.id, project_id=project_a.id, amount_cents=100, purpose="x"
            )
        assert db.session.get(Project, project_a.id).locked_amount_cents == 0

    def test_settle_foreign_worker(self, services, supervisor_a, accountant_b):
        worker = services.payroll.create_worker(supervisor_a, full_name="Ramesh Kumar")
        with pytest.raises(UnauthorizedError):
            services.payroll.settle(worker.id, accountant_b)


class TestNumbering:

    def test_request_numbers_are_per_company(self, services, engineer_a, engineer_b, project_a, project_b,
                                             stocked_cement_a, cement_b):
        first_a = services.material_requests.create(
            engineer_a, material_id=stocked_cement_a.id, project_id=project_a.id, quantity=1
        )
        first_b = services.material_requests.create(
            engineer_b, material_id=cement_b.id, project_id=project_b.id, quantity=1
        )
        assert first_a.request_number[-4:] == "0001"
        assert first_b.request_number[-4:] == "0001"
