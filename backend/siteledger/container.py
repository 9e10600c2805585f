# Overview: Per-app wiring of the stateful workflow services.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .notifications import LoggingNotificationSink, NotificationSink
from .storage import BlobStore, LocalDirectoryBlobStore
from .services.finance_service import LedgerService
from .services.material_request_service import MaterialRequestWorkflow
from .services.payment_request_service import PaymentRequestWorkflow
from .services.payroll_service import PayrollEngine
from .services.purchase_order_service import PurchaseOrderWorkflow
from .services.stock_service import StockLedger


@dataclass
class ServiceContainer:
    notifier: NotificationSink
    blob_store: BlobStore
    stock: StockLedger
    ledger: LedgerService
    material_requests: MaterialRequestWorkflow
    purchase_orders: PurchaseOrderWorkflow
    payments: PaymentRequestWorkflow
    payroll: PayrollEngine


def build_services(config, notifier: NotificationSink | None = None, blob_store: BlobStore | None = None) -> ServiceContainer:
    notifier = notifier or LoggingNotificationSink()
    blob_store = blob_store or LocalDirectoryBlobStore(
        config["BLOB_STORE_DIR"], config["BLOB_STORE_BASE_URL"]
    )
    stock = StockLedger(notifier)
    ledger = LedgerService(notifier)
    return ServiceContainer(
        notifier=notifier,
        blob_store=blob_store,
        stock=stock,
        ledger=ledger,
        material_requests=MaterialRequestWorkflow(notifier, stock, ledger),
        purchase_orders=PurchaseOrderWorkflow(
            notifier, stock, approval_levels=config["PO_APPROVAL_LEVELS"]
        ),
        payments=PaymentRequestWorkflow(notifier, ledger, blob_store),
        payroll=PayrollEngine(notifier, ledger, blob_store),
    )


def services() -> ServiceContainer:
    """The container of the current app."""
    return current_app.extensions["siteledger"]
