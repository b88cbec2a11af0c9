from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from flowi.config import Settings
from flowi.repositories.sqlite_repo import SqliteRepository
from flowi.services.bank_service import BankService
from flowi.services.customer_service import CustomerService
from flowi.services.fx_service import FxService
from flowi.services.inventory_service import InventoryService
from flowi.services.receivables_service import ReceivablesService
from flowi.services.reporting_service import ReportingService
from flowi.services.sales_service import SalesService
from flowi.services.supplier_service import SupplierService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    settings: Settings
    fx: FxService
    inventory: InventoryService
    customers: CustomerService
    suppliers: SupplierService
    receivables: ReceivablesService
    sales: SalesService
    bank: BankService
    reporting: ReportingService


def build_container(db_path: Path | str, settings: Optional[Settings] = None) -> AppContainer:
    settings = settings or Settings()
    repo = SqliteRepository(db_path)
    repo.init_db()

    fx = FxService(
        repo,
        source=settings.fx_source,
        max_age_hours=settings.fx_max_age_hours,
        timeout=settings.http_timeout,
    )
    inventory = InventoryService(repo)
    customers = CustomerService(repo, default_payment_terms=settings.default_payment_terms)
    suppliers = SupplierService(repo, default_payment_terms=settings.default_payment_terms)
    receivables = ReceivablesService(repo, default_payment_terms=settings.default_payment_terms)
    sales = SalesService(repo, fx, receivables)
    bank = BankService(repo)
    reporting = ReportingService(repo, receivables)

    return AppContainer(
        repo=repo,
        settings=settings,
        fx=fx,
        inventory=inventory,
        customers=customers,
        suppliers=suppliers,
        receivables=receivables,
        sales=sales,
        bank=bank,
        reporting=reporting,
    )
