from .fx_service import FxService
from .inventory_service import InventoryService
from .customer_service import CustomerService
from .supplier_service import SupplierService
from .receivables_service import ReceivablesService
from .sales_service import SalesService
from .bank_service import BankService
from .reporting_service import ReportingService

__all__ = [
    "FxService",
    "InventoryService",
    "CustomerService",
    "SupplierService",
    "ReceivablesService",
    "SalesService",
    "BankService",
    "ReportingService",
]
