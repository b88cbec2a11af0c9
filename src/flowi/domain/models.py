from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Optional

USD = "USD"
VES = "VES"
CURRENCIES = (USD, VES)

PAYMENT_USD = "usd"
PAYMENT_VES = "ves"
PAYMENT_MIXED = "mixed"
PAYMENT_METHODS = (PAYMENT_USD, PAYMENT_VES, PAYMENT_MIXED)

STATUS_PENDING = "pending"
STATUS_OVERDUE = "overdue"
STATUS_PAID = "paid"
OUTSTANDING_STATUSES = (STATUS_PENDING, STATUS_OVERDUE)

ENTITY_CUSTOMER = "customer"
ENTITY_SUPPLIER = "supplier"
ENTITY_TYPES = (ENTITY_CUSTOMER, ENTITY_SUPPLIER)


@dataclass(frozen=True)
class ExchangeRate:
    id: str
    usd_to_ves: float
    source: str
    is_active: bool
    created_at: str


@dataclass(frozen=True)
class SaleItem:
    product_id: str
    product_name: str
    quantity: int
    price_usd: float
    price_ves: float


@dataclass(frozen=True)
class PaymentDetails:
    paid_usd: Optional[float] = None
    paid_ves: Optional[float] = None
    last_four_digits: Optional[str] = None


@dataclass(frozen=True)
class Sale:
    id: str
    payment_method: str
    total_usd: float
    total_ves: float
    exchange_rate: float
    items: tuple[SaleItem, ...]
    user_id: str
    user_name: str
    created_at: str
    paid_usd: Optional[float] = None
    paid_ves: Optional[float] = None
    change_usd: float = 0.0
    last_four_digits: Optional[str] = None
    customer_id: Optional[str] = None


@dataclass(frozen=True)
class Receivable:
    id: str
    invoice_number: str
    entity_type: str
    entity_name: str
    amount: float
    currency: str
    due_date: date
    status: str
    payment_terms: int
    description: str
    created_at: str
    updated_at: str
    entity_id: Optional[str] = None
    sale_id: Optional[str] = None

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_STATUSES


@dataclass(frozen=True)
class AgingBucket:
    entity_name: str
    currency: str
    current: float
    days_30: float
    days_60: float
    days_90: float
    over_90: float
    total: float


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    phone: str
    sector: str
    credit_limit: float
    payment_terms: int
    total_points: int = 0
    customer_level: str = "bronze"
    email: Optional[str] = None
    marketing_source: Optional[str] = None
    referral_code: Optional[str] = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Supplier:
    id: str
    name: str
    payment_terms: int
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Product:
    id: str
    sku: str
    name: str
    price_usd: float
    cost_usd: float
    stock: int
    min_stock: int
    active: bool = True


@dataclass(frozen=True)
class BankAccount:
    id: str
    name: str
    account_number: str
    account_type: str
    currency: str
    balance: float
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class BankTransaction:
    id: str
    account_id: str
    type: str
    amount: float
    currency: str
    reference: str
    description: str
    payment_method: str
    created_at: str
    sale_id: Optional[str] = None
