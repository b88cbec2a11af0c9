from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Protocol

from flowi.domain.models import Customer, ExchangeRate, Product, Receivable, Sale


class ProductRepository(Protocol):
    def get_product_by_id(self, product_id: str) -> Optional[Product]: ...


class CustomerRepository(Protocol):
    def get_customer(self, customer_id: str) -> Optional[Customer]: ...


class ExchangeRateRepository(Protocol):
    def add_exchange_rate(self, usd_to_ves: float, source: str, created_at: Optional[str] = None) -> ExchangeRate: ...
    def get_active_exchange_rate(self) -> Optional[ExchangeRate]: ...


class SaleRepository(ProductRepository, CustomerRepository, Protocol):
    def get_sale(self, sale_id: str) -> Optional[Sale]: ...
    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]: ...


class ReceivableRepository(Protocol):
    def add_receivable(self, r: Receivable) -> str: ...
    def get_receivable(self, receivable_id: str) -> Optional[Receivable]: ...
    def get_receivable_by_invoice_number(self, invoice_number: str) -> Optional[Receivable]: ...
    def list_receivables(
        self,
        entity_type: Optional[str] = None,
        status: Optional[str] = None,
        currency: Optional[str] = None,
        entity_id: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
    ) -> list[Receivable]: ...
    def save_receivable_statuses(self, receivables: Iterable[Receivable]) -> int: ...
    def delete_receivable(self, receivable_id: str) -> bool: ...
