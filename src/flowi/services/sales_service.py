from __future__ import annotations

from typing import Callable, Iterable, Optional

from collections import Counter
from datetime import date
import logging
from flowi.domain.errors import (
    EmptyCartError,
    FxUnavailableError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from flowi.domain.loyalty import points_for_amount
from flowi.domain.models import ENTITY_CUSTOMER, PAYMENT_MIXED, USD, PaymentDetails, Sale
from flowi.domain.sales import build_sale_items, compute_sale, sale_totals
from flowi.repositories.contracts import SaleRepository
from flowi.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

log = logging.getLogger("flowi.sales")


class SalesService:
    def __init__(
        self,
        repo: SaleRepository,
        fx_service,
        receivables,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.fx = fx_service
        self.receivables = receivables
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def _current_rate(self) -> float:
        try:
            return float(self.fx.get_today_rate())
        except FxUnavailableError:
            raise
        except (TypeError, ValueError) as e:
            raise FxUnavailableError(str(e)) from e

    def _resolve_items(self, items: list[dict]) -> list[dict]:
        """
        items: [{product_id, quantity, price_usd?}]

        Fills in the product name and, unless overridden, the catalogue price.
        """
        resolved = []
        for it in items:
            prod = self.repo.get_product_by_id(str(it["product_id"]))
            if not prod:
                raise NotFoundError(f"Product not found: {it['product_id']}")
            price = it.get("price_usd")
            resolved.append(
                {
                    "product_id": prod.id,
                    "product_name": prod.name,
                    "quantity": it["quantity"],
                    "price_usd": prod.price_usd if price is None else price,
                }
            )
        return resolved

    def _check_stock(self, sale: Sale) -> None:
        # the same product may appear on several lines
        qty_by_product: Counter[str] = Counter()
        for it in sale.items:
            qty_by_product[it.product_id] += it.quantity
        for product_id, qty in qty_by_product.items():
            prod = self.repo.get_product_by_id(product_id)
            if not prod:
                raise NotFoundError("Product not found.")
            if qty > prod.stock:
                raise InsufficientStockError(f"Not enough stock for {prod.sku}. Available: {prod.stock}")

    def quote(self, items: Iterable[dict], rate: Optional[float] = None) -> tuple[float, float]:
        """Cart totals (USD, VES) at ``rate`` or at the active rate."""
        items = list(items)
        if not items:
            raise EmptyCartError("Cart is empty.")
        rate = self._current_rate() if rate is None else rate
        return sale_totals(build_sale_items(self._resolve_items(items), rate))

    def create_sale(
        self,
        items: Iterable[dict],
        payment_method: str,
        payment_details: Optional[PaymentDetails] = None,
        *,
        user_id: str,
        user_name: str,
        customer_id: Optional[str] = None,
        on_credit: bool = False,
        credit_due_date: Optional[date] = None,
    ) -> Sale:
        """Compute, validate and store a sale.

        The sale, its stock movements, the receivable of a credit sale and the
        customer's loyalty points are written in one transaction.
        """
        items = list(items)
        if not items:
            raise EmptyCartError("Cart is empty.")

        customer = None
        if customer_id is not None:
            customer = self.repo.get_customer(customer_id)
            if not customer or not customer.is_active:
                raise NotFoundError("Customer not found.")
        if on_credit:
            if customer is None:
                raise ValidationError("Credit sales require a customer.")
            if (payment_method or "").lower() == PAYMENT_MIXED:
                raise ValidationError("Credit sales cannot use a mixed payment.")

        rate = self._current_rate()
        sale = compute_sale(
            self._resolve_items(items),
            payment_method,
            rate,
            payment_details,
            user_id=user_id,
            user_name=user_name,
            customer_id=customer.id if customer else None,
        )
        self._check_stock(sale)

        receivable = None
        if on_credit and customer is not None:
            self.receivables.check_credit_limit(customer, sale.total_usd, USD)
            receivable = self.receivables.build(
                ENTITY_CUSTOMER,
                customer.name,
                sale.total_usd,
                USD,
                due_date=credit_due_date,
                payment_terms=customer.payment_terms,
                description=f"Credit sale {sale.id}",
                entity_id=customer.id,
                sale_id=sale.id,
            )

        points = points_for_amount(sale.total_usd) if customer else 0

        with self.uow_factory() as uow:
            uow.add_sale(sale)
            for it in sale.items:
                uow.take_stock(it.product_id, it.quantity)
            if receivable is not None:
                uow.add_receivable(receivable)
            if customer is not None:
                uow.add_customer_points(customer.id, points)

        log.info(
            "sale_created sale_id=%s method=%s items=%s total_usd=%.2f total_ves=%.2f fx=%.4f user=%s credit=%s",
            sale.id, sale.payment_method, len(sale.items), sale.total_usd, sale.total_ves, rate, user_id, on_credit,
        )
        if receivable is not None:
            log.info("sale_on_credit sale_id=%s invoice=%s", sale.id, receivable.invoice_number)
        return sale

    def get_sale(self, sale_id: str) -> Sale:
        sale = self.repo.get_sale(sale_id)
        if not sale:
            raise NotFoundError("Sale not found.")
        return sale

    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]:
        return self.repo.list_sales_between(start_iso, end_iso)
