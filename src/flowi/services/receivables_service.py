from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from flowi.domain.errors import AlreadyPaidError, CreditLimitExceededError, DuplicateInvoiceNumberError, NotFoundError
from flowi.domain.models import (
    ENTITY_CUSTOMER,
    STATUS_OVERDUE,
    USD,
    AgingBucket,
    Customer,
    Receivable,
)
from flowi.domain.receivables import (
    aggregate_outstanding,
    aging_report,
    create_receivable,
    mark_paid,
    outstanding_total,
    refresh_statuses,
)
from flowi.repositories.contracts import ReceivableRepository

log = logging.getLogger("flowi.receivables")


class ReceivablesService:
    def __init__(
        self,
        repo: ReceivableRepository,
        clock: Callable[[], date] = date.today,
        default_payment_terms: int = 30,
    ):
        self.repo = repo
        self.clock = clock
        self.default_payment_terms = default_payment_terms

    def build(
        self,
        entity_type: str,
        entity_name: str,
        amount: float,
        currency: str,
        due_date: Optional[date] = None,
        payment_terms: Optional[int] = None,
        description: str = "",
        invoice_number: Optional[str] = None,
        entity_id: Optional[str] = None,
        sale_id: Optional[str] = None,
    ) -> Receivable:
        r = create_receivable(
            entity_type,
            entity_name,
            amount,
            currency,
            due_date,
            self.default_payment_terms if payment_terms is None else payment_terms,
            description,
            invoice_number=invoice_number,
            entity_id=entity_id,
            sale_id=sale_id,
            today=self.clock(),
        )
        if self.repo.get_receivable_by_invoice_number(r.invoice_number) is not None:
            raise DuplicateInvoiceNumberError(f"Invoice number already exists: {r.invoice_number}")
        return r

    def create_receivable(self, entity_type: str, entity_name: str, amount: float, currency: str, **kwargs) -> Receivable:
        r = self.build(entity_type, entity_name, amount, currency, **kwargs)
        self.repo.add_receivable(r)
        log.info(
            "receivable_created invoice=%s entity=%s amount=%.2f currency=%s due=%s",
            r.invoice_number, r.entity_name, r.amount, r.currency, r.due_date.isoformat(),
        )
        return r

    def check_credit_limit(self, customer: Customer, amount: float, currency: str) -> None:
        """Credit limits are expressed in USD and only bound USD receivables; 0 means no limit."""
        if currency != USD or customer.credit_limit <= 0:
            return
        owed = outstanding_total(
            self.repo.list_receivables(entity_type=ENTITY_CUSTOMER, entity_id=customer.id),
            USD,
        )
        if owed + float(amount) > customer.credit_limit + 0.005:
            raise CreditLimitExceededError(
                f"Credit limit exceeded for {customer.name}: owes {owed:.2f} USD, "
                f"limit {customer.credit_limit:.2f} USD, requested {float(amount):.2f} USD."
            )

    def invoice_customer(
        self,
        customer: Customer,
        amount: float,
        currency: str = USD,
        description: str = "",
        due_date: Optional[date] = None,
        invoice_number: Optional[str] = None,
        sale_id: Optional[str] = None,
    ) -> Receivable:
        self.check_credit_limit(customer, amount, currency)
        return self.create_receivable(
            ENTITY_CUSTOMER,
            customer.name,
            amount,
            currency,
            due_date=due_date,
            payment_terms=customer.payment_terms,
            description=description,
            invoice_number=invoice_number,
            entity_id=customer.id,
            sale_id=sale_id,
        )

    def get_receivable(self, receivable_id: str) -> Receivable:
        r = self.repo.get_receivable(receivable_id)
        if not r:
            raise NotFoundError("Receivable not found.")
        return r

    def list_receivables(self, as_of: Optional[date] = None, **filters) -> list[Receivable]:
        """Stored receivables with aging re-derived for ``as_of`` (default today)."""
        return refresh_statuses(self.repo.list_receivables(**filters), as_of or self.clock())

    def refresh(self, as_of: Optional[date] = None) -> int:
        """Persist overdue transitions and return how many receivables changed."""
        as_of = as_of or self.clock()
        stored = self.repo.list_receivables()
        refreshed = refresh_statuses(stored, as_of)
        changed = [new for old, new in zip(stored, refreshed) if new.status != old.status]
        saved = self.repo.save_receivable_statuses(changed) if changed else 0
        if saved:
            log.info("receivables_marked_overdue count=%s as_of=%s", saved, as_of.isoformat())
        return saved

    def mark_paid(self, receivable_id: str) -> Receivable:
        paid = mark_paid(self.get_receivable(receivable_id))
        # another writer may have settled it since it was read
        if self.repo.save_receivable_statuses([paid]) == 0:
            raise AlreadyPaidError(f"Invoice {paid.invoice_number} is already paid.")
        log.info("receivable_paid invoice=%s amount=%.2f currency=%s", paid.invoice_number, paid.amount, paid.currency)
        return paid

    def outstanding(
        self,
        entity_name: Optional[str] = None,
        currency: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> dict[str, float]:
        return aggregate_outstanding(
            self.repo.list_receivables(entity_type=entity_type),
            entity_name=entity_name,
            currency=currency,
        )

    def overdue(self, as_of: Optional[date] = None) -> list[Receivable]:
        rows = [r for r in self.list_receivables(as_of=as_of) if r.status == STATUS_OVERDUE]
        return sorted(rows, key=lambda r: (r.due_date, r.invoice_number))

    def aging(self, as_of: Optional[date] = None, entity_type: Optional[str] = None) -> list[AgingBucket]:
        return aging_report(self.repo.list_receivables(entity_type=entity_type), as_of or self.clock())

    def delete_receivable(self, receivable_id: str) -> None:
        if not self.repo.delete_receivable(receivable_id):
            raise NotFoundError("Receivable not found.")
