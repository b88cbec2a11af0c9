from __future__ import annotations

import math
import secrets
import uuid
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from flowi.domain.errors import (
    AlreadyPaidError,
    DuplicateInvoiceNumberError,
    InvalidAmountError,
    InvalidCurrencyError,
    ValidationError,
)
from flowi.domain.models import (
    CURRENCIES,
    ENTITY_TYPES,
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PENDING,
    AgingBucket,
    Receivable,
)
from flowi.domain.money import round_currency


def _now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def generate_invoice_number(prefix: str = "INV", today: Optional[date] = None) -> str:
    day = (today or date.today()).strftime("%Y%m%d")
    return f"{prefix}-{day}-{secrets.token_hex(3).upper()}"


def _normalize_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if code not in CURRENCIES:
        raise InvalidCurrencyError(f"Currency must be one of {', '.join(CURRENCIES)}. Received: {currency!r}")
    return code


def create_receivable(
    entity_type: str,
    entity_name: str,
    amount: float,
    currency: str,
    due_date: Optional[date],
    payment_terms: int,
    description: str = "",
    *,
    invoice_number: Optional[str] = None,
    entity_id: Optional[str] = None,
    sale_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Receivable:
    """Build a new ``pending`` receivable.

    When ``due_date`` is omitted it is ``today + payment_terms`` days.
    """
    entity_type = (entity_type or "").strip().lower()
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(f"Entity type must be one of {', '.join(ENTITY_TYPES)}.")
    entity_name = (entity_name or "").strip()
    if not entity_name:
        raise ValidationError("Entity name is required.")

    try:
        value = float(amount)
    except (TypeError, ValueError) as e:
        raise InvalidAmountError(f"Amount must be a number. Received: {amount!r}") from e
    if not math.isfinite(value) or value <= 0:
        raise InvalidAmountError("Amount must be > 0.")

    try:
        terms = int(payment_terms)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Payment terms must be a whole number of days. Received: {payment_terms!r}") from e
    if terms < 0:
        raise ValidationError("Payment terms must be >= 0 days.")

    issued = today or date.today()
    due = due_date if due_date is not None else issued + timedelta(days=terms)
    number = (invoice_number or "").strip() or generate_invoice_number(today=issued)

    stamp = _now_iso()
    return Receivable(
        id=str(uuid.uuid4()),
        invoice_number=number,
        entity_type=entity_type,
        entity_name=entity_name,
        amount=round_currency(value),
        currency=_normalize_currency(currency),
        due_date=due,
        status=STATUS_PENDING,
        payment_terms=terms,
        description=description or "",
        created_at=stamp,
        updated_at=stamp,
        entity_id=entity_id,
        sale_id=sale_id,
    )


def ensure_unique_invoice_number(receivables: Iterable[Receivable], invoice_number: str) -> None:
    wanted = invoice_number.strip()
    for r in receivables:
        if r.invoice_number == wanted:
            raise DuplicateInvoiceNumberError(f"Invoice number already exists: {wanted}")


def refresh_statuses(receivables: Iterable[Receivable], as_of: date) -> list[Receivable]:
    """Re-derive aging: pending receivables past their due date become overdue.

    Paid receivables are never touched and overdue ones never go back to
    pending, so running it again with the same ``as_of`` changes nothing.
    """
    stamp = datetime.combine(as_of, datetime.min.time()).isoformat(sep=" ")
    out = []
    for r in receivables:
        if r.status == STATUS_PENDING and r.due_date < as_of:
            r = replace(r, status=STATUS_OVERDUE, updated_at=stamp)
        out.append(r)
    return out


def mark_paid(receivable: Receivable, paid_at: Optional[str] = None) -> Receivable:
    if receivable.status == STATUS_PAID:
        raise AlreadyPaidError(f"Invoice {receivable.invoice_number} is already paid.")
    return replace(receivable, status=STATUS_PAID, updated_at=paid_at or _now_iso())


def _matches(r: Receivable, entity_name: Optional[str], currency: Optional[str]) -> bool:
    if not r.is_outstanding:
        return False
    if entity_name is not None and r.entity_name != entity_name:
        return False
    if currency is not None and r.currency != currency:
        return False
    return True


def aggregate_outstanding(
    receivables: Iterable[Receivable],
    entity_name: Optional[str] = None,
    currency: Optional[str] = None,
) -> dict[str, float]:
    """Outstanding (pending + overdue) amounts, one total per currency.

    USD and VES are never added together; a currency with nothing owed is
    reported as 0.0 unless a single currency was asked for.
    """
    code = _normalize_currency(currency) if currency is not None else None
    totals: dict[str, float] = {c: 0.0 for c in ((code,) if code else CURRENCIES)}
    for r in receivables:
        if _matches(r, entity_name, code):
            totals[r.currency] = totals.get(r.currency, 0.0) + r.amount
    return {c: round_currency(v) for c, v in totals.items()}


def outstanding_total(
    receivables: Iterable[Receivable],
    currency: str,
    entity_name: Optional[str] = None,
) -> float:
    code = _normalize_currency(currency)
    return aggregate_outstanding(receivables, entity_name=entity_name, currency=code)[code]


def days_overdue(receivable: Receivable, as_of: date) -> int:
    return max(0, (as_of - receivable.due_date).days)


def aging_report(receivables: Iterable[Receivable], as_of: date) -> list[AgingBucket]:
    """Outstanding amounts per entity and currency, split by days past due."""
    grouped: dict[tuple[str, str], list[float]] = defaultdict(lambda: [0.0] * 5)
    for r in receivables:
        if not r.is_outstanding:
            continue
        days = days_overdue(r, as_of)
        if days == 0:
            idx = 0
        elif days <= 30:
            idx = 1
        elif days <= 60:
            idx = 2
        elif days <= 90:
            idx = 3
        else:
            idx = 4
        grouped[(r.entity_name, r.currency)][idx] += r.amount

    rows = [
        AgingBucket(
            entity_name=name,
            currency=cur,
            current=round_currency(b[0]),
            days_30=round_currency(b[1]),
            days_60=round_currency(b[2]),
            days_90=round_currency(b[3]),
            over_90=round_currency(b[4]),
            total=round_currency(sum(b)),
        )
        for (name, cur), b in grouped.items()
    ]
    rows.sort(key=lambda row: (row.currency, -row.total, row.entity_name))
    return rows
