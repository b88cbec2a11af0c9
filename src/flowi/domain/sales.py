from __future__ import annotations

import math
import re
import uuid
from datetime import datetime
from typing import Iterable, Mapping, Optional

from flowi.domain.errors import (
    EmptyCartError,
    InsufficientPaymentError,
    InvalidAmountError,
    InvalidPaymentDetailsError,
    InvalidPaymentMethodError,
    InvalidQuantityError,
    MissingPaymentDetailsError,
)
from flowi.domain.models import (
    PAYMENT_METHODS,
    PAYMENT_MIXED,
    PAYMENT_VES,
    PaymentDetails,
    Sale,
    SaleItem,
)
from flowi.domain.money import convert, convert_to_usd, round_currency, validate_rate

# Tolerance for split payments that were rounded separately in each currency.
PAYMENT_EPSILON = 0.01

_LAST_FOUR = re.compile(r"^\d{4}$")


def _quantity(value: object) -> int:
    if isinstance(value, bool):
        raise InvalidQuantityError(f"Quantity must be an integer >= 1. Received: {value!r}")
    try:
        qty = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise InvalidQuantityError(f"Quantity must be an integer >= 1. Received: {value!r}") from e
    if qty != value and not (isinstance(value, str) and str(qty) == value.strip()):
        raise InvalidQuantityError(f"Quantity must be an integer >= 1. Received: {value!r}")
    if qty <= 0:
        raise InvalidQuantityError("Quantity must be >= 1.")
    return qty


def _amount(value: object, label: str) -> float:
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise InvalidAmountError(f"{label} must be a number. Received: {value!r}") from e
    if not math.isfinite(amount) or amount < 0:
        raise InvalidAmountError(f"{label} must be >= 0.")
    return amount


def build_sale_items(items: Iterable[Mapping], rate: float) -> tuple[SaleItem, ...]:
    """
    items: [{product_id, product_name, quantity, price_usd}]

    ``price_ves`` is always derived from ``rate`` so the line keeps the
    bolivar price that was in force when the sale was rung up.
    """
    rate = validate_rate(rate)
    lines = []
    for it in items:
        qty = _quantity(it["quantity"])
        price_usd = round_currency(_amount(it["price_usd"], "Unit price"))
        lines.append(
            SaleItem(
                product_id=str(it["product_id"]),
                product_name=str(it.get("product_name") or ""),
                quantity=qty,
                price_usd=price_usd,
                price_ves=round_currency(convert(price_usd, rate)),
            )
        )
    if not lines:
        raise EmptyCartError("Cart is empty.")
    return tuple(lines)


def sale_totals(items: Iterable[SaleItem]) -> tuple[float, float]:
    total_usd = 0.0
    total_ves = 0.0
    for it in items:
        total_usd += it.price_usd * it.quantity
        total_ves += it.price_ves * it.quantity
    return round_currency(total_usd), round_currency(total_ves)


def _check_last_four(value: Optional[str]) -> Optional[str]:
    if value is None or str(value).strip() == "":
        return None
    value = str(value).strip()
    if not _LAST_FOUR.match(value):
        raise InvalidPaymentDetailsError("Last four digits must be exactly 4 digits.")
    return value


def compute_sale(
    items: Iterable[Mapping],
    payment_method: str,
    exchange_rate: float,
    payment_details: Optional[PaymentDetails] = None,
    *,
    user_id: str,
    user_name: str,
    customer_id: Optional[str] = None,
    sale_id: Optional[str] = None,
    created_at: Optional[str] = None,
) -> Sale:
    """Validate a cart and payment input and build the resulting ``Sale``.

    Nothing is persisted. Given the same cart, method, rate and details the
    payload is identical; only ``id`` and ``created_at`` are generated when
    they are not passed in.

    For ``mixed`` payments the tendered VES are converted to USD at the
    sale's rate and added to the tendered USD. A shortfall larger than
    ``PAYMENT_EPSILON`` raises ``InsufficientPaymentError``; any excess is
    returned as ``change_usd``.
    """
    method = (payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise InvalidPaymentMethodError(f"Unknown payment method: {payment_method!r}")

    rate = validate_rate(exchange_rate)
    lines = build_sale_items(items, rate)
    total_usd, total_ves = sale_totals(lines)

    paid_usd = None
    paid_ves = None
    change_usd = 0.0
    last_four = None

    if method == PAYMENT_MIXED:
        if payment_details is None or payment_details.paid_usd is None or payment_details.paid_ves is None:
            raise MissingPaymentDetailsError("Mixed payments require the USD and VES amounts paid.")
        paid_usd = round_currency(_amount(payment_details.paid_usd, "Paid USD"))
        paid_ves = round_currency(_amount(payment_details.paid_ves, "Paid VES"))
        tendered = paid_usd + convert_to_usd(paid_ves, rate)
        if tendered < total_usd - PAYMENT_EPSILON:
            raise InsufficientPaymentError(
                f"Paid {tendered:.2f} USD equivalent, total is {total_usd:.2f} USD."
            )
        change_usd = max(0.0, round_currency(tendered - total_usd))
        last_four = _check_last_four(payment_details.last_four_digits)
    elif method == PAYMENT_VES and payment_details is not None:
        last_four = _check_last_four(payment_details.last_four_digits)

    return Sale(
        id=sale_id or str(uuid.uuid4()),
        payment_method=method,
        total_usd=total_usd,
        total_ves=total_ves,
        exchange_rate=rate,
        items=lines,
        user_id=str(user_id),
        user_name=str(user_name),
        created_at=created_at or datetime.now().replace(microsecond=0).isoformat(sep=" "),
        paid_usd=paid_usd,
        paid_ves=paid_ves,
        change_usd=change_usd,
        last_four_digits=last_four,
        customer_id=customer_id,
    )


def tendered_usd(sale: Sale) -> float:
    """USD equivalent of what the customer handed over."""
    if sale.payment_method == PAYMENT_MIXED:
        return round_currency((sale.paid_usd or 0.0) + convert_to_usd(sale.paid_ves or 0.0, sale.exchange_rate))
    return sale.total_usd
