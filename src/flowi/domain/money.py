from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from flowi.domain.errors import InvalidRateError

_CENT = Decimal("0.01")


def round_currency(amount: float) -> float:
    """Round half-up to 2 decimals.

    Goes through ``str`` so that binary float noise (``2.675`` stored as
    ``2.67499...``) does not decide the rounding direction.
    """
    return float(Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP))


def validate_rate(value: object) -> float:
    try:
        rate = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise InvalidRateError(f"Exchange rate must be a number. Received: {value!r}") from e
    if not math.isfinite(rate) or rate <= 0:
        raise InvalidRateError(f"Exchange rate must be > 0. Received: {value!r}")
    return rate


def convert(amount_usd: float, rate: float) -> float:
    """USD -> VES at ``rate`` bolivars per dollar."""
    return float(amount_usd) * validate_rate(rate)


def convert_to_usd(amount_ves: float, rate: float) -> float:
    return float(amount_ves) / validate_rate(rate)


def _grouped(amount: float) -> str:
    try:
        value = Decimal(str(round_currency(amount)))
    except InvalidOperation as e:
        raise ValueError(f"Not a currency amount: {amount!r}") from e
    return f"{value:,.2f}"


def format_usd(amount: float) -> str:
    text = _grouped(amount)
    if text.startswith("-"):
        return f"-${text[1:]}"
    return f"${text}"


def format_ves(amount: float) -> str:
    # es-VE: "." groups thousands and "," separates decimals
    text = _grouped(amount).replace(",", "_").replace(".", ",").replace("_", ".")
    return f"Bs. {text}"
