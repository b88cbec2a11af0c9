from __future__ import annotations

import math
from dataclasses import replace
from typing import Optional

from flowi.domain.errors import InvalidAmountError
from flowi.domain.models import Customer

# (level, min points), ascending
LEVELS = (
    ("bronze", 0),
    ("silver", 1000),
    ("gold", 5000),
    ("platinum", 10000),
)
LEVEL_NAMES = tuple(name for name, _ in LEVELS)


def derive_level(total_points: int) -> str:
    level = LEVELS[0][0]
    for name, min_points in LEVELS:
        if total_points >= min_points:
            level = name
    return level


def _rank(level: Optional[str]) -> int:
    try:
        return LEVEL_NAMES.index((level or "").lower())
    except ValueError:
        return 0


def higher_level(a: Optional[str], b: Optional[str]) -> str:
    return LEVEL_NAMES[max(_rank(a), _rank(b))]


def points_for_amount(sale_amount_usd: float) -> int:
    """One point per whole dollar."""
    try:
        amount = float(sale_amount_usd)
    except (TypeError, ValueError) as e:
        raise InvalidAmountError(f"Sale amount must be a number. Received: {sale_amount_usd!r}") from e
    if not math.isfinite(amount) or amount < 0:
        raise InvalidAmountError("Sale amount must be >= 0.")
    return int(math.floor(amount))


def accrue_points(customer: Customer, sale_amount_usd: float) -> Customer:
    total = int(customer.total_points or 0) + points_for_amount(sale_amount_usd)
    # a level granted by hand is kept even if the points alone would not reach it
    level = higher_level(customer.customer_level, derive_level(total))
    return replace(customer, total_points=total, customer_level=level)


def points_to_next_level(total_points: int) -> Optional[int]:
    for _name, min_points in LEVELS:
        if total_points < min_points:
            return min_points - total_points
    return None


def format_points(points: int) -> str:
    if points >= 1_000_000:
        return f"{points / 1_000_000:.1f}M"
    if points >= 1_000:
        return f"{points / 1_000:.1f}K"
    return str(points)
