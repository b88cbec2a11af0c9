import pytest

from flowi.domain.errors import InvalidAmountError
from flowi.domain.loyalty import (
    accrue_points,
    derive_level,
    format_points,
    higher_level,
    points_for_amount,
    points_to_next_level,
)
from flowi.domain.models import Customer


def _customer(points=0, level="bronze"):
    return Customer(
        id="c1", name="Bodega Luz", phone="0414-1234567", sector="retail",
        credit_limit=0.0, payment_terms=30, total_points=points, customer_level=level,
    )


@pytest.mark.parametrize(
    "points,level",
    [(0, "bronze"), (999, "bronze"), (1000, "silver"), (4999, "silver"), (5000, "gold"), (10000, "platinum")],
)
def test_derive_level_thresholds(points, level):
    assert derive_level(points) == level


def test_points_are_whole_dollars():
    assert points_for_amount(20.99) == 20
    assert points_for_amount(0) == 0


def test_negative_amounts_earn_nothing():
    with pytest.raises(InvalidAmountError):
        points_for_amount(-5)


def test_accrue_crosses_tier():
    updated = accrue_points(_customer(points=990), 15.0)
    assert updated.total_points == 1005
    assert updated.customer_level == "silver"


def test_accrue_keeps_higher_stored_level():
    updated = accrue_points(_customer(points=10, level="gold"), 5.0)
    assert updated.total_points == 15
    assert updated.customer_level == "gold"


def test_higher_level_ignores_unknown_names():
    assert higher_level("vip", "silver") == "silver"


def test_points_to_next_level():
    assert points_to_next_level(900) == 100
    assert points_to_next_level(10000) is None


def test_format_points():
    assert format_points(950) == "950"
    assert format_points(1250) == "1.2K"
    assert format_points(3_400_000) == "3.4M"
