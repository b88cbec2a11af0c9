from datetime import date
from pathlib import Path

import pytest

from conftest import FixedFxService, make_repo
from flowi.domain.errors import (
    CreditLimitExceededError,
    EmptyCartError,
    FxUnavailableError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from flowi.domain.models import PaymentDetails
from flowi.repositories.unit_of_work import SqliteUnitOfWork
from flowi.services.customer_service import CustomerService
from flowi.services.inventory_service import InventoryService
from flowi.services.receivables_service import ReceivablesService
from flowi.services.sales_service import SalesService

TODAY = date(2024, 12, 1)
SELLER = {"user_id": "u1", "user_name": "Caja 1"}


class UnavailableFxService:
    def get_today_rate(self):
        raise FxUnavailableError("upstream unavailable")


class InvalidFxService:
    def get_today_rate(self):
        return "invalid-number"


def _setup(tmp_path: Path, fx=None, stock: int = 10):
    repo = make_repo(tmp_path, "sales.db")
    pid = InventoryService(repo).add_product("SKU-1", "Harina PAN", 10.0, 6.0, stock, 1)
    receivables = ReceivablesService(repo, clock=lambda: TODAY)
    sales = SalesService(repo, fx or FixedFxService(36.5), receivables)
    return repo, pid, sales, receivables


def test_usd_sale_is_stored_and_stock_taken(tmp_path: Path):
    repo, pid, sales, _ = _setup(tmp_path)

    sale = sales.create_sale([{"product_id": pid, "quantity": 2}], "usd", **SELLER)

    assert (sale.total_usd, sale.total_ves) == (20.0, 730.0)
    stored = sales.get_sale(sale.id)
    assert stored == sale
    product = repo.get_product_by_id(pid)
    assert product is not None and product.stock == 8


def test_mixed_sale_round_trips_payment_details(tmp_path: Path):
    _, pid, sales, _ = _setup(tmp_path)

    sale = sales.create_sale(
        [{"product_id": pid, "quantity": 2}],
        "mixed",
        PaymentDetails(paid_usd=5.0, paid_ves=547.5, last_four_digits="9876"),
        **SELLER,
    )

    stored = sales.get_sale(sale.id)
    assert stored.paid_usd == 5.0
    assert stored.paid_ves == 547.5
    assert stored.change_usd == 0.0
    assert stored.last_four_digits == "9876"


def test_price_override_is_used(tmp_path: Path):
    _, pid, sales, _ = _setup(tmp_path)
    assert sales.quote([{"product_id": pid, "quantity": 1, "price_usd": 8.0}]) == (8.0, 292.0)


def test_insufficient_stock_leaves_everything_untouched(tmp_path: Path):
    repo, pid, sales, _ = _setup(tmp_path, stock=1)

    with pytest.raises(InsufficientStockError):
        sales.create_sale([{"product_id": pid, "quantity": 1}, {"product_id": pid, "quantity": 1}], "usd", **SELLER)

    assert repo.get_product_by_id(pid).stock == 1
    assert sales.list_sales_between("2000-01-01", "2100-01-01") == []


def test_empty_cart_and_unknown_product(tmp_path: Path):
    _, _, sales, _ = _setup(tmp_path)
    with pytest.raises(EmptyCartError):
        sales.create_sale([], "usd", **SELLER)
    with pytest.raises(NotFoundError):
        sales.create_sale([{"product_id": "missing", "quantity": 1}], "usd", **SELLER)


def test_fx_unavailable_propagates(tmp_path: Path):
    _, pid, sales, _ = _setup(tmp_path, fx=UnavailableFxService())
    with pytest.raises(FxUnavailableError, match="upstream unavailable"):
        sales.create_sale([{"product_id": pid, "quantity": 1}], "usd", **SELLER)


def test_non_numeric_rate_is_reported_as_unavailable(tmp_path: Path):
    _, pid, sales, _ = _setup(tmp_path, fx=InvalidFxService())
    with pytest.raises(FxUnavailableError):
        sales.create_sale([{"product_id": pid, "quantity": 1}], "usd", **SELLER)


def test_customer_sale_accrues_points(tmp_path: Path):
    repo, pid, sales, _ = _setup(tmp_path)
    customer = CustomerService(repo).add_customer("Bodega Luz", "0414-1234567")

    sales.create_sale([{"product_id": pid, "quantity": 2}], "usd", customer_id=customer.id, **SELLER)

    updated = repo.get_customer(customer.id)
    assert updated.total_points == 20
    assert updated.customer_level == "bronze"


def test_credit_sale_creates_receivable(tmp_path: Path):
    repo, pid, sales, receivables = _setup(tmp_path)
    customer = CustomerService(repo).add_customer("Bodega Luz", "0414-1234567", payment_terms=15)

    sale = sales.create_sale(
        [{"product_id": pid, "quantity": 3}], "usd", customer_id=customer.id, on_credit=True, **SELLER
    )

    [r] = receivables.list_receivables(as_of=TODAY)
    assert r.sale_id == sale.id
    assert r.entity_id == customer.id
    assert (r.amount, r.currency, r.status) == (30.0, "USD", "pending")
    assert r.due_date == date(2024, 12, 16)
    assert receivables.outstanding() == {"USD": 30.0, "VES": 0.0}


def test_credit_sale_needs_customer_and_single_currency(tmp_path: Path):
    repo, pid, sales, _ = _setup(tmp_path)
    customer = CustomerService(repo).add_customer("Bodega Luz", "0414-1234567")

    with pytest.raises(ValidationError):
        sales.create_sale([{"product_id": pid, "quantity": 1}], "usd", on_credit=True, **SELLER)
    with pytest.raises(ValidationError):
        sales.create_sale(
            [{"product_id": pid, "quantity": 1}],
            "mixed",
            PaymentDetails(paid_usd=0, paid_ves=0),
            customer_id=customer.id,
            on_credit=True,
            **SELLER,
        )


def test_credit_limit_blocks_sale(tmp_path: Path):
    repo, pid, sales, _ = _setup(tmp_path)
    customer = CustomerService(repo).add_customer("Bodega Luz", "0414-1234567", credit_limit=25.0)

    sales.create_sale([{"product_id": pid, "quantity": 2}], "usd", customer_id=customer.id, on_credit=True, **SELLER)
    with pytest.raises(CreditLimitExceededError):
        sales.create_sale(
            [{"product_id": pid, "quantity": 1}], "usd", customer_id=customer.id, on_credit=True, **SELLER
        )
    assert repo.get_product_by_id(pid).stock == 8


class FailingPointsUnitOfWork(SqliteUnitOfWork):
    def add_customer_points(self, customer_id, points):
        raise RuntimeError("disk full")


def test_failure_inside_transaction_rolls_back_sale_stock_and_receivable(tmp_path: Path):
    repo, pid, _, receivables = _setup(tmp_path)
    customer = CustomerService(repo).add_customer("Bodega Luz", "0414-1234567")
    sales = SalesService(repo, FixedFxService(), receivables, uow_factory=lambda: FailingPointsUnitOfWork(repo))

    with pytest.raises(RuntimeError, match="disk full"):
        sales.create_sale(
            [{"product_id": pid, "quantity": 2}], "usd", customer_id=customer.id, on_credit=True, **SELLER
        )

    assert repo.get_product_by_id(pid).stock == 10
    assert repo.list_receivables() == []
    assert sales.list_sales_between("2000-01-01", "2100-01-01") == []
    assert repo.get_customer(customer.id).total_points == 0


class SaleLandsFirstUnitOfWork(SqliteUnitOfWork):
    """Another till credits the same customer between our read and our write."""

    def __init__(self, repo, customer_id: str, points: int):
        super().__init__(repo)
        self.customer_id = customer_id
        self.points = points

    def __enter__(self):
        self.repo.add_customer_points(self.customer_id, self.points)
        return super().__enter__()


def test_concurrent_sales_for_one_customer_keep_both_accruals(tmp_path: Path):
    repo, pid, _, receivables = _setup(tmp_path)
    customer = CustomerService(repo).add_customer("Bodega Luz", "0414-1234567")
    sales = SalesService(
        repo,
        FixedFxService(),
        receivables,
        uow_factory=lambda: SaleLandsFirstUnitOfWork(repo, customer.id, 985),
    )

    sales.create_sale([{"product_id": pid, "quantity": 2}], "usd", customer_id=customer.id, **SELLER)

    stored = repo.get_customer(customer.id)
    assert stored.total_points == 1005
    assert stored.customer_level == "silver"
