import sqlite3
from dataclasses import replace
from datetime import date
from pathlib import Path

import pytest

from conftest import make_repo
from flowi.domain.errors import DuplicateInvoiceNumberError
from flowi.domain.receivables import create_receivable
from flowi.repositories.sqlite_repo import SqliteRepository
from flowi.repositories.unit_of_work import SqliteUnitOfWork
from flowi.services.customer_service import CustomerService


def test_migrations_are_applied_once(tmp_path: Path):
    repo = make_repo(tmp_path, "m.db")
    version = repo.schema_version()
    assert version == 3

    SqliteRepository(tmp_path / "m.db").init_db()
    assert repo.schema_version() == version
    assert repo.integrity_check() == "ok"


def test_constraints_reject_invalid_rows(tmp_path: Path):
    repo = make_repo(tmp_path, "c.db")

    with pytest.raises(sqlite3.IntegrityError):
        repo.add_product("SKU-1", "bad", -1.0, 0.0, 1, 0)
    with pytest.raises(sqlite3.IntegrityError):
        repo.add_exchange_rate(0, "Manual")


def test_invoice_number_is_unique_in_store(tmp_path: Path):
    repo = make_repo(tmp_path, "r.db")
    r = create_receivable("customer", "Bodega Luz", 10.0, "USD", date(2024, 12, 15), 30, invoice_number="INV-1")
    repo.add_receivable(r)

    with pytest.raises(DuplicateInvoiceNumberError):
        repo.add_receivable(replace(r, id="other-id"))


def test_receivable_filters(tmp_path: Path):
    repo = make_repo(tmp_path, "f.db")
    for name, currency, due in (("A", "USD", date(2024, 12, 1)), ("B", "VES", date(2024, 12, 20))):
        repo.add_receivable(create_receivable("customer", name, 10.0, currency, due, 30))

    assert [r.entity_name for r in repo.list_receivables(currency="VES")] == ["B"]
    assert [r.entity_name for r in repo.list_receivables(due_to=date(2024, 12, 10))] == ["A"]
    assert len(repo.list_receivables(status="pending")) == 2


def test_stock_never_goes_negative(tmp_path: Path):
    repo = make_repo(tmp_path, "s.db")
    pid = repo.add_product("SKU-1", "Harina", 1.0, 0.5, 2, 0)

    assert not repo.adjust_product_stock(pid, -3)
    assert repo.adjust_product_stock(pid, -2)
    assert repo.get_product_by_id(pid).stock == 0


def test_unit_of_work_is_only_usable_inside_with(tmp_path: Path):
    uow = SqliteUnitOfWork(make_repo(tmp_path, "u.db"))
    with pytest.raises(RuntimeError):
        uow.take_stock("p1", 1)


def test_customer_points_are_incremented_in_place(tmp_path: Path):
    repo = make_repo(tmp_path, "p.db")
    c = CustomerService(repo).add_customer("Bodega Luz", "0414-1234567")

    assert repo.add_customer_points(c.id, 600) == (600, "bronze")
    assert repo.add_customer_points(c.id, 600) == (1200, "silver")
    assert repo.add_customer_points("missing", 10) is None
