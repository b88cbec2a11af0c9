from __future__ import annotations

import sqlite3
from typing import Optional, Protocol

from flowi.domain.errors import InsufficientStockError
from flowi.domain.models import Receivable, Sale


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def add_sale(self, sale: Sale) -> None: ...
    def take_stock(self, product_id: str, qty: int) -> None: ...
    def add_receivable(self, receivable: Receivable) -> None: ...
    def add_customer_points(self, customer_id: str, points: int) -> Optional[tuple[int, str]]: ...


class SqliteUnitOfWork:
    """Groups the writes of one use case into a single SQLite transaction.

    Everything done inside the ``with`` block is committed on a clean exit
    and rolled back if any exception escapes it.
    """

    def __init__(self, repo):
        self.repo = repo
        self._conn: Optional[sqlite3.Connection] = None
        self._cur: Optional[sqlite3.Cursor] = None

    def __enter__(self) -> "SqliteUnitOfWork":
        self._conn = self.repo._conn()
        self._cur = self._conn.cursor()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._conn is not None
        try:
            if exc_type is None:
                self._conn.commit()
            else:
                self._conn.rollback()
        finally:
            self._conn.close()
            self._conn = None
            self._cur = None

    @property
    def cur(self) -> sqlite3.Cursor:
        if self._cur is None:
            raise RuntimeError("Unit of work used outside of its 'with' block.")
        return self._cur

    def add_sale(self, sale: Sale) -> None:
        self.repo._insert_sale(self.cur, sale)

    def take_stock(self, product_id: str, qty: int) -> None:
        if not self.repo._adjust_stock(self.cur, product_id, -int(qty)):
            raise InsufficientStockError(f"Not enough stock for product {product_id}.")

    def add_receivable(self, receivable: Receivable) -> None:
        self.repo._insert_receivable(self.cur, receivable)

    def add_customer_points(self, customer_id: str, points: int) -> Optional[tuple[int, str]]:
        return self.repo._add_customer_points(self.cur, customer_id, points)
