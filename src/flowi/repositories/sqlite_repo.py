from __future__ import annotations

import sqlite3
import shutil
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from flowi.domain.errors import DuplicateInvoiceNumberError
from flowi.domain.loyalty import derive_level, higher_level
from flowi.domain.models import (
    BankAccount,
    BankTransaction,
    Customer,
    ExchangeRate,
    Product,
    Receivable,
    Sale,
    SaleItem,
    Supplier,
)


def _now() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def _new_id() -> str:
    return str(uuid.uuid4())


class SqliteRepository:
    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_banking),
                (3, self._migration_v3_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def schema_version(self) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
        version = int(cur.fetchone()[0])
        conn.close()
        return version

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            sku TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            price_usd REAL NOT NULL CHECK(price_usd >= 0),
            cost_usd REAL NOT NULL DEFAULT 0 CHECK(cost_usd >= 0),
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
            min_stock INTEGER NOT NULL DEFAULT 0 CHECK(min_stock >= 0),
            active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0,1))
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS customers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            phone TEXT NOT NULL,
            sector TEXT NOT NULL DEFAULT '',
            credit_limit REAL NOT NULL DEFAULT 0 CHECK(credit_limit >= 0),
            payment_terms INTEGER NOT NULL DEFAULT 30 CHECK(payment_terms >= 0),
            marketing_source TEXT,
            referral_code TEXT,
            total_points INTEGER NOT NULL DEFAULT 0 CHECK(total_points >= 0),
            customer_level TEXT NOT NULL DEFAULT 'bronze',
            is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0,1)),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS suppliers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            phone TEXT,
            address TEXT,
            payment_terms INTEGER NOT NULL DEFAULT 30 CHECK(payment_terms >= 0),
            tax_id TEXT,
            bank_name TEXT,
            bank_account TEXT,
            is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0,1)),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id TEXT PRIMARY KEY,
            payment_method TEXT NOT NULL CHECK(payment_method IN ('usd','ves','mixed')),
            total_usd REAL NOT NULL CHECK(total_usd >= 0),
            total_ves REAL NOT NULL CHECK(total_ves >= 0),
            exchange_rate REAL NOT NULL CHECK(exchange_rate > 0),
            paid_usd REAL,
            paid_ves REAL,
            change_usd REAL NOT NULL DEFAULT 0,
            last_four_digits TEXT,
            user_id TEXT NOT NULL,
            user_name TEXT NOT NULL,
            customer_id TEXT,
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id TEXT NOT NULL,
            product_id TEXT NOT NULL,
            product_name TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            price_usd REAL NOT NULL CHECK(price_usd >= 0),
            price_ves REAL NOT NULL CHECK(price_ves >= 0),
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE
        )
        """
        )

        # entity_id is a weak reference: no foreign key, no cascade
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS receivables (
            id TEXT PRIMARY KEY,
            invoice_number TEXT NOT NULL UNIQUE,
            entity_type TEXT NOT NULL CHECK(entity_type IN ('customer','supplier')),
            entity_name TEXT NOT NULL,
            entity_id TEXT,
            amount REAL NOT NULL CHECK(amount > 0),
            currency TEXT NOT NULL CHECK(currency IN ('USD','VES')),
            due_date TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('pending','overdue','paid')),
            payment_terms INTEGER NOT NULL DEFAULT 0,
            description TEXT NOT NULL DEFAULT '',
            sale_id TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS exchange_rates (
            id TEXT PRIMARY KEY,
            usd_to_ves REAL NOT NULL CHECK(usd_to_ves > 0),
            source TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 0 CHECK(is_active IN (0,1)),
            created_at TEXT NOT NULL
        )
        """
        )

    def _migration_v2_banking(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS bank_accounts (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                account_number TEXT NOT NULL,
                account_type TEXT NOT NULL CHECK(account_type IN ('pago_movil','zelle','transferencia')),
                currency TEXT NOT NULL CHECK(currency IN ('USD','VES')),
                balance REAL NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0,1)),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS bank_transactions (
                id TEXT PRIMARY KEY,
                account_id TEXT NOT NULL,
                sale_id TEXT,
                type TEXT NOT NULL CHECK(type IN ('income','expense')),
                amount REAL NOT NULL CHECK(amount > 0),
                currency TEXT NOT NULL CHECK(currency IN ('USD','VES')),
                reference TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                payment_method TEXT NOT NULL CHECK(payment_method IN ('pago_movil','zelle','transferencia','efectivo')),
                created_at TEXT NOT NULL,
                FOREIGN KEY(account_id) REFERENCES bank_accounts(id)
            )
            """
        )

    def _migration_v3_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_created_at ON sales(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_receivables_status_due ON receivables(status, due_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_exchange_rates_active ON exchange_rates(is_active, created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_bank_tx_account ON bank_transactions(account_id, created_at)")

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- Products ----------
    _PRODUCT_COLS = "id, sku, name, price_usd, cost_usd, stock, min_stock, active"

    @staticmethod
    def _product(r) -> Product:
        return Product(
            id=str(r[0]),
            sku=str(r[1]),
            name=str(r[2]),
            price_usd=float(r[3]),
            cost_usd=float(r[4]),
            stock=int(r[5]),
            min_stock=int(r[6]),
            active=bool(r[7]),
        )

    def add_product(self, sku: str, name: str, price_usd: float, cost_usd: float, stock: int, min_stock: int) -> str:
        pid = _new_id()
        with self.transaction() as cur:
            cur.execute(
                """
                INSERT INTO products (id, sku, name, price_usd, cost_usd, stock, min_stock)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (pid, sku, name, float(price_usd), float(cost_usd), int(stock), int(min_stock)),
            )
        return pid

    def list_products(self, include_inactive: bool = False) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        where = "" if include_inactive else "WHERE active=1"
        cur.execute(f"SELECT {self._PRODUCT_COLS} FROM products {where} ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [self._product(r) for r in rows]

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._PRODUCT_COLS} FROM products WHERE id=? AND active=1", (str(product_id),))
        row = cur.fetchone()
        conn.close()
        return self._product(row) if row else None

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._PRODUCT_COLS} FROM products WHERE sku=? AND active=1", (sku,))
        row = cur.fetchone()
        conn.close()
        return self._product(row) if row else None

    def update_product_price(self, product_id: str, price_usd: float, min_stock: int) -> bool:
        with self.transaction() as cur:
            cur.execute(
                "UPDATE products SET price_usd=?, min_stock=? WHERE id=? AND active=1",
                (float(price_usd), int(min_stock), str(product_id)),
            )
            return cur.rowcount > 0

    def adjust_product_stock(self, product_id: str, delta: int) -> bool:
        with self.transaction() as cur:
            return self._adjust_stock(cur, product_id, delta)

    def _adjust_stock(self, cur: sqlite3.Cursor, product_id: str, delta: int) -> bool:
        cur.execute(
            "UPDATE products SET stock = stock + ? WHERE id=? AND active=1 AND stock + ? >= 0",
            (int(delta), str(product_id), int(delta)),
        )
        return cur.rowcount > 0

    def deactivate_product(self, product_id: str) -> bool:
        with self.transaction() as cur:
            cur.execute("UPDATE products SET active=0 WHERE id=? AND active=1", (str(product_id),))
            return cur.rowcount > 0

    # ---------- Customers ----------
    _CUSTOMER_COLS = (
        "id, name, phone, sector, credit_limit, payment_terms, total_points, customer_level, "
        "email, marketing_source, referral_code, is_active, created_at, updated_at"
    )

    @staticmethod
    def _customer(r) -> Customer:
        return Customer(
            id=str(r[0]),
            name=str(r[1]),
            phone=str(r[2]),
            sector=str(r[3]),
            credit_limit=float(r[4]),
            payment_terms=int(r[5]),
            total_points=int(r[6]),
            customer_level=str(r[7]),
            email=r[8],
            marketing_source=r[9],
            referral_code=r[10],
            is_active=bool(r[11]),
            created_at=str(r[12]),
            updated_at=str(r[13]),
        )

    def add_customer(self, c: Customer) -> Customer:
        stamp = _now()
        c_id = c.id or _new_id()
        with self.transaction() as cur:
            cur.execute(
                f"""
                INSERT INTO customers ({self._CUSTOMER_COLS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    c_id, c.name, c.phone, c.sector, float(c.credit_limit), int(c.payment_terms),
                    int(c.total_points), c.customer_level, c.email, c.marketing_source,
                    c.referral_code, int(c.is_active), stamp, stamp,
                ),
            )
        found = self.get_customer(c_id)
        assert found is not None
        return found

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._CUSTOMER_COLS} FROM customers WHERE id=?", (str(customer_id),))
        row = cur.fetchone()
        conn.close()
        return self._customer(row) if row else None

    def list_customers(self, include_inactive: bool = False) -> list[Customer]:
        conn = self._conn()
        cur = conn.cursor()
        where = "" if include_inactive else "WHERE is_active=1"
        cur.execute(f"SELECT {self._CUSTOMER_COLS} FROM customers {where} ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [self._customer(r) for r in rows]

    def update_customer(self, c: Customer) -> bool:
        with self.transaction() as cur:
            cur.execute(
                """
                UPDATE customers
                SET name=?, phone=?, sector=?, credit_limit=?, payment_terms=?, email=?,
                    marketing_source=?, referral_code=?, is_active=?, updated_at=?
                WHERE id=?
                """,
                (
                    c.name, c.phone, c.sector, float(c.credit_limit), int(c.payment_terms), c.email,
                    c.marketing_source, c.referral_code, int(c.is_active), _now(), c.id,
                ),
            )
            return cur.rowcount > 0

    def add_customer_points(self, customer_id: str, points: int) -> Optional[tuple[int, str]]:
        with self.transaction() as cur:
            return self._add_customer_points(cur, customer_id, points)

    def _add_customer_points(self, cur: sqlite3.Cursor, customer_id: str, points: int) -> Optional[tuple[int, str]]:
        """Increment points in place and raise the level if the new total reaches one.

        Returns the stored ``(total_points, customer_level)`` or ``None`` when
        the customer does not exist.
        """
        cur.execute(
            "UPDATE customers SET total_points = total_points + ?, updated_at=? WHERE id=?",
            (int(points), _now(), str(customer_id)),
        )
        if cur.rowcount == 0:
            return None
        cur.execute("SELECT total_points, customer_level FROM customers WHERE id=?", (str(customer_id),))
        total, stored = cur.fetchone()
        level = higher_level(stored, derive_level(int(total)))
        if level != stored:
            cur.execute("UPDATE customers SET customer_level=? WHERE id=?", (level, str(customer_id)))
        return int(total), level

    # ---------- Suppliers ----------
    _SUPPLIER_COLS = (
        "id, name, payment_terms, email, phone, address, tax_id, bank_name, bank_account, "
        "is_active, created_at, updated_at"
    )

    @staticmethod
    def _supplier(r) -> Supplier:
        return Supplier(
            id=str(r[0]),
            name=str(r[1]),
            payment_terms=int(r[2]),
            email=r[3],
            phone=r[4],
            address=r[5],
            tax_id=r[6],
            bank_name=r[7],
            bank_account=r[8],
            is_active=bool(r[9]),
            created_at=str(r[10]),
            updated_at=str(r[11]),
        )

    def add_supplier(self, s: Supplier) -> Supplier:
        stamp = _now()
        s_id = s.id or _new_id()
        with self.transaction() as cur:
            cur.execute(
                f"""
                INSERT INTO suppliers ({self._SUPPLIER_COLS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    s_id, s.name, int(s.payment_terms), s.email, s.phone, s.address, s.tax_id,
                    s.bank_name, s.bank_account, int(s.is_active), stamp, stamp,
                ),
            )
        found = self.get_supplier(s_id)
        assert found is not None
        return found

    def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._SUPPLIER_COLS} FROM suppliers WHERE id=?", (str(supplier_id),))
        row = cur.fetchone()
        conn.close()
        return self._supplier(row) if row else None

    def list_suppliers(self, include_inactive: bool = False) -> list[Supplier]:
        conn = self._conn()
        cur = conn.cursor()
        where = "" if include_inactive else "WHERE is_active=1"
        cur.execute(f"SELECT {self._SUPPLIER_COLS} FROM suppliers {where} ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [self._supplier(r) for r in rows]

    def update_supplier(self, s: Supplier) -> bool:
        with self.transaction() as cur:
            cur.execute(
                """
                UPDATE suppliers
                SET name=?, payment_terms=?, email=?, phone=?, address=?, tax_id=?,
                    bank_name=?, bank_account=?, is_active=?, updated_at=?
                WHERE id=?
                """,
                (
                    s.name, int(s.payment_terms), s.email, s.phone, s.address, s.tax_id,
                    s.bank_name, s.bank_account, int(s.is_active), _now(), s.id,
                ),
            )
            return cur.rowcount > 0

    # ---------- Exchange rates ----------
    _RATE_COLS = "id, usd_to_ves, source, is_active, created_at"

    @staticmethod
    def _rate(r) -> ExchangeRate:
        return ExchangeRate(
            id=str(r[0]),
            usd_to_ves=float(r[1]),
            source=str(r[2]),
            is_active=bool(r[3]),
            created_at=str(r[4]),
        )

    def add_exchange_rate(self, usd_to_ves: float, source: str, created_at: Optional[str] = None) -> ExchangeRate:
        """Store a new rate and make it the only active one. Older rows stay as history."""
        rate = ExchangeRate(
            id=_new_id(),
            usd_to_ves=float(usd_to_ves),
            source=source,
            is_active=True,
            created_at=created_at or _now(),
        )
        with self.transaction() as cur:
            cur.execute("UPDATE exchange_rates SET is_active=0 WHERE is_active=1")
            cur.execute(
                f"INSERT INTO exchange_rates ({self._RATE_COLS}) VALUES (?, ?, ?, 1, ?)",
                (rate.id, rate.usd_to_ves, rate.source, rate.created_at),
            )
        return rate

    def get_active_exchange_rate(self) -> Optional[ExchangeRate]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {self._RATE_COLS} FROM exchange_rates WHERE is_active=1 ORDER BY created_at DESC LIMIT 1"
        )
        row = cur.fetchone()
        conn.close()
        return self._rate(row) if row else None

    def list_exchange_rates(self, limit: int = 50) -> list[ExchangeRate]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {self._RATE_COLS} FROM exchange_rates ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (int(limit),),
        )
        rows = cur.fetchall()
        conn.close()
        return [self._rate(r) for r in rows]

    # ---------- Sales ----------
    _SALE_COLS = (
        "id, payment_method, total_usd, total_ves, exchange_rate, paid_usd, paid_ves, change_usd, "
        "last_four_digits, user_id, user_name, customer_id, created_at"
    )

    def add_sale(self, sale: Sale) -> str:
        with self.transaction() as cur:
            self._insert_sale(cur, sale)
        return sale.id

    def _insert_sale(self, cur: sqlite3.Cursor, sale: Sale) -> None:
        cur.execute(
            f"""
            INSERT INTO sales ({self._SALE_COLS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sale.id, sale.payment_method, sale.total_usd, sale.total_ves, sale.exchange_rate,
                sale.paid_usd, sale.paid_ves, sale.change_usd, sale.last_four_digits,
                sale.user_id, sale.user_name, sale.customer_id, sale.created_at,
            ),
        )
        for it in sale.items:
            cur.execute(
                """
                INSERT INTO sale_items (sale_id, product_id, product_name, quantity, price_usd, price_ves)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (sale.id, it.product_id, it.product_name, it.quantity, it.price_usd, it.price_ves),
            )

    def _sale_items(self, cur: sqlite3.Cursor, sale_id: str) -> tuple[SaleItem, ...]:
        cur.execute(
            """
            SELECT product_id, product_name, quantity, price_usd, price_ves
            FROM sale_items WHERE sale_id=? ORDER BY id
            """,
            (sale_id,),
        )
        return tuple(
            SaleItem(
                product_id=str(r[0]),
                product_name=str(r[1]),
                quantity=int(r[2]),
                price_usd=float(r[3]),
                price_ves=float(r[4]),
            )
            for r in cur.fetchall()
        )

    def _sale(self, cur: sqlite3.Cursor, r) -> Sale:
        return Sale(
            id=str(r[0]),
            payment_method=str(r[1]),
            total_usd=float(r[2]),
            total_ves=float(r[3]),
            exchange_rate=float(r[4]),
            paid_usd=(float(r[5]) if r[5] is not None else None),
            paid_ves=(float(r[6]) if r[6] is not None else None),
            change_usd=float(r[7]),
            last_four_digits=r[8],
            user_id=str(r[9]),
            user_name=str(r[10]),
            customer_id=r[11],
            created_at=str(r[12]),
            items=self._sale_items(cur, str(r[0])),
        )

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._SALE_COLS} FROM sales WHERE id=?", (str(sale_id),))
        row = cur.fetchone()
        sale = self._sale(cur, row) if row else None
        conn.close()
        return sale

    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {self._SALE_COLS}
            FROM sales
            WHERE created_at >= ? AND created_at < ?
            ORDER BY created_at DESC
            """,
            (start_iso, end_iso),
        )
        rows = cur.fetchall()
        sales = [self._sale(cur, r) for r in rows]
        conn.close()
        return sales

    def monthly_sales_totals(self, months: int = 6) -> list[tuple[str, float, float]]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT substr(created_at,1,7) AS ym, COALESCE(SUM(total_usd),0), COALESCE(SUM(total_ves),0)
            FROM sales
            GROUP BY ym
            ORDER BY ym DESC
            LIMIT ?
            """,
            (int(months),),
        )
        rows = list(reversed(cur.fetchall()))
        conn.close()
        return [(str(r[0]), float(r[1]), float(r[2])) for r in rows]

    def top_products(self, limit: int = 5) -> list[tuple[str, str, int, float]]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT product_id, MAX(product_name), SUM(quantity), SUM(quantity * price_usd) AS revenue
            FROM sale_items
            GROUP BY product_id
            ORDER BY revenue DESC
            LIMIT ?
            """,
            (int(limit),),
        )
        rows = cur.fetchall()
        conn.close()
        return [(str(r[0]), str(r[1]), int(r[2]), float(r[3])) for r in rows]

    # ---------- Receivables ----------
    _RECEIVABLE_COLS = (
        "id, invoice_number, entity_type, entity_name, amount, currency, due_date, status, "
        "payment_terms, description, created_at, updated_at, entity_id, sale_id"
    )

    @staticmethod
    def _receivable(r) -> Receivable:
        return Receivable(
            id=str(r[0]),
            invoice_number=str(r[1]),
            entity_type=str(r[2]),
            entity_name=str(r[3]),
            amount=float(r[4]),
            currency=str(r[5]),
            due_date=date.fromisoformat(str(r[6])),
            status=str(r[7]),
            payment_terms=int(r[8]),
            description=str(r[9]),
            created_at=str(r[10]),
            updated_at=str(r[11]),
            entity_id=r[12],
            sale_id=r[13],
        )

    def add_receivable(self, r: Receivable) -> str:
        with self.transaction() as cur:
            self._insert_receivable(cur, r)
        return r.id

    def _insert_receivable(self, cur: sqlite3.Cursor, r: Receivable) -> None:
        try:
            cur.execute(
                f"""
                INSERT INTO receivables ({self._RECEIVABLE_COLS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    r.id, r.invoice_number, r.entity_type, r.entity_name, r.amount, r.currency,
                    r.due_date.isoformat(), r.status, r.payment_terms, r.description,
                    r.created_at, r.updated_at, r.entity_id, r.sale_id,
                ),
            )
        except sqlite3.IntegrityError as e:
            if "invoice_number" in str(e):
                raise DuplicateInvoiceNumberError(f"Invoice number already exists: {r.invoice_number}") from e
            raise

    def get_receivable(self, receivable_id: str) -> Optional[Receivable]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._RECEIVABLE_COLS} FROM receivables WHERE id=?", (str(receivable_id),))
        row = cur.fetchone()
        conn.close()
        return self._receivable(row) if row else None

    def get_receivable_by_invoice_number(self, invoice_number: str) -> Optional[Receivable]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._RECEIVABLE_COLS} FROM receivables WHERE invoice_number=?", (invoice_number,))
        row = cur.fetchone()
        conn.close()
        return self._receivable(row) if row else None

    def list_receivables(
        self,
        entity_type: Optional[str] = None,
        status: Optional[str] = None,
        currency: Optional[str] = None,
        entity_id: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
    ) -> list[Receivable]:
        clauses = []
        params: list = []
        for column, value in (("entity_type", entity_type), ("status", status), ("currency", currency), ("entity_id", entity_id)):
            if value is not None:
                clauses.append(f"{column}=?")
                params.append(value)
        if due_from is not None:
            clauses.append("due_date>=?")
            params.append(due_from.isoformat())
        if due_to is not None:
            clauses.append("due_date<=?")
            params.append(due_to.isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {self._RECEIVABLE_COLS} FROM receivables {where} ORDER BY created_at DESC, invoice_number",
            params,
        )
        rows = cur.fetchall()
        conn.close()
        return [self._receivable(r) for r in rows]

    def save_receivable_statuses(self, receivables: Iterable[Receivable]) -> int:
        """Persist status/updated_at for each receivable in a single transaction.

        Rows already ``paid`` are never rewritten; the return value counts only
        the rows that actually changed.
        """
        changed = 0
        with self.transaction() as cur:
            for r in receivables:
                cur.execute(
                    "UPDATE receivables SET status=?, updated_at=? WHERE id=? AND status<>? AND status<>'paid'",
                    (r.status, r.updated_at, r.id, r.status),
                )
                changed += cur.rowcount
        return changed

    def delete_receivable(self, receivable_id: str) -> bool:
        with self.transaction() as cur:
            cur.execute("DELETE FROM receivables WHERE id=?", (str(receivable_id),))
            return cur.rowcount > 0

    # ---------- Banking ----------
    _ACCOUNT_COLS = "id, name, account_number, account_type, currency, balance, is_active, created_at, updated_at"
    _TX_COLS = "id, account_id, type, amount, currency, reference, description, payment_method, created_at, sale_id"

    @staticmethod
    def _account(r) -> BankAccount:
        return BankAccount(
            id=str(r[0]),
            name=str(r[1]),
            account_number=str(r[2]),
            account_type=str(r[3]),
            currency=str(r[4]),
            balance=float(r[5]),
            is_active=bool(r[6]),
            created_at=str(r[7]),
            updated_at=str(r[8]),
        )

    @staticmethod
    def _transaction(r) -> BankTransaction:
        return BankTransaction(
            id=str(r[0]),
            account_id=str(r[1]),
            type=str(r[2]),
            amount=float(r[3]),
            currency=str(r[4]),
            reference=str(r[5]),
            description=str(r[6]),
            payment_method=str(r[7]),
            created_at=str(r[8]),
            sale_id=r[9],
        )

    def add_bank_account(self, a: BankAccount) -> BankAccount:
        stamp = _now()
        a_id = a.id or _new_id()
        with self.transaction() as cur:
            cur.execute(
                f"INSERT INTO bank_accounts ({self._ACCOUNT_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (a_id, a.name, a.account_number, a.account_type, a.currency, float(a.balance), int(a.is_active), stamp, stamp),
            )
        found = self.get_bank_account(a_id)
        assert found is not None
        return found

    def get_bank_account(self, account_id: str) -> Optional[BankAccount]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._ACCOUNT_COLS} FROM bank_accounts WHERE id=?", (str(account_id),))
        row = cur.fetchone()
        conn.close()
        return self._account(row) if row else None

    def list_bank_accounts(self, include_inactive: bool = False) -> list[BankAccount]:
        conn = self._conn()
        cur = conn.cursor()
        where = "" if include_inactive else "WHERE is_active=1"
        cur.execute(f"SELECT {self._ACCOUNT_COLS} FROM bank_accounts {where} ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [self._account(r) for r in rows]

    def deactivate_bank_account(self, account_id: str) -> bool:
        with self.transaction() as cur:
            cur.execute(
                "UPDATE bank_accounts SET is_active=0, updated_at=? WHERE id=? AND is_active=1",
                (_now(), str(account_id)),
            )
            return cur.rowcount > 0

    def add_bank_transaction(self, tx: BankTransaction) -> BankTransaction:
        """Insert the movement and apply it to the account balance atomically."""
        delta = tx.amount if tx.type == "income" else -tx.amount
        with self.transaction() as cur:
            cur.execute(
                f"INSERT INTO bank_transactions ({self._TX_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    tx.id, tx.account_id, tx.type, tx.amount, tx.currency, tx.reference,
                    tx.description, tx.payment_method, tx.created_at, tx.sale_id,
                ),
            )
            cur.execute(
                "UPDATE bank_accounts SET balance = balance + ?, updated_at=? WHERE id=?",
                (float(delta), _now(), tx.account_id),
            )
        return tx

    def list_bank_transactions(self, account_id: Optional[str] = None, since_iso: Optional[str] = None) -> list[BankTransaction]:
        clauses = []
        params: list = []
        if account_id is not None:
            clauses.append("account_id=?")
            params.append(str(account_id))
        if since_iso is not None:
            clauses.append("created_at>=?")
            params.append(since_iso)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {self._TX_COLS} FROM bank_transactions {where} ORDER BY created_at DESC", params)
        rows = cur.fetchall()
        conn.close()
        return [self._transaction(r) for r in rows]
