from __future__ import annotations

import json
import re
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

from atenea.domain.errors import BackendError
from atenea.repositories.contracts import Filters, Row

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

JSON_COLUMNS: dict[str, set[str]] = {
    "inventory": {"sizes"},
    "sales": {"payment_details"},
}


class SqliteBackend:
    """Local store with the same tables as the hosted schema."""

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

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
                (1, self._migration_v1_hosted_base),
                (2, self._migration_v2_split_payments),
                (3, self._migration_v3_expenses),
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

    def _migration_v1_hosted_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                store_name TEXT,
                role TEXT NOT NULL DEFAULT 'owner' CHECK(role IN ('owner','accountant')),
                updated_at TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS inventory (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                name TEXT NOT NULL,
                category TEXT NOT NULL,
                subcategory TEXT,
                material TEXT,
                sizes TEXT NOT NULL DEFAULT '{}',
                stock_total INTEGER NOT NULL DEFAULT 0,
                cost_price INTEGER NOT NULL DEFAULT 0 CHECK(cost_price >= 0),
                selling_price INTEGER NOT NULL DEFAULT 0 CHECK(selling_price >= 0),
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                last_updated TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sales (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                date TEXT NOT NULL,
                client_number TEXT,
                product_name TEXT NOT NULL,
                quantity INTEGER NOT NULL DEFAULT 1 CHECK(quantity > 0),
                price INTEGER NOT NULL,
                cost_price INTEGER,
                payment_method TEXT NOT NULL,
                size TEXT,
                notes TEXT,
                inventory_id TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

    def _migration_v2_split_payments(self, cur: sqlite3.Cursor) -> None:
        self._add_column_if_missing(cur, "sales", "list_price", "INTEGER NOT NULL DEFAULT 0")
        self._add_column_if_missing(cur, "sales", "payment_details", "TEXT NOT NULL DEFAULT '[]'")
        self._add_column_if_missing(
            cur,
            "sales",
            "status",
            "TEXT NOT NULL DEFAULT 'completed' CHECK(status IN ('completed','pending','cancelled'))",
        )
        self._add_column_if_missing(cur, "sales", "expires_at", "TEXT")
        self._add_column_if_missing(cur, "sales", "client_id", "TEXT")
        self._add_column_if_missing(cur, "sales", "updated_at", "TEXT")

        # legacy rows carried only the charged price
        cur.execute("UPDATE sales SET list_price = price WHERE list_price = 0")

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS clients (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                name TEXT NOT NULL,
                phone TEXT NOT NULL,
                email TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS vouchers (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                code TEXT NOT NULL UNIQUE,
                initial_amount INTEGER NOT NULL CHECK(initial_amount > 0),
                current_amount INTEGER NOT NULL CHECK(current_amount >= 0),
                status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active','used','expired')),
                expires_at TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_date ON sales(date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_client_number ON sales(client_number)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_vouchers_status ON vouchers(status)")

    def _migration_v3_expenses(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                date TEXT NOT NULL,
                description TEXT NOT NULL,
                amount INTEGER NOT NULL CHECK(amount > 0),
                category TEXT NOT NULL,
                has_invoice_a INTEGER NOT NULL DEFAULT 0 CHECK(has_invoice_a IN (0,1)),
                invoice_amount INTEGER NOT NULL DEFAULT 0 CHECK(invoice_amount >= 0),
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_expenses_date ON expenses(date)")

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    # ---------- Generic table access ----------
    @staticmethod
    def _ident(name: str) -> str:
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Invalid identifier: {name!r}")
        return name

    def _where(self, filters: Optional[Filters]) -> tuple[str, list[Any]]:
        if not filters:
            return "", []
        clauses = []
        params: list[Any] = []
        for col, value in filters.items():
            if value is None:
                clauses.append(f"{self._ident(col)} IS NULL")
            else:
                clauses.append(f"{self._ident(col)} = ?")
                params.append(value)
        return " WHERE " + " AND ".join(clauses), params

    def _encode(self, table: str, row: Row) -> Row:
        json_cols = JSON_COLUMNS.get(table, set())
        return {
            k: (json.dumps(v, ensure_ascii=False) if k in json_cols and v is not None else v)
            for k, v in row.items()
        }

    def _decode(self, table: str, row: sqlite3.Row) -> Row:
        out = dict(row)
        for col in JSON_COLUMNS.get(table, set()):
            if isinstance(out.get(col), str):
                out[col] = json.loads(out[col])
        return out

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
    ) -> list[Row]:
        where, params = self._where(filters)
        sql = f"SELECT * FROM {self._ident(table)}{where}"
        if order_by:
            parts = []
            for col in order_by:
                desc = col.startswith("-")
                parts.append(f"{self._ident(col.lstrip('-'))} {'DESC' if desc else 'ASC'}")
            sql += " ORDER BY " + ", ".join(parts)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise BackendError(f"select {table} failed: {exc}") from exc
        finally:
            conn.close()
        return [self._decode(table, r) for r in rows]

    def insert(self, table: str, rows: Sequence[Row]) -> list[Row]:
        rows = [dict(r) for r in rows]
        if not rows:
            return []
        conn = self._conn()
        try:
            cur = conn.cursor()
            for row in rows:
                encoded = self._encode(table, row)
                cols = ", ".join(self._ident(c) for c in encoded)
                marks = ", ".join("?" for _ in encoded)
                cur.execute(f"INSERT INTO {self._ident(table)} ({cols}) VALUES ({marks})", list(encoded.values()))
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise BackendError(f"insert into {table} failed: {exc}") from exc
        finally:
            conn.close()
        return rows

    def update(self, table: str, values: Row, filters: Filters) -> int:
        if not filters:
            raise ValueError("update requires filters")
        encoded = self._encode(table, values)
        assignments = ", ".join(f"{self._ident(c)} = ?" for c in encoded)
        where, params = self._where(filters)
        conn = self._conn()
        try:
            cur = conn.execute(f"UPDATE {self._ident(table)} SET {assignments}{where}", [*encoded.values(), *params])
            changed = cur.rowcount
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise BackendError(f"update {table} failed: {exc}") from exc
        finally:
            conn.close()
        return int(changed)

    def delete(self, table: str, filters: Filters) -> int:
        if not filters:
            raise ValueError("delete requires filters")
        where, params = self._where(filters)
        conn = self._conn()
        try:
            cur = conn.execute(f"DELETE FROM {self._ident(table)}{where}", params)
            removed = cur.rowcount
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise BackendError(f"delete from {table} failed: {exc}") from exc
        finally:
            conn.close()
        return int(removed)
