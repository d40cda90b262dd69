import sqlite3
from pathlib import Path

import pytest
from conftest import FixedClock

from atenea.domain.models import PaymentMethod
from atenea.repositories.sqlite_repo import SqliteBackend
from atenea.repositories.store import AteneaRepository
from atenea.services.settlement_service import SettlementService


def _versions(db: Path) -> list[int]:
    conn = sqlite3.connect(db)
    try:
        return [int(r[0]) for r in conn.execute("SELECT version FROM schema_migrations ORDER BY version")]
    finally:
        conn.close()


def _legacy_db(db: Path) -> SqliteBackend:
    backend = SqliteBackend(db)
    conn = backend._conn()
    cur = conn.cursor()
    cur.execute("CREATE TABLE schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
    backend._migration_v1_hosted_base(cur)
    cur.execute("INSERT INTO schema_migrations (version, applied_at) VALUES (1, datetime('now'))")
    cur.execute(
        """
        INSERT INTO sales (id, date, client_number, product_name, quantity, price, cost_price, payment_method, size, created_at)
        VALUES ('old-1', '2024-11-02', 'V241102001', 'Remera', 1, 4500, 2000, 'Efectivo - 10%', 'M', '2024-11-02 10:00:00')
        """
    )
    conn.commit()
    conn.close()
    return backend


def test_fresh_database_gets_every_migration(tmp_path: Path):
    db = tmp_path / "fresh.db"
    SqliteBackend(db).init_db()

    assert _versions(db) == [1, 2, 3]
    conn = sqlite3.connect(db)
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    conn.close()
    assert {"profiles", "inventory", "sales", "vouchers", "clients", "expenses"} <= tables


def test_init_is_idempotent(tmp_path: Path):
    db = tmp_path / "twice.db"
    backend = SqliteBackend(db)
    backend.init_db()
    backend.init_db()
    assert _versions(db) == [1, 2, 3]


def test_legacy_rows_survive_the_split_payment_upgrade(tmp_path: Path):
    db = tmp_path / "legacy.db"
    backend = _legacy_db(db)

    backend.init_db()

    assert _versions(db) == [1, 2, 3]
    row = backend.select("sales", {"client_number": "V241102001"})[0]
    assert row["list_price"] == 4500
    assert row["payment_details"] == []
    assert row["status"] == "completed"

    repo = AteneaRepository(backend, clock=FixedClock())
    line = repo.lines_for_transaction("V241102001")[0]
    assert line.list_price == 4500
    assert line.payments == ()

    data = SettlementService(repo, None, None, None, None).load_for_edit("V241102001")
    assert data.items[0].list_price == 4500
    assert data.payments == []


def test_legacy_payment_labels_are_understood():
    assert PaymentMethod.parse("Efectivo - 10%") is PaymentMethod.CASH
    assert PaymentMethod.parse("Crédito 3 Cuotas") is PaymentMethod.CREDIT
    assert PaymentMethod.parse("Vale") is PaymentMethod.VOUCHER
    with pytest.raises(ValueError):
        PaymentMethod.parse("Cheque")


def test_migration_failure_restores_db(tmp_path: Path):
    class BrokenMigrationBackend(SqliteBackend):
        def _migration_v2_split_payments(self, cur):
            cur.execute("ALTER TABLE sales ADD COLUMN list_price INTEGER")
            raise RuntimeError("forced migration failure")

    db = tmp_path / "broken.db"
    _legacy_db(db)

    with pytest.raises(RuntimeError, match="Original database restored"):
        BrokenMigrationBackend(db).run_migrations()

    assert _versions(db) == [1]
    conn = sqlite3.connect(db)
    cols = {r[1] for r in conn.execute("PRAGMA table_info(sales)")}
    conn.close()
    assert "list_price" not in cols
    assert list(tmp_path.glob("broken.pre_migration_*.bak"))
