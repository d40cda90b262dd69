from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from atenea.config import BackendSettings, load_backend_settings
from atenea.domain.models import Identity
from atenea.repositories.contracts import TableBackend
from atenea.repositories.rest_backend import RestBackend
from atenea.repositories.sqlite_repo import SqliteBackend
from atenea.repositories.store import AteneaRepository
from atenea.services.auth_service import AuthService
from atenea.services.client_service import ClientService
from atenea.services.excel_service import ExcelService
from atenea.services.expense_service import ExpenseService
from atenea.services.inventory_service import InventoryService
from atenea.services.reversal_service import ReversalService
from atenea.services.settlement_service import SettlementService
from atenea.services.stock_ledger import InventoryStockLedger
from atenea.services.voucher_service import VoucherService


@dataclass(frozen=True)
class AppContainer:
    backend: TableBackend
    repo: AteneaRepository
    identity: Optional[Identity]
    auth: AuthService
    stock: InventoryStockLedger
    inventory: InventoryService
    clients: ClientService
    expenses: ExpenseService
    vouchers: VoucherService
    reversal: ReversalService
    settlement: SettlementService
    excel: ExcelService


def build_backend(settings: BackendSettings, db_path: Path | str | None) -> TableBackend:
    if settings.is_rest:
        return RestBackend(settings.url or "", settings.api_key or "", access_token=settings.access_token)
    if db_path is None:
        raise ValueError("A database path is required for the local backend.")
    backend = SqliteBackend(db_path)
    backend.init_db()
    return backend


def build_container(
    db_path: Path | str | None = None,
    settings: BackendSettings | None = None,
    user_id: Optional[str] = None,
    clock: Callable[[], datetime] | None = None,
) -> AppContainer:
    settings = settings or load_backend_settings()
    backend = build_backend(settings, db_path)
    user_id = user_id or settings.user_id

    repo = AteneaRepository(backend, user_id=user_id, clock=clock)
    auth = AuthService(repo)
    identity = auth.identity_for(user_id) if user_id else None

    stock = InventoryStockLedger(repo)
    inventory = InventoryService(repo, identity=identity)
    clients = ClientService(repo, identity=identity)
    expenses = ExpenseService(repo, identity=identity)
    vouchers = VoucherService(repo, clock=clock)
    reversal = ReversalService(repo, stock, identity=identity)
    settlement = SettlementService(
        repo, stock, vouchers, clients, reversal, identity=identity, clock=clock
    )
    excel = ExcelService(repo, inventory, stock, identity=identity)

    return AppContainer(
        backend=backend,
        repo=repo,
        identity=identity,
        auth=auth,
        stock=stock,
        inventory=inventory,
        clients=clients,
        expenses=expenses,
        vouchers=vouchers,
        reversal=reversal,
        settlement=settlement,
        excel=excel,
    )
