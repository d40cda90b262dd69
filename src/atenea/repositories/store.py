from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from atenea.domain.models import (
    Client,
    Expense,
    InventoryItem,
    PaymentAllocation,
    SaleLine,
    Voucher,
    VOUCHER_ACTIVE,
)
from atenea.repositories.contracts import Row, TableBackend

log = logging.getLogger(__name__)

SALES_SNAPSHOT_LIMIT = 250


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(round(float(value)))


def _opt(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class AteneaRepository:
    """Owns the in-memory collections and maps table rows to domain objects.

    Every write goes straight to the backend; ``refresh()`` reloads the
    snapshots wholesale afterwards.
    """

    def __init__(
        self,
        backend: TableBackend,
        user_id: Optional[str] = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.backend = backend
        self.user_id = user_id
        self.clock = clock or utc_now
        self.sales: list[SaleLine] = []
        self.inventory: list[InventoryItem] = []
        self.vouchers: list[Voucher] = []
        self.clients: list[Client] = []
        self.expenses: list[Expense] = []

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def now_iso(self) -> str:
        return self.clock().isoformat(timespec="microseconds")

    def refresh(self) -> None:
        self.sales = [
            self._sale_from_row(r)
            for r in self.backend.select(
                "sales", order_by=("-date", "-client_number"), limit=SALES_SNAPSHOT_LIMIT
            )
        ]
        self.inventory = [self._inventory_from_row(r) for r in self.backend.select("inventory", order_by=("name",))]
        self.vouchers = [
            self._voucher_from_row(r)
            for r in self.backend.select("vouchers", {"status": VOUCHER_ACTIVE}, order_by=("-created_at",))
        ]
        self.clients = [self._client_from_row(r) for r in self.backend.select("clients", order_by=("name",))]
        self.expenses = self.list_expenses()
        log.debug(
            "collections_refreshed sales=%s inventory=%s vouchers=%s clients=%s expenses=%s",
            len(self.sales), len(self.inventory), len(self.vouchers), len(self.clients), len(self.expenses),
        )

    # ---------- Sales ----------
    def sales_on_date(self, date_iso: str) -> list[SaleLine]:
        return [self._sale_from_row(r) for r in self.backend.select("sales", {"date": date_iso})]

    def lines_for_transaction(self, transaction_id: str) -> list[SaleLine]:
        rows = self.backend.select("sales", {"client_number": transaction_id}, order_by=("created_at",))
        return [self._sale_from_row(r) for r in rows]

    def sales_between(self, start_iso: str, end_iso: str) -> list[SaleLine]:
        rows = self.backend.select("sales", order_by=("date", "client_number", "created_at"))
        return [self._sale_from_row(r) for r in rows if start_iso <= str(r["date"]) <= end_iso]

    def insert_sale_lines(self, lines: Sequence[SaleLine]) -> None:
        self.backend.insert("sales", [self._sale_to_row(line) for line in lines])

    def delete_transaction_lines(self, transaction_id: str) -> int:
        return self.backend.delete("sales", {"client_number": transaction_id})

    # ---------- Inventory ----------
    def list_inventory(self) -> list[InventoryItem]:
        return [self._inventory_from_row(r) for r in self.backend.select("inventory", order_by=("name",))]

    def get_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        rows = self.backend.select("inventory", {"id": item_id}, limit=1)
        return self._inventory_from_row(rows[0]) if rows else None

    def add_inventory_item(self, item: InventoryItem) -> None:
        row = self._inventory_to_row(item)
        row["created_at"] = item.last_updated
        self.backend.insert("inventory", [row])

    def update_inventory_sizes(self, item_id: str, sizes: dict[str, int], expected_last_updated: str) -> bool:
        """Conditional write: only applies when nobody touched the item since it was read."""
        changed = self.backend.update(
            "inventory",
            {
                "sizes": {k: int(v) for k, v in sizes.items()},
                "stock_total": sum(int(v) for v in sizes.values()),
                "last_updated": self.now_iso(),
            },
            {"id": item_id, "last_updated": expected_last_updated},
        )
        return changed > 0

    # ---------- Vouchers ----------
    def add_voucher(self, voucher: Voucher) -> None:
        self.backend.insert(
            "vouchers",
            [
                {
                    "id": voucher.id,
                    "user_id": voucher.user_id,
                    "code": voucher.code,
                    "initial_amount": int(voucher.initial_amount),
                    "current_amount": int(voucher.current_amount),
                    "status": voucher.status,
                    "expires_at": voucher.expires_at,
                    "created_at": voucher.created_at,
                }
            ],
        )

    def get_voucher(self, code: str) -> Optional[Voucher]:
        rows = self.backend.select("vouchers", {"code": code}, limit=1)
        return self._voucher_from_row(rows[0]) if rows else None

    def list_vouchers(self, status: Optional[str] = None) -> list[Voucher]:
        filters = {"status": status} if status else None
        return [self._voucher_from_row(r) for r in self.backend.select("vouchers", filters, order_by=("-created_at",))]

    def set_voucher_status(self, code: str, status: str) -> int:
        return self.backend.update("vouchers", {"status": status}, {"code": code})

    # ---------- Clients ----------
    def add_client(self, client: Client) -> None:
        self.backend.insert(
            "clients",
            [
                {
                    "id": client.id,
                    "user_id": client.user_id,
                    "name": client.name,
                    "phone": client.phone,
                    "email": client.email,
                    "created_at": client.created_at,
                }
            ],
        )

    def get_client(self, client_id: str) -> Optional[Client]:
        rows = self.backend.select("clients", {"id": client_id}, limit=1)
        return self._client_from_row(rows[0]) if rows else None

    def list_clients(self) -> list[Client]:
        return [self._client_from_row(r) for r in self.backend.select("clients", order_by=("name",))]

    # ---------- Expenses ----------
    def list_expenses(self) -> list[Expense]:
        rows = self.backend.select("expenses", order_by=("-date", "-created_at"))
        return [self._expense_from_row(r) for r in rows]

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        rows = self.backend.select("expenses", {"id": expense_id}, limit=1)
        return self._expense_from_row(rows[0]) if rows else None

    def add_expense(self, expense: Expense) -> None:
        row = self._expense_to_row(expense)
        row["id"] = expense.id
        row["user_id"] = expense.user_id
        row["created_at"] = expense.created_at
        self.backend.insert("expenses", [row])

    def update_expense(self, expense: Expense) -> int:
        row = self._expense_to_row(expense)
        row["updated_at"] = expense.updated_at
        return self.backend.update("expenses", row, {"id": expense.id})

    def delete_expense(self, expense_id: str) -> int:
        return self.backend.delete("expenses", {"id": expense_id})

    # ---------- Profiles ----------
    def get_profile_role(self, user_id: str) -> Optional[str]:
        rows = self.backend.select("profiles", {"id": user_id}, limit=1)
        if not rows:
            return None
        return _opt(rows[0].get("role"))

    # ---------- Row mapping ----------
    @staticmethod
    def _sale_to_row(line: SaleLine) -> Row:
        return {
            "id": line.id,
            "user_id": line.user_id,
            "date": line.date,
            "client_number": line.transaction_id,
            "product_name": line.product_name,
            "quantity": int(line.quantity),
            "price": int(line.price),
            "list_price": int(line.list_price),
            "cost_price": int(line.cost_price),
            "payment_method": line.payment_method,
            "payment_details": [p.to_record() for p in line.payments],
            "status": line.status,
            "expires_at": line.expires_at,
            "size": line.size,
            "notes": line.notes,
            "inventory_id": line.inventory_id,
            "client_id": line.client_id,
            "created_at": line.created_at,
            "updated_at": line.updated_at,
        }

    @staticmethod
    def _sale_from_row(r: Row) -> SaleLine:
        price = _int(r.get("price"))
        return SaleLine(
            id=str(r["id"]),
            date=str(r["date"]),
            transaction_id=str(r.get("client_number") or ""),
            product_name=str(r.get("product_name") or ""),
            quantity=_int(r.get("quantity")) or 1,
            price=price,
            list_price=_int(r.get("list_price")) or price,
            cost_price=_int(r.get("cost_price")),
            payment_method=str(r.get("payment_method") or ""),
            payments=tuple(PaymentAllocation.from_record(p) for p in (r.get("payment_details") or [])),
            status=str(r.get("status") or "completed"),
            expires_at=_opt(r.get("expires_at")),
            size=_opt(r.get("size")),
            inventory_id=_opt(r.get("inventory_id")),
            client_id=_opt(r.get("client_id")),
            user_id=_opt(r.get("user_id")),
            created_at=str(r.get("created_at") or ""),
            updated_at=_opt(r.get("updated_at")),
            notes=_opt(r.get("notes")),
        )

    @staticmethod
    def _inventory_to_row(item: InventoryItem) -> Row:
        return {
            "id": item.id,
            "user_id": item.user_id,
            "name": item.name,
            "category": item.category,
            "subcategory": item.subcategory,
            "material": item.material,
            "sizes": {k: int(v) for k, v in item.sizes.items()},
            "stock_total": item.stock_total,
            "cost_price": int(item.cost_price),
            "selling_price": int(item.selling_price),
            "last_updated": item.last_updated,
        }

    @staticmethod
    def _inventory_from_row(r: Row) -> InventoryItem:
        return InventoryItem(
            id=str(r["id"]),
            name=str(r["name"]),
            category=str(r.get("category") or ""),
            subcategory=_opt(r.get("subcategory")),
            material=_opt(r.get("material")),
            sizes={str(k): _int(v) for k, v in (r.get("sizes") or {}).items()},
            cost_price=_int(r.get("cost_price")),
            selling_price=_int(r.get("selling_price")),
            last_updated=str(r.get("last_updated") or ""),
            user_id=_opt(r.get("user_id")),
        )

    @staticmethod
    def _voucher_from_row(r: Row) -> Voucher:
        return Voucher(
            id=str(r["id"]),
            code=str(r["code"]),
            initial_amount=_int(r.get("initial_amount")),
            current_amount=_int(r.get("current_amount")),
            status=str(r.get("status") or VOUCHER_ACTIVE),
            expires_at=str(r.get("expires_at") or ""),
            created_at=str(r.get("created_at") or ""),
            user_id=_opt(r.get("user_id")),
        )

    @staticmethod
    def _expense_to_row(expense: Expense) -> Row:
        return {
            "date": expense.date,
            "description": expense.description,
            "amount": int(expense.amount),
            "category": expense.category,
            "has_invoice_a": bool(expense.has_invoice_a),
            "invoice_amount": int(expense.invoice_amount),
        }

    @staticmethod
    def _expense_from_row(r: Row) -> Expense:
        return Expense(
            id=str(r["id"]),
            date=str(r["date"]),
            description=str(r.get("description") or ""),
            amount=_int(r.get("amount")),
            category=str(r.get("category") or ""),
            has_invoice_a=bool(r.get("has_invoice_a")),
            invoice_amount=_int(r.get("invoice_amount")),
            created_at=str(r.get("created_at") or ""),
            updated_at=_opt(r.get("updated_at")),
            user_id=_opt(r.get("user_id")),
        )

    @staticmethod
    def _client_from_row(r: Row) -> Client:
        return Client(
            id=str(r["id"]),
            name=str(r.get("name") or ""),
            phone=str(r.get("phone") or ""),
            email=_opt(r.get("email")),
            created_at=str(r.get("created_at") or ""),
            user_id=_opt(r.get("user_id")),
        )
