from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class PaymentMethod(str, Enum):
    CASH = "Efectivo"
    TRANSFER = "Transferencia"
    DEBIT = "Débito"
    CREDIT = "Crédito"
    VOUCHER = "Vale"

    @classmethod
    def parse(cls, label: str) -> "PaymentMethod":
        # legacy single-method labels such as "Efectivo - 10%" or "Crédito 3 Cuotas"
        for method in cls:
            if label == method.value or label.startswith(method.value + " "):
                return method
        raise ValueError(f"Unknown payment method: {label!r}")


STATUS_COMPLETED = "completed"
STATUS_PENDING = "pending"

VOUCHER_ACTIVE = "active"
VOUCHER_USED = "used"
VOUCHER_EXPIRED = "expired"


@dataclass
class CartLineItem:
    id: str
    product: str
    quantity: int
    list_price: int
    final_price: Optional[int] = None
    size: str = "U"
    inventory_id: Optional[str] = None
    cost_price: int = 0
    is_return: bool = False

    def __post_init__(self) -> None:
        if self.final_price is None:
            self.final_price = self.list_price


@dataclass
class PaymentAllocation:
    method: PaymentMethod
    amount: int
    installments: Optional[int] = None
    voucher_code: Optional[str] = None
    rounding_base: Optional[int] = None
    applied_to_items: list[str] = field(default_factory=list)

    def to_record(self) -> dict:
        """Shape stored in the ``payment_details`` array of every sale line."""
        record: dict = {
            "method": self.method.value,
            "amount": int(self.amount),
            "appliedToItems": list(self.applied_to_items),
            "roundingBase": self.rounding_base,
        }
        if self.installments is not None:
            record["installments"] = int(self.installments)
        if self.voucher_code:
            record["voucherCode"] = self.voucher_code
        return record

    @classmethod
    def from_record(cls, record: dict) -> "PaymentAllocation":
        installments = record.get("installments")
        rounding = record.get("roundingBase")
        return cls(
            method=PaymentMethod.parse(str(record["method"])),
            amount=int(record.get("amount") or 0),
            installments=int(installments) if installments is not None else None,
            voucher_code=record.get("voucherCode") or None,
            rounding_base=int(rounding) if rounding else None,
            applied_to_items=[str(i) for i in (record.get("appliedToItems") or [])],
        )


@dataclass(frozen=True)
class SaleLine:
    id: str
    date: str
    transaction_id: str
    product_name: str
    quantity: int
    price: int
    list_price: int
    cost_price: int
    payment_method: str
    payments: tuple[PaymentAllocation, ...]
    status: str
    expires_at: Optional[str]
    size: Optional[str]
    inventory_id: Optional[str]
    client_id: Optional[str]
    user_id: Optional[str]
    created_at: str
    updated_at: Optional[str] = None
    notes: Optional[str] = None

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


@dataclass(frozen=True)
class Voucher:
    id: str
    code: str
    initial_amount: int
    current_amount: int
    status: str
    expires_at: str
    created_at: str
    user_id: Optional[str] = None


@dataclass(frozen=True)
class VoucherReceipt:
    code: str
    amount: int
    expires_at: str


@dataclass(frozen=True)
class InventoryItem:
    id: str
    name: str
    category: str
    subcategory: Optional[str]
    material: Optional[str]
    sizes: dict[str, int]
    cost_price: int
    selling_price: int
    last_updated: str
    user_id: Optional[str] = None

    @property
    def stock_total(self) -> int:
        return sum(int(q) for q in self.sizes.values())


@dataclass(frozen=True)
class Client:
    id: str
    name: str
    phone: str
    email: Optional[str]
    created_at: str
    user_id: Optional[str] = None


@dataclass(frozen=True)
class ClientDraft:
    name: str
    phone: str
    email: Optional[str] = None


@dataclass
class MultiSaleData:
    date: str
    items: list[CartLineItem]
    payments: list[PaymentAllocation]
    is_edit: bool = False
    original_transaction_id: Optional[str] = None
    new_client: Optional[ClientDraft] = None
    client_id: Optional[str] = None
    notify_whatsapp: bool = False
    force_completed: bool = False


@dataclass(frozen=True)
class SettlementResult:
    success: bool
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    voucher: Optional[VoucherReceipt] = None
    notify_whatsapp: bool = False
    error: Optional[Exception] = None


@dataclass(frozen=True)
class Expense:
    id: str
    date: str
    description: str
    amount: int
    category: str
    has_invoice_a: bool
    invoice_amount: int
    created_at: str
    updated_at: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class ExpenseDraft:
    date: str
    description: str
    amount: int
    category: str
    has_invoice_a: bool = False
    invoice_amount: int = 0


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str = "owner"
