from .models import (
    CartLineItem,
    Client,
    ClientDraft,
    Identity,
    InventoryItem,
    MultiSaleData,
    PaymentAllocation,
    PaymentMethod,
    SaleLine,
    SettlementResult,
    Voucher,
    VoucherReceipt,
)
from .errors import (
    AppError,
    AuthorizationError,
    BackendError,
    DuplicateError,
    NotFoundError,
    StockConflictError,
    ValidationError,
)

__all__ = [
    "CartLineItem",
    "Client",
    "ClientDraft",
    "Identity",
    "InventoryItem",
    "MultiSaleData",
    "PaymentAllocation",
    "PaymentMethod",
    "SaleLine",
    "SettlementResult",
    "Voucher",
    "VoucherReceipt",
    "AppError",
    "AuthorizationError",
    "BackendError",
    "DuplicateError",
    "NotFoundError",
    "StockConflictError",
    "ValidationError",
]
