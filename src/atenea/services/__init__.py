from .auth_service import AuthService
from .client_service import ClientService
from .excel_service import ExcelService
from .expense_service import ExpenseService
from .inventory_service import InventoryService
from .payment_manager import PaymentAllocationManager
from .reversal_service import ReversalService
from .settlement_service import SettlementService
from .stock_ledger import InventoryStockLedger
from .voucher_service import VoucherService

__all__ = [
    "AuthService",
    "ClientService",
    "ExcelService",
    "ExpenseService",
    "InventoryService",
    "PaymentAllocationManager",
    "ReversalService",
    "SettlementService",
    "InventoryStockLedger",
    "VoucherService",
]
