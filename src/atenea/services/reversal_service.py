from __future__ import annotations

import logging
from typing import Iterable, Optional

from atenea.domain.errors import NotFoundError
from atenea.domain.models import Identity, SaleLine
from atenea.services.auth_service import ensure_allowed
from atenea.services.stock_ledger import InventoryStockLedger

log = logging.getLogger("atenea.sales")


class ReversalService:
    def __init__(self, repo, stock: InventoryStockLedger, identity: Optional[Identity] = None):
        self.repo = repo
        self.stock = stock
        self.identity = identity

    def reverse_stock(self, lines: Iterable[SaleLine]) -> int:
        """Undoes the stock effect of persisted lines.

        A negative price marks a return, which had added stock, so it is taken
        back out; every other linked line gives its quantity back.
        """
        reversed_lines = 0
        for line in lines:
            if not line.inventory_id or not line.size:
                continue
            if line.price < 0:
                self.stock.decrement(line.inventory_id, line.size, line.quantity)
            else:
                self.stock.increment(line.inventory_id, line.size, line.quantity)
            reversed_lines += 1
        return reversed_lines

    def delete_transaction(self, transaction_id: str) -> int:
        ensure_allowed(self.identity, "delete_sale")
        lines = self.repo.lines_for_transaction(transaction_id)
        if not lines:
            raise NotFoundError(f"Transaction {transaction_id} not found.")

        reversed_lines = self.reverse_stock(lines)
        removed = self.repo.delete_transaction_lines(transaction_id)
        self.repo.refresh()
        log.info(
            "sale_deleted id=%s lines=%s stock_reversed=%s",
            transaction_id, removed, reversed_lines,
        )
        return removed
