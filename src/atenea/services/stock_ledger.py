from __future__ import annotations

import logging
import time
from typing import Optional

from atenea.domain.errors import StockConflictError, ValidationError
from atenea.domain.models import InventoryItem

log = logging.getLogger("atenea.stock")


class InventoryStockLedger:
    """Per-item, per-size stock counters.

    Each write is conditional on the item's ``last_updated`` value; a lost
    race re-reads the item and tries again.
    """

    def __init__(self, repo, max_attempts: int = 3, backoff_base: float = 0.05):
        self.repo = repo
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base

    def apply_delta(self, item_id: str, size: str, delta: int) -> Optional[int]:
        """Returns the new quantity for the size, or None when the item is gone."""
        if not size:
            raise ValidationError("Size is required for stock updates.")
        delta = int(delta)

        for attempt in range(self.max_attempts):
            item = self.repo.get_inventory_item(item_id)
            if item is None:
                log.warning("stock_item_missing item_id=%s size=%s delta=%s", item_id, size, delta)
                return None

            sizes = dict(item.sizes)
            new_qty = int(sizes.get(size, 0)) + delta
            sizes[size] = new_qty
            if self.repo.update_inventory_sizes(item.id, sizes, item.last_updated):
                if new_qty < 0:
                    log.warning("stock_negative item_id=%s size=%s qty=%s", item_id, size, new_qty)
                log.info("stock_updated item_id=%s size=%s delta=%s qty=%s", item_id, size, delta, new_qty)
                return new_qty

            log.info("stock_conflict item_id=%s size=%s attempt=%s", item_id, size, attempt + 1)
            if attempt < self.max_attempts - 1:
                time.sleep(self.backoff_base * (2 ** attempt))

        raise StockConflictError(f"Stock for {item_id} ({size}) kept changing; giving up.")

    def decrement(self, item_id: str, size: str, qty: int) -> Optional[int]:
        return self.apply_delta(item_id, size, -abs(int(qty)))

    def increment(self, item_id: str, size: str, qty: int) -> Optional[int]:
        return self.apply_delta(item_id, size, abs(int(qty)))

    def restock(self, item_id: str, size: str, qty: int) -> Optional[int]:
        return self.increment(item_id, size, qty)

    def stock_for(self, item_id: str, size: str) -> int:
        item: Optional[InventoryItem] = self.repo.get_inventory_item(item_id)
        if item is None:
            return 0
        return int(item.sizes.get(size, 0))
