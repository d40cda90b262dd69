from __future__ import annotations

import logging
from typing import Mapping, Optional

from atenea.domain.errors import DuplicateError, NotFoundError, ValidationError
from atenea.domain.models import Identity, InventoryItem
from atenea.services.auth_service import ensure_allowed

log = logging.getLogger("atenea.stock")


def _normalized(name: str) -> str:
    return " ".join((name or "").split()).casefold()


class InventoryService:
    def __init__(self, repo, identity: Optional[Identity] = None):
        self.repo = repo
        self.identity = identity

    def list_items(self) -> list[InventoryItem]:
        return self.repo.list_inventory()

    def get_item(self, item_id: str) -> InventoryItem:
        item = self.repo.get_inventory_item(item_id)
        if not item:
            raise NotFoundError("Inventory item not found.")
        return item

    def find_by_name(self, name: str) -> Optional[InventoryItem]:
        key = _normalized(name)
        for item in self.repo.list_inventory():
            if _normalized(item.name) == key:
                return item
        return None

    def add_item(
        self,
        name: str,
        category: str,
        sizes: Mapping[str, int],
        cost_price: int,
        selling_price: int,
        subcategory: Optional[str] = None,
        material: Optional[str] = None,
    ) -> InventoryItem:
        ensure_allowed(self.identity, "manage_inventory")
        name = " ".join((name or "").split())
        category = (category or "").strip()
        if not name or not category:
            raise ValidationError("Name and category are required.")
        if int(cost_price) < 0:
            raise ValidationError("Cost must be >= 0.")
        if int(selling_price) <= 0:
            raise ValidationError("Price must be > 0.")
        clean_sizes = {str(k).strip(): int(v) for k, v in sizes.items() if str(k).strip()}
        if any(q < 0 for q in clean_sizes.values()):
            raise ValidationError("Stock values must be >= 0.")
        if self.find_by_name(name):
            raise DuplicateError(f"An item named '{name}' already exists.")

        item = InventoryItem(
            id=self.repo.new_id(),
            name=name,
            category=category,
            subcategory=(subcategory or "").strip() or None,
            material=(material or "").strip() or None,
            sizes=clean_sizes,
            cost_price=int(cost_price),
            selling_price=int(selling_price),
            last_updated=self.repo.now_iso(),
            user_id=self.repo.user_id,
        )
        self.repo.add_inventory_item(item)
        log.info("inventory_item_added item_id=%s name=%s stock=%s", item.id, name, item.stock_total)
        return item
