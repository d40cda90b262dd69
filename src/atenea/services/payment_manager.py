from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from atenea.domain.errors import ValidationError
from atenea.domain.models import (
    CartLineItem,
    ClientDraft,
    MultiSaleData,
    PaymentAllocation,
    PaymentMethod,
)
from atenea.services import calculator
from atenea.services.calculator import CartTotals

log = logging.getLogger("atenea.sales")

CREDIT_INSTALLMENTS = (1, 3, 6, 12)


class PaymentAllocationManager:
    """Cart and payment-entry state for one checkout.

    Amounts typed by the operator are stored on the allocations; discounts
    and totals are always derived from the calculator.
    """

    def __init__(
        self,
        items: Iterable[CartLineItem] = (),
        allocations: Iterable[PaymentAllocation] = (),
    ):
        self.items: list[CartLineItem] = list(items)
        self.allocations: list[PaymentAllocation] = list(allocations)

    @property
    def totals(self) -> CartTotals:
        return calculator.compute_totals(self.items, self.allocations)

    def _allocation(self, index: int) -> PaymentAllocation:
        if not 0 <= index < len(self.allocations):
            raise IndexError(f"No payment at position {index}.")
        return self.allocations[index]

    # ---------- Cart ----------
    def add_item(self, item: CartLineItem) -> None:
        if any(i.id == item.id for i in self.items):
            raise ValidationError(f"Item {item.id} is already in the cart.")
        if int(item.quantity) < 1:
            raise ValidationError("Qty must be >= 1.")
        self.items.append(item)
        self.rebalance()

    def remove_item(self, item_id: str) -> None:
        self.items = [i for i in self.items if i.id != item_id]
        for p in self.allocations:
            if item_id in p.applied_to_items:
                p.applied_to_items.remove(item_id)
        self.rebalance()

    def set_quantity(self, item_id: str, quantity: int) -> None:
        if int(quantity) < 1:
            raise ValidationError("Qty must be >= 1.")
        for item in self.items:
            if item.id == item_id:
                item.quantity = int(quantity)
                break
        else:
            raise ValidationError(f"Item {item_id} is not in the cart.")
        self.rebalance()

    # ---------- Payments ----------
    def add_allocation(
        self,
        method: PaymentMethod,
        installments: Optional[int] = None,
        voucher_code: Optional[str] = None,
    ) -> PaymentAllocation:
        method = PaymentMethod(method)
        if method == PaymentMethod.CREDIT:
            installments = int(installments or 1)
            if installments not in CREDIT_INSTALLMENTS:
                raise ValidationError(f"Installments must be one of {CREDIT_INSTALLMENTS}.")
        else:
            installments = None

        allocation = PaymentAllocation(
            method=method,
            amount=max(0, self.totals.balance_remaining),
            installments=installments,
            voucher_code=(voucher_code or "").strip().upper() or None,
        )
        self.allocations.append(allocation)
        return allocation

    def set_amount(self, index: int, amount: int) -> None:
        self._allocation(index).amount = int(amount)
        if len(self.allocations) == 2:
            other = self.allocations[1 - index]
            other.amount = max(0, self.totals.net_total - int(amount))

    def remove_allocation(self, index: int) -> None:
        self._allocation(index)
        del self.allocations[index]

    def toggle_item_discount(self, index: int, item_id: str) -> bool:
        """Adds or removes the cash discount for one item on a Cash payment.

        The payment amount moves by the change in net total so the operator
        does not have to retype it. Returns False when nothing changed.
        """
        allocation = self._allocation(index)
        if allocation.method != PaymentMethod.CASH:
            return False
        if not any(i.id == item_id for i in self.items):
            return False

        before = self.totals.net_total
        if item_id in allocation.applied_to_items:
            allocation.applied_to_items.remove(item_id)
        else:
            allocation.applied_to_items.append(item_id)
        after = self.totals.net_total

        allocation.amount = max(0, int(allocation.amount) + (after - before))
        return True

    def apply_rounding(self, index: int, denomination: Optional[int]) -> bool:
        allocation = self._allocation(index)
        if allocation.method != PaymentMethod.CASH:
            return False
        if denomination is not None and denomination not in calculator.ROUNDING_DENOMINATIONS:
            raise ValidationError(f"Rounding must be one of {calculator.ROUNDING_DENOMINATIONS}.")

        net = self.totals.net_total
        others = sum(int(p.amount) for i, p in enumerate(self.allocations) if i != index)
        target = (net // denomination) * denomination if denomination else net
        allocation.amount = max(0, target - others)
        allocation.rounding_base = denomination
        return True

    def rebalance(self) -> None:
        """Keeps payments in step with the cart after it changes."""
        if calculator.has_cash_rounding(self.allocations):
            return
        net = self.totals.net_total
        if len(self.allocations) == 1:
            self.allocations[0].amount = max(0, net)
        elif len(self.allocations) == 2:
            self.allocations[1].amount = max(0, net - int(self.allocations[0].amount))

    # ---------- Submission ----------
    def ready_to_submit(self, allow_pending: bool = False) -> bool:
        return calculator.ready_to_submit(self.items, self.allocations, allow_pending=allow_pending)

    def build_submission(
        self,
        date: str,
        is_edit: bool = False,
        original_transaction_id: Optional[str] = None,
        new_client: Optional[ClientDraft] = None,
        client_id: Optional[str] = None,
        notify_whatsapp: bool = False,
        force_completed: bool = False,
    ) -> MultiSaleData:
        prices = self.totals.item_prices
        items = [replace(i, final_price=prices.get(i.id, i.list_price)) for i in self.items]
        payments = [replace(p, applied_to_items=list(p.applied_to_items)) for p in self.allocations]
        log.debug("submission_built date=%s items=%s payments=%s", date, len(items), len(payments))
        return MultiSaleData(
            date=date,
            items=items,
            payments=payments,
            is_edit=is_edit,
            original_transaction_id=original_transaction_id,
            new_client=new_client,
            client_id=client_id,
            notify_whatsapp=notify_whatsapp,
            force_completed=force_completed,
        )
