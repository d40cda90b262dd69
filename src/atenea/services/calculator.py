"""Cart pricing: cash discount per line item, totals and payment balance.

All amounts are whole currency units. Return lines carry their prices with a
negative sign so they reduce the net total.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from atenea.domain.models import CartLineItem, PaymentAllocation, PaymentMethod

CASH_DISCOUNT_PERCENT = 10
ROUNDING_TOLERANCE = 1000
ROUNDING_DENOMINATIONS = (100, 500, 1000)


@dataclass(frozen=True)
class CartTotals:
    subtotal_at_list: int
    net_total: int
    savings: int
    total_collected: int
    balance_remaining: int
    item_prices: dict[str, int]


def apply_cash_discount(price: int) -> int:
    # half-up rounding of price * 0.9 done in integers
    return (int(price) * (100 - CASH_DISCOUNT_PERCENT) + 50) // 100


def signed_list_price(item: CartLineItem) -> int:
    return -abs(int(item.list_price)) if item.is_return else int(item.list_price)


def discounted_item_ids(allocations: Iterable[PaymentAllocation]) -> set[str]:
    ids: set[str] = set()
    for p in allocations:
        if p.method == PaymentMethod.CASH:
            ids.update(p.applied_to_items)
    return ids


def effective_unit_price(item: CartLineItem, discounted_ids: set[str]) -> int:
    price = signed_list_price(item)
    if item.id in discounted_ids:
        return apply_cash_discount(price)
    return price


def has_cash_rounding(allocations: Iterable[PaymentAllocation]) -> bool:
    return any(p.method == PaymentMethod.CASH and p.rounding_base for p in allocations)


def compute_totals(items: Sequence[CartLineItem], allocations: Sequence[PaymentAllocation]) -> CartTotals:
    discounted = discounted_item_ids(allocations)
    subtotal = 0
    net = 0
    prices: dict[str, int] = {}
    for item in items:
        qty = int(item.quantity)
        price = effective_unit_price(item, discounted)
        prices[item.id] = price
        subtotal += signed_list_price(item) * qty
        net += price * qty

    collected = sum(int(p.amount) for p in allocations)
    return CartTotals(
        subtotal_at_list=subtotal,
        net_total=net,
        savings=subtotal - net,
        total_collected=collected,
        balance_remaining=net - collected,
        item_prices=prices,
    )


def ready_to_submit(
    items: Sequence[CartLineItem],
    allocations: Sequence[PaymentAllocation],
    allow_pending: bool = False,
) -> bool:
    """Checkout gate: settled balance, credit-issuing cart, or a cash rounding within tolerance."""
    if not items:
        return False
    totals = compute_totals(items, allocations)
    if totals.balance_remaining == 0 or totals.net_total < 0:
        return True
    if has_cash_rounding(allocations) and abs(totals.balance_remaining) < ROUNDING_TOLERANCE:
        return True
    return allow_pending and totals.balance_remaining > 0
