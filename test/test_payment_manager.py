import pytest
from conftest import SALE_DATE, cart_item

from atenea.domain.errors import ValidationError
from atenea.domain.models import PaymentMethod
from atenea.services.payment_manager import PaymentAllocationManager


def _manager(*items):
    return PaymentAllocationManager(items=list(items))


def test_new_payment_defaults_to_remaining_balance():
    mgr = _manager(cart_item("a", 10000))
    first = mgr.add_allocation(PaymentMethod.CASH)
    second = mgr.add_allocation(PaymentMethod.TRANSFER)

    assert first.amount == 10000
    assert second.amount == 0


def test_two_payments_balance_each_other():
    mgr = _manager(cart_item("a", 10000))
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.add_allocation(PaymentMethod.DEBIT)

    mgr.set_amount(0, 4000)
    assert mgr.allocations[1].amount == 6000

    mgr.set_amount(1, 12000)
    assert mgr.allocations[1].amount == 12000
    assert mgr.allocations[0].amount == 0


def test_three_payments_are_not_auto_balanced():
    mgr = _manager(cart_item("a", 9000))
    for method in (PaymentMethod.CASH, PaymentMethod.DEBIT, PaymentMethod.TRANSFER):
        mgr.add_allocation(method)

    mgr.set_amount(0, 3000)
    assert [p.amount for p in mgr.allocations] == [3000, 0, 0]
    assert mgr.totals.balance_remaining == 6000
    assert not mgr.ready_to_submit()


def test_remove_allocation_does_not_rebalance():
    mgr = _manager(cart_item("a", 9000))
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.add_allocation(PaymentMethod.DEBIT)
    mgr.set_amount(0, 5000)

    mgr.remove_allocation(1)
    assert len(mgr.allocations) == 1
    assert mgr.allocations[0].amount == 5000


def test_credit_installments_default_and_validation():
    mgr = _manager(cart_item("a", 9000))
    credit = mgr.add_allocation(PaymentMethod.CREDIT)
    assert credit.installments == 1

    with pytest.raises(ValidationError, match="Installments"):
        mgr.add_allocation(PaymentMethod.CREDIT, installments=5)


def test_toggle_discount_moves_cash_amount_with_the_net_total():
    mgr = _manager(cart_item("a", 5000, quantity=2))
    mgr.add_allocation(PaymentMethod.CASH)

    assert mgr.toggle_item_discount(0, "a")
    assert mgr.allocations[0].applied_to_items == ["a"]
    assert mgr.allocations[0].amount == 9000
    assert mgr.totals.net_total == 9000
    assert mgr.totals.balance_remaining == 0

    assert mgr.toggle_item_discount(0, "a")
    assert mgr.allocations[0].applied_to_items == []
    assert mgr.allocations[0].amount == 10000


def test_toggle_discount_is_ignored_for_non_cash_payments():
    mgr = _manager(cart_item("a", 5000))
    mgr.add_allocation(PaymentMethod.DEBIT)

    assert not mgr.toggle_item_discount(0, "a")
    assert mgr.allocations[0].applied_to_items == []
    assert mgr.allocations[0].amount == 5000


def test_rounding_to_denominations():
    mgr = _manager(cart_item("a", 9950))
    mgr.add_allocation(PaymentMethod.CASH)

    mgr.apply_rounding(0, 1000)
    assert mgr.allocations[0].amount == 9000
    assert mgr.allocations[0].rounding_base == 1000

    mgr.apply_rounding(0, 500)
    assert mgr.allocations[0].amount == 9500

    mgr.apply_rounding(0, None)
    assert mgr.allocations[0].amount == 9950
    assert mgr.allocations[0].rounding_base is None


def test_rounding_accounts_for_other_payments():
    mgr = _manager(cart_item("a", 9950))
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.add_allocation(PaymentMethod.TRANSFER)
    mgr.set_amount(1, 5000)
    assert mgr.allocations[0].amount == 4950

    mgr.apply_rounding(0, 1000)
    assert mgr.allocations[0].amount == 4000
    assert mgr.ready_to_submit()


def test_rounding_rejects_unknown_denomination_and_skips_non_cash():
    mgr = _manager(cart_item("a", 9950))
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.add_allocation(PaymentMethod.DEBIT)

    with pytest.raises(ValidationError):
        mgr.apply_rounding(0, 200)
    assert not mgr.apply_rounding(1, 100)


def test_cart_changes_rebalance_a_single_payment():
    mgr = _manager(cart_item("a", 5000))
    mgr.add_allocation(PaymentMethod.CASH)

    mgr.add_item(cart_item("b", 3000, product="Medias"))
    assert mgr.allocations[0].amount == 8000

    mgr.set_quantity("b", 2)
    assert mgr.allocations[0].amount == 11000

    mgr.remove_item("b")
    assert mgr.allocations[0].amount == 5000


def test_second_payment_absorbs_cart_changes():
    mgr = _manager(cart_item("a", 5000))
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.add_allocation(PaymentMethod.DEBIT)
    mgr.set_amount(0, 2000)

    mgr.add_item(cart_item("b", 3000, product="Medias"))
    assert [p.amount for p in mgr.allocations] == [2000, 6000]


def test_active_rounding_freezes_amounts():
    mgr = _manager(cart_item("a", 9950))
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.apply_rounding(0, 1000)

    mgr.add_item(cart_item("b", 3000, product="Medias"))
    assert mgr.allocations[0].amount == 9000


def test_removing_an_item_clears_it_from_discounts():
    mgr = _manager(cart_item("a", 5000), cart_item("b", 3000, product="Medias"))
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.toggle_item_discount(0, "b")

    mgr.remove_item("b")
    assert mgr.allocations[0].applied_to_items == []
    assert mgr.allocations[0].amount == 5000


def test_duplicate_items_and_bad_quantities_are_rejected():
    mgr = _manager(cart_item("a", 5000))
    with pytest.raises(ValidationError):
        mgr.add_item(cart_item("a", 5000))
    with pytest.raises(ValidationError):
        mgr.set_quantity("a", 0)
    with pytest.raises(ValidationError):
        mgr.set_quantity("zzz", 1)


def test_build_submission_stamps_effective_prices():
    original = cart_item("a", 5000, quantity=2)
    mgr = _manager(original)
    mgr.add_allocation(PaymentMethod.CASH)
    mgr.toggle_item_discount(0, "a")

    data = mgr.build_submission(SALE_DATE, notify_whatsapp=True)

    assert data.items[0].final_price == 4500
    assert original.final_price == 5000
    assert data.payments[0].applied_to_items == ["a"]
    assert data.payments[0] is not mgr.allocations[0]
    assert data.notify_whatsapp
    assert not data.is_edit
