from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from atenea.domain.errors import NotFoundError, ValidationError
from atenea.domain.models import (
    STATUS_COMPLETED,
    STATUS_PENDING,
    CartLineItem,
    Identity,
    MultiSaleData,
    PaymentAllocation,
    PaymentMethod,
    SaleLine,
    VOUCHER_ACTIVE,
    SettlementResult,
    VoucherReceipt,
)
from atenea.repositories.store import utc_now
from atenea.services import calculator, numbering
from atenea.services.auth_service import ensure_allowed
from atenea.services.calculator import CartTotals
from atenea.services.client_service import ClientService
from atenea.services.payment_manager import CREDIT_INSTALLMENTS
from atenea.services.reversal_service import ReversalService
from atenea.services.stock_ledger import InventoryStockLedger
from atenea.services.voucher_service import VoucherService

log = logging.getLogger("atenea.sales")

RETURN_MARKER = "(DEVOLUCIÓN) "
ROUNDING_PRODUCT_NAME = "💰 AJUSTE POR REDONDEO"
ROUNDING_LINE_ID = "rounding-adjustment"
ROUNDING_SIZE = "U"
PENDING_VALIDITY_DAYS = 90
ISSUED_VOUCHER_NOTE = "Vale emitido: "


@dataclass(frozen=True)
class _Checked:
    data: MultiSaleData
    totals: CartTotals
    prior_lines: tuple[SaleLine, ...]
    used_before: frozenset[str]
    prior_voucher_code: Optional[str] = None


def issued_voucher_code(line: SaleLine) -> Optional[str]:
    """Code of the store credit a saved transaction handed out, if any."""
    if line.notes and line.notes.startswith(ISSUED_VOUCHER_NOTE):
        return line.notes[len(ISSUED_VOUCHER_NOTE):].strip() or None
    return None


class SettlementService:
    """Persists a checkout: client, rounding, vouchers, lines and stock."""

    def __init__(
        self,
        repo,
        stock: InventoryStockLedger,
        vouchers: VoucherService,
        clients: ClientService,
        reversal: ReversalService,
        identity: Optional[Identity] = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.stock = stock
        self.vouchers = vouchers
        self.clients = clients
        self.reversal = reversal
        self.identity = identity
        self.clock = clock or utc_now

    def save(self, data: MultiSaleData) -> SettlementResult:
        """Validates then settles a submission.

        Validation and permission errors are raised before anything is
        written. Failures while settling are returned as an unsuccessful
        result; steps already completed stay written.
        """
        checked = self._validate(data)
        try:
            return self._settle(checked)
        except Exception as exc:
            log.exception(
                "sale_settlement_failed date=%s edit=%s original_id=%s",
                data.date, data.is_edit, data.original_transaction_id,
            )
            return SettlementResult(success=False, error=exc)

    def delete(self, transaction_id: str) -> int:
        return self.reversal.delete_transaction(transaction_id)

    # ---------- Validation ----------
    def _validate(self, data: MultiSaleData) -> _Checked:
        ensure_allowed(self.identity, "create_sale")

        if not data.items:
            raise ValidationError("Cart is empty.")
        numbering.date_stamp(data.date)

        ids = [i.id for i in data.items]
        if len(set(ids)) != len(ids):
            raise ValidationError("Cart items must have unique ids.")
        for item in data.items:
            if not (item.product or "").strip():
                raise ValidationError("Product name is required.")
            if item.id == ROUNDING_LINE_ID:
                raise ValidationError("Rounding adjustments are added automatically.")
            if int(item.quantity) < 1:
                raise ValidationError("Qty must be >= 1.")
            if int(item.list_price) <= 0:
                raise ValidationError("Price must be > 0.")

        if not data.payments:
            raise ValidationError("At least one payment is required.")

        prior_lines: tuple[SaleLine, ...] = ()
        used_before: set[str] = set()
        prior_voucher_code: Optional[str] = None
        if data.is_edit:
            if not data.original_transaction_id:
                raise ValidationError("Editing requires the original transaction id.")
            prior_lines = tuple(self.repo.lines_for_transaction(data.original_transaction_id))
            if not prior_lines:
                raise NotFoundError(f"Transaction {data.original_transaction_id} not found.")
            used_before = {
                p.voucher_code.strip().upper() for p in prior_lines[0].payments
                if p.method == PaymentMethod.VOUCHER and p.voucher_code
            }
            prior_voucher_code = issued_voucher_code(prior_lines[0])

        totals = calculator.compute_totals(data.items, data.payments)
        seen_codes: set[str] = set()
        for p in data.payments:
            if p.method == PaymentMethod.CREDIT and p.installments not in CREDIT_INSTALLMENTS:
                raise ValidationError(f"Installments must be one of {CREDIT_INSTALLMENTS}.")
            if p.rounding_base is not None and p.rounding_base not in calculator.ROUNDING_DENOMINATIONS:
                raise ValidationError(f"Rounding must be one of {calculator.ROUNDING_DENOMINATIONS}.")
            if int(p.amount) < 0 and totals.net_total >= 0:
                raise ValidationError("Payment amounts must be >= 0.")
            if p.method == PaymentMethod.VOUCHER:
                if not p.voucher_code:
                    raise ValidationError("Voucher payments need a voucher code.")
                code = p.voucher_code.strip().upper()
                if code in seen_codes:
                    raise ValidationError(f"Voucher {code} is applied more than once.")
                seen_codes.add(code)
                if code in used_before:
                    voucher = self.repo.get_voucher(code)
                else:
                    voucher = self.vouchers.find_redeemable(code)
                # vouchers are spent whole, never above their balance
                if voucher is not None and int(p.amount) > voucher.current_amount:
                    raise ValidationError(
                        f"Voucher {code} covers at most {voucher.current_amount}."
                    )

        if totals.net_total > 0 and totals.total_collected == 0 and not data.force_completed:
            raise ValidationError("No payment registered for this sale.")

        if data.client_id and not data.new_client and self.repo.get_client(data.client_id) is None:
            raise NotFoundError("Client not found.")

        return _Checked(
            data=data,
            totals=totals,
            prior_lines=prior_lines,
            used_before=frozenset(used_before),
            prior_voucher_code=prior_voucher_code,
        )

    # ---------- Settlement ----------
    def _settle(self, checked: _Checked) -> SettlementResult:
        data = checked.data
        totals = checked.totals
        now = self.clock()

        client_id = data.client_id
        if data.new_client and not client_id:
            client_id = self.clients.create_client(data.new_client).id

        net = totals.net_total
        collected = totals.total_collected
        diff = collected - net
        needs_rounding_line = 0 < abs(diff) < calculator.ROUNDING_TOLERANCE
        settled_total = net + (diff if needs_rounding_line else 0)

        is_pending = collected < settled_total and not data.force_completed
        has_return = any(i.is_return for i in data.items)
        prefix = numbering.classify(has_return, is_pending)

        credit = abs(collected) if collected < 0 else max(0, collected - settled_total)
        voucher = self._issue_credit(credit, data.date, prefix, checked.prior_voucher_code)

        for p in data.payments:
            if p.method != PaymentMethod.VOUCHER or not p.voucher_code:
                continue
            code = p.voucher_code.strip().upper()
            if code not in checked.used_before:
                self.vouchers.redeem(code)

        if data.is_edit:
            transaction_id = str(data.original_transaction_id)
        else:
            existing = {line.transaction_id for line in self.repo.sales_on_date(data.date)}
            transaction_id = numbering.next_transaction_id(existing, data.date, prefix)

        if checked.prior_lines:
            self.reversal.reverse_stock(checked.prior_lines)
            self.repo.delete_transaction_lines(transaction_id)

        lines = self._build_lines(
            data, totals, transaction_id,
            status=STATUS_PENDING if is_pending else STATUS_COMPLETED,
            expires_at=(now + timedelta(days=PENDING_VALIDITY_DAYS)).isoformat() if is_pending else None,
            rounding=diff if needs_rounding_line else 0,
            client_id=client_id,
            created_at=checked.prior_lines[0].created_at if checked.prior_lines else now.isoformat(),
            updated_at=now.isoformat() if data.is_edit else None,
            notes=f"{ISSUED_VOUCHER_NOTE}{voucher.code}" if voucher else None,
        )
        self.repo.insert_sale_lines(lines)

        for item in data.items:
            if not item.inventory_id or not item.size:
                continue
            if item.is_return:
                self.stock.increment(item.inventory_id, item.size, item.quantity)
            else:
                self.stock.decrement(item.inventory_id, item.size, item.quantity)

        self.repo.refresh()
        log.info(
            "sale_settled id=%s status=%s net=%s collected=%s rounding=%s voucher=%s edit=%s",
            transaction_id,
            lines[0].status,
            net,
            collected,
            diff if needs_rounding_line else 0,
            voucher.code if voucher else None,
            data.is_edit,
        )
        return SettlementResult(
            success=True,
            transaction_id=transaction_id,
            status=lines[0].status,
            voucher=voucher,
            notify_whatsapp=data.notify_whatsapp,
        )

    def _issue_credit(
        self, credit: int, date_iso: str, kind: str, prior_code: Optional[str]
    ) -> Optional[VoucherReceipt]:
        """Issues the credit owed, accounting for what an edited transaction already gave.

        An untouched voucher from the previous save is kept when the amount
        still matches and voided otherwise. A voucher that was already spent
        or lapsed counts against the new credit.
        """
        prior = self.repo.get_voucher(prior_code) if prior_code else None
        if prior is not None:
            if prior.status == VOUCHER_ACTIVE:
                if prior.initial_amount == credit:
                    return VoucherReceipt(code=prior.code, amount=prior.initial_amount, expires_at=prior.expires_at)
                self.vouchers.void(prior.code)
            else:
                if credit < prior.initial_amount:
                    log.warning(
                        "edit_credit_already_spent code=%s status=%s issued=%s owed=%s",
                        prior.code, prior.status, prior.initial_amount, credit,
                    )
                credit -= prior.initial_amount
        if credit <= 0:
            return None
        return self.vouchers.issue(credit, date_iso, kind=kind)

    def _build_lines(
        self,
        data: MultiSaleData,
        totals: CartTotals,
        transaction_id: str,
        status: str,
        expires_at: Optional[str],
        rounding: int,
        client_id: Optional[str],
        created_at: str,
        updated_at: Optional[str],
        notes: Optional[str] = None,
    ) -> list[SaleLine]:
        line_ids = {item.id: self.repo.new_id() for item in data.items}
        # discounts point at the persisted line ids so a reloaded cart keeps them
        payments = tuple(
            replace(p, applied_to_items=[line_ids[i] for i in p.applied_to_items if i in line_ids])
            for p in data.payments
        )
        primary_method = payments[0].method.value if payments else PaymentMethod.CASH.value

        def line(line_id, product, quantity, price, list_price, cost, size, inventory_id) -> SaleLine:
            return SaleLine(
                id=line_id,
                date=data.date,
                transaction_id=transaction_id,
                product_name=product,
                quantity=int(quantity),
                price=int(price),
                list_price=int(list_price),
                cost_price=int(cost),
                payment_method=primary_method,
                payments=payments,
                status=status,
                expires_at=expires_at,
                size=size,
                inventory_id=inventory_id,
                client_id=client_id,
                user_id=self.repo.user_id,
                created_at=created_at,
                updated_at=updated_at,
                notes=notes,
            )

        lines = [
            line(
                line_ids[item.id],
                f"{RETURN_MARKER}{item.product.strip()}" if item.is_return else item.product.strip(),
                item.quantity,
                totals.item_prices[item.id],
                calculator.signed_list_price(item),
                item.cost_price,
                item.size,
                item.inventory_id,
            )
            for item in data.items
        ]
        if rounding:
            lines.append(
                line(self.repo.new_id(), ROUNDING_PRODUCT_NAME, 1, rounding, 0, 0, ROUNDING_SIZE, None)
            )
        return lines

    # ---------- Editing ----------
    def load_for_edit(self, transaction_id: str) -> MultiSaleData:
        """Rebuilds the cart and payments of a persisted transaction."""
        lines = self.repo.lines_for_transaction(transaction_id)
        if not lines:
            raise NotFoundError(f"Transaction {transaction_id} not found.")

        items: list[CartLineItem] = []
        for sale in lines:
            if sale.product_name == ROUNDING_PRODUCT_NAME:
                continue
            is_return = sale.price < 0
            items.append(
                CartLineItem(
                    id=sale.id,
                    product=sale.product_name.replace(RETURN_MARKER, "", 1),
                    quantity=sale.quantity,
                    list_price=abs(sale.list_price or sale.price),
                    final_price=sale.price,
                    size=sale.size or ROUNDING_SIZE,
                    inventory_id=sale.inventory_id,
                    cost_price=sale.cost_price,
                    is_return=is_return,
                )
            )

        payments = [
            PaymentAllocation(
                method=p.method,
                amount=p.amount,
                installments=p.installments,
                voucher_code=p.voucher_code,
                rounding_base=p.rounding_base,
                applied_to_items=list(p.applied_to_items),
            )
            for p in lines[0].payments
        ]
        return MultiSaleData(
            date=lines[0].date,
            items=items,
            payments=payments,
            is_edit=True,
            original_transaction_id=transaction_id,
            client_id=lines[0].client_id,
        )
