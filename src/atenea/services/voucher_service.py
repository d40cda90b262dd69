from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from atenea.domain.errors import NotFoundError, ValidationError
from atenea.domain.models import (
    VOUCHER_ACTIVE,
    VOUCHER_EXPIRED,
    VOUCHER_USED,
    Voucher,
    VoucherReceipt,
)
from atenea.repositories.store import utc_now
from atenea.services.numbering import PREFIX_SALE, date_stamp

log = logging.getLogger("atenea.sales")

VOUCHER_VALIDITY_DAYS = 90
_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_ATTEMPTS = 5


def parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class VoucherService:
    def __init__(self, repo, clock: Callable[[], datetime] | None = None):
        self.repo = repo
        self.clock = clock or utc_now

    @staticmethod
    def generate_code(date_iso: str, kind: str = PREFIX_SALE) -> str:
        suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(3))
        return f"VALE-{kind}{date_stamp(date_iso)}-{suffix}"

    def issue(self, amount: int, date_iso: str, kind: str = PREFIX_SALE) -> VoucherReceipt:
        amount = int(amount)
        if amount <= 0:
            raise ValidationError("Voucher amount must be > 0.")

        for _ in range(_CODE_ATTEMPTS):
            code = self.generate_code(date_iso, kind)
            if self.repo.get_voucher(code) is None:
                break
        else:
            raise ValidationError("Could not generate a unique voucher code.")

        now = self.clock()
        expires_at = (now + timedelta(days=VOUCHER_VALIDITY_DAYS)).isoformat()
        self.repo.add_voucher(
            Voucher(
                id=self.repo.new_id(),
                code=code,
                initial_amount=amount,
                current_amount=amount,
                status=VOUCHER_ACTIVE,
                expires_at=expires_at,
                created_at=now.isoformat(),
                user_id=self.repo.user_id,
            )
        )
        log.info("voucher_issued code=%s amount=%s expires_at=%s", code, amount, expires_at)
        return VoucherReceipt(code=code, amount=amount, expires_at=expires_at)

    def find_redeemable(self, code: str) -> Voucher:
        code = (code or "").strip().upper()
        if not code:
            raise ValidationError("Voucher code is required.")
        voucher = self.repo.get_voucher(code)
        if voucher is None:
            raise NotFoundError(f"Voucher {code} not found.")
        if voucher.status != VOUCHER_ACTIVE:
            raise ValidationError(f"Voucher {code} is {voucher.status}.")
        if parse_timestamp(voucher.expires_at) < self.clock():
            raise ValidationError(f"Voucher {code} expired on {voucher.expires_at[:10]}.")
        return voucher

    def redeem(self, code: str) -> None:
        """Marks the voucher fully used; balances are not split."""
        changed = self.repo.set_voucher_status(code, VOUCHER_USED)
        if not changed:
            raise NotFoundError(f"Voucher {code} not found.")
        log.info("voucher_redeemed code=%s", code)

    def void(self, code: str) -> None:
        """Withdraws an unspent voucher that no longer reflects what is owed."""
        changed = self.repo.set_voucher_status(code, VOUCHER_EXPIRED)
        if not changed:
            raise NotFoundError(f"Voucher {code} not found.")
        log.info("voucher_voided code=%s", code)

    def list_active(self) -> list[Voucher]:
        return self.repo.list_vouchers(VOUCHER_ACTIVE)

    def expire_overdue(self, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        expired = 0
        for voucher in self.repo.list_vouchers(VOUCHER_ACTIVE):
            if parse_timestamp(voucher.expires_at) < now:
                self.repo.set_voucher_status(voucher.code, VOUCHER_EXPIRED)
                expired += 1
        if expired:
            log.info("vouchers_expired count=%s", expired)
        return expired
