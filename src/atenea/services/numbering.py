"""Semantic transaction identifiers: ``{kind}{YYMMDD}{seq:03d}``."""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from atenea.domain.errors import ValidationError

log = logging.getLogger("atenea.sales")

PREFIX_SALE = "V"
PREFIX_PENDING = "S"
PREFIX_EXCHANGE = "C"


def classify(has_return: bool, is_pending: bool) -> str:
    if has_return:
        return PREFIX_EXCHANGE
    if is_pending:
        return PREFIX_PENDING
    return PREFIX_SALE


def date_stamp(date_iso: str) -> str:
    try:
        return date.fromisoformat(date_iso).strftime("%y%m%d")
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid date: {date_iso!r}. Expected YYYY-MM-DD.") from e


def next_transaction_id(existing_ids: Iterable[str], date_iso: str, prefix: str) -> str:
    """Next identifier for a date given the identifiers already recorded on it.

    The sequence is the count of distinct surviving identifiers plus one, so
    deleted transactions never leave gaps. If that identifier is still taken
    (a deletion in the middle of the day) the sequence moves forward, which
    deliberately gives up the strict count-plus-one rule so ids stay unique.
    """
    taken = {t for t in existing_ids if t}
    stamp = date_stamp(date_iso)
    seq = len(taken) + 1
    candidate = f"{prefix}{stamp}{seq:03d}"
    while candidate in taken:
        log.warning("transaction_id_taken id=%s", candidate)
        seq += 1
        candidate = f"{prefix}{stamp}{seq:03d}"
    return candidate
