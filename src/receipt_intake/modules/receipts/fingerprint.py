"""
Content fingerprints for duplicate detection.

Two receipts describe the same expense when their store name, transaction date
and total amount agree after normalization. The fingerprint is a SHA-256 digest
of those three normalized values, so it is stable across formatting
differences in what the extraction service sends back.
"""

from __future__ import annotations

import hashlib
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CENT = Decimal("0.01")
# Stored as Numeric(15, 2): at most 13 integer digits.
_AMOUNT_LIMIT = Decimal(10) ** 13
_DELIMITER = "|"


def normalize_store_name(value: str | None) -> str | None:
    if value is None:
        return None
    name = value.strip().casefold()
    return name or None


def normalize_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError as e:
        raise ValueError(f"Unparsable date: {value!r}") from e


def normalize_amount(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Unparsable amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValueError(f"Unparsable amount: {value!r}")
        amount = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Unparsable amount: {value!r}") from e
    if abs(amount) >= _AMOUNT_LIMIT:
        raise ValueError(f"Amount out of range: {value!r}")
    return amount


def fingerprint(
    store_name: str | None,
    transaction_date: date | datetime | str | None,
    total_amount: Decimal | int | float | str | None,
) -> str | None:
    """Return the hex digest for the triple, or None when any part is missing."""
    store = normalize_store_name(store_name)
    if store is None or transaction_date is None or total_amount is None:
        return None
    if isinstance(transaction_date, str) and not transaction_date.strip():
        return None
    if isinstance(total_amount, str) and not total_amount.strip():
        return None

    canonical = _DELIMITER.join(
        (
            store,
            normalize_date(transaction_date).isoformat(),
            f"{normalize_amount(total_amount):f}",
        )
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
