from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from receipt_intake.modules.receipts.fingerprint import (
    fingerprint,
    normalize_amount,
    normalize_date,
)


def test_fingerprint_ignores_case_whitespace_and_amount_precision():
    a = fingerprint("ACME Mart", date(2026, 2, 10), 12.5)
    b = fingerprint(" acme mart ", date(2026, 2, 10), Decimal("12.50"))
    assert a is not None
    assert a == b
    assert len(a) == 64


def test_fingerprint_accepts_strings_and_datetimes_for_the_same_triple():
    expected = fingerprint("ACME Mart", date(2026, 2, 10), Decimal("12.50"))
    assert fingerprint("Acme Mart", "2026-02-10", "12.5") == expected
    assert fingerprint("ACME MART", "2026-02-10T18:45:00+07:00", 12.50) == expected
    assert (
        fingerprint("acme mart", datetime(2026, 2, 10, 23, 59, tzinfo=timezone.utc), 12.5)
        == expected
    )


def test_fingerprint_differs_when_any_field_differs():
    base = fingerprint("ACME Mart", date(2026, 2, 10), Decimal("12.50"))
    assert base != fingerprint("ACME Mart", date(2026, 2, 11), Decimal("12.50"))
    assert base != fingerprint("ACME Mart", date(2026, 2, 10), Decimal("12.51"))
    assert base != fingerprint("ACME Market", date(2026, 2, 10), Decimal("12.50"))


def test_fingerprint_requires_all_three_fields():
    assert fingerprint(None, date(2026, 2, 10), 12.5) is None
    assert fingerprint("   ", date(2026, 2, 10), 12.5) is None
    assert fingerprint("ACME Mart", None, 12.5) is None
    assert fingerprint("ACME Mart", date(2026, 2, 10), None) is None
    assert fingerprint("ACME Mart", "", 12.5) is None
    assert fingerprint("ACME Mart", date(2026, 2, 10), " ") is None


def test_zero_amount_still_counts_as_present():
    assert fingerprint("ACME Mart", date(2026, 2, 10), 0) is not None


def test_amount_rounds_half_up_to_cents():
    assert normalize_amount("12.345") == Decimal("12.35")
    assert normalize_amount(0.125) == Decimal("0.13")
    assert normalize_amount("-1.005") == Decimal("-1.01")
    assert normalize_amount(7) == Decimal("7.00")
    assert fingerprint("ACME Mart", "2026-02-10", "12.345") == fingerprint(
        "ACME Mart", "2026-02-10", "12.35"
    )


@pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", "12,50", True])
def test_normalize_amount_rejects_non_numeric_values(raw):
    with pytest.raises(ValueError):
        normalize_amount(raw)


def test_normalize_date_rejects_garbage():
    assert normalize_date("2026-02-10 08:00:00") == date(2026, 2, 10)
    with pytest.raises(ValueError):
        normalize_date("10/02/2026")


@pytest.mark.parametrize("raw", ["1e30", 1e30, "12345678901234.00", "-10000000000000"])
def test_normalize_amount_rejects_amounts_too_large_to_store(raw):
    with pytest.raises(ValueError):
        normalize_amount(raw)


def test_largest_storable_amount_is_accepted():
    assert normalize_amount("9999999999999.99") == Decimal("9999999999999.99")


def test_fingerprint_rejects_oversized_amounts_instead_of_overflowing():
    with pytest.raises(ValueError):
        fingerprint("Acme", "2026-02-10", "1e30")


@pytest.mark.parametrize("raw", ["2026-02-10xyz", "2026-02-1", "2026-02-10 garbage"])
def test_normalize_date_rejects_trailing_garbage(raw):
    with pytest.raises(ValueError):
        normalize_date(raw)
