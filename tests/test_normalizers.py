from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger_import.errors import AmountError
from ledger_import.models import SignConvention
from ledger_import.normalizers import (
    amount_marker,
    apply_type_field,
    format_amount,
    parse_amount,
    parse_date,
    parse_date_checked,
    parse_debit_credit,
)

TODAY = date(2024, 6, 30)


@pytest.mark.parametrize(
    "raw",
    ["15/01/2024", "2024-01-15", "15 Jan 2024", "15-01-2024", "15.01.2024", "20240115"],
)
def test_regional_layouts_resolve_to_same_day(raw):
    assert parse_date(raw) == date(2024, 1, 15)


def test_ambiguous_numeric_date_is_day_first_by_default():
    assert parse_date("03/04/2024") == date(2024, 4, 3)


def test_month_first_hint_flips_ambiguous_date():
    assert parse_date("03/04/2024", "MM/DD/YYYY") == date(2024, 3, 4)


def test_iso_with_time_component():
    assert parse_date("2024-01-15T13:45:00") == date(2024, 1, 15)


def test_month_name_first():
    assert parse_date("Jan 15, 2024") == date(2024, 1, 15)


def test_ofx_compact_with_time_and_zone():
    assert parse_date("20240115120000[-5:EST]") == date(2024, 1, 15)


def test_hint_handles_two_digit_year():
    assert parse_date("15/01/24", "DD/MM/YY") == date(2024, 1, 15)


def test_qif_apostrophe_year_via_hint():
    assert parse_date("12/25'23", "MM/DD/YYYY") == date(2023, 12, 25)


def test_unparseable_date_falls_back_to_today_with_warning():
    parsed, warning = parse_date_checked("not a date", today=TODAY)
    assert parsed == TODAY
    assert warning is not None and "not a date" in warning


def test_empty_date_falls_back_to_today_with_warning():
    parsed, warning = parse_date_checked("  ", today=TODAY)
    assert parsed == TODAY
    assert warning is not None


def test_invalid_calendar_day_is_not_accepted():
    parsed, warning = parse_date_checked("31/02/2024", today=TODAY)
    assert parsed == TODAY
    assert warning is not None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(12.34)", "-12.34"),
        ("$1,234.56", "1234.56"),
        ("-£45.00", "-45.00"),
        ("1.234,56 €", "1234.56"),
        ("12,50", "12.50"),
        ("EUR 1 234,56", "1234.56"),
        ("100.00-", "-100.00"),
        ("+7", "7"),
        ("USD 20.00", "20.00"),
    ],
)
def test_parse_amount_formats(raw, expected):
    assert parse_amount(raw) == Decimal(expected)


def test_cr_dr_suffix_decides_sign():
    assert parse_amount("12.34 CR") == Decimal("12.34")
    assert parse_amount("12.34DR") == Decimal("-12.34")
    assert parse_amount("-12.34 CR") == Decimal("12.34")


def test_cr_dr_marker_wins_over_inverted_convention():
    assert parse_amount("50.00 CR", SignConvention.INVERTED) == Decimal("50.00")
    assert parse_amount("50.00 DR", SignConvention.INVERTED) == Decimal("-50.00")


def test_inverted_convention_flips_plain_sign():
    assert parse_amount("25.00", SignConvention.INVERTED) == Decimal("-25.00")
    assert parse_amount("-25.00", SignConvention.INVERTED) == Decimal("25.00")


def test_amount_marker_detection():
    assert amount_marker("10.00 CR") == "CR"
    assert amount_marker("10.00 dr") == "DR"
    assert amount_marker("10.00") is None
    assert amount_marker(None) is None


@pytest.mark.parametrize("raw", ["", "   ", None, "abc", "12.3.4.5x", "--"])
def test_parse_amount_rejects_non_numbers(raw):
    with pytest.raises(AmountError):
        parse_amount(raw)


def test_debit_credit_columns():
    assert parse_debit_credit("45.10", "") == Decimal("-45.10")
    assert parse_debit_credit("", "1,200.00") == Decimal("1200.00")
    # Some banks write debits with a sign already; magnitude is what counts.
    assert parse_debit_credit("-45.10", None) == Decimal("-45.10")


def test_debit_credit_both_empty_is_an_error():
    with pytest.raises(AmountError):
        parse_debit_credit(" ", None)


def test_type_field_directs_unsigned_amount():
    assert apply_type_field(Decimal("9.99"), "Debit") == Decimal("-9.99")
    assert apply_type_field(Decimal("9.99"), "CREDIT") == Decimal("9.99")
    assert apply_type_field(Decimal("9.99"), "card payment") == Decimal("-9.99")
    assert apply_type_field(Decimal("-9.99"), "refund") == Decimal("9.99")


def test_type_field_unknown_or_blank_keeps_sign():
    assert apply_type_field(Decimal("-3.00"), "transfer") == Decimal("-3.00")
    assert apply_type_field(Decimal("3.00"), "") == Decimal("3.00")


def test_type_field_custom_markers():
    out = apply_type_field(Decimal("5"), "Sell", debit_markers=["buy"], credit_markers=["sell"])
    assert out == Decimal("5")
    out = apply_type_field(Decimal("5"), "Buy", debit_markers=["buy"], credit_markers=["sell"])
    assert out == Decimal("-5")


def test_format_amount_rounds_half_up():
    assert format_amount(Decimal("1.005")) == "1.01"
    assert format_amount(Decimal("-2")) == "-2.00"
