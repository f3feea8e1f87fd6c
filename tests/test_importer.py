# ruff: noqa: E501
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger_import import import_file
from ledger_import.config import ImportOptions
from ledger_import.errors import MappingError, ParseError
from ledger_import.importer import build_candidate
from ledger_import.ledger import InMemoryLedger
from ledger_import.models import (
    ImportProfile,
    SignConvention,
    LedgerTransaction,
    RawRecord,
    SourceFormat,
    TransactionType,
)
from ledger_import.profiles import BankCatalog
from ledger_import.rules import ImportRule, RuleAction, RuleCondition
from tests.helpers.samples import OFX_SGML, QIF_BANK, dedent

TODAY = date(2024, 6, 30)

GENERIC_CSV = dedent(
    """
    Date,Description,Amount
    15/01/2024,TESCO STORES 2231,-45.10
    16/01/2024,Salary ACME,"2,000.00"
    17/01/2024,Rent,-900.00
    """
)


def _ledger_with_tesco() -> InMemoryLedger:
    return InMemoryLedger(
        [
            LedgerTransaction(
                id="tx-existing",
                account_id="acc-1",
                date=date(2024, 1, 15),
                amount=Decimal("45.10"),
                type=TransactionType.EXPENSE,
                description="TESCO STORES 2231",
            )
        ]
    )


def test_ledger_duplicate_is_skipped_and_rest_imported():
    result = import_file(
        GENERIC_CSV, ledger=_ledger_with_tesco(), account_id="acc-1", today=TODAY
    )

    assert [c.description for c in result.imported] == ["Salary ACME", "Rent"]
    assert len(result.skipped_duplicates) == 1
    dup = result.skipped_duplicates[0]
    assert dup.candidate_row == 2
    assert dup.existing_transaction_id == "tx-existing"
    assert dup.similarity == Decimal("100.00")

    stats = result.statistics
    assert stats.total_rows == 3
    assert stats.imported == 2
    assert stats.skipped_duplicates == 1
    assert stats.failed == 0
    assert stats.total_income == Decimal("2000.00")
    assert stats.total_expense == Decimal("900.00")
    assert stats.date_range == (date(2024, 1, 16), date(2024, 1, 17))


def test_inferred_profile_reads_day_first_dates():
    result = import_file(GENERIC_CSV, account_id="acc-1", today=TODAY)
    assert [c.date for c in result.imported] == [
        date(2024, 1, 15),
        date(2024, 1, 16),
        date(2024, 1, 17),
    ]
    assert result.imported[1].type is TransactionType.INCOME
    assert result.imported[0].type is TransactionType.EXPENSE


def test_skip_duplicates_false_imports_everything():
    data = GENERIC_CSV + "15/01/2024,TESCO STORES 2231,-45.10\n"
    options = ImportOptions(skip_duplicates=False)
    result = import_file(
        data, ledger=_ledger_with_tesco(), account_id="acc-1", options=options, today=TODAY
    )
    assert result.statistics.imported == 4
    assert result.skipped_duplicates == ()


def test_within_batch_duplicate_keeps_first_row():
    data = GENERIC_CSV + "15/01/2024,Tesco Stores 2231,-45.10\n"
    result = import_file(data, account_id="acc-1", today=TODAY)
    assert result.statistics.imported == 3
    (dup,) = result.skipped_duplicates
    assert dup.candidate_row == 5
    assert dup.within_batch_row == 2


def test_failed_rows_do_not_stop_the_import():
    data = GENERIC_CSV + "18/01/2024,Broken,n/a\n"
    result = import_file(data, account_id="acc-1", today=TODAY)
    assert result.statistics.imported == 3
    (failed,) = result.failed
    assert failed.row == 5
    assert "invalid amount" in failed.reason


def test_unparseable_date_defaults_to_today_with_warning():
    data = "Date,Description,Amount\nsoon,Mystery,-1.00\n"
    result = import_file(data, account_id="acc-1", today=TODAY)
    (candidate,) = result.imported
    assert candidate.date == TODAY
    (warning,) = result.warnings
    assert warning.row == 2
    assert warning.field == "date"


def test_strict_dates_turn_bad_dates_into_failed_rows():
    profile = ImportProfile(
        name="strict",
        field_mapping={"date": "Date", "amount": "Amount", "description": "Description"},
        strict_dates=True,
    )
    data = "Date,Description,Amount\nsoon,Mystery,-1.00\n2024-01-02,Fine,-2.00\n"
    result = import_file(data, profile, account_id="acc-1", today=TODAY)
    assert [c.description for c in result.imported] == ["Fine"]
    assert result.failed[0].row == 2


def test_future_dates_and_zero_amounts_warn():
    data = "Date,Description,Amount\n2025-01-01,Later,-1.00\n2024-01-01,Nothing,0.00\n"
    result = import_file(data, account_id="acc-1", today=TODAY)
    assert result.statistics.imported == 2
    messages = [str(w) for w in result.warnings]
    assert any("future" in m for m in messages)
    assert any("zero" in m for m in messages)


def test_blank_description_gets_format_default():
    result = import_file("Date,Description,Amount\n2024-01-01,,-1.00\n", today=TODAY)
    assert result.imported[0].description == "Imported Transaction"


def test_profile_without_amount_mapping_fails_whole_import():
    profile = ImportProfile(name="broken", field_mapping={"date": "Date"})
    with pytest.raises(MappingError):
        import_file(GENERIC_CSV, profile, today=TODAY)


def test_unrecognizable_headers_fail_whole_import():
    with pytest.raises(MappingError):
        import_file("When,What,Value\nx,y,z\n", today=TODAY)


def test_broken_file_raises_parse_error():
    with pytest.raises(ParseError):
        import_file("Date,Description,Amount\n2024-01-01,\"broken,5\n", today=TODAY)


def test_ofx_import_uses_builtin_mapping():
    result = import_file(OFX_SGML.encode("cp1252"), today=TODAY)
    assert result.source_format is SourceFormat.OFX
    income, expense = result.imported
    assert income.amount == Decimal("2500.00")
    assert income.type is TransactionType.INCOME
    assert income.date == date(2024, 1, 5)
    assert income.description == "ACME PAYROLL - January salary"
    assert income.account_id == "998877"
    assert income.reference == "2024010501"
    assert expense.amount == Decimal("-150.00")
    assert expense.type is TransactionType.EXPENSE
    assert expense.notes == "FITID: 2024010802 | Check #: 1042"
    assert result.statement_info["LEDGERBAL"] == "3350.00"


def test_qif_import_uses_builtin_mapping():
    result = import_file(QIF_BANK, today=TODAY)
    grocery, gift, streaming = result.imported
    assert grocery.date == date(2024, 1, 5)
    assert grocery.amount == Decimal("-42.50")
    assert grocery.description == "Corner Grocery - Weekly shop"
    assert grocery.raw_category == "Food:Groceries"
    assert grocery.cleared is True
    assert grocery.notes == "Check #: 301"
    assert grocery.account_id == "Everyday Checking"
    assert gift.date == date(2023, 12, 25)
    assert gift.amount == Decimal("1000.00")
    assert gift.cleared is False
    assert streaming.date == date(2024, 1, 9)


def test_bank_profile_with_debit_credit_columns():
    data = dedent(
        """
        Transaction Date,Transaction Type,Sort Code,Account Number,Transaction Description,Debit Amount,Credit Amount,Balance
        03/02/2024,DEB,'30-00-00,12345678,CARD PAYMENT TO CAFE,4.20,,995.80
        04/02/2024,FPI,'30-00-00,12345678,EMPLOYER LTD,,1500.00,2495.80
        """
    )
    result = import_file(data, account_id="lloyds-current", today=TODAY)
    cafe, salary = result.imported
    assert cafe.amount == Decimal("-4.20")
    assert cafe.date == date(2024, 2, 3)
    assert salary.amount == Decimal("1500.00")


def test_type_field_profile_respects_cr_dr_marker():
    profile = BankCatalog.load().profile_for("mint")
    data = dedent(
        """
        Date,Description,Original Description,Amount,Transaction Type,Category,Account Name,Labels,Notes
        01/05/2024,Coffee,COFFEE,4.50,debit,Coffee Shops,Checking,work; travel,
        01/06/2024,Refund,REFUND,12.00 CR,debit,Shopping,Checking,,
        01/07/2024,Paycheck,PAY,2000.00,credit,Income,Checking,,
        """
    )
    result = import_file(data, profile, today=TODAY)
    coffee, refund, pay = result.imported
    assert coffee.amount == Decimal("-4.50")
    assert coffee.date == date(2024, 1, 5)
    assert coffee.tags == ("work", "travel")
    assert coffee.account_id == "Checking"
    assert coffee.raw_category == "Coffee Shops"
    assert refund.amount == Decimal("12.00")
    assert pay.amount == Decimal("2000.00")


def test_profile_header_not_mistaken_for_data_row():
    profile = ImportProfile(
        name="Credit union",
        field_mapping={"date": "Posted", "description": "Narration", "amount": "Sum", "type": "Kind"},
        sign_convention=SignConvention.TYPE_FIELD,
        date_format_hint="DD/MM/YYYY",
    )
    data = dedent(
        """
        Posted,Narration,Sum,Kind
        16/01/2024,Direct debit council tax,120.00,Debit
        17/01/2024,Salary,1500.00,Credit
        18/01/2024,Card payment,9.99,Debit
        """
    )
    result = import_file(data, profile, today=TODAY)
    assert result.failed == ()
    council, salary, card = result.imported
    assert council.source_row == 2
    assert council.amount == Decimal("-120.00")
    assert council.date == date(2024, 1, 16)
    assert salary.amount == Decimal("1500.00")
    assert card.description == "Card payment"


def test_explicit_account_overrides_mapped_account():
    profile = BankCatalog.load().profile_for("barclays")
    data = "Number,Date,Account,Amount,Subcategory,Memo\n1,02/01/2024,20-00-00 1234,-5.00,DEB,SHOP\n"
    result = import_file(data, profile, account_id="mine", today=TODAY)
    assert result.imported[0].account_id == "mine"
    assert result.imported[0].raw_category == "DEB"


def test_rules_enrich_and_skip_candidates():
    rules = [
        ImportRule(
            name="Ignore transfers",
            priority=10,
            conditions=[RuleCondition(field="description", operator="starts_with", value="rent")],
            actions=[RuleAction(type="skip")],
        ),
        ImportRule(
            name="Groceries",
            conditions=[RuleCondition(field="description", operator="contains", value="tesco")],
            actions=[
                RuleAction(type="set_category", value="Groceries"),
                RuleAction(type="add_tag", value="food"),
            ],
        ),
    ]
    result = import_file(GENERIC_CSV, account_id="acc-1", rules=rules, today=TODAY)
    assert [c.description for c in result.imported] == ["TESCO STORES 2231", "Salary ACME"]
    assert result.imported[0].raw_category == "Groceries"
    assert result.imported[0].tags == ("food",)
    (skip,) = result.skipped_by_rule
    assert skip.row == 4
    assert skip.rule == "Ignore transfers"
    assert result.statistics.skipped_by_rule == 1
    assert result.statistics.rules_applied == 2


def test_build_candidate_reports_cleared_and_reference():
    profile = ImportProfile(
        name="t",
        field_mapping={
            "date": "Date",
            "amount": "Amount",
            "reference": "Ref",
            "cleared": "Status",
        },
    )
    raw = RawRecord(
        fields={"Date": "2024-01-02", "Amount": "-1", "Ref": "R-1", "Status": "Cleared"},
        values=(),
        line=9,
        source_format=SourceFormat.CSV,
    )
    candidate, warnings = build_candidate(raw, profile, account_id="a", today=TODAY)
    assert warnings == []
    assert candidate.cleared is True
    assert candidate.reference == "R-1"
    assert candidate.source_row == 9
    assert candidate.description == "Imported Transaction"


def _categorized_history() -> InMemoryLedger:
    def row(tx_id: str, when: date, amount: str, description: str, category: str | None):
        return LedgerTransaction(
            id=tx_id,
            account_id="acc-1",
            date=when,
            amount=Decimal(amount),
            type=TransactionType.EXPENSE if amount.startswith("-") else TransactionType.INCOME,
            description=description,
            category=category,
        )

    return InMemoryLedger(
        [
            row("h1", date(2023, 11, 3), "-30.00", "TESCO STORES 2231", "Groceries"),
            row("h2", date(2023, 12, 8), "-52.40", "TESCO STORES 2231", "Groceries"),
            row("h3", date(2023, 12, 16), "2000.00", "Salary ACME", "Income"),
            row("h4", date(2023, 12, 20), "-900.00", "Rent", None),
        ]
    )


def test_auto_categorize_fills_missing_categories_from_ledger():
    options = ImportOptions(auto_categorize=True)
    result = import_file(
        GENERIC_CSV,
        ledger=_categorized_history(),
        account_id="acc-1",
        options=options,
        today=TODAY,
    )
    tesco, salary, rent = result.imported
    assert tesco.raw_category == "Groceries"
    assert salary.raw_category == "Income"
    assert rent.raw_category is None


def test_auto_categorize_respects_confidence_and_is_off_by_default():
    ledger = _categorized_history()
    plain = import_file(GENERIC_CSV, ledger=ledger, account_id="acc-1", today=TODAY)
    assert all(c.raw_category is None for c in plain.imported)

    # One sighting of "Salary ACME" scores 0.72, two of Tesco 0.74.
    strict = ImportOptions(auto_categorize=True, category_confidence=Decimal("0.73"))
    result = import_file(
        GENERIC_CSV, ledger=ledger, account_id="acc-1", options=strict, today=TODAY
    )
    assert [c.raw_category for c in result.imported] == ["Groceries", None, None]


def test_rules_run_after_auto_categorize():
    rule = ImportRule(
        name="Tesco is food",
        conditions=[RuleCondition(field="description", operator="contains", value="tesco")],
        actions=[RuleAction(type="set_category", value="Food")],
    )
    result = import_file(
        GENERIC_CSV,
        ledger=_categorized_history(),
        account_id="acc-1",
        options=ImportOptions(auto_categorize=True),
        rules=[rule],
        today=TODAY,
    )
    assert result.imported[0].raw_category == "Food"
