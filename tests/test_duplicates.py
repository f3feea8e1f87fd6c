from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from ledger_import.duplicates import (
    breakdown,
    composite,
    description_similarity,
    find_batch_duplicates,
    find_ledger_duplicates,
    is_duplicate,
    score,
)
from ledger_import.models import CandidateTransaction, LedgerTransaction, TransactionType
from ledger_import.similarity import levenshtein, similarity_ratio

D0 = date(2024, 3, 10)


def _cand(
    description: str = "TESCO STORES 2231",
    amount: str = "-45.10",
    when: date = D0,
    account: str = "acc-1",
    row: int = 2,
) -> CandidateTransaction:
    return CandidateTransaction(
        date=when,
        amount=Decimal(amount),
        description=description,
        account_id=account,
        source_row=row,
    )


def _stored(
    description: str = "TESCO STORES 2231",
    amount: str = "45.10",
    kind: TransactionType = TransactionType.EXPENSE,
    when: date = D0,
    account: str = "acc-1",
    tx_id: str = "tx-1",
) -> LedgerTransaction:
    return LedgerTransaction(
        id=tx_id,
        account_id=account,
        date=when,
        amount=Decimal(amount),
        type=kind,
        description=description,
    )


def test_identical_transactions_score_100():
    a = _cand()
    assert score(a, _cand()) == Decimal("100.00")
    assert breakdown(a, _cand()).matched_fields == ("date", "amount", "description", "account")


def test_score_is_symmetric():
    a = _cand(description="Coffee House", amount="-4.50")
    b = _cand(description="COFFEE HOUSE LTD", amount="-4.55", when=D0 + timedelta(days=1))
    assert composite(a, b) == composite(b, a)


def test_description_similarity_normalizes_case_and_spacing():
    assert description_similarity("Coffee  House", "coffee house") == Decimal(1)
    assert description_similarity("", "") == Decimal(1)
    assert description_similarity("abcd", "") == Decimal(0)


def test_edit_distance_and_ratio():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert similarity_ratio("", "") == 1.0
    assert similarity_ratio("abcd", "abxd") == 0.75


def test_three_edits_in_five_characters_reaches_threshold_exactly():
    # 0.25 + 0.35 + 0.15 + 0.25 * (2 / 5) = 0.85
    a, b = _cand(description="abcde"), _cand(description="abxyz")
    assert composite(a, b) == Decimal("0.85")
    assert is_duplicate(a, b)


def test_four_edits_in_five_characters_is_below_threshold():
    a, b = _cand(description="abcde"), _cand(description="axyzw")
    assert composite(a, b) == Decimal("0.80")
    assert not is_duplicate(a, b)


def test_date_and_amount_partial_credit():
    a = _cand()
    one_day = breakdown(a, _cand(when=D0 + timedelta(days=1)))
    assert one_day.date == Decimal("0.125")
    two_days = breakdown(a, _cand(when=D0 + timedelta(days=2)))
    assert two_days.date == 0
    assert "date" not in two_days.matched_fields

    near = breakdown(a, _cand(amount="-45.105"))
    assert near.amount == Decimal("0.315")
    cents = breakdown(a, _cand(amount="-45.60"))
    assert cents.amount == Decimal("0.175")
    far = breakdown(a, _cand(amount="-46.10"))
    assert far.amount == 0


def test_direction_matters_for_amount():
    assert breakdown(_cand(amount="-10.00"), _cand(amount="10.00")).amount == 0


def test_ledger_scan_uses_type_for_direction_and_reports_id():
    candidates = [_cand(row=2), _cand(description="Salary", amount="2000.00", row=3)]
    existing = [_stored(amount="45.10", kind=TransactionType.EXPENSE, tx_id="tx-9")]
    hits = find_ledger_duplicates(candidates, existing)
    assert list(hits) == [0]
    match = hits[0]
    assert match.existing_transaction_id == "tx-9"
    assert match.within_batch_row is None
    assert match.candidate_row == 2
    assert match.similarity == Decimal("100.00")


def test_ledger_scan_ignores_other_accounts_and_outside_window():
    candidates = [_cand()]
    other_account = [_stored(account="acc-2")]
    assert find_ledger_duplicates(candidates, other_account) == {}
    far_away = [_stored(when=D0 - timedelta(days=4))]
    assert find_ledger_duplicates(candidates, far_away, date_window_days=3) == {}


def test_ledger_scan_picks_best_match():
    existing = [
        _stored(description="TESCO", tx_id="weak"),
        _stored(description="TESCO STORES 2231", tx_id="exact"),
    ]
    hits = find_ledger_duplicates([_cand()], existing, threshold=Decimal("0.7"))
    assert hits[0].existing_transaction_id == "exact"


def test_batch_scan_keeps_first_occurrence():
    rows = [
        _cand(row=2),
        _cand(description="Rent", amount="-900.00", row=3),
        _cand(row=4),
        _cand(row=5),
    ]
    hits = find_batch_duplicates(rows)
    assert sorted(hits) == [2, 3]
    assert hits[2].within_batch_row == 2
    assert hits[3].within_batch_row == 2
    assert hits[2].existing_transaction_id is None


def test_batch_scan_warns_on_large_batches(caplog):
    rows = [_cand(description=f"row {i}", amount=f"-{i}.00", row=i) for i in range(1, 5)]
    with caplog.at_level("WARNING", logger="ledger_import.duplicates"):
        find_batch_duplicates(rows, warn_size=3)
    assert any("exceeds" in r.getMessage() for r in caplog.records)
