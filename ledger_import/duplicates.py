"""Duplicate detection: one weighted similarity score, two scan modes.

The composite score mixes four independently-scored fields:

==========  ======  ==================================================
Field       Weight  Scoring
==========  ======  ==================================================
date        0.25    same day = full; one calendar day apart = half
amount      0.35    equal = full; < 0.01 apart = 0.9x; < 1.00 = 0.5x
description 0.25    normalized edit-distance similarity x weight
account     0.15    same account id = full
==========  ======  ==================================================

All arithmetic is in ``Decimal`` so a score sitting exactly on the threshold
compares as equal rather than a hair below it. Both scan modes call
:func:`composite`; there is no second scoring path.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from .config import DEFAULT_BATCH_WARN_SIZE, DEFAULT_DATE_WINDOW_DAYS, DEFAULT_DUPLICATE_THRESHOLD
from .logging_setup import get_logger
from .models import CandidateTransaction, DuplicateMatch, LedgerTransaction
from .similarity import levenshtein, normalize_text

logger = get_logger("ledger_import.duplicates")

DATE_WEIGHT = Decimal("0.25")
AMOUNT_WEIGHT = Decimal("0.35")
DESCRIPTION_WEIGHT = Decimal("0.25")
ACCOUNT_WEIGHT = Decimal("0.15")

_HALF = Decimal("0.5")
_NEAR = Decimal("0.9")
_CENT = Decimal("0.01")
_ONE = Decimal("1")


class Comparable(Protocol):
    @property
    def date(self) -> date: ...

    @property
    def signed_amount(self) -> Decimal: ...

    @property
    def description(self) -> str: ...

    @property
    def account_id(self) -> str: ...


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    """Weighted contribution of each field; ``total`` is on the 0-1 scale."""

    date: Decimal
    amount: Decimal
    description: Decimal
    account: Decimal

    @property
    def total(self) -> Decimal:
        return self.date + self.amount + self.description + self.account

    @property
    def matched_fields(self) -> tuple[str, ...]:
        parts = (
            ("date", self.date),
            ("amount", self.amount),
            ("description", self.description),
            ("account", self.account),
        )
        return tuple(name for name, value in parts if value > 0)


def description_similarity(a: str | None, b: str | None) -> Decimal:
    """``(maxLen - distance) / maxLen`` over case-folded, space-collapsed text."""

    x, y = normalize_text(a), normalize_text(b)
    longest = max(len(x), len(y))
    if longest == 0:
        return _ONE
    return Decimal(longest - levenshtein(x, y)) / Decimal(longest)


def _date_score(a: date, b: date) -> Decimal:
    gap = abs((a - b).days)
    if gap == 0:
        return DATE_WEIGHT
    if gap == 1:
        return DATE_WEIGHT * _HALF
    return Decimal(0)


def _amount_score(a: Decimal, b: Decimal) -> Decimal:
    if a == b:
        return AMOUNT_WEIGHT
    diff = abs(a - b)
    if diff < _CENT:
        return AMOUNT_WEIGHT * _NEAR
    if diff < _ONE:
        return AMOUNT_WEIGHT * _HALF
    return Decimal(0)


def breakdown(a: Comparable, b: Comparable) -> ScoreBreakdown:
    return ScoreBreakdown(
        date=_date_score(a.date, b.date),
        amount=_amount_score(a.signed_amount, b.signed_amount),
        description=DESCRIPTION_WEIGHT * description_similarity(a.description, b.description),
        account=ACCOUNT_WEIGHT if a.account_id == b.account_id else Decimal(0),
    )


def composite(a: Comparable, b: Comparable) -> Decimal:
    """Similarity on the 0-1 scale. Symmetric in its arguments."""

    return breakdown(a, b).total


def score(a: Comparable, b: Comparable) -> Decimal:
    """Similarity on the 0-100 scale, rounded to two places."""

    return (composite(a, b) * 100).quantize(_CENT)


def is_duplicate(
    a: Comparable,
    b: Comparable,
    threshold: Decimal = DEFAULT_DUPLICATE_THRESHOLD,
) -> bool:
    return composite(a, b) >= threshold


def _to_match(
    candidate: CandidateTransaction,
    parts: ScoreBreakdown,
    *,
    existing_id: str | None = None,
    batch_row: int | None = None,
) -> DuplicateMatch:
    return DuplicateMatch(
        candidate_row=candidate.source_row,
        candidate=candidate,
        similarity=(parts.total * 100).quantize(_CENT),
        matched_fields=parts.matched_fields,
        existing_transaction_id=existing_id,
        within_batch_row=batch_row,
    )


def find_ledger_duplicates(
    candidates: Sequence[CandidateTransaction],
    existing: Sequence[LedgerTransaction],
    *,
    threshold: Decimal = DEFAULT_DUPLICATE_THRESHOLD,
    date_window_days: int = DEFAULT_DATE_WINDOW_DAYS,
) -> dict[int, DuplicateMatch]:
    """Match each candidate against stored transactions.

    Only ledger rows on the candidate's account within ``date_window_days``
    are scored. Returns ``{candidate index: best match}`` for candidates
    whose best score reaches ``threshold``.
    """

    matches: dict[int, DuplicateMatch] = {}
    for idx, candidate in enumerate(candidates):
        best: tuple[ScoreBreakdown, LedgerTransaction] | None = None
        for tx in existing:
            if tx.account_id != candidate.account_id:
                continue
            if abs((tx.date - candidate.date).days) > date_window_days:
                continue
            parts = breakdown(candidate, tx)
            if parts.total >= threshold and (best is None or parts.total > best[0].total):
                best = (parts, tx)
        if best is not None:
            matches[idx] = _to_match(candidate, best[0], existing_id=best[1].id)
    return matches


def find_batch_duplicates(
    candidates: Sequence[CandidateTransaction],
    *,
    threshold: Decimal = DEFAULT_DUPLICATE_THRESHOLD,
    warn_size: int = DEFAULT_BATCH_WARN_SIZE,
) -> dict[int, DuplicateMatch]:
    """Pairwise scan within one batch; the first occurrence is kept.

    Each row is compared with the earlier rows that were not themselves
    flagged. Cost is quadratic, so a warning is logged above ``warn_size``.
    """

    if len(candidates) > warn_size:
        logger.warning(
            "batch duplicate scan over %d rows exceeds %d; this may be slow",
            len(candidates),
            warn_size,
        )

    matches: dict[int, DuplicateMatch] = {}
    kept: list[CandidateTransaction] = []
    for idx, candidate in enumerate(candidates):
        best: tuple[ScoreBreakdown, CandidateTransaction] | None = None
        for earlier in kept:
            parts = breakdown(candidate, earlier)
            if parts.total >= threshold and (best is None or parts.total > best[0].total):
                best = (parts, earlier)
        if best is None:
            kept.append(candidate)
        else:
            matches[idx] = _to_match(candidate, best[0], batch_row=best[1].source_row)
    return matches


__all__ = [
    "ACCOUNT_WEIGHT",
    "AMOUNT_WEIGHT",
    "DATE_WEIGHT",
    "DESCRIPTION_WEIGHT",
    "ScoreBreakdown",
    "breakdown",
    "composite",
    "description_similarity",
    "find_batch_duplicates",
    "find_ledger_duplicates",
    "is_duplicate",
    "score",
]
