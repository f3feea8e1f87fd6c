"""Category suggestions learned from the ledger's categorized history.

Two signals, strongest first:

- merchant: the first few significant words of a description, after card and
  transfer prefixes are stripped. A merchant seen under a category suggests it
  with confidence ``0.7 + 0.02 * count`` (capped at 0.9).
- keywords: words recurring within a category's descriptions. Matches add up
  to ``0.4 + 0.05 * matches`` (capped at 0.7).

Only the top suggestion is ever applied, and only at or above the caller's
threshold; rows that already carry a category are left alone.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from .logging_setup import get_logger
from .models import CandidateTransaction, LedgerTransaction
from .similarity import normalize_text

logger = get_logger("ledger_import.categorize")

MERCHANT_BASE = Decimal("0.7")
MERCHANT_STEP = Decimal("0.02")
MERCHANT_CAP = Decimal("0.9")
KEYWORD_BASE = Decimal("0.4")
KEYWORD_STEP = Decimal("0.05")
KEYWORD_CAP = Decimal("0.7")
MAX_KEYWORDS_PER_CATEGORY = 20

_PREFIX_RE = re.compile(
    r"^(card purchase|direct debit|standing order|bank transfer|pos|contactless|online)[\s-]*"
)
_DIRECTION_RE = re.compile(r"^(to|from)[\s-]+")
_SPLIT_RE = re.compile(r"[\s-]+")

COMMON_WORDS: frozenset[str] = frozenset(
    {
        "payment",
        "purchase",
        "transfer",
        "card",
        "debit",
        "credit",
        "with",
        "from",
        "this",
        "that",
        "have",
        "your",
        "ltd",
        "limited",
        "online",
    }
)


def merchant_key(description: str | None) -> str | None:
    """Merchant name guessed from a description, or ``None`` when nothing is left."""

    cleaned = _PREFIX_RE.sub("", normalize_text(description))
    cleaned = _DIRECTION_RE.sub("", cleaned).strip()
    parts = [p for p in _SPLIT_RE.split(cleaned)[:3] if len(p) > 2]
    return " ".join(parts) or None


def _words(description: str | None) -> list[str]:
    return [w for w in normalize_text(description).split(" ") if len(w) > 3]


@dataclass(frozen=True, slots=True)
class CategorySuggestion:
    category: str
    confidence: Decimal
    reason: str


class CategoryLearner:
    """Merchant and keyword tables built from categorized ledger rows."""

    def __init__(self) -> None:
        self._merchants: dict[str, Counter[str]] = {}
        self._keywords: dict[str, Counter[str]] = {}

    @classmethod
    def from_transactions(cls, transactions: Iterable[LedgerTransaction]) -> CategoryLearner:
        learner = cls()
        learner.learn(transactions)
        return learner

    @property
    def is_empty(self) -> bool:
        return not self._merchants and not self._keywords

    def learn(self, transactions: Iterable[LedgerTransaction]) -> None:
        """Rebuild both tables from ``transactions``; uncategorized rows are ignored."""

        self._merchants.clear()
        self._keywords.clear()
        by_category: dict[str, list[LedgerTransaction]] = {}
        for tx in transactions:
            if tx.category and tx.category.strip():
                by_category.setdefault(tx.category.strip(), []).append(tx)

        for category, rows in by_category.items():
            frequency: Counter[str] = Counter()
            for tx in rows:
                merchant = merchant_key(tx.description)
                if merchant:
                    self._merchants.setdefault(merchant, Counter())[category] += 1
                frequency.update(w for w in _words(tx.description) if w not in COMMON_WORDS)
            recurring = [w for w, n in frequency.most_common() if n > 1]
            for word in recurring[:MAX_KEYWORDS_PER_CATEGORY]:
                self._keywords.setdefault(word, Counter())[category] += 1

        logger.debug(
            "learned %d merchant(s) and %d keyword(s) across %d category(ies)",
            len(self._merchants),
            len(self._keywords),
            len(by_category),
        )

    def suggest(self, description: str | None, limit: int = 3) -> list[CategorySuggestion]:
        """Suggestions for ``description``, highest confidence first."""

        suggestions: list[CategorySuggestion] = []
        merchant = merchant_key(description)
        if merchant and merchant in self._merchants:
            for category, count in self._merchants[merchant].most_common(2):
                suggestions.append(
                    CategorySuggestion(
                        category=category,
                        confidence=min(MERCHANT_CAP, MERCHANT_BASE + MERCHANT_STEP * count),
                        reason=f"merchant {merchant!r} seen {count} time(s) under this category",
                    )
                )

        matches: Counter[str] = Counter()
        for word in _words(description):
            matches.update(self._keywords.get(word, Counter()))
        seen = {s.category for s in suggestions}
        for category, count in matches.most_common(2):
            if category in seen:
                continue
            suggestions.append(
                CategorySuggestion(
                    category=category,
                    confidence=min(KEYWORD_CAP, KEYWORD_BASE + KEYWORD_STEP * count),
                    reason="keywords match earlier transactions",
                )
            )

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions[:limit]


def auto_categorize(
    candidates: Sequence[CandidateTransaction],
    history: Iterable[LedgerTransaction],
    *,
    threshold: Decimal,
) -> tuple[list[CandidateTransaction], int]:
    """Fill ``raw_category`` from ``history`` where the top suggestion is confident.

    Returns the (possibly updated) candidates in order and how many were
    categorized.
    """

    learner = CategoryLearner.from_transactions(history)
    if learner.is_empty:
        return list(candidates), 0

    out: list[CandidateTransaction] = []
    assigned = 0
    for candidate in candidates:
        if candidate.raw_category:
            out.append(candidate)
            continue
        top = learner.suggest(candidate.description, limit=1)
        if top and top[0].confidence >= threshold:
            candidate = replace(candidate, raw_category=top[0].category)
            assigned += 1
        out.append(candidate)
    return out, assigned


__all__ = [
    "COMMON_WORDS",
    "CategoryLearner",
    "CategorySuggestion",
    "auto_categorize",
    "merchant_key",
]
