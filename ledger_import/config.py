"""Environment-driven knobs for an import run.

Values are read lazily (at ``ImportOptions.from_env()`` time, not import time)
so tests can ``monkeypatch.setenv`` freely. The CLI loads a local ``.env``
with python-dotenv before anything here is consulted.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from .logging_setup import get_logger

logger = get_logger("ledger_import.config")

DEFAULT_DUPLICATE_THRESHOLD = Decimal("0.85")
DEFAULT_DATE_WINDOW_DAYS = 3
DEFAULT_BATCH_WARN_SIZE = 5000
DEFAULT_CATEGORY_CONFIDENCE = Decimal("0.7")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from exc
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class ImportOptions:
    """Tunables for duplicate scanning during an import.

    ``duplicate_threshold`` is on the 0-1 scale; ``date_window_days`` bounds the
    ledger rows considered for each candidate; ``batch_warn_size`` is the row
    count above which the quadratic within-batch scan logs a warning.
    With ``auto_categorize`` on, uncategorized rows take the category learned
    from the ledger when its confidence reaches ``category_confidence``.
    """

    duplicate_threshold: Decimal = DEFAULT_DUPLICATE_THRESHOLD
    date_window_days: int = DEFAULT_DATE_WINDOW_DAYS
    batch_warn_size: int = DEFAULT_BATCH_WARN_SIZE
    skip_duplicates: bool = True
    auto_categorize: bool = False
    category_confidence: Decimal = DEFAULT_CATEGORY_CONFIDENCE

    def __post_init__(self) -> None:
        t = self.duplicate_threshold
        if not t.is_finite() or not (Decimal(0) <= t <= Decimal(1)):
            raise ValueError(
                f"duplicate_threshold must be within [0, 1], got {self.duplicate_threshold}"
            )
        c = self.category_confidence
        if not c.is_finite() or not (Decimal(0) <= c <= Decimal(1)):
            raise ValueError(
                f"category_confidence must be within [0, 1], got {self.category_confidence}"
            )
        if self.date_window_days < 0:
            raise ValueError("date_window_days must be >= 0")
        if self.batch_warn_size < 1:
            raise ValueError("batch_warn_size must be >= 1")

    @classmethod
    def from_env(
        cls,
        *,
        duplicate_threshold: Decimal | float | str | None = None,
        skip_duplicates: bool = True,
        auto_categorize: bool = False,
    ) -> ImportOptions:
        """Build options from ``LEDGER_IMPORT_*`` variables; explicit args win."""

        threshold = (
            Decimal(str(duplicate_threshold))
            if duplicate_threshold is not None
            else _env_decimal("LEDGER_IMPORT_DUPLICATE_THRESHOLD", DEFAULT_DUPLICATE_THRESHOLD)
        )
        options = cls(
            duplicate_threshold=threshold,
            date_window_days=_env_int("LEDGER_IMPORT_DATE_WINDOW_DAYS", DEFAULT_DATE_WINDOW_DAYS),
            batch_warn_size=_env_int("LEDGER_IMPORT_BATCH_WARN_SIZE", DEFAULT_BATCH_WARN_SIZE),
            skip_duplicates=skip_duplicates,
            auto_categorize=auto_categorize,
            category_confidence=_env_decimal(
                "LEDGER_IMPORT_CATEGORY_CONFIDENCE", DEFAULT_CATEGORY_CONFIDENCE
            ),
        )
        logger.debug("import options resolved: %s", options)
        return options


def catalog_path_override() -> str | None:
    """Path of a JSON bank catalog replacing the packaged one, if configured."""

    raw = os.getenv("LEDGER_IMPORT_CATALOG_PATH")
    return raw.strip() if raw and raw.strip() else None


__all__ = [
    "DEFAULT_BATCH_WARN_SIZE",
    "DEFAULT_CATEGORY_CONFIDENCE",
    "DEFAULT_DATE_WINDOW_DAYS",
    "DEFAULT_DUPLICATE_THRESHOLD",
    "ImportOptions",
    "catalog_path_override",
]
