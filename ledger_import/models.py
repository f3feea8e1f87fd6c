"""Core data models for ``ledger_import``.

Pipeline values (raw records, candidate transactions, duplicate matches, import
results, reconciliation snapshots) are frozen, slotted dataclasses: they are
produced once per call and never mutated. Import profiles and bank catalog
entries are user- or data-authored documents, so they are pydantic models
validated on the way in.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .errors import NormalizationWarning

# Differences smaller than one cent are treated as balanced.
BALANCE_EPSILON = Decimal("0.01")


class SourceFormat(StrEnum):
    CSV = "csv"
    OFX = "ofx"
    QIF = "qif"


class SignConvention(StrEnum):
    """How the direction of money is encoded in a source file.

    - ``SIGNED``: one amount column; negative means money out.
    - ``INVERTED``: one amount column; positive means money out (card exports).
    - ``DEBIT_CREDIT_COLUMNS``: separate unsigned money-out / money-in columns.
    - ``TYPE_FIELD``: unsigned amount plus a type column (``debit``/``credit``).
    """

    SIGNED = "signed"
    INVERTED = "inverted"
    DEBIT_CREDIT_COLUMNS = "debit_credit_columns"
    TYPE_FIELD = "type_field"


class TransactionType(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class InstitutionType(StrEnum):
    TRADITIONAL = "traditional"
    DIGITAL = "digital"
    INVESTMENT = "investment"
    CRYPTO = "crypto"
    PAYMENT = "payment"
    BUSINESS = "business"


class CanonicalField(StrEnum):
    DATE = "date"
    AMOUNT = "amount"
    DEBIT = "debit"
    CREDIT = "credit"
    DESCRIPTION = "description"
    CATEGORY = "category"
    ACCOUNT_ID = "account_id"
    TYPE = "type"
    NOTES = "notes"
    REFERENCE = "reference"
    TAGS = "tags"
    CLEARED = "cleared"


CANONICAL_FIELDS: frozenset[str] = frozenset(f.value for f in CanonicalField)

DEFAULT_DEBIT_MARKERS: tuple[str, ...] = (
    "debit",
    "dr",
    "withdrawal",
    "payment",
    "purchase",
    "fee",
    "out",
)
DEFAULT_CREDIT_MARKERS: tuple[str, ...] = (
    "credit",
    "cr",
    "deposit",
    "income",
    "refund",
    "in",
)


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One record as found in the source, before any interpretation.

    ``fields`` maps a source field name (CSV header, OFX tag, QIF field) to its
    raw string; ``values`` keeps the same cells positionally so header-less
    CSV files can be addressed by column index. ``line`` is the 1-based
    physical line where the record starts.
    """

    fields: Mapping[str, str]
    values: tuple[str, ...]
    line: int
    source_format: SourceFormat

    def get(self, key: str | int) -> str | None:
        if isinstance(key, int):
            return self.values[key] if 0 <= key < len(self.values) else None
        return self.fields.get(key)

    def has(self, key: str | int) -> bool:
        if isinstance(key, int):
            return 0 <= key < len(self.values)
        return key in self.fields


@dataclass(frozen=True, slots=True)
class ParsedStatement:
    source_format: SourceFormat
    headers: tuple[str, ...]
    records: tuple[RawRecord, ...]
    statement_info: Mapping[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CandidateTransaction:
    """A parsed-but-uncommitted transaction.

    ``amount`` carries the direction (negative = money out); ``type`` is
    derived from it so the two can never disagree.
    """

    date: date
    amount: Decimal
    description: str
    account_id: str
    source_row: int
    raw_category: str | None = None
    tags: tuple[str, ...] = ()
    notes: str | None = None
    reference: str | None = None
    cleared: bool = False

    @property
    def type(self) -> TransactionType:
        return TransactionType.INCOME if self.amount > 0 else TransactionType.EXPENSE

    @property
    def signed_amount(self) -> Decimal:
        return self.amount


@dataclass(frozen=True, slots=True)
class LedgerTransaction:
    """A transaction already stored in the ledger.

    Stored rows may carry either a directional sign or an unsigned magnitude
    with a ``type`` tag; ``type`` wins. Transfers keep their stored sign.
    """

    id: str
    account_id: str
    date: date
    amount: Decimal
    type: TransactionType
    description: str = ""
    category: str | None = None
    tags: tuple[str, ...] = ()
    notes: str | None = None
    cleared: bool = False

    @property
    def signed_amount(self) -> Decimal:
        if self.type is TransactionType.INCOME:
            return abs(self.amount)
        if self.type is TransactionType.TRANSFER and self.amount > 0:
            return abs(self.amount)
        return -abs(self.amount)


@dataclass(frozen=True, slots=True)
class AdjustmentTransaction:
    """The single balancing entry produced by an accepted reconciliation."""

    account_id: str
    date: date
    amount: Decimal
    type: TransactionType
    description: str
    category: str
    notes: str
    cleared: bool = True
    tags: tuple[str, ...] = ("reconciliation", "adjustment")

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type is TransactionType.INCOME else -self.amount


# ---------------------------------------------------------------------------
# Import results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DuplicateMatch:
    """A candidate judged to be the same real-world event as another entry.

    Exactly one of ``existing_transaction_id`` (ledger match) or
    ``within_batch_row`` (earlier row in the same file) is set.
    """

    candidate_row: int
    candidate: CandidateTransaction
    similarity: Decimal
    matched_fields: tuple[str, ...]
    existing_transaction_id: str | None = None
    within_batch_row: int | None = None


@dataclass(frozen=True, slots=True)
class FailedRow:
    row: int
    reason: str


@dataclass(frozen=True, slots=True)
class RuleSkip:
    row: int
    rule: str
    candidate: CandidateTransaction


@dataclass(frozen=True, slots=True)
class ImportStatistics:
    total_rows: int
    imported: int
    skipped_duplicates: int
    skipped_by_rule: int
    failed: int
    warnings: int
    rules_applied: int
    total_income: Decimal
    total_expense: Decimal
    date_range: tuple[date, date] | None


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Terminal artifact of one import run. Nothing has been written yet."""

    imported: tuple[CandidateTransaction, ...]
    skipped_duplicates: tuple[DuplicateMatch, ...]
    failed: tuple[FailedRow, ...]
    statistics: ImportStatistics
    warnings: tuple[NormalizationWarning, ...] = ()
    skipped_by_rule: tuple[RuleSkip, ...] = ()
    source_format: SourceFormat = SourceFormat.CSV
    statement_info: Mapping[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReconciliationSnapshot:
    account_id: str
    as_of: date
    opening_balance: Decimal
    system_balance: Decimal
    statement_balance: Decimal
    difference: Decimal
    transaction_count: int
    currency: str = "USD"

    @property
    def balanced(self) -> bool:
        return abs(self.difference) < BALANCE_EPSILON


# ---------------------------------------------------------------------------
# Profiles and the bank catalog (validated documents)
# ---------------------------------------------------------------------------


def _coerce_selector(value: Any) -> Any:
    # Shorthand accepted in JSON and code: "Date", 3, ["Date", "Posted"].
    if isinstance(value, str | int) and not isinstance(value, bool):
        return {"sources": [value]}
    if isinstance(value, list | tuple):
        return {"sources": list(value)}
    return value


def _coerce_mapping(value: Any) -> Any:
    if not isinstance(value, Mapping):
        return value
    out: dict[str, Any] = {}
    for key, selector in value.items():
        name = str(key.value if isinstance(key, CanonicalField) else key)
        if name not in CANONICAL_FIELDS:
            raise ValueError(f"unknown canonical field: {name!r}")
        out[name] = _coerce_selector(selector)
    return out


class FieldSelector(BaseModel):
    """Where one canonical field comes from in a source record.

    ``sources`` are header names (or 0-based column indexes for header-less
    CSV). With ``combine="first"`` the first non-blank value wins; with
    ``"join"`` all non-blank values are joined by ``separator``. ``labels``
    (parallel to ``sources``) prefix each joined value, e.g. ``"Check #: "``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    sources: list[str | int]
    combine: Literal["first", "join"] = "first"
    separator: str = " - "
    labels: list[str] | None = None

    @field_validator("sources")
    @classmethod
    def _sources_non_empty(cls, v: list[str | int]) -> list[str | int]:
        if not v:
            raise ValueError("sources must list at least one column")
        return v

    @field_validator("labels")
    @classmethod
    def _labels_match_sources(cls, v: list[str] | None, info: ValidationInfo) -> list[str] | None:
        sources = info.data.get("sources") or []
        if v is not None and len(v) != len(sources):
            raise ValueError("labels must be parallel to sources")
        return v


class ImportProfile(BaseModel):
    """A reusable field mapping plus format and sign conventions."""

    # Lax validation: profiles arrive as JSON documents (enum values and
    # timestamps as strings), so strict mode would reject valid input.
    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    source_format: SourceFormat = SourceFormat.CSV
    field_mapping: dict[str, FieldSelector] = Field(default_factory=dict)
    date_format_hint: str | None = None
    sign_convention: SignConvention = SignConvention.SIGNED
    debit_markers: list[str] = Field(default_factory=lambda: list(DEFAULT_DEBIT_MARKERS))
    credit_markers: list[str] = Field(default_factory=lambda: list(DEFAULT_CREDIT_MARKERS))
    delimiter: str | None = None
    has_header: bool = True
    skip_rows: int = Field(default=0, ge=0)
    strict_dates: bool = False
    currency: str = "USD"
    bank_key: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("field_mapping", mode="before")
    @classmethod
    def _coerce_field_mapping(cls, v: Any) -> Any:
        return _coerce_mapping(v)

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("profile name must be non-empty")
        return v

    @field_validator("delimiter")
    @classmethod
    def _single_char_delimiter(cls, v: str | None) -> str | None:
        if v is not None and len(v) != 1:
            raise ValueError("delimiter must be a single character")
        return v

    @field_validator("date_format_hint")
    @classmethod
    def _hint_has_date_parts(cls, v: str | None) -> str | None:
        if v is None:
            return None
        upper = v.strip().upper()
        if not upper:
            return None
        if not all(part in upper for part in ("Y", "M", "D")):
            raise ValueError(f"date format hint must contain Y, M and D tokens: {v!r}")
        return v.strip()

    def selector(self, canonical: CanonicalField | str) -> FieldSelector | None:
        key = canonical.value if isinstance(canonical, CanonicalField) else canonical
        return self.field_mapping.get(key)

    @property
    def month_first(self) -> bool:
        """Whether ambiguous ``NN/NN/YYYY`` dates are read month-first."""

        return bool(self.date_format_hint and self.date_format_hint.upper().startswith("MM"))


class BankCatalogEntry(BaseModel):
    """One institution in the built-in catalog: discovery metadata + defaults."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    bank_key: str
    name: str
    region: str
    type: InstitutionType
    source_format: SourceFormat = SourceFormat.CSV
    field_mapping: dict[str, FieldSelector]
    date_format_hint: str | None = None
    sign_convention: SignConvention = SignConvention.SIGNED
    debit_markers: list[str] | None = None
    credit_markers: list[str] | None = None
    currency: str | None = None

    @field_validator("field_mapping", mode="before")
    @classmethod
    def _coerce_field_mapping(cls, v: Any) -> Any:
        return _coerce_mapping(v)


class BankCatalogFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int
    banks: list[BankCatalogEntry]


__all__ = [
    "BALANCE_EPSILON",
    "CANONICAL_FIELDS",
    "DEFAULT_CREDIT_MARKERS",
    "DEFAULT_DEBIT_MARKERS",
    "AdjustmentTransaction",
    "BankCatalogEntry",
    "BankCatalogFile",
    "CandidateTransaction",
    "CanonicalField",
    "DuplicateMatch",
    "FailedRow",
    "FieldSelector",
    "ImportProfile",
    "ImportResult",
    "ImportStatistics",
    "InstitutionType",
    "LedgerTransaction",
    "ParsedStatement",
    "RawRecord",
    "ReconciliationSnapshot",
    "RuleSkip",
    "SignConvention",
    "SourceFormat",
    "TransactionType",
]
