"""Import profiles: the bank catalog, profile inference and profile storage.

A profile is data, never code. Supporting a new institution means adding an
entry to ``ingest/seeds/bank_catalog.v1.json`` (or to a catalog file named by
``LEDGER_IMPORT_CATALOG_PATH``); parser and mapper logic stay untouched.

Three ways to obtain a profile:

- ``BankCatalog.profile_for("barclays")``: the catalog's default mapping for a
  known institution. Region and institution type are discovery metadata only.
- ``infer_profile(headers, sample_rows=...)``: match the file's headers
  against the catalog, then fall back to fuzzy header matching.
- A user-authored ``ImportProfile`` saved in a ``ProfileStore`` and reused by
  name on later imports.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from datetime import UTC, datetime
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

from .config import catalog_path_override
from .errors import MappingError, ProfileNotFoundError
from .logging_setup import get_logger
from .models import (
    BankCatalogEntry,
    BankCatalogFile,
    CanonicalField,
    FieldSelector,
    ImportProfile,
    InstitutionType,
    RawRecord,
    SignConvention,
    SourceFormat,
)
from .similarity import similarity_ratio

logger = get_logger("ledger_import.profiles")

CATALOG_RESOURCE = "bank_catalog.v1.json"
REGION_CURRENCY: Mapping[str, str] = MappingProxyType(
    {"UK": "GBP", "EU": "EUR", "Canada": "CAD", "Australia": "AUD"}
)

# ---------------------------------------------------------------------------
# Bank catalog
# ---------------------------------------------------------------------------


def _selector_columns(selector: FieldSelector) -> list[str]:
    return [s for s in selector.sources if isinstance(s, str)]


class BankCatalog:
    """Immutable table of known institutions and their default mappings."""

    def __init__(self, entries: Iterable[BankCatalogEntry]) -> None:
        by_key: dict[str, BankCatalogEntry] = {}
        for entry in entries:
            if entry.bank_key in by_key:
                raise ValueError(f"duplicate bank_key in catalog: {entry.bank_key!r}")
            by_key[entry.bank_key] = entry
        self._entries: Mapping[str, BankCatalogEntry] = MappingProxyType(by_key)

    @classmethod
    def from_json(cls, text: str) -> BankCatalog:
        return cls(BankCatalogFile.model_validate_json(text).banks)

    @classmethod
    def load(cls, path: str | Path | None = None) -> BankCatalog:
        """Load a catalog file; defaults to the override path or the packaged seed."""

        source = path or catalog_path_override()
        if source is None:
            return _packaged_catalog()
        logger.debug("loading bank catalog from %s", source)
        return cls.from_json(Path(source).read_text(encoding="utf-8"))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BankCatalogEntry]:
        return iter(self._entries.values())

    def __contains__(self, bank_key: object) -> bool:
        return bank_key in self._entries

    def get(self, bank_key: str) -> BankCatalogEntry | None:
        return self._entries.get(bank_key.strip().lower())

    def filter(
        self,
        *,
        region: str | None = None,
        type: InstitutionType | str | None = None,
    ) -> list[BankCatalogEntry]:
        out = list(self)
        if region:
            out = [e for e in out if e.region.lower() == region.strip().lower()]
        if type:
            out = [e for e in out if e.type == InstitutionType(type)]
        return out

    def regions(self) -> list[str]:
        return sorted({e.region for e in self})

    def profile_for(self, bank_key: str, *, name: str | None = None) -> ImportProfile:
        """Build a fresh ``ImportProfile`` from a catalog entry."""

        entry = self.get(bank_key)
        if entry is None:
            raise ProfileNotFoundError(f"bank:{bank_key}")
        extra: dict[str, object] = {}
        if entry.debit_markers is not None:
            extra["debit_markers"] = list(entry.debit_markers)
        if entry.credit_markers is not None:
            extra["credit_markers"] = list(entry.credit_markers)
        return ImportProfile(
            name=name or entry.name,
            source_format=entry.source_format,
            field_mapping=dict(entry.field_mapping),
            date_format_hint=entry.date_format_hint,
            sign_convention=entry.sign_convention,
            currency=entry.currency or REGION_CURRENCY.get(entry.region, "USD"),
            bank_key=entry.bank_key,
            **extra,
        )

    def match_headers(self, headers: Sequence[str]) -> BankCatalogEntry | None:
        """Return the most specific entry whose every selector finds a column.

        Comparison ignores case and surrounding whitespace. Among matching
        entries the one referencing the most columns wins; a tie between
        entries that differ in mapping or date order is ambiguous and
        returns ``None``.
        """

        present = {_norm_header(h) for h in headers}
        best_used = 0
        best: list[BankCatalogEntry] = []
        for entry in self:
            if entry.source_format is not SourceFormat.CSV:
                continue
            used = 0
            for selector in entry.field_mapping.values():
                hits = [c for c in _selector_columns(selector) if _norm_header(c) in present]
                if not hits:
                    break
                used += len(hits)
            else:
                if used > best_used:
                    best_used, best = used, [entry]
                elif used == best_used:
                    best.append(entry)
        if not best:
            return None
        first = best[0]
        for other in best[1:]:
            if (
                other.field_mapping != first.field_mapping
                or other.date_format_hint != first.date_format_hint
                or other.sign_convention is not first.sign_convention
            ):
                logger.debug("headers match %d catalog entries; ambiguous", len(best))
                return None
        return first


@functools.cache
def _packaged_catalog() -> BankCatalog:
    text = (
        resources.files("ledger_import.ingest")
        .joinpath("seeds", CATALOG_RESOURCE)
        .read_text(encoding="utf-8")
    )
    return BankCatalog.from_json(text)


# ---------------------------------------------------------------------------
# Format defaults (OFX / QIF carry their own field names)
# ---------------------------------------------------------------------------


def default_profile(source_format: SourceFormat | str, *, name: str | None = None) -> ImportProfile:
    """The built-in profile for self-describing formats, or an empty CSV one."""

    fmt = SourceFormat(source_format)
    if fmt is SourceFormat.OFX:
        return ImportProfile(
            name=name or "OFX",
            source_format=fmt,
            date_format_hint="YYYYMMDD",
            field_mapping={
                "date": "DTPOSTED",
                "amount": "TRNAMT",
                "description": {"sources": ["NAME", "PAYEE", "MEMO"], "combine": "join"},
                "notes": {
                    "sources": ["FITID", "CHECKNUM"],
                    "combine": "join",
                    "separator": " | ",
                    "labels": ["FITID: ", "Check #: "],
                },
                "reference": ["FITID", "REFNUM"],
                "account_id": "ACCTID",
            },
        )
    if fmt is SourceFormat.QIF:
        return ImportProfile(
            name=name or "QIF",
            source_format=fmt,
            date_format_hint="MM/DD/YYYY",
            field_mapping={
                "date": "date",
                "amount": "amount",
                "description": {"sources": ["payee", "memo"], "combine": "join"},
                "category": "category",
                "notes": {"sources": ["number"], "combine": "join", "labels": ["Check #: "]},
                "reference": "number",
                "cleared": "cleared",
                "account_id": "account",
            },
        )
    return ImportProfile(name=name or "Custom CSV", source_format=fmt)


# ---------------------------------------------------------------------------
# Inference from headers
# ---------------------------------------------------------------------------

FUZZY_THRESHOLD = 0.6

_FIELD_PATTERNS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        CanonicalField.DATE: (
            "date",
            "transaction date",
            "posted date",
            "posting date",
            "booking date",
            "value date",
            "trans date",
            "started date",
            "completed date",
            "run date",
            "trade date",
            "timestamp",
            "created",
        ),
        CanonicalField.DESCRIPTION: (
            "description",
            "transaction description",
            "details",
            "transaction details",
            "narrative",
            "payee",
            "merchant",
            "name",
            "counter party",
            "memo",
            "label",
        ),
        CanonicalField.AMOUNT: (
            "amount",
            "value",
            "gross",
            "net amount",
            "transaction amount",
            "sum",
        ),
        CanonicalField.DEBIT: (
            "debit",
            "debit amount",
            "debits",
            "paid out",
            "money out",
            "withdrawal",
            "withdrawals",
            "outflow",
        ),
        CanonicalField.CREDIT: (
            "credit",
            "credit amount",
            "credits",
            "paid in",
            "money in",
            "deposit",
            "deposits",
            "inflow",
        ),
        CanonicalField.CATEGORY: ("category", "subcategory", "spending category"),
        CanonicalField.ACCOUNT_ID: ("account", "account number", "account name", "account id"),
        CanonicalField.TYPE: ("type", "transaction type", "debit/credit", "dr/cr"),
        CanonicalField.NOTES: ("notes", "note", "comment", "comments"),
        CanonicalField.REFERENCE: ("reference", "transaction id", "check number", "cheque number"),
    }
)


def _norm_header(header: str) -> str:
    return re.sub(r"\s+", " ", header.strip().lower())


def _header_score(header: str, pattern: str) -> float:
    if header == pattern:
        return 1.0
    if len(pattern) >= 4 and re.search(rf"\b{re.escape(pattern)}\b", header):
        return 0.9
    return similarity_ratio(header, pattern)


def suggest_mappings(headers: Sequence[str]) -> dict[str, str]:
    """Fuzzy-map headers to canonical fields; each header is used at most once.

    Scores are 1.0 for an exact synonym, 0.9 when a synonym appears as a whole
    word inside the header, otherwise normalized edit-distance similarity,
    which must exceed ``FUZZY_THRESHOLD``.
    """

    scored: list[tuple[float, int, str, str]] = []
    for idx, header in enumerate(headers):
        norm = _norm_header(header)
        if not norm or "balance" in norm:
            continue
        for field_name, patterns in _FIELD_PATTERNS.items():
            score = max(_header_score(norm, p) for p in patterns)
            if score > FUZZY_THRESHOLD:
                scored.append((score, -idx, str(field_name), header))

    scored.sort(reverse=True)
    mapping: dict[str, str] = {}
    used: set[str] = set()
    for _score, _neg_idx, field_name, header in scored:
        if field_name in mapping or header in used:
            continue
        mapping[field_name] = header
        used.add(header)
    return mapping


_AMBIGUOUS_NUMERIC_DATE = re.compile(r"^\s*(\d{1,2})([/.\-])(\d{1,2})\2(\d{2,4})\b")


def infer_date_hint(values: Iterable[str]) -> str | None:
    """Pick day-first or month-first from sample values, when the data says so.

    A first component above 12 proves day-first; a second above 12 proves
    month-first. With no proof either way ``None`` is returned and the
    caller's default applies.
    """

    for value in values:
        m = _AMBIGUOUS_NUMERIC_DATE.match(value or "")
        if not m:
            continue
        first, sep, second, year = int(m.group(1)), m.group(2), int(m.group(3)), m.group(4)
        ylen = "YYYY" if len(year) == 4 else "YY"
        if first > 12:
            return f"DD{sep}MM{sep}{ylen}"
        if second > 12:
            return f"MM{sep}DD{sep}{ylen}"
    return None


def infer_profile(
    headers: Sequence[str],
    *,
    sample_rows: Sequence[RawRecord] = (),
    catalog: BankCatalog | None = None,
    name: str | None = None,
) -> ImportProfile:
    """Infer a CSV profile for ``headers``.

    Tries an exact catalog match first, then fuzzy header matching. Raises
    :class:`MappingError` when no date column or no amount source can be
    identified.
    """

    catalog = catalog if catalog is not None else BankCatalog.load()
    entry = catalog.match_headers(headers)
    if entry is not None:
        logger.info("headers match catalog entry %s", entry.bank_key)
        return catalog.profile_for(entry.bank_key, name=name)

    mapping = suggest_mappings(headers)
    if CanonicalField.DATE.value not in mapping:
        raise MappingError("could not infer a date column from headers", field="date")

    convention = SignConvention.SIGNED
    if CanonicalField.AMOUNT.value in mapping:
        mapping.pop(CanonicalField.DEBIT.value, None)
        mapping.pop(CanonicalField.CREDIT.value, None)
    elif CanonicalField.DEBIT.value in mapping or CanonicalField.CREDIT.value in mapping:
        convention = SignConvention.DEBIT_CREDIT_COLUMNS
    else:
        raise MappingError("could not infer an amount column from headers", field="amount")

    date_column = mapping[CanonicalField.DATE.value]
    hint = infer_date_hint(r.fields.get(date_column, "") for r in sample_rows)
    logger.info("inferred mapping %s (sign=%s, date hint=%s)", mapping, convention.value, hint)
    return ImportProfile(
        name=name or "Inferred CSV",
        source_format=SourceFormat.CSV,
        field_mapping=mapping,
        sign_convention=convention,
        date_format_hint=hint,
    )


# ---------------------------------------------------------------------------
# Profile storage
# ---------------------------------------------------------------------------


class ProfileStore(Protocol):
    """Key-value persistence of profiles by name."""

    def get_profile(self, name: str) -> ImportProfile | None: ...

    def save_profile(self, profile: ImportProfile) -> ImportProfile: ...

    def list_profiles(self) -> list[ImportProfile]: ...

    def delete_profile(self, name: str) -> bool: ...


def prepare_for_save(profile: ImportProfile, existing: ImportProfile | None) -> ImportProfile:
    """Keep identity and creation time of ``existing``; bump ``updated_at``."""

    now = datetime.now(UTC)
    if existing is None:
        return profile.model_copy(update={"updated_at": now})
    return profile.model_copy(
        update={"id": existing.id, "created_at": existing.created_at, "updated_at": now}
    )


def require_profile(store: ProfileStore, name: str) -> ImportProfile:
    profile = store.get_profile(name)
    if profile is None:
        raise ProfileNotFoundError(name)
    return profile


class InMemoryProfileStore:
    """Dictionary-backed ``ProfileStore`` for tests and short-lived sessions."""

    def __init__(self, profiles: Iterable[ImportProfile] = ()) -> None:
        self._profiles: dict[str, ImportProfile] = {}
        for profile in profiles:
            self.save_profile(profile)

    def get_profile(self, name: str) -> ImportProfile | None:
        return self._profiles.get(name)

    def save_profile(self, profile: ImportProfile) -> ImportProfile:
        stored = prepare_for_save(profile, self._profiles.get(profile.name))
        self._profiles[stored.name] = stored
        return stored

    def list_profiles(self) -> list[ImportProfile]:
        return sorted(self._profiles.values(), key=lambda p: p.name.lower())

    def delete_profile(self, name: str) -> bool:
        return self._profiles.pop(name, None) is not None


__all__ = [
    "BankCatalog",
    "FUZZY_THRESHOLD",
    "InMemoryProfileStore",
    "ProfileStore",
    "default_profile",
    "infer_date_hint",
    "infer_profile",
    "prepare_for_save",
    "require_profile",
    "suggest_mappings",
]
