"""Column mapping: pull canonical field values out of a ``RawRecord``.

The mapper is the only place that knows about source column names. It works
on strings alone; interpreting them (dates, amounts, signs) is the
normalizers' job, applied by the importer.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import MappingError
from .models import CanonicalField, FieldSelector, ImportProfile, RawRecord, SignConvention
from .similarity import normalize_text


@dataclass(frozen=True, slots=True)
class MappedFields:
    """Canonical values of one record. ``None`` means the field is unmapped."""

    row: int
    date: str | None = None
    amount: str | None = None
    debit: str | None = None
    credit: str | None = None
    description: str | None = None
    category: str | None = None
    account_id: str | None = None
    type: str | None = None
    notes: str | None = None
    reference: str | None = None
    tags: str | None = None
    cleared: str | None = None


def _lookup(raw: RawRecord, source: str | int) -> tuple[bool, str]:
    if isinstance(source, int):
        value = raw.get(source)
        return value is not None, (value or "").strip()
    if raw.has(source):
        return True, (raw.get(source) or "").strip()
    # Header spelling drifts between exports ("Posted date" vs "Posted Date").
    wanted = normalize_text(source)
    for name, value in raw.fields.items():
        if normalize_text(name) == wanted:
            return True, (value or "").strip()
    return False, ""


def select(raw: RawRecord, selector: FieldSelector, *, field: str) -> str:
    """Apply one selector to ``raw``.

    Raises :class:`MappingError` when none of the selector's sources exist
    in the record. Blank values are not errors.
    """

    found: list[tuple[int, str]] = []
    any_present = False
    for idx, source in enumerate(selector.sources):
        present, value = _lookup(raw, source)
        any_present = any_present or present
        if value:
            found.append((idx, value))

    if not any_present:
        columns = ", ".join(repr(s) for s in selector.sources)
        raise MappingError(
            f"{field}: column {columns} not found in record",
            field=field,
            column=str(selector.sources[0]),
        )
    if not found:
        return ""
    if selector.combine == "first":
        return found[0][1]

    parts: list[str] = []
    seen: set[str] = set()
    for idx, value in found:
        key = value.casefold()
        if key in seen:
            continue
        seen.add(key)
        label = selector.labels[idx] if selector.labels else ""
        parts.append(f"{label}{value}")
    return selector.separator.join(parts)


def check_profile(profile: ImportProfile) -> None:
    """Raise :class:`MappingError` unless ``profile`` maps a date and an amount source."""

    if profile.selector(CanonicalField.DATE) is None:
        raise MappingError("profile does not map a date field", field="date")
    if profile.sign_convention is SignConvention.DEBIT_CREDIT_COLUMNS:
        if all(profile.selector(f) is None for f in (CanonicalField.DEBIT, CanonicalField.CREDIT)):
            raise MappingError(
                "debit/credit profile maps neither a debit nor a credit column", field="debit"
            )
    elif profile.selector(CanonicalField.AMOUNT) is None:
        raise MappingError("profile does not map an amount field", field="amount")


def resolve(raw: RawRecord, profile: ImportProfile) -> MappedFields:
    """Map ``raw`` to canonical field strings according to ``profile``."""

    check_profile(profile)
    values: dict[str, str] = {}
    for canonical, selector in profile.field_mapping.items():
        values[canonical] = select(raw, selector, field=canonical)
    return MappedFields(row=raw.line, **values)


__all__ = ["MappedFields", "check_profile", "resolve", "select"]
