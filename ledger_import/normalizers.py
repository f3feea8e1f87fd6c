"""Date and amount normalization for imported bank records.

Dates
-----
:func:`parse_date` resolves a string in one of many regional layouts to a
:class:`datetime.date`. The order is fixed and the first match wins:

1. ISO ``YYYY-MM-DD`` (optionally followed by a time component).
2. A table of regex-guarded layouts (``DD/MM/YYYY``, ``DD-MM-YYYY``,
   ``DD.MM.YYYY``, ``YYYY/MM/DD``, ``DD MMM YYYY``, ``MMM DD, YYYY`` and the
   compact ``YYYYMMDD`` used by OFX).
3. The caller's format hint (``"DD/MM/YY"``, ``"YYYYMMDD"``...), matched
   token by token against the value. Two-digit years get a ``20`` prefix.
4. Today's date, with a warning message returned to the caller.

``DD/MM/YYYY`` and ``MM/DD/YYYY`` are indistinguishable by shape. They are
read day-first unless the hint starts with ``MM``; nothing here guesses from
the digits.

Amounts
-------
:func:`parse_amount` strips currency symbols/codes and thousands separators,
honours parentheses, leading or trailing signs and ``CR``/``DR`` suffixes, and
returns a :class:`~decimal.Decimal`. Floats are never involved.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import AmountError
from .logging_setup import get_logger
from .models import DEFAULT_CREDIT_MARKERS, DEFAULT_DEBIT_MARKERS, SignConvention

logger = get_logger("ledger_import.normalizers")

# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_MONTHS: dict[str, int] = {
    name: idx
    for idx, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_TIME_SUFFIX_RE = re.compile(
    r"[\sT]+\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:\s*[AaPp][Mm])?"
    r"(?:\s*(?:Z|[+-]\d{2}:?\d{2}|[A-Z]{2,4}))?$"
)

_NUMERIC_SLASH = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_NUMERIC_DASH = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_NUMERIC_DOT = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_YEAR_FIRST = re.compile(r"^(\d{4})[/.](\d{1,2})[/.](\d{1,2})$")
_DAY_MONTH_NAME = re.compile(r"^(\d{1,2})[\s\-]+([A-Za-z]{3,9})\.?[\s\-,]+(\d{4})$")
_MONTH_NAME_DAY = re.compile(r"^([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})$")
_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:\d{2,6}(?:\.\d+)?)?(?:\[[^\]]*\])?$")

_HINT_PART_RE = re.compile(r"Y+|M+|D+")
_VALUE_TOKEN_RE = re.compile(r"[A-Za-z]+|\d+")


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_from_name(name: str) -> int | None:
    return _MONTHS.get(name[:3].lower())


def _strip_time(value: str) -> str:
    return _TIME_SUFFIX_RE.sub("", value).strip()


def _parse_known_layouts(value: str, *, month_first: bool) -> date | None:
    s = _strip_time(value)

    for pattern in (_NUMERIC_SLASH, _NUMERIC_DASH, _NUMERIC_DOT):
        m = pattern.match(s)
        if m:
            first, second, year = (int(g) for g in m.groups())
            month, day = (first, second) if month_first else (second, first)
            return _safe_date(year, month, day)

    m = _YEAR_FIRST.match(s)
    if m:
        year, month, day = (int(g) for g in m.groups())
        return _safe_date(year, month, day)

    m = _DAY_MONTH_NAME.match(s)
    if m:
        month = _month_from_name(m.group(2))
        return _safe_date(int(m.group(3)), month, int(m.group(1))) if month else None

    m = _MONTH_NAME_DAY.match(s)
    if m:
        month = _month_from_name(m.group(1))
        return _safe_date(int(m.group(3)), month, int(m.group(2))) if month else None

    m = _COMPACT.match(s)
    if m:
        year, month, day = (int(g) for g in m.groups())
        return _safe_date(year, month, day)
    return None


def _parse_with_hint(value: str, hint: str) -> date | None:
    parts = _HINT_PART_RE.findall(hint.upper())
    if {p[0] for p in parts} != {"Y", "M", "D"}:
        return None
    tokens = _VALUE_TOKEN_RE.findall(value)
    if len(tokens) == 1 and tokens[0].isdigit() and len(parts) > 1:
        # Compact value ("20240115", "150124"): slice by the hint's widths.
        digits = tokens[0]
        widths = [len(p) for p in parts]
        if len(digits) < sum(widths):
            return None
        tokens, pos = [], 0
        for width in widths:
            tokens.append(digits[pos : pos + width])
            pos += width
    if len(tokens) < len(parts):
        return None

    year = month = day = None
    for part, token in zip(parts, tokens, strict=False):
        kind = part[0]
        if kind == "Y":
            if not token.isdigit():
                return None
            year = int("20" + token) if len(token) == 2 else int(token)
        elif kind == "M":
            month = int(token) if token.isdigit() else _month_from_name(token)
            if month is None:
                return None
        else:
            if not token.isdigit():
                return None
            day = int(token)
    if year is None or month is None or day is None:
        return None
    return _safe_date(year, month, day)


def parse_date_checked(
    value: str | None,
    format_hint: str | None = None,
    *,
    month_first: bool | None = None,
    today: date | None = None,
) -> tuple[date, str | None]:
    """Parse ``value`` and report whether the today-fallback was used.

    Returns ``(parsed_date, warning)``; ``warning`` is ``None`` on a clean
    parse and a human-readable message when the value was replaced by today.
    ``month_first`` overrides the convention derived from ``format_hint``.
    """

    if month_first is None:
        month_first = bool(format_hint and format_hint.strip().upper().startswith("MM"))
    fallback = today or date.today()

    s = (value or "").strip()
    if not s:
        return fallback, "date is empty; defaulted to today"

    m = _ISO_RE.match(s)
    if m:
        parsed = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if parsed is not None:
            return parsed, None

    parsed = _parse_known_layouts(s, month_first=month_first)
    if parsed is not None:
        return parsed, None

    if format_hint:
        parsed = _parse_with_hint(s, format_hint)
        if parsed is not None:
            return parsed, None

    return fallback, f"unparseable date {s!r}; defaulted to today"


def parse_date(value: str | None, format_hint: str | None = None) -> date:
    """Parse ``value`` into a calendar date, never raising.

    Unparseable input yields today's date and logs a warning; use
    :func:`parse_date_checked` to observe the fallback programmatically.
    """

    parsed, warning = parse_date_checked(value, format_hint)
    if warning:
        logger.warning("date normalization: %s", warning)
    return parsed


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CURRENCY_SYMBOLS = "$£€¥₹₩₽₺₪฿₫₱"
_ISO_PREFIX_RE = re.compile(r"^[A-Z]{3}(?=[\s\d(+\-.,$£€¥])\s*")
_ISO_SUFFIX_RE = re.compile(r"(?<=[\d).\s])\s*[A-Z]{3}$")
_CR_DR_RE = re.compile(r"\s*(?<![A-Za-z])(CR|DR)\.?$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def _normalize_separators(s: str) -> str:
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            # European grouping: 1.234,56
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if "," in s:
        if re.fullmatch(r"\d{1,3}(?:,\d{3})+", s):
            return s.replace(",", "")
        if re.fullmatch(r"\d*,\d{1,2}", s):
            return s.replace(",", ".")
        return s.replace(",", "")
    if s.count(".") > 1 and re.fullmatch(r"\d{1,3}(?:\.\d{3})+", s):
        return s.replace(".", "")
    return s


def _parse_marked(raw: str | None) -> tuple[Decimal, str | None]:
    """Return the signed value of ``raw`` and its ``CR``/``DR`` marker, if any."""

    if raw is None:
        raise AmountError("amount is required")
    s = raw.strip().replace("\u00a0", " ")
    if not s:
        raise AmountError("amount is empty")

    marker: str | None = None
    m = _CR_DR_RE.search(s)
    if m and m.start() > 0:
        marker = m.group(1).upper()
        s = s[: m.start()].strip()

    s = _ISO_PREFIX_RE.sub("", s)
    s = _ISO_SUFFIX_RE.sub("", s).strip()

    negative = False
    # Peel sign, currency and parentheses markers in any order until stable,
    # so "-$(1,234.56)", "$-12" and "(€5)" all resolve.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-") or s.startswith("−"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s and s[0] in _CURRENCY_SYMBOLS:
            s = s[1:].lstrip()
            changed = True
        if s and s[-1] in _CURRENCY_SYMBOLS:
            s = s[:-1].rstrip()
            changed = True
        if len(s) >= 2 and s.startswith("(") and s.endswith(")"):
            negative = True
            s = s[1:-1].strip()
            changed = True
        if s.endswith("-"):
            negative = True
            s = s[:-1].rstrip()
            changed = True
        if not changed:
            break

    s = _normalize_separators(s.replace(" ", "").replace("'", ""))
    if not _NUMBER_RE.fullmatch(s):
        raise AmountError(f"invalid amount: {raw!r}")
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise AmountError(f"invalid amount: {raw!r}") from exc
    return (-d if negative else d), marker


def parse_amount(
    value: str | None,
    sign_convention: SignConvention = SignConvention.SIGNED,
) -> Decimal:
    """Parse a monetary string into a signed ``Decimal``.

    A trailing ``CR`` forces a positive result and ``DR`` a negative one,
    whatever the convention. Otherwise ``INVERTED`` flips the written sign;
    every other convention keeps it (their column-level rules are applied by
    :func:`parse_debit_credit` and :func:`apply_type_field`).

    Raises :class:`~ledger_import.errors.AmountError` on empty or non-numeric
    input.
    """

    amount, marker = _parse_marked(value)
    if marker == "CR":
        return abs(amount)
    if marker == "DR":
        return -abs(amount)
    if sign_convention is SignConvention.INVERTED:
        return -amount
    return amount


def amount_marker(value: str | None) -> str | None:
    """Return ``"CR"`` or ``"DR"`` when ``value`` ends with that marker."""

    s = (value or "").strip()
    m = _CR_DR_RE.search(s)
    return m.group(1).upper() if m and m.start() > 0 else None


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def parse_debit_credit(debit: str | None, credit: str | None) -> Decimal:
    """Combine separate money-out / money-in columns into one signed amount."""

    if _blank(debit) and _blank(credit):
        raise AmountError("both debit and credit are empty")
    out = abs(parse_amount(debit)) if not _blank(debit) else Decimal(0)
    into = abs(parse_amount(credit)) if not _blank(credit) else Decimal(0)
    return into - out


def _marker_set(markers: Iterable[str]) -> set[str]:
    return {m.strip().lower() for m in markers if m and m.strip()}


def apply_type_field(
    amount: Decimal,
    type_value: str | None,
    *,
    debit_markers: Iterable[str] = DEFAULT_DEBIT_MARKERS,
    credit_markers: Iterable[str] = DEFAULT_CREDIT_MARKERS,
) -> Decimal:
    """Direct an unsigned ``amount`` using a separate transaction-type column.

    The whole type value is compared first, then its words in order; the
    first word that names a direction decides. Unknown types keep the sign
    as written.
    """

    if _blank(type_value):
        return amount
    debits = _marker_set(debit_markers)
    credits = _marker_set(credit_markers)
    t = type_value.strip().lower()
    candidates = [t, *re.findall(r"[a-z]+", t)]
    for word in candidates:
        if word in debits:
            return -abs(amount)
        if word in credits:
            return abs(amount)
    return amount


def format_amount(d: Decimal) -> str:
    # Two decimals, ASCII dot, leading minus for negatives.
    q = d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:.2f}"


__all__ = [
    "amount_marker",
    "apply_type_field",
    "format_amount",
    "parse_amount",
    "parse_date",
    "parse_date_checked",
    "parse_debit_credit",
]
