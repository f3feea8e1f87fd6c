"""QIF adapter: split a Quicken Interchange Format export into records.

A QIF file is a sequence of records terminated by ``^``; each line inside a
record starts with a one-letter code. The codes are translated to readable
field names here so nothing downstream has to know them:

====  ============  =====================================================
Code  Field         Notes
====  ============  =====================================================
D     date          ``1/5/2024``, ``12/25'23`` (apostrophe year separator)
T     amount        ``U`` is accepted as a fallback for ``T``
P     payee
M     memo
L     category      transfer brackets stripped: ``[Housing]/Rent``
N     number        cheque number or reference
C     cleared       ``X`` or ``*``
A     address       multiple lines joined with ``, ``
====  ============  =====================================================

Investment registers (``!Type:Invst``) use a different record grammar and
are rejected with a :class:`ParseError`.
"""

from __future__ import annotations

from ...errors import ParseError
from ...logging_setup import get_logger
from ...models import ParsedStatement, RawRecord, SourceFormat

logger = get_logger("ledger_import.ingest.qif")

FIELD_CODES: dict[str, str] = {
    "D": "date",
    "T": "amount",
    "U": "amount_u",
    "P": "payee",
    "M": "memo",
    "L": "category",
    "N": "number",
    "C": "cleared",
    "A": "address",
}
QIF_FIELDS: tuple[str, ...] = (
    "date",
    "amount",
    "payee",
    "memo",
    "category",
    "number",
    "cleared",
    "address",
)


def strip_category_brackets(value: str) -> str:
    """``[Housing]/Rent`` -> ``Housing/Rent``; QIF brackets mark transfers."""

    return value.replace("[", "").replace("]", "").strip()


def _finish(raw: dict[str, str], line: int, account: str) -> RawRecord:
    fields = {name: raw.get(name, "") for name in QIF_FIELDS}
    fields["account"] = account
    if not fields["amount"] and raw.get("amount_u"):
        fields["amount"] = raw["amount_u"]
    fields["category"] = strip_category_brackets(fields["category"])
    fields.update((k, v) for k, v in raw.items() if k.startswith("code_"))
    return RawRecord(
        fields=fields,
        values=tuple(fields.values()),
        line=line,
        source_format=SourceFormat.QIF,
    )


def parse_qif(text: str) -> ParsedStatement:
    """Parse QIF ``text`` into one ``RawRecord`` per transaction.

    The last record may omit its terminating ``^``. Raises
    :class:`ParseError` for empty input and for investment registers.
    """

    if not text.strip():
        raise ParseError("QIF file is empty")

    info: dict[str, str] = {}
    records: list[RawRecord] = []
    current: dict[str, str] = {}
    record_line = 0
    in_account_block = False

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("!"):
            directive = line[1:].strip()
            lowered = directive.lower()
            if lowered.startswith("type:"):
                account_type = directive.split(":", 1)[1].strip()
                if account_type.lower().startswith("invst"):
                    raise ParseError("QIF investment registers are not supported", line=lineno)
                info["type"] = account_type
                in_account_block = False
            elif lowered == "account":
                in_account_block = True
            # Other directives (!Option:AutoSwitch, !Clear:...) carry no data.
            continue
        if line == "^":
            if in_account_block:
                in_account_block = False
            elif current:
                records.append(_finish(current, record_line, info.get("account", "")))
            current = {}
            continue

        code, value = line[0].upper(), line[1:].strip()
        if in_account_block:
            if code == "N":
                info["account"] = value
            continue
        name = FIELD_CODES.get(code)
        if name is None:
            # Split lines (S/E/$) and unknown codes are kept verbatim.
            name = f"code_{code}"
        if not current:
            record_line = lineno
        if name == "address" and current.get("address"):
            current["address"] = f"{current['address']}, {value}"
        elif name not in current:
            current[name] = value

    if current:
        records.append(_finish(current, record_line, info.get("account", "")))

    logger.debug("parsed %d QIF record(s)", len(records))
    return ParsedStatement(
        source_format=SourceFormat.QIF,
        headers=QIF_FIELDS + ("account",),
        records=tuple(records),
        statement_info=info,
    )


__all__ = ["FIELD_CODES", "QIF_FIELDS", "parse_qif", "strip_category_brackets"]
