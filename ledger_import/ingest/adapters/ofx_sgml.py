"""OFX/QFX adapter: pull ``STMTTRN`` blocks out of SGML or XML statements.

OFX 1.x is SGML with unclosed leaf tags (``<TRNAMT>-25.50``), OFX 2.x is XML.
Rather than building a document tree, the adapter scans for transaction
blocks with regular expressions, which tolerates both dialects and the
header noise banks put around them. Each block becomes one ``RawRecord``
keyed by tag name; every known tag is present (blank when absent) so the
mapping stage can rely on the keys.

Statement-level facts (currency, bank/account ids, period, ledger balance)
are returned as ``ParsedStatement.statement_info``.
"""

from __future__ import annotations

import html
import re

from ...errors import ParseError
from ...logging_setup import get_logger
from ...models import ParsedStatement, RawRecord, SourceFormat

logger = get_logger("ledger_import.ingest.ofx")

TRANSACTION_TAGS: tuple[str, ...] = (
    "TRNTYPE",
    "DTPOSTED",
    "DTUSER",
    "TRNAMT",
    "FITID",
    "NAME",
    "PAYEE",
    "MEMO",
    "CHECKNUM",
    "REFNUM",
    "SIC",
)
STATEMENT_TAGS: tuple[str, ...] = ("CURDEF", "BANKID", "BRANCHID", "ACCTID", "ACCTTYPE")

_OFX_START_RE = re.compile(r"<OFX>", re.IGNORECASE)
_BLOCK_RE = re.compile(
    r"<STMTTRN>(.*?)(?=</STMTTRN>|<STMTTRN>|</BANKTRANLIST>|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_LEAF_RE = re.compile(r"<([A-Za-z0-9.]+)>([^<\r\n]*)")
_BANKTRANLIST_RE = re.compile(
    r"<BANKTRANLIST>(.*?)(?:</BANKTRANLIST>|\Z)", re.IGNORECASE | re.DOTALL
)
_LEDGERBAL_RE = re.compile(
    r"<LEDGERBAL>(.*?)(?=</LEDGERBAL>|<AVAILBAL>|</STMTRS>|</CCSTMTRS>|\Z)",
    re.IGNORECASE | re.DOTALL,
)


def _leaf_values(chunk: str) -> dict[str, str]:
    """Return the first value of each leaf tag inside ``chunk``."""

    out: dict[str, str] = {}
    for m in _LEAF_RE.finditer(chunk):
        tag = m.group(1).upper()
        value = html.unescape(m.group(2).strip())
        if tag not in out and value:
            out[tag] = value
    return out


def _statement_info(text: str) -> dict[str, str]:
    # Tags outside the transaction list describe the statement itself.
    outside = _BANKTRANLIST_RE.sub("", text)
    leaves = _leaf_values(outside)
    info = {tag: leaves[tag] for tag in STATEMENT_TAGS if tag in leaves}

    tranlist = _BANKTRANLIST_RE.search(text)
    if tranlist:
        head = tranlist.group(1).split("<STMTTRN>", 1)[0]
        period = _leaf_values(head)
        for tag in ("DTSTART", "DTEND"):
            if tag in period:
                info[tag] = period[tag]

    ledger = _LEDGERBAL_RE.search(text)
    if ledger:
        bal = _leaf_values(ledger.group(1))
        if "BALAMT" in bal:
            info["LEDGERBAL"] = bal["BALAMT"]
        if "DTASOF" in bal:
            info["LEDGERBAL_DTASOF"] = bal["DTASOF"]
    return info


def parse_ofx(text: str) -> ParsedStatement:
    """Extract every ``STMTTRN`` block from OFX ``text``.

    Raises :class:`ParseError` when the input is empty or has no ``<OFX>``
    root. A statement without transactions yields zero records.
    """

    if not text.strip():
        raise ParseError("OFX file is empty")
    start = _OFX_START_RE.search(text)
    if start is None:
        raise ParseError("Invalid OFX file: <OFX> tag not found")

    info = _statement_info(text[start.start() :])
    account = info.get("ACCTID", "")

    records: list[RawRecord] = []
    for m in _BLOCK_RE.finditer(text, start.start()):
        leaves = _leaf_values(m.group(1))
        fields = {tag: leaves.get(tag, "") for tag in TRANSACTION_TAGS}
        # Unknown tags are kept too; banks add their own extensions.
        for tag, value in leaves.items():
            fields.setdefault(tag, value)
        fields["ACCTID"] = account
        line = text.count("\n", 0, m.start()) + 1
        records.append(
            RawRecord(
                fields=fields,
                values=tuple(fields.values()),
                line=line,
                source_format=SourceFormat.OFX,
            )
        )

    logger.debug("parsed %d OFX transaction block(s)", len(records))
    return ParsedStatement(
        source_format=SourceFormat.OFX,
        headers=tuple(TRANSACTION_TAGS) + ("ACCTID",),
        records=tuple(records),
        statement_info=info,
    )


__all__ = ["STATEMENT_TAGS", "TRANSACTION_TAGS", "parse_ofx"]
