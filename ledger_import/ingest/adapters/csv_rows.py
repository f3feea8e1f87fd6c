"""Delimited-text adapter: tokenize a bank CSV export into ``RawRecord`` rows.

Tokenization follows RFC 4180 via the stdlib :mod:`csv` module (quoted fields
with embedded delimiters and newlines, doubled quotes). The reader runs with
``strict=True`` so an unterminated quote is a :class:`ParseError` instead of
a silently merged row.

Bank exports are messy around the edges, so the adapter also:

- sniffs the delimiter among ``,`` ``;`` tab and ``|``;
- skips a preamble (account number, statement period...) by locating the
  header within the first 20 lines: the row naming the profile's columns
  when a profile is given, else the first row that looks like a header;
- honours an explicit ``skip_rows`` / ``has_header=False`` from the profile.

Row references are 1-based physical line numbers; the header line counts.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Sequence
from io import StringIO

from ...errors import ParseError
from ...logging_setup import get_logger
from ...models import ParsedStatement, RawRecord, SourceFormat

logger = get_logger("ledger_import.ingest.csv")

CANDIDATE_DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|")
HEADER_SCAN_LIMIT = 20

# Exact header cells seen across bank exports, lowercased.
_HEADER_WORDS: frozenset[str] = frozenset(
    {
        "date",
        "transaction date",
        "posted date",
        "posting date",
        "booking date",
        "value date",
        "started date",
        "completed date",
        "run date",
        "trade date",
        "timestamp",
        "created (utc)",
        "description",
        "transaction description",
        "details",
        "transaction details",
        "narrative",
        "memo",
        "payee",
        "name",
        "counter party",
        "amount",
        "value",
        "gross",
        "debit",
        "credit",
        "debit amount",
        "credit amount",
        "paid in",
        "paid out",
        "money in",
        "money out",
        "withdrawals",
        "deposits",
        "balance",
        "reference",
        "type",
        "transaction type",
        "category",
        "currency",
    }
)
# Substrings that mark a header cell even when the exact wording differs.
_HEADER_FRAGMENTS: tuple[str, ...] = ("date", "amount", "description", "debit", "credit", "balance")


def sniff_delimiter(text: str) -> str:
    """Pick the most frequent candidate delimiter on the first line that has one.

    Preamble lines without any candidate are passed over (up to the header
    scan limit). Ties resolve in ``CANDIDATE_DELIMITERS`` order; a file with
    no candidate at all is read as comma-separated.
    """

    for line in text.splitlines()[:HEADER_SCAN_LIMIT]:
        if not line.strip():
            continue
        counts = [(line.count(d), -i, d) for i, d in enumerate(CANDIDATE_DELIMITERS)]
        best = max(counts)
        if best[0] > 0:
            return best[2]
    return ","


def _norm_cell(cell: str) -> str:
    return re.sub(r"\s+", " ", cell.strip().lower())


def _looks_like_header(cells: Sequence[str]) -> bool:
    hits = 0
    for cell in cells:
        c = _norm_cell(cell)
        if not c:
            continue
        if c in _HEADER_WORDS or any(frag in c for frag in _HEADER_FRAGMENTS):
            hits += 1
    return hits >= 2


def _locate_header(
    rows: Sequence[tuple[int, list[str]]],
    header_columns: Sequence[Sequence[str]] | None,
) -> int:
    """Index of the header row among the first ``HEADER_SCAN_LIMIT`` rows.

    With ``header_columns`` (one group of alternative names per mapped field)
    the header is the first row naming a column of every group; failing that
    the first row is used, never a later data row. Without them the
    header-word heuristic picks the first plausible row.
    """

    window = rows[:HEADER_SCAN_LIMIT]
    if header_columns is not None:
        groups = [{_norm_cell(c) for c in group} for group in header_columns if group]
        if not groups:
            return 0
        for idx, (_line, cells) in enumerate(window):
            present = {_norm_cell(c) for c in cells}
            if all(group & present for group in groups):
                return idx
        logger.warning(
            "no row in the first %d names every profile column; reading line %d as the header",
            HEADER_SCAN_LIMIT,
            rows[0][0],
        )
        return 0
    for idx, (_line, cells) in enumerate(window):
        if _looks_like_header(cells):
            return idx
    return 0


def _unique_headers(cells: Sequence[str]) -> tuple[str, ...]:
    seen: dict[str, int] = {}
    out: list[str] = []
    for idx, cell in enumerate(cells):
        name = cell.strip() or f"column_{idx + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name} ({seen[name]})"
        else:
            seen[name] = 1
        out.append(name)
    return tuple(out)


def parse_csv(
    text: str,
    *,
    delimiter: str | None = None,
    has_header: bool = True,
    skip_rows: int = 0,
    header_columns: Sequence[Sequence[str]] | None = None,
) -> ParsedStatement:
    """Tokenize CSV ``text`` into a :class:`ParsedStatement`.

    ``header_columns`` are the column names a profile expects; when given they
    locate the header instead of the header-word heuristic.

    Raises :class:`ParseError` for an empty file (no non-blank rows, hence no
    columns) and for an unterminated quote or other structural damage.
    """

    if text.startswith("\ufeff"):
        text = text[1:]
    if not text.strip():
        raise ParseError("CSV file is empty")

    line_offset = 0
    if skip_rows:
        lines = text.splitlines(keepends=True)
        text = "".join(lines[skip_rows:])
        line_offset = min(skip_rows, len(lines))
        if not text.strip():
            raise ParseError("CSV file has no rows after skipping the preamble")

    delim = delimiter or sniff_delimiter(text)
    rows: list[tuple[int, list[str]]] = []
    with StringIO(text, newline="") as f:
        reader = csv.reader(f, delimiter=delim, strict=True)
        start_line = 1
        try:
            for row in reader:
                if any(cell.strip() for cell in row):
                    rows.append((start_line + line_offset, row))
                start_line = reader.line_num + 1
        except csv.Error as exc:
            raise ParseError(f"malformed CSV: {exc}", line=reader.line_num + line_offset) from exc

    if not rows:
        raise ParseError("CSV file contains no rows")

    headers: tuple[str, ...] = ()
    data = rows
    if has_header:
        header_idx = _locate_header(rows, header_columns)
        _header_line, header_cells = rows[header_idx]
        headers = _unique_headers(header_cells)
        data = rows[header_idx + 1 :]
        if header_idx:
            logger.debug("skipped %d preamble line(s) before the header", header_idx)

    records: list[RawRecord] = []
    for line, cells in data:
        values = tuple(cell.strip() for cell in cells)
        fields = {name: (values[i] if i < len(values) else "") for i, name in enumerate(headers)}
        records.append(
            RawRecord(fields=fields, values=values, line=line, source_format=SourceFormat.CSV)
        )

    logger.debug("parsed %d CSV record(s) with delimiter %r", len(records), delim)
    return ParsedStatement(
        source_format=SourceFormat.CSV,
        headers=headers,
        records=tuple(records),
    )


__all__ = ["CANDIDATE_DELIMITERS", "parse_csv", "sniff_delimiter"]
