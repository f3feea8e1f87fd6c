"""Ingest helpers shared by the import orchestrator and the CLI.

Turns raw file bytes into text, guesses the source format when the caller
did not declare one, and dispatches to the matching adapter. Every adapter
returns the same :class:`~ledger_import.models.ParsedStatement` shape, so
nothing past this module branches on the source format again.
"""

from __future__ import annotations

import re

from ..errors import ParseError
from ..logging_setup import get_logger
from ..models import ImportProfile, ParsedStatement, SourceFormat
from .adapters.csv_rows import parse_csv
from .adapters.ofx_sgml import parse_ofx
from .adapters.qif import parse_qif

logger = get_logger("ledger_import.ingest")

_OFX_CHARSET_RE = re.compile(r"CHARSET:\s*(\S+)", re.IGNORECASE)
_XML_ENCODING_RE = re.compile(r"""encoding=["']([A-Za-z0-9_\-]+)["']""")


def decode_source(data: bytes | str) -> str:
    """Decode file bytes to text.

    Honours an OFX ``CHARSET:1252`` header or an XML ``encoding=`` declaration;
    otherwise tries UTF-8 (with or without BOM) and falls back to cp1252,
    which is what most Windows banking exports use.
    """

    if isinstance(data, str):
        return data.removeprefix("\ufeff")

    head = data[:512].decode("ascii", errors="ignore")
    declared: str | None = None
    m = _OFX_CHARSET_RE.search(head)
    if m and m.group(1).upper() not in {"NONE", "USASCII"}:
        charset = m.group(1)
        declared = f"cp{charset}" if charset.isdigit() else charset
    else:
        m = _XML_ENCODING_RE.search(head)
        if m:
            declared = m.group(1)

    candidates = [c for c in (declared, "utf-8-sig", "cp1252") if c]
    for encoding in candidates:
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            logger.debug("could not decode source as %s", encoding)
            continue
    # latin-1 maps every byte, so this cannot fail.
    return data.decode("latin-1")


def detect_format(text: str) -> SourceFormat:
    """Guess the source format from content markers; defaults to CSV."""

    head = text.lstrip()[:4096]
    upper = head.upper()
    if "OFXHEADER" in upper or "<OFX>" in upper or "<STMTTRN>" in upper:
        return SourceFormat.OFX
    if head.startswith("!") and ("!TYPE:" in upper or "!ACCOUNT" in upper or "!OPTION" in upper):
        return SourceFormat.QIF
    return SourceFormat.CSV


def profile_header_columns(profile: ImportProfile) -> list[list[str]]:
    """Named source columns of each mapped field; index-only selectors are left out."""

    groups: list[list[str]] = []
    for selector in profile.field_mapping.values():
        names = [s for s in selector.sources if isinstance(s, str)]
        if names:
            groups.append(names)
    return groups


def parse_source(
    data: bytes | str,
    profile: ImportProfile | None = None,
    *,
    source_format: SourceFormat | str | None = None,
) -> ParsedStatement:
    """Decode ``data`` and run the adapter for its format.

    The format comes from ``source_format`` when given, else from the
    profile, else from :func:`detect_format`. CSV layout options (delimiter,
    header presence, preamble length) are read from the profile.
    """

    text = decode_source(data)
    if not text.strip():
        raise ParseError("source file is empty")

    if source_format is not None:
        fmt = SourceFormat(source_format)
    elif profile is not None:
        fmt = profile.source_format
    else:
        fmt = detect_format(text)
    logger.debug("parsing source as %s", fmt.value)

    if fmt is SourceFormat.OFX:
        return parse_ofx(text)
    if fmt is SourceFormat.QIF:
        return parse_qif(text)
    return parse_csv(
        text,
        delimiter=profile.delimiter if profile else None,
        has_header=profile.has_header if profile else True,
        skip_rows=profile.skip_rows if profile else 0,
        header_columns=profile_header_columns(profile) if profile else None,
    )


__all__ = ["decode_source", "detect_format", "parse_source", "profile_header_columns"]
