"""Per-format adapters. Each returns a ``ParsedStatement`` of ``RawRecord`` rows."""

from .csv_rows import parse_csv
from .ofx_sgml import parse_ofx
from .qif import parse_qif

__all__ = ["parse_csv", "parse_ofx", "parse_qif"]
