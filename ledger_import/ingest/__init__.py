"""Source-file ingestion: decoding, format detection and per-format adapters."""

from .utils import decode_source, detect_format, parse_source

__all__ = ["decode_source", "detect_format", "parse_source"]
