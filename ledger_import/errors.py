"""Error taxonomy for the import and reconciliation pipeline.

Three failure tiers, from widest to narrowest blast radius:

- ``ParseError``: the source file is empty or structurally broken. The whole
  import call fails and no partial records are returned.
- ``MappingError`` / ``AmountError``: one record could not be mapped or its
  amount could not be read. Only that row fails; it is reported in
  ``ImportResult.failed``.
- ``NormalizationWarning``: a value was coerced (date fallback, zero amount).
  Never raised; collected on the result and logged.

Duplicate detection has no error type: a questionable match is a score.
"""

from __future__ import annotations

from dataclasses import dataclass


class ImportPipelineError(Exception):
    """Base class for every error raised by ``ledger_import``."""


class ParseError(ImportPipelineError, ValueError):
    """Raised when a source file cannot be tokenized at all."""

    def __init__(self, message: str, *, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class MappingError(ImportPipelineError, LookupError):
    """A profile references a field or column the record does not carry."""

    def __init__(
        self, message: str, *, field: str | None = None, column: str | None = None
    ) -> None:
        self.field = field
        self.column = column
        super().__init__(message)

    def __str__(self) -> str:
        # LookupError would otherwise repr() the message like KeyError does.
        return str(self.args[0]) if self.args else ""


class AmountError(ImportPipelineError, ValueError):
    """A monetary string could not be parsed into a decimal amount."""


class DateError(ImportPipelineError, ValueError):
    """A date could not be parsed and the profile forbids the today fallback."""


class ProfileNotFoundError(ImportPipelineError, LookupError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"import profile not found: {name!r}")

    def __str__(self) -> str:
        return str(self.args[0])


class ReconciliationError(ImportPipelineError):
    """Base class for reconciliation session failures."""


class InvalidStatementBalance(ReconciliationError, ValueError):
    """The user-supplied statement balance is missing or not a finite number."""


class ReconciliationStateError(ReconciliationError, RuntimeError):
    """An operation was attempted from a state that does not allow it."""


@dataclass(frozen=True, slots=True)
class NormalizationWarning:
    """A value that was accepted after coercion rather than parsed cleanly."""

    row: int | None
    field: str
    value: str | None
    message: str

    def __str__(self) -> str:
        where = f"row {self.row}" if self.row is not None else "input"
        return f"{where}: {self.field}: {self.message}"


__all__ = [
    "AmountError",
    "DateError",
    "ImportPipelineError",
    "InvalidStatementBalance",
    "MappingError",
    "NormalizationWarning",
    "ParseError",
    "ProfileNotFoundError",
    "ReconciliationError",
    "ReconciliationStateError",
]
