"""Import orchestration: parse, map, normalize, enrich, de-duplicate.

Nothing here writes to the ledger. :func:`import_file` returns an
:class:`~ledger_import.models.ImportResult` for the caller to review; the
caller commits ``result.imported`` afterwards (see
:func:`ledger_import.persistence.commit_import`).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from .categorize import auto_categorize
from .config import ImportOptions
from .duplicates import find_batch_duplicates, find_ledger_duplicates
from .errors import AmountError, DateError, MappingError, NormalizationWarning
from .ingest import parse_source
from .ledger import Ledger
from .logging_setup import get_logger
from .mapping import MappedFields, check_profile, resolve
from .models import (
    CandidateTransaction,
    DuplicateMatch,
    FailedRow,
    ImportProfile,
    ImportResult,
    ImportStatistics,
    LedgerTransaction,
    ParsedStatement,
    RawRecord,
    RuleSkip,
    SignConvention,
    SourceFormat,
)
from .normalizers import (
    amount_marker,
    apply_type_field,
    parse_amount,
    parse_date_checked,
    parse_debit_credit,
)
from .profiles import default_profile, infer_profile
from .rules import ImportRule, apply_rules, order_rules

logger = get_logger("ledger_import.importer")

DEFAULT_DESCRIPTIONS: dict[SourceFormat, str] = {
    SourceFormat.OFX: "OFX Transaction",
    SourceFormat.QIF: "QIF Transaction",
    SourceFormat.CSV: "Imported Transaction",
}
CLEARED_VALUES: frozenset[str] = frozenset(
    {"x", "*", "c", "r", "true", "yes", "y", "1", "cleared", "reconciled"}
)
INFERENCE_SAMPLE_ROWS = 50

_TAG_SPLIT_RE = re.compile(r"[,;|]")


# ---------------------------------------------------------------------------
# Per-row normalization
# ---------------------------------------------------------------------------


def _signed_amount(fields: MappedFields, profile: ImportProfile) -> Decimal:
    convention = profile.sign_convention
    if convention is SignConvention.DEBIT_CREDIT_COLUMNS:
        return parse_debit_credit(fields.debit, fields.credit)
    amount = parse_amount(fields.amount, convention)
    if convention is SignConvention.TYPE_FIELD and amount_marker(fields.amount) is None:
        return apply_type_field(
            amount,
            fields.type,
            debit_markers=profile.debit_markers,
            credit_markers=profile.credit_markers,
        )
    return amount


def _tags(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    out: list[str] = []
    for part in _TAG_SPLIT_RE.split(value):
        tag = part.strip()
        if tag and tag not in out:
            out.append(tag)
    return tuple(out)


def _cleared(value: str | None) -> bool:
    return (value or "").strip().lower() in CLEARED_VALUES


def build_candidate(
    raw: RawRecord,
    profile: ImportProfile,
    *,
    account_id: str | None = None,
    today: date | None = None,
) -> tuple[CandidateTransaction, list[NormalizationWarning]]:
    """Turn one raw record into a candidate plus any coercion warnings.

    Raises :class:`MappingError`, :class:`AmountError` or :class:`DateError`
    (the last only with ``profile.strict_dates``) when the row cannot be
    imported.
    """

    fields = resolve(raw, profile)
    warnings: list[NormalizationWarning] = []
    today = today or date.today()

    when, date_problem = parse_date_checked(fields.date, profile.date_format_hint, today=today)
    if date_problem is not None:
        if profile.strict_dates:
            raise DateError(date_problem)
        warnings.append(NormalizationWarning(raw.line, "date", fields.date, date_problem))
    elif when > today:
        warnings.append(
            NormalizationWarning(
                raw.line, "date", fields.date, f"date {when.isoformat()} is in the future"
            )
        )

    amount = _signed_amount(fields, profile)
    if amount == 0:
        warnings.append(NormalizationWarning(raw.line, "amount", fields.amount, "amount is zero"))

    candidate = CandidateTransaction(
        date=when,
        amount=amount,
        description=fields.description or DEFAULT_DESCRIPTIONS[raw.source_format],
        account_id=account_id or fields.account_id or "",
        source_row=raw.line,
        raw_category=fields.category or None,
        tags=_tags(fields.tags),
        notes=fields.notes or None,
        reference=fields.reference or None,
        cleared=_cleared(fields.cleared),
    )
    return candidate, warnings


def resolve_profile(statement: ParsedStatement, profile: ImportProfile | None) -> ImportProfile:
    """Use ``profile`` when given; otherwise the format default or an inferred one."""

    if profile is not None:
        return profile
    if statement.source_format is SourceFormat.CSV:
        sample = statement.records[:INFERENCE_SAMPLE_ROWS]
        return infer_profile(statement.headers, sample_rows=sample)
    return default_profile(statement.source_format)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def _ledger_rows(ledger: Ledger, account_ids: Iterable[str]) -> list[LedgerTransaction]:
    rows: list[LedgerTransaction] = []
    for account in sorted(set(account_ids)):
        rows.extend(ledger.get_transactions(account))
    return rows


def _statistics(
    total_rows: int,
    imported: Sequence[CandidateTransaction],
    skipped: Sequence[DuplicateMatch],
    rule_skips: Sequence[RuleSkip],
    failed: Sequence[FailedRow],
    warnings: Sequence[NormalizationWarning],
    rules_applied: int,
) -> ImportStatistics:
    income = sum((c.amount for c in imported if c.amount > 0), Decimal("0"))
    expense = sum((-c.amount for c in imported if c.amount < 0), Decimal("0"))
    dates = [c.date for c in imported]
    return ImportStatistics(
        total_rows=total_rows,
        imported=len(imported),
        skipped_duplicates=len(skipped),
        skipped_by_rule=len(rule_skips),
        failed=len(failed),
        warnings=len(warnings),
        rules_applied=rules_applied,
        total_income=income,
        total_expense=expense,
        date_range=(min(dates), max(dates)) if dates else None,
    )


def import_file(
    data: bytes | str,
    profile: ImportProfile | None = None,
    *,
    ledger: Ledger | None = None,
    account_id: str | None = None,
    options: ImportOptions | None = None,
    rules: Sequence[ImportRule] = (),
    source_format: SourceFormat | str | None = None,
    today: date | None = None,
) -> ImportResult:
    """Run one import and return a reviewable result.

    Behavior:
    - Parses ``data`` (bytes are decoded; the format comes from
      ``source_format``, the profile, or content sniffing). A structurally
      broken file raises :class:`ParseError` and nothing else happens.
    - Without a ``profile``, OFX and QIF use their built-in mapping and CSV
      headers are matched against the bank catalog, then fuzzily. A profile
      that maps no date or amount raises :class:`MappingError`.
    - Each record is mapped and normalized. Rows with missing columns or
      unreadable amounts land in ``failed``; the rest continue.
    - With ``options.auto_categorize`` and a ``ledger``, rows without a
      category take the one learned from the ledger's categorized history
      when the top suggestion reaches ``options.category_confidence``.
    - ``rules`` run in descending priority; a ``skip`` action moves the row to
      ``skipped_by_rule``.
    - Unless ``options.skip_duplicates`` is false, candidates are scanned
      against ``ledger`` (same account, within the date window) and then
      against earlier rows of the same batch.
    """

    options = options or ImportOptions.from_env()
    statement = parse_source(data, profile, source_format=source_format)
    profile = resolve_profile(statement, profile)
    check_profile(profile)

    warnings: list[NormalizationWarning] = []
    failed: list[FailedRow] = []
    candidates: list[CandidateTransaction] = []
    for raw in statement.records:
        try:
            candidate, row_warnings = build_candidate(
                raw, profile, account_id=account_id, today=today
            )
        except (MappingError, AmountError, DateError) as exc:
            logger.warning("row %d failed: %s", raw.line, exc)
            failed.append(FailedRow(row=raw.line, reason=str(exc)))
            continue
        for warning in row_warnings:
            logger.warning("normalization: %s", warning)
        warnings.extend(row_warnings)
        candidates.append(candidate)

    if options.auto_categorize and ledger is not None and candidates:
        history = _ledger_rows(ledger, (c.account_id for c in candidates))
        candidates, categorized = auto_categorize(
            candidates, history, threshold=options.category_confidence
        )
        logger.info("auto-categorized %d of %d row(s)", categorized, len(candidates))

    ordered_rules = order_rules(rules)
    rule_skips: list[RuleSkip] = []
    rules_applied = 0
    enriched: list[CandidateTransaction] = []
    for candidate in candidates:
        outcome = apply_rules(candidate, ordered_rules)
        rules_applied += len(outcome.applied)
        if outcome.skipped_by is not None:
            skip = RuleSkip(
                row=candidate.source_row, rule=outcome.skipped_by, candidate=outcome.candidate
            )
            rule_skips.append(skip)
        else:
            enriched.append(outcome.candidate)

    skipped: list[DuplicateMatch] = []
    imported = enriched
    if options.skip_duplicates:
        if ledger is not None:
            existing = _ledger_rows(ledger, (c.account_id for c in imported))
            ledger_hits = find_ledger_duplicates(
                imported,
                existing,
                threshold=options.duplicate_threshold,
                date_window_days=options.date_window_days,
            )
            skipped.extend(ledger_hits.values())
            imported = [c for i, c in enumerate(imported) if i not in ledger_hits]
        batch_hits = find_batch_duplicates(
            imported,
            threshold=options.duplicate_threshold,
            warn_size=options.batch_warn_size,
        )
        skipped.extend(batch_hits.values())
        imported = [c for i, c in enumerate(imported) if i not in batch_hits]
        skipped.sort(key=lambda m: m.candidate_row)

    stats = _statistics(
        len(statement.records), imported, skipped, rule_skips, failed, warnings, rules_applied
    )
    logger.info(
        "import finished: %d row(s), %d imported, %d duplicate(s), "
        "%d skipped by rule, %d failed, %d warning(s)",
        stats.total_rows,
        stats.imported,
        stats.skipped_duplicates,
        stats.skipped_by_rule,
        stats.failed,
        stats.warnings,
    )
    return ImportResult(
        imported=tuple(imported),
        skipped_duplicates=tuple(skipped),
        failed=tuple(failed),
        statistics=stats,
        warnings=tuple(warnings),
        skipped_by_rule=tuple(rule_skips),
        source_format=statement.source_format,
        statement_info=dict(statement.statement_info),
    )


__all__ = [
    "CLEARED_VALUES",
    "DEFAULT_DESCRIPTIONS",
    "build_candidate",
    "import_file",
    "resolve_profile",
]
