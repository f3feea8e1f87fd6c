"""CLI for the ``ledger_import`` package.

Command bodies are plain ``cmd_*`` functions returning an exit code so they
can be called and tested without Typer; the Typer commands below are thin
wrappers. A local ``.env`` is loaded with ``python-dotenv`` (never overriding
variables already set) before any command runs. Business logic lives in
``ledger_import.api`` and the modules it composes.
"""

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from typer.models import OptionInfo

from .config import ImportOptions
from .errors import ImportPipelineError
from .logging_setup import configure_logging
from .models import ImportProfile, ImportResult, SourceFormat

# Failures reported as "Error: ..." rather than a traceback.
_USER_ERRORS = (ImportPipelineError, ValidationError, ValueError, RuntimeError, SQLAlchemyError)


# ---- Small module-level helpers used by CLI commands -------------------------


def _err(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _use_database(database_url: str | None) -> bool:
    return bool(database_url or os.getenv("DATABASE_URL"))


def _with_date_hint(profile: ImportProfile, hint: str | None) -> ImportProfile:
    if not hint:
        return profile
    # Re-validate so a malformed hint is rejected like any other profile field.
    return ImportProfile.model_validate({**profile.model_dump(), "date_format_hint": hint})


def _print_result(result: ImportResult) -> None:
    stats = result.statistics
    print(
        f"Format: {result.source_format.value}  Rows: {stats.total_rows}  "
        f"Imported: {stats.imported}  Duplicates: {stats.skipped_duplicates}  "
        f"Skipped by rule: {stats.skipped_by_rule}  Failed: {stats.failed}  "
        f"Warnings: {stats.warnings}"
    )
    if stats.date_range is not None:
        start, end = stats.date_range
        print(
            f"Period: {start.isoformat()} .. {end.isoformat()}  "
            f"Income: {stats.total_income:.2f}  Expense: {stats.total_expense:.2f}"
        )
    for c in result.imported:
        print(f"+ row {c.source_row}\t{c.date.isoformat()}\t{c.amount:.2f}\t{c.description}")
    for m in result.skipped_duplicates:
        other = (
            f"ledger {m.existing_transaction_id}"
            if m.existing_transaction_id is not None
            else f"row {m.within_batch_row}"
        )
        print(f"= row {m.candidate_row}\tduplicate of {other} ({m.similarity})")
    for s in result.skipped_by_rule:
        print(f"- row {s.row}\tskipped by rule {s.rule!r}")
    for f in result.failed:
        print(f"! row {f.row}\t{f.reason}")
    for w in result.warnings:
        print(f"? {w}")


# ---- Command bodies ----------------------------------------------------------


def cmd_import_file(
    path: str,
    *,
    profile_name: str | None = None,
    bank: str | None = None,
    source_format: str | None = None,
    account: str | None = None,
    date_format: str | None = None,
    threshold: float | None = None,
    skip_duplicates: bool = True,
    auto_categorize: bool = False,
    commit: bool = False,
    database_url: str | None = None,
) -> int:
    """Import one statement file and print the reviewable result.

    With a database configured, candidates are checked against the stored
    ledger; ``commit`` then writes the imported rows in the same transaction.
    """

    from .api import import_file
    from .ingest import parse_source
    from .importer import resolve_profile
    from .profiles import BankCatalog

    if profile_name and bank:
        return _err("use either --profile or --bank, not both")
    if commit and not _use_database(database_url):
        return _err("--commit needs a database (set DATABASE_URL or pass --database-url)")

    try:
        data = Path(path).read_bytes()
    except FileNotFoundError:
        return _err(f"File not found: {path}")
    except PermissionError:
        return _err(f"Permission denied: {path}")
    except IsADirectoryError:
        return _err(f"Not a file: {path}")

    try:
        fmt = SourceFormat(source_format) if source_format else None
        options = ImportOptions.from_env(
            duplicate_threshold=threshold,
            skip_duplicates=skip_duplicates,
            auto_categorize=auto_categorize,
        )
        profile: ImportProfile | None = None
        if bank:
            profile = BankCatalog.load().profile_for(bank)
        elif profile_name:
            from .db.client import session_scope
            from .persistence import SqlProfileStore
            from .profiles import require_profile

            with session_scope(database_url=database_url) as session:
                profile = require_profile(SqlProfileStore(session), profile_name)
        if date_format:
            if profile is None:
                profile = resolve_profile(parse_source(data, source_format=fmt), None)
            profile = _with_date_hint(profile, date_format)

        if _use_database(database_url):
            from .db.client import session_scope
            from .persistence import SqlLedger, commit_import

            with session_scope(database_url=database_url) as session:
                ledger = SqlLedger(session)
                result = import_file(
                    data,
                    profile,
                    ledger=ledger,
                    account_id=account,
                    options=options,
                    source_format=fmt,
                )
                ids = commit_import(ledger, result) if commit else ()
        else:
            result = import_file(
                data, profile, account_id=account, options=options, source_format=fmt
            )
            ids = ()
    except _USER_ERRORS as e:
        return _err(str(e))

    _print_result(result)
    if commit:
        print(f"Committed {len(ids)} transaction(s).")
    return 0


def cmd_reconcile(
    account: str,
    as_of: str,
    statement_balance: str,
    *,
    accept: bool = False,
    category: str | None = None,
    notes: str | None = None,
    interactive: bool = False,
    database_url: str | None = None,
) -> int:
    """Reconcile ``account`` against a statement balance stored in the database."""

    from .db.client import session_scope
    from .persistence import SqlLedger
    from .reconciliation import ReconciliationSession
    from .term_ui import confirm_adjustment, describe_snapshot, select_adjustment_category

    try:
        cutoff = date.fromisoformat(as_of.strip())
    except ValueError:
        return _err(f"--as-of must be YYYY-MM-DD, got {as_of!r}")

    try:
        with session_scope(database_url=database_url) as session:
            ledger = SqlLedger(session)
            recon = ReconciliationSession(ledger, account, currency=ledger.get_currency(account))
            snapshot = recon.compute(cutoff, statement_balance)
            print(describe_snapshot(snapshot))
            if snapshot.balanced:
                return 0
            if interactive:
                accept = confirm_adjustment(snapshot)
                if accept and not category:
                    category = select_adjustment_category()
            if not accept:
                recon.cancel()
                print("No adjustment created.")
                return 0
            adjustment = recon.accept(category=category, notes=notes)
            print(
                f"Created adjustment {recon.adjustment_id}: {adjustment.type.value} "
                f"{adjustment.amount:.2f} ({adjustment.category})"
            )
    except _USER_ERRORS as e:
        return _err(str(e))
    return 0


def cmd_banks(region: str | None = None, type_: str | None = None) -> int:
    from .profiles import BankCatalog

    try:
        entries = BankCatalog.load().filter(region=region, type=type_)
    except _USER_ERRORS as e:
        return _err(str(e))
    for e in entries:
        print(f"{e.bank_key}\t{e.name}\t{e.region}\t{e.type.value}\t{e.source_format.value}")
    return 0


def cmd_profiles_list(*, database_url: str | None = None) -> int:
    from .db.client import session_scope
    from .persistence import SqlProfileStore

    try:
        with session_scope(database_url=database_url) as session:
            profiles = SqlProfileStore(session).list_profiles()
    except _USER_ERRORS as e:
        return _err(str(e))
    for p in profiles:
        print(f"{p.name}\t{p.source_format.value}\t{p.sign_convention.value}\t{p.bank_key or ''}")
    return 0


def cmd_profiles_show(name: str, *, database_url: str | None = None) -> int:
    from .db.client import session_scope
    from .persistence import SqlProfileStore
    from .profiles import require_profile

    try:
        with session_scope(database_url=database_url) as session:
            profile = require_profile(SqlProfileStore(session), name)
    except _USER_ERRORS as e:
        return _err(str(e))
    print(profile.model_dump_json(indent=2))
    return 0


def cmd_profiles_save_from_bank(
    bank_key: str, *, name: str | None = None, database_url: str | None = None
) -> int:
    from .db.client import session_scope
    from .persistence import SqlProfileStore
    from .profiles import BankCatalog

    try:
        profile = BankCatalog.load().profile_for(bank_key, name=name)
        with session_scope(database_url=database_url) as session:
            stored = SqlProfileStore(session).save_profile(profile)
    except _USER_ERRORS as e:
        return _err(str(e))
    print(f"Saved profile {stored.name!r} from bank {bank_key!r}.")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statements (CSV/OFX/QIF) and reconcile account balances. "
        "Loads DATABASE_URL and LEDGER_IMPORT_* settings from a local .env."
    ),
)
profiles_app = typer.Typer(no_args_is_help=True, help="Manage saved import profiles.")
app.add_typer(profiles_app, name="profiles")

# Module-level option objects keep calls out of parameter defaults (ruff B008).
PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--path",
    help="Statement file to import (CSV, OFX/QFX or QIF).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


@app.command("import-file")
def import_file_cmd(
    path: Annotated[Path, PATH_OPTION],
    *,
    profile: str | None = typer.Option(None, "--profile", help="Saved profile name."),
    bank: str | None = typer.Option(None, "--bank", help="Bank catalog key, e.g. barclays."),
    source_format: str | None = typer.Option(
        None, "--format", help="Force the source format: csv, ofx or qif."
    ),
    account: str | None = typer.Option(None, "--account", help="Account id for every row."),
    date_format: str | None = typer.Option(
        None, "--date-format", help="Date format hint, e.g. DD/MM/YYYY or MM/DD/YYYY."
    ),
    threshold: float | None = typer.Option(
        None, "--threshold", help="Duplicate threshold on the 0-1 scale (default 0.85)."
    ),
    skip_duplicates: bool = typer.Option(
        True, "--skip-duplicates/--no-skip-duplicates", help="Run the duplicate scans."
    ),
    auto_categorize: bool = typer.Option(
        False, "--auto-categorize", help="Fill missing categories from the ledger's history."
    ),
    commit: bool = typer.Option(False, "--commit", help="Write imported rows to the ledger."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Import a statement file and show imported, duplicate and failed rows."""

    code = cmd_import_file(
        str(path),
        profile_name=profile,
        bank=bank,
        source_format=source_format,
        account=account,
        date_format=date_format,
        threshold=threshold,
        skip_duplicates=skip_duplicates,
        auto_categorize=auto_categorize,
        commit=commit,
        database_url=database_url,
    )
    if code:
        raise typer.Exit(code)


@app.command("reconcile")
def reconcile_cmd(
    account: str = typer.Option(..., "--account", help="Account id to reconcile."),
    as_of: str = typer.Option(..., "--as-of", help="Statement date (YYYY-MM-DD), inclusive."),
    statement_balance: str = typer.Option(
        ..., "--statement-balance", help="Closing balance printed on the statement."
    ),
    *,
    accept: bool = typer.Option(
        False, "--accept/--no-accept", help="Create the balancing adjustment if needed."
    ),
    category: str | None = typer.Option(None, "--category", help="Adjustment category."),
    notes: str | None = typer.Option(None, "--notes", help="Adjustment notes."),
    interactive: bool = typer.Option(
        False, "--interactive", help="Confirm and pick the category in the terminal."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Compare the ledger balance with a statement balance."""

    code = cmd_reconcile(
        account,
        as_of,
        statement_balance,
        accept=accept,
        category=category,
        notes=notes,
        interactive=interactive,
        database_url=database_url,
    )
    if code:
        raise typer.Exit(code)


@app.command("banks")
def banks_cmd(
    region: str | None = typer.Option(None, "--region", help="Filter by region, e.g. UK."),
    type_: str | None = typer.Option(None, "--type", help="Filter by institution type."),
) -> None:
    """List institutions in the bank catalog."""

    code = cmd_banks(region, type_)
    if code:
        raise typer.Exit(code)


@profiles_app.command("list")
def profiles_list_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    code = cmd_profiles_list(database_url=database_url)
    if code:
        raise typer.Exit(code)


@profiles_app.command("show")
def profiles_show_cmd(
    name: str = typer.Argument(..., help="Profile name."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    code = cmd_profiles_show(name, database_url=database_url)
    if code:
        raise typer.Exit(code)


@profiles_app.command("save-from-bank")
def profiles_save_from_bank_cmd(
    bank_key: str = typer.Argument(..., help="Bank catalog key."),
    name: str | None = typer.Option(None, "--name", help="Profile name (default: bank name)."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Save a catalog bank's default mapping as a named profile."""

    code = cmd_profiles_save_from_bank(bank_key, name=name, database_url=database_url)
    if code:
        raise typer.Exit(code)


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(force=True)


if __name__ == "__main__":  # pragma: no cover
    app()
