"""Public API of the ``ledger_import`` package.

Three entry points for collaborators that own storage and UI:

- :func:`import_file` turns a statement file into a reviewable
  :class:`~ledger_import.models.ImportResult`.
- :func:`reconcile` computes a :class:`~ledger_import.models.ReconciliationSnapshot`.
- :func:`confirm_reconciliation` turns an unbalanced snapshot into the one
  :class:`~ledger_import.models.AdjustmentTransaction` the caller persists.

None of them writes to the ledger.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from .importer import import_file
from .ledger import Ledger
from .models import AdjustmentTransaction, ReconciliationSnapshot
from .reconciliation import build_adjustment, take_snapshot


def reconcile(
    ledger: Ledger,
    account_id: str,
    cutoff: date,
    statement_balance: Decimal | int | float | str | None,
    *,
    currency: str = "USD",
) -> ReconciliationSnapshot:
    """Compute the account's balance as of ``cutoff`` against the statement.

    Input
    -----
    ledger:
        Source of stored transactions and the opening balance.
    cutoff:
        Inclusive last day; later transactions are ignored.
    statement_balance:
        The balance printed on the bank statement. Invalid values raise
        :class:`~ledger_import.errors.InvalidStatementBalance`.

    Output
    ------
    A fresh snapshot. Calling again with an unchanged ledger yields an equal
    snapshot.
    """

    return take_snapshot(ledger, account_id, cutoff, statement_balance, currency=currency)


def confirm_reconciliation(
    snapshot: ReconciliationSnapshot,
    category: str | None = None,
    notes: str | None = None,
) -> AdjustmentTransaction | None:
    """Build the balancing entry for ``snapshot``; ``None`` when it is balanced."""

    return build_adjustment(snapshot, category=category, notes=notes)


__all__ = ["confirm_reconciliation", "import_file", "reconcile"]
