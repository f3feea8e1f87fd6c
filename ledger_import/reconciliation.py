"""Reconciliation: compare the ledger's balance with a statement balance.

The balance computation is pure and may be repeated at will. Only
:meth:`ReconciliationSession.accept` writes anything, and it writes exactly
one adjustment per session.

States::

    IDLE --compute--> BALANCE_COMPUTED --accept--> ADJUSTMENT_CREATED
      |                 |    ^  |
      |                 |    +--+ recompute
      |                 +--cancel--> CLOSED
      +-- compute with |difference| < 0.01 --> CLOSED (balanced)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import StrEnum

from .errors import AmountError, InvalidStatementBalance, ReconciliationStateError
from .ledger import Ledger
from .logging_setup import get_logger
from .models import (
    AdjustmentTransaction,
    LedgerTransaction,
    ReconciliationSnapshot,
    TransactionType,
)
from .normalizers import format_amount, parse_amount

logger = get_logger("ledger_import.reconciliation")

ADJUSTMENT_DESCRIPTION = "Balance Adjustment - Account Reconciliation"
ADJUSTMENT_CATEGORY = "Adjustment"


class ReconciliationState(StrEnum):
    IDLE = "idle"
    BALANCE_COMPUTED = "balance_computed"
    ADJUSTMENT_CREATED = "adjustment_created"
    CLOSED = "closed"


def parse_statement_balance(value: Decimal | int | float | str | None) -> Decimal:
    """Validate a user-supplied statement balance.

    Strings go through the amount normalizer, so ``"$1,234.56"`` and
    ``"(20.00)"`` are accepted. ``None``, blanks, non-numbers, NaN and
    infinities raise :class:`InvalidStatementBalance`.
    """

    if value is None or isinstance(value, bool):
        raise InvalidStatementBalance("statement balance is required")
    if isinstance(value, str):
        if not value.strip():
            raise InvalidStatementBalance("statement balance is required")
        try:
            parsed = parse_amount(value)
        except AmountError as exc:
            raise InvalidStatementBalance(f"invalid statement balance: {value!r}") from exc
    else:
        try:
            parsed = value if isinstance(value, Decimal) else Decimal(str(value))
        except InvalidOperation as exc:
            raise InvalidStatementBalance(f"invalid statement balance: {value!r}") from exc
    if not parsed.is_finite():
        raise InvalidStatementBalance(f"statement balance must be finite, got {value!r}")
    return parsed


def compute_system_balance(
    opening_balance: Decimal,
    transactions: Iterable[LedgerTransaction],
    as_of: date,
) -> Decimal:
    """Opening balance plus every transaction dated on or before ``as_of``.

    ``LedgerTransaction.signed_amount`` applies the type-over-sign rule:
    income and positive transfers add, everything else subtracts.
    """

    balance = opening_balance
    for tx in sorted((t for t in transactions if t.date <= as_of), key=lambda t: t.date):
        balance += tx.signed_amount
    return balance


def take_snapshot(
    ledger: Ledger,
    account_id: str,
    as_of: date,
    statement_balance: Decimal | int | float | str | None,
    *,
    currency: str = "USD",
) -> ReconciliationSnapshot:
    """Read the ledger and build a fresh snapshot. Nothing is cached."""

    statement = parse_statement_balance(statement_balance)
    transactions = [t for t in ledger.get_transactions(account_id) if t.date <= as_of]
    opening = ledger.get_opening_balance(account_id)
    system = compute_system_balance(opening, transactions, as_of)
    return ReconciliationSnapshot(
        account_id=account_id,
        as_of=as_of,
        opening_balance=opening,
        system_balance=system,
        statement_balance=statement,
        difference=statement - system,
        transaction_count=len(transactions),
        currency=currency,
    )


def build_adjustment(
    snapshot: ReconciliationSnapshot,
    *,
    category: str | None = None,
    notes: str | None = None,
) -> AdjustmentTransaction | None:
    """The balancing entry for ``snapshot``, or ``None`` when already balanced."""

    if snapshot.balanced:
        return None
    kind = TransactionType.INCOME if snapshot.difference > 0 else TransactionType.EXPENSE
    default_notes = (
        "Reconciliation adjustment to match statement balance of "
        f"{snapshot.currency} {format_amount(snapshot.statement_balance)}"
    )
    return AdjustmentTransaction(
        account_id=snapshot.account_id,
        date=snapshot.as_of,
        amount=abs(snapshot.difference),
        type=kind,
        description=ADJUSTMENT_DESCRIPTION,
        category=category or ADJUSTMENT_CATEGORY,
        notes=notes or default_notes,
    )


class ReconciliationSession:
    """One reconciliation of one account, driven by explicit user steps."""

    def __init__(self, ledger: Ledger, account_id: str, *, currency: str = "USD") -> None:
        self._ledger = ledger
        self.account_id = account_id
        self.currency = currency
        self._state = ReconciliationState.IDLE
        self._snapshot: ReconciliationSnapshot | None = None
        self.adjustment: AdjustmentTransaction | None = None
        self.adjustment_id: str | None = None

    @property
    def state(self) -> ReconciliationState:
        return self._state

    @property
    def snapshot(self) -> ReconciliationSnapshot | None:
        return self._snapshot

    @property
    def balanced(self) -> bool:
        return self._snapshot is not None and self._snapshot.balanced

    def _move(self, new: ReconciliationState) -> None:
        logger.debug("reconciliation %s: %s -> %s", self.account_id, self._state.value, new.value)
        self._state = new

    def _require(self, *allowed: ReconciliationState, action: str) -> None:
        if self._state not in allowed:
            raise ReconciliationStateError(f"cannot {action} in state {self._state.value}")

    def _current_snapshot(self, action: str) -> ReconciliationSnapshot:
        self._require(ReconciliationState.BALANCE_COMPUTED, action=action)
        if self._snapshot is None:
            raise ReconciliationStateError(f"cannot {action} before a balance is computed")
        return self._snapshot

    def _take(
        self, as_of: date, statement_balance: Decimal | int | float | str | None
    ) -> ReconciliationSnapshot:
        snap = take_snapshot(
            self._ledger, self.account_id, as_of, statement_balance, currency=self.currency
        )
        self._snapshot = snap
        if snap.balanced:
            self._move(ReconciliationState.CLOSED)
        elif self._state is not ReconciliationState.BALANCE_COMPUTED:
            self._move(ReconciliationState.BALANCE_COMPUTED)
        return snap

    def compute(
        self,
        as_of: date,
        statement_balance: Decimal | int | float | str | None,
    ) -> ReconciliationSnapshot:
        """Compute the snapshot; a balanced account closes the session at once.

        An invalid statement balance raises and leaves the state untouched.
        """

        self._require(ReconciliationState.IDLE, action="compute")
        return self._take(as_of, statement_balance)

    def recompute(
        self,
        statement_balance: Decimal | int | float | str | None = None,
        *,
        as_of: date | None = None,
    ) -> ReconciliationSnapshot:
        """Re-read the ledger, optionally with a corrected balance or cutoff."""

        current = self._current_snapshot("recompute")
        return self._take(
            as_of or current.as_of,
            current.statement_balance if statement_balance is None else statement_balance,
        )

    def accept(
        self, category: str | None = None, notes: str | None = None
    ) -> AdjustmentTransaction:
        """Create and write the single adjustment for this session."""

        current = self._current_snapshot("accept")
        adjustment = build_adjustment(current, category=category, notes=notes)
        if adjustment is None:
            raise ReconciliationStateError("account is balanced; no adjustment needed")
        self.adjustment_id = self._ledger.add_transaction(adjustment)
        self.adjustment = adjustment
        self._move(ReconciliationState.ADJUSTMENT_CREATED)
        logger.info(
            "created %s adjustment of %s %s for account %s",
            adjustment.type.value,
            self.currency,
            format_amount(adjustment.amount),
            self.account_id,
        )
        return adjustment

    def cancel(self) -> None:
        if self._state is ReconciliationState.CLOSED:
            return
        self._require(
            ReconciliationState.IDLE, ReconciliationState.BALANCE_COMPUTED, action="cancel"
        )
        self._move(ReconciliationState.CLOSED)


__all__ = [
    "ADJUSTMENT_CATEGORY",
    "ADJUSTMENT_DESCRIPTION",
    "ReconciliationSession",
    "ReconciliationState",
    "build_adjustment",
    "compute_system_balance",
    "parse_statement_balance",
    "take_snapshot",
]
