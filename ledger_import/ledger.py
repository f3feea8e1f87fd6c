"""The ledger collaborator: read stored transactions, write new ones."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from decimal import Decimal
from typing import Protocol
from uuid import uuid4

from .models import AdjustmentTransaction, CandidateTransaction, LedgerTransaction

NewTransaction = CandidateTransaction | AdjustmentTransaction | LedgerTransaction


class Ledger(Protocol):
    def get_transactions(self, account_id: str) -> Sequence[LedgerTransaction]: ...

    def add_transaction(self, tx: NewTransaction) -> str: ...

    def get_opening_balance(self, account_id: str) -> Decimal: ...


def to_ledger_transaction(tx: NewTransaction, tx_id: str) -> LedgerTransaction:
    """Store a new transaction as a ``LedgerTransaction`` with a signed amount."""

    if isinstance(tx, LedgerTransaction):
        return replace(tx, id=tx_id)
    if isinstance(tx, AdjustmentTransaction):
        return LedgerTransaction(
            id=tx_id,
            account_id=tx.account_id,
            date=tx.date,
            amount=tx.signed_amount,
            type=tx.type,
            description=tx.description,
            category=tx.category,
            tags=tx.tags,
            notes=tx.notes,
            cleared=tx.cleared,
        )
    return LedgerTransaction(
        id=tx_id,
        account_id=tx.account_id,
        date=tx.date,
        amount=tx.amount,
        type=tx.type,
        description=tx.description,
        category=tx.raw_category,
        tags=tx.tags,
        notes=tx.notes,
        cleared=tx.cleared,
    )


class InMemoryLedger:
    """A dict-backed ledger for tests and dry runs."""

    def __init__(
        self,
        transactions: Iterable[LedgerTransaction] = (),
        opening_balances: Mapping[str, Decimal] | None = None,
    ) -> None:
        self._transactions: list[LedgerTransaction] = list(transactions)
        self._opening: dict[str, Decimal] = dict(opening_balances or {})

    def set_opening_balance(self, account_id: str, amount: Decimal) -> None:
        self._opening[account_id] = amount

    def get_opening_balance(self, account_id: str) -> Decimal:
        return self._opening.get(account_id, Decimal("0"))

    def get_transactions(self, account_id: str) -> list[LedgerTransaction]:
        rows = [t for t in self._transactions if t.account_id == account_id]
        return sorted(rows, key=lambda t: t.date)

    def add_transaction(self, tx: NewTransaction) -> str:
        tx_id = uuid4().hex
        self._transactions.append(to_ledger_transaction(tx, tx_id))
        return tx_id


__all__ = ["InMemoryLedger", "Ledger", "NewTransaction", "to_ledger_transaction"]
