"""SQL-backed collaborators: the ledger and the profile store.

Both wrap a caller-owned SQLAlchemy ``Session``; transaction boundaries stay
with the caller (typically :func:`ledger_import.db.client.session_scope`).
Writes are flushed so generated rows are visible within the same session.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db.models import LiAccount, LiImportProfile, LiTransaction
from .ledger import Ledger, NewTransaction, to_ledger_transaction
from .logging_setup import get_logger
from .models import (
    CandidateTransaction,
    ImportProfile,
    ImportResult,
    LedgerTransaction,
    TransactionType,
)
from .profiles import prepare_for_save

logger = get_logger("ledger_import.persistence")

_CENT = Decimal("0.01")


def _to_decimal_2(value: Decimal | int | str) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _row_to_transaction(row: LiTransaction) -> LedgerTransaction:
    return LedgerTransaction(
        id=row.id,
        account_id=row.account_id,
        date=row.date,
        amount=_to_decimal_2(row.amount),
        type=TransactionType(row.type),
        description=row.description or "",
        category=row.category,
        tags=tuple(row.tags or ()),
        notes=row.notes,
        cleared=bool(row.cleared),
    )


class SqlLedger:
    """``Ledger`` over the ``li_transactions`` and ``li_accounts`` tables."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def ensure_account(
        self,
        account_id: str,
        *,
        name: str | None = None,
        opening_balance: Decimal = Decimal("0"),
        currency: str = "USD",
    ) -> LiAccount:
        """Return the account row, creating it with the given defaults."""

        account = self.session.get(LiAccount, account_id)
        if account is None:
            account = LiAccount(
                id=account_id,
                name=name or account_id,
                opening_balance=_to_decimal_2(opening_balance),
                currency=currency,
            )
            self.session.add(account)
            self.session.flush()
        return account

    def get_currency(self, account_id: str, default: str = "USD") -> str:
        account = self.session.get(LiAccount, account_id)
        return account.currency if account is not None else default

    def get_opening_balance(self, account_id: str) -> Decimal:
        account = self.session.get(LiAccount, account_id)
        if account is None:
            return Decimal("0")
        return _to_decimal_2(account.opening_balance)

    def get_transactions(self, account_id: str) -> list[LedgerTransaction]:
        stmt = (
            select(LiTransaction)
            .where(LiTransaction.account_id == account_id)
            .order_by(LiTransaction.date, LiTransaction.created_at)
        )
        return [_row_to_transaction(row) for row in self.session.scalars(stmt)]

    def add_transaction(self, tx: NewTransaction) -> str:
        tx_id = uuid4().hex
        stored = to_ledger_transaction(tx, tx_id)
        self.session.add(
            LiTransaction(
                id=tx_id,
                account_id=stored.account_id,
                date=stored.date,
                amount=_to_decimal_2(stored.amount),
                type=stored.type.value,
                description=stored.description,
                category=stored.category,
                tags=list(stored.tags),
                notes=stored.notes,
                reference=tx.reference if isinstance(tx, CandidateTransaction) else None,
                cleared=stored.cleared,
                reconciled="reconciliation" in stored.tags,
            )
        )
        self.session.flush()
        return tx_id


class SqlProfileStore:
    """``ProfileStore`` keeping each profile as a JSON document keyed by name."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_profile(self, name: str) -> ImportProfile | None:
        row = self.session.get(LiImportProfile, name)
        if row is None:
            return None
        return ImportProfile.model_validate(row.payload)

    def save_profile(self, profile: ImportProfile) -> ImportProfile:
        stored = prepare_for_save(profile, self.get_profile(profile.name))
        payload = stored.model_dump(mode="json")
        row = self.session.get(LiImportProfile, stored.name)
        if row is None:
            row = LiImportProfile(
                name=stored.name,
                payload=payload,
                created_at=stored.created_at,
                updated_at=stored.updated_at,
            )
            self.session.add(row)
        else:
            row.payload = payload
            row.updated_at = stored.updated_at
        self.session.flush()
        logger.debug("saved import profile %r", stored.name)
        return stored

    def list_profiles(self) -> list[ImportProfile]:
        rows = self.session.scalars(select(LiImportProfile).order_by(LiImportProfile.name))
        return [ImportProfile.model_validate(row.payload) for row in rows]

    def delete_profile(self, name: str) -> bool:
        row = self.session.get(LiImportProfile, name)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True


def commit_import(ledger: Ledger, result: ImportResult) -> Sequence[str]:
    """Write every imported candidate to ``ledger``; returns the new ids in order."""

    ids = [ledger.add_transaction(candidate) for candidate in result.imported]
    logger.info("committed %d imported transaction(s)", len(ids))
    return ids


__all__ = ["SqlLedger", "SqlProfileStore", "commit_import"]
