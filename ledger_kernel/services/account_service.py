"""
AccountService -- the Account Store and its locked-mutation primitive.

Responsibility:
    Durable storage and controlled mutation of account balances.  Every
    balance change in the system funnels through ``adjust_balance()``,
    which refuses to touch an account that was not locked with
    ``lock_for_update()`` in the current transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Consumed by TransferService
    and PaymentService, which own the higher-level protocols.

Invariants enforced:
    - Locked mutation: adjust_balance() requires a prior lock_for_update()
      in the same transaction (AccountNotLockedError otherwise).
    - Canonical lock order: lock_pair() always locks the account with the
      lower id string first, so two operations touching the same pair in
      opposite directions cannot wait on each other in a cycle.
    - Fresh reads: lock_for_update() re-reads the row after the lock is
      granted (populate_existing), never trusting a cached balance.

Failure modes:
    - AccountNotFoundError: id does not exist.
    - DuplicateAccountNumberError / ValidationError: bad create/update input.
    - ConcurrencyConflictError: the store reported a lock timeout or
      deadlock while waiting for the row lock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import event, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.validation import FieldErrors
from ledger_kernel.domain.values import AccountUpdate
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AccountNotLockedError,
    DuplicateAccountNumberError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")

MINIMUM_DEPOSIT = Decimal("0.01")

# Key in Session.info holding the ids locked in the current transaction
_LOCKED_KEY = "ledger_locked_account_ids"


def _locked_ids(session: Session) -> set[UUID]:
    return session.info.setdefault(_LOCKED_KEY, set())


@event.listens_for(Session, "after_soft_rollback")
def _forget_locks_on_rollback(session, previous_transaction):
    # A rolled-back savepoint releases the row locks taken inside it
    session.info.pop(_LOCKED_KEY, None)


@event.listens_for(Session, "after_transaction_end")
def _forget_locks_on_end(session, transaction):
    if transaction.parent is None:
        session.info.pop(_LOCKED_KEY, None)


@dataclass(frozen=True)
class AccountInfo:
    """Immutable DTO for account data."""

    id: UUID
    number: str
    name: str
    initial_balance: Decimal
    current_balance: Decimal
    created_at: datetime | None
    updated_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "number": self.number,
            "name": self.name,
            "initial_balance": str(self.initial_balance),
            "current_balance": str(self.current_balance),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AccountService(BaseService[Account]):
    """
    Account Store.

    Contract:
        Read and CRUD methods return AccountInfo DTOs.  The locking
        primitives (lock_for_update, lock_pair) return ORM rows because
        their callers mutate them through adjust_balance() in the same
        transaction.

    Non-goals:
        - Does NOT check balance sufficiency; that is the caller's rule.
        - Does NOT repair transfers or payments when an account is deleted.
    """

    # =========================================================================
    # DTO / lookup helpers
    # =========================================================================

    def _to_dto(self, account: Account) -> AccountInfo:
        return AccountInfo(
            id=account.id,
            number=account.number,
            name=account.name,
            initial_balance=account.initial_balance,
            current_balance=account.current_balance,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )

    def _get_by_id(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _number_taken(self, number: str, exclude_id: UUID | None = None) -> bool:
        stmt = select(Account.id).where(Account.number == number)
        if exclude_id is not None:
            stmt = stmt.where(Account.id != exclude_id)
        return self.session.execute(stmt).first() is not None

    def exists(self, account_id: UUID) -> bool:
        """True if the account exists (no lock taken)."""
        return self.session.get(Account, account_id) is not None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_account(self, account_id: UUID) -> AccountInfo:
        """
        Get account by id.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
        """
        return self._to_dto(self._get_by_id(account_id))

    def find_by_number(self, number: str) -> AccountInfo | None:
        """Find an account by its external number, or None."""
        stmt = select(Account).where(Account.number == number)
        account = self.session.execute(stmt).scalar_one_or_none()
        return self._to_dto(account) if account else None

    def list_accounts(self) -> list[AccountInfo]:
        """All accounts, newest first."""
        stmt = select(Account).order_by(Account.created_at.desc(), Account.number)
        return [self._to_dto(a) for a in self.session.execute(stmt).scalars().all()]

    # =========================================================================
    # Locking primitives
    # =========================================================================

    def lock_for_update(self, account_id: UUID) -> Account:
        """
        Acquire an exclusive row lock on an account for the rest of the
        enclosing transaction and return the freshly read row.

        Blocks while another transaction holds the lock.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
            ConcurrencyConflictError: On lock timeout or deadlock.
        """
        account = self._fetch_for_update(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))

        _locked_ids(self.session).add(account.id)
        logger.debug("account_locked", extra={"account_id": str(account.id)})
        return account

    def lock_pair(self, first_id: UUID, second_id: UUID) -> tuple[Account, Account]:
        """
        Lock two distinct accounts in canonical order (ascending id string).

        Returns the rows in argument order regardless of lock order.
        """
        ordered = sorted((first_id, second_id), key=str)
        locked = {account_id: self.lock_for_update(account_id) for account_id in ordered}
        return locked[first_id], locked[second_id]

    def is_locked(self, account: Account) -> bool:
        """True if this session locked the account in the current transaction."""
        return account.id in _locked_ids(self.session)

    def adjust_balance(self, account: Account, delta: Decimal) -> Account:
        """
        Apply ``current_balance += delta`` to a locked account.

        This is the single mutation path for balances.  The caller decides
        whether the result may go negative.

        Raises:
            AccountNotLockedError: If the account was not locked by
                lock_for_update() in the current transaction.
        """
        if not self.is_locked(account):
            raise AccountNotLockedError(str(account.id))

        before = account.current_balance
        account.current_balance = before + delta
        self.session.flush()

        logger.debug(
            "balance_adjusted",
            extra={
                "account_id": str(account.id),
                "delta": delta,
                "balance_before": before,
                "balance_after": account.current_balance,
            },
        )
        return account

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_account(
        self,
        number: Any,
        name: Any,
        initial_balance: Any,
    ) -> AccountInfo:
        """
        Create an account with ``current_balance = initial_balance``.

        Raises:
            ValidationError: Missing or malformed fields.
            DuplicateAccountNumberError: Number already in use.
        """
        errors = FieldErrors()
        number = errors.text("number", number)
        name = errors.text("name", name)
        initial_balance = errors.money("initial_balance", initial_balance)
        errors.raise_if_any()

        if self._number_taken(number):
            raise DuplicateAccountNumberError(number)

        account = Account(
            number=number,
            name=name,
            initial_balance=initial_balance,
            current_balance=initial_balance,
        )
        try:
            with self.session.begin_nested():
                self.session.add(account)
                self.session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent create of the same number
            raise DuplicateAccountNumberError(number) from exc

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "number": number,
                "initial_balance": initial_balance,
            },
        )
        return self._to_dto(account)

    def update_account(self, account_id: UUID, update: AccountUpdate) -> AccountInfo:
        """
        Apply a partial update.

        Setting ``initial_balance`` also resets ``current_balance`` to the
        same value, discarding the effect of past transfers and payments.
        The row is locked for the update so no in-flight transfer can
        interleave with the overwrite.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
            ValidationError: Malformed field values.
            DuplicateAccountNumberError: Number used by another account.
        """
        provided = update.provided()
        errors = FieldErrors()
        values: dict[str, Any] = {}
        if "number" in provided:
            values["number"] = errors.text("number", provided["number"])
        if "name" in provided:
            values["name"] = errors.text("name", provided["name"])
        if "initial_balance" in provided:
            values["initial_balance"] = errors.money(
                "initial_balance", provided["initial_balance"], minimum=ZERO,
            )
        if "current_balance" in provided:
            values["current_balance"] = errors.money(
                "current_balance", provided["current_balance"],
            )
        errors.raise_if_any()

        if not self.exists(account_id):
            raise AccountNotFoundError(str(account_id))

        if "number" in values and self._number_taken(values["number"], exclude_id=account_id):
            raise DuplicateAccountNumberError(values["number"])

        with self.unit_of_work("update_account"):
            account = self.lock_for_update(account_id)
            if "number" in values:
                account.number = values["number"]
            if "name" in values:
                account.name = values["name"]
            if "initial_balance" in values:
                account.initial_balance = values["initial_balance"]
                account.current_balance = values["initial_balance"]
            if "current_balance" in values:
                account.current_balance = values["current_balance"]
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise DuplicateAccountNumberError(values.get("number", account.number)) from exc

        logger.info(
            "account_updated",
            extra={
                "account_id": str(account_id),
                "fields": sorted(values),
                "current_balance": account.current_balance,
            },
        )
        return self._to_dto(account)

    def delete_account(self, account_id: UUID) -> AccountInfo:
        """
        Delete an account.  Terminal: historical transfers and payments keep
        their (now dangling) account id.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
        """
        with self.unit_of_work("delete_account"):
            account = self.lock_for_update(account_id)
            info = self._to_dto(account)
            self.session.delete(account)
            self.session.flush()

        logger.info(
            "account_deleted",
            extra={"account_id": str(account_id), "final_balance": info.current_balance},
        )
        return info

    def deposit(
        self,
        account_id: UUID,
        amount: Any,
        description: Any = None,
    ) -> AccountInfo:
        """
        Credit an account with an external deposit.

        Raises:
            ValidationError: amount below 0.01 or description too long.
            AccountNotFoundError: If the account doesn't exist.
        """
        errors = FieldErrors()
        amount = errors.money("amount", amount, minimum=MINIMUM_DEPOSIT)
        description = errors.text("description", description, required=False, max_length=1000)
        errors.raise_if_any()

        if not self.exists(account_id):
            raise AccountNotFoundError(str(account_id))

        with self.unit_of_work("deposit"):
            account = self.lock_for_update(account_id)
            self.adjust_balance(account, amount)

        logger.info(
            "deposit_applied",
            extra={
                "account_id": str(account_id),
                "amount": amount,
                "description": description,
                "current_balance": account.current_balance,
            },
        )
        return self._to_dto(account)
