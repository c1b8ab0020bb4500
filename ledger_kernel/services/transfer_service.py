"""
TransferService -- atomic movement of funds between two accounts.

Responsibility:
    Creates transfers (debit source, credit destination, persist record)
    and deletes them (credit source, debit destination, remove record),
    each as one atomic unit of work under exclusive locks on both rows.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes AccountService for
    all locking and balance mutation.

Invariants enforced:
    - Conservation: a committed transfer changes the sum of the two
      balances by zero.
    - No overdraft: the source balance is re-checked under the lock; a
      transfer never drives it below zero.
    - Exactly once: the record and both balance changes commit together
      or not at all.
    - Deterministic lock order: AccountService.lock_pair() is used for
      both create and delete.

Failure modes:
    - ValidationError / SameAccountTransferError: bad input, no lock taken.
    - AccountNotFoundError / TransferNotFoundError: missing rows.
    - InsufficientFundsError: source balance below amount under the lock.
    - InvalidReversalError: deleting would leave the destination negative;
      nothing is changed and the transfer survives.
    - ConcurrencyConflictError: lock timeout or deadlock (retryable).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.validation import FieldErrors
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidReversalError,
    SameAccountTransferError,
    TransferNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.transfer import Transfer
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.transfer")

MINIMUM_TRANSFER = Decimal("0.01")


@dataclass(frozen=True)
class TransferInfo:
    """Immutable DTO for transfer data."""

    id: UUID
    from_account_id: UUID
    to_account_id: UUID
    amount: Decimal
    description: str | None
    created_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "from_account_id": str(self.from_account_id),
            "to_account_id": str(self.to_account_id),
            "amount": str(self.amount),
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TransferService(BaseService[Transfer]):
    """
    Transfer Engine.

    Contract:
        create_transfer() and delete_transfer() each run in their own
        unit of work inside the caller's transaction.  The caller commits.

    Non-goals:
        - No in-place update of a transfer's amount or accounts.
        - Does NOT call session.commit().
    """

    def __init__(self, session: Session, accounts: AccountService | None = None):
        super().__init__(session)
        self._accounts = accounts or AccountService(session)

    def _to_dto(self, transfer: Transfer) -> TransferInfo:
        return TransferInfo(
            id=transfer.id,
            from_account_id=transfer.from_account_id,
            to_account_id=transfer.to_account_id,
            amount=transfer.amount,
            description=transfer.description,
            created_at=transfer.created_at,
        )

    def _get_by_id(self, transfer_id: UUID) -> Transfer:
        transfer = self.session.get(Transfer, transfer_id)
        if transfer is None:
            raise TransferNotFoundError(str(transfer_id))
        return transfer

    def _lock_transfer(self, transfer_id: UUID) -> Transfer:
        """Lock the transfer row so concurrent deletes reverse it at most once."""
        transfer = self._fetch_for_update(Transfer, transfer_id)
        if transfer is None:
            raise TransferNotFoundError(str(transfer_id))
        return transfer

    def get_transfer(self, transfer_id: UUID) -> TransferInfo:
        """
        Raises:
            TransferNotFoundError: If the transfer doesn't exist.
        """
        return self._to_dto(self._get_by_id(transfer_id))

    def list_transfers(self, account_id: UUID | None = None) -> list[TransferInfo]:
        """Transfers newest first, optionally only those touching one account."""
        stmt = select(Transfer)
        if account_id is not None:
            stmt = stmt.where(
                (Transfer.from_account_id == account_id)
                | (Transfer.to_account_id == account_id)
            )
        stmt = stmt.order_by(Transfer.created_at.desc())
        return [self._to_dto(t) for t in self.session.execute(stmt).scalars().all()]

    def create_transfer(
        self,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Any,
        description: Any = None,
    ) -> TransferInfo:
        """
        Move ``amount`` from one account to another.

        Steps:
            1. Validate input and existence (no locks yet).
            2. Lock both accounts in canonical order.
            3. Re-check the source balance under the lock.
            4. Debit source, credit destination, persist the record.

        Raises:
            ValidationError: amount below 0.01, description too long.
            SameAccountTransferError: from_account_id == to_account_id.
            AccountNotFoundError: Either account doesn't exist.
            InsufficientFundsError: Source balance below amount.
            ConcurrencyConflictError: Lock timeout or deadlock.
        """
        errors = FieldErrors()
        amount = errors.money("amount", amount, minimum=MINIMUM_TRANSFER)
        description = errors.text("description", description, required=False)
        errors.raise_if_any()

        if from_account_id == to_account_id:
            raise SameAccountTransferError(str(from_account_id))
        for account_id in (from_account_id, to_account_id):
            if not self._accounts.exists(account_id):
                raise AccountNotFoundError(str(account_id))

        with self.unit_of_work("create_transfer"):
            source, destination = self._accounts.lock_pair(from_account_id, to_account_id)

            if source.current_balance < amount:
                logger.info(
                    "insufficient_funds",
                    extra={
                        "account_id": str(source.id),
                        "available": source.current_balance,
                        "requested": amount,
                    },
                )
                raise InsufficientFundsError(
                    str(source.id), source.current_balance, amount,
                )

            self._accounts.adjust_balance(source, -amount)
            self._accounts.adjust_balance(destination, amount)

            transfer = Transfer(
                from_account_id=source.id,
                to_account_id=destination.id,
                amount=amount,
                description=description,
            )
            self.session.add(transfer)
            self.session.flush()

        with LogContext.bind(transfer_id=str(transfer.id)):
            logger.info(
                "transfer_created",
                extra={
                    "from_account_id": str(source.id),
                    "to_account_id": str(destination.id),
                    "amount": amount,
                    "from_balance_after": source.current_balance,
                    "to_balance_after": destination.current_balance,
                },
            )
        return self._to_dto(transfer)

    def delete_transfer(self, transfer_id: UUID) -> TransferInfo:
        """
        Reverse and delete a transfer.

        The source is credited and the destination debited by the
        transfer amount.  If the destination would go negative, nothing
        changes and the transfer is kept.

        Raises:
            TransferNotFoundError: If the transfer doesn't exist.
            AccountNotFoundError: If either account was deleted since.
            InvalidReversalError: Destination balance below the amount.
            ConcurrencyConflictError: Lock timeout or deadlock.
        """
        with self.unit_of_work("delete_transfer"):
            transfer = self._lock_transfer(transfer_id)
            info = self._to_dto(transfer)
            source, destination = self._accounts.lock_pair(
                transfer.from_account_id, transfer.to_account_id,
            )

            resulting = destination.current_balance - transfer.amount
            if resulting < ZERO:
                logger.info(
                    "transfer_reversal_rejected",
                    extra={
                        "transfer_id": str(transfer.id),
                        "account_id": str(destination.id),
                        "resulting_balance": resulting,
                    },
                )
                raise InvalidReversalError(str(transfer.id), str(destination.id), resulting)

            self._accounts.adjust_balance(source, transfer.amount)
            self._accounts.adjust_balance(destination, -transfer.amount)
            self.session.delete(transfer)
            self.session.flush()

        with LogContext.bind(transfer_id=str(info.id)):
            logger.info(
                "transfer_reversed",
                extra={
                    "from_account_id": str(info.from_account_id),
                    "to_account_id": str(info.to_account_id),
                    "amount": info.amount,
                    "from_balance_after": source.current_balance,
                    "to_balance_after": destination.current_balance,
                },
            )
        return info
