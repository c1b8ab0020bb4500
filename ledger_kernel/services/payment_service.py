"""
PaymentService -- debits an account in favour of a creditor.

Responsibility:
    Resolves the payment's monetary fields (simple amount, or gross with
    withholding tax), debits the paying account by the effective amount
    under its row lock and persists the payment record, as one unit of
    work.  Deletion removes the record; by default the debit stays in
    the account balance.

Architecture position:
    Kernel > Services -- imperative shell.  Amount arithmetic lives in
    ``ledger_kernel.domain.payment_amounts``; locking and balance
    mutation go through AccountService.

Invariants enforced:
    - The account is debited exactly once per created payment.
    - ``amount`` on the record equals the value debited.

Failure modes:
    - ValidationError: bad amounts, tax rate, status or date.
    - AccountNotFoundError / CreditorNotFoundError / PaymentNotFoundError.
    - InsufficientFundsError: only with ``enforce_sufficient_funds``.
    - ConcurrencyConflictError: lock timeout or deadlock (retryable).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.payment_amounts import resolve_payment_amounts
from ledger_kernel.domain.values import PaymentFilter
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CreditorNotFoundError,
    InsufficientFundsError,
    PaymentNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.creditor import Creditor
from ledger_kernel.models.payment import Payment, PaymentStatus
from ledger_kernel.selectors.report_selector import filter_payments
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.payment")


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class PaymentInfo:
    """Immutable DTO for payment data."""

    id: UUID
    account_id: UUID
    creditor_id: UUID
    amount: Decimal
    gross_amount: Decimal | None
    tax_rate: Decimal | None
    tax_amount: Decimal | None
    net_amount: Decimal | None
    payment_date: date
    status: PaymentStatus
    created_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "account_id": str(self.account_id),
            "creditor_id": str(self.creditor_id),
            "amount": str(self.amount),
            "gross_amount": _optional_str(self.gross_amount),
            "tax_rate": _optional_str(self.tax_rate),
            "tax_amount": _optional_str(self.tax_amount),
            "net_amount": _optional_str(self.net_amount),
            "payment_date": self.payment_date.isoformat(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _parse_status(value: Any) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in PaymentStatus)
        raise ValidationError({"status": f"must be one of: {allowed}"}) from None


def _parse_payment_date(value: Any, clock: Clock) -> date:
    if value is None:
        return clock.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError({"payment_date": "must be an ISO date (YYYY-MM-DD)"})


class PaymentService(BaseService[Payment]):
    """
    Payment Engine.

    Contract:
        create_payment() and delete_payment() each run in their own unit
        of work inside the caller's transaction.  The caller commits.

    Configuration:
        enforce_sufficient_funds: reject a payment that would drive the
            account below zero (off by default).
        restore_balance_on_delete: credit the amount back when a payment
            is deleted (off by default).
    """

    def __init__(
        self,
        session: Session,
        accounts: AccountService | None = None,
        clock: Clock | None = None,
        enforce_sufficient_funds: bool = False,
        restore_balance_on_delete: bool = False,
    ):
        super().__init__(session)
        self._accounts = accounts or AccountService(session)
        self._clock = clock or SystemClock()
        self._enforce_sufficient_funds = enforce_sufficient_funds
        self._restore_balance_on_delete = restore_balance_on_delete

    def _to_dto(self, payment: Payment) -> PaymentInfo:
        return PaymentInfo(
            id=payment.id,
            account_id=payment.account_id,
            creditor_id=payment.creditor_id,
            amount=payment.amount,
            gross_amount=payment.gross_amount,
            tax_rate=payment.tax_rate,
            tax_amount=payment.tax_amount,
            net_amount=payment.net_amount,
            payment_date=payment.payment_date,
            status=PaymentStatus(payment.status),
            created_at=payment.created_at,
        )

    def get_payment(self, payment_id: UUID) -> PaymentInfo:
        """
        Raises:
            PaymentNotFoundError: If the payment doesn't exist.
        """
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return self._to_dto(payment)

    def list_payments(self, criteria: PaymentFilter | None = None) -> list[PaymentInfo]:
        """Payments matching the filter, newest payment date first."""
        stmt = filter_payments(select(Payment), criteria or PaymentFilter())
        stmt = stmt.order_by(Payment.payment_date.desc(), Payment.created_at.desc())
        return [self._to_dto(p) for p in self.session.execute(stmt).scalars().all()]

    def create_payment(
        self,
        account_id: UUID,
        creditor_id: UUID,
        payment_date: Any = None,
        *,
        amount: Any = None,
        gross_amount: Any = None,
        tax_rate: Any = None,
        status: Any = PaymentStatus.PENDING,
    ) -> PaymentInfo:
        """
        Debit an account and record a payment to a creditor.

        With ``gross_amount`` the tax is withheld and the net amount is
        debited; otherwise ``amount`` is debited as given.  A missing
        ``payment_date`` means today.

        Raises:
            ValidationError: Invalid amounts, tax rate, status or date.
            AccountNotFoundError: If the account doesn't exist.
            CreditorNotFoundError: If the creditor doesn't exist.
            InsufficientFundsError: Balance below the debit, only when
                enforce_sufficient_funds is on.
            ConcurrencyConflictError: Lock timeout or deadlock.
        """
        amounts = resolve_payment_amounts(
            amount=amount, gross_amount=gross_amount, tax_rate=tax_rate,
        )
        status = _parse_status(status)
        payment_date = _parse_payment_date(payment_date, self._clock)

        if not self._accounts.exists(account_id):
            raise AccountNotFoundError(str(account_id))
        if self.session.get(Creditor, creditor_id) is None:
            raise CreditorNotFoundError(str(creditor_id))

        with self.unit_of_work("create_payment"):
            account = self._accounts.lock_for_update(account_id)

            if self._enforce_sufficient_funds and account.current_balance < amounts.amount:
                logger.info(
                    "insufficient_funds",
                    extra={
                        "account_id": str(account.id),
                        "available": account.current_balance,
                        "requested": amounts.amount,
                    },
                )
                raise InsufficientFundsError(
                    str(account.id), account.current_balance, amounts.amount,
                )

            self._accounts.adjust_balance(account, -amounts.amount)

            payment = Payment(
                account_id=account.id,
                creditor_id=creditor_id,
                amount=amounts.amount,
                gross_amount=amounts.gross_amount,
                tax_rate=amounts.tax_rate,
                tax_amount=amounts.tax_amount,
                net_amount=amounts.net_amount,
                payment_date=payment_date,
                status=status.value,
            )
            self.session.add(payment)
            self.session.flush()

        with LogContext.bind(payment_id=str(payment.id)):
            logger.info(
                "payment_created",
                extra={
                    "account_id": str(account.id),
                    "creditor_id": str(creditor_id),
                    "mode": amounts.mode.value,
                    "amount": amounts.amount,
                    "tax_amount": amounts.tax_amount,
                    "balance_after": account.current_balance,
                },
            )
        return self._to_dto(payment)

    def delete_payment(self, payment_id: UUID) -> PaymentInfo:
        """
        Delete a payment record.

        The account balance is left as is unless restore_balance_on_delete
        is on, in which case the amount is credited back under the
        account's lock.

        Raises:
            PaymentNotFoundError: If the payment doesn't exist.
            AccountNotFoundError: Restoring, and the account was deleted.
            ConcurrencyConflictError: Lock timeout or deadlock.
        """
        with self.unit_of_work("delete_payment"):
            payment = self._fetch_for_update(Payment, payment_id)
            if payment is None:
                raise PaymentNotFoundError(str(payment_id))
            info = self._to_dto(payment)

            if self._restore_balance_on_delete:
                account = self._accounts.lock_for_update(payment.account_id)
                self._accounts.adjust_balance(account, payment.amount)

            self.session.delete(payment)
            self.session.flush()

        with LogContext.bind(payment_id=str(info.id)):
            logger.info(
                "payment_deleted",
                extra={
                    "account_id": str(info.account_id),
                    "amount": info.amount,
                    "balance_restored": self._restore_balance_on_delete,
                },
            )
        return info
