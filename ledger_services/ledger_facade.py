"""
ledger_services.ledger_facade -- transactional entrypoint to the ledger.

Responsibility:
    ``LedgerServices`` constructs every kernel service for one session
    exactly once and wires them together.  ``LedgerFacade`` runs each
    public operation in its own committed transaction, under a fresh
    correlation id, and retries it when the store reports a lock
    conflict.

Invariants enforced:
    - One call, one transaction: the session is committed on success and
      rolled back on any exception (``session_scope``).
    - Retries re-run the whole operation in a new transaction, so a
      retried transfer re-reads balances under fresh locks.

Failure modes:
    - Kernel exceptions propagate unchanged after rollback.
    - ConcurrencyConflictError once ``concurrency.max_retries`` is spent.

Usage:
    facade = LedgerFacade.from_config(get_active_config())
    a = facade.create_account("001", "Checking", "100.00")
    b = facade.create_account("002", "Savings", "0.00")
    facade.create_transfer(a.id, b.id, "40.00")
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ledger_config import LedgerSettings
from ledger_kernel.db.engine import (
    get_session_factory,
    init_engine_from_url,
    is_lock_conflict,
    session_scope,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import AccountUpdate, CreditorUpdate, PaymentFilter, PaymentTotals
from ledger_kernel.exceptions import ConcurrencyConflictError, ValidationError
from ledger_kernel.logging_config import LogContext, configure_logging, get_logger
from ledger_kernel.models.payment import PaymentStatus
from ledger_kernel.selectors.report_selector import AccountMovement, ReportSelector
from ledger_kernel.services.account_service import AccountInfo, AccountService
from ledger_kernel.services.creditor_service import CreditorInfo, CreditorService
from ledger_kernel.services.payment_service import PaymentInfo, PaymentService
from ledger_kernel.services.transfer_service import TransferInfo, TransferService

logger = get_logger("services.facade")

T = TypeVar("T")


def _as_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError({field: "must be a valid identifier"}) from None


def _as_date(value: Any, field: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError({field: "must be an ISO date (YYYY-MM-DD)"}) from None


class LedgerServices:
    """Kernel services bound to one session.

    Contract:
        All services share the same Session, AccountService and Clock.
        Does NOT commit or roll back.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings,
        clock: Clock | None = None,
    ):
        self.session = session
        self.accounts = AccountService(session)
        self.transfers = TransferService(session, accounts=self.accounts)
        self.payments = PaymentService(
            session,
            accounts=self.accounts,
            clock=clock,
            enforce_sufficient_funds=settings.payments.enforce_sufficient_funds,
            restore_balance_on_delete=settings.payments.restore_balance_on_delete,
        )
        self.creditors = CreditorService(session)
        self.reports = ReportSelector(session)


class LedgerFacade:
    """Public ledger operations, one committed transaction per call."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        actor_id: str | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id

    @classmethod
    def from_config(
        cls,
        settings: LedgerSettings,
        clock: Clock | None = None,
        actor_id: str | None = None,
    ) -> "LedgerFacade":
        """Configure logging and the engine from settings and build a facade."""
        configure_logging(level=settings.logging.level)
        db = settings.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            lock_timeout_ms=db.lock_timeout_ms,
        )
        return cls(get_session_factory(), settings, clock, actor_id)

    def _run(self, operation: str, work: Callable[[LedgerServices], T]) -> T:
        """
        Run ``work`` in a committed transaction, retrying lock conflicts.

        Attempts are 1 + max_retries, sleeping retry_backoff_seconds * n
        before attempt n + 1.
        """
        policy = self._settings.concurrency
        attempt = 0
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=self._actor_id,
            operation=operation,
        ):
            while True:
                attempt += 1
                try:
                    with session_scope(self._session_factory) as session:
                        return work(LedgerServices(session, self._settings, self._clock))
                except ConcurrencyConflictError as exc:
                    conflict = exc
                except OperationalError as exc:
                    if not is_lock_conflict(exc):
                        raise
                    conflict = ConcurrencyConflictError(operation, "-", str(exc.orig))

                if attempt > policy.max_retries:
                    logger.warning(
                        "concurrency_retries_exhausted",
                        extra={"attempts": attempt, "reason": conflict.reason},
                    )
                    raise conflict
                logger.info(
                    "concurrency_conflict_retry",
                    extra={"attempt": attempt, "reason": conflict.reason},
                )
                time.sleep(policy.retry_backoff_seconds * attempt)

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_account(self, number: Any, name: Any, initial_balance: Any) -> AccountInfo:
        return self._run(
            "create_account",
            lambda s: s.accounts.create_account(number, name, initial_balance),
        )

    def get_account(self, account_id: Any) -> AccountInfo:
        account_id = _as_uuid(account_id, "account_id")
        return self._run("get_account", lambda s: s.accounts.get_account(account_id))

    def list_accounts(self) -> list[AccountInfo]:
        return self._run("list_accounts", lambda s: s.accounts.list_accounts())

    def update_account(self, account_id: Any, changes: AccountUpdate | dict[str, Any]) -> AccountInfo:
        account_id = _as_uuid(account_id, "account_id")
        if isinstance(changes, dict):
            changes = AccountUpdate.from_mapping(changes)
        return self._run(
            "update_account", lambda s: s.accounts.update_account(account_id, changes),
        )

    def delete_account(self, account_id: Any) -> AccountInfo:
        account_id = _as_uuid(account_id, "account_id")
        return self._run("delete_account", lambda s: s.accounts.delete_account(account_id))

    def deposit_to_account(
        self, account_id: Any, amount: Any, description: Any = None,
    ) -> AccountInfo:
        account_id = _as_uuid(account_id, "account_id")
        return self._run(
            "deposit",
            lambda s: s.accounts.deposit(account_id, amount, description),
        )

    # =========================================================================
    # Transfers
    # =========================================================================

    def create_transfer(
        self,
        from_account_id: Any,
        to_account_id: Any,
        amount: Any,
        description: Any = None,
    ) -> TransferInfo:
        from_id = _as_uuid(from_account_id, "from_account_id")
        to_id = _as_uuid(to_account_id, "to_account_id")
        return self._run(
            "create_transfer",
            lambda s: s.transfers.create_transfer(from_id, to_id, amount, description),
        )

    def get_transfer(self, transfer_id: Any) -> TransferInfo:
        transfer_id = _as_uuid(transfer_id, "transfer_id")
        return self._run("get_transfer", lambda s: s.transfers.get_transfer(transfer_id))

    def list_transfers(self, account_id: Any = None) -> list[TransferInfo]:
        if account_id is not None:
            account_id = _as_uuid(account_id, "account_id")
        return self._run("list_transfers", lambda s: s.transfers.list_transfers(account_id))

    def delete_transfer(self, transfer_id: Any) -> TransferInfo:
        transfer_id = _as_uuid(transfer_id, "transfer_id")
        return self._run(
            "delete_transfer", lambda s: s.transfers.delete_transfer(transfer_id),
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def create_payment(
        self,
        account_id: Any,
        creditor_id: Any,
        payment_date: Any = None,
        *,
        amount: Any = None,
        gross_amount: Any = None,
        tax_rate: Any = None,
        status: Any = PaymentStatus.PENDING,
    ) -> PaymentInfo:
        account_id = _as_uuid(account_id, "account_id")
        creditor_id = _as_uuid(creditor_id, "creditor_id")
        return self._run(
            "create_payment",
            lambda s: s.payments.create_payment(
                account_id,
                creditor_id,
                payment_date,
                amount=amount,
                gross_amount=gross_amount,
                tax_rate=tax_rate,
                status=status,
            ),
        )

    def get_payment(self, payment_id: Any) -> PaymentInfo:
        payment_id = _as_uuid(payment_id, "payment_id")
        return self._run("get_payment", lambda s: s.payments.get_payment(payment_id))

    def list_payments(
        self,
        account_id: Any = None,
        creditor_id: Any = None,
        start_date: Any = None,
        end_date: Any = None,
    ) -> list[PaymentInfo]:
        criteria = self._payment_filter(account_id, creditor_id, start_date, end_date)
        return self._run("list_payments", lambda s: s.payments.list_payments(criteria))

    def delete_payment(self, payment_id: Any) -> PaymentInfo:
        payment_id = _as_uuid(payment_id, "payment_id")
        return self._run("delete_payment", lambda s: s.payments.delete_payment(payment_id))

    # =========================================================================
    # Creditors
    # =========================================================================

    def create_creditor(self, name: Any, document: Any = None) -> CreditorInfo:
        return self._run(
            "create_creditor", lambda s: s.creditors.create_creditor(name, document),
        )

    def get_creditor(self, creditor_id: Any) -> CreditorInfo:
        creditor_id = _as_uuid(creditor_id, "creditor_id")
        return self._run("get_creditor", lambda s: s.creditors.get_creditor(creditor_id))

    def list_creditors(self) -> list[CreditorInfo]:
        return self._run("list_creditors", lambda s: s.creditors.list_creditors())

    def update_creditor(
        self, creditor_id: Any, changes: CreditorUpdate | dict[str, Any],
    ) -> CreditorInfo:
        creditor_id = _as_uuid(creditor_id, "creditor_id")
        if isinstance(changes, dict):
            changes = CreditorUpdate.from_mapping(changes)
        return self._run(
            "update_creditor", lambda s: s.creditors.update_creditor(creditor_id, changes),
        )

    def delete_creditor(self, creditor_id: Any) -> CreditorInfo:
        creditor_id = _as_uuid(creditor_id, "creditor_id")
        return self._run(
            "delete_creditor", lambda s: s.creditors.delete_creditor(creditor_id),
        )

    # =========================================================================
    # Reports
    # =========================================================================

    def payment_report(
        self,
        account_id: Any = None,
        creditor_id: Any = None,
        start_date: Any = None,
        end_date: Any = None,
    ) -> PaymentTotals:
        criteria = self._payment_filter(account_id, creditor_id, start_date, end_date)
        return self._run("payment_report", lambda s: s.reports.payment_totals(criteria))

    def creditor_summary(self, creditor_id: Any) -> PaymentTotals:
        creditor_id = _as_uuid(creditor_id, "creditor_id")

        def work(s: LedgerServices) -> PaymentTotals:
            s.creditors.get_creditor(creditor_id)
            return s.reports.creditor_summary(creditor_id)

        return self._run("creditor_summary", work)

    def account_movements(self, account_id: Any) -> list[AccountMovement]:
        account_id = _as_uuid(account_id, "account_id")

        def work(s: LedgerServices) -> list[AccountMovement]:
            s.accounts.get_account(account_id)
            return s.reports.account_movements(account_id)

        return self._run("account_movements", work)

    @staticmethod
    def _payment_filter(account_id, creditor_id, start_date, end_date) -> PaymentFilter:
        return PaymentFilter(
            account_id=_as_uuid(account_id, "account_id") if account_id is not None else None,
            creditor_id=_as_uuid(creditor_id, "creditor_id") if creditor_id is not None else None,
            start_date=_as_date(start_date, "start_date"),
            end_date=_as_date(end_date, "end_date"),
        )
