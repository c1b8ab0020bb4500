"""
Module: ledger_kernel.selectors.report_selector
Responsibility: Read-only reporting over payments and transfers: payment
    totals for a filter, totals received by a creditor, and the movement
    history of one account.
Architecture position: Kernel > Selectors.

Notes:
    Totals are computed in SQL.  Simple-mode payments have NULL gross,
    tax and net columns; they count toward ``total_amount`` only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.values import PaymentFilter, PaymentTotals
from ledger_kernel.models.payment import Payment
from ledger_kernel.models.transfer import Transfer
from ledger_kernel.selectors.base import BaseSelector


def filter_payments(stmt, criteria: PaymentFilter):
    """Add the WHERE clauses of a PaymentFilter to a select over payments."""
    if criteria.account_id is not None:
        stmt = stmt.where(Payment.account_id == criteria.account_id)
    if criteria.creditor_id is not None:
        stmt = stmt.where(Payment.creditor_id == criteria.creditor_id)
    if criteria.start_date is not None:
        stmt = stmt.where(Payment.payment_date >= criteria.start_date)
    if criteria.end_date is not None:
        stmt = stmt.where(Payment.payment_date <= criteria.end_date)
    return stmt


def _total(value: Any) -> Decimal:
    # SUM over no rows is NULL; SQLite may hand back floats for Numeric sums
    if value is None:
        return ZERO
    return round_money(Decimal(str(value)))


class MovementKind(str, Enum):
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    PAYMENT = "payment"


@dataclass(frozen=True)
class AccountMovement:
    """One balance-affecting record, signed from the account's point of view."""

    kind: MovementKind
    record_id: UUID
    amount: Decimal
    counterpart_id: UUID
    description: str | None
    occurred_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "record_id": str(self.record_id),
            "amount": str(self.amount),
            "counterpart_id": str(self.counterpart_id),
            "description": self.description,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
        }


class ReportSelector(BaseSelector[Payment]):
    """Payment report totals, creditor summary and account movements."""

    def payment_totals(self, criteria: PaymentFilter | None = None) -> PaymentTotals:
        """Count and sums over the payments matching ``criteria``."""
        stmt = select(
            func.count(Payment.id),
            func.sum(Payment.amount),
            func.sum(Payment.gross_amount),
            func.sum(Payment.tax_amount),
            func.sum(Payment.net_amount),
        )
        stmt = filter_payments(stmt, criteria or PaymentFilter())
        count, amount, gross, tax, net = self.session.execute(stmt).one()
        return PaymentTotals(
            count=count or 0,
            total_amount=_total(amount),
            total_gross=_total(gross),
            total_tax=_total(tax),
            total_net=_total(net),
        )

    def creditor_summary(self, creditor_id: UUID) -> PaymentTotals:
        """Totals received by one creditor across all dates."""
        return self.payment_totals(PaymentFilter(creditor_id=creditor_id))

    def account_movements(self, account_id: UUID) -> list[AccountMovement]:
        """
        Transfers in, transfers out and payments touching an account,
        newest first.  Amounts are signed: credits positive, debits negative.
        """
        movements: list[AccountMovement] = []

        transfers = self.session.execute(
            select(Transfer).where(
                or_(
                    Transfer.from_account_id == account_id,
                    Transfer.to_account_id == account_id,
                )
            )
        ).scalars()
        for transfer in transfers:
            outgoing = transfer.from_account_id == account_id
            movements.append(
                AccountMovement(
                    kind=MovementKind.TRANSFER_OUT if outgoing else MovementKind.TRANSFER_IN,
                    record_id=transfer.id,
                    amount=-transfer.amount if outgoing else transfer.amount,
                    counterpart_id=(
                        transfer.to_account_id if outgoing else transfer.from_account_id
                    ),
                    description=transfer.description,
                    occurred_at=transfer.created_at,
                )
            )

        payments = self.session.execute(
            select(Payment).where(Payment.account_id == account_id)
        ).scalars()
        for payment in payments:
            movements.append(
                AccountMovement(
                    kind=MovementKind.PAYMENT,
                    record_id=payment.id,
                    amount=-payment.amount,
                    counterpart_id=payment.creditor_id,
                    description=None,
                    occurred_at=payment.created_at,
                )
            )

        movements.sort(
            key=lambda m: (m.occurred_at is not None, m.occurred_at or datetime.min),
            reverse=True,
        )
        return movements
