"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for payments from an account to a creditor.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - On creation the paying account was debited by ``amount`` exactly
      once (PaymentService).
    - ``amount`` is the debited value: the net amount in gross+tax mode,
      the raw amount otherwise.  gross/tax/net columns are NULL in the
      simple mode.
    - tax_rate lies between 0 and 100.

Audit relevance:
    Deleting a payment removes the row without restoring the account
    balance unless configured otherwise; the debit stays in the balance.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class PaymentStatus(str, Enum):
    """Payment lifecycle status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Payment(TrackedBase):
    """A debit from an account to a creditor, with optional tax withholding."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
        CheckConstraint(
            "tax_rate IS NULL OR (tax_rate >= 0 AND tax_rate <= 100)",
            name="ck_payment_tax_rate_range",
        ),
        Index("idx_payment_account", "account_id"),
        Index("idx_payment_creditor", "creditor_id"),
        Index("idx_payment_date", "payment_date"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    creditor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )

    gross_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )

    tax_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
    )

    tax_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )

    net_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )

    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    def __repr__(self) -> str:
        return f"<Payment {self.account_id} -> {self.creditor_id}: {self.amount} ({self.status})>"
