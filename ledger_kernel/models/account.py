"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for balance-bearing accounts.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - number is unique (uq_account_number).
    - current_balance equals initial_balance plus the net of committed
      deposits, transfers and payments.  Only AccountService writes it,
      and only while holding the row lock (enforced by the service, not
      this model).

Failure modes:
    - IntegrityError on duplicate number (race past the service check).
"""

from decimal import Decimal

from sqlalchemy import Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class Account(TrackedBase):
    """
    A bank-like account with a tracked balance.

    Guarantees:
        - number is unique and non-null.
        - initial_balance is fixed at creation (changed only by an
          explicit update, which also resets current_balance).
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("number", name="uq_account_number"),
        Index("idx_account_created_at", "created_at"),
    )

    # External identifier
    number: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Display label
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    initial_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    def __repr__(self) -> str:
        return f"<Account {self.number}: {self.name} balance={self.current_balance}>"
