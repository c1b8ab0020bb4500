"""
Module: ledger_kernel.models.transfer
Responsibility: ORM persistence for account-to-account transfers.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - For every committed row, the source account was debited and the
      destination credited by ``amount`` exactly once (TransferService).
    - Rows are created and deleted, never updated in place.
    - from_account_id and to_account_id are plain columns without a
      foreign key: deleting an account leaves its transfers in place.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class Transfer(TrackedBase):
    """Funds moved from one account to another."""

    __tablename__ = "account_transfers"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transfer_amount_positive"),
        CheckConstraint(
            "from_account_id <> to_account_id",
            name="ck_transfer_distinct_accounts",
        ),
        Index("idx_transfer_from", "from_account_id"),
        Index("idx_transfer_to", "to_account_id"),
        Index("idx_transfer_created_at", "created_at"),
    )

    from_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    to_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Transfer {self.from_account_id} -> {self.to_account_id}: {self.amount}>"
