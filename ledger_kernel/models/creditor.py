"""
Module: ledger_kernel.models.creditor
Responsibility: ORM persistence for payment recipients.
Architecture position: Kernel > Models.  May import from db/ only.

Creditors carry no balance; they are reference data for payments.
``document`` is the recipient's tax id (CPF/CNPJ) and is unique when present.
"""

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class Creditor(TrackedBase):
    """A payment recipient."""

    __tablename__ = "creditors"

    __table_args__ = (
        UniqueConstraint("document", name="uq_creditor_document"),
        Index("idx_creditor_created_at", "created_at"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Tax id; NULLs do not collide under the unique constraint
    document: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Creditor {self.name} ({self.document})>"
