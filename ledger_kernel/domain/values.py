"""
Values -- immutable request structures for partial updates and filters.

Responsibility:
    Represents "only the supplied fields change" requests explicitly.
    Each field of an update is either a value or the ``UNSET`` sentinel,
    so ``None`` stays available as a real value (e.g. clearing a
    creditor's document).

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID


class _Unset:
    """Marker for a field the caller did not supply."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class _PartialUpdate:
    """Mixin for dataclasses whose fields default to UNSET."""

    def provided(self) -> dict[str, Any]:
        """Fields the caller supplied, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.provided()

    @classmethod
    def from_mapping(cls, data: dict[str, Any]):
        """Build from a request body; unknown keys are ignored."""
        names = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class AccountUpdate(_PartialUpdate):
    """
    Partial update of an account.

    Setting ``initial_balance`` also resets ``current_balance`` to the same
    value, discarding accumulated history.  An explicit ``current_balance``
    in the same update is applied after that reset.
    """

    number: Any = UNSET
    name: Any = UNSET
    initial_balance: Any = UNSET
    current_balance: Any = UNSET


@dataclass(frozen=True)
class CreditorUpdate(_PartialUpdate):
    """Partial update of a creditor. ``document=None`` clears the document."""

    name: Any = UNSET
    document: Any = UNSET


@dataclass(frozen=True)
class PaymentFilter:
    """Criteria for payment listings and report totals.  None means "any"."""

    account_id: UUID | None = None
    creditor_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class PaymentTotals:
    """Aggregated payment amounts over a filter."""

    count: int
    total_amount: Decimal
    total_gross: Decimal
    total_tax: Decimal
    total_net: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total_amount": str(self.total_amount),
            "total_gross": str(self.total_gross),
            "total_tax": str(self.total_tax),
            "total_net": str(self.total_net),
        }
