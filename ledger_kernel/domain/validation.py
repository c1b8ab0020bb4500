"""
Lightweight domain validation helpers.

Pure checks with no I/O.  Every failure is collected into a
``FieldErrors`` accumulator so one ValidationError can report all bad
fields at once, before any row lock is taken.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ledger_kernel.db.types import round_money
from ledger_kernel.exceptions import ValidationError

MAX_TEXT_LENGTH = 255

# Numeric(15, 2) holds 13 integer digits
MAX_AMOUNT = Decimal("1e13")


class FieldErrors:
    """Accumulates per-field validation messages."""

    def __init__(self) -> None:
        self._errors: dict[str, str] = {}

    def add(self, field: str, message: str) -> None:
        self._errors.setdefault(field, message)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def raise_if_any(self) -> None:
        if self._errors:
            raise ValidationError(self._errors)

    def text(
        self,
        field: str,
        value: Any,
        *,
        required: bool = True,
        max_length: int = MAX_TEXT_LENGTH,
    ) -> str | None:
        """Validate a string field; returns the stripped value."""
        if value is None:
            if required:
                self.add(field, "is required")
            return None
        if not isinstance(value, str):
            self.add(field, "must be a string")
            return None
        stripped = value.strip()
        if required and not stripped:
            self.add(field, "must not be blank")
            return None
        if len(stripped) > max_length:
            self.add(field, f"must be at most {max_length} characters")
            return None
        return stripped

    def money(
        self,
        field: str,
        value: Any,
        *,
        minimum: Decimal | None = None,
        maximum: Decimal | None = None,
        required: bool = True,
    ) -> Decimal | None:
        """Validate a numeric field; returns it rounded to two places."""
        if value is None:
            if required:
                self.add(field, "is required")
            return None
        amount = _coerce_decimal(value)
        if amount is None:
            self.add(field, "must be numeric")
            return None
        if abs(amount) >= MAX_AMOUNT:
            self.add(field, "is out of range")
            return None
        amount = round_money(amount)
        if minimum is not None and amount < minimum:
            self.add(field, f"must be at least {minimum}")
            return None
        if maximum is not None and amount > maximum:
            self.add(field, f"must be at most {maximum}")
            return None
        return amount


def _coerce_decimal(value: Any) -> Decimal | None:
    """Decimal, int, float or numeric string to Decimal; None for anything else.

    Floats (decoded JSON numbers) go through their shortest repr, so
    ``40.1`` becomes ``Decimal("40.1")`` rather than its binary expansion.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result
