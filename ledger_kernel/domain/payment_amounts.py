"""
Payment amount computation -- gross, withholding tax and net.

Pure functions with no I/O.  Two input modes are supported:

    * gross+tax: caller supplies ``gross_amount`` (and optionally
      ``tax_rate``, default 0%).  ``tax_amount = gross * rate / 100``
      rounded half-up to cents, ``net_amount = gross - tax_amount``, and
      the debited amount is the net.
    * simple: caller supplies only ``amount``; it is debited as-is and the
      gross/tax/net columns stay empty.

When both are given, gross+tax wins and the raw amount is ignored.

Usage:
    amounts = resolve_payment_amounts(gross_amount=Decimal("100.00"),
                                      tax_rate=Decimal("10"))
    amounts.tax_amount   # Decimal("10.00")
    amounts.amount       # Decimal("90.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger_kernel.db.types import ONE_HUNDRED, ZERO, round_money
from ledger_kernel.domain.validation import FieldErrors


class PaymentMode(str, Enum):
    """How the debited amount was derived."""

    SIMPLE = "simple"
    GROSS_TAX = "gross_tax"


@dataclass(frozen=True)
class PaymentAmounts:
    """Resolved monetary fields of a payment."""

    mode: PaymentMode
    amount: Decimal  # value actually debited
    gross_amount: Decimal | None = None
    tax_rate: Decimal | None = None
    tax_amount: Decimal | None = None
    net_amount: Decimal | None = None


def compute_tax(gross_amount: Decimal, tax_rate: Decimal) -> tuple[Decimal, Decimal]:
    """Return (tax_amount, net_amount) for a gross amount and a percentage rate."""
    tax_amount = round_money(gross_amount * tax_rate / ONE_HUNDRED)
    return tax_amount, gross_amount - tax_amount


def resolve_payment_amounts(
    *,
    amount: Any = None,
    gross_amount: Any = None,
    tax_rate: Any = None,
) -> PaymentAmounts:
    """
    Validate raw amount inputs and derive the payment's monetary fields.

    Raises:
        ValidationError: negative amounts, tax rate outside 0-100, a tax
            rate without a gross amount, or no amount at all.
    """
    errors = FieldErrors()
    raw = errors.money("amount", amount, minimum=ZERO, required=False)
    gross = errors.money("gross_amount", gross_amount, minimum=ZERO, required=False)
    rate = errors.money(
        "tax_rate", tax_rate, minimum=ZERO, maximum=ONE_HUNDRED, required=False,
    )
    if not errors:
        if gross is None and raw is None:
            errors.add("amount", "either amount or gross_amount is required")
        elif gross is None and rate is not None:
            errors.add("gross_amount", "is required when tax_rate is given")
    errors.raise_if_any()

    if gross is None:
        return PaymentAmounts(mode=PaymentMode.SIMPLE, amount=raw)

    rate = rate if rate is not None else ZERO
    tax_amount, net_amount = compute_tax(gross, rate)
    return PaymentAmounts(
        mode=PaymentMode.GROSS_TAX,
        amount=net_amount,
        gross_amount=gross,
        tax_rate=rate,
        tax_amount=tax_amount,
        net_amount=net_amount,
    )
