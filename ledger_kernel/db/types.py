"""
Module: ledger_kernel.db.types
Responsibility: Precision and rounding helpers for monetary values.
    Centralizes precision and rounding so that every model and service
    uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Amounts carry two decimal places (MONEY_DECIMAL_PLACES).
    - round_money() is the ONLY sanctioned rounding function.
    - No floats anywhere in the ledger kernel.

Failure modes:
    - decimal.InvalidOperation on a non-numeric string passed to
      to_money().
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")
ONE_HUNDRED = Decimal("100")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for amounts.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Decimal | int | str) -> Decimal:
    """Coerce an int, str or Decimal into a two-place Decimal.

    Floats are rejected: binary floating point cannot represent most
    cent values exactly.

    Raises:
        TypeError: If value is a float or another unsupported type.
        decimal.InvalidOperation: If a string is not numeric.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be {type(value).__name__}: {value!r}")
    if isinstance(value, (int, str)):
        value = Decimal(value)
    if not isinstance(value, Decimal):
        raise TypeError(f"Unsupported monetary type: {type(value).__name__}")
    return round_money(value)
