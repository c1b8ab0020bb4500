"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the balance-mutation protocol must tell apart "the request was
malformed", "the row does not exist", "the money is not there" and "the
database could not grant a lock in time".  Each of those needs a different
reaction (reject, 404, 422, retry), so each gets its own exception class
with a static ``code`` and structured attributes.

    try:
        transfers.create_transfer(from_id, to_id, amount)
    except InsufficientFundsError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- DuplicateAccountNumberError
    |   +-- DuplicateCreditorDocumentError
    |   +-- SameAccountTransferError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- TransferNotFoundError
    |   +-- CreditorNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- BalanceError
    |   +-- InsufficientFundsError
    |   +-- InvalidReversalError
    |   +-- AccountNotLockedError
    |
    +-- ConcurrencyError
        +-- ConcurrencyConflictError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Missing/malformed input field
                | DUPLICATE_ACCOUNT_NUMBER    | Account number already taken
                | DUPLICATE_CREDITOR_DOCUMENT | Creditor document already taken
                | SAME_ACCOUNT_TRANSFER       | from_account_id == to_account_id
----------------|-----------------------------|-----------------------------------------
Not found       | ACCOUNT_NOT_FOUND           | Account id doesn't exist
                | TRANSFER_NOT_FOUND          | Transfer id doesn't exist
                | CREDITOR_NOT_FOUND          | Creditor id doesn't exist
                | PAYMENT_NOT_FOUND           | Payment id doesn't exist
----------------|-----------------------------|-----------------------------------------
Balance         | INSUFFICIENT_FUNDS          | Source balance < amount under lock
                | INVALID_REVERSAL            | Reversal would drive destination < 0
                | ACCOUNT_NOT_LOCKED          | Balance mutated without holding lock
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Lock timeout / deadlock from the store

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Validation errors are raised before any row lock is taken, so they
   never leave a transaction holding locks.

2. Balance errors are raised under the lock, inside the unit of work.
   The unit is rolled back before the exception leaves the service.

3. ConcurrencyError is the only category the facade retries.

===============================================================================
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"

    def details(self) -> dict[str, Any]:
        """Structured attributes of this error, JSON-ready."""
        result: dict[str, Any] = {}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            if isinstance(value, Decimal):
                value = str(value)
            result[key] = value
        return result

    def to_error_response(self) -> dict[str, Any]:
        """Shape used by the outer HTTP layer for error bodies."""
        return {
            "code": self.code,
            "message": str(self),
            "details": self.details(),
        }


# Validation exceptions


class ValidationError(LedgerKernelError):
    """Input failed validation. Carries per-field messages."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field_errors: dict[str, str], message: str | None = None):
        self.field_errors = dict(field_errors)
        if message is None:
            message = "; ".join(f"{k}: {v}" for k, v in self.field_errors.items())
        super().__init__(message)


class DuplicateAccountNumberError(ValidationError):
    """Another account already uses this number."""

    code: str = "DUPLICATE_ACCOUNT_NUMBER"

    def __init__(self, number: str):
        self.number = number
        super().__init__(
            {"number": f"Account number already in use: {number}"},
        )


class DuplicateCreditorDocumentError(ValidationError):
    """Another creditor already uses this document."""

    code: str = "DUPLICATE_CREDITOR_DOCUMENT"

    def __init__(self, document: str):
        self.document = document
        super().__init__(
            {"document": f"Creditor document already in use: {document}"},
        )


class SameAccountTransferError(ValidationError):
    """Source and destination of a transfer are the same account."""

    code: str = "SAME_ACCOUNT_TRANSFER"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            {"to_account_id": "Destination must differ from source account"},
        )


# Not-found exceptions


class NotFoundError(LedgerKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class TransferNotFoundError(NotFoundError):
    """Transfer was not found."""

    code: str = "TRANSFER_NOT_FOUND"

    def __init__(self, transfer_id: str):
        self.transfer_id = transfer_id
        super().__init__(f"Transfer not found: {transfer_id}")


class CreditorNotFoundError(NotFoundError):
    """Creditor was not found."""

    code: str = "CREDITOR_NOT_FOUND"

    def __init__(self, creditor_id: str):
        self.creditor_id = creditor_id
        super().__init__(f"Creditor not found: {creditor_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


# Balance exceptions


class BalanceError(LedgerKernelError):
    """Base exception for balance-protocol violations."""

    code: str = "BALANCE_ERROR"


class InsufficientFundsError(BalanceError):
    """Debited account does not hold the requested amount."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, account_id: str, available: Decimal, requested: Decimal):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"available {available}, requested {requested}"
        )


class InvalidReversalError(BalanceError):
    """Reversing a transfer would drive the destination account negative."""

    code: str = "INVALID_REVERSAL"

    def __init__(self, transfer_id: str, account_id: str, resulting_balance: Decimal):
        self.transfer_id = transfer_id
        self.account_id = account_id
        self.resulting_balance = resulting_balance
        super().__init__(
            f"Cannot reverse transfer {transfer_id}: destination account "
            f"{account_id} would end at {resulting_balance}"
        )


class AccountNotLockedError(BalanceError):
    """Balance mutation attempted on an account not locked in this transaction."""

    code: str = "ACCOUNT_NOT_LOCKED"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"Account {account_id} must be locked with lock_for_update() "
            "before its balance is adjusted"
        )


# Concurrency exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """The store reported a lock timeout or deadlock. Transient."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Could not lock {entity_type} {entity_id}: {reason}"
        )
