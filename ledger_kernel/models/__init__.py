"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.creditor import Creditor
from ledger_kernel.models.payment import Payment, PaymentStatus
from ledger_kernel.models.transfer import Transfer

__all__ = [
    "Account",
    "Creditor",
    "Payment",
    "PaymentStatus",
    "Transfer",
]
