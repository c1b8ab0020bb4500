"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountInfo, AccountService
from ledger_kernel.services.creditor_service import CreditorInfo, CreditorService
from ledger_kernel.services.payment_service import PaymentInfo, PaymentService
from ledger_kernel.services.transfer_service import TransferInfo, TransferService

__all__ = [
    "AccountInfo",
    "AccountService",
    "CreditorInfo",
    "CreditorService",
    "PaymentInfo",
    "PaymentService",
    "TransferInfo",
    "TransferService",
]
