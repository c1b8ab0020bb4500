"""
Ledger Kernel

Balance-mutation core for a small bookkeeping system:
- Accounts with a stored running balance
- Atomic inter-account transfers with reversal
- Payments to creditors with tax withholding
- Row-level locking in a canonical order
"""

__version__ = "0.1.0"
