"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.report_selector import (
    AccountMovement,
    MovementKind,
    ReportSelector,
    filter_payments,
)

__all__ = [
    "AccountMovement",
    "MovementKind",
    "ReportSelector",
    "filter_payments",
]
