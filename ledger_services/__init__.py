"""
ledger_services -- Package init and public API.

Responsibility:
    Orchestration over the kernel: owns sessions and transaction
    boundaries, wires kernel services together with configuration, and
    retries operations that lost a lock race.

Architecture position:
    Services -- top layer.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        ledger_services/ -> ledger_kernel/  (allowed)
        ledger_services/ -> ledger_config/  (allowed)
        ledger_kernel/   -> ledger_services/ (FORBIDDEN)
        ledger_kernel/   -> ledger_config/   (FORBIDDEN)
"""

from ledger_services.ledger_facade import LedgerFacade, LedgerServices

__all__ = [
    "LedgerFacade",
    "LedgerServices",
]
