"""
tranche_services -- orchestration over the tranche engines and kernel.

Exports ``TrancheAccountant`` (the per-market sync orchestrator) and the
caller checks it runs at every mutating entry point.
"""

from tranche_services.authority import require_admin, require_kernel
from tranche_services.sync_orchestrator import TrancheAccountant

__all__ = [
    "TrancheAccountant",
    "require_kernel",
    "require_admin",
]
