"""
tranche_services.authority -- Caller checks at mutating entry points.

Responsibility:
    Verify that the actor invoking a mutating operation is the one bound
    to the market: the registered kernel for syncs, the administrator for
    parameter setters.

Architecture position:
    Services layer.  Called first thing inside every mutating entry point
    of ``TrancheAccountant``, before any state is read for computation.

Invariants:
    - A rejected caller leaves no state change: the check raises before
      the ledger is touched.
    - Role identity is taken from the ledger row, never from the caller.
"""

from __future__ import annotations

from uuid import UUID

from tranche_kernel.exceptions import UnauthorizedCallerError
from tranche_kernel.logging_config import get_logger
from tranche_kernel.models.market_ledger import MarketLedger

logger = get_logger("services.authority")

KERNEL_ROLE = "kernel"
ADMIN_ROLE = "admin"


def _require(ledger: MarketLedger, actor_id: UUID, expected: UUID, role: str) -> None:
    if actor_id != expected:
        logger.warning(
            "unauthorized_caller",
            extra={
                "market_code": ledger.market_code,
                "actor_id": str(actor_id),
                "required_role": role,
            },
        )
        raise UnauthorizedCallerError(str(actor_id), role, ledger.market_code)


def require_kernel(ledger: MarketLedger, actor_id: UUID) -> None:
    """Raise UnauthorizedCallerError unless ``actor_id`` is the market's kernel."""
    _require(ledger, actor_id, ledger.kernel_id, KERNEL_ROLE)


def require_admin(ledger: MarketLedger, actor_id: UUID) -> None:
    """Raise UnauthorizedCallerError unless ``actor_id`` is the market's admin."""
    _require(ledger, actor_id, ledger.admin_id, ADMIN_ROLE)
