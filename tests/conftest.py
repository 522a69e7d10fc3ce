"""
Pytest fixtures for the tranche accounting test suite.

Provides:
- An in-memory SQLite database per test (override with DATABASE_URL to run
  against PostgreSQL)
- Deterministic clock, kernel / admin actor ids, a static NAV source
- Market and accountant factories
- Captured structured logs
"""

import json
import logging
import os
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from tranche_engines.yield_models import StaticYieldModel, YieldModelRegistry
from tranche_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from tranche_kernel.domain.accounting_state import AccountingLimits, PostOpKind
from tranche_kernel.domain.clock import DeterministicClock
from tranche_kernel.domain.fixed_point import NAV, Ratio
from tranche_kernel.domain.nav_source import StaticNAVSource
from tranche_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from tranche_kernel.services.ledger_service import LedgerService
from tranche_kernel.services.market_locks import MarketLockRegistry
from tranche_services.sync_orchestrator import TrancheAccountant

DEFAULT_DATABASE_URL = "sqlite://"

MARKET = "MKT-1"


def get_database_url() -> str:
    """Database URL from the environment, or in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture tranche_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, accountant):
            accountant.pre_op_sync(...)
            logs = captured_logs()
            assert any(r["message"] == "pre_op_sync_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("tranche_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh engine and schema per test."""
    eng = init_engine_from_url(get_database_url())
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()
    MarketLockRegistry.clear()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session whose uncommitted work is rolled back at teardown."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Actors, clock, collaborators
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def kernel_id():
    return uuid4()


@pytest.fixture
def admin_id():
    return uuid4()


@pytest.fixture
def nav_source() -> StaticNAVSource:
    return StaticNAVSource()


@pytest.fixture
def limits() -> AccountingLimits:
    return AccountingLimits(min_coverage=Ratio.of("0.01"), max_protocol_fee=Ratio.of("0.5"))


@pytest.fixture
def yield_models() -> YieldModelRegistry:
    return YieldModelRegistry(
        {
            "static_20": StaticYieldModel(Ratio.of("0.2")),
            "static_50": StaticYieldModel(Ratio.of("0.5")),
            "static_0": StaticYieldModel(Ratio.zero()),
        }
    )


# =============================================================================
# Market factories
# =============================================================================


@pytest.fixture
def create_market(session, kernel_id, admin_id, limits):
    """
    Create a market ledger and return it.

    Usage::

        ledger = create_market(coverage="0.2", beta="0")
    """

    def _create(
        market_code: str = MARKET,
        *,
        coverage: str = "0.2",
        beta: str = "0",
        st_protocol_fee: str = "0",
        jt_protocol_fee: str = "0",
        yield_model_ref: str = "static_20",
    ):
        ledger = LedgerService(session).create_market(
            market_code,
            kernel_id=kernel_id,
            admin_id=admin_id,
            coverage=Ratio.of(coverage),
            beta=Ratio.of(beta),
            st_protocol_fee=Ratio.of(st_protocol_fee),
            jt_protocol_fee=Ratio.of(jt_protocol_fee),
            yield_model_ref=yield_model_ref,
            limits=limits,
            actor_id=admin_id,
        )
        session.commit()
        return ledger

    return _create


@pytest.fixture
def make_accountant(session, clock, yield_models, nav_source, limits):
    """Build a TrancheAccountant bound to the test session."""

    def _make(market_code: str = MARKET, **overrides) -> TrancheAccountant:
        kwargs = dict(
            clock=clock,
            yield_models=yield_models,
            nav_source=nav_source,
            limits=limits,
        )
        kwargs.update(overrides)
        return TrancheAccountant(session, market_code, **kwargs)

    return _make


@pytest.fixture
def accountant(create_market, make_accountant) -> TrancheAccountant:
    """Accountant for a fresh market with coverage 0.2, beta 0 and no fees."""
    create_market()
    return make_accountant()


@pytest.fixture
def fund_market(kernel_id):
    """
    Deposit JT then ST through the kernel's sync sequence.

    Usage::

        fund_market(accountant, "800", "1000")
    """

    def _fund(accountant: TrancheAccountant, st: str, jt: str) -> None:
        accountant.pre_op_sync(kernel_id, NAV.zero(), NAV.zero())
        accountant.post_op_sync(kernel_id, PostOpKind.JT_INCREASE_NAV, NAV.zero(), NAV.of(jt))
        accountant.pre_op_sync(kernel_id, NAV.zero(), NAV.of(jt))
        accountant.post_op_sync(kernel_id, PostOpKind.ST_INCREASE_NAV, NAV.of(st), NAV.of(jt))

    return _fund


@pytest.fixture
def funded_accountant(accountant, fund_market, session) -> TrancheAccountant:
    """The reference market: ST raw 800, JT raw 1000, both fully effective."""
    fund_market(accountant, "800", "1000")
    session.commit()
    return accountant
