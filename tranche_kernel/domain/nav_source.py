"""
RawNAVSource -- the kernel's NAV measurement boundary.

Responsibility:
    Declares how the accounting engine asks the surrounding kernel for the
    current raw NAV of each tranche's investment.  Used by parameter
    setters, which must settle PnL before changing parameters and therefore
    need a fresh measurement without the kernel passing one in.

Architecture position:
    Kernel > Domain -- interface only.  Concrete sources live with the
    custody / investment layer (out of scope) or in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from tranche_kernel.domain.fixed_point import NAV


@dataclass(frozen=True)
class RawNAVs:
    """One consistent measurement of both tranches' raw NAVs."""

    st_raw_nav: NAV
    jt_raw_nav: NAV


class RawNAVSource(ABC):
    """
    Measures current raw NAVs.

    Contract:
        ``measure()`` returns both NAVs from the same instant.  It must not
        call back into the accounting engine.
    """

    @abstractmethod
    def measure(self) -> RawNAVs:
        """Return the current raw NAVs of the senior and junior tranches."""
        ...


class StaticNAVSource(RawNAVSource):
    """
    NAV source returning values set by the caller.

    Used by tooling and tests to stand in for the kernel's investment layer.
    """

    def __init__(self, st_raw_nav: NAV | None = None, jt_raw_nav: NAV | None = None):
        self._navs = RawNAVs(
            st_raw_nav=st_raw_nav or NAV.zero(),
            jt_raw_nav=jt_raw_nav or NAV.zero(),
        )

    def set(self, st_raw_nav: NAV, jt_raw_nav: NAV) -> None:
        self._navs = RawNAVs(st_raw_nav=st_raw_nav, jt_raw_nav=jt_raw_nav)

    def measure(self) -> RawNAVs:
        return self._navs
