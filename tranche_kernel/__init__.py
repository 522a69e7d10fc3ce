"""
Tranche Kernel

Accounting core for a two-tranche (senior / junior) capital pool:
- Exact fixed-point NAV arithmetic with directional rounding
- One persisted ledger per market
- Conservation, coverage and debt invariants
- Serialized, atomic mutation per market
"""

__version__ = "0.1.0"
