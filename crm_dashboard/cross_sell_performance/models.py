# crm_dashboard/cross_sell_performance/models.py
"""
Value objects for the Cross-Sell Performance engine

- PerformanceValue: one per-month performance entry after normalization
- CrossSellScope / ExistingScope: the two shapes a target can be scoped by
- TargetScopeFilter: account / mandate / LOB restriction for target sums
- RollupQuery: one dashboard query
- DashboardResult: everything a query produces
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, FrozenSet, Optional, Union

import pandas as pd

from .constants import DEFAULT_STATUS_TYPE

# =============================================================================
# PERFORMANCE RECORDS
# =============================================================================

SHAPE_PAIR = "pair"          # legacy [planned, achieved]
SHAPE_SCALAR = "scalar"      # achieved only
SHAPE_EMPTY = "empty"        # null / missing
SHAPE_MALFORMED = "malformed"


@dataclass(frozen=True)
class PerformanceValue:
    """Normalized month entry. `planned` is None for the scalar shape."""
    achieved: float
    planned: Optional[float] = None
    shape: str = SHAPE_SCALAR

    @property
    def is_malformed(self) -> bool:
        return self.shape == SHAPE_MALFORMED


# =============================================================================
# TARGET SCOPES
# =============================================================================

@dataclass(frozen=True)
class CrossSellScope:
    """new_cross_sell targets: KAM and account carried directly."""
    kam_id: str
    account_id: Optional[str] = None


@dataclass(frozen=True)
class ExistingScope:
    """existing targets: only the mandate; KAM follows mandate.kam_id."""
    mandate_id: str


TargetScope = Union[CrossSellScope, ExistingScope]


@dataclass(frozen=True)
class TargetScopeFilter:
    """Restrict target sums to accounts, mandates and/or a line of business."""
    account_ids: Optional[FrozenSet[str]] = None
    mandate_ids: Optional[FrozenSet[str]] = None
    lob: Optional[str] = None

    @classmethod
    def build(cls, account_ids=None, mandate_ids=None, lob=None) -> "TargetScopeFilter":
        return cls(
            account_ids=frozenset(account_ids) if account_ids is not None else None,
            mandate_ids=frozenset(mandate_ids) if mandate_ids is not None else None,
            lob=lob,
        )


# =============================================================================
# QUERY / RESULT
# =============================================================================

@dataclass(frozen=True)
class RollupQuery:
    """
    One dashboard query.

    Attributes:
        fiscal_year: "FYnn"
        as_of: Reference "now" for past/current/future month rules and weeks
        kam_id: Optional KAM filter
        expected_close_month: Optional calendar month (1-12) for deal selection
        status_type: Status-type filter for targets and achieved values
        lob: Optional line-of-business filter
    """
    fiscal_year: str
    as_of: datetime
    kam_id: Optional[str] = None
    expected_close_month: Optional[int] = None
    status_type: str = DEFAULT_STATUS_TYPE
    lob: Optional[str] = None

    @property
    def as_of_date(self) -> date:
        return self.as_of.date() if isinstance(self.as_of, datetime) else self.as_of


@dataclass
class DashboardResult:
    """Ephemeral result of one RollupQuery. Never persisted."""
    query: RollupQuery
    funnel: Dict[str, Dict[str, float]]
    current_funnel: Dict[str, Dict[str, float]]
    waterfall: Dict[str, int]
    total_deals: int
    conversion_table: pd.DataFrame
    tier_reconciliation: Dict[str, pd.DataFrame]
    monthly_totals: pd.DataFrame
    quarterly_totals: pd.DataFrame
    annual_totals: Dict[str, float]
    by_kam: pd.DataFrame
    by_lob: pd.DataFrame
    by_tier: pd.DataFrame
    weekly_activity: Dict[str, int]
    skipped_records: Dict[str, int] = field(default_factory=dict)
