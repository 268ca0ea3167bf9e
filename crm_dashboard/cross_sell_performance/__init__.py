# crm_dashboard/cross_sell_performance/__init__.py
"""
Cross-Sell Performance Module

Temporal aggregation engine behind the cross-sell dashboard.
All components are self-contained within this module.

Components:
- fiscal_calendar: April-March fiscal year, quarters, weeks
- record_normalizer: Legacy pair / scalar performance entries -> one shape
- funnel_calculator: Ever-occupied stage attribution, current snapshot, waterfall
- conversion_table: Stage-to-stage conversion table
- tier_classifier: Tier 1 / Tier 2 per account per fiscal year
- reconciliation: Forward-only cumulative target vs actual
- target_resolver: Which targets count for a scope / status type / KAM
- metrics: Roll-up facade (totals, aggregations, weekly activity)
- queries: SQL reads
- dashboard: Fetch once, compute, return DashboardResult

Usage:
    from crm_dashboard.cross_sell_performance import (
        CrossSellDashboard,
        CrossSellQueries,
        RollupQuery,
    )

    result = CrossSellDashboard(CrossSellQueries()).run(
        RollupQuery(fiscal_year='FY25', as_of=datetime.now())
    )
"""

from .record_normalizer import RecordNormalizer, normalize, to_performance_value
from .funnel_calculator import FunnelCalculator
from .conversion_table import ConversionTableBuilder, format_conversion_rate
from .tier_classifier import TierClassifier
from .reconciliation import CumulativeReconciler
from .target_resolver import TargetResolver, parse_scope
from .metrics import CrossSellMetrics
from .queries import CrossSellQueries
from .dashboard import CrossSellDashboard

# Value objects
from .models import (
    PerformanceValue,
    CrossSellScope,
    ExistingScope,
    TargetScopeFilter,
    RollupQuery,
    DashboardResult,
)

# Calendar helpers
from .fiscal_calendar import (
    fiscal_year_range,
    current_fiscal_year,
    quarter_of,
    next_quarter,
    month_key,
    week_windows,
)

# Constants
from .constants import (
    PIPELINE_STAGES,
    FUNNEL_GROUPS,
    STATUS_TYPE_FILTERS,
    DEFAULT_STATUS_TYPE,
    TIER_1,
    TIER_2,
)

__all__ = [
    # Classes
    'RecordNormalizer',
    'FunnelCalculator',
    'ConversionTableBuilder',
    'TierClassifier',
    'CumulativeReconciler',
    'TargetResolver',
    'CrossSellMetrics',
    'CrossSellQueries',
    'CrossSellDashboard',

    # Value objects
    'PerformanceValue',
    'CrossSellScope',
    'ExistingScope',
    'TargetScopeFilter',
    'RollupQuery',
    'DashboardResult',

    # Functions
    'normalize',
    'to_performance_value',
    'format_conversion_rate',
    'parse_scope',
    'fiscal_year_range',
    'current_fiscal_year',
    'quarter_of',
    'next_quarter',
    'month_key',
    'week_windows',

    # Constants
    'PIPELINE_STAGES',
    'FUNNEL_GROUPS',
    'STATUS_TYPE_FILTERS',
    'DEFAULT_STATUS_TYPE',
    'TIER_1',
    'TIER_2',
]

__version__ = '1.0.0'
