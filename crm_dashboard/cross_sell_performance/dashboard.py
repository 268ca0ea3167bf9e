# crm_dashboard/cross_sell_performance/dashboard.py
"""
Cross-Sell Dashboard - one query, fetched once, computed in memory

Flow:
    RollupQuery -> CrossSellQueries (all reads) -> CrossSellMetrics -> DashboardResult

Deal selection:
- expected_close_month set: deals whose expected close date falls in that
  month (calendar year derived from the fiscal year)
- otherwise: deals created within the fiscal year
Status history is limited to the fiscal-year window and the selected deals.

Any read failure propagates; no partial result is returned.
"""

import logging
import time

from .constants import DEBUG_TIMING
from .fiscal_calendar import (
    financial_year_string,
    fiscal_year_range,
    month_range,
    year_for_month_in_fy,
)
from .metrics import CrossSellMetrics
from .models import DashboardResult, RollupQuery
from .queries import CrossSellQueries
from .target_resolver import validate_status_type

logger = logging.getLogger(__name__)


class CrossSellDashboard:
    """
    Orchestrate a RollupQuery end to end.

    Usage:
        dashboard = CrossSellDashboard(CrossSellQueries())
        result = dashboard.run(RollupQuery(fiscal_year='FY25', as_of=datetime.now()))
    """

    def __init__(self, queries: CrossSellQueries = None):
        self.queries = queries or CrossSellQueries()

    def load(self, query: RollupQuery) -> CrossSellMetrics:
        """Fetch every collection the query needs and wrap it in CrossSellMetrics."""
        fy_start, fy_end = fiscal_year_range(query.fiscal_year)
        validate_status_type(query.status_type)

        if query.expected_close_month is not None:
            year = year_for_month_in_fy(query.expected_close_month, query.fiscal_year)
            deals_df = self.queries.list_deals(
                kam_id=query.kam_id,
                expected_close_month=month_range(year, query.expected_close_month),
            )
        else:
            deals_df = self.queries.list_deals(fy_start, fy_end, kam_id=query.kam_id)

        deal_ids = deals_df['id'].tolist() if not deals_df.empty else []
        events_df = self.queries.list_status_events(deal_ids, fy_start, fy_end)

        mandates_df = self.queries.list_mandates()
        accounts_df = self.queries.list_accounts()
        targets_df = self.queries.list_targets(
            financial_year=financial_year_string(query.fiscal_year)
        )
        kams_df = self.queries.list_kams()

        logger.info(
            f"Loaded {query.fiscal_year}: {len(deals_df):,} deals, {len(events_df):,} events, "
            f"{len(mandates_df):,} mandates, {len(targets_df):,} targets"
        )

        return CrossSellMetrics(
            deals_df,
            events_df,
            mandates_df=mandates_df,
            accounts_df=accounts_df,
            targets_df=targets_df,
            kams_df=kams_df,
        )

    def run(self, query: RollupQuery) -> DashboardResult:
        """
        Execute a dashboard query.

        Args:
            query: RollupQuery (fiscal year, as_of, filters)

        Returns:
            DashboardResult
        """
        start_time = time.perf_counter()

        metrics = self.load(query)
        snapshot = metrics.calculate_funnel_snapshot()

        period_args = dict(status_type=query.status_type, kam_id=query.kam_id, lob=query.lob)

        result = DashboardResult(
            query=query,
            funnel=snapshot['funnel'],
            current_funnel=snapshot['current'],
            waterfall=snapshot['waterfall'],
            total_deals=snapshot['total_deals'],
            conversion_table=metrics.build_conversion_table(),
            tier_reconciliation=metrics.build_tier_reconciliation(
                query.fiscal_year, query.as_of, **period_args
            ),
            monthly_totals=metrics.calculate_monthly_totals(query.fiscal_year, **period_args),
            quarterly_totals=metrics.calculate_quarterly_totals(query.fiscal_year, **period_args),
            annual_totals=metrics.calculate_annual_totals(query.fiscal_year, **period_args),
            by_kam=metrics.aggregate_by_kam(query.fiscal_year, query.status_type, lob=query.lob),
            by_lob=metrics.aggregate_by_lob(query.fiscal_year, query.status_type, kam_id=query.kam_id),
            by_tier=metrics.aggregate_by_tier(query.fiscal_year, **period_args),
            weekly_activity=metrics.calculate_weekly_activity(query.as_of, query.fiscal_year),
            skipped_records=metrics.skipped_records,
        )

        elapsed = time.perf_counter() - start_time
        if DEBUG_TIMING:
            print(f"   📊 [CrossSellDashboard] {query.fiscal_year} computed in {elapsed:.3f}s")
        logger.info(f"Dashboard query {query.fiscal_year} completed in {elapsed:.2f}s")

        return result
