# crm_dashboard/cross_sell_performance/metrics.py
"""
KPI Calculations for Cross-Sell Performance

Roll-up facade over the engine components:
- Funnel snapshot (ever-occupied, current status, waterfall)
- Stage conversion table
- Tiered cumulative target-vs-actual reconciliation
- Monthly / quarterly / annual totals within a fiscal year
- Aggregations by KAM, LOB and tier
- Weekly meetings / proposals activity

All inputs are snapshots; nothing here touches the database. "Now" is
always passed in.
"""

import logging
import time
from datetime import date, datetime
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from .constants import (
    DEBUG_TIMING,
    DEFAULT_STATUS_TYPE,
    FUNNEL_GROUPS,
    MEETING_DONE_STAGE,
    PROPOSAL_MADE_STAGE,
    QUARTER_MONTHS,
    STATUS_TYPE_MANDATE_TYPES,
    TIER_2,
    TIERS,
)
from .conversion_table import ConversionTableBuilder
from .fiscal_calendar import fiscal_months, month_key, month_label, quarter_of, week_windows
from .funnel_calculator import FunnelCalculator
from .models import TargetScopeFilter
from .reconciliation import CumulativeReconciler
from .record_normalizer import PERFORMANCE_COLUMNS, RecordNormalizer
from .target_resolver import TargetResolver, validate_status_type
from .tier_classifier import TierClassifier

logger = logging.getLogger(__name__)

TOTAL_COLUMNS = ['achieved', 'planned', 'target', 'achievement_pct', 'balance']


def _achievement_pct(achieved: float, target: float) -> float:
    return round(achieved / target * 100, 2) if target else 0.0


def _with_achievement(df: pd.DataFrame) -> pd.DataFrame:
    """Add achievement_pct and balance columns to a frame with achieved/target."""
    df = df.copy()
    for col in ('achieved', 'planned', 'target'):
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors='coerce').fillna(0.0).astype(float)
    df['achievement_pct'] = np.where(
        df['target'] > 0,
        (df['achieved'] / df['target'].where(df['target'] > 0, 1) * 100).round(2),
        0.0
    )
    df['balance'] = df['target'] - df['achieved']
    return df


def _combine_totals(performance: pd.DataFrame, targets: pd.DataFrame, keys: List[str]) -> pd.DataFrame:
    """Sum achieved / planned from performance and target from targets per key."""
    columns = ['achieved', 'planned', 'target']
    frames = []
    if not performance.empty:
        frames.append(performance[keys + ['achieved', 'planned']].assign(target=0.0))
    if not targets.empty:
        frames.append(targets[keys + ['target']].assign(achieved=0.0, planned=0.0))
    if not frames:
        return pd.DataFrame(columns=keys + columns)

    combined = pd.concat(frames, ignore_index=True)
    for col in columns:
        combined[col] = pd.to_numeric(combined[col], errors='coerce').fillna(0.0).astype(float)
    return combined.groupby(keys, dropna=False)[columns].sum().reset_index()


class CrossSellMetrics:
    """
    KPI calculations for cross-sell performance.

    Usage:
        metrics = CrossSellMetrics(deals_df, events_df, mandates_df, accounts_df, targets_df)

        funnel = metrics.calculate_funnel_snapshot()
        tiers = metrics.build_tier_reconciliation('FY25', as_of=date(2025, 6, 15))
        quarterly = metrics.calculate_quarterly_totals('FY25')
    """

    def __init__(
        self,
        deals_df: pd.DataFrame,
        events_df: pd.DataFrame,
        mandates_df: pd.DataFrame = None,
        accounts_df: pd.DataFrame = None,
        targets_df: pd.DataFrame = None,
        kams_df: pd.DataFrame = None,
        tier_threshold: Optional[float] = None
    ):
        """
        Initialize with data.

        Args:
            deals_df: Deal snapshot
            events_df: Status history for those deals
            mandates_df: Mandates with monthly_data
            accounts_df: Accounts (optional, used for names)
            targets_df: Monthly targets
            kams_df: KAM profiles (optional, used for names)
            tier_threshold: Override the configured Tier 1 threshold
        """
        start_time = time.perf_counter()

        self.deals_df = deals_df.copy() if deals_df is not None else pd.DataFrame()
        self.events_df = events_df.copy() if events_df is not None else pd.DataFrame()
        self.mandates_df = mandates_df.copy() if mandates_df is not None else pd.DataFrame()
        self.accounts_df = accounts_df.copy() if accounts_df is not None else pd.DataFrame()
        self.kams_df = kams_df.copy() if kams_df is not None else pd.DataFrame()

        self.normalizer = RecordNormalizer()
        self.performance_df = self.normalizer.explode_monthly_data(self.mandates_df)
        self.target_resolver = TargetResolver(targets_df, self.mandates_df)
        self.tier_classifier = TierClassifier(self.performance_df, threshold=tier_threshold)

        self._funnel: Optional[FunnelCalculator] = None

        elapsed = time.perf_counter() - start_time
        if DEBUG_TIMING:
            print(f"   📊 [CrossSellMetrics] Initialized in {elapsed:.3f}s")

    @property
    def funnel(self) -> FunnelCalculator:
        if self._funnel is None:
            self._funnel = FunnelCalculator(self.deals_df, self.events_df)
        return self._funnel

    @property
    def skipped_records(self) -> Dict[str, int]:
        return {
            'performance_records': self.normalizer.skipped,
            'targets': self.target_resolver.skipped,
        }

    # =========================================================================
    # FUNNEL
    # =========================================================================

    def calculate_funnel_snapshot(self) -> Dict:
        """
        Funnel counts and values.

        Returns:
            Dict with:
            - funnel: {'counts': {group: n}, 'values': {group: value}} (ever occupied)
            - current: same shape, by current status
            - waterfall: {group: n}
            - total_deals: int
        """
        attributed = self.funnel.attribute(FUNNEL_GROUPS).set_index('group')
        current = self.funnel.current_snapshot(FUNNEL_GROUPS).set_index('group')

        return {
            'funnel': {
                'counts': {g: int(n) for g, n in attributed['count'].items()},
                'values': {g: float(v) for g, v in attributed['value'].items()},
            },
            'current': {
                'counts': {g: int(n) for g, n in current['count'].items()},
                'values': {g: float(v) for g, v in current['value'].items()},
            },
            'waterfall': self.funnel.waterfall(),
            'total_deals': self.funnel.total_deals,
        }

    def build_conversion_table(self, stage_order: Optional[List[str]] = None) -> pd.DataFrame:
        """Stage conversion table for the deal snapshot."""
        builder = ConversionTableBuilder(self.deals_df, self.events_df)
        return builder.build(stage_order)

    # =========================================================================
    # PERFORMANCE & TARGET SELECTION
    # =========================================================================

    def _performance_for(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None
    ) -> pd.DataFrame:
        """Normalized performance records in the FY, filtered, with a tier column."""
        mandate_types = STATUS_TYPE_MANDATE_TYPES[validate_status_type(status_type)]
        df = self.performance_df
        if df.empty:
            return pd.DataFrame(columns=PERFORMANCE_COLUMNS + ['tier'])

        months = set(fiscal_months(fiscal_year))
        mask = pd.Series(
            [(int(y), int(m)) in months for y, m in zip(df['year'], df['month'])],
            index=df.index
        )
        mask &= df['mandate_type'].isin(mandate_types)
        if kam_id is not None:
            mask &= df['kam_id'] == kam_id
        if lob is not None:
            mask &= df['lob'] == lob

        filtered = df[mask].copy()
        filtered['tier'] = self._tier_lookup(filtered['account_id'], fiscal_year)
        return filtered

    def _targets_for(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None
    ) -> pd.DataFrame:
        """Resolved targets in the FY with a tier column."""
        scope_filter = TargetScopeFilter.build(lob=lob) if lob is not None else None
        targets = self.target_resolver.resolve(
            scope_filter=scope_filter,
            month_range=fiscal_year,
            status_type_filter=status_type,
            kam_filter=kam_id,
        )
        targets['tier'] = self._tier_lookup(targets['scope_account_id'], fiscal_year)
        return targets

    def _tier_lookup(self, account_ids: pd.Series, fiscal_year: str) -> List[str]:
        """Tier per account id. Rows without an account fall into Tier 2."""
        known = [a for a in account_ids.dropna().unique()]
        if not known:
            return [TIER_2] * len(account_ids)
        tiers = self.tier_classifier.classify_accounts(known, fiscal_year)
        lookup = dict(zip(tiers['account_id'], tiers['tier']))
        return [lookup.get(a, TIER_2) for a in account_ids]

    def _monthly_frame(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None,
        by: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """Long frame of achieved / planned / target per (by..., year, month)."""
        keys = (by or []) + ['year', 'month']
        performance = self._performance_for(fiscal_year, status_type, kam_id, lob)
        targets = self._targets_for(fiscal_year, status_type, kam_id, lob)

        return _combine_totals(performance, targets, keys)

    # =========================================================================
    # TIER RECONCILIATION
    # =========================================================================

    def build_tier_reconciliation(
        self,
        fiscal_year: str,
        as_of: Union[date, datetime],
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None
    ) -> Dict[str, pd.DataFrame]:
        """
        Cumulative Target / Actual / Achievement% / Balance per tier.

        Args:
            fiscal_year: "FYnn"
            as_of: Reference date for past / current / future months
            status_type: Status-type filter
            kam_id: Optional KAM filter
            lob: Optional line-of-business filter

        Returns:
            Dict tier -> DataFrame (4 rows x 12 month columns)
        """
        start_time = time.perf_counter()

        monthly = self._monthly_frame(fiscal_year, status_type, kam_id, lob, by=['tier'])
        tables = CumulativeReconciler(as_of).build_tier_table(fiscal_year, monthly)

        if DEBUG_TIMING:
            print(f"   📊 [CrossSellMetrics] tier reconciliation: "
                  f"{time.perf_counter() - start_time:.3f}s")
        return tables

    # =========================================================================
    # PERIOD TOTALS
    # =========================================================================

    def calculate_monthly_totals(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None
    ) -> pd.DataFrame:
        """
        One row per fiscal month (all 12 present, zero-filled).

        Returns:
            DataFrame with year, month, month_key, month_label, quarter,
            achieved, planned, target, achievement_pct, balance
        """
        monthly = self._monthly_frame(fiscal_year, status_type, kam_id, lob)
        lookup = monthly.set_index(['year', 'month']) if not monthly.empty else None

        rows = []
        for year, month in fiscal_months(fiscal_year):
            values = {'achieved': 0.0, 'planned': 0.0, 'target': 0.0}
            if lookup is not None and (year, month) in lookup.index:
                found = lookup.loc[(year, month)]
                values = {k: float(found[k]) for k in values}
            rows.append({
                'year': year,
                'month': month,
                'month_key': month_key(year, month),
                'month_label': month_label(year, month),
                'quarter': quarter_of(month),
                **values,
            })

        return _with_achievement(pd.DataFrame(rows))

    def calculate_quarterly_totals(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None
    ) -> pd.DataFrame:
        """One row per fiscal quarter Q1..Q4."""
        monthly = self.calculate_monthly_totals(fiscal_year, status_type, kam_id, lob)
        quarterly = (
            monthly.groupby('quarter')[['achieved', 'planned', 'target']]
            .sum()
            .reindex(list(QUARTER_MONTHS.keys()), fill_value=0.0)
            .reset_index()
        )
        return _with_achievement(quarterly)

    def calculate_annual_totals(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None
    ) -> Dict[str, float]:
        """Fiscal-year totals: achieved, planned, target, achievement_pct, balance."""
        monthly = self.calculate_monthly_totals(fiscal_year, status_type, kam_id, lob)
        achieved = float(monthly['achieved'].sum())
        target = float(monthly['target'].sum())
        return {
            'achieved': achieved,
            'planned': float(monthly['planned'].sum()),
            'target': target,
            'achievement_pct': _achievement_pct(achieved, target),
            'balance': target - achieved,
        }

    # =========================================================================
    # AGGREGATIONS
    # =========================================================================

    def aggregate_by_kam(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        lob: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Totals per KAM. Existing-type targets count for the mandate's KAM.

        Returns:
            DataFrame with kam_id, kam_name, achieved, planned, target,
            achievement_pct, balance, sorted by achieved descending
        """
        performance = self._performance_for(fiscal_year, status_type, lob=lob)
        targets = self._targets_for(fiscal_year, status_type, lob=lob)

        targets = targets.drop(columns=['kam_id'], errors='ignore').rename(
            columns={'scope_kam_id': 'kam_id'}
        )
        result = _combine_totals(performance, targets, ['kam_id'])
        if result.empty:
            return pd.DataFrame(columns=['kam_id', 'kam_name'] + TOTAL_COLUMNS)

        result['kam_name'] = result['kam_id'].map(self._kam_names())
        result = _with_achievement(result)
        return result[['kam_id', 'kam_name'] + TOTAL_COLUMNS].sort_values(
            'achieved', ascending=False
        ).reset_index(drop=True)

    def aggregate_by_lob(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None
    ) -> pd.DataFrame:
        """Totals per line of business. Cross-sell targets carry no LOB and are left out."""
        performance = self._performance_for(fiscal_year, status_type, kam_id)
        targets = self._targets_for(fiscal_year, status_type, kam_id)

        result = _combine_totals(performance, targets.dropna(subset=['lob']), ['lob'])
        if result.empty:
            return pd.DataFrame(columns=['lob'] + TOTAL_COLUMNS)

        result = _with_achievement(result)
        return result[['lob'] + TOTAL_COLUMNS].sort_values(
            'achieved', ascending=False
        ).reset_index(drop=True)

    def aggregate_by_tier(
        self,
        fiscal_year: str,
        status_type: str = DEFAULT_STATUS_TYPE,
        kam_id: Optional[str] = None,
        lob: Optional[str] = None
    ) -> pd.DataFrame:
        """Totals per tier (both tiers always present) with account counts."""
        performance = self._performance_for(fiscal_year, status_type, kam_id, lob)
        targets = self._targets_for(fiscal_year, status_type, kam_id, lob)

        totals = _combine_totals(performance, targets, ['tier']).set_index('tier')
        accounts = performance.groupby('tier')['account_id'].nunique().to_dict()

        result = totals.reindex(TIERS, fill_value=0.0).rename_axis('tier').reset_index()
        result['accounts'] = [int(accounts.get(tier, 0)) for tier in TIERS]
        result = _with_achievement(result)
        return result[['tier', 'accounts'] + TOTAL_COLUMNS]

    def _kam_names(self) -> Dict:
        if self.kams_df.empty or 'full_name' not in self.kams_df.columns:
            return {}
        return dict(zip(self.kams_df['id'], self.kams_df['full_name']))

    # =========================================================================
    # WEEKLY ACTIVITY
    # =========================================================================

    def calculate_weekly_activity(self, now: datetime, fiscal_year: str) -> Dict[str, int]:
        """
        Meetings done and proposals made this week / last week.

        Weeks run Monday..Sunday and are clipped to the fiscal year; a week
        entirely outside the fiscal year counts 0.

        Returns:
            Dict with meetings_this_week, meetings_last_week,
            proposals_this_week, proposals_last_week
        """
        windows = week_windows(now, fiscal_year)
        result = {}
        for metric, stage in (('meetings', MEETING_DONE_STAGE), ('proposals', PROPOSAL_MADE_STAGE)):
            for name, window in windows.items():
                key = f"{metric}_{name}"
                if window is None:
                    result[key] = 0
                else:
                    result[key] = self.funnel.count_transitions(stage, window[0], window[1])
        return result
