# crm_dashboard/cross_sell_performance/funnel_calculator.py
"""
Funnel Calculator - stage attribution from the deal status history

VERSION: 1.0.0

Three views of the same pipeline:
- attribute():         "ever occupied" - a deal counts in every stage group
                       its history touched (old_status or new_status); a deal
                       still at Listed counts there without history. Counts
                       never shrink as the log grows.
- current_snapshot():  "currently at" - each deal counted once, by current status
- waterfall():         TOFU = all deals, MOFU = TOFU - currently in TOFU,
                       BOFU = MOFU - currently in MOFU

USAGE:
    calc = FunnelCalculator(deals_df, events_df)
    funnel = calc.attribute()              # DataFrame: group, count, value
    stage_sets = calc.stage_sets()         # {stage: {deal_id, ...}}
"""

import logging
import time
from datetime import datetime
from typing import Dict, List, Optional, Set

import pandas as pd

from crm_dashboard.config import config
from .constants import DEBUG_TIMING, FUNNEL_GROUPS, PIPELINE_STAGES
from .fiscal_calendar import to_local_naive

logger = logging.getLogger(__name__)

DEAL_VALUE_COL = 'expected_value'


class FunnelCalculator:
    """
    Attribute deals to pipeline stages and funnel groups.

    Attributes:
        _deals: Snapshot of deals (id, status, expected_value, ...)
        _events: Status events restricted to deals in the snapshot
    """

    def __init__(
        self,
        deals_df: pd.DataFrame,
        events_df: pd.DataFrame,
        stage_order: Optional[List[str]] = None
    ):
        """
        Initialize with a deal snapshot and its status history.

        Args:
            deals_df: Deals with id, status and expected_value
            events_df: Status events with deal_id, old_status, new_status, changed_at
            stage_order: Ordered stage list (defaults to PIPELINE_STAGES)
        """
        start_time = time.perf_counter()

        self.stage_order = list(stage_order or PIPELINE_STAGES)
        self._deals = self._prepare_deals(deals_df)
        self._events = self._prepare_events(events_df)
        self._stage_sets: Optional[Dict[str, Set]] = None

        elapsed = time.perf_counter() - start_time
        if DEBUG_TIMING:
            print(f"   📊 [FunnelCalculator] Initialized: {len(self._deals):,} deals, "
                  f"{len(self._events):,} events in {elapsed:.3f}s")

        logger.info(
            f"FunnelCalculator initialized: {len(self._deals):,} deals, "
            f"{len(self._events):,} events"
        )

    # =========================================================================
    # PREPROCESSING
    # =========================================================================

    @staticmethod
    def _prepare_deals(deals_df: pd.DataFrame) -> pd.DataFrame:
        if deals_df is None or deals_df.empty:
            return pd.DataFrame(columns=['id', 'status', DEAL_VALUE_COL])

        df = deals_df.copy()
        if DEAL_VALUE_COL not in df.columns:
            df[DEAL_VALUE_COL] = 0.0
        df[DEAL_VALUE_COL] = pd.to_numeric(df[DEAL_VALUE_COL], errors='coerce').fillna(0)
        return df.drop_duplicates(subset='id', keep='last')

    def _prepare_events(self, events_df: pd.DataFrame) -> pd.DataFrame:
        columns = ['deal_id', 'old_status', 'new_status', 'changed_at']
        if events_df is None or events_df.empty:
            return pd.DataFrame(columns=columns)

        df = events_df.copy()
        for col in columns:
            if col not in df.columns:
                df[col] = None

        # Events for deals outside the snapshot cannot be valued or filtered
        known = df['deal_id'].isin(self._deals['id'])
        dangling = int((~known).sum())
        if dangling:
            logger.debug(f"Ignoring {dangling} status events for deals outside the snapshot")
        df = df[known].copy()

        df['changed_at'] = to_local_naive(df['changed_at'], tz=config.get_app_setting('TIMEZONE'))
        return df

    # =========================================================================
    # STAGE SETS (ever occupied)
    # =========================================================================

    def stage_sets(self) -> Dict[str, Set]:
        """
        Unique deal ids per individual stage, "ever occupied" semantics.

        A deal occupies a stage if any of its events names the stage as
        old_status or new_status. A deal currently at the first stage
        occupies it even without events; later stages need an event.
        """
        if self._stage_sets is not None:
            return self._stage_sets

        sets: Dict[str, Set] = {stage: set() for stage in self.stage_order}

        for col in ('old_status', 'new_status'):
            touched = self._events[self._events[col].isin(self.stage_order)]
            for stage, deal_ids in touched.groupby(col)['deal_id']:
                sets[stage].update(deal_ids)

        # Freshly created deals have no history yet
        if self.stage_order:
            first_stage = self.stage_order[0]
            sets[first_stage].update(self._deals.loc[self._deals['status'] == first_stage, 'id'])

        self._stage_sets = sets
        return sets

    def stage_values(self, value_col: str = DEAL_VALUE_COL) -> Dict[str, float]:
        """Summed deal value per stage, each deal at most once per stage."""
        values = self._value_lookup(value_col)
        return {
            stage: float(sum(values.get(deal_id, 0.0) for deal_id in deal_ids))
            for stage, deal_ids in self.stage_sets().items()
        }

    def _value_lookup(self, value_col: str) -> Dict:
        if value_col not in self._deals.columns:
            value_col = DEAL_VALUE_COL
        series = pd.to_numeric(self._deals[value_col], errors='coerce').fillna(0)
        return dict(zip(self._deals['id'], series))

    # =========================================================================
    # GROUP ATTRIBUTION
    # =========================================================================

    def attribute(
        self,
        stage_groups: Optional[Dict[str, List[str]]] = None,
        value_col: str = DEAL_VALUE_COL
    ) -> pd.DataFrame:
        """
        Unique deal count and value per stage group.

        Args:
            stage_groups: group name -> member stages (defaults to FUNNEL_GROUPS)
            value_col: Deal column summed as the group value

        Returns:
            DataFrame with columns group, count, value (one row per group, in order)
        """
        groups = stage_groups or FUNNEL_GROUPS
        sets = self.stage_sets()
        values = self._value_lookup(value_col)

        rows = []
        for group, stages in groups.items():
            members: Set = set()
            for stage in stages:
                members |= sets.get(stage, set())
            rows.append({
                'group': group,
                'count': len(members),
                'value': float(sum(values.get(deal_id, 0.0) for deal_id in members)),
            })

        return pd.DataFrame(rows, columns=['group', 'count', 'value'])

    # =========================================================================
    # CURRENT STATUS VIEWS
    # =========================================================================

    def current_snapshot(
        self,
        stage_groups: Optional[Dict[str, List[str]]] = None,
        value_col: str = DEAL_VALUE_COL
    ) -> pd.DataFrame:
        """Deal count and value per group by CURRENT status (point in time)."""
        groups = stage_groups or FUNNEL_GROUPS
        values = self._value_lookup(value_col)

        rows = []
        for group, stages in groups.items():
            in_group = self._deals[self._deals['status'].isin(stages)]
            rows.append({
                'group': group,
                'count': int(len(in_group)),
                'value': float(sum(values.get(deal_id, 0.0) for deal_id in in_group['id'])),
            })

        return pd.DataFrame(rows, columns=['group', 'count', 'value'])

    def waterfall(self) -> Dict[str, int]:
        """
        Waterfall counts derived from current status only.

        TOFU = total deals, MOFU = TOFU - currently in TOFU,
        BOFU = MOFU - currently in MOFU, Closed Won / Dropped = current counts.
        """
        current = self.current_snapshot().set_index('group')['count']
        total = int(len(self._deals))
        mofu = total - int(current.get('tofu', 0))
        bofu = mofu - int(current.get('mofu', 0))

        return {
            'tofu': total,
            'mofu': mofu,
            'bofu': bofu,
            'closed_won': int(current.get('closed_won', 0)),
            'dropped': int(current.get('dropped', 0)),
        }

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def count_transitions(
        self,
        new_status: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> int:
        """Number of events moving a deal into `new_status` within [start, end]."""
        events = self._events[self._events['new_status'] == new_status]
        if start is not None:
            events = events[events['changed_at'] >= pd.Timestamp(start)]
        if end is not None:
            events = events[events['changed_at'] <= pd.Timestamp(end)]
        return int(len(events))

    def dropped_from(self, dropped_stage: str) -> Dict[str, int]:
        """Events per old_status where new_status is the drop stage."""
        drops = self._events[
            (self._events['new_status'] == dropped_stage) &
            (self._events['old_status'].isin(self.stage_order))
        ]
        return drops.groupby('old_status').size().astype(int).to_dict()

    def current_counts(self) -> Dict[str, int]:
        """Deals per current status."""
        current = self._deals[self._deals['status'].isin(self.stage_order)]
        return current.groupby('status').size().astype(int).to_dict()

    @property
    def total_deals(self) -> int:
        return int(len(self._deals))
