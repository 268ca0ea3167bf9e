# crm_dashboard/cross_sell_performance/tier_classifier.py
"""
Tier Classifier - MCV tier per account per fiscal year

Tier 1: total achieved across the account's mandates within the FY is
strictly greater than the threshold (1 crore by default). Everything else,
zero and no-data accounts included, is Tier 2.

Tiers are derived on every call and never stored.
"""

import logging
from typing import Iterable, Optional

import pandas as pd

from crm_dashboard.config import config
from .constants import TIER1_ACHIEVED_THRESHOLD, TIER_1, TIER_2
from .fiscal_calendar import fiscal_months

logger = logging.getLogger(__name__)


def get_tier1_threshold() -> float:
    """Configured Tier 1 threshold (TIER1_ACHIEVED_THRESHOLD)."""
    return float(config.get_app_setting('TIER1_ACHIEVED_THRESHOLD', TIER1_ACHIEVED_THRESHOLD))


class TierClassifier:
    """
    Classify accounts by total achieved value within a fiscal year.

    Usage:
        classifier = TierClassifier(performance_df)
        classifier.classify('acc-1', 'FY25')      # "Tier 1" / "Tier 2"
    """

    def __init__(self, performance_df: pd.DataFrame, threshold: Optional[float] = None):
        """
        Args:
            performance_df: Normalized records (account_id, year, month, achieved)
            threshold: Tier 1 lower bound (exclusive); defaults to configuration
        """
        if performance_df is None or performance_df.empty:
            performance_df = pd.DataFrame(columns=['account_id', 'year', 'month', 'achieved'])
        self._performance = performance_df.copy()
        self.threshold = float(threshold) if threshold is not None else get_tier1_threshold()

    def _fy_records(self, fiscal_year: str) -> pd.DataFrame:
        months = set(fiscal_months(fiscal_year))
        df = self._performance
        if df.empty:
            return df
        in_fy = [
            (int(y), int(m)) in months
            for y, m in zip(df['year'], df['month'])
        ]
        return df[in_fy]

    def tier_for(self, total_achieved: float) -> str:
        return TIER_1 if total_achieved > self.threshold else TIER_2

    def total_achieved(self, account_id, fiscal_year: str) -> float:
        records = self._fy_records(fiscal_year)
        if records.empty:
            return 0.0
        return float(records.loc[records['account_id'] == account_id, 'achieved'].sum())

    def classify(self, account_id, fiscal_year: str) -> str:
        """Tier of one account in one fiscal year."""
        return self.tier_for(self.total_achieved(account_id, fiscal_year))

    def classify_accounts(self, account_ids: Iterable, fiscal_year: str) -> pd.DataFrame:
        """
        Tier of many accounts at once.

        Returns:
            DataFrame with columns account_id, total_achieved, tier
        """
        account_ids = list(dict.fromkeys(account_ids))
        records = self._fy_records(fiscal_year)

        if records.empty:
            totals = {}
        else:
            totals = records.groupby('account_id')['achieved'].sum().to_dict()

        result = pd.DataFrame({
            'account_id': account_ids,
            'total_achieved': [float(totals.get(a, 0.0)) for a in account_ids],
        })
        result['tier'] = result['total_achieved'].apply(self.tier_for)

        tier1 = int((result['tier'] == TIER_1).sum())
        logger.info(
            f"Classified {len(result):,} accounts for {fiscal_year}: "
            f"{tier1} {TIER_1}, {len(result) - tier1} {TIER_2}"
        )
        return result
