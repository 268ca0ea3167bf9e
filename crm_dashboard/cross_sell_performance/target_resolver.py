# crm_dashboard/cross_sell_performance/target_resolver.py
"""
Target Resolver - which monthly targets count for a query

Two target shapes:
- new_cross_sell: scoped by (kam_id, account_id) directly
- existing:       scoped by mandate_id; KAM, account and LOB follow the mandate

Status-type filters decide which targets apply:
    Existing                   -> existing targets on Existing mandates
    All Cross Sell             -> new_cross_sell targets
                                  + existing targets on New Cross Sell mandates
    All Cross Sell + Existing  -> union of the two above
    New Acquisitions           -> existing targets on New Acquisition mandates

Rows carrying both scopes, neither scope, or a scope that disagrees with
target_type are malformed: excluded, logged and counted on `skipped`.
Existing targets whose mandate cannot be found are dropped silently.
"""

import logging
from typing import Iterable, Optional, Set, Tuple, Union

import pandas as pd

from .constants import (
    DEFAULT_STATUS_TYPE,
    STATUS_TYPE_TARGET_RULES,
    TARGET_EXISTING,
    TARGET_NEW_CROSS_SELL,
)
from .fiscal_calendar import financial_year_string, fiscal_months
from .models import CrossSellScope, ExistingScope, TargetScope, TargetScopeFilter

logger = logging.getLogger(__name__)

RESOLVED_COLUMNS = [
    'id', 'target_type', 'year', 'month', 'financial_year', 'target',
    'scope', 'scope_kam_id', 'scope_account_id', 'mandate_id', 'mandate_type', 'lob',
]

MonthRange = Union[str, Iterable[Tuple[int, int]]]


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ''
    try:
        return not pd.isna(value)
    except (TypeError, ValueError):
        return True


def parse_scope(row: dict) -> Optional[TargetScope]:
    """
    Tagged scope of one target row, or None when the row is malformed.

    Args:
        row: Target record with target_type, kam_id, account_id, mandate_id
    """
    has_cross_sell = _present(row.get('kam_id')) or _present(row.get('account_id'))
    has_mandate = _present(row.get('mandate_id'))

    if has_cross_sell == has_mandate:
        return None

    target_type = row.get('target_type')
    if target_type == TARGET_NEW_CROSS_SELL and has_cross_sell and _present(row.get('kam_id')):
        account_id = row.get('account_id')
        return CrossSellScope(
            kam_id=row['kam_id'],
            account_id=account_id if _present(account_id) else None,
        )
    if target_type == TARGET_EXISTING and has_mandate:
        return ExistingScope(mandate_id=row['mandate_id'])
    return None


def validate_status_type(status_type: str) -> str:
    if status_type not in STATUS_TYPE_TARGET_RULES:
        raise ValueError(
            f"Unknown status type filter: {status_type!r} "
            f"(expected one of {list(STATUS_TYPE_TARGET_RULES)})"
        )
    return status_type


class TargetResolver:
    """
    Resolve and sum targets for a scope, month range, status type and KAM.

    Usage:
        resolver = TargetResolver(targets_df, mandates_df)
        total = resolver.sum_targets(month_range='FY25', status_type_filter='Existing')
        resolver.skipped    # malformed target rows seen
    """

    def __init__(self, targets_df: pd.DataFrame, mandates_df: pd.DataFrame = None):
        """
        Args:
            targets_df: Target records (monthly_targets)
            mandates_df: Mandates (id, kam_id, account_id, type, lob)
        """
        self.skipped = 0
        self._mandates = self._index_mandates(mandates_df)
        self._targets = self._parse_targets(targets_df)

        logger.info(
            f"TargetResolver initialized: {len(self._targets):,} usable targets "
            f"(skipped={self.skipped})"
        )

    # =========================================================================
    # PREPROCESSING
    # =========================================================================

    @staticmethod
    def _index_mandates(mandates_df: pd.DataFrame) -> dict:
        if mandates_df is None or mandates_df.empty:
            return {}
        columns = ['id', 'kam_id', 'account_id', 'type', 'lob']
        df = mandates_df.copy()
        for col in columns:
            if col not in df.columns:
                df[col] = None
        return {m['id']: m for m in df[columns].to_dict('records')}

    def _parse_targets(self, targets_df: pd.DataFrame) -> pd.DataFrame:
        if targets_df is None or targets_df.empty:
            return pd.DataFrame(columns=RESOLVED_COLUMNS)

        rows = []
        for record in targets_df.to_dict('records'):
            scope = parse_scope(record)
            if scope is None:
                self._skip(record, "scope does not match target_type")
                continue

            amount = pd.to_numeric(pd.Series([record.get('target')]), errors='coerce').iloc[0]
            if pd.isna(amount) and _present(record.get('target')):
                self._skip(record, "non-numeric target")
                continue

            period = pd.to_numeric(pd.Series([record.get('year'), record.get('month')]), errors='coerce')
            if period.isna().any() or not 1 <= period.iloc[1] <= 12:
                self._skip(record, "missing or invalid year/month")
                continue

            if isinstance(scope, ExistingScope):
                mandate = self._mandates.get(scope.mandate_id)
                if mandate is None:
                    logger.debug(f"Target {record.get('id')}: mandate {scope.mandate_id} not found")
                    continue
                kam_id = mandate['kam_id']
                account_id = mandate['account_id']
                mandate_type = mandate['type']
                lob = mandate['lob']
            else:
                kam_id = scope.kam_id
                account_id = scope.account_id
                mandate_type = None
                lob = None

            rows.append({
                'id': record.get('id'),
                'target_type': record.get('target_type'),
                'year': int(period.iloc[0]),
                'month': int(period.iloc[1]),
                'financial_year': record.get('financial_year'),
                'target': 0.0 if pd.isna(amount) else float(amount),
                'scope': scope,
                'scope_kam_id': kam_id,
                'scope_account_id': account_id,
                'mandate_id': getattr(scope, 'mandate_id', None),
                'mandate_type': mandate_type,
                'lob': lob,
            })

        return pd.DataFrame(rows, columns=RESOLVED_COLUMNS)

    def _skip(self, record: dict, reason: str) -> None:
        self.skipped += 1
        logger.warning(f"Skipping malformed target {record.get('id')}: {reason}")

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def resolve(
        self,
        scope_filter: Optional[TargetScopeFilter] = None,
        month_range: Optional[MonthRange] = None,
        status_type_filter: str = DEFAULT_STATUS_TYPE,
        kam_filter: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Targets matching every given filter.

        Args:
            scope_filter: Optional account / mandate / LOB restriction
            month_range: "FYnn" label or iterable of (year, month); None = all
            status_type_filter: One of STATUS_TYPE_FILTERS
            kam_filter: Optional KAM id

        Returns:
            DataFrame with RESOLVED_COLUMNS
        """
        include_cross_sell, mandate_types = STATUS_TYPE_TARGET_RULES[
            validate_status_type(status_type_filter)
        ]
        df = self._targets
        if df.empty:
            return df.copy()

        is_cross_sell = df['target_type'] == TARGET_NEW_CROSS_SELL
        is_existing = (df['target_type'] == TARGET_EXISTING) & df['mandate_type'].isin(mandate_types)
        mask = is_existing | (is_cross_sell & include_cross_sell)

        if kam_filter is not None:
            mask &= df['scope_kam_id'] == kam_filter

        if scope_filter is not None:
            if scope_filter.account_ids is not None:
                mask &= df['scope_account_id'].isin(scope_filter.account_ids)
            if scope_filter.mandate_ids is not None:
                mask &= df['mandate_id'].isin(scope_filter.mandate_ids)
            if scope_filter.lob is not None:
                mask &= df['lob'] == scope_filter.lob

        if month_range is not None:
            months, fy_string = self._expand_month_range(month_range)
            in_range = [(y, m) in months for y, m in zip(df['year'], df['month'])]
            mask &= pd.Series(in_range, index=df.index)
            if fy_string is not None:
                mask &= df['financial_year'].isna() | (df['financial_year'] == fy_string)

        return df[mask].copy()

    def sum_targets(
        self,
        scope_filter: Optional[TargetScopeFilter] = None,
        month_range: Optional[MonthRange] = None,
        status_type_filter: str = DEFAULT_STATUS_TYPE,
        kam_filter: Optional[str] = None
    ) -> float:
        """Total target over everything `resolve` matches."""
        resolved = self.resolve(scope_filter, month_range, status_type_filter, kam_filter)
        return float(resolved['target'].sum()) if not resolved.empty else 0.0

    @staticmethod
    def _expand_month_range(month_range: MonthRange) -> Tuple[Set[Tuple[int, int]], Optional[str]]:
        if isinstance(month_range, str):
            return set(fiscal_months(month_range)), financial_year_string(month_range)
        return {(int(y), int(m)) for y, m in month_range}, None
