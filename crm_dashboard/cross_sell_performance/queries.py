# crm_dashboard/cross_sell_performance/queries.py
"""
SQL Queries and Data Loading for Cross-Sell Performance

Handles all database reads:
- Deals from pipeline_deals (FY window or expected close month, KAM filter)
- Status history from deal_status_history
- Mandates with monthly_data (JSON decoded here)
- Accounts, KAM profiles
- Monthly targets

Read-only. Every query is logged; failures are logged at ERROR and
re-raised so a dashboard query aborts instead of rendering partial data.
"""

import json
import logging
from datetime import datetime
from typing import Iterable, Optional

import pandas as pd
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from crm_dashboard.db import execute_query_df, get_db_engine

logger = logging.getLogger(__name__)

DEAL_COLUMNS = [
    'id', 'status', 'kam_id', 'account_id', 'expected_value', 'mcv',
    'created_at', 'expected_close_date',
]
EVENT_COLUMNS = ['id', 'deal_id', 'old_status', 'new_status', 'changed_at']


class CrossSellQueries:
    """
    Data loading class for cross-sell performance.

    Usage:
        queries = CrossSellQueries()              # singleton engine
        queries = CrossSellQueries(engine)        # injected engine (tests)

        deals_df = queries.list_deals(fy_start, fy_end, kam_id='kam-1')
        events_df = queries.list_status_events(deals_df['id'], fy_start, fy_end)
    """

    def __init__(self, engine=None):
        """
        Args:
            engine: Optional SQLAlchemy engine; defaults to the shared singleton
        """
        self._engine = engine

    @property
    def engine(self):
        """Lazy load database engine."""
        if self._engine is None:
            self._engine = get_db_engine()
        return self._engine

    # =========================================================================
    # DEALS & STATUS HISTORY
    # =========================================================================

    def list_deals(
        self,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        kam_id: Optional[str] = None,
        expected_close_month: Optional[tuple] = None
    ) -> pd.DataFrame:
        """
        Load deals.

        Args:
            created_after: Inclusive lower bound on created_at
            created_before: Inclusive upper bound on created_at
            kam_id: Optional KAM filter
            expected_close_month: Optional (start, end) range on expected_close_date;
                                  replaces the created_at window when given

        Returns:
            DataFrame with DEAL_COLUMNS
        """
        query = """
            SELECT
                id,
                status,
                kam_id,
                account_id,
                expected_revenue AS expected_value,
                COALESCE(mcv, expected_revenue) AS mcv,
                created_at,
                expected_contract_sign_date AS expected_close_date
            FROM pipeline_deals
            WHERE 1 = 1
        """
        params = {}
        binds = []

        if expected_close_month is not None:
            query += " AND expected_contract_sign_date BETWEEN :close_start AND :close_end"
            params['close_start'], params['close_end'] = expected_close_month
            binds += [bindparam('close_start', type_=DateTime), bindparam('close_end', type_=DateTime)]
        else:
            if created_after is not None:
                query += " AND created_at >= :created_after"
                params['created_after'] = created_after
                binds.append(bindparam('created_after', type_=DateTime))
            if created_before is not None:
                query += " AND created_at <= :created_before"
                params['created_before'] = created_before
                binds.append(bindparam('created_before', type_=DateTime))

        if kam_id is not None:
            query += " AND kam_id = :kam_id"
            params['kam_id'] = kam_id

        query += " ORDER BY created_at"

        return self._execute_query(text(query).bindparams(*binds), params, "deals")

    def list_status_events(
        self,
        deal_ids: Iterable,
        changed_after: Optional[datetime] = None,
        changed_before: Optional[datetime] = None
    ) -> pd.DataFrame:
        """
        Load status history for a set of deals.

        Args:
            deal_ids: Deal ids to load events for
            changed_after: Inclusive lower bound on changed_at
            changed_before: Inclusive upper bound on changed_at

        Returns:
            DataFrame with EVENT_COLUMNS, oldest first
        """
        deal_ids = [_to_python(d) for d in deal_ids if d is not None and not pd.isna(d)]
        if not deal_ids:
            return pd.DataFrame(columns=EVENT_COLUMNS)

        query = """
            SELECT
                id,
                deal_id,
                old_status,
                new_status,
                changed_at
            FROM deal_status_history
            WHERE deal_id IN :deal_ids
        """
        params = {'deal_ids': deal_ids}
        binds = [bindparam('deal_ids', expanding=True)]

        if changed_after is not None:
            query += " AND changed_at >= :changed_after"
            params['changed_after'] = changed_after
            binds.append(bindparam('changed_after', type_=DateTime))
        if changed_before is not None:
            query += " AND changed_at <= :changed_before"
            params['changed_before'] = changed_before
            binds.append(bindparam('changed_before', type_=DateTime))

        query += " ORDER BY changed_at"

        statement = text(query).bindparams(*binds)
        return self._execute_query(statement, params, "status_events")

    # =========================================================================
    # MANDATES, ACCOUNTS, KAMS
    # =========================================================================

    def list_mandates(
        self,
        mandate_type: Optional[str] = None,
        kam_id: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Load mandates with decoded monthly_data.

        Returns:
            DataFrame with id, account_id, kam_id, type, lob, monthly_data (dict)
        """
        query = """
            SELECT
                id,
                account_id,
                kam_id,
                type,
                lob,
                monthly_data
            FROM mandates
            WHERE 1 = 1
        """
        params = {}

        if mandate_type is not None:
            query += " AND type = :mandate_type"
            params['mandate_type'] = mandate_type
        if kam_id is not None:
            query += " AND kam_id = :kam_id"
            params['kam_id'] = kam_id

        df = self._execute_query(text(query), params, "mandates")
        if not df.empty:
            df['monthly_data'] = df['monthly_data'].apply(_decode_json)
        return df

    def list_accounts(self) -> pd.DataFrame:
        """Load accounts (id, name, company_size_tier)."""
        query = """
            SELECT
                id,
                name,
                company_size_tier
            FROM accounts
            ORDER BY name
        """
        return self._execute_query(text(query), {}, "accounts")

    def list_kams(self) -> pd.DataFrame:
        """Load KAM profiles with a name, sorted by name."""
        query = """
            SELECT
                id,
                full_name
            FROM profiles
            WHERE role = 'kam'
              AND full_name IS NOT NULL
            ORDER BY full_name
        """
        return self._execute_query(text(query), {}, "kams")

    # =========================================================================
    # TARGETS
    # =========================================================================

    def list_targets(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        financial_year: Optional[str] = None,
        target_type: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Load monthly targets.

        Args:
            month: Optional calendar month
            year: Optional calendar year
            financial_year: Optional stored FY string, e.g. "2025-26"
            target_type: Optional 'new_cross_sell' or 'existing'
        """
        query = """
            SELECT
                id,
                target_type,
                month,
                year,
                financial_year,
                target,
                kam_id,
                account_id,
                mandate_id
            FROM monthly_targets
            WHERE 1 = 1
        """
        params = {}

        if month is not None:
            query += " AND month = :month"
            params['month'] = month
        if year is not None:
            query += " AND year = :year"
            params['year'] = year
        if financial_year is not None:
            query += " AND financial_year = :financial_year"
            params['financial_year'] = financial_year
        if target_type is not None:
            query += " AND target_type = :target_type"
            params['target_type'] = target_type

        return self._execute_query(text(query), params, "targets")

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _execute_query(
        self,
        statement,
        params: dict,
        query_name: str = "query"
    ) -> pd.DataFrame:
        """
        Execute SQL statement and return DataFrame.

        Args:
            statement: SQLAlchemy TextClause
            params: Query parameters
            query_name: Name for logging

        Returns:
            DataFrame with results

        Raises:
            SQLAlchemyError: Propagated after logging
        """
        try:
            logger.debug(f"Executing {query_name}")
            df = execute_query_df(statement, params, engine=self.engine)
            logger.debug(f"{query_name} returned {len(df)} rows")
            return df
        except SQLAlchemyError as e:
            logger.error(f"Error executing {query_name}: {e}")
            raise


def _decode_json(value):
    """monthly_data may arrive as JSON text (SQLite / plain TEXT columns)."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode('utf-8')
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("Could not decode monthly_data JSON; leaving raw value")
            return value
    return value


def _to_python(value):
    """numpy scalars -> python scalars (DB-API drivers reject numpy types)."""
    return value.item() if hasattr(value, 'item') else value
