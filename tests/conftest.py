import json
from datetime import datetime

import pandas as pd
import pytest
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.pool import StaticPool


# =============================================================================
# IN-MEMORY SNAPSHOTS
# =============================================================================

DEALS = [
    # A: reached Solution Proposal Made, then dropped
    {"id": "deal-a", "status": "Dropped", "kam_id": "kam-1", "account_id": "acc-1",
     "expected_value": 100.0, "mcv": 10.0,
     "created_at": datetime(2025, 4, 10, 9, 0), "expected_close_date": datetime(2025, 6, 20)},
    # B: created, never moved
    {"id": "deal-b", "status": "Listed", "kam_id": "kam-2", "account_id": "acc-2",
     "expected_value": 200.0, "mcv": 20.0,
     "created_at": datetime(2025, 5, 2, 11, 0), "expected_close_date": datetime(2025, 7, 15)},
    # C: commercial agreed, then won
    {"id": "deal-c", "status": "Closed Won", "kam_id": "kam-1", "account_id": "acc-1",
     "expected_value": 300.0, "mcv": 30.0,
     "created_at": datetime(2025, 4, 20, 15, 30), "expected_close_date": datetime(2025, 6, 5)},
]

EVENTS = [
    {"id": 1, "deal_id": "deal-a", "old_status": None, "new_status": "Solution Proposal Made",
     "changed_at": datetime(2025, 5, 5, 10, 0)},
    {"id": 2, "deal_id": "deal-a", "old_status": "Solution Proposal Made", "new_status": "Dropped",
     "changed_at": datetime(2025, 6, 10, 16, 0)},
    {"id": 3, "deal_id": "deal-c", "old_status": "Commercial Agreed", "new_status": "Closed Won",
     "changed_at": datetime(2025, 7, 1, 12, 0)},
]

MANDATES = [
    # Existing mandate on acc-1: 6,000,000 + 5,000,000 in FY25 -> Tier 1
    {"id": "m-1", "account_id": "acc-1", "kam_id": "kam-1", "type": "Existing", "lob": "Payroll",
     "monthly_data": {"2025-04": [5000, 6000000], "2025-05": 5000000, "2025-06": None, "2026-04": 999}},
    # New Cross Sell mandate on acc-2 with two malformed entries
    {"id": "m-2", "account_id": "acc-2", "kam_id": "kam-2", "type": "New Cross Sell", "lob": "Staffing",
     "monthly_data": {"2025-04": 100, "2025-06": [50, 200], "bad-key": 1, "2025-07": {"x": 1}}},
    {"id": "m-3", "account_id": "acc-3", "kam_id": "kam-1", "type": "New Acquisition", "lob": "Payroll",
     "monthly_data": {"2025-05": 700}},
]

ACCOUNTS = [
    {"id": "acc-1", "name": "Alpha Industries", "company_size_tier": "Enterprise"},
    {"id": "acc-2", "name": "Beta Retail", "company_size_tier": "Mid Market"},
    {"id": "acc-3", "name": "Gamma Logistics", "company_size_tier": "SMB"},
]

TARGETS = [
    {"id": "t-1", "target_type": "new_cross_sell", "month": 4, "year": 2025, "financial_year": "2025-26",
     "target": 1000.0, "kam_id": "kam-2", "account_id": "acc-2", "mandate_id": None},
    {"id": "t-2", "target_type": "existing", "month": 4, "year": 2025, "financial_year": "2025-26",
     "target": 8000000.0, "kam_id": None, "account_id": None, "mandate_id": "m-1"},
    # existing-type target on a New Cross Sell mandate
    {"id": "t-3", "target_type": "existing", "month": 5, "year": 2025, "financial_year": "2025-26",
     "target": 500.0, "kam_id": None, "account_id": None, "mandate_id": "m-2"},
    {"id": "t-4", "target_type": "existing", "month": 5, "year": 2025, "financial_year": "2025-26",
     "target": 900.0, "kam_id": None, "account_id": None, "mandate_id": "m-3"},
    # malformed: both scopes
    {"id": "t-5", "target_type": "new_cross_sell", "month": 6, "year": 2025, "financial_year": "2025-26",
     "target": 42.0, "kam_id": "kam-1", "account_id": "acc-1", "mandate_id": "m-1"},
    # mandate does not exist
    {"id": "t-6", "target_type": "existing", "month": 6, "year": 2025, "financial_year": "2025-26",
     "target": 77.0, "kam_id": None, "account_id": None, "mandate_id": "m-missing"},
    # next fiscal year
    {"id": "t-7", "target_type": "existing", "month": 4, "year": 2026, "financial_year": "2026-27",
     "target": 123.0, "kam_id": None, "account_id": None, "mandate_id": "m-1"},
]

KAMS = [
    {"id": "kam-1", "full_name": "Asha Rao", "role": "kam"},
    {"id": "kam-2", "full_name": "Vikram Shah", "role": "kam"},
    {"id": "admin-1", "full_name": "Ops Admin", "role": "admin"},
]


@pytest.fixture
def deals_df():
    return pd.DataFrame(DEALS)


@pytest.fixture
def events_df():
    return pd.DataFrame(EVENTS)


@pytest.fixture
def mandates_df():
    return pd.DataFrame(MANDATES)


@pytest.fixture
def accounts_df():
    return pd.DataFrame(ACCOUNTS)


@pytest.fixture
def targets_df():
    return pd.DataFrame(TARGETS)


@pytest.fixture
def kams_df():
    return pd.DataFrame([k for k in KAMS if k["role"] == "kam"])[["id", "full_name"]]


# =============================================================================
# SQLITE ENGINE
# =============================================================================

def _define_tables(metadata: MetaData) -> dict:
    return {
        "pipeline_deals": Table(
            "pipeline_deals", metadata,
            Column("id", String, primary_key=True),
            Column("status", String),
            Column("kam_id", String),
            Column("account_id", String),
            Column("expected_revenue", Float),
            Column("mcv", Float, nullable=True),
            Column("created_at", DateTime),
            Column("expected_contract_sign_date", DateTime),
        ),
        "deal_status_history": Table(
            "deal_status_history", metadata,
            Column("id", Integer, primary_key=True),
            Column("deal_id", String),
            Column("old_status", String, nullable=True),
            Column("new_status", String),
            Column("changed_at", DateTime),
        ),
        "mandates": Table(
            "mandates", metadata,
            Column("id", String, primary_key=True),
            Column("account_id", String),
            Column("kam_id", String),
            Column("type", String),
            Column("lob", String),
            Column("monthly_data", Text),
        ),
        "accounts": Table(
            "accounts", metadata,
            Column("id", String, primary_key=True),
            Column("name", String),
            Column("company_size_tier", String),
        ),
        "profiles": Table(
            "profiles", metadata,
            Column("id", String, primary_key=True),
            Column("full_name", String),
            Column("role", String),
        ),
        "monthly_targets": Table(
            "monthly_targets", metadata,
            Column("id", String, primary_key=True),
            Column("target_type", String),
            Column("month", Integer),
            Column("year", Integer),
            Column("financial_year", String),
            Column("target", Float),
            Column("kam_id", String, nullable=True),
            Column("account_id", String, nullable=True),
            Column("mandate_id", String, nullable=True),
        ),
    }


def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def empty_engine():
    """In-memory database without any tables."""
    engine = _memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_engine():
    """In-memory database with the snapshot rows above."""
    engine = _memory_engine()
    metadata = MetaData()
    tables = _define_tables(metadata)
    metadata.create_all(engine)

    deal_rows = [
        {
            "id": d["id"],
            "status": d["status"],
            "kam_id": d["kam_id"],
            "account_id": d["account_id"],
            "expected_revenue": d["expected_value"],
            "mcv": d["mcv"],
            "created_at": d["created_at"],
            "expected_contract_sign_date": d["expected_close_date"],
        }
        for d in DEALS
    ]
    # created in FY24, never selected for FY25
    deal_rows.append({
        "id": "deal-old", "status": "Listed", "kam_id": "kam-1", "account_id": "acc-3",
        "expected_revenue": 50.0, "mcv": None,
        "created_at": datetime(2024, 12, 1), "expected_contract_sign_date": datetime(2025, 1, 10),
    })
    mandate_rows = [dict(m, monthly_data=json.dumps(m["monthly_data"])) for m in MANDATES]

    with engine.begin() as conn:
        conn.execute(tables["pipeline_deals"].insert(), deal_rows)
        conn.execute(tables["deal_status_history"].insert(), EVENTS)
        conn.execute(tables["mandates"].insert(), mandate_rows)
        conn.execute(tables["accounts"].insert(), ACCOUNTS)
        conn.execute(tables["profiles"].insert(), KAMS)
        conn.execute(tables["monthly_targets"].insert(), TARGETS)

    yield engine
    engine.dispose()
