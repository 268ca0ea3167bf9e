from datetime import date

import pandas as pd
import pytest

from crm_dashboard.cross_sell_performance.reconciliation import CumulativeReconciler

MONTHS = [(2025, 4), (2025, 5), (2025, 6)]


def test_past_months_carry_forward():
    table = CumulativeReconciler(date(2025, 7, 1)).reconcile(MONTHS, [100, 0, 50], [0, 0, 0])
    assert table.loc["Actual"].tolist() == [100, 100, 150]


def test_current_month_with_nonzero_delta_accumulates():
    table = CumulativeReconciler(date(2025, 6, 15)).reconcile(MONTHS, [100, 0, 50], [0, 0, 0])
    assert table.loc["Actual"].tolist() == [100, 100, 150]


def test_unreported_current_month_shows_zero():
    table = CumulativeReconciler(date(2025, 5, 10)).reconcile(MONTHS, [100, 0, 50], [0, 0, 0])
    assert table.loc["Actual"].tolist()[:2] == [100, 0]


def test_future_zero_month_after_reported_month():
    table = CumulativeReconciler(date(2025, 4, 10)).reconcile(MONTHS, [100, 20, 0], [0, 0, 0])
    assert table.loc["Actual"].tolist() == [100, 120, 0]


def test_rows_and_columns():
    table = CumulativeReconciler(date(2025, 7, 1)).reconcile(MONTHS, [100, 0, 50], [200, 0, 100])
    assert list(table.index) == ["Target", "Actual", "Achievement%", "Balance"]
    assert list(table.columns) == ["Apr-25", "May-25", "Jun-25"]
    assert table.loc["Target"].tolist() == [200, 200, 300]
    assert table.loc["Achievement%"].tolist() == [50.0, 50.0, 50.0]
    assert table.loc["Balance"].tolist() == [100, 100, 150]


def test_zero_target_gives_zero_achievement_and_negative_balance():
    table = CumulativeReconciler(date(2025, 7, 1)).reconcile(MONTHS, [100, 0, 0], [0, 0, 0])
    assert table.loc["Achievement%"].tolist() == [0.0, 0.0, 0.0]
    assert table.loc["Balance"].tolist() == [-100, -100, -100]


def test_later_months_do_not_change_earlier_columns():
    reconciler = CumulativeReconciler(date(2025, 7, 1))
    short = reconciler.reconcile(MONTHS[:2], [100, 10], [50, 50])
    full = reconciler.reconcile(MONTHS, [100, 10, 999], [50, 50, 50])
    pd.testing.assert_frame_equal(short, full[short.columns])


def test_mapping_deltas():
    table = CumulativeReconciler(date(2025, 7, 1)).reconcile(
        MONTHS, {(2025, 6): 50, (2025, 4): 100}, {}
    )
    assert table.loc["Actual"].tolist() == [100, 100, 150]


def test_delta_length_mismatch_raises():
    with pytest.raises(ValueError):
        CumulativeReconciler(date(2025, 7, 1)).reconcile(MONTHS, [1, 2], [1, 2, 3])


def test_as_of_is_required():
    with pytest.raises(ValueError):
        CumulativeReconciler(None)


def test_build_tier_table():
    monthly = pd.DataFrame([
        {"tier": "Tier 1", "year": 2025, "month": 4, "achieved": 100.0, "target": 200.0},
        {"tier": "Tier 1", "year": 2025, "month": 4, "achieved": 50.0, "target": 0.0},
        {"tier": "Tier 2", "year": 2026, "month": 3, "achieved": 10.0, "target": 20.0},
    ])
    tables = CumulativeReconciler(date(2026, 4, 1)).build_tier_table("FY25", monthly)

    assert set(tables) == {"Tier 1", "Tier 2"}
    tier1 = tables["Tier 1"]
    assert tier1.shape == (4, 12)
    assert tier1.loc["Actual", "Apr-25"] == 150.0
    assert tier1.loc["Actual", "Mar-26"] == 150.0
    assert tier1.loc["Target", "Mar-26"] == 200.0
    assert tables["Tier 2"].loc["Actual", "Mar-26"] == 10.0
    assert tables["Tier 2"].loc["Actual", "Feb-26"] == 0.0


def test_build_tier_table_without_data():
    tables = CumulativeReconciler(date(2025, 5, 1)).build_tier_table("FY25", pd.DataFrame())
    assert tables["Tier 1"].values.sum() == 0
