from datetime import date, datetime

import pandas as pd
import pytest

from crm_dashboard.cross_sell_performance.fiscal_calendar import (
    contains,
    current_fiscal_year,
    financial_year_string,
    fiscal_months,
    fiscal_year_range,
    month_key,
    month_label,
    month_range,
    next_quarter,
    parse_month_key,
    quarter_months,
    quarter_of,
    to_local_naive,
    week_bounds,
    week_windows,
    year_for_month_in_fy,
)


def test_fiscal_year_range_bounds():
    start, end = fiscal_year_range("FY25")
    assert start == datetime(2025, 4, 1, 0, 0, 0)
    assert end == datetime(2026, 3, 31, 23, 59, 59, 999000)


def test_fiscal_year_range_is_case_insensitive():
    assert fiscal_year_range("fy24")[0] == datetime(2024, 4, 1)


@pytest.mark.parametrize("label", ["", "2025", "FY2025", "FYab", None])
def test_fiscal_year_range_rejects_bad_labels(label):
    with pytest.raises(ValueError):
        fiscal_year_range(label)


def test_current_fiscal_year_switches_in_april():
    assert current_fiscal_year(date(2025, 3, 31)) == "FY24"
    assert current_fiscal_year(date(2025, 4, 1)) == "FY25"
    assert current_fiscal_year(date(2025, 12, 31)) == "FY25"


def test_financial_year_string():
    assert financial_year_string("FY25") == "2025-26"
    assert financial_year_string("FY99") == "2099-00"


def test_fiscal_months_order():
    months = fiscal_months("FY25")
    assert len(months) == 12
    assert months[0] == (2025, 4)
    assert months[8] == (2025, 12)
    assert months[9] == (2026, 1)
    assert months[-1] == (2026, 3)


def test_year_for_month_in_fy():
    assert year_for_month_in_fy(4, "FY25") == 2025
    assert year_for_month_in_fy(12, "FY25") == 2025
    assert year_for_month_in_fy(1, "FY25") == 2026


def test_contains():
    assert contains("FY25", 2026, 3)
    assert not contains("FY25", 2026, 4)
    assert not contains("FY25", 2025, 3)


@pytest.mark.parametrize("month,quarter", [
    (4, "Q1"), (6, "Q1"), (7, "Q2"), (9, "Q2"),
    (10, "Q3"), (12, "Q3"), (1, "Q4"), (3, "Q4"),
])
def test_quarter_of(month, quarter):
    assert quarter_of(month) == quarter


@pytest.mark.parametrize("month", [0, 13, "4", 4.0, True])
def test_quarter_of_rejects_invalid_month(month):
    with pytest.raises(ValueError):
        quarter_of(month)


def test_quarter_months_within_fy():
    assert quarter_months("Q4", "FY25") == [(2026, 1), (2026, 2), (2026, 3)]
    with pytest.raises(ValueError):
        quarter_months("Q5", "FY25")


def test_next_quarter_within_calendar_year():
    assert next_quarter(5, 2025) == [(2025, 7), (2025, 8), (2025, 9)]


def test_next_quarter_crosses_december():
    assert next_quarter(11, 2025) == [(2026, 1), (2026, 2), (2026, 3)]


def test_next_quarter_from_q4_keeps_calendar_year():
    assert next_quarter(2, 2026) == [(2026, 4), (2026, 5), (2026, 6)]


def test_month_key_and_parse():
    assert month_key(2025, 4) == "2025-04"
    assert parse_month_key("2025-04") == (2025, 4)
    assert parse_month_key("2025-4") == (2025, 4)
    assert parse_month_key("2025-13") is None
    assert parse_month_key("April") is None
    assert parse_month_key(None) is None


def test_month_label_and_range():
    assert month_label(2026, 1) == "Jan-26"
    start, end = month_range(2024, 2)
    assert start == datetime(2024, 2, 1)
    assert end == datetime(2024, 2, 29, 23, 59, 59, 999000)
    assert month_range(2025, 12)[1] == datetime(2025, 12, 31, 23, 59, 59, 999000)


def test_week_bounds_monday_to_sunday():
    start, end = week_bounds(datetime(2025, 6, 11, 15, 0))  # Wednesday
    assert start == datetime(2025, 6, 9)
    assert end == datetime(2025, 6, 15, 23, 59, 59, 999000)


def test_week_windows_inside_fiscal_year():
    windows = week_windows(datetime(2025, 6, 11), "FY25")
    assert windows["this_week"][0] == datetime(2025, 6, 9)
    assert windows["last_week"] == (
        datetime(2025, 6, 2), datetime(2025, 6, 8, 23, 59, 59, 999000)
    )


def test_week_windows_clipped_to_fiscal_year():
    # Week of Mon 31 Mar 2025 straddles the FY25 start
    windows = week_windows(datetime(2025, 4, 2), "FY25")
    assert windows["this_week"][0] == datetime(2025, 4, 1)
    assert windows["this_week"][1] == datetime(2025, 4, 6, 23, 59, 59, 999000)
    assert windows["last_week"] is None


def test_to_local_naive_handles_mixed_input():
    series = to_local_naive(["2025-04-01 10:00:00", None, "not a date"])
    assert series.iloc[0] == pd.Timestamp(2025, 4, 1, 10)
    assert pd.isna(series.iloc[1])
    assert pd.isna(series.iloc[2])


def test_to_local_naive_converts_aware_timestamps():
    series = to_local_naive(["2025-03-31T20:00:00+00:00"], tz="Asia/Kolkata")
    # 20:00 UTC is 01:30 the next day in India, inside FY25
    assert series.iloc[0] == pd.Timestamp(2025, 4, 1, 1, 30)
    assert series.dt.tz is None
