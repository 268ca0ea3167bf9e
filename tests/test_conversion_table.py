import pandas as pd
import pytest

from crm_dashboard.cross_sell_performance.constants import CONVERSION_STAGES
from crm_dashboard.cross_sell_performance.conversion_table import (
    CONVERSION_COLUMNS,
    ConversionTableBuilder,
    format_conversion_rate,
)


@pytest.mark.parametrize("base,following,expected", [
    (0, 0, "-"),
    (0, 3, "N/A"),
    (10, 4, "40.0%"),
    (3, 1, "33.3%"),
    (5, None, "-"),
])
def test_format_conversion_rate(base, following, expected):
    assert format_conversion_rate(base, following) == expected


def test_build_conversion_table(deals_df, events_df):
    table = ConversionTableBuilder(deals_df, events_df).build()

    assert list(table.columns) == CONVERSION_COLUMNS
    assert len(table) == len(CONVERSION_STAGES)
    assert "Dropped" not in " ".join(table["stage_name"])
    assert table["stage_name"].iloc[0] == "0. Listed"

    rows = table.set_index(table["stage_name"].str.replace(r"^\d+\.\s*", "", regex=True))

    assert rows.loc["Listed", "cumulative"] == 1
    assert rows.loc["Listed", "remaining"] == 1
    assert rows.loc["Listed", "conversion_rate"] == "0.0%"
    assert rows.loc["Requirement Gathering Done", "conversion_rate"] == "N/A"
    assert rows.loc["Pre-Appointment Prep Done", "conversion_rate"] == "-"

    assert rows.loc["Solution Proposal Made", "cumulative"] == 1
    assert rows.loc["Solution Proposal Made", "mcv_sum"] == 10.0
    assert rows.loc["Solution Proposal Made", "dropped"] == 1
    assert rows.loc["Solution Proposal Made", "remaining"] == 0

    assert rows.loc["Commercial Agreed", "conversion_rate"] == "100.0%"
    assert rows.loc["Closed Won", "conversion_rate"] == "-"
    assert rows.loc["Closed Won", "remaining"] == 1
    assert table["max_records"].iloc[0] == 1


def test_mcv_falls_back_to_expected_value(deals_df, events_df):
    deals = deals_df.drop(columns=["mcv"])
    table = ConversionTableBuilder(deals, events_df).build()
    assert table.loc[table["stage_name"] == "4. Solution Proposal Made", "mcv_sum"].iloc[0] == 100.0


def test_missing_mcv_values_fall_back_per_deal(deals_df, events_df):
    deals = deals_df.copy()
    deals["mcv"] = [None, 20.0, 30.0]
    table = ConversionTableBuilder(deals, events_df).build()
    assert table.loc[table["stage_name"] == "4. Solution Proposal Made", "mcv_sum"].iloc[0] == 100.0


def test_custom_stage_order_drops_dropped_row(deals_df, events_df):
    table = ConversionTableBuilder(deals_df, events_df).build(
        ["Listed", "Closed Won", "Dropped"]
    )
    assert list(table["stage_name"]) == ["0. Listed", "1. Closed Won"]
    assert table["conversion_rate"].tolist() == ["100.0%", "-"]


def test_empty_snapshot():
    table = ConversionTableBuilder(pd.DataFrame(), pd.DataFrame()).build()
    assert table["cumulative"].sum() == 0
    assert set(table["conversion_rate"]) == {"-"}
    assert table["max_records"].iloc[0] == 1


def test_unlogged_deal_beyond_first_stage_has_no_cumulative():
    deals = pd.DataFrame([{"id": "d1", "status": "Commercial Agreed", "expected_value": 70.0}])
    table = ConversionTableBuilder(deals, pd.DataFrame()).build()
    rows = table.set_index(table["stage_name"].str.replace(r"^\d+\.\s*", "", regex=True))

    assert rows.loc["Commercial Agreed", "cumulative"] == 0
    assert rows.loc["Commercial Agreed", "remaining"] == 1
    assert table["cumulative"].sum() == 0
    assert set(table["conversion_rate"]) == {"-"}
