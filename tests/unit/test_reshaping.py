import pandas as pd
import pytest

from conftest import wide_series
from report_story.insights.aggregations import (
    aggregate_metrics,
    global_daily_totals,
    latest_snapshot,
    merge_metrics,
    positive_view,
    sum_by_entity_date,
)
from report_story.insights.reshaping import date_columns, wide_to_long

DATES = ["1/22/20", "1/23/20", "1/24/20"]


def test_date_columns_are_everything_but_geo_columns():
    wide = wide_series([(None, "Italy", [0, 1, 2])], DATES)
    assert date_columns(wide) == DATES


def test_wide_to_long_keeps_raw_date_strings():
    wide = wide_series([(None, "Italy", [0, 1, 2]), ("Ontario", "Canada", [3, 4, 5])], DATES)
    long_df = wide_to_long(wide, "cases")

    assert len(long_df) == 6
    assert list(long_df.columns) == ["Province_State", "Country_Region", "Lat", "Long", "date", "cases"]
    assert set(long_df["date"]) == set(DATES)
    italy = long_df[long_df["Country_Region"] == "Italy"].set_index("date")["cases"]
    assert italy.to_dict() == {"1/22/20": 0, "1/23/20": 1, "1/24/20": 2}


def test_province_sums_match_wide_rows():
    wide = wide_series(
        [
            ("Ontario", "Canada", [1, 5, 9]),
            ("Quebec", "Canada", [2, 6, 10]),
            (None, "Italy", [0, 3, 7]),
        ],
        DATES,
    )
    grouped = sum_by_entity_date(wide_to_long(wide, "cases"), "cases")
    by_key = grouped.set_index(["Country_Region", "date"])["cases"]

    canada_rows = wide[wide["Country/Region"] == "Canada"]
    for date in DATES:
        assert by_key[("Canada", date)] == canada_rows[date].sum()
    assert by_key[("Italy", "1/24/20")] == 7
    assert not grouped.duplicated(["Country_Region", "date"]).any()


def test_key_only_in_cases_table_leaves_other_metrics_unset():
    cases = pd.DataFrame({"Country_Region": ["CountryA"], "date": ["1/22/20"], "cases": [4]})
    deaths = pd.DataFrame({"Country_Region": ["CountryB"], "date": ["1/22/20"], "deaths": [1]})
    recovery = pd.DataFrame({"Country_Region": ["CountryB"], "date": ["1/22/20"], "recovery": [0]})

    merged = merge_metrics({"cases": cases, "deaths": deaths, "recovery": recovery})

    assert len(merged) == 2
    row = merged[merged["Country_Region"] == "CountryA"].iloc[0]
    assert row["cases"] == 4
    assert pd.isna(row["deaths"])
    assert pd.isna(row["recovery"])
    other = merged[merged["Country_Region"] == "CountryB"].iloc[0]
    assert pd.isna(other["cases"])
    assert other["recovery"] == 0
    assert row["date"] == pd.Timestamp("2020-01-22")


def test_merge_requires_a_table():
    with pytest.raises(ValueError):
        merge_metrics({})


def test_merge_of_single_table_keeps_its_rows():
    cases = pd.DataFrame(
        {"Country_Region": ["Italy", "Canada"], "date": ["1/23/20", "1/22/20"], "cases": [3, 1], "extra": [0, 0]}
    )
    merged = merge_metrics({"cases": cases})

    assert list(merged.columns) == ["Country_Region", "date", "cases"]
    assert merged["Country_Region"].tolist() == ["Canada", "Italy"]
    assert str(merged["cases"].dtype) == "Int64"
    assert "extra" in cases.columns


def test_aggregate_metrics_keeps_union_of_keys():
    cases = wide_to_long(wide_series([(None, "Italy", [0, 1, 2])], DATES), "cases")
    deaths = wide_to_long(wide_series([(None, "Italy", [0, 0, 1])], DATES[:2]), "deaths")
    merged = aggregate_metrics({"cases": cases, "deaths": deaths})

    assert len(merged) == 3
    assert merged["date"].is_monotonic_increasing
    last = merged.iloc[-1]
    assert last["cases"] == 2
    assert pd.isna(last["deaths"])
    assert str(merged["cases"].dtype) == "Int64"


def test_positive_views_filter_each_metric_independently():
    merged = pd.DataFrame(
        {
            "Country_Region": ["A", "A", "B"],
            "date": pd.to_datetime(["2020-01-22", "2020-01-23", "2020-01-22"]),
            "cases": pd.array([0, 3, 5], dtype="Int64"),
            "deaths": pd.array([2, 0, None], dtype="Int64"),
            "recovery": pd.array([1, 1, 0], dtype="Int64"),
        }
    )
    cases_view = positive_view(merged, "cases")
    deaths_view = positive_view(merged, "deaths")
    recovery_view = positive_view(merged, "recovery")

    assert len(cases_view) == 2
    assert (cases_view["cases"] > 0).all()
    # The cases==0 row survives in the deaths and recovery views
    assert deaths_view["cases"].tolist() == [0]
    assert recovery_view["cases"].tolist() == [0, 3]


def test_global_daily_totals_sum_across_countries():
    view = pd.DataFrame(
        {
            "Country_Region": ["A", "B", "A"],
            "date": pd.to_datetime(["2020-01-22", "2020-01-22", "2020-01-23"]),
            "cases": pd.array([1, 2, 4], dtype="Int64"),
        }
    )
    totals = global_daily_totals(view, "cases")
    assert totals["cases"].tolist() == [3, 4]


def test_latest_snapshot_ranks_by_first_metric():
    merged = pd.DataFrame(
        {
            "Country_Region": ["A", "B", "A", "B"],
            "date": pd.to_datetime(["2020-01-22", "2020-01-22", "2020-01-23", "2020-01-23"]),
            "cases": pd.array([1, 1, 10, 40], dtype="Int64"),
            "deaths": pd.array([0, 0, 1, 2], dtype="Int64"),
        }
    )
    snapshot = latest_snapshot(merged, ["cases", "deaths"], top_n=5)
    assert snapshot["Country_Region"].tolist() == ["B", "A"]
    assert snapshot["fatality_pct"].tolist() == [5.0, 10.0]
