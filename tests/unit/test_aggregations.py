import math

import pandas as pd
import pytest

from report_story.insights.aggregations import count_by, flag_share_by
from report_story.insights.domains import BOROUGHS, HOURS, weekday_order
from shooting_pipeline import (
    aggregate_borough_murders,
    aggregate_boroughs,
    aggregate_hours,
    aggregate_weekdays,
    clean_dataframe,
)


def _borough_rows(groups):
    rows = []
    for borough, flag, repeat in groups:
        rows.extend([{"BORO": borough, "STATISTICAL_MURDER_FLAG": flag}] * repeat)
    return pd.DataFrame(rows)


def test_borough_murder_percentages():
    df = _borough_rows(
        [
            ("BROOKLYN", True, 2),
            ("BROOKLYN", False, 8),
            ("STATEN ISLAND", True, 3),
            ("STATEN ISLAND", False, 11),
        ]
    )
    table = flag_share_by(df, "BORO", "STATISTICAL_MURDER_FLAG", BOROUGHS).set_index("BORO")

    assert table.loc["BROOKLYN", "percent_true"] == 20.0
    assert table.loc["STATEN ISLAND", "percent_true"] == pytest.approx(21.43, abs=0.005)
    assert table.loc["STATEN ISLAND", "percent_true"] == 100 * 3 / 14
    assert table.loc["BROOKLYN", "true_count"] == 2
    assert table.loc["BROOKLYN", "false_count"] == 8
    # Boroughs without incidents stay in the table with no percentage
    assert table.loc["BRONX", "true_count"] == 0
    assert math.isnan(table.loc["BRONX", "percent_true"])


def test_flag_share_follows_domain_order():
    df = _borough_rows([("QUEENS", True, 1), ("BRONX", False, 1)])
    table = flag_share_by(df, "BORO", "STATISTICAL_MURDER_FLAG", BOROUGHS)
    assert table["BORO"].tolist() == list(BOROUGHS)


def test_borough_counts_partition_records(raw_incidents):
    cleaned = clean_dataframe(raw_incidents)
    table = aggregate_boroughs(cleaned)
    assert table["BORO"].tolist() == list(BOROUGHS)
    assert table["count"].sum() == len(cleaned)
    assert table["percent"].sum() == pytest.approx(100.0)


def test_borough_murder_table_is_bounded(raw_incidents):
    cleaned = clean_dataframe(raw_incidents)
    table = aggregate_borough_murders(cleaned)
    assert table["percent_murder"].between(0, 100).all()
    expected = 100 * table["murders"] / (table["murders"] + table["non_murders"])
    pd.testing.assert_series_equal(table["percent_murder"], expected, check_names=False)
    assert (table["murders"] + table["non_murders"]).sum() == len(cleaned)


def test_weekdays_keep_calendar_order(raw_incidents):
    cleaned = clean_dataframe(raw_incidents)
    table = aggregate_weekdays(cleaned)
    assert table["weekday_name"].tolist() == weekday_order("Sunday")
    assert table["weekday_name"].tolist() != sorted(table["weekday_name"].tolist())


def test_hours_cover_full_day(raw_incidents):
    cleaned = clean_dataframe(raw_incidents)
    table = aggregate_hours(cleaned)
    assert table["hour"].tolist() == list(HOURS)
    assert table["count"].sum() == len(cleaned)


def test_count_by_fills_absent_and_appends_unknown_labels():
    df = pd.DataFrame({"BORO": ["QUEENS", "QUEENS", "NEWARK"]})
    table = count_by(df, "BORO", BOROUGHS)
    assert table["BORO"].tolist() == [*BOROUGHS, "NEWARK"]
    counts = table.set_index("BORO")["count"]
    assert counts["QUEENS"] == 2
    assert counts["NEWARK"] == 1
    assert counts["BRONX"] == 0


def test_count_by_uses_category_order_by_default():
    values = pd.Categorical(["b", "a", "b"], categories=["b", "a", "c"])
    table = count_by(pd.DataFrame({"label": values}), "label")
    assert table["label"].tolist() == ["b", "a", "c"]
    assert table["count"].tolist() == [2, 1, 0]
