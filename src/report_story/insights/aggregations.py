from __future__ import annotations

import logging
from functools import reduce
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import pandas as pd

log = logging.getLogger(__name__)

ENTITY_KEYS: Tuple[str, ...] = ("Country_Region", "date")
DATE_FORMAT = "%m/%d/%y"


def _ordered_labels(observed: Iterable, order: Sequence) -> List:
    labels = list(order)
    labels.extend(sorted((label for label in set(observed) if label not in labels), key=str))
    return labels


def _default_order(values: pd.Series) -> List:
    if isinstance(values.dtype, pd.CategoricalDtype):
        return list(values.cat.categories)
    return sorted(values.dropna().unique().tolist(), key=str)


def count_by(df: pd.DataFrame, column: str, order: Sequence | None = None) -> pd.DataFrame:
    """Row counts per label, laid out in the declared label order."""
    values = df[column]
    order = list(order) if order is not None else _default_order(values)
    unlabeled = int(values.isna().sum())
    if unlabeled:
        log.warning("%s rows have no %s and are left out of the counts", unlabeled, column)

    counts = values.dropna().astype(object).value_counts()
    labels = _ordered_labels(counts.index, order)
    table = (
        counts.reindex(labels, fill_value=0)
        .rename_axis(column)
        .reset_index(name="count")
    )
    total = table["count"].sum()
    table["percent"] = 100 * table["count"] / total if total else float("nan")
    return table


def flag_share_by(
    df: pd.DataFrame,
    column: str,
    flag: str,
    order: Sequence | None = None,
) -> pd.DataFrame:
    """Cross-tabulate a boolean flag per label.

    `percent_true` is 100 * true / (true + false); labels without any
    flagged rows get NaN.
    """
    order = list(order) if order is not None else _default_order(df[column])
    subset = df[[column, flag]].dropna()
    labels_series = subset[column].astype(object)
    is_true = subset[flag].astype(bool)

    labels = _ordered_labels(labels_series.unique(), order)
    true_counts = labels_series[is_true].value_counts().reindex(labels, fill_value=0)
    false_counts = labels_series[~is_true].value_counts().reindex(labels, fill_value=0)
    table = pd.DataFrame(
        {
            column: labels,
            "true_count": true_counts.to_numpy(dtype="int64"),
            "false_count": false_counts.to_numpy(dtype="int64"),
        }
    )
    total = table["true_count"] + table["false_count"]
    table["percent_true"] = 100 * table["true_count"] / total.where(total > 0)
    return table


def sum_by_entity_date(
    long_df: pd.DataFrame,
    value_name: str,
    keys: Sequence[str] = ENTITY_KEYS,
) -> pd.DataFrame:
    """Collapse sub-entity rows (province/state) into one row per key."""
    grouped = (
        long_df.groupby(list(keys), sort=True)[value_name]
        .sum(min_count=1)
        .reset_index()
    )
    log.info(
        "Summed %s over %s keys: %s -> %s rows",
        value_name,
        "/".join(keys),
        f"{len(long_df):,}",
        f"{len(grouped):,}",
    )
    return grouped


def merge_metrics(
    grouped_tables: Mapping[str, pd.DataFrame],
    keys: Sequence[str] = ENTITY_KEYS,
    date_format: str = DATE_FORMAT,
) -> pd.DataFrame:
    """Outer-join per-metric tables on the keys.

    A key missing from one table leaves that metric as <NA> rather than 0.
    """
    if not grouped_tables:
        raise ValueError("At least one metric table is required.")
    keys = list(keys)
    merged = reduce(
        lambda left, right: left.merge(right, on=keys, how="outer"),
        [table[keys + [name]] for name, table in grouped_tables.items()],
    )
    for name in grouped_tables:
        merged[name] = merged[name].astype("Int64")
    if "date" in merged.columns:
        merged["date"] = pd.to_datetime(merged["date"], format=date_format)
    merged = merged.sort_values(keys).reset_index(drop=True)
    log.info("Merged %s metric tables into %s rows", len(grouped_tables), f"{len(merged):,}")
    return merged


def aggregate_metrics(
    long_tables: Mapping[str, pd.DataFrame],
    keys: Sequence[str] = ENTITY_KEYS,
) -> pd.DataFrame:
    grouped: Dict[str, pd.DataFrame] = {
        name: sum_by_entity_date(table, name, keys) for name, table in long_tables.items()
    }
    return merge_metrics(grouped, keys)


def positive_view(merged: pd.DataFrame, metric: str) -> pd.DataFrame:
    """Rows where `metric` is above zero; unset values count as not positive."""
    mask = merged[metric].gt(0).fillna(False).astype(bool)
    return merged.loc[mask].reset_index(drop=True)


def global_daily_totals(view: pd.DataFrame, metric: str) -> pd.DataFrame:
    return (
        view.groupby("date")[metric]
        .sum()
        .reset_index()
        .sort_values("date")
        .reset_index(drop=True)
    )


def latest_snapshot(merged: pd.DataFrame, metrics: Sequence[str], top_n: int = 10) -> pd.DataFrame:
    latest = merged["date"].max()
    snapshot = merged.loc[merged["date"] == latest, ["Country_Region", *metrics]].copy()
    if "cases" in snapshot.columns and "deaths" in snapshot.columns:
        cases = snapshot["cases"].astype("Float64")
        snapshot["fatality_pct"] = (100 * snapshot["deaths"].astype("Float64") / cases.where(cases > 0)).round(2)
    sort_key = metrics[0]
    return (
        snapshot.sort_values(sort_key, ascending=False, na_position="last")
        .head(top_n)
        .reset_index(drop=True)
    )
