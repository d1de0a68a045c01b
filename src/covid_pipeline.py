from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping

import pandas as pd

from report_story.insights.aggregations import (
    aggregate_metrics,
    global_daily_totals,
    latest_snapshot,
    positive_view,
)
from report_story.insights.loaders import load_many, require_columns
from report_story.insights.presentation import (
    PALETTE,
    configure_matplotlib,
    describe_session,
    format_table,
    markdown_table,
    plot_line,
    session_info,
)
from report_story.insights.reshaping import GEO_COLUMNS, wide_to_long

log = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
SERIES_BASE_URL = (
    "https://raw.githubusercontent.com/CSSEGISandData/COVID-19/master/"
    "csse_covid_19_data/csse_covid_19_time_series/"
)
SOURCE_URLS: Dict[str, str] = {
    "cases": SERIES_BASE_URL + "time_series_covid19_confirmed_global.csv",
    "deaths": SERIES_BASE_URL + "time_series_covid19_deaths_global.csv",
    "recovery": SERIES_BASE_URL + "time_series_covid19_recovered_global.csv",
}
METRICS = tuple(SOURCE_URLS)
FIGURES_DIR = BASE_DIR / "reports" / "figures" / "covid"
SUMMARY_PATH = BASE_DIR / "reports" / "covid_summary.md"
TOP_N = 10

METRIC_COLORS = {
    "cases": PALETTE["navy"],
    "deaths": PALETTE["crimson"],
    "recovery": PALETTE["teal"],
}


def load_raw_tables(
    sources: Mapping[str, str | Path] = SOURCE_URLS,
    limit: int | None = None,
) -> Dict[str, pd.DataFrame]:
    tables = load_many(sources, nrows=limit)
    for name, table in tables.items():
        require_columns(table, GEO_COLUMNS, f"{name} table")
    return tables


def reshape_tables(tables: Mapping[str, pd.DataFrame]) -> Dict[str, pd.DataFrame]:
    return {name: wide_to_long(table, name) for name, table in tables.items()}


def build_epidemiology_table(tables: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
    return aggregate_metrics(reshape_tables(tables))


def build_positive_views(merged: pd.DataFrame, metrics=METRICS) -> Dict[str, pd.DataFrame]:
    return {metric: positive_view(merged, metric) for metric in metrics}


def top_countries(merged: pd.DataFrame, metric: str = "cases", top_n: int = 5) -> List[str]:
    latest = merged.loc[merged["date"] == merged["date"].max()]
    ranked = latest.sort_values(metric, ascending=False, na_position="last")
    return ranked["Country_Region"].head(top_n).tolist()


def recovery_reporting_end(merged: pd.DataFrame) -> pd.Timestamp | None:
    """Last date on which the global recovery total still increased."""
    totals = global_daily_totals(positive_view(merged, "recovery"), "recovery")
    if totals.empty:
        return None
    rising = totals.loc[totals["recovery"].diff().fillna(totals["recovery"]) > 0, "date"]
    return rising.max() if not rising.empty else None


def plot_global_metric(view: pd.DataFrame, metric: str, figures_dir: Path = FIGURES_DIR) -> Path:
    totals = global_daily_totals(view, metric)
    return plot_line(
        totals,
        "date",
        metric,
        f"Global Cumulative {metric.title()}",
        figures_dir / f"global_{metric}.png",
        ylabel=metric.title(),
        color=METRIC_COLORS.get(metric, PALETTE["slate"]),
    )


def plot_country_metric(
    view: pd.DataFrame,
    metric: str,
    countries: List[str],
    figures_dir: Path = FIGURES_DIR,
) -> Path:
    subset = view[view["Country_Region"].isin(countries)]
    return plot_line(
        subset,
        "date",
        metric,
        f"Cumulative {metric.title()} by Leading Country",
        figures_dir / f"countries_{metric}.png",
        hue="Country_Region",
        ylabel=metric.title(),
    )


def run_eda_outputs(
    views: Mapping[str, pd.DataFrame],
    countries: List[str],
    figures_dir: Path = FIGURES_DIR,
) -> Dict[str, str]:
    figures_dir.mkdir(parents=True, exist_ok=True)
    configure_matplotlib()
    outputs: Dict[str, str] = {}
    for metric, view in views.items():
        outputs[f"global_{metric}"] = str(plot_global_metric(view, metric, figures_dir))
        outputs[f"countries_{metric}"] = str(plot_country_metric(view, metric, countries, figures_dir))
    return outputs


def compute_insights(merged: pd.DataFrame, views: Mapping[str, pd.DataFrame]) -> Dict[str, Any]:
    onsets = {
        metric: (view["date"].min() if not view.empty else None)
        for metric, view in views.items()
    }
    latest = merged["date"].max()
    latest_rows = merged.loc[merged["date"] == latest]
    totals = {metric: int(latest_rows[metric].sum()) for metric in views}
    return {
        "countries": int(merged["Country_Region"].nunique()),
        "date_min": merged["date"].min(),
        "date_max": latest,
        "onsets": onsets,
        "latest_totals": totals,
        "missing": {metric: int(merged[metric].isna().sum()) for metric in views},
        "recovery_reporting_end": recovery_reporting_end(merged) if "recovery" in views else None,
    }


def build_summary_markdown(
    insights: Dict[str, Any],
    snapshot: pd.DataFrame,
    figures: Dict[str, str],
    session: Dict[str, str],
) -> str:
    first = pd.to_datetime(insights["date_min"])
    last = pd.to_datetime(insights["date_max"])
    totals = insights["latest_totals"]
    onset_lines = [
        f"- First non-zero {metric}: {pd.to_datetime(onset):%d %b %Y}"
        for metric, onset in insights["onsets"].items()
        if onset is not None
    ]
    missing_lines = [
        f"- `{metric}` has no source value for {count:,} country/date keys (left blank, not zero)"
        for metric, count in insights["missing"].items()
        if count
    ] or ["- Every country/date key has a value for every metric."]
    recovery_end = insights["recovery_reporting_end"]
    md_lines = [
        "# Global COVID-19 Time Series — Exploratory Report",
        "",
        f"_Generated {datetime.now():%d %b %Y %H:%M}_",
        "",
        "## Dataset Snapshot",
        f"- **Countries/regions:** {insights['countries']:,}",
        f"- **Temporal coverage:** {first:%d %b %Y} to {last:%d %b %Y}",
        *[f"- **Latest global {metric}:** {value:,}" for metric, value in totals.items()],
        "",
        "The JHU CSSE tables publish one column per day. Each table was reshaped",
        "to one row per location and day, summed over provinces and states, and",
        "the three metrics were joined on country and date.",
        "",
        "## Onset",
        *onset_lines,
        "",
        "Each chart starts at its own metric's first non-zero day so the",
        "leading run of zeros does not flatten the curve.",
        "",
        "## Leading Countries (latest day)",
        markdown_table(snapshot),
        "",
        "## Data Caveats",
        *missing_lines,
    ]
    if recovery_end is not None:
        md_lines.append(
            f"- Recovery reporting stalls after {pd.to_datetime(recovery_end):%d %b %Y}; later values are shown as published, not interpolated."
        )
    md_lines.extend(
        [
            "- Cumulative counts are reported figures and depend on each country's testing and reporting practice.",
            "",
            "## Figures",
            *[f"- {name}: `{path}`" for name, path in figures.items()],
            "",
            "## Session Info",
            *describe_session(session),
        ]
    )
    return "\n".join(md_lines)


def run_pipeline(
    sources: Mapping[str, str | Path] = SOURCE_URLS,
    figures_dir: Path = FIGURES_DIR,
    summary_path: Path = SUMMARY_PATH,
    top_n: int = TOP_N,
    limit: int | None = None,
) -> Dict[str, Any]:
    raw_tables = load_raw_tables(sources, limit)
    merged = build_epidemiology_table(raw_tables)
    views = build_positive_views(merged, tuple(raw_tables))

    snapshot = latest_snapshot(merged, list(raw_tables), top_n=top_n)
    countries = top_countries(merged, "cases", top_n=5)
    figures = run_eda_outputs(views, countries, figures_dir)
    insights = compute_insights(merged, views)

    print("\n== latest snapshot ==")
    print(format_table(snapshot))

    summary = build_summary_markdown(insights, snapshot, figures, session_info())
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    summary_path.write_text(summary, encoding="utf-8")
    log.info("Summary written to %s", summary_path)
    return {
        "merged": merged,
        "views": views,
        "snapshot": snapshot,
        "figures": figures,
        "insights": insights,
        "summary_path": summary_path,
    }


def main(argv: List[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the global COVID-19 time series report.")
    for metric, url in SOURCE_URLS.items():
        parser.add_argument(
            f"--{metric}",
            type=str,
            default=url,
            help=f"CSV URL or local path of the {metric} time series.",
        )
    parser.add_argument(
        "--figures-dir",
        type=Path,
        default=FIGURES_DIR,
        help="Directory for rendered charts.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional row limit per table for debugging.",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    sources = {metric: getattr(args, metric) for metric in SOURCE_URLS}
    run_pipeline(sources=sources, figures_dir=args.figures_dir, limit=args.limit)


if __name__ == "__main__":
    main()
