"""
Ordered cleaning stages for raw report records.

A `CleaningPlan` declares which columns survive, how missing values are
filled, which malformed codes are rewritten and which columns become closed
categorical domains. `clean_records()` applies the stages in the order given
by `CLEANING_STAGES`: select -> fill -> substitute -> categorize. Code
substitution therefore always runs before a column is typed as categorical,
so malformed codes never show up as categories of their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import pandas as pd
from pandas.api import types as ptypes

from .domains import weekday_order
from .loaders import require_columns

log = logging.getLogger(__name__)

FLAG_VALUES: Dict[str, bool] = {"true": True, "false": False, "1": True, "0": False}


@dataclass(frozen=True)
class CleaningPlan:
    columns: Tuple[str, ...]
    fill_values: Mapping[str, Any] = field(default_factory=dict)
    substitutions: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    domains: Mapping[str, Sequence[str]] = field(default_factory=dict)
    flags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        declared = set(self.columns)
        referenced = (
            set(self.fill_values)
            | set(self.substitutions)
            | set(self.domains)
            | set(self.flags)
        )
        unknown = sorted(referenced - declared)
        if unknown:
            raise ValueError(f"Plan references columns it does not retain: {', '.join(unknown)}")


@dataclass
class StageReport:
    stage: str
    description: str
    changed: int


@dataclass
class CleaningAudit:
    """Tracks how many values each cleaning stage touched."""

    total_rows: int = 0
    steps: List[StageReport] = field(default_factory=list)

    def record(self, stage: str, description: str, changed: int) -> None:
        self.steps.append(StageReport(stage=stage, description=description, changed=int(changed)))
        pct = changed / self.total_rows * 100 if self.total_rows else 0.0
        log.info("[%s] %s -> %s values changed (%.1f%%)", stage, description, f"{changed:,}", pct)

    def changed_by(self, stage: str) -> int:
        return sum(step.changed for step in self.steps if step.stage == stage)


def select_columns(df: pd.DataFrame, plan: CleaningPlan, audit: CleaningAudit) -> pd.DataFrame:
    require_columns(df, plan.columns, "raw records")
    dropped = df.shape[1] - len(plan.columns)
    # Column counts are not value changes, so this stage stays out of the audit.
    log.info("[select] %s columns outside the plan dropped", dropped)
    return df.loc[:, list(plan.columns)].copy()


def fill_missing(df: pd.DataFrame, plan: CleaningPlan, audit: CleaningAudit) -> pd.DataFrame:
    for column, value in plan.fill_values.items():
        missing = int(df[column].isna().sum())
        df[column] = df[column].fillna(value)
        audit.record("fill", f"{column}: missing -> {value!r}", missing)
    return df


def _code_text(value: Any) -> Any:
    # 1020.0 from a float-parsed column is the code "1020".
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def substitute_codes(df: pd.DataFrame, plan: CleaningPlan, audit: CleaningAudit) -> pd.DataFrame:
    for column, mapping in plan.substitutions.items():
        # Codes may have been parsed as numbers, so match on their text form.
        as_text = df[column].where(df[column].isna(), df[column].map(_code_text, na_action="ignore"))
        hits = as_text.isin(list(mapping))
        if hits.any():
            df[column] = df[column].astype(object).mask(hits, as_text.map(mapping))
        audit.record("substitute", f"{column}: malformed codes rewritten", int(hits.sum()))
    return df


def _to_flag(series: pd.Series, column: str) -> pd.Series:
    if ptypes.is_bool_dtype(series):
        return series.astype("boolean")
    text = series.astype("string").str.strip().str.lower()
    flags = text.map(FLAG_VALUES)
    unrecognized = text.notna() & flags.isna()
    if unrecognized.any():
        log.warning(
            "Column %s has %s values that are not true/false; treated as missing: %s",
            column,
            int(unrecognized.sum()),
            ", ".join(sorted(text[unrecognized].unique())),
        )
    return flags.astype("boolean")


def categorize(df: pd.DataFrame, plan: CleaningPlan, audit: CleaningAudit) -> pd.DataFrame:
    for column, domain in plan.domains.items():
        observed = df[column].dropna().unique().tolist()
        extras = sorted((value for value in observed if value not in domain), key=str)
        if extras:
            log.warning(
                "Column %s has values outside its declared domain, kept as-is: %s",
                column,
                ", ".join(str(value) for value in extras),
            )
        df[column] = pd.Categorical(df[column], categories=list(domain) + extras)
        audit.record("categorize", f"{column}: values outside the declared domain", int(df[column].isin(extras).sum()))
    for column in plan.flags:
        df[column] = _to_flag(df[column], column)
        audit.record("categorize", f"{column}: missing flags left unset", int(df[column].isna().sum()))
    return df


CleaningStage = Callable[[pd.DataFrame, CleaningPlan, CleaningAudit], pd.DataFrame]

CLEANING_STAGES: Tuple[Tuple[str, CleaningStage], ...] = (
    ("select", select_columns),
    ("fill", fill_missing),
    ("substitute", substitute_codes),
    ("categorize", categorize),
)


def clean_records(
    df: pd.DataFrame,
    plan: CleaningPlan,
    audit: CleaningAudit | None = None,
) -> pd.DataFrame:
    audit = audit if audit is not None else CleaningAudit()
    audit.total_rows = len(df)
    for name, stage in CLEANING_STAGES:
        log.debug("Running cleaning stage %s", name)
        df = stage(df, plan, audit)
    return df


def derive_temporal_fields(
    df: pd.DataFrame,
    date_column: str = "OCCUR_DATE",
    time_column: str = "OCCUR_TIME",
    week_start: str = "Sunday",
    date_format: str = "%m/%d/%Y",
    time_format: str = "%H:%M:%S",
) -> pd.DataFrame:
    df = df.copy()
    order = weekday_order(week_start)
    dates = pd.to_datetime(df[date_column], format=date_format, errors="coerce")
    times = pd.to_datetime(df[time_column], format=time_format, errors="coerce")
    bad_dates = int(dates.isna().sum() - df[date_column].isna().sum())
    bad_times = int(times.isna().sum() - df[time_column].isna().sum())
    if bad_dates or bad_times:
        log.warning("Unparseable values: %s dates, %s times", bad_dates, bad_times)

    names = dates.dt.day_name()
    df[date_column] = dates
    df["weekday"] = names.map({name: idx + 1 for idx, name in enumerate(order)}).astype("Int64")
    df["weekday_name"] = pd.Categorical(names, categories=order, ordered=True)
    df["hour"] = times.dt.hour.astype("Int64")
    return df
