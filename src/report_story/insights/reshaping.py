from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

import pandas as pd

log = logging.getLogger(__name__)

# Entity/geographic columns of the JHU CSSE wide time-series tables.
GEO_COLUMNS: Tuple[str, ...] = ("Province/State", "Country/Region", "Lat", "Long")

GEO_RENAMES: Dict[str, str] = {
    "Province/State": "Province_State",
    "Country/Region": "Country_Region",
}


def date_columns(df: pd.DataFrame, id_columns: Sequence[str] = GEO_COLUMNS) -> List[str]:
    excluded = set(id_columns)
    return [col for col in df.columns if col not in excluded]


def wide_to_long(
    df: pd.DataFrame,
    value_name: str,
    id_columns: Sequence[str] = GEO_COLUMNS,
) -> pd.DataFrame:
    """Melt one column per date into one row per (entity, date).

    Date headers are left as the source strings (e.g. "1/22/20"); parsing
    happens after the metric tables are merged.
    """
    present_ids = [col for col in id_columns if col in df.columns]
    dates = date_columns(df, id_columns)
    long_df = df.melt(
        id_vars=present_ids,
        value_vars=dates,
        var_name="date",
        value_name=value_name,
    ).rename(columns=GEO_RENAMES)
    log.info(
        "Reshaped %s: %s wide rows x %s dates -> %s long rows",
        value_name,
        f"{len(df):,}",
        len(dates),
        f"{len(long_df):,}",
    )
    return long_df
