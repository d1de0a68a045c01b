from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import pandas as pd

log = logging.getLogger(__name__)

# Only empty fields count as missing; "NA"/"NULL" are kept as literal values.
MISSING_MARKERS: List[str] = [""]


class SchemaError(ValueError):
    """Raised when a loaded frame lacks a column the report depends on."""


def load_csv(
    source: str | Path,
    usecols: Sequence[str] | None = None,
    nrows: int | None = None,
    dtype: Mapping[str, Any] | None = None,
) -> pd.DataFrame:
    log.info("Loading CSV from %s", source)
    df = pd.read_csv(
        source,
        usecols=list(usecols) if usecols is not None else None,
        nrows=nrows,
        dtype=dtype,
        keep_default_na=False,
        na_values=MISSING_MARKERS,
        low_memory=False,
    )
    log.info("Loaded %s rows x %s columns from %s", f"{len(df):,}", df.shape[1], source)
    return df


def load_many(sources: Mapping[str, str | Path], nrows: int | None = None) -> Dict[str, pd.DataFrame]:
    return {name: load_csv(source, nrows=nrows) for name, source in sources.items()}


def require_columns(df: pd.DataFrame, required: Iterable[str], source: str = "frame") -> None:
    missing_cols = [col for col in required if col not in df.columns]
    if missing_cols:
        raise SchemaError(f"{source} is missing expected columns: {', '.join(missing_cols)}")
