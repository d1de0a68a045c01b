from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from sklearn.compose import ColumnTransformer
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

log = logging.getLogger(__name__)


@dataclass
class LabConfig:
    target: str = "STATISTICAL_MURDER_FLAG"
    categorical: Tuple[str, ...] = ("PERP_AGE_GROUP", "PERP_SEX", "PERP_RACE")
    numeric: Tuple[str, ...] = ("weekday", "hour", "Latitude", "Longitude")
    seed: int = 13
    test_size: float = 0.20
    max_rows: int | None = None
    lr_params: Dict[str, Any] = field(default_factory=dict)

    @property
    def predictors(self) -> List[str]:
        return list(self.categorical) + list(self.numeric)


def prepare_model_frame(df: pd.DataFrame, config: LabConfig) -> pd.DataFrame:
    required = [config.target] + config.predictors
    missing_cols = [col for col in required if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing model columns: {', '.join(missing_cols)}")

    working = df[required].dropna()
    dropped = len(df) - len(working)
    if dropped:
        log.info("Dropped %s rows with missing model variables", f"{dropped:,}")
    if config.max_rows and len(working) > config.max_rows:
        working = working.sample(config.max_rows, random_state=config.seed)

    working = working.copy()
    working[config.target] = working[config.target].astype(bool).astype(int)
    for column in config.numeric:
        working[column] = working[column].astype(float)
    for column in config.categorical:
        if not isinstance(working[column].dtype, pd.CategoricalDtype):
            working[column] = working[column].astype("category")
        # An empty level would add an all-zero dummy column and a singular design.
        working[column] = working[column].cat.remove_unused_categories()
    return working


def build_formula(config: LabConfig) -> str:
    terms = [f"C({column})" for column in config.categorical] + list(config.numeric)
    return f"{config.target} ~ " + " + ".join(terms)


def reference_levels(frame: pd.DataFrame, config: LabConfig) -> Dict[str, str]:
    """Baseline level of each categorical predictor (first declared category)."""
    return {column: str(frame[column].cat.categories[0]) for column in config.categorical}


def fit_murder_logit(df: pd.DataFrame, config: LabConfig | None = None) -> pd.DataFrame:
    """Fit a binary logit for the murder flag and tabulate its coefficients.

    Categorical predictors are treatment coded against the first category of
    each column, which is the first level of its declared domain that occurs
    in the data. Estimation errors (separation, singular designs) propagate.
    """
    config = config or LabConfig()
    frame = prepare_model_frame(df, config)
    formula = build_formula(config)
    log.info("Fitting logit on %s rows: %s", f"{len(frame):,}", formula)
    log.info("Reference levels: %s", reference_levels(frame, config))

    result = smf.logit(formula, data=frame).fit(disp=0)
    table = pd.DataFrame(
        {
            "term": result.params.index,
            "estimate": result.params.to_numpy(),
            "std_error": result.bse.to_numpy(),
            "z_value": result.tvalues.to_numpy(),
            "p_value": result.pvalues.to_numpy(),
        }
    )
    return table


def _build_pipeline(config: LabConfig) -> Pipeline:
    preprocess = ColumnTransformer(
        transformers=[
            ("num", StandardScaler(), list(config.numeric)),
            ("cat", OneHotEncoder(handle_unknown="ignore", sparse_output=False), list(config.categorical)),
        ],
        remainder="drop",
        verbose_feature_names_out=False,
    )
    lr_params = dict(config.lr_params)
    lr_params.setdefault("max_iter", 1000)
    lr_params.setdefault("class_weight", "balanced")
    return Pipeline(
        steps=[
            ("preprocess", preprocess),
            ("model", LogisticRegression(**lr_params)),
        ]
    )


def evaluate_holdout(df: pd.DataFrame, config: LabConfig | None = None) -> Dict[str, Any]:
    config = config or LabConfig()
    frame = prepare_model_frame(df, config)
    X = frame[config.predictors]
    y = frame[config.target]
    labels = [0, 1]

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=config.test_size, random_state=config.seed, stratify=y
    )
    pipeline = _build_pipeline(config)
    pipeline.fit(X_train, y_train)
    y_pred = pipeline.predict(X_test)

    scores = classification_report(y_test, y_pred, labels=labels, output_dict=True, zero_division=0)
    metrics = {"accuracy": float(accuracy_score(y_test, y_pred))}
    for average in ("macro", "weighted"):
        summary = scores[f"{average} avg"]
        metrics[f"precision_{average}"] = float(summary["precision"])
        metrics[f"recall_{average}"] = float(summary["recall"])
        metrics[f"f1_{average}"] = float(summary["f1-score"])
    by_class = [
        {
            "label": str(label),
            "precision": float(scores[str(label)]["precision"]),
            "recall": float(scores[str(label)]["recall"]),
            "f1": float(scores[str(label)]["f1-score"]),
            "support": int(scores[str(label)]["support"]),
        }
        for label in labels
    ]
    cm_raw = confusion_matrix(y_test, y_pred, labels=labels)
    with np.errstate(all="ignore"):
        cm_norm = cm_raw / cm_raw.sum(axis=1, keepdims=True)
    cm_norm = np.nan_to_num(cm_norm)

    report: Dict[str, Any] = {
        "splits": {
            "train": {"rows": int(len(X_train))},
            "test": {"rows": int(len(X_test))},
        },
        "metrics": metrics,
        "by_class": by_class,
        "confusion_matrix": {
            "labels": [str(label) for label in labels],
            "raw": cm_raw.tolist(),
            "normalized": cm_norm.tolist(),
        },
    }
    log.info(
        "Holdout accuracy=%.3f macro F1=%.3f on %s rows",
        metrics["accuracy"],
        metrics["f1_macro"],
        f"{len(X_test):,}",
    )
    return report
