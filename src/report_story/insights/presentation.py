from __future__ import annotations

import platform
from importlib import metadata
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd
import seaborn as sns
from matplotlib import pyplot as plt

PALETTE = {
    "navy": "#0B1F3A",
    "gold": "#F1B434",
    "teal": "#1AAAE6",
    "crimson": "#C43F3A",
    "slate": "#233348",
}
SESSION_PACKAGES = ("pandas", "numpy", "matplotlib", "seaborn", "scikit-learn", "statsmodels", "tabulate")


def configure_matplotlib() -> None:
    sns.set_theme(style="whitegrid", context="talk")
    plt.rcParams.update({"axes.spines.right": False, "axes.spines.top": False})


def plot_bar(
    table: pd.DataFrame,
    label_column: str,
    value_column: str,
    title: str,
    path: Path,
    xlabel: str = "",
    ylabel: str = "",
    color: str = PALETTE["teal"],
) -> Path:
    # Labels are plotted as strings so seaborn keeps the table's row order.
    labels = table[label_column].astype(str)
    fig, ax = plt.subplots(figsize=(12, 6))
    sns.barplot(x=labels, y=table[value_column], order=labels.tolist(), color=color, ax=ax)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    return path


def plot_line(
    frame: pd.DataFrame,
    x: str,
    y: str,
    title: str,
    path: Path,
    hue: str | None = None,
    ylabel: str = "",
    color: str = PALETTE["navy"],
) -> Path:
    fig, ax = plt.subplots(figsize=(14, 6))
    data = frame.assign(**{y: frame[y].astype(float)})
    if hue is None:
        sns.lineplot(data=data, x=x, y=y, color=color, ax=ax)
    else:
        sns.lineplot(data=data, x=x, y=y, hue=hue, ax=ax)
    ax.set_title(title)
    ax.set_xlabel("")
    ax.set_ylabel(ylabel)
    ax.grid(True, alpha=0.3)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    return path


def format_table(df: pd.DataFrame, float_format: str = "{:,.2f}") -> str:
    if df.empty:
        return "(no rows)"
    return df.to_string(
        index=False,
        float_format=lambda value: float_format.format(value),
    )


def markdown_table(df: pd.DataFrame, floatfmt: str = ",.2f") -> str:
    # tabulate only recognizes None as missing, not NaN or <NA>.
    cells = df.astype(object).where(df.notna(), None)
    return cells.to_markdown(index=False, floatfmt=floatfmt, intfmt=",", missingval="n/a")


def format_percent(value: float | None) -> str:
    if value is None or pd.isna(value):
        return "n/a"
    return f"{value:.1f}%"


def session_info(packages: Iterable[str] = SESSION_PACKAGES) -> Dict[str, str]:
    info = {"python": platform.python_version(), "platform": platform.platform()}
    for name in packages:
        try:
            info[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            info[name] = "not installed"
    return info


def describe_session(info: Dict[str, str]) -> List[str]:
    return [f"- `{name}` {version}" for name, version in info.items()]
