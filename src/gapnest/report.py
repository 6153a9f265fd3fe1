"""
Gapnest — Ranking & Filtering (Step 6).

Sorts and filters the per-group summary by a quality metric and maps the
selected groups back onto their raw rows for inspection or plotting.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

import pandas as pd

from gapnest.nesting import GroupKey

logger = logging.getLogger(__name__)


def rank_groups(
    summary: pd.DataFrame,
    metric: str = "r_squared",
    ascending: bool = True,
) -> pd.DataFrame:
    """Stable sort of *summary* by *metric*; groups without a value go last."""
    if metric not in summary.columns:
        raise KeyError(f"Metric '{metric}' not in summary")
    return summary.sort_values(
        metric, ascending=ascending, kind="mergesort", na_position="last",
    ).reset_index(drop=True)


def filter_groups(
    summary: pd.DataFrame,
    predicate: Optional[Callable[[pd.DataFrame], pd.Series]] = None,
    metric: str = "r_squared",
    threshold: float = 0.5,
    below: bool = True,
) -> pd.DataFrame:
    """
    Summary rows satisfying *predicate*.

    Without a predicate the rule is ``metric < threshold`` (or
    ``metric >= threshold`` when ``below=False``).  Null metrics never
    satisfy the threshold rule.
    """
    if predicate is None:
        if metric not in summary.columns:
            raise KeyError(f"Metric '{metric}' not in summary")
        values = summary[metric]
        mask = values < threshold if below else values >= threshold
    else:
        mask = predicate(summary)
    mask = pd.Series(mask, index=summary.index).fillna(False).astype(bool)

    out = summary.loc[mask]
    logger.info("%d of %d groups pass the filter.", len(out), len(summary))
    return out


def failed_groups(summary: pd.DataFrame) -> pd.DataFrame:
    """Rows for groups whose model could not be fitted."""
    return summary.loc[~summary["fit_ok"].astype(bool)]


def group_keys(summary: pd.DataFrame, key_cols: Sequence[str]) -> List[GroupKey]:
    """Key tuples of the rows in *summary*, in row order."""
    return list(summary[list(key_cols)].itertuples(index=False, name=None))


def select_raw_rows(
    table: pd.DataFrame,
    selected: pd.DataFrame,
    key_cols: Sequence[str],
) -> pd.DataFrame:
    """
    Semi-join: the rows of *table* whose key appears in *selected*.

    Keeps *table*'s row order and index; each raw row appears at most once.
    """
    key_cols = list(key_cols)
    missing = set(key_cols) - set(table.columns) | set(key_cols) - set(selected.columns)
    if missing:
        raise KeyError(f"Key columns missing: {sorted(missing)}")

    keys = selected[key_cols].drop_duplicates()
    marker = "_gapnest_selected"
    hits = (
        table[key_cols]
        .reset_index(drop=True)
        .merge(keys.assign(**{marker: True}), on=key_cols, how="left")[marker]
        .notna()
        .to_numpy()
    )
    out = table.loc[hits]
    logger.info(
        "Selected %d raw rows for %d groups.", len(out), len(keys),
    )
    return out
