"""
Gapnest — Merging (Step 2).

Joins the long-format auxiliary tables with each other and with the base
table on the composite ``(entity, time)`` key.  Every join is a full outer
join, so no row is ever dropped; cells with no matching observation stay
null.
"""

from __future__ import annotations

import logging
from functools import reduce
from typing import List, Optional, Sequence

import pandas as pd

from gapnest.errors import JoinKeyMismatch

logger = logging.getLogger(__name__)


def check_join_keys(df: pd.DataFrame, keys: Sequence[str], name: str) -> None:
    """Raise :class:`JoinKeyMismatch` if *df* lacks any of *keys*."""
    missing = set(keys) - set(df.columns)
    if missing:
        raise JoinKeyMismatch(name, missing)


def _check_unique(df: pd.DataFrame, keys: Sequence[str], name: str) -> None:
    dupes = df.duplicated(subset=list(keys), keep=False)
    if dupes.any():
        sample = df.loc[dupes, list(keys)].drop_duplicates().head(5)
        raise ValueError(
            f"{name}: {int(dupes.sum())} rows share a join key, e.g. "
            f"{sample.to_dict('records')}"
        )


def _outer(left: pd.DataFrame, right: pd.DataFrame, keys: Sequence[str]) -> pd.DataFrame:
    clash = (set(left.columns) & set(right.columns)) - set(keys)
    if clash:
        raise ValueError(f"Value columns present in more than one table: {sorted(clash)}")
    return left.merge(right, on=list(keys), how="outer", sort=False)


# ── source folding ──────────────────────────────────────────────────────────

def merge_sources(
    tables: Sequence[pd.DataFrame],
    keys: Sequence[str] = ("country", "year"),
) -> pd.DataFrame:
    """
    Full-outer-join *tables* on *keys*, left-folded in input order.

    Each table carries the join columns plus its own value column(s).
    An empty sequence yields an empty frame holding only the key columns.
    """
    keys = list(keys)
    if not tables:
        return pd.DataFrame(columns=keys)

    for i, t in enumerate(tables):
        check_join_keys(t, keys, f"source[{i}]")
        _check_unique(t, keys, f"source[{i}]")

    merged = reduce(lambda left, right: _outer(left, right, keys), tables)
    logger.info("Merged %d sources → %d rows.", len(tables), len(merged))
    return merged


def merge_with_base(
    base: pd.DataFrame,
    merged: pd.DataFrame,
    keys: Sequence[str] = ("country", "year"),
) -> pd.DataFrame:
    """Full-outer-join the folded sources onto the base table."""
    keys = list(keys)
    check_join_keys(base, keys, "base")
    check_join_keys(merged, keys, "sources")
    if merged.columns.difference(keys).empty:
        return base.copy()
    out = _outer(base, merged, keys)
    logger.info(
        "Merged base (%d) with sources (%d) → %d rows.",
        len(base), len(merged), len(out),
    )
    return out


def fill_category(
    df: pd.DataFrame,
    base: pd.DataFrame,
    entity_col: str,
    category_col: Optional[str],
) -> pd.DataFrame:
    """
    Give rows contributed only by auxiliary sources the category their
    entity has in the base table.  Unknown entities keep a null category.
    """
    if not category_col or category_col not in df.columns:
        return df
    lookup = (
        base.dropna(subset=[category_col])
        .drop_duplicates(subset=[entity_col])
        .set_index(entity_col)[category_col]
    )
    gaps = df[category_col].isna()
    if gaps.any():
        df = df.copy()
        df.loc[gaps, category_col] = df.loc[gaps, entity_col].map(lookup)
        logger.info(
            "Back-filled %s for %d source-only rows.",
            category_col, int(df.loc[gaps, category_col].notna().sum()),
        )
    return df


def build_wide_table(
    base: pd.DataFrame,
    sources: Sequence[pd.DataFrame],
    keys: Sequence[str] = ("country", "year"),
    category_col: Optional[str] = None,
) -> pd.DataFrame:
    """
    Produce the single wide table: sources folded, joined to *base*,
    categories back-filled, sorted by *keys* with a fresh index.
    """
    keys = list(keys)
    check_join_keys(base, keys, "base")
    _check_unique(base, keys, "base")

    merged = merge_sources(sources, keys)
    wide = merge_with_base(base, merged, keys)
    wide = fill_category(wide, base, keys[0], category_col)

    _check_unique(wide, keys, "wide table")
    wide = wide.sort_values(keys, kind="mergesort").reset_index(drop=True)
    logger.info(
        "Wide table: %d rows × %d columns.", len(wide), wide.shape[1],
    )
    return wide
