"""
Gapnest — Grouping & Nesting (Step 3).

Partitions the wide table by a grouping key (``country, continent`` by
default) into explicit :class:`Group` objects, each owning the full
sub-table of rows with that key.  Groups are ordered by the first
appearance of their key in the input.  Nesting is a lossless partition:
:meth:`NestedTable.unnest` reproduces the pre-nest table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

GroupKey = Tuple


@dataclass(frozen=True, eq=False)
class Group:
    """A grouping key plus the sub-table of rows sharing it."""

    key: GroupKey
    key_names: Tuple[str, ...]
    data: pd.DataFrame

    @property
    def n_rows(self) -> int:
        return len(self.data)

    def as_dict(self) -> Dict[str, object]:
        return dict(zip(self.key_names, self.key))

    def __repr__(self) -> str:
        return f"Group({self.as_dict()!r}, n_rows={self.n_rows})"


class NestedTable:
    """Ordered mapping of group key → :class:`Group`."""

    def __init__(
        self,
        groups: Dict[GroupKey, Group],
        key_names: Sequence[str],
        columns: Sequence[str],
    ):
        self._groups = groups
        self.key_names = tuple(key_names)
        self.columns = list(columns)

    def __len__(self) -> int:
        return len(self._groups)

    def __iter__(self) -> Iterator[Group]:
        return iter(self._groups.values())

    def __getitem__(self, key: GroupKey) -> Group:
        return self._groups[key]

    def __contains__(self, key: object) -> bool:
        return key in self._groups

    def keys(self) -> List[GroupKey]:
        return list(self._groups)

    def summary_frame(self) -> pd.DataFrame:
        """One row per group: key columns plus ``n_rows``."""
        records = [{**g.as_dict(), "n_rows": g.n_rows} for g in self]
        return pd.DataFrame.from_records(
            records, columns=[*self.key_names, "n_rows"],
        )

    def select(self, keys: Iterable[GroupKey]) -> "NestedTable":
        """Restrict to *keys*, keeping the existing group order."""
        wanted = set(keys)
        kept = {k: g for k, g in self._groups.items() if k in wanted}
        return NestedTable(kept, self.key_names, self.columns)

    def unnest(self) -> pd.DataFrame:
        """
        Concatenate every group's rows back into one table, in the original
        row order and with the original index.
        """
        if not self._groups:
            return pd.DataFrame(columns=self.columns)
        out = pd.concat([g.data for g in self], axis=0)
        return out.sort_index(kind="mergesort")[self.columns]


def nest(df: pd.DataFrame, group_cols: Sequence[str]) -> NestedTable:
    """
    Group *df* by *group_cols* and attach each group's sub-table.

    Rows with a null key component form their own group rather than being
    dropped; that part of the key is stored as ``None``.  Sub-tables keep
    the input's index and row order.
    """
    group_cols = list(group_cols)
    missing = set(group_cols) - set(df.columns)
    if missing:
        raise KeyError(f"Grouping columns not in table: {sorted(missing)}")

    groups: Dict[GroupKey, Group] = {}
    for key, sub in df.groupby(group_cols, sort=False, dropna=False):
        key = key if isinstance(key, tuple) else (key,)
        # NaN never equals itself, so null parts are stored as None
        key = tuple(None if pd.isna(k) else k for k in key)
        groups[key] = Group(key=key, key_names=tuple(group_cols), data=sub)

    logger.info(
        "Nested %d rows into %d groups by %s.", len(df), len(groups), group_cols,
    )
    return NestedTable(groups, group_cols, df.columns)
