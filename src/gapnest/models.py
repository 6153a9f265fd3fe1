"""
Gapnest — Per-Group Linear Models (Step 4).

Fits an ordinary-least-squares line ``y ~ x`` inside every group using
the closed-form estimator in :func:`scipy.stats.linregress`.  A group with
fewer than two distinct x values cannot identify a slope; it raises
:class:`InsufficientDataError` from :func:`fit_linear` and maps to ``None``
in :func:`fit_groups` so the rest of the batch still runs.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import pandas as pd
from scipy import stats

from gapnest.errors import InsufficientDataError
from gapnest.nesting import Group, GroupKey, NestedTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class LinearFit:
    """A fitted line plus the data and residuals it was fitted on."""

    x_col: str
    y_col: str
    slope: float
    intercept: float
    r_value: float
    p_value: float
    slope_stderr: float
    intercept_stderr: float
    x_offset: float
    x: np.ndarray          # centred regressor actually used
    y: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    index: pd.Index        # source rows that entered the fit

    @property
    def n_obs(self) -> int:
        return int(len(self.y))

    @property
    def r_squared(self) -> float:
        """Share of variance explained; 0.0 when y has no variance."""
        ss_tot = float(np.sum((self.y - self.y.mean()) ** 2))
        if ss_tot == 0:
            return 0.0
        return 1.0 - float(np.sum(self.residuals ** 2)) / ss_tot

    def predict(self, x) -> np.ndarray:
        """Predicted y for raw (uncentred) x values."""
        x = np.asarray(x, dtype="float64") - self.x_offset
        return self.intercept + self.slope * x


def fit_linear(
    data: pd.DataFrame,
    x_col: str,
    y_col: str,
    center_x: Optional[float] = None,
    key: Optional[GroupKey] = None,
) -> LinearFit:
    """
    Fit ``y_col ~ x_col`` by OLS on the rows where both are finite.

    Parameters
    ----------
    data : pd.DataFrame
        One group's sub-table.
    x_col, y_col : str
        Regressor and response columns.
    center_x : float, optional
        Subtracted from x before fitting so the intercept is the
        prediction at that x (e.g. the first survey year).
    key : tuple, optional
        Group key, only used in error messages.

    Raises
    ------
    InsufficientDataError
        Fewer than two distinct x values remain.
    """
    for col in (x_col, y_col):
        if col not in data.columns:
            raise KeyError(f"Column '{col}' not in group data")

    sub = data[[x_col, y_col]].apply(pd.to_numeric, errors="coerce")
    sub = sub[np.isfinite(sub[x_col]) & np.isfinite(sub[y_col])]

    offset = float(center_x) if center_x is not None else 0.0
    x = sub[x_col].to_numpy(dtype="float64") - offset
    y = sub[y_col].to_numpy(dtype="float64")

    n_distinct = np.unique(x).size
    if n_distinct < 2:
        raise InsufficientDataError(
            f"group {key!r}: {n_distinct} distinct {x_col} value(s) "
            f"in {len(x)} usable rows; need at least 2",
            key=key,
        )

    res = stats.linregress(x, y)
    fitted = res.intercept + res.slope * x
    return LinearFit(
        x_col=x_col,
        y_col=y_col,
        slope=float(res.slope),
        intercept=float(res.intercept),
        r_value=float(res.rvalue),
        p_value=float(res.pvalue),
        slope_stderr=float(res.stderr),
        intercept_stderr=float(res.intercept_stderr),
        x_offset=offset,
        x=x,
        y=y,
        fitted=fitted,
        residuals=y - fitted,
        index=sub.index,
    )


def _fit_group(
    group: Group,
    x_col: str,
    y_col: str,
    center_x: Optional[float],
) -> Optional[LinearFit]:
    try:
        return fit_linear(group.data, x_col, y_col, center_x=center_x, key=group.key)
    except InsufficientDataError as exc:
        logger.warning("Skipping fit: %s", exc)
        return None


def fit_groups(
    nested: NestedTable,
    x_col: str = "year",
    y_col: str = "lifeExp",
    center_x: Optional[float] = None,
    n_workers: int = 1,
) -> Dict[GroupKey, Optional[LinearFit]]:
    """
    Fit one line per group.

    Returns a dict in group order; groups that cannot be fitted map to
    ``None``.  With ``n_workers > 1`` groups are fitted on a thread pool;
    the result is identical to the sequential run.
    """
    groups = list(nested)
    if n_workers > 1 and len(groups) > 1:
        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            fits = list(pool.map(
                lambda g: _fit_group(g, x_col, y_col, center_x), groups,
            ))
    else:
        fits = [_fit_group(g, x_col, y_col, center_x) for g in groups]

    out = {g.key: f for g, f in zip(groups, fits)}
    n_failed = sum(f is None for f in fits)
    logger.info(
        "Fitted %s ~ %s in %d groups (%d failed).",
        y_col, x_col, len(groups) - n_failed, n_failed,
    )
    return out
