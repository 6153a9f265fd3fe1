"""
Gapnest — Model Summaries (Step 5).

Turns fitted lines into tables:

* :func:`glance` — one dict of model-quality scalars per fit
  (R², adjusted R², residual σ, F statistic, log-likelihood, AIC/BIC …).
* :func:`tidy` — per-coefficient estimates with t statistics.
* :func:`augment` — a group's rows with fitted values and residuals.
* :func:`summarize_groups` — one glance row per group, with null metrics
  for groups whose fit failed.

All statistics are the closed-form OLS quantities for a line with an
intercept (two coefficients).  Degenerate fits (two points, a perfect
line) yield NaN or ±inf, never an exception.  A constant response has R²
0 and no adjusted R², F statistic or p-value.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

import numpy as np
import pandas as pd
from scipy import stats

from gapnest.models import LinearFit
from gapnest.nesting import Group, GroupKey, NestedTable

logger = logging.getLogger(__name__)

GLANCE_COLUMNS = [
    "r_squared", "adj_r_squared", "sigma", "statistic", "p_value",
    "df", "df_residual", "log_lik", "aic", "bic", "deviance", "nobs",
    "slope", "intercept", "slope_stderr", "intercept_stderr",
]

_N_COEF = 2


# ── per-fit tables ──────────────────────────────────────────────────────────

def glance(fit: LinearFit) -> Dict[str, float]:
    """Scalar model-quality metrics for one fit."""
    n = fit.n_obs
    df_resid = n - _N_COEF
    rss = float(np.sum(fit.residuals ** 2))
    tss = float(np.sum((fit.y - fit.y.mean()) ** 2))

    r2 = fit.r_squared
    adj_r2 = np.nan
    sigma = np.nan
    f_stat = np.nan
    f_p = np.nan
    if df_resid > 0:
        if tss > 0:
            adj_r2 = 1.0 - (1.0 - r2) * (n - 1) / df_resid
        sigma = np.sqrt(rss / df_resid)
        if rss > 0:
            f_stat = (tss - rss) / (rss / df_resid)
        elif tss > 0:
            f_stat = np.inf
        if not np.isnan(f_stat):
            f_p = float(stats.f.sf(f_stat, 1, df_resid))

    with np.errstate(divide="ignore"):
        log_lik = -0.5 * n * (np.log(2 * np.pi) + np.log(rss / n) + 1.0)
    # sigma counts as an estimated parameter
    k = _N_COEF + 1

    return {
        "r_squared": r2,
        "adj_r_squared": adj_r2,
        "sigma": sigma,
        "statistic": f_stat,
        "p_value": f_p,
        "df": _N_COEF - 1,
        "df_residual": df_resid,
        "log_lik": float(log_lik),
        "aic": float(-2.0 * log_lik + 2.0 * k),
        "bic": float(-2.0 * log_lik + np.log(n) * k),
        "deviance": rss,
        "nobs": n,
        "slope": fit.slope,
        "intercept": fit.intercept,
        "slope_stderr": fit.slope_stderr,
        "intercept_stderr": fit.intercept_stderr,
    }


def tidy(fit: LinearFit) -> pd.DataFrame:
    """Coefficient table: ``term, estimate, std_error, statistic, p_value``."""
    df_resid = fit.n_obs - _N_COEF
    rows = []
    for term, est, se in (
        ("(Intercept)", fit.intercept, fit.intercept_stderr),
        (fit.x_col, fit.slope, fit.slope_stderr),
    ):
        t = np.nan
        p = np.nan
        if df_resid > 0 and se > 0:
            t = est / se
            p = float(2.0 * stats.t.sf(abs(t), df_resid))
        rows.append({
            "term": term,
            "estimate": est,
            "std_error": se,
            "statistic": t,
            "p_value": p,
        })
    return pd.DataFrame(rows)


def augment(group: Group, fit: Optional[LinearFit]) -> pd.DataFrame:
    """
    The group's rows with ``.fitted`` and ``.resid`` columns.

    Rows that did not enter the fit (missing x or y) keep nulls.
    """
    out = group.data.copy()
    out[".fitted"] = np.nan
    out[".resid"] = np.nan
    if fit is not None:
        out.loc[fit.index, ".fitted"] = fit.fitted
        out.loc[fit.index, ".resid"] = fit.residuals
    return out


# ── per-group summary ───────────────────────────────────────────────────────

def summarize_groups(
    nested: NestedTable,
    fits: Mapping[GroupKey, Optional[LinearFit]],
) -> pd.DataFrame:
    """
    One row per group: key columns, ``n_rows``, ``fit_ok`` and the
    :func:`glance` metrics.  Failed fits keep their row with null metrics.
    """
    empty = {c: np.nan for c in GLANCE_COLUMNS}
    records = []
    for group in nested:
        fit = fits.get(group.key)
        metrics = glance(fit) if fit is not None else empty
        records.append({
            **group.as_dict(),
            "n_rows": group.n_rows,
            "fit_ok": fit is not None,
            **metrics,
        })

    columns = [*nested.key_names, "n_rows", "fit_ok", *GLANCE_COLUMNS]
    summary = pd.DataFrame.from_records(records, columns=columns)
    logger.info(
        "Summarised %d groups (%d without a model).",
        len(summary), int((~summary["fit_ok"]).sum()) if len(summary) else 0,
    )
    return summary
