"""
Gapnest — Data I/O (Step 1).

Loads the base country/year table from a local file and auxiliary
wide-format sheets (one row per country, one column per year) from a
local directory or a published spreadsheet, reshaping every sheet to long
format ``{entity, time, value}``.  Numeric coercion is strict: a non-empty
cell that does not parse raises :class:`ParseError` and aborts the load of
that source.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import requests

from gapnest.config import NestConfig
from gapnest.errors import ParseError

logger = logging.getLogger(__name__)


# ── coercion helpers ────────────────────────────────────────────────────────

def _is_blank(values: pd.Series) -> pd.Series:
    """True where a cell is null or an empty/whitespace-only string."""
    return values.isna() | values.astype(str).str.strip().eq("")


def coerce_numeric(
    values: pd.Series,
    source: str,
    column: str,
) -> pd.Series:
    """
    Convert *values* to float, treating blank cells as missing.

    Raises
    ------
    ParseError
        If any non-blank cell cannot be parsed as a number.
    """
    if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
        return values.astype("float64")
    out = pd.to_numeric(values, errors="coerce")
    bad = out.isna() & ~_is_blank(values)
    if bad.any():
        raise ParseError(
            f"{source}: column '{column}' has {int(bad.sum())} non-numeric cells",
            source=source,
            column=column,
            values=values[bad].unique().tolist(),
        )
    return out.astype("float64")


def _normalize_time(values: pd.Series, source: str, column: str) -> pd.Series:
    """Coerce a time column; integral periods (years) become int64."""
    out = coerce_numeric(values, source, column)
    if out.isna().any():
        raise ParseError(
            f"{source}: column '{column}' has {int(out.isna().sum())} missing time values",
            source=source,
            column=column,
        )
    if np.all(np.mod(out.to_numpy(), 1) == 0):
        return out.astype("int64")
    return out


def _normalize_entity(values: pd.Series) -> pd.Series:
    """Strip identifiers; blank identifiers become null."""
    stripped = values.astype(str).str.strip()
    return stripped.where(~_is_blank(values), None)


def _read_file(path: Path) -> pd.DataFrame:
    """Read parquet, TSV or CSV by suffix."""
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix in (".tsv", ".tab"):
        return pd.read_csv(path, sep="\t")
    return pd.read_csv(path)


# ── base table ──────────────────────────────────────────────────────────────

def load_base_table(
    path: str | Path,
    cfg: Optional[NestConfig] = None,
) -> pd.DataFrame:
    """
    Load and type-enforce the base long-format table.

    Parameters
    ----------
    path : str | Path
        File path (tsv, csv or parquet).
    cfg : NestConfig, optional
        Supplies the entity / time / category column names.

    Returns
    -------
    pd.DataFrame
        Entity and category as strings, time numeric, every other column
        coerced to float.
    """
    cfg = cfg or NestConfig()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Base table not found: {path}")

    df = _read_file(path)
    source = path.name

    required = {cfg.entity_col, cfg.time_col}
    missing = required - set(df.columns)
    if missing:
        raise ParseError(
            f"{source}: missing required columns {sorted(missing)}",
            source=source,
        )

    text_cols = {cfg.entity_col, *cfg.group_cols}
    if cfg.category_col:
        text_cols.add(cfg.category_col)
    for col in text_cols:
        if col in df.columns:
            df[col] = _normalize_entity(df[col])

    df[cfg.time_col] = _normalize_time(df[cfg.time_col], source, cfg.time_col)
    for col in df.columns:
        if col in text_cols or col == cfg.time_col:
            continue
        df[col] = coerce_numeric(df[col], source, col)

    logger.info(
        "Loaded base table %s: %d rows, %d entities.",
        source, len(df), df[cfg.entity_col].nunique(),
    )
    return df


# ── auxiliary sheets ────────────────────────────────────────────────────────

def fetch_sheet(key: str, cfg: NestConfig) -> pd.DataFrame:
    """
    Return the raw wide sheet addressed by *key*.

    A ``<key>.csv`` file inside ``cfg.sheet_dir`` takes precedence over the
    remote export URL.
    """
    if cfg.sheet_dir:
        local = Path(cfg.sheet_dir) / f"{key}.csv"
        if local.exists():
            logger.info("Reading sheet %s from %s.", key, local)
            return _parse_sheet_text(local.read_text(), key)

    url = cfg.sheet_url_template.format(key=key)
    logger.info("Fetching sheet %s from %s.", key, url)
    response = requests.get(url, timeout=cfg.request_timeout)
    response.raise_for_status()
    return _parse_sheet_text(response.text, key)


def _parse_sheet_text(text: str, key: str) -> pd.DataFrame:
    try:
        # everything as text so coercion errors surface as ParseError;
        # header read as a row so pandas does not mangle repeated labels
        raw = pd.read_csv(io.StringIO(text), dtype=str, header=None)
    except pd.errors.EmptyDataError as exc:
        raise ParseError(f"sheet {key}: no data", source=key) from exc

    header = ["" if pd.isna(h) else str(h).strip() for h in raw.iloc[0]]
    periods = header[1:]
    repeated = sorted({h for h in periods if periods.count(h) > 1})
    if repeated:
        raise ParseError(
            f"sheet {key}: repeated period headers",
            source=key,
            column="<header>",
            values=repeated,
        )
    wide = raw.iloc[1:].reset_index(drop=True)
    wide.columns = header
    return wide


def sheet_to_long(
    wide: pd.DataFrame,
    var_name: str,
    entity_col: str = "country",
    time_col: str = "year",
    source: str = "sheet",
) -> pd.DataFrame:
    """
    Reshape a wide sheet into ``{entity_col, time_col, var_name}`` rows.

    The first column holds the entity identifier; every remaining column
    header is a time period.  Empty value cells produce no row.
    """
    if wide.shape[1] < 2:
        raise ParseError(f"{source}: sheet has no period columns", source=source)

    first = wide.columns[0]
    wide = wide.rename(columns={first: entity_col})
    periods = [c for c in wide.columns if c != entity_col]

    labels = pd.Series([str(p).strip() for p in periods], dtype=object)
    times = _normalize_time(labels, source, "<header>")
    if times.duplicated().any():
        raise ParseError(
            f"{source}: period headers name the same {time_col} twice",
            source=source,
            column="<header>",
            values=times[times.duplicated()].tolist(),
        )
    time_map: Dict[object, object] = dict(zip(periods, times.tolist()))

    long = wide.melt(
        id_vars=[entity_col],
        value_vars=periods,
        var_name=time_col,
        value_name=var_name,
    )
    long[time_col] = long[time_col].map(time_map).astype(times.dtype)
    long[entity_col] = _normalize_entity(long[entity_col])
    long[var_name] = coerce_numeric(long[var_name], source, var_name)

    long = long.dropna(subset=[entity_col, var_name]).reset_index(drop=True)

    dupes = long.duplicated(subset=[entity_col, time_col], keep=False)
    if dupes.any():
        raise ParseError(
            f"{source}: duplicate ({entity_col}, {time_col}) pairs",
            source=source,
            column=entity_col,
            values=long.loc[dupes, entity_col].unique().tolist(),
        )

    logger.info(
        "Reshaped %s → %s: %d rows, %d entities.",
        source, var_name, len(long), long[entity_col].nunique(),
    )
    return long


def load_sheet(key: str, var_name: str, cfg: NestConfig) -> pd.DataFrame:
    """Fetch one sheet and reshape it to long format."""
    wide = fetch_sheet(key, cfg)
    return sheet_to_long(
        wide,
        var_name,
        entity_col=cfg.entity_col,
        time_col=cfg.time_col,
        source=key,
    )


def load_sources(cfg: NestConfig) -> List[pd.DataFrame]:
    """Load every configured sheet, in config order."""
    tables = []
    for key, var_name in cfg.sheet_sources.items():
        tables.append(load_sheet(key, var_name, cfg))
    logger.info("Loaded %d auxiliary sources.", len(tables))
    return tables
