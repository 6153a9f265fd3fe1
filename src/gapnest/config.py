"""
Gapnest — Configuration.

Centralises file locations, column roles, sheet sources and model
settings.  The canonical source is a JSON file loaded at runtime; every
field has a sensible default so that the pipeline runs on the bundled
Gapminder layout out of the box.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# ── defaults ────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA = _PROJECT_ROOT / "data"
_DEFAULT_OUTPUTS = _PROJECT_ROOT / "outputs" / "gapnest"

# Published Google Sheets expose a CSV export addressed by the sheet key.
SHEET_URL_TEMPLATE = "https://docs.google.com/spreadsheets/d/{key}/export?format=csv"


@dataclass
class NestConfig:
    """All pipeline parameters in one place."""

    # ── inputs ──────────────────────────────────────────────────────────
    base_path: str = str(_DEFAULT_DATA / "gapminder.tsv")
    # sheet key -> variable name given to its values after reshaping
    sheet_sources: Dict[str, str] = field(default_factory=dict)
    sheet_dir: Optional[str] = None
    sheet_url_template: str = SHEET_URL_TEMPLATE
    request_timeout: float = 30.0

    # ── column roles ────────────────────────────────────────────────────
    entity_col: str = "country"
    time_col: str = "year"
    category_col: Optional[str] = "continent"
    group_cols: List[str] = field(default_factory=lambda: ["country", "continent"])

    # ── model ───────────────────────────────────────────────────────────
    x_col: str = "year"
    y_col: str = "lifeExp"
    center_x: Optional[float] = None
    n_workers: int = 1

    # ── filter ──────────────────────────────────────────────────────────
    metric: str = "r_squared"
    threshold: float = 0.5

    # ── outputs ─────────────────────────────────────────────────────────
    outputs_dir: str = str(_DEFAULT_OUTPUTS)

    # ── helpers ──────────────────────────────────────────────────────────

    @property
    def join_keys(self) -> List[str]:
        return [self.entity_col, self.time_col]

    @property
    def output_path(self) -> Path:
        p = Path(self.outputs_dir)
        p.mkdir(parents=True, exist_ok=True)
        return p


def load_config(path: Optional[str | Path] = None) -> NestConfig:
    """Load config from JSON, falling back to defaults for missing keys."""
    if path is None:
        logger.info("No config path supplied — using all defaults.")
        return NestConfig()
    path = Path(path)
    if not path.exists():
        logger.warning("Config file %s not found — using defaults.", path)
        return NestConfig()
    with open(path) as f:
        data = json.load(f)
    known = {f.name for f in NestConfig.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in known}
    ignored = sorted(set(data) - known)
    if ignored:
        logger.warning("Ignoring unknown config keys: %s", ignored)
    cfg = NestConfig(**filtered)
    logger.info("Loaded config from %s (%d overrides).", path, len(filtered))
    return cfg


def save_config(cfg: NestConfig, path: str | Path) -> None:
    """Serialise the current config to JSON for reproducibility."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(asdict(cfg), f, indent=2)
    logger.info("Saved config to %s.", path)
