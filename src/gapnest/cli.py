"""
Gapnest — CLI Entry Point.

Usage
-----
    python -m gapnest.cli --config gapnest_config.json
    python -m gapnest.cli --config gapnest_config.json --threshold 0.3
    python -m gapnest.cli --dry-run

Runs load → merge → nest → fit → summarise → filter and, unless
``--dry-run`` is given, writes ``summary.csv``, ``flagged_rows.csv`` and a
config snapshot to the outputs directory.
"""

from __future__ import annotations

import argparse
import logging
import time

from gapnest.config import NestConfig, load_config, save_config

logger = logging.getLogger(__name__)


# ── pipeline orchestrator ──────────────────────────────────────────────────

def run_nest_pipeline(cfg: NestConfig, dry_run: bool = False) -> dict:
    """
    Execute the six-step pipeline.

    Parameters
    ----------
    cfg : NestConfig
    dry_run : bool
        If True, compute everything but write nothing.

    Returns
    -------
    dict
        Intermediate and final objects keyed by step name.
    """
    from gapnest.data_io import load_base_table, load_sources
    from gapnest.merge import build_wide_table
    from gapnest.models import fit_groups
    from gapnest.nesting import nest
    from gapnest.report import filter_groups, rank_groups, select_raw_rows
    from gapnest.summary import summarize_groups

    t0 = time.time()
    results: dict = {}

    logger.info("═══ Step 1: Load ═══")
    base = load_base_table(cfg.base_path, cfg)
    sources = load_sources(cfg)
    results["base"] = base
    results["sources"] = sources

    logger.info("═══ Step 2: Merge ═══")
    wide = build_wide_table(base, sources, cfg.join_keys, cfg.category_col)
    results["wide"] = wide

    logger.info("═══ Step 3: Nest ═══")
    nested = nest(wide, cfg.group_cols)
    results["nested"] = nested

    logger.info("═══ Step 4: Fit %s ~ %s ═══", cfg.y_col, cfg.x_col)
    fits = fit_groups(
        nested, cfg.x_col, cfg.y_col,
        center_x=cfg.center_x, n_workers=cfg.n_workers,
    )
    results["fits"] = fits

    logger.info("═══ Step 5: Summarise ═══")
    summary = rank_groups(summarize_groups(nested, fits), cfg.metric)
    results["summary"] = summary

    logger.info("═══ Step 6: Filter %s < %.3g ═══", cfg.metric, cfg.threshold)
    flagged = filter_groups(summary, metric=cfg.metric, threshold=cfg.threshold)
    flagged_rows = select_raw_rows(wide, flagged, cfg.group_cols)
    results["flagged"] = flagged
    results["flagged_rows"] = flagged_rows

    for row in flagged.to_dict("records"):
        logger.info(
            "  %s: %s = %.3f",
            ", ".join(str(row[c]) for c in cfg.group_cols),
            cfg.metric, row[cfg.metric],
        )

    if not dry_run:
        out_dir = cfg.output_path
        summary.to_csv(out_dir / "summary.csv", index=False)
        flagged_rows.to_csv(out_dir / "flagged_rows.csv", index=False)
        save_config(cfg, out_dir / "config_snapshot.json")
        logger.info("Wrote outputs to %s.", out_dir)

    logger.info("Pipeline complete in %.1f s.", time.time() - t0)
    return results


# ── CLI ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(
        description="Gapnest — per-group linear models over a country/year panel",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to JSON config file (defaults used if absent).",
    )
    parser.add_argument(
        "--metric",
        type=str,
        default=None,
        help="Summary column used to rank and filter groups.",
    )
    parser.add_argument(
        "--threshold", "-t",
        type=float,
        default=None,
        help="Flag groups whose metric is below this value.",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Threads used for per-group fitting.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the pipeline without writing outputs.",
    )
    args = parser.parse_args(argv)

    cfg = load_config(args.config)
    if args.metric is not None:
        cfg.metric = args.metric
    if args.threshold is not None:
        cfg.threshold = args.threshold
    if args.workers is not None:
        cfg.n_workers = args.workers

    run_nest_pipeline(cfg, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
