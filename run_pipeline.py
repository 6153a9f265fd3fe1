#!/usr/bin/env python3
"""
Gapnest - Main Runner

Usage:
    python run_pipeline.py --help
    python run_pipeline.py --config gapnest_config.json
    python run_pipeline.py --config gapnest_config.json --threshold 0.3
    python run_pipeline.py --dry-run
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from gapnest.cli import main


if __name__ == "__main__":
    main()
