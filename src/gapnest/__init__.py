"""
Gapnest — Nest, Model, Summarise.

Loads a country/year panel, joins auxiliary wide-format sheets onto it,
nests the rows by ``(country, continent)``, fits a linear trend inside
every group and ranks the groups by how well a straight line explains
them.
"""

__version__ = "0.1.0"

from gapnest.config import NestConfig, load_config
from gapnest.errors import (
    GapnestError,
    InsufficientDataError,
    JoinKeyMismatch,
    ParseError,
)
from gapnest.cli import run_nest_pipeline

__all__ = [
    "__version__",
    "NestConfig",
    "load_config",
    "GapnestError",
    "InsufficientDataError",
    "JoinKeyMismatch",
    "ParseError",
    "run_nest_pipeline",
]
