"""
Tests for the gapnest package surface.

Checks that the public API imports and that the error hierarchy lets
callers catch every pipeline failure as a ``ValueError``.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))


def test_package_imports():
    """Test that the main package can be imported."""
    import gapnest
    assert hasattr(gapnest, "__version__")
    assert callable(gapnest.run_nest_pipeline)


def test_config_imports():
    """Test that configuration is accessible."""
    from gapnest import NestConfig, load_config
    cfg = load_config()
    assert isinstance(cfg, NestConfig)


def test_error_hierarchy():
    """All pipeline errors are ValueErrors."""
    from gapnest import GapnestError, InsufficientDataError, JoinKeyMismatch, ParseError

    for exc in (InsufficientDataError("x"), JoinKeyMismatch("t", ["year"]), ParseError("x")):
        assert isinstance(exc, GapnestError)
        with pytest.raises(ValueError):
            raise exc


def test_parse_error_carries_context():
    from gapnest import ParseError
    err = ParseError("bad cells", source="s.csv", column="pop", values=["x", "y"])
    assert err.column == "pop"
    assert "sample" in str(err)
