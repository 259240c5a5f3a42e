"""Test package for ptreex; keeps the repository root importable."""

import sys
from pathlib import Path

# `cli.ptree` and `tests.utils` are imported from the checkout, not the installed package.
_ROOT = str(Path(__file__).resolve().parents[1])
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)
