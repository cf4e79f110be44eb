"""lsfront package root."""

from lsfront.exceptions import NeverThrown
from lsfront.invariants import never

__all__ = ["__version__", "NeverThrown", "never"]

__version__ = "0.1.0"
