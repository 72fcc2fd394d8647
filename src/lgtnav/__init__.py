"""lgtnav package root."""

from lgtnav.exceptions import LgtnavError, NeverThrown
from lgtnav.invariants import never

__all__ = ["__version__", "LgtnavError", "NeverThrown", "never"]

__version__ = "0.1.0"
