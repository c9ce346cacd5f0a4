"""
riskcore: integer fixed-point risk and accounting core for swaps, perpetuals,
pooled lending and a governed fund.
"""

# core must finish initializing before state (state records validate against core bounds).
from . import core  # noqa: F401
from . import state  # noqa: F401

__version__ = "0.1.0"
