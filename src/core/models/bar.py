"""
Bar model used by the per-bar engine components.
"""

from datetime import datetime
from typing import NamedTuple


class Bar(NamedTuple):
    """A single OHLCV bar together with its position in the bar frame."""

    index: int
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
