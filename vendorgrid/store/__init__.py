"""Remote store client and connectivity monitoring."""

from .client import ScorecardStore
from .connectivity import ConnectivityMonitor

__all__ = [
    "ConnectivityMonitor",
    "ScorecardStore",
]
