"""
dnsstress - DNS stress tool.

Sends DNS requests as fast as possible to a resolver or a
DNS-over-HTTPS endpoint and displays the rate and latency.
"""

__version__ = "1.0.0"

from .models import BatchSummary, IntervalStats, RunSummary, StressConfig
from .runner import StressRunner
from .statistics import StatsAggregator
from .transports import TransportError

__all__ = [
    "__version__",
    "BatchSummary",
    "IntervalStats",
    "RunSummary",
    "StressConfig",
    "StressRunner",
    "StatsAggregator",
    "TransportError",
]
