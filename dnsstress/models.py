"""
Data models for dnsstress.

Defines the run configuration, the batch summaries workers push to the
aggregator, and the per-interval and end-of-run statistics.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ConfigError(ValueError):
    """Raised when the run configuration cannot be used."""


class Transport(Enum):
    """DNS transport protocols."""
    UDP = "udp"
    DOH = "doh"  # DNS over HTTPS


class RecordType(Enum):
    """DNS record types to query."""
    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    NS = "NS"
    SOA = "SOA"
    PTR = "PTR"
    SRV = "SRV"
    ANY = "ANY"


@dataclass(frozen=True)
class ResolverProfile:
    """A well-known public resolver that can be named on the command line."""
    name: str
    ipv4: str
    doh_url: Optional[str] = None


@dataclass(frozen=True)
class StressConfig:
    """
    Run configuration.

    Built once at startup and shared read-only by every worker,
    the aggregator and the runner.
    """
    resolver: str = "127.0.0.1:53"
    doh_endpoint: Optional[str] = None
    concurrency: int = 50
    batch_size: int = 5
    display_interval_ms: int = 1000
    verbose: bool = False
    iterative: bool = False
    random_ids: bool = False
    flood: bool = False
    record_type: RecordType = RecordType.A

    # Seconds; None leaves the socket/HTTP client to wait as long as it likes
    timeout: Optional[float] = None
    duration: Optional[float] = None
    max_batches: Optional[int] = None
    flood_limit: Optional[int] = None
    shutdown_grace: float = 2.0

    def __post_init__(self):
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.batch_size < 1:
            raise ConfigError(f"batch size must be at least 1, got {self.batch_size}")
        if self.display_interval_ms <= 0:
            raise ConfigError(
                f"display interval must be positive, got {self.display_interval_ms}"
            )
        for name in ("timeout", "duration", "max_batches", "flood_limit"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")
        if self.shutdown_grace < 0:
            raise ConfigError(f"shutdown grace must not be negative, got {self.shutdown_grace}")

    @property
    def transport(self) -> Transport:
        """DoH takes priority over the plain resolver when both are set."""
        if self.doh_endpoint:
            return Transport.DOH
        return Transport.UDP

    @property
    def destination(self) -> str:
        """Where queries are sent (DoH URL or resolver host:port)."""
        if self.doh_endpoint:
            return self.doh_endpoint
        return self.resolver

    @property
    def display_interval(self) -> float:
        """Display interval in seconds."""
        return self.display_interval_ms / 1000


@dataclass(frozen=True)
class BatchSummary:
    """
    Summary of one worker batch.

    This is the only value that travels through the shared queue.
    """
    sent: int
    errors: int = 0
    total_elapsed_ns: int = 0
    max_elapsed_ns: int = 0

    def __post_init__(self):
        if self.sent < 0 or self.errors < 0:
            raise ValueError("batch counts must not be negative")
        if self.errors > self.sent:
            raise ValueError(f"batch reports {self.errors} errors for {self.sent} queries")
        if self.total_elapsed_ns < 0 or self.max_elapsed_ns < 0:
            raise ValueError("batch durations must not be negative")
        if self.sent == 0 and self.max_elapsed_ns != 0:
            raise ValueError("an empty batch cannot have a maximum latency")
        if self.max_elapsed_ns > self.total_elapsed_ns:
            raise ValueError("maximum latency exceeds the batch total")

    @property
    def total_elapsed_ms(self) -> float:
        return self.total_elapsed_ns / 1_000_000

    @property
    def max_elapsed_ms(self) -> float:
        return self.max_elapsed_ns / 1_000_000


@dataclass
class IntervalStats:
    """Statistics for one display interval."""
    sent: int
    errors: int
    elapsed_s: float
    rate: float
    avg_latency_ms: Optional[float]
    max_latency_ms: float

    @property
    def replies(self) -> int:
        """Queries that got an answer of some kind."""
        return self.sent - self.errors

    @property
    def reply_rate(self) -> float:
        if self.elapsed_s <= 0:
            return 0.0
        return self.replies / self.elapsed_s


@dataclass
class RunSummary:
    """Totals for a complete run."""
    started_at: datetime
    completed_at: datetime
    destination: str
    transport: Transport
    domains: list[str]
    concurrency: int

    total_sent: int = 0
    total_errors: int = 0
    intervals: int = 0

    # Rates in requests/second, latencies in milliseconds
    mean_rate: float = 0.0
    peak_rate: float = 0.0
    avg_latency_ms: Optional[float] = None
    p95_latency_ms: Optional[float] = None
    max_latency_ms: float = 0.0

    @property
    def duration_seconds(self) -> float:
        """Total run duration in seconds."""
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def error_rate(self) -> float:
        """Percentage of queries that failed."""
        if self.total_sent == 0:
            return 0.0
        return (self.total_errors / self.total_sent) * 100
