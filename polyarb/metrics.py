"""In-process metrics: counters, gauges and histograms for the arbitrage engine."""

from __future__ import annotations

import bisect
import math
import threading
from collections.abc import Iterable

DEF_BUCKETS: tuple[float, ...] = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def exponential_buckets(start, factor, count):
    """Return ``count`` bucket bounds starting at ``start``, each ``factor`` times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    bound = float(start)
    for _ in range(count):
        buckets.append(bound)
        bound *= factor
    return buckets


class Counter:
    """A monotonically increasing value."""

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease")
        with self._lock:
            self._value += amount


class Gauge:
    """A value that can be set to anything."""

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)


class Histogram:
    """Counts observations into cumulative buckets and tracks their sum."""

    def __init__(
        self, name: str, help_text: str = "", buckets: Iterable[float] = DEF_BUCKETS
    ) -> None:
        bounds = [float(b) for b in buckets if not math.isinf(b)]
        if any(lower >= upper for lower, upper in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be in strictly increasing order")
        self.name = name
        self.help_text = help_text
        self.buckets: tuple[float, ...] = tuple(bounds)
        self._counts = [0] * (len(bounds) + 1)
        self._sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        index = bisect.bisect_left(self.buckets, value)
        with self._lock:
            self._counts[index] += 1
            self._sum += value

    @property
    def count(self) -> int:
        with self._lock:
            return sum(self._counts)

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    def bucket_counts(self) -> dict[float, int]:
        """Cumulative observation counts keyed by upper bound, ending with +inf."""
        with self._lock:
            counts = list(self._counts)
        result: dict[float, int] = {}
        running = 0
        for bound, observed in zip((*self.buckets, math.inf), counts):
            running += observed
            result[bound] = running
        return result


class CounterVec:
    """A family of counters distinguished by label values."""

    def __init__(self, name: str, help_text: str, label_names: Iterable[str]) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names: tuple[str, ...] = tuple(label_names)
        self._children: dict[tuple[str, ...], Counter] = {}
        self._lock = threading.Lock()

    def labels(self, *args) -> Counter:
        if len(args) != len(self.label_names):
            raise ValueError(
                f"expected {len(self.label_names)} label values, got {len(args)}"
            )
        key = tuple(str(a) for a in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = Counter(self.name, self.help_text)
                self._children[key] = child
            return child


_PROFIT_BPS_BUCKETS = (10, 25, 50, 100, 200, 500, 1000, 2000, 5000)

OPPORTUNITIES_DETECTED_TOTAL = Counter(
    "polymarket_arb_opportunities_detected_total",
    "Total number of arbitrage opportunities detected",
)
OPPORTUNITY_PROFIT_BPS = Histogram(
    "polymarket_arb_opportunity_profit_bps",
    "Arbitrage opportunity profit margin in basis points",
    _PROFIT_BPS_BUCKETS,
)
OPPORTUNITY_SIZE_USD = Histogram(
    "polymarket_arb_opportunity_size_usd",
    "Arbitrage opportunity trade size in USD",
    exponential_buckets(10, 2, 10),
)
DETECTION_DURATION_SECONDS = Histogram(
    "polymarket_arb_detection_duration_seconds",
    "Duration of arbitrage detection loop",
)
OPPORTUNITIES_REJECTED_TOTAL = CounterVec(
    "polymarket_arb_opportunities_rejected_total",
    "Total number of arbitrage opportunities rejected",
    ["reason"],
)
NET_PROFIT_BPS = Histogram(
    "polymarket_arb_net_profit_bps",
    "Arbitrage opportunity net profit after fees in basis points",
    _PROFIT_BPS_BUCKETS,
)
END_TO_END_LATENCY_SECONDS = Histogram(
    "polymarket_arb_e2e_latency_seconds",
    "End-to-end latency from orderbook update to opportunity detection",
    (0.0001, 0.0002, 0.0005, 0.001, 0.002, 0.005, 0.01, 0.025, 0.05, 0.1),
)

CIRCUIT_BREAKER_ENABLED = Gauge(
    "polymarket_circuit_breaker_enabled",
    "Whether circuit breaker allows trade execution (1=enabled, 0=disabled)",
)
CIRCUIT_BREAKER_BALANCE = Gauge(
    "polymarket_circuit_breaker_balance_usdc",
    "Last checked USDC balance in the wallet",
)
CIRCUIT_BREAKER_DISABLE_THRESHOLD = Gauge(
    "polymarket_circuit_breaker_disable_threshold_usdc",
    "Current USDC balance threshold for disabling execution (dynamically calculated)",
)
CIRCUIT_BREAKER_ENABLE_THRESHOLD = Gauge(
    "polymarket_circuit_breaker_enable_threshold_usdc",
    "Current USDC balance threshold for re-enabling execution (with hysteresis)",
)
CIRCUIT_BREAKER_AVG_TRADE_SIZE = Gauge(
    "polymarket_circuit_breaker_avg_trade_size_usdc",
    "Rolling average trade size from recent trades (used for threshold calculation)",
)
CIRCUIT_BREAKER_STATE_CHANGES = Counter(
    "polymarket_circuit_breaker_state_changes_total",
    "Total number of times circuit breaker changed state (enabled/disabled)",
)
CIRCUIT_BREAKER_CHECK_DURATION = Histogram(
    "polymarket_circuit_breaker_check_duration_seconds",
    "Time taken to check wallet balance",
)