"""A balance-driven circuit breaker that halts trading when funds run low."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from polyarb import metrics

_log = logging.getLogger(__name__)

USDC_DECIMALS = 6
TRADE_WINDOW = 20


@dataclass
class Balances:
    """Wallet balances; ``usdc`` is in base units (6 decimals)."""

    usdc: int
    matic: int = 0


class BalanceFetcher(Protocol):
    def get_balances(self, address: str) -> Balances: ...


class BalanceCheckError(RuntimeError):
    """Raised when the wallet balance could not be fetched."""


@dataclass
class BreakerConfig:
    """Settings for a BalanceCircuitBreaker; ``check_interval`` is in seconds."""

    check_interval: float
    trade_multiplier: float
    min_absolute: float
    hysteresis_ratio: float
    wallet_client: BalanceFetcher | None
    address: str = ""
    logger: logging.Logger | None = None


@dataclass(frozen=True)
class BreakerStatus:
    """A snapshot of the breaker's state."""

    enabled: bool
    last_balance: float
    last_check: datetime | None
    disable_threshold: float
    enable_threshold: float
    avg_trade_size: float
    recent_trade_count: int


class BalanceCircuitBreaker:
    """Disables trading when the USDC balance falls below a threshold derived
    from recent trade sizes, and re-enables it only once the balance clears a
    higher threshold (hysteresis)."""

    def __init__(self, config):
        if config is None:
            raise ValueError("config cannot be None")
        if config.wallet_client is None:
            raise ValueError("wallet client cannot be None")
        if config.check_interval <= 0:
            raise ValueError("check interval must be positive")
        if config.trade_multiplier <= 0:
            raise ValueError("trade multiplier must be positive")
        if config.min_absolute <= 0:
            raise ValueError("min absolute must be positive")
        if config.hysteresis_ratio < 1.0:
            raise ValueError("hysteresis ratio must be >= 1.0")

        self.check_interval = float(config.check_interval)
        self.trade_multiplier = float(config.trade_multiplier)
        self.min_absolute = float(config.min_absolute)
        self.hysteresis_ratio = float(config.hysteresis_ratio)
        self.address = config.address
        self._wallet = config.wallet_client
        self._log = config.logger or _log

        self._lock = threading.RLock()
        self._enabled = True
        self._last_balance = 0.0
        self._last_check: datetime | None = None
        self._recent_trades: deque[float] = deque(maxlen=TRADE_WINDOW)
        self._disable_threshold = self.min_absolute
        self._enable_threshold = self.min_absolute * self.hysteresis_ratio

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        metrics.CIRCUIT_BREAKER_ENABLED.set(1)
        metrics.CIRCUIT_BREAKER_DISABLE_THRESHOLD.set(self._disable_threshold)
        metrics.CIRCUIT_BREAKER_ENABLE_THRESHOLD.set(self._enable_threshold)
        metrics.CIRCUIT_BREAKER_AVG_TRADE_SIZE.set(0)

    def is_enabled(self):
        """True if trades may be executed."""
        return self._enabled

    def record_trade(self, trade_size):
        """Add a trade to the rolling window and recompute the thresholds."""
        if trade_size <= 0:
            self._log.warning("invalid-trade-size size=%f", trade_size)
            return

        with self._lock:
            self._recent_trades.append(float(trade_size))
            avg = sum(self._recent_trades) / len(self._recent_trades)
            self._disable_threshold = max(avg * self.trade_multiplier, self.min_absolute)
            self._enable_threshold = self._disable_threshold * self.hysteresis_ratio
            disable, enable, count = (
                self._disable_threshold,
                self._enable_threshold,
                len(self._recent_trades),
            )

        metrics.CIRCUIT_BREAKER_AVG_TRADE_SIZE.set(avg)
        metrics.CIRCUIT_BREAKER_DISABLE_THRESHOLD.set(disable)
        metrics.CIRCUIT_BREAKER_ENABLE_THRESHOLD.set(enable)
        self._log.debug(
            "thresholds-updated avg_trade_size=%f trade_count=%d "
            "disable_threshold=%f enable_threshold=%f",
            avg, count, disable, enable,
        )

    def check_balance(self):
        """Fetch the balance, update the enabled state, and return the balance in USDC."""
        start = time.perf_counter()
        try:
            try:
                balances = self._wallet.get_balances(self.address)
            except Exception as exc:
                self._log.error(
                    "failed-to-check-balance address=%s error=%s", self.address, exc
                )
                raise BalanceCheckError(f"get balances: {exc}") from exc

            balance = balances.usdc / 10**USDC_DECIMALS

            with self._lock:
                disable = self._disable_threshold
                enable = self._enable_threshold
                currently_enabled = self._enabled
                self._last_balance = balance
                self._last_check = datetime.now()

                if currently_enabled and balance < disable:
                    self._enabled = False
                    change = "disabled"
                elif not currently_enabled and balance >= enable:
                    self._enabled = True
                    change = "enabled"
                else:
                    change = None

            metrics.CIRCUIT_BREAKER_BALANCE.set(balance)

            if change == "disabled":
                metrics.CIRCUIT_BREAKER_ENABLED.set(0)
                metrics.CIRCUIT_BREAKER_STATE_CHANGES.inc()
                self._log.warning(
                    "circuit-breaker-disabled balance=%f disable_threshold=%f enable_threshold=%f",
                    balance, disable, enable,
                )
            elif change == "enabled":
                metrics.CIRCUIT_BREAKER_ENABLED.set(1)
                metrics.CIRCUIT_BREAKER_STATE_CHANGES.inc()
                self._log.info(
                    "circuit-breaker-enabled balance=%f disable_threshold=%f enable_threshold=%f",
                    balance, disable, enable,
                )
            else:
                self._log.debug(
                    "balance-checked balance=%f enabled=%s disable_threshold=%f "
                    "enable_threshold=%f",
                    balance, currently_enabled, disable, enable,
                )
            return balance
        finally:
            metrics.CIRCUIT_BREAKER_CHECK_DURATION.observe(time.perf_counter() - start)

    def start(self):
        """Check the balance now, then keep checking it in the background until stop()."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("circuit breaker is already running")
        self._log.info(
            "circuit-breaker-started check_interval=%f trade_multiplier=%f "
            "min_absolute=%f hysteresis_ratio=%f",
            self.check_interval, self.trade_multiplier, self.min_absolute,
            self.hysteresis_ratio,
        )
        try:
            self.check_balance()
        except BalanceCheckError as exc:
            self._log.error("initial-balance-check-failed error=%s", exc)

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._monitor_loop, name="balance-circuit-breaker", daemon=True
        )
        self._thread.start()

    def stop(self):
        """Stop background monitoring and wait for it to finish."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join()

    def _monitor_loop(self) -> None:
        while not self._stop_event.wait(self.check_interval):
            try:
                self.check_balance()
            except BalanceCheckError as exc:
                self._log.error("balance-check-error error=%s", exc)
        self._log.info("circuit-breaker-stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()

    def status(self):
        """Return the current state for debugging and reporting."""
        with self._lock:
            count = len(self._recent_trades)
            avg = sum(self._recent_trades) / count if count else 0.0
            return BreakerStatus(
                enabled=self._enabled,
                last_balance=self._last_balance,
                last_check=self._last_check,
                disable_threshold=self._disable_threshold,
                enable_threshold=self._enable_threshold,
                avg_trade_size=avg,
                recent_trade_count=count,
            )