"""Arbitrage detection for prediction markets, with a balance-based circuit breaker."""

__version__ = "0.1.0"

__all__ = ["circuitbreaker", "detector", "markets", "metrics", "opportunity"]