"""Detection of arbitrage across all outcome tokens of a market."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from polyarb import metrics
from polyarb.opportunity import (
    Opportunity,
    OpportunityOutcome,
    new_multi_outcome_opportunity,
)

logger = logging.getLogger(__name__)

DEFAULT_TICK_SIZE = 0.01
DEFAULT_MIN_SIZE = 5.0
OPPORTUNITY_QUEUE_SIZE = 10000

_BOX_LINE = "─" * 76
_RULE = "─" * 77


@dataclass
class OutcomeToken:
    """A token and the outcome it pays out on."""

    token_id: str
    outcome: str


@dataclass
class MarketSubscription:
    """A subscribed market with its outcome tokens in order."""

    market_id: str
    market_slug: str
    question: str
    outcomes: list[OutcomeToken] = field(default_factory=list)


@dataclass
class OrderbookSnapshot:
    """Top of book for one token."""

    market_id: str = ""
    token_id: str = ""
    outcome: str = ""
    best_bid_price: float = 0.0
    best_bid_size: float = 0.0
    best_ask_price: float = 0.0
    best_ask_size: float = 0.0
    last_updated: datetime = field(default_factory=datetime.now)


@dataclass
class DetectorConfig:
    """Thresholds and fees that decide what counts as an opportunity."""

    threshold: float
    min_trade_size: float = 0.0
    max_trade_size: float = 0.0
    taker_fee: float = 0.0


class OrderbookSource(Protocol):
    def get_snapshot(self, token_id: str) -> OrderbookSnapshot | None: ...


class MarketIndex(Protocol):
    def get_market_by_token_id(self, token_id: str) -> MarketSubscription | None: ...

    def get_subscribed_markets(self) -> Iterable[MarketSubscription]: ...


class Storage(Protocol):
    def store_opportunity(self, opportunity: Opportunity) -> None: ...

    def close(self) -> None: ...


class MetadataClient(Protocol):
    def get_token_metadata(self, token_id: str) -> tuple[float, float]: ...


def _mark(ok: bool, yes: str, no: str) -> str:
    return yes if ok else no


class Detector:
    """Finds markets whose outcome asks sum to less than the threshold.

    Opportunities found by ``check_update``, ``scan_markets`` and ``run`` are
    stored and put on the ``opportunities`` queue; ``run`` puts ``None`` on the
    queue when it ends.
    """

    def __init__(self, config, orderbooks=None, markets=None, storage=None, metadata_client=None):
        self.config: DetectorConfig = config
        self.orderbooks: OrderbookSource | None = orderbooks
        self.markets: MarketIndex | None = markets
        self.storage: Storage | None = storage
        self.metadata_client: MetadataClient | None = metadata_client
        self.opportunities: queue.Queue[Opportunity | None] = queue.Queue(OPPORTUNITY_QUEUE_SIZE)
        self._stop = threading.Event()
        self._idle = threading.Event()
        self._idle.set()

    # -- detection -----------------------------------------------------------

    def detect(self, market, yes_book, no_book):
        """Check a binary market; same as ``detect_multi_outcome`` with two books."""
        return self.detect_multi_outcome(market, [yes_book, no_book])

    def detect_multi_outcome(self, market, orderbooks):
        """Return an Opportunity if buying every outcome's ask is profitable, else None."""
        orderbooks = list(orderbooks)
        if not orderbooks:
            raise ValueError("at least one orderbook is required")
        cfg = self.config

        for index, book in enumerate(orderbooks):
            if book.best_ask_price <= 0:
                logger.debug(
                    "invalid-ask-price market-slug=%s outcome-index=%d price=%f",
                    market.market_slug, index, book.best_ask_price,
                )
                return self._reject("invalid_price")
            if book.best_ask_size <= 0:
                logger.debug(
                    "invalid-ask-size market-slug=%s outcome-index=%d size=%f",
                    market.market_slug, index, book.best_ask_size,
                )
                return self._reject("invalid_size")

        price_sum = 0.0
        for book in orderbooks:
            price_sum += book.best_ask_price

        if price_sum >= cfg.threshold:
            logger.debug(
                "price-above-threshold market-slug=%s price-sum=%f threshold=%f shortfall=%f",
                market.market_slug, price_sum, cfg.threshold, price_sum - cfg.threshold,
            )
            return self._reject("price_above_threshold")

        if len(market.outcomes) < len(orderbooks):
            raise ValueError(
                f"market {market.market_id} has {len(market.outcomes)} outcomes "
                f"but {len(orderbooks)} orderbooks"
            )

        print(self.format_analysis(market, orderbooks, price_sum))

        max_size = min(book.best_ask_size for book in orderbooks)
        if max_size > cfg.max_trade_size:
            logger.debug(
                "trade-size-capped-by-max market-slug=%s calculated-size=%f max-size=%f",
                market.market_slug, max_size, cfg.max_trade_size,
            )
            max_size = cfg.max_trade_size

        if max_size < cfg.min_trade_size:
            logger.info(
                "opportunity-rejected-below-min-size market-slug=%s price-sum=%f "
                "spread=%f calculated-size=%f min-size=%f",
                market.market_slug, price_sum, cfg.threshold - price_sum,
                max_size, cfg.min_trade_size,
            )
            return self._reject("below_min_size")

        outcomes: list[OpportunityOutcome] = []
        required_usd = 0.0
        for book, token in zip(orderbooks, market.outcomes):
            tick_size, min_size = self._token_metadata(book.token_id)
            token_size = max_size / book.best_ask_price
            if token_size < min_size:
                logger.info(
                    "opportunity-rejected-below-market-minimum market-slug=%s outcome=%s "
                    "price-sum=%f spread=%f token-size=%f market-min-size=%f required-usd=%f",
                    market.market_slug, token.outcome, price_sum, cfg.threshold - price_sum,
                    token_size, min_size, min_size * book.best_ask_price,
                )
                return self._reject("below_market_min")

            required_usd = max(required_usd, min_size * book.best_ask_price)
            outcomes.append(
                OpportunityOutcome(
                    token_id=book.token_id,
                    outcome=token.outcome,
                    ask_price=book.best_ask_price,
                    ask_size=book.best_ask_size,
                    tick_size=tick_size,
                    min_size=min_size,
                )
            )

        if max_size < required_usd:
            max_size = required_usd

        opp = new_multi_outcome_opportunity(
            market.market_id,
            market.market_slug,
            market.question,
            outcomes,
            max_size,
            cfg.threshold,
            cfg.taker_fee,
        )

        if opp.net_profit <= 0:
            logger.info(
                "opportunity-rejected-negative-profit-after-fees market-slug=%s price-sum=%f "
                "spread=%f trade-size=%f gross-profit=%f total-fees=%f net-profit=%f "
                "taker-fee-rate=%f",
                market.market_slug, opp.total_price_sum, cfg.threshold - opp.total_price_sum,
                opp.max_trade_size, opp.estimated_profit, opp.total_fees, opp.net_profit,
                cfg.taker_fee,
            )
            return self._reject("negative_profit_after_fees")

        metrics.OPPORTUNITIES_DETECTED_TOTAL.inc()
        metrics.OPPORTUNITY_PROFIT_BPS.observe(float(opp.profit_bps))
        metrics.OPPORTUNITY_SIZE_USD.observe(opp.max_trade_size)
        metrics.NET_PROFIT_BPS.observe(float(opp.net_profit_bps))
        return opp

    def _reject(self, reason: str) -> None:
        metrics.OPPORTUNITIES_REJECTED_TOTAL.labels(reason).inc()
        return None

    def _token_metadata(self, token_id: str) -> tuple[float, float]:
        if self.metadata_client is None:
            return DEFAULT_TICK_SIZE, DEFAULT_MIN_SIZE
        try:
            tick_size, min_size = self.metadata_client.get_token_metadata(token_id)
        except Exception as exc:
            logger.warning("failed-to-fetch-token-metadata token-id=%s error=%s", token_id, exc)
            return DEFAULT_TICK_SIZE, DEFAULT_MIN_SIZE
        return tick_size, min_size

    # -- event handling ------------------------------------------------------

    def _snapshots_for(self, market: MarketSubscription) -> list[OrderbookSnapshot] | None:
        if self.orderbooks is None:
            return None
        books = []
        for token in market.outcomes:
            snapshot = self.orderbooks.get_snapshot(token.token_id)
            if snapshot is None:
                logger.debug(
                    "orderbook-missing-for-outcome market-id=%s outcome=%s",
                    market.market_id, token.outcome,
                )
                return None
            books.append(snapshot)
        return books

    def _publish(self, opp: Opportunity, market: MarketSubscription) -> None:
        if self.storage is not None:
            try:
                self.storage.store_opportunity(opp)
            except Exception as exc:
                logger.error(
                    "failed-to-store-opportunity opportunity-id=%s error=%s", opp.id, exc
                )
        try:
            self.opportunities.put_nowait(opp)
        except queue.Full:
            logger.warning("opportunity-channel-full market-slug=%s", market.market_slug)
            return
        logger.info(
            "arbitrage-opportunity-detected opportunity-id=%s market-slug=%s "
            "net-profit-bps=%d net-profit=%f outcome-count=%d",
            opp.id, opp.market_slug, opp.net_profit_bps, opp.net_profit, len(opp.outcomes),
        )

    def check_update(self, update):
        """Re-check the market that ``update``'s token belongs to; return any opportunity."""
        if self.markets is None:
            return None
        market = self.markets.get_market_by_token_id(update.token_id)
        if market is None:
            return None

        books = self._snapshots_for(market)
        if not books:
            return None

        opp = self.detect_multi_outcome(market, books)
        if opp is None:
            return None

        latest = max(book.last_updated for book in books)
        metrics.END_TO_END_LATENCY_SECONDS.observe((datetime.now() - latest).total_seconds())

        self._publish(opp, market)
        return opp

    def scan_markets(self):
        """Check every subscribed market with complete orderbooks; return what was found."""
        if self.markets is None:
            return []
        found = []
        for market in self.markets.get_subscribed_markets():
            books = self._snapshots_for(market)
            if not books or len(books) != len(market.outcomes):
                continue
            opp = self.detect_multi_outcome(market, books)
            if opp is None:
                continue
            self._publish(opp, market)
            found.append(opp)
        return found

    def run(self, updates):
        """Check each update until the iterable ends, a None arrives, or close() is called."""
        self._idle.clear()
        logger.info(
            "arbitrage-detector-starting threshold=%f min-trade-size=%f max-trade-size=%f",
            self.config.threshold, self.config.min_trade_size, self.config.max_trade_size,
        )
        try:
            for update in updates:
                if update is None or self._stop.is_set():
                    break
                start = time.perf_counter()
                self.check_update(update)
                metrics.DETECTION_DURATION_SECONDS.observe(time.perf_counter() - start)
        finally:
            logger.info("arbitrage-detector-stopping")
            try:
                self.opportunities.put_nowait(None)
            except queue.Full:
                logger.warning("opportunity-channel-full at shutdown")
            self._idle.set()

    def close(self):
        """Ask a running ``run`` to stop and wait until it has."""
        logger.info("closing-arbitrage-detector")
        self._stop.set()
        self._idle.wait()
        logger.info("arbitrage-detector-closed")

    # -- reporting -----------------------------------------------------------

    def format_analysis(self, market, orderbooks, price_sum):
        """Describe a potential opportunity in detail, as printed on detection."""
        cfg = self.config
        names = [token.outcome for token in market.outcomes]
        lines = [
            "",
            f"┌{_BOX_LINE}┐",
            f"│ POTENTIAL ARBITRAGE: {market.market_slug}",
            f"└{_BOX_LINE}┘",
            f"  Question: {market.question}",
            f"  Market ID: {market.market_id}",
            "",
            "  OUTCOMES:",
        ]
        for number, (book, name) in enumerate(zip(orderbooks, names), start=1):
            lines.append(
                f"    [{number}] {name:<15} Ask: ${book.best_ask_price:.4f} × "
                f"{book.best_ask_size:.2f} tokens"
            )
        lines.append("")

        spread = cfg.threshold - price_sum
        spread_bps = spread * 10000
        lines += [
            "  PRICE ANALYSIS:",
            f"    Sum of Ask Prices:  {price_sum:.6f}",
            f"    Threshold:          {cfg.threshold:.6f}",
            f"    Spread:             {spread:.6f} ({spread_bps:.0f} bps)",
            "",
        ]

        min_size = orderbooks[0].best_ask_size
        bottleneck = names[0]
        for book, name in zip(orderbooks, names):
            if book.best_ask_size < min_size:
                min_size = book.best_ask_size
                bottleneck = name

        lines += ["  SIZE ANALYSIS:", "    Available Sizes:"]
        for book, name in zip(orderbooks, names):
            usd_value = book.best_ask_size * book.best_ask_price
            lines.append(f"      {name + ':':<15} {book.best_ask_size:.2f} tokens = ${usd_value:.2f}")
        lines += [
            f"    Bottleneck:         {bottleneck} ({min_size:.2f} tokens)",
            f"    Max Trade Size:     ${min_size:.2f} (before caps)",
            "",
        ]

        capped = min_size
        if capped > cfg.max_trade_size:
            lines.append(f"    ⚠ Capped by MAX:    ${capped:.2f} → ${cfg.max_trade_size:.2f}")
            capped = cfg.max_trade_size

        meets_min = capped >= cfg.min_trade_size
        lines += [
            f"    Min Trade Size:     ${cfg.min_trade_size:.2f} {_mark(meets_min, '✓', '✗ FAILS')}",
            f"    Final Trade Size:   ${capped:.2f}",
            "",
        ]

        count = len(orderbooks)
        gross = capped * spread
        fee_each = capped * cfg.taker_fee
        total_fees = fee_each * count
        net = gross - total_fees
        lines += [
            "  PROFIT ANALYSIS:",
            f"    Gross Profit:       ${gross:.4f} ({spread_bps:.0f} bps)",
            f"    Taker Fee Rate:     {cfg.taker_fee * 100:.2f}% per outcome",
            f"    Fees ({count} outcomes):  ${total_fees:.4f} (${fee_each:.4f} × {count})",
        ]
        if net > 0:
            lines.append(f"    Net Profit:         ${net:.4f} ({net / capped * 10000:.0f} bps) ✓")
        else:
            lines.append(f"    Net Profit:         ${net:.4f} ✗ UNPROFITABLE")
        lines.append("")

        lines.append("  MARKET MINIMUM CHECK:")
        for book, name in zip(orderbooks, names):
            min_tokens = DEFAULT_MIN_SIZE
            token_amount = capped / book.best_ask_price
            required = min_tokens * book.best_ask_price
            lines.append(
                f"    {name + ':':<15} {token_amount:.2f} tokens "
                f"{_mark(token_amount >= min_tokens, '✓', '✗')} "
                f"(min: {min_tokens:.0f}, need: ${required:.2f})"
            )
        lines.append("")

        lines += [
            "  VALIDATION:",
            f"    Price Check:        {_mark(price_sum < cfg.threshold, '✓ PASS', '✗ FAIL')}"
            " (sum < threshold)",
            f"    Size Check:         {_mark(meets_min, '✓ PASS', '✗ FAIL')} (size >= min)",
            f"    Profit Check:       {_mark(net > 0, '✓ PASS', '✗ FAIL')} (net profit > 0)",
            _RULE,
        ]
        return "\n".join(lines)