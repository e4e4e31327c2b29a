# polyarb

Detects arbitrage in binary and multi-outcome prediction markets, and guards
trade execution with a balance-aware circuit breaker.

A market with N mutually exclusive outcomes pays out exactly 1 on one of them.
When the sum of the best ask prices over all outcomes falls below a threshold,
buying every outcome locks in a profit. `polyarb` finds such cases, sizes the
trade against available liquidity, per-token market minimums and configured
limits, and keeps only those still profitable after taker fees.

The package has no runtime dependencies.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `polyarb.detector`: `Detector` with `DetectorConfig`, plus the market and
  orderbook types `OutcomeToken`, `MarketSubscription` and `OrderbookSnapshot`.
- `polyarb.opportunity`: `Opportunity` and `OpportunityOutcome`, built with
  `new_multi_outcome_opportunity` (or `new_opportunity` for YES/NO markets).
- `polyarb.circuitbreaker`: `BalanceCircuitBreaker`, configured with
  `BreakerConfig`, reporting through `BreakerStatus`, reading `Balances`.
- `polyarb.markets`: `Market`, `Token`, `subscription_tokens`,
  `subscribe_to_market` and `InsufficientOutcomesError`.
- `polyarb.metrics`: in-process `Counter`, `Gauge`, `Histogram` and
  `CounterVec` instruments, `exponential_buckets`, and the module-level
  instruments that the detector and circuit breaker update.

## Detecting opportunities

```python
from polyarb.detector import (
    Detector, DetectorConfig, MarketSubscription, OutcomeToken, OrderbookSnapshot,
)

market = MarketSubscription(
    market_id="m1",
    market_slug="three-way",
    question="Who will win?",
    outcomes=[
        OutcomeToken(token_id="a", outcome="Alice"),
        OutcomeToken(token_id="b", outcome="Bob"),
        OutcomeToken(token_id="c", outcome="Carol"),
    ],
)
books = [
    OrderbookSnapshot(market_id="m1", token_id=t.token_id, outcome=t.outcome,
                      best_ask_price=0.32, best_ask_size=100.0)
    for t in market.outcomes
]

detector = Detector(DetectorConfig(threshold=0.995, min_trade_size=1.0,
                                   max_trade_size=1000.0, taker_fee=0.01))
opportunity = detector.detect_multi_outcome(market, books)
if opportunity is not None:
    print(opportunity, opportunity.net_profit_bps)
```

`Detector.detect_multi_outcome` returns `None` when there is no profitable
opportunity. It rejects a market when any ask price or size is not positive,
when the ask prices sum to the threshold or more, when the trade size (the
smallest ask size, capped at `max_trade_size`) is below `min_trade_size`, when
any outcome would buy fewer tokens than its market minimum, or when the net
profit after fees is not positive. Each rejection is counted in
`metrics.OPPORTUNITIES_REJECTED_TOTAL` by reason. Once the price check passes,
the detector prints a detailed analysis to standard output; the same text is
available from `Detector.format_analysis`. `Detector.detect` is the two-book
shorthand for a YES/NO market.

Fees are charged at `taker_fee` on the total cost of the trade. Per-token tick
size and minimum order size come from an optional metadata client (any object
with `get_token_metadata(token_id)` returning `(tick_size, min_size)`); without
one, or when it raises, 0.01 and 5 tokens are used.

### Wiring the detector to live data

`Detector(config, orderbooks, markets, storage, metadata_client)` takes plain
objects that provide:

- `orderbooks.get_snapshot(token_id)`: an `OrderbookSnapshot` or `None`;
- `markets.get_market_by_token_id(token_id)`: a `MarketSubscription` or `None`,
  and `markets.get_subscribed_markets()`: an iterable of them;
- `storage.store_opportunity(opportunity)`: errors are logged, not raised.

With these, `Detector.check_update(snapshot)` re-checks the market of one
updated token, `Detector.scan_markets()` checks every subscribed market whose
orderbooks are all present, and `Detector.run(updates)` checks each update from
an iterable until it ends, a `None` arrives, or `Detector.close()` is called.
Opportunities found this way are stored and put on the `Detector.opportunities`
queue; `run` puts `None` on the queue when it stops.

## Choosing tokens to subscribe to

`subscription_tokens(market)` returns the token ids and outcome names of the
tokens of a `Market` that have an id, and raises `InsufficientOutcomesError`
when fewer than two remain. `subscribe_to_market(market, subscribe)` calls
`subscribe(token_ids)` with them, logs any problem instead of raising, and
returns whether the subscription was made.

## Circuit breaker

```python
from polyarb.circuitbreaker import Balances, BalanceCircuitBreaker, BreakerConfig


class FixedWallet:
    def get_balances(self, address):
        return Balances(usdc=100_000_000)  # 100 USDC in 6-decimal base units


breaker = BalanceCircuitBreaker(BreakerConfig(
    check_interval=300.0,
    trade_multiplier=3.0,
    min_absolute=5.0,
    hysteresis_ratio=1.5,
    wallet_client=FixedWallet(),
    address="0x0000000000000000000000000000000000000001",
))
with breaker:  # start() now, stop() on exit
    if breaker.is_enabled():
        ...  # execute a trade
        breaker.record_trade(10.0)
    print(breaker.status())
```

Trading is switched off once the balance drops below
`max(average of the last 20 trades * trade_multiplier, min_absolute)`, and back
on only when it reaches that threshold times `hysteresis_ratio`.
`check_balance()` performs one check and returns the balance in USDC, raising
`BalanceCheckError` if the wallet cannot be read; `start()` checks once and then
keeps checking every `check_interval` seconds on a background thread until
`stop()`. Invalid settings make the constructor raise `ValueError`.

## What the package does not do

`polyarb` contains the detection, sizing and safety logic only. It does not
discover markets, connect to an exchange or websocket feed, maintain
orderbooks, place orders, persist opportunities, read wallet balances from a
chain, or serve metrics over HTTP; those are supplied by the objects you pass
in. It installs no command-line program.