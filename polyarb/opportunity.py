"""Arbitrage opportunities across the outcomes of one market."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class OpportunityOutcome:
    """One outcome to buy as part of an opportunity."""

    token_id: str
    outcome: str
    ask_price: float
    ask_size: float
    tick_size: float = 0.0
    min_size: float = 0.0


@dataclass
class Opportunity:
    """An arbitrage opportunity over two or more outcomes of a market."""

    market_id: str
    market_slug: str
    market_question: str
    outcomes: list[OpportunityOutcome]
    total_price_sum: float = 0.0
    profit_margin: float = 0.0
    profit_bps: int = 0
    max_trade_size: float = 0.0
    estimated_profit: float = 0.0
    total_fees: float = 0.0
    net_profit: float = 0.0
    net_profit_bps: int = 0
    config_threshold: float = 0.0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    detected_at: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        if len(self.outcomes) == 2:
            first, second = self.outcomes
            return (
                f"Opportunity[{self.id[:8]}] Market={self.market_slug} "
                f"{first.outcome}={first.ask_price:.4f} {second.outcome}={second.ask_price:.4f} "
                f"Sum={self.total_price_sum:.4f} Profit={self.profit_bps}bps "
                f"Size={self.max_trade_size:.2f} Est=${self.estimated_profit:.2f}"
            )
        return (
            f"Opportunity[{self.id[:8]}] Market={self.market_slug} "
            f"Outcomes={len(self.outcomes)} Sum={self.total_price_sum:.4f} "
            f"Profit={self.profit_bps}bps Size={self.max_trade_size:.2f} "
            f"Est=${self.estimated_profit:.2f}"
        )


def new_opportunity(
    market_id,
    market_slug,
    market_question,
    yes_token_id,
    no_token_id,
    yes_ask_price,
    yes_ask_size,
    no_ask_price,
    no_ask_size,
    threshold,
    taker_fee,
):
    """Build a binary YES/NO opportunity sized by the smaller side."""
    outcomes = [
        OpportunityOutcome(yes_token_id, "YES", yes_ask_price, yes_ask_size),
        OpportunityOutcome(no_token_id, "NO", no_ask_price, no_ask_size),
    ]
    return new_multi_outcome_opportunity(
        market_id,
        market_slug,
        market_question,
        outcomes,
        min(yes_ask_size, no_ask_size),
        threshold,
        taker_fee,
    )


def new_multi_outcome_opportunity(
    market_id,
    market_slug,
    market_question,
    outcomes,
    max_trade_size,
    threshold,
    taker_fee,
):
    """Build an opportunity for N outcomes, charging the taker fee on the total cost."""
    outcomes = list(outcomes)
    price_sum = 0.0
    for outcome in outcomes:
        price_sum += outcome.ask_price

    profit_margin = 1.0 - price_sum
    total_fees = price_sum * max_trade_size * taker_fee
    gross_profit = profit_margin * max_trade_size
    net_profit = gross_profit - total_fees
    net_profit_bps = int(net_profit / max_trade_size * 10000) if max_trade_size > 0 else 0

    return Opportunity(
        market_id=market_id,
        market_slug=market_slug,
        market_question=market_question,
        outcomes=outcomes,
        total_price_sum=price_sum,
        profit_margin=profit_margin,
        profit_bps=int(profit_margin * 10000),
        max_trade_size=max_trade_size,
        estimated_profit=gross_profit,
        total_fees=total_fees,
        net_profit=net_profit,
        net_profit_bps=net_profit_bps,
        config_threshold=threshold,
    )