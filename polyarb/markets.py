"""Markets as discovered, and the choice of tokens to subscribe to for each."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class Token:
    """One outcome token of a market."""

    token_id: str
    outcome: str
    price: float = 0.0


@dataclass
class Market:
    """A prediction market with its outcome tokens."""

    id: str
    slug: str
    question: str
    tokens: list[Token] = field(default_factory=list)
    active: bool = True
    closed: bool = False
    description: str = ""


class InsufficientOutcomesError(ValueError):
    """Raised when a market has fewer than two usable outcome tokens."""

    def __init__(self, market_id: str, count: int) -> None:
        super().__init__(f"market {market_id} has {count} usable outcome tokens, need at least 2")
        self.market_id = market_id
        self.count = count


def subscription_tokens(market):
    """Return ``(token_ids, outcome_names)`` for the tokens of ``market`` with an id.

    Raises InsufficientOutcomesError if the market has fewer than two tokens,
    or fewer than two once tokens without an id are dropped.
    """
    if len(market.tokens) < 2:
        logger.warning(
            "market-has-insufficient-outcomes market-id=%s slug=%s outcome-count=%d",
            market.id, market.slug, len(market.tokens),
        )
        raise InsufficientOutcomesError(market.id, len(market.tokens))

    token_ids: list[str] = []
    outcome_names: list[str] = []
    for token in market.tokens:
        if not token.token_id:
            logger.warning(
                "market-has-token-with-empty-id market-id=%s slug=%s outcome=%s",
                market.id, market.slug, token.outcome,
            )
            continue
        token_ids.append(token.token_id)
        outcome_names.append(token.outcome)

    if len(token_ids) < 2:
        logger.warning(
            "market-has-insufficient-valid-tokens market-id=%s slug=%s valid-token-count=%d",
            market.id, market.slug, len(token_ids),
        )
        raise InsufficientOutcomesError(market.id, len(token_ids))

    return token_ids, outcome_names


def subscribe_to_market(market, subscribe: Callable[[list[str]], object]):
    """Subscribe to every usable outcome token of ``market`` through ``subscribe``.

    Problems are logged rather than raised, so a stream of new markets keeps
    flowing. Returns True when the subscription was made.
    """
    try:
        token_ids, outcome_names = subscription_tokens(market)
    except InsufficientOutcomesError:
        return False

    try:
        subscribe(token_ids)
    except Exception:
        logger.exception(
            "subscribe-failed market-id=%s slug=%s token-ids=%s",
            market.id, market.slug, token_ids,
        )
        return False

    logger.info(
        "subscribed-to-market slug=%s question=%s outcome-count=%d outcomes=%s",
        market.slug, market.question, len(token_ids), outcome_names,
    )
    return True