import pytest

from polyarb.markets import (
    InsufficientOutcomesError,
    Market,
    Token,
    subscribe_to_market,
    subscription_tokens,
)


def _market(tokens, market_id="test-market", slug="test"):
    return Market(id=market_id, slug=slug, question="Test?", tokens=tokens)


VALIDATION_CASES = [
    ("binary-market-valid", [Token("token-1", "YES"), Token("token-2", "NO")], True, 2),
    (
        "multi-outcome-valid",
        [Token("token-1", "Alice"), Token("token-2", "Bob"), Token("token-3", "Charlie")],
        True,
        3,
    ),
    ("single-outcome-invalid", [Token("token-1", "Only")], False, 0),
    ("empty-market-invalid", [], False, 0),
    (
        "market-with-empty-token-id",
        [Token("token-1", "Valid"), Token("", "Empty"), Token("token-3", "Valid")],
        True,
        2,
    ),
    ("all-empty-tokens-invalid", [Token("", "Empty1"), Token("", "Empty2")], False, 0),
    (
        "ten-outcome-market-valid",
        [Token(f"token-{i}", f"Candidate {i}") for i in range(1, 11)],
        True,
        10,
    ),
]


@pytest.mark.parametrize("name, tokens, expect_valid, expected_tokens", VALIDATION_CASES)
def test_market_token_validation(name, tokens, expect_valid, expected_tokens):
    market = _market(tokens, slug=name)
    if expect_valid:
        token_ids, _ = subscription_tokens(market)
        assert len(token_ids) == expected_tokens
    else:
        with pytest.raises(InsufficientOutcomesError):
            subscription_tokens(market)


def test_market_token_filtering():
    market = _market(
        [
            Token("valid-1", "Outcome 1"),
            Token("", "Empty"),
            Token("valid-2", "Outcome 2"),
            Token("", "Another Empty"),
            Token("valid-3", "Outcome 3"),
        ]
    )
    token_ids, outcomes = subscription_tokens(market)
    assert token_ids == ["valid-1", "valid-2", "valid-3"]
    assert outcomes == ["Outcome 1", "Outcome 2", "Outcome 3"]


@pytest.mark.parametrize(
    "count, expect_valid",
    [(0, False), (1, False), (2, True), (3, True), (10, True), (50, True)],
)
def test_market_validation_boundary_conditions(count, expect_valid):
    tokens = [Token(chr(65 + i), chr(65 + i)) for i in range(count)]
    market = _market(tokens)
    if expect_valid:
        token_ids, _ = subscription_tokens(market)
        assert len(token_ids) == count
    else:
        with pytest.raises(InsufficientOutcomesError) as info:
            subscription_tokens(market)
        assert info.value.count == count


def test_token_id_extraction():
    market = _market([Token("token-a", "A"), Token("token-b", "B"), Token("token-c", "C")])
    token_ids, outcomes = subscription_tokens(market)
    assert token_ids == ["token-a", "token-b", "token-c"]
    assert outcomes == ["A", "B", "C"]


@pytest.mark.parametrize(
    "tokens, expect_valid, expected_count",
    [
        ([Token("", "Empty"), Token("valid-1", "Valid 1"), Token("valid-2", "Valid 2")], True, 2),
        ([Token("", "Empty 1"), Token("", "Empty 2"), Token("valid-1", "Valid")], False, 1),
        (
            [
                Token("valid-1", "Valid 1"),
                Token("", "Empty 1"),
                Token("valid-2", "Valid 2"),
                Token("", "Empty 2"),
                Token("valid-3", "Valid 3"),
            ],
            True,
            3,
        ),
    ],
)
def test_market_validation_mixed_valid_invalid(tokens, expect_valid, expected_count):
    market = _market(tokens)
    if expect_valid:
        token_ids, _ = subscription_tokens(market)
        assert len(token_ids) == expected_count
    else:
        with pytest.raises(InsufficientOutcomesError) as info:
            subscription_tokens(market)
        assert info.value.count == expected_count
        assert info.value.market_id == "test-market"


def test_subscribe_to_market_passes_valid_tokens():
    calls = []
    market = _market([Token("token-1", "Valid"), Token("", "Empty"), Token("token-3", "Valid")])
    assert subscribe_to_market(market, calls.append) is True
    assert calls == [["token-1", "token-3"]]


def test_subscribe_to_market_skips_insufficient_market():
    calls = []
    market = _market([Token("token-1", "Only")])
    assert subscribe_to_market(market, calls.append) is False
    assert calls == []


def test_subscribe_to_market_reports_subscribe_failure():
    def failing(token_ids):
        raise ConnectionError("socket closed")

    market = _market([Token("token-1", "YES"), Token("token-2", "NO")])
    assert subscribe_to_market(market, failing) is False