import uuid

import pytest

from polyarb.opportunity import (
    Opportunity,
    OpportunityOutcome,
    new_multi_outcome_opportunity,
    new_opportunity,
)


def _binary(yes_price, yes_size, no_price, no_size, fee=0.01):
    return new_opportunity(
        "test-market", "test-slug", "Test question?", "yes-token", "no-token",
        yes_price, yes_size, no_price, no_size, 0.995, fee,
    )


@pytest.mark.parametrize(
    "yes_price, yes_size, no_price, no_size, expected_bps",
    [
        (0.48, 100.0, 0.48, 100.0, 304),
        (0.30, 1000.0, 0.30, 1000.0, 3940),
    ],
)
def test_binary_net_profit_bps_matches_source_cases(yes_price, yes_size, no_price, no_size, expected_bps):
    opp = _binary(yes_price, yes_size, no_price, no_size)
    assert abs(opp.net_profit_bps - expected_bps) <= 1


def test_binary_sized_by_smaller_side():
    opp = _binary(0.45, 50.0, 0.45, 200.0)
    assert opp.max_trade_size == 50.0
    assert [o.outcome for o in opp.outcomes] == ["YES", "NO"]
    assert [o.token_id for o in opp.outcomes] == ["yes-token", "no-token"]
    assert opp.outcomes[0].tick_size == 0.0
    assert opp.config_threshold == 0.995


def test_profit_accounting_invariants():
    outcomes = [OpportunityOutcome(f"t{i}", f"O{i}", 0.3, 100.0, 0.01, 5.0) for i in range(3)]
    opp = new_multi_outcome_opportunity("m", "s", "q?", outcomes, 80.0, 0.995, 0.02)
    assert opp.total_price_sum == pytest.approx(0.9)
    assert opp.profit_margin == pytest.approx(1.0 - opp.total_price_sum)
    assert opp.estimated_profit == pytest.approx(opp.profit_margin * 80.0)
    assert opp.total_fees == pytest.approx(opp.total_price_sum * 80.0 * 0.02)
    assert opp.net_profit == pytest.approx(opp.estimated_profit - opp.total_fees)
    assert opp.max_trade_size == 80.0


def test_zero_size_gives_zero_net_bps():
    outcomes = [OpportunityOutcome("a", "A", 0.4, 0.0), OpportunityOutcome("b", "B", 0.4, 0.0)]
    opp = new_multi_outcome_opportunity("m", "s", "q?", outcomes, 0.0, 0.995, 0.01)
    assert opp.net_profit_bps == 0
    assert opp.net_profit == 0.0


def test_ids_are_unique_uuids():
    first = _binary(0.48, 100.0, 0.48, 100.0)
    second = _binary(0.48, 100.0, 0.48, 100.0)
    assert str(uuid.UUID(first.id)) == first.id
    assert first.id != second.id or first.detected_at > second.detected_at


def test_binary_string_format():
    opp = _binary(0.48, 100.0, 0.48, 100.0)
    text = str(opp)
    assert text.startswith(f"Opportunity[{opp.id[:8]}] Market=test-slug YES=0.4800 NO=0.4800")
    assert f"Profit={opp.profit_bps}bps" in text


def test_multi_outcome_string_format():
    outcomes = [OpportunityOutcome(f"t{i}", f"O{i}", 0.3, 100.0) for i in range(3)]
    opp = new_multi_outcome_opportunity("m", "three-way", "q?", outcomes, 100.0, 0.995, 0.01)
    text = str(opp)
    assert text.startswith(f"Opportunity[{opp.id[:8]}] Market=three-way Outcomes=3 ")
    assert "O0=" not in text


def test_opportunity_defaults_generate_id():
    opp = Opportunity("m", "s", "q?", [])
    assert len(opp.id) == 36
    assert opp.outcomes == []