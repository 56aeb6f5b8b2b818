import pytest

from rivalscope.services.costs.ledger import (
    DEFAULT_PRICING_MODEL,
    CostLedger,
    TokenUsage,
)


def test_track_usage_uses_per_million_pricing() -> None:
    ledger = CostLedger()
    cost = ledger.track_usage(
        "claude-sonnet-4-20250514", TokenUsage(input_tokens=1_000_000, output_tokens=100_000)
    )
    assert cost.input_cost == pytest.approx(3.0)
    assert cost.output_cost == pytest.approx(1.5)
    assert ledger.total_cost == pytest.approx(4.5)

    costs = ledger.session_costs()
    assert costs.request_count == 1
    assert costs.total_input_tokens == 1_000_000
    assert costs.total_output_tokens == 100_000


def test_unknown_model_falls_back_to_default_pricing() -> None:
    ledger = CostLedger()
    usage = TokenUsage(input_tokens=10_000, output_tokens=2_000)
    unknown = ledger.calculate_cost("some-new-model", usage)
    default = ledger.calculate_cost(DEFAULT_PRICING_MODEL, usage)
    assert unknown.total_cost == pytest.approx(default.total_cost)
    assert unknown.model == "some-new-model"


def test_long_context_multiplier_only_for_sonnet_4_above_threshold() -> None:
    ledger = CostLedger()
    long_usage = TokenUsage(input_tokens=300_000, output_tokens=10_000)

    sonnet = ledger.calculate_cost("claude-sonnet-4-20250514", long_usage)
    assert sonnet.input_cost == pytest.approx(0.3 * 6.0)
    assert sonnet.output_cost == pytest.approx(0.01 * 22.5)

    haiku = ledger.calculate_cost("claude-3-5-haiku-20241022", long_usage)
    assert haiku.input_cost == pytest.approx(0.3 * 0.25)

    short = ledger.calculate_cost(
        "claude-sonnet-4-20250514", TokenUsage(input_tokens=200_000, output_tokens=0)
    )
    assert short.input_cost == pytest.approx(0.2 * 3.0)


def test_external_costs_and_estimate_are_cleared_by_next_mutation() -> None:
    ledger = CostLedger()
    ledger.track_external_api_cost("serper", "Search: acme", 0.001, 1, "query")

    estimate = ledger.estimate_cost("claude-sonnet-4-20250514", 1_000, 1_000)
    assert estimate == pytest.approx(0.001 + 0.003 + 0.015)
    assert ledger.total_cost == pytest.approx(0.001)
    assert ledger.session_costs().estimated_cost == pytest.approx(estimate)

    ledger.track_external_api_cost("firecrawl", "Scrape: https://acme.example", 0.002, 1, "url")
    costs = ledger.session_costs()
    assert costs.estimated_cost is None
    assert costs.total_cost == pytest.approx(0.003)
    assert len(costs.external_api_costs) == 2
    assert costs.request_count == 0


def test_subscribers_receive_snapshots_and_can_unsubscribe_mid_notification() -> None:
    ledger = CostLedger()
    seen_a, seen_b = [], []
    unsubscribe_a = None

    def a(costs):
        seen_a.append(costs.total_cost)
        unsubscribe_a()

    def b(costs):
        seen_b.append(costs.total_cost)

    unsubscribe_a = ledger.subscribe(a)
    ledger.subscribe(b)

    ledger.track_external_api_cost("serper", "q1", 0.001)
    ledger.track_external_api_cost("serper", "q2", 0.001)

    assert seen_a == [pytest.approx(0.001)]
    assert seen_b == [pytest.approx(0.001), pytest.approx(0.002)]
    # aman dipanggil berulang
    unsubscribe_a()


def test_failing_subscriber_does_not_block_others() -> None:
    ledger = CostLedger()
    seen = []

    def broken(_):
        raise RuntimeError("boom")

    ledger.subscribe(broken)
    ledger.subscribe(lambda costs: seen.append(costs.total_cost))
    ledger.track_external_api_cost("serper", "q", 0.001)
    assert seen == [pytest.approx(0.001)]


def test_reset_twice_yields_same_zeroed_state() -> None:
    ledger = CostLedger()
    ledger.track_usage("gpt-4o-mini", TokenUsage(input_tokens=5_000, output_tokens=1_000))
    ledger.track_external_api_cost("serper", "q", 0.001)

    ledger.reset()
    first = ledger.session_costs()
    ledger.reset()
    second = ledger.session_costs()

    assert first.total_cost == second.total_cost == 0.0
    assert first.breakdown == second.breakdown == ()
    assert first.external_api_costs == second.external_api_costs == ()
    assert first.request_count == second.request_count == 0
    assert first.estimated_cost is None and second.estimated_cost is None


def test_cost_by_model_is_derived_from_breakdown() -> None:
    ledger = CostLedger()
    usage = TokenUsage(input_tokens=100_000, output_tokens=10_000)
    ledger.track_usage("claude-3-5-haiku-20241022", usage)
    ledger.track_usage("claude-3-5-haiku-20241022", usage)
    ledger.track_usage("claude-sonnet-4-20250514", usage)

    grouped = ledger.cost_by_model()
    assert grouped["claude-3-5-haiku-20241022"]["requests"] == 2
    assert grouped["claude-sonnet-4-20250514"]["requests"] == 1
    total = sum(entry["cost"] for entry in grouped.values())
    assert total == pytest.approx(ledger.total_cost)


def test_separate_ledgers_do_not_share_totals() -> None:
    first, second = CostLedger(), CostLedger()
    first.track_external_api_cost("serper", "q", 0.5)
    assert second.total_cost == 0.0
