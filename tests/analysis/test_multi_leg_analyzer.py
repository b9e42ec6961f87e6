import pytest

from analysis.market_graph import MarketGraph
from analysis.models import MarketEdge, QualityTier, TriangularOpportunity
from analysis.multi_leg_analyzer import CycleFinder, build_cycle, cycle_quality_tier
from config import AppConfig

DEEP = {'liquidityUSD': 1_000_000.0, 'volumeUSD': 250_000.0}


def quote(rate, **extra):
    return {'rate': rate, **DEEP, **extra}


@pytest.fixture
def config():
    return AppConfig(cycle_strategy='auto')


@pytest.fixture
def profitable_triangle():
    # USDC -> WETH -> DAI -> USDC multiplies to 2 * 3 * 0.18 = 1.08
    return {
        'USDC/WETH': {'quickswap': quote(2.0)},
        'WETH/DAI': {'sushiswap': quote(3.0)},
        'DAI/USDC': {'quickswap': quote(0.18)},
    }


def make_cycle(rates, venues=('v1', 'v2', 'v1'), liquidity=1_000_000.0, tokens=('AAA', 'BBB', 'CCC')):
    edges = tuple(
        MarketEdge(tokens[i], tokens[(i + 1) % len(tokens)], venues[i], rate, liquidity, 50_000.0)
        for i, rate in enumerate(rates)
    )
    return TriangularOpportunity(
        token_path=tokens,
        venue_path=tuple(venues),
        edges=edges,
        min_liquidity_usd=liquidity,
        total_volume_usd=50_000.0 * len(rates),
    )


def test_eight_percent_triangle_is_found(config, profitable_triangle):
    market = MarketGraph.from_snapshot(profitable_triangle, config)
    result = CycleFinder(config).find_opportunities(market, now=5.0)

    assert len(result.candidates) == 1
    candidate = result.candidates[0]
    assert candidate.gross_profit_pct == pytest.approx(8.0)
    assert candidate.kind.total_rate == pytest.approx(1.08)
    assert set(candidate.kind.token_path) == {'USDC', 'WETH', 'DAI'}
    assert candidate.kind.venues_used == ('quickswap', 'sushiswap')
    assert candidate.kind.min_liquidity_usd == 1_000_000.0
    assert candidate.kind.total_volume_usd == 750_000.0
    assert candidate.quality_tier == QualityTier.HIGH
    assert candidate.hop_count == 3
    assert result.counters['strategy_exhaustive'] == 1


def test_reverse_direction_is_deduplicated_into_rejections(config, profitable_triangle):
    market = MarketGraph.from_snapshot(profitable_triangle, config)
    result = CycleFinder(config).find_opportunities(market)

    assert result.counters['cycles_evaluated'] == 2
    assert [r.reason for r in result.rejected] == ['non-positive profit']
    assert result.rejected[0].stage == 'cycle'


def test_non_positive_profit_is_rejected_first(config):
    finder = CycleFinder(config)
    cycle = make_cycle([0.5, 2.1, 0.95])

    candidate, reason = finder.evaluate_cycle(cycle, 0.0)

    assert candidate is None
    assert reason == 'non-positive profit'
    assert (cycle.total_rate - 1) * 100 == pytest.approx(-0.25)


@pytest.mark.parametrize('rates, venues, liquidity, reason', [
    ([1.0005, 1.0, 1.0], ('v1', 'v2', 'v1'), 1e6, 'below profit floor'),
    ([2.0, 3.0, 0.2], ('v1', 'v2', 'v1'), 1e6, 'unrealistic profit'),
    ([2.0, 3.0, 0.18], ('v1', 'v2', 'v1'), 10_000.0, 'insufficient liquidity'),
    ([2.0, 3.0, 0.18], ('v1', 'v1', 'v1'), 1e6, 'single-venue cycle'),
])
def test_rejection_reasons(config, rates, venues, liquidity, reason):
    candidate, got = CycleFinder(config).evaluate_cycle(make_cycle(rates, venues, liquidity), 0.0)

    assert candidate is None
    assert got == reason


def test_filters_apply_in_order(config):
    # Unrealistic, illiquid and single-venue at once: the profit ceiling wins
    cycle = make_cycle([2.0, 3.0, 0.2], ('v1', 'v1', 'v1'), 10.0)
    _, reason = CycleFinder(config).evaluate_cycle(cycle, 0.0)

    assert reason == 'unrealistic profit'


def test_single_venue_cycles_can_be_allowed():
    finder = CycleFinder(AppConfig(allow_single_venue_cycles=True))
    candidate, reason = finder.evaluate_cycle(make_cycle([2.0, 3.0, 0.18], ('v1', 'v1', 'v1')), 0.0)

    assert reason is None
    assert candidate.gross_profit_pct == pytest.approx(8.0)


@pytest.mark.parametrize('profit, liquidity, tier', [
    (2.5, 250_000.0, QualityTier.HIGH),
    (2.5, 150_000.0, QualityTier.MEDIUM),
    (1.5, 250_000.0, QualityTier.MEDIUM),
    (1.5, 100_000.0, QualityTier.LOW),
    (0.5, 1_000_000.0, QualityTier.LOW),
])
def test_cycle_quality_tier(profit, liquidity, tier):
    assert cycle_quality_tier(profit, liquidity) == tier


def test_strategy_selection():
    small = MarketGraph.from_snapshot({'USDC/WETH': {'a': 0.00025}}, AppConfig())

    assert CycleFinder(AppConfig(cycle_strategy='auto')).select_strategy(small) == 'exhaustive'
    assert CycleFinder(AppConfig(cycle_strategy='auto', exhaustive_vertex_limit=2)).select_strategy(small) == 'bounded'
    assert CycleFinder(AppConfig(cycle_strategy='bounded')).select_strategy(small) == 'bounded'
    assert CycleFinder(AppConfig(cycle_strategy='exhaustive', exhaustive_vertex_limit=1)).select_strategy(small) == 'exhaustive'


def test_bounded_search_keeps_best_cycle_per_base(profitable_triangle):
    config = AppConfig(cycle_strategy='bounded', base_tokens=['USDC', 'UNKNOWN'])
    market = MarketGraph.from_snapshot(profitable_triangle, config)
    result = CycleFinder(config).find_opportunities(market)

    assert result.counters['strategy_bounded'] == 1
    assert result.counters['cycles_evaluated'] == 1
    assert result.candidates[0].kind.token_path == ('USDC', 'WETH', 'DAI')
    assert result.candidates[0].gross_profit_pct == pytest.approx(8.0)


def test_bounded_search_respects_max_depth():
    square = {
        'USDC/WETH': {'v1': quote(2.0)},
        'WETH/DAI': {'v2': quote(3.0)},
        'DAI/LINK': {'v1': quote(1.0)},
        'LINK/USDC': {'v2': quote(0.18)},
    }
    shallow = AppConfig(cycle_strategy='bounded', base_tokens=['USDC'], max_depth=3)
    deep = AppConfig(cycle_strategy='bounded', base_tokens=['USDC'], max_depth=4)

    assert CycleFinder(shallow).find_opportunities(MarketGraph.from_snapshot(square, shallow)).candidates == []

    result = CycleFinder(deep).find_opportunities(MarketGraph.from_snapshot(square, deep))
    assert len(result.candidates) == 1
    assert result.candidates[0].kind.token_path == ('USDC', 'WETH', 'DAI', 'LINK')
    assert result.candidates[0].hop_count == 4


def test_build_cycle_uses_best_parallel_edge(config):
    snapshot = {
        'USDC/WETH': {'a': quote(2.0), 'b': quote(2.1)},
        'WETH/DAI': {'a': quote(3.0)},
        'DAI/USDC': {'b': quote(0.18)},
    }
    market = MarketGraph.from_snapshot(snapshot, config)
    nodes = [market.vertex_id(s) for s in ('USDC', 'WETH', 'DAI')]
    cycle = build_cycle(market, nodes)

    assert cycle.venue_path == ('b', 'a', 'b')
    assert cycle.total_rate == pytest.approx(2.1 * 3.0 * 0.18)


def test_same_cycle_from_several_bases_is_reported_once(profitable_triangle):
    config = AppConfig(cycle_strategy='bounded', base_tokens=['USDC', 'WETH', 'DAI'])
    market = MarketGraph.from_snapshot(profitable_triangle, config)
    result = CycleFinder(config).find_opportunities(market)

    assert result.counters['cycles_evaluated'] == 3
    assert len(result.candidates) == 1
    assert result.candidates[0].gross_profit_pct == pytest.approx(8.0)


def test_signature_ignores_order():
    forward = make_cycle([2.0, 3.0, 0.18], tokens=('AAA', 'BBB', 'CCC'))
    rotated = make_cycle([3.0, 0.18, 2.0], venues=('v2', 'v1', 'v1'), tokens=('BBB', 'CCC', 'AAA'))

    assert forward.signature == rotated.signature == (('AAA', 'BBB', 'CCC'), ('v1', 'v2'))
