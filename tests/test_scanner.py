import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from analysis.models import AlertType, DirectOpportunity
from config import AppConfig
from errors import FetchFailure
from scanner import DATA_SOURCE_DEGRADED, DATA_SOURCE_LIVE, RefreshOrchestrator
from services.alert_dispatcher import AlertDispatcher
from services.execution_handoff import ExecutionHandoff
from storage.cache import OpportunityCache

SNAPSHOT = {'USDC/WETH': {'A': 0.00026, 'B': 0.00025}}


@pytest.fixture
def config():
    return AppConfig(fetch_timeout=1.0, once=True)


@pytest.fixture
def price_feed():
    feed = MagicMock()
    feed.fetch_snapshot = AsyncMock(return_value=SNAPSHOT)
    feed.get_native_token_price_in_usd = AsyncMock(return_value=0.5)
    return feed


@pytest.fixture
def gas_oracle():
    oracle = MagicMock()
    oracle.get_gas_price_in_gwei = AsyncMock(return_value=30.0)
    return oracle


@pytest.fixture
def publisher():
    pub = MagicMock()
    pub.publish_bundle = AsyncMock()
    pub.publish_alert = AsyncMock()
    return pub


def make_orchestrator(config, price_feed, gas_oracle, publisher, cache=None, execution=None, state=None):
    return RefreshOrchestrator(
        config=config,
        price_feed=price_feed,
        gas_oracle=gas_oracle,
        cache=cache or OpportunityCache(),
        dispatcher=AlertDispatcher(config),
        publisher=publisher,
        execution=execution,
        state=state,
    )


@pytest.mark.asyncio
async def test_tick_finds_direct_spread_and_alerts(config, price_feed, gas_oracle, publisher):
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher)

    bundle = await orchestrator.run_once()

    assert bundle.data_source == DATA_SOURCE_LIVE
    assert len(bundle.opportunities) == 1
    opp = bundle.opportunities[0]
    assert isinstance(opp.kind, DirectOpportunity)
    assert opp.kind.buy_venue == 'B'
    assert opp.kind.sell_venue == 'A'
    assert opp.gross_profit_pct == pytest.approx(4.0)
    assert opp.costs.total_pct == pytest.approx(0.9, abs=1e-3)
    assert opp.net_profit_pct == pytest.approx(3.1, abs=1e-3)
    assert opp.is_profitable

    assert bundle.scan_stats['vertex_count'] == 2
    assert bundle.scan_stats['gas_price_source'] == 'oracle'
    assert bundle.scan_stats['fetch_failures'] == []

    publisher.publish_bundle.assert_awaited_once_with(bundle)
    publisher.publish_alert.assert_awaited_once()
    alert = publisher.publish_alert.call_args.args[0]
    assert alert.alert_type == AlertType.HIGH_PROFIT


@pytest.mark.asyncio
async def test_tick_refreshes_cache_and_state(config, price_feed, gas_oracle, publisher):
    cache = OpportunityCache()
    state = {}
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher, cache=cache, state=state)

    bundle = await orchestrator.run_once()

    assert cache.get('prices', 'snapshot') == SNAPSHOT
    assert cache.get('pools', 'USDC/WETH') == SNAPSHOT['USDC/WETH']
    assert cache.get('opportunities', 'latest') == bundle.opportunities
    assert cache.get('market_snapshots', 'latest').quality_score == pytest.approx(100.0)
    assert state['last_bundle'] is bundle
    assert state['found_last_scan'] == 1
    assert state['data_source'] == DATA_SOURCE_LIVE


@pytest.mark.asyncio
async def test_degraded_tick_scans_cached_snapshot(config, price_feed, gas_oracle, publisher):
    cache = OpportunityCache()
    cache.set('prices', 'snapshot', SNAPSHOT)
    price_feed.fetch_snapshot = AsyncMock(side_effect=FetchFailure('dexscreener', 'all requests failed'))
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher, cache=cache)

    bundle = await orchestrator.run_once()

    assert bundle.data_source == DATA_SOURCE_DEGRADED
    assert len(bundle.opportunities) == 1
    assert bundle.scan_stats['fetch_failures'] == ['price_feed: dexscreener: all requests failed']


@pytest.mark.asyncio
async def test_degraded_tick_does_not_reach_execution(price_feed, gas_oracle, publisher):
    config = AppConfig(once=True, execution_enabled=True)
    cache = OpportunityCache()
    cache.set('prices', 'snapshot', SNAPSHOT)
    price_feed.fetch_snapshot = AsyncMock(side_effect=FetchFailure('dexscreener', 'down'))
    execution = ExecutionHandoff(max_size=5)
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher, cache=cache, execution=execution)

    bundle = await orchestrator.run_once()

    assert bundle.data_source == DATA_SOURCE_DEGRADED
    assert len(bundle.opportunities) == 1
    assert execution.submitted == 0
    assert execution.queue.empty()


@pytest.mark.asyncio
async def test_degraded_tick_without_cache_raises_data_quality_alert(config, price_feed, gas_oracle, publisher):
    price_feed.fetch_snapshot = AsyncMock(side_effect=FetchFailure('dexscreener', 'down'))
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher)

    bundle = await orchestrator.run_once()

    assert bundle.data_source == DATA_SOURCE_DEGRADED
    assert bundle.opportunities == []
    assert [a.sub_type for a in bundle.alerts] == ['LOW_DATA_QUALITY']


@pytest.mark.asyncio
async def test_gas_oracle_failure_uses_fallback(config, price_feed, gas_oracle, publisher):
    gas_oracle.get_gas_price_in_gwei = AsyncMock(side_effect=FetchFailure('etherscan', 'bad key'))
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher)

    bundle = await orchestrator.run_once()

    assert bundle.scan_stats['gas_price_gwei'] == config.fallback_gas_price_gwei
    assert bundle.scan_stats['gas_price_source'] == 'fallback'
    assert bundle.scan_stats['fetch_failures'] == ['gas_oracle: etherscan: bad key']
    assert len(bundle.opportunities) == 1


@pytest.mark.asyncio
async def test_slow_collaborator_times_out_as_fetch_failure(price_feed, gas_oracle, publisher):
    async def never_returns():
        await asyncio.sleep(10)

    config = AppConfig(fetch_timeout=0.01, once=True)
    price_feed.get_native_token_price_in_usd = AsyncMock(side_effect=never_returns)
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher)

    bundle = await orchestrator.run_once()

    assert bundle.scan_stats['native_price_source'] == 'fallback'
    assert bundle.scan_stats['fetch_failures'][0].startswith('native_price: native_price: timed out')


@pytest.mark.asyncio
async def test_validation_error_is_counted_and_tick_continues(config, price_feed, gas_oracle, publisher):
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher)

    with patch.object(orchestrator.validator, 'validate', side_effect=ValueError('bad math')):
        bundle = await orchestrator.run_once()

    assert bundle.opportunities == []
    assert bundle.scan_stats['computation_errors'] == 1


@pytest.mark.asyncio
async def test_unprofitable_candidates_are_sampled(price_feed, gas_oracle, publisher):
    config = AppConfig(once=True, protocol_fee_pct=3.0)
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher)

    bundle = await orchestrator.run_once()

    assert bundle.opportunities == []
    assert bundle.rejected_sample[0].stage == 'validator'
    assert bundle.rejected_sample[0].reason == 'insufficient profit after costs'


@pytest.mark.asyncio
async def test_best_opportunity_is_handed_to_execution(price_feed, gas_oracle, publisher):
    config = AppConfig(once=True, execution_enabled=True)
    execution = ExecutionHandoff(max_size=5)
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher, execution=execution)

    await orchestrator.run_once()

    assert execution.submitted == 1
    assert execution.queue.get_nowait().route_id == 'USDC/WETH'


@pytest.mark.asyncio
async def test_main_loop_records_error_and_exits_when_once(config, price_feed, gas_oracle, publisher):
    state = {}
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher, state=state)

    with patch.object(orchestrator, 'run_once', new=AsyncMock(side_effect=RuntimeError('boom'))):
        await orchestrator.start()

    assert state['last_error'] == 'boom'


@pytest.mark.asyncio
async def test_main_loop_clears_error_after_successful_tick(config, price_feed, gas_oracle, publisher):
    state = {'last_error': 'old'}
    orchestrator = make_orchestrator(config, price_feed, gas_oracle, publisher, state=state)

    await orchestrator.start()

    assert state['last_error'] is None
    assert orchestrator.tick_id == 1
