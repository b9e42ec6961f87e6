# scanner.py
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from analysis.analyzer import OpportunityAnalyzer
from analysis.market_graph import MarketGraph
from analysis.market_quality import MarketQuality, assess_market_quality
from analysis.models import (
    OpportunityCandidate,
    RejectedCandidate,
    TickBundle,
    ValidatedOpportunity,
)
from analysis.multi_leg_analyzer import CycleFinder
from analysis.validator import ProfitabilityValidator
from config import AppConfig
from constants import C_BLUE, C_RED, C_RESET, C_YELLOW
from errors import ComputationError, FetchFailure
from services.alert_dispatcher import AlertDispatcher
from services.execution_handoff import ExecutionHandoff
from storage.cache import OpportunityCache

logger = logging.getLogger(__name__)

DATA_SOURCE_LIVE = 'live'
DATA_SOURCE_DEGRADED = 'degraded'


class RefreshOrchestrator:
    """
    Runs the periodic refresh tick: fetch -> build graph -> scan -> validate ->
    alert -> cache -> publish. Ticks never overlap and a failed tick never stops the loop.
    """

    def __init__(
        self,
        config: AppConfig,
        price_feed,
        gas_oracle,
        cache: OpportunityCache,
        dispatcher: AlertDispatcher,
        publisher,
        execution: Optional[ExecutionHandoff] = None,
        state: Optional[Dict[str, Any]] = None,
        clock=time.time,
    ):
        self.config = config
        self.price_feed = price_feed
        self.gas_oracle = gas_oracle
        self.cache = cache
        self.dispatcher = dispatcher
        self.publisher = publisher
        self.execution = execution
        # Shared with read-side handlers (Application.bot_data in Telegram mode)
        self.state: Dict[str, Any] = state if state is not None else {}
        self._clock = clock
        self.direct_scanner = OpportunityAnalyzer(config)
        self.cycle_finder = CycleFinder(config)
        self.validator = ProfitabilityValidator(config)
        self.tick_id = 0
        self.last_bundle: Optional[TickBundle] = None

    async def start(self):
        """Starts the cache sweeper and execution consumer, then runs the main loop."""
        background = [asyncio.create_task(self._sweep_loop())]
        if self.execution is not None:
            background.append(asyncio.create_task(self.execution.consume()))
        try:
            await self._run_main_loop()
        finally:
            for task in background:
                task.cancel()
            await asyncio.gather(*background, return_exceptions=True)

    async def _run_main_loop(self):
        """The main application loop."""
        while True:
            print("\n" + "=" * 50)
            print("Starting new refresh tick...")
            try:
                await self.run_once()
                self.state['last_error'] = None
            except Exception as e:
                print(f"{C_RED}Error during refresh tick: {e}{C_RESET}")
                logger.exception("Refresh tick failed")
                self.state['last_error'] = str(e)

            if self.config.once:
                break
            print(f"Tick finished. Waiting {self.config.interval} seconds...")
            print("=" * 50)
            await asyncio.sleep(self.config.interval)

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.config.cache_sweep_interval)
            self.cache.sweep()

    async def _call(self, name: str, coro):
        """Awaits a collaborator call under the fetch timeout; timeouts surface as FetchFailure."""
        try:
            return await asyncio.wait_for(coro, timeout=self.config.fetch_timeout)
        except asyncio.TimeoutError:
            raise FetchFailure(name, f"timed out after {self.config.fetch_timeout}s")

    async def _fetch_inputs(self) -> Tuple[Optional[Dict], Dict[str, Any]]:
        """Fetches snapshot, gas price and native price concurrently. Returns (snapshot or None, fetch stats)."""
        snapshot_result, gas_result, native_result = await asyncio.gather(
            self._call('price_feed', self.price_feed.fetch_snapshot()),
            self._call('gas_oracle', self.gas_oracle.get_gas_price_in_gwei()),
            self._call('native_price', self.price_feed.get_native_token_price_in_usd()),
            return_exceptions=True,
        )
        failures: List[str] = []
        stats: Dict[str, Any] = {}

        snapshot = None
        if isinstance(snapshot_result, BaseException):
            failures.append(f"price_feed: {snapshot_result}")
            print(f"{C_RED}Price feed failed: {snapshot_result}{C_RESET}")
        else:
            snapshot = snapshot_result

        if isinstance(gas_result, BaseException) or gas_result is None:
            if gas_result is not None:
                failures.append(f"gas_oracle: {gas_result}")
            print(f"{C_YELLOW}Gas price unavailable, using fallback {self.config.fallback_gas_price_gwei} Gwei.{C_RESET}")
            stats['gas_price_gwei'] = self.config.fallback_gas_price_gwei
            stats['gas_price_source'] = 'fallback'
        else:
            stats['gas_price_gwei'] = float(gas_result)
            stats['gas_price_source'] = 'oracle'

        if isinstance(native_result, BaseException) or not native_result:
            if isinstance(native_result, BaseException):
                failures.append(f"native_price: {native_result}")
            stats['native_price_usd'] = self.config.native_price_usd
            stats['native_price_source'] = 'fallback'
        else:
            stats['native_price_usd'] = float(native_result)
            stats['native_price_source'] = 'feed'

        stats['fetch_failures'] = failures
        return snapshot, stats

    async def run_once(self) -> TickBundle:
        """Runs a single refresh tick and returns the bundle it published."""
        self.tick_id += 1
        started_at = self._clock()

        snapshot, scan_stats = await self._fetch_inputs()
        if snapshot is not None:
            data_source = DATA_SOURCE_LIVE
        else:
            data_source = DATA_SOURCE_DEGRADED
            snapshot = self.cache.get('prices', 'snapshot') or {}
            print(f"{C_YELLOW}Degraded tick: scanning {'cached' if snapshot else 'no'} price data.{C_RESET}")

        print(
            f"Gas Price: {scan_stats['gas_price_gwei']:.2f} Gwei ({scan_stats['gas_price_source']}), "
            f"Native Price: ${scan_stats['native_price_usd']:.4f} ({scan_stats['native_price_source']})"
        )

        market = MarketGraph.from_snapshot(snapshot, self.config)
        graph_stats = market.stats()
        quality = assess_market_quality(snapshot)
        print(
            f"Building graph with {C_BLUE}{graph_stats.vertex_count}{C_RESET} tokens and "
            f"{graph_stats.edge_count} edges ({graph_stats.dropped_edges} dropped), "
            f"quality score {quality.quality_score:.1f}%"
        )

        direct = self.direct_scanner.find_opportunities(snapshot, now=started_at)
        cycles = self.cycle_finder.find_opportunities(market, now=started_at)

        profitable, validator_rejected, computation_errors = self._validate(
            direct.candidates + cycles.candidates,
            scan_stats['gas_price_gwei'],
            scan_stats['native_price_usd'],
        )

        scan_stats.update({
            'vertex_count': graph_stats.vertex_count,
            'edge_count': graph_stats.edge_count,
            'dropped_edges': graph_stats.dropped_edges,
            'drop_reasons': graph_stats.drop_reasons,
            'cycle_strategy': self.cycle_finder.select_strategy(market),
            'direct': dict(direct.counters),
            'cycles': dict(cycles.counters),
            'candidates': len(direct.candidates) + len(cycles.candidates),
            'profitable': len(profitable),
            'computation_errors': computation_errors,
            'market_quality': quality.to_dict(),
        })

        rejected_sample = self._sample_rejections(direct.rejected + cycles.rejected + validator_rejected)

        alerts = self.dispatcher.process(profitable, quality)
        self._refresh_cache(snapshot if data_source == DATA_SOURCE_LIVE else None, profitable, quality)

        bundle = TickBundle(
            tick_id=self.tick_id,
            started_at=started_at,
            finished_at=self._clock(),
            data_source=data_source,
            opportunities=profitable,
            rejected_sample=rejected_sample,
            scan_stats=scan_stats,
            cache_stats=self.cache.stats(),
            alert_stats=self.dispatcher.stats(),
            alerts=alerts,
        )

        await self.publisher.publish_bundle(bundle)
        for alert in alerts:
            await self.publisher.publish_alert(alert)

        # Cached prices are stale; only a live tick may reach execution
        if self.execution is not None and self.config.execution_enabled and profitable:
            if data_source == DATA_SOURCE_LIVE:
                self.execution.submit(profitable[0])
            else:
                print(f"{C_YELLOW}Degraded tick: not handing {profitable[0].label} to execution.{C_RESET}")

        self.last_bundle = bundle
        self.state['last_bundle'] = bundle
        self.state['last_scan_time'] = time.strftime('%Y-%m-%d %H:%M:%S UTC', time.gmtime(bundle.finished_at))
        self.state['found_last_scan'] = len(profitable)
        self.state['data_source'] = data_source
        return bundle

    def _validate(
        self,
        candidates: List[OpportunityCandidate],
        gas_price_gwei: float,
        native_price_usd: float,
    ) -> Tuple[List[ValidatedOpportunity], List[RejectedCandidate], int]:
        profitable: List[ValidatedOpportunity] = []
        rejected: List[RejectedCandidate] = []
        errors = 0
        for candidate in candidates:
            try:
                validated = self.validator.validate(candidate, gas_price_gwei, native_price_usd)
            except Exception as e:
                errors += 1
                error = ComputationError(f"failed to validate {candidate.label}: {e}")
                logger.error("%s", error)
                continue
            if validated.is_profitable:
                profitable.append(validated)
            else:
                rejected.append(RejectedCandidate(
                    label=candidate.label,
                    reason=validated.rejection_reason,
                    stage='validator',
                    gross_profit_pct=candidate.gross_profit_pct,
                    candidate=candidate,
                ))
        profitable.sort(key=lambda v: v.net_profit_pct, reverse=True)
        return profitable, rejected, errors

    def _sample_rejections(self, rejected: List[RejectedCandidate]) -> List[RejectedCandidate]:
        ordered = sorted(
            rejected,
            key=lambda r: r.gross_profit_pct if r.gross_profit_pct is not None else float('-inf'),
            reverse=True,
        )
        return ordered[:self.config.rejected_sample_size]

    def _refresh_cache(
        self,
        snapshot: Optional[Dict],
        opportunities: List[ValidatedOpportunity],
        quality: MarketQuality,
    ) -> None:
        if snapshot is not None:
            self.cache.set('prices', 'snapshot', snapshot)
            for pair_key, venues in snapshot.items():
                self.cache.set('pools', pair_key, venues)
        self.cache.set('opportunities', 'latest', opportunities)
        self.cache.set('market_snapshots', 'latest', quality)
