#!/usr/bin/env python3
import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

import networkx as nx

from analysis.market_graph import MarketGraph
from analysis.models import (
    OpportunityCandidate,
    QualityTier,
    RejectedCandidate,
    ScanResult,
    TriangularOpportunity,
)
from config import AppConfig
from constants import (
    CYCLE_HIGH_QUALITY_MIN_LIQUIDITY,
    CYCLE_HIGH_QUALITY_MIN_PROFIT,
    CYCLE_MEDIUM_QUALITY_MIN_LIQUIDITY,
    CYCLE_MEDIUM_QUALITY_MIN_PROFIT,
    MIN_CYCLE_HOPS,
)

logger = logging.getLogger(__name__)

STRATEGY_EXHAUSTIVE = 'exhaustive'
STRATEGY_BOUNDED = 'bounded'


def build_cycle(market: MarketGraph, nodes: Sequence[int]) -> Optional[TriangularOpportunity]:
    """
    Closes `nodes` into a cycle using the best edge for every hop.
    Returns None when any hop has no edge.
    """
    edges = []
    for i, u in enumerate(nodes):
        edge = market.best_edge(u, nodes[(i + 1) % len(nodes)])
        if edge is None:
            return None
        edges.append(edge)
    return TriangularOpportunity(
        token_path=tuple(market.symbol(n) for n in nodes),
        venue_path=tuple(e.venue for e in edges),
        edges=tuple(edges),
        min_liquidity_usd=min(e.liquidity_usd for e in edges),
        total_volume_usd=sum(e.volume_usd for e in edges),
    )


def cycle_quality_tier(profit_pct: float, min_liquidity_usd: float) -> QualityTier:
    if profit_pct > CYCLE_HIGH_QUALITY_MIN_PROFIT and min_liquidity_usd > CYCLE_HIGH_QUALITY_MIN_LIQUIDITY:
        return QualityTier.HIGH
    if profit_pct > CYCLE_MEDIUM_QUALITY_MIN_PROFIT and min_liquidity_usd > CYCLE_MEDIUM_QUALITY_MIN_LIQUIDITY:
        return QualityTier.MEDIUM
    return QualityTier.LOW


class CycleFinder:
    """Searches the market graph for closed multi-hop cycles whose rate product exceeds one."""

    def __init__(self, config: AppConfig):
        self.config = config

    def select_strategy(self, market: MarketGraph) -> str:
        if self.config.cycle_strategy in (STRATEGY_EXHAUSTIVE, STRATEGY_BOUNDED):
            return self.config.cycle_strategy
        if market.vertex_count < self.config.exhaustive_vertex_limit:
            return STRATEGY_EXHAUSTIVE
        return STRATEGY_BOUNDED

    def find_opportunities(self, market: MarketGraph, now: Optional[float] = None) -> ScanResult:
        timestamp = time.time() if now is None else now
        strategy = self.select_strategy(market)
        if strategy == STRATEGY_EXHAUSTIVE:
            cycles = self.enumerate_triangles(market)
        else:
            cycles = self.search_bounded(market)

        result = ScanResult()
        result.count(f'strategy_{strategy}')
        accepted: Dict[tuple, OpportunityCandidate] = {}
        rejected: Dict[tuple, RejectedCandidate] = {}

        for cycle in cycles:
            result.count('cycles_evaluated')
            candidate, reason = self.evaluate_cycle(cycle, timestamp)
            key = cycle.signature
            if reason is None:
                current = accepted.get(key)
                if current is None or candidate.gross_profit_pct > current.gross_profit_pct:
                    accepted[key] = candidate
                continue
            result.count(reason.replace(' ', '_').replace('-', '_'))
            gross = (cycle.total_rate - 1) * 100
            current_rejection = rejected.get(key)
            if current_rejection is None or gross > current_rejection.gross_profit_pct:
                rejected[key] = RejectedCandidate(cycle.label, reason, 'cycle', gross)

        result.candidates = sorted(accepted.values(), key=lambda c: c.gross_profit_pct, reverse=True)
        result.rejected = sorted(rejected.values(), key=lambda r: r.gross_profit_pct, reverse=True)
        logger.debug(
            "Cycle scan (%s): %d cycles, %d accepted, %d rejected",
            strategy, len(cycles), len(result.candidates), len(result.rejected),
        )
        return result

    def enumerate_triangles(self, market: MarketGraph) -> List[TriangularOpportunity]:
        """Every 3-vertex cycle over the best-edge graph."""
        best_graph = nx.DiGraph()
        best_graph.add_edges_from(market.best_edges().keys())
        triangles = []
        for nodes in nx.simple_cycles(best_graph, length_bound=MIN_CYCLE_HOPS):
            if len(nodes) != MIN_CYCLE_HOPS:
                continue
            cycle = build_cycle(market, nodes)
            if cycle is not None:
                triangles.append(cycle)
        return triangles

    def search_bounded(self, market: MarketGraph) -> List[TriangularOpportunity]:
        """Depth-first search from each base token; keeps the highest-rate closed cycle per base."""
        cycles = []
        for symbol in self.config.base_tokens:
            start = market.vertex_id(symbol)
            if start is None:
                continue
            best = self._best_cycle_from(market, start)
            if best is not None:
                cycles.append(build_cycle(market, best[1]))
        return cycles

    def _best_cycle_from(self, market: MarketGraph, start: int) -> Optional[Tuple[float, List[int]]]:
        best: Optional[Tuple[float, List[int]]] = None
        stack: List[Tuple[List[int], float]] = [([start], 1.0)]
        while stack:
            path, rate = stack.pop()
            u = path[-1]
            for v in market.successors(u):
                edge = market.best_edge(u, v)
                if edge is None:
                    continue
                if v == start:
                    if len(path) >= MIN_CYCLE_HOPS:
                        total = rate * edge.rate
                        if best is None or total > best[0]:
                            best = (total, list(path))
                    continue
                if v in path or len(path) >= self.config.max_depth:
                    continue
                stack.append((path + [v], rate * edge.rate))
        return best

    def evaluate_cycle(
        self,
        cycle: TriangularOpportunity,
        timestamp: float,
    ) -> Tuple[Optional[OpportunityCandidate], Optional[str]]:
        """Returns (candidate, None) when the cycle passes every filter, else (None, reason)."""
        gross_profit_pct = (cycle.total_rate - 1) * 100

        if gross_profit_pct <= 0:
            return None, 'non-positive profit'
        if gross_profit_pct < self.config.min_profit_pct:
            return None, 'below profit floor'
        if gross_profit_pct > self.config.max_realistic_profit_pct:
            return None, 'unrealistic profit'
        if cycle.min_liquidity_usd < self.config.min_liquidity_usd:
            return None, 'insufficient liquidity'
        if len(cycle.venues_used) < 2 and not self.config.allow_single_venue_cycles:
            return None, 'single-venue cycle'

        return OpportunityCandidate(
            kind=cycle,
            gross_profit_pct=gross_profit_pct,
            quality_tier=cycle_quality_tier(gross_profit_pct, cycle.min_liquidity_usd),
            timestamp=timestamp,
        ), None
