#!/usr/bin/env python3
import logging
import time
from itertools import combinations
from typing import Dict, List, Optional, Tuple

from analysis.market_graph import Snapshot, check_rate, normalize_quote, split_pair_key, venue_quotes
from analysis.models import (
    DirectOpportunity,
    OpportunityCandidate,
    QualityTier,
    RejectedCandidate,
    ScanResult,
)
from config import AppConfig
from constants import DIRECT_HIGH_QUALITY_MAX_SPREAD, DIRECT_MEDIUM_QUALITY_MAX_SPREAD
from errors import DataError

logger = logging.getLogger(__name__)


def direct_quality_tier(spread_pct: float) -> QualityTier:
    if spread_pct <= DIRECT_HIGH_QUALITY_MAX_SPREAD:
        return QualityTier.HIGH
    if spread_pct <= DIRECT_MEDIUM_QUALITY_MAX_SPREAD:
        return QualityTier.MEDIUM
    return QualityTier.LOW


class OpportunityAnalyzer:
    """Finds direct cross-venue spreads: buy a pair where it is cheapest, sell where it is dearest."""

    def __init__(self, config: AppConfig):
        self.config = config

    def find_opportunities(self, snapshot: Snapshot, now: Optional[float] = None) -> ScanResult:
        """Scans every pair quoted by at least two venues; each venue combination yields at most one candidate."""
        result = ScanResult()
        timestamp = time.time() if now is None else now

        for pair_key, venues in sorted(snapshot.items()):
            try:
                split_pair_key(pair_key)
                venues = venue_quotes(pair_key, venues)
            except DataError as e:
                result.count('data_errors')
                logger.debug("Skipping pair %s: %s", pair_key, e)
                continue

            rates = self._valid_rates(venues, result)
            if len(rates) < 2:
                result.count('single_venue_pairs')
                continue

            result.count('pairs_scanned')
            self._evaluate_pair(pair_key, rates, timestamp, result)

        logger.debug("Direct scan: %d candidates, counters=%s", len(result.candidates), result.counters)
        return result

    def _valid_rates(self, venues: Dict, result: ScanResult) -> List[Tuple[str, float]]:
        rates: List[Tuple[str, float]] = []
        for venue, raw in venues.items():
            try:
                quote = normalize_quote(raw)
                check_rate(quote.rate, self.config.max_edge_rate)
            except DataError as e:
                result.count('data_errors')
                logger.debug("Skipping %s quote: %s", venue, e)
                continue
            rates.append((venue, quote.rate))
        return rates

    def _evaluate_pair(
        self,
        pair_key: str,
        rates: List[Tuple[str, float]],
        timestamp: float,
        result: ScanResult,
    ) -> None:
        """Compares every pair of venues on its own so one outlier quote cannot hide the rest."""
        for first, second in combinations(sorted(rates), 2):
            result.count('venue_pairs_compared')
            buy, sell = (first, second) if first[1] <= second[1] else (second, first)
            self._evaluate_venues(pair_key, buy, sell, timestamp, result)

    def _evaluate_venues(
        self,
        pair_key: str,
        buy: Tuple[str, float],
        sell: Tuple[str, float],
        timestamp: float,
        result: ScanResult,
    ) -> None:
        buy_venue, buy_rate = buy
        sell_venue, sell_rate = sell
        spread_pct = (sell_rate - buy_rate) * 100 / buy_rate
        label = f"{pair_key}: {buy_venue} -> {sell_venue}"

        if spread_pct > self.config.max_realistic_spread_pct:
            result.count('data_errors')
            result.count('unrealistic_spreads')
            result.rejected.append(RejectedCandidate(label, 'unrealistic spread', 'direct', spread_pct))
            return
        if spread_pct < self.config.min_spread_threshold_pct:
            result.count('noise')
            return
        if spread_pct < self.config.min_profit_pct:
            result.count('below_profit_floor')
            result.rejected.append(RejectedCandidate(label, 'below profit floor', 'direct', spread_pct))
            return

        result.candidates.append(OpportunityCandidate(
            kind=DirectOpportunity(
                pair=pair_key,
                buy_venue=buy_venue,
                sell_venue=sell_venue,
                buy_rate=buy_rate,
                sell_rate=sell_rate,
                spread_pct=spread_pct,
            ),
            gross_profit_pct=spread_pct,
            quality_tier=direct_quality_tier(spread_pct),
            timestamp=timestamp,
        ))
