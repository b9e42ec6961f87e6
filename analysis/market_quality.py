#!/usr/bin/env python3
import math
from dataclasses import dataclass, field
from typing import Dict, List

from analysis.market_graph import Snapshot, normalize_quote, venue_quotes
from constants import SUSPICIOUS_SPREAD_PCT
from errors import DataError


@dataclass(slots=True)
class SuspiciousPair:
    pair: str
    spread_pct: float
    min_rate: float
    max_rate: float


@dataclass(slots=True)
class MarketQuality:
    total_pairs: int = 0
    valid_pairs: int = 0
    invalid_pairs: int = 0
    average_spread_pct: float = 0.0
    max_spread_pct: float = 0.0
    quality_score: float = 0.0
    suspicious_pairs: List[SuspiciousPair] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'total_pairs': self.total_pairs,
            'valid_pairs': self.valid_pairs,
            'invalid_pairs': self.invalid_pairs,
            'average_spread_pct': self.average_spread_pct,
            'max_spread_pct': self.max_spread_pct,
            'quality_score': self.quality_score,
            'suspicious_pairs': len(self.suspicious_pairs),
        }


def assess_market_quality(snapshot: Snapshot) -> MarketQuality:
    """
    Scores a price snapshot. A pair with fewer than two usable quotes is invalid, a pair
    whose cross-venue spread exceeds the suspicious threshold is flagged, every other pair
    counts as valid. The quality score is the valid share of all pairs, in percent.
    """
    quality = MarketQuality()
    spreads: List[float] = []

    for pair, venues in snapshot.items():
        quality.total_pairs += 1
        try:
            venues = venue_quotes(pair, venues)
        except DataError:
            quality.invalid_pairs += 1
            continue
        rates = []
        for raw in venues.values():
            try:
                rate = normalize_quote(raw).rate
            except DataError:
                continue
            if math.isfinite(rate) and rate > 0:
                rates.append(rate)

        if len(rates) < 2:
            quality.invalid_pairs += 1
            continue

        low, high = min(rates), max(rates)
        spread = (high - low) * 100 / low
        spreads.append(spread)
        if spread > SUSPICIOUS_SPREAD_PCT:
            quality.suspicious_pairs.append(SuspiciousPair(pair, spread, low, high))
        else:
            quality.valid_pairs += 1
        quality.max_spread_pct = max(quality.max_spread_pct, spread)

    if spreads:
        quality.average_spread_pct = sum(spreads) / len(spreads)
    if quality.total_pairs:
        quality.quality_score = quality.valid_pairs / quality.total_pairs * 100
    return quality
