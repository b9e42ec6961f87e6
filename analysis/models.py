#!/usr/bin/env python3
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from constants import DIRECT_HOP_COUNT


class QualityTier(str, Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


class AlertType(str, Enum):
    HIGH_PROFIT = 'HIGH_PROFIT'
    MEDIUM_PROFIT = 'MEDIUM_PROFIT'
    HIGH_QUALITY = 'HIGH_QUALITY'
    STANDARD = 'STANDARD'
    SYSTEM = 'SYSTEM'


@dataclass(frozen=True, slots=True)
class Token:
    """A token known to the engine; address and decimals come from the configured universe."""
    symbol: str
    address: Optional[str] = None
    decimals: Optional[int] = None


@dataclass(frozen=True, slots=True)
class VenueQuote:
    """One venue's quote for a pair as delivered by the price feed."""
    rate: float
    liquidity_usd: Optional[float] = None
    volume_usd: Optional[float] = None


@dataclass(frozen=True, slots=True)
class PricePoint:
    """A single pool observation: `rate` units of quote per unit of base at `venue`."""
    base: Token
    quote: Token
    venue: str
    rate: float
    liquidity_usd: float
    volume_usd: Optional[float]
    observed_at: float

    @property
    def pair_key(self) -> str:
        return f"{self.base.symbol}/{self.quote.symbol}"

    def to_quote(self) -> VenueQuote:
        return VenueQuote(rate=self.rate, liquidity_usd=self.liquidity_usd, volume_usd=self.volume_usd)


@dataclass(frozen=True, slots=True)
class MarketEdge:
    """A directed conversion source -> target at a venue."""
    source: str
    target: str
    venue: str
    rate: float
    liquidity_usd: float
    volume_usd: float


@dataclass(frozen=True, slots=True)
class DirectOpportunity:
    pair: str
    buy_venue: str
    sell_venue: str
    buy_rate: float
    sell_rate: float
    spread_pct: float

    @property
    def route_id(self) -> str:
        return self.pair

    @property
    def hop_count(self) -> int:
        return DIRECT_HOP_COUNT

    @property
    def label(self) -> str:
        return f"{self.pair}: {self.buy_venue} -> {self.sell_venue}"


@dataclass(frozen=True, slots=True)
class TriangularOpportunity:
    """A closed cycle; token_path[0] is the start token and is not repeated at the end."""
    token_path: Tuple[str, ...]
    venue_path: Tuple[str, ...]
    edges: Tuple[MarketEdge, ...]
    min_liquidity_usd: float
    total_volume_usd: float

    @property
    def total_rate(self) -> float:
        rate = 1.0
        for edge in self.edges:
            rate *= edge.rate
        return rate

    @property
    def venues_used(self) -> Tuple[str, ...]:
        return tuple(sorted(set(self.venue_path)))

    @property
    def signature(self) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        # Order-insensitive; two cycles over the same tokens and venues collide.
        return tuple(sorted(set(self.token_path))), self.venues_used

    @property
    def route_id(self) -> str:
        return '-'.join(sorted(self.token_path))

    @property
    def hop_count(self) -> int:
        return len(self.edges)

    @property
    def label(self) -> str:
        return ' -> '.join(self.token_path + self.token_path[:1])


OpportunityKind = Union[DirectOpportunity, TriangularOpportunity]


@dataclass(frozen=True, slots=True)
class OpportunityCandidate:
    """Envelope shared by both opportunity kinds."""
    kind: OpportunityKind
    gross_profit_pct: float
    quality_tier: QualityTier
    timestamp: float

    @property
    def is_direct(self) -> bool:
        return isinstance(self.kind, DirectOpportunity)

    @property
    def route_id(self) -> str:
        return self.kind.route_id

    @property
    def hop_count(self) -> int:
        return self.kind.hop_count

    @property
    def label(self) -> str:
        return self.kind.label


@dataclass(frozen=True, slots=True)
class CostBreakdown:
    gas_cost_pct: float
    protocol_fees_pct: float
    slippage_pct: float

    @property
    def total_pct(self) -> float:
        return self.gas_cost_pct + self.protocol_fees_pct + self.slippage_pct


@dataclass(frozen=True, slots=True)
class ValidatedOpportunity:
    candidate: OpportunityCandidate
    costs: CostBreakdown
    net_profit_pct: float
    is_profitable: bool
    quality_tier: QualityTier
    profitability_score: float
    rejection_reason: Optional[str] = None

    @property
    def kind(self) -> OpportunityKind:
        return self.candidate.kind

    @property
    def gross_profit_pct(self) -> float:
        return self.candidate.gross_profit_pct

    @property
    def route_id(self) -> str:
        return self.candidate.route_id

    @property
    def label(self) -> str:
        return self.candidate.label


@dataclass(frozen=True, slots=True)
class RejectedCandidate:
    """A candidate dropped by a filter, kept for operator visibility."""
    label: str
    reason: str
    stage: str
    gross_profit_pct: Optional[float] = None
    candidate: Optional[OpportunityCandidate] = None


@dataclass(slots=True)
class ScanResult:
    """Output of one scanner pass: accepted candidates, sampled rejections and counters."""
    candidates: List[OpportunityCandidate] = field(default_factory=list)
    rejected: List[RejectedCandidate] = field(default_factory=list)
    counters: Dict[str, int] = field(default_factory=dict)

    def count(self, name: str, amount: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + amount


@dataclass(slots=True)
class AlertRecord:
    id: str
    alert_type: AlertType
    cooldown_key: str
    emitted_at: float
    opportunity: Optional[ValidatedOpportunity] = None
    sub_type: Optional[str] = None
    details: dict = field(default_factory=dict)


@dataclass(slots=True)
class TickBundle:
    """Everything a single refresh tick hands downstream."""
    tick_id: int
    started_at: float
    finished_at: float
    data_source: str  # 'live' or 'degraded'
    opportunities: List[ValidatedOpportunity]
    rejected_sample: List[RejectedCandidate]
    scan_stats: dict
    cache_stats: dict
    alert_stats: dict
    alerts: List[AlertRecord] = field(default_factory=list)
