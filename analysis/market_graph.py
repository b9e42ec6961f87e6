#!/usr/bin/env python3
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import networkx as nx

import constants
from analysis.models import MarketEdge, Token, VenueQuote
from config import AppConfig
from errors import DataError

logger = logging.getLogger(__name__)

# pairKey -> {venue -> rate | VenueQuote | {"rate", "liquidityUSD", "volumeUSD"}}
Snapshot = Mapping[str, Mapping[str, Any]]


@dataclass(slots=True)
class GraphBuildStats:
    vertex_count: int
    edge_count: int
    dropped_edges: int
    drop_reasons: Dict[str, int] = field(default_factory=dict)


def split_pair_key(pair_key: str) -> Tuple[str, str]:
    """Splits 'BASE/QUOTE' into its two symbols, raising DataError on malformed keys."""
    if not isinstance(pair_key, str) or pair_key.count('/') != 1:
        raise DataError(f"malformed pair key {pair_key!r}", reason='malformed_pair')
    base, quote = (part.strip().upper() for part in pair_key.split('/'))
    if not base or not quote:
        raise DataError(f"malformed pair key {pair_key!r}", reason='malformed_pair')
    if base == quote:
        raise DataError(f"pair {pair_key!r} has the same token on both sides", reason='self_pair')
    return base, quote


def venue_quotes(pair_key: str, venues: Any) -> Mapping[str, Any]:
    """Returns a pair's venue -> quote mapping; a missing entry is empty, anything else that is not a mapping is bad data."""
    if venues is None:
        return {}
    if not isinstance(venues, Mapping):
        raise DataError(
            f"venues for {pair_key!r} are a {type(venues).__name__}, not a mapping",
            reason='malformed_venues',
        )
    return venues


def _as_float(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise DataError(f"{what} is not numeric: {value!r}", reason='invalid_rate')
    try:
        return float(value)
    except (TypeError, ValueError):
        raise DataError(f"{what} is not numeric: {value!r}", reason='invalid_rate')


def normalize_quote(raw: Any) -> VenueQuote:
    """Accepts a bare number, a VenueQuote or a mapping and returns a VenueQuote."""
    if isinstance(raw, VenueQuote):
        return VenueQuote(
            rate=_as_float(raw.rate, 'rate'),
            liquidity_usd=raw.liquidity_usd,
            volume_usd=raw.volume_usd,
        )
    if isinstance(raw, Mapping):
        if raw.get('rate') is None:
            raise DataError("quote has no rate", reason='missing_rate')
        liquidity = raw.get('liquidityUSD', raw.get('liquidity_usd'))
        volume = raw.get('volumeUSD', raw.get('volume_usd'))
        return VenueQuote(rate=_as_float(raw['rate'], 'rate'), liquidity_usd=liquidity, volume_usd=volume)
    return VenueQuote(rate=_as_float(raw, 'rate'))


def check_rate(rate: float, max_rate: float) -> float:
    """Returns the inverse rate or raises DataError when either direction is unusable."""
    if not math.isfinite(rate):
        raise DataError(f"rate {rate} is not finite", reason='non_finite_rate')
    if rate <= 0:
        raise DataError(f"rate {rate} is not positive", reason='non_positive_rate')
    if rate > max_rate:
        raise DataError(f"rate {rate} exceeds ceiling {max_rate}", reason='rate_above_ceiling')
    try:
        inverse = 1.0 / rate
    except (OverflowError, ZeroDivisionError):
        inverse = math.inf
    if not math.isfinite(inverse) or inverse <= 0:
        raise DataError(f"inverse of rate {rate} is not finite", reason='non_finite_inverse')
    return inverse


def _metadata(value: Optional[float], default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or value < 0:
        return default
    return value


class MarketGraph:
    """
    Directed multigraph of one tick's market. Vertices are integer ids carrying a Token,
    every quote contributes an edge and its inverse, parallel venues give parallel edges.
    """

    def __init__(self, config: AppConfig, token_universe: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self.config = config
        self.token_universe = constants.TOKEN_UNIVERSE if token_universe is None else token_universe
        self.graph = nx.MultiDiGraph()
        self._ids: Dict[str, int] = {}
        self._best: Optional[Dict[Tuple[int, int], MarketEdge]] = None
        self.drop_reasons: Counter = Counter()

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, config: AppConfig, token_universe=None) -> 'MarketGraph':
        market = cls(config, token_universe)
        market.build(snapshot)
        return market

    def build(self, snapshot: Snapshot) -> GraphBuildStats:
        for pair_key, raw_venues in snapshot.items():
            try:
                venues = venue_quotes(pair_key, raw_venues)
            except DataError as e:
                self._record_drop(e)
                continue
            try:
                base, quote = split_pair_key(pair_key)
            except DataError as e:
                self._record_drop(e, count=max(len(venues), 1))
                continue
            for venue, raw in venues.items():
                try:
                    self.add_quote(base, quote, venue, raw)
                except DataError as e:
                    self._record_drop(e)
        stats = self.stats()
        logger.debug(
            "Market graph built: %d vertices, %d edges, %d dropped",
            stats.vertex_count, stats.edge_count, stats.dropped_edges,
        )
        return stats

    def add_quote(self, base: str, quote: str, venue: str, raw: Any) -> None:
        """Adds base->quote at `venue` and its inverse. Raises DataError for unusable quotes."""
        normalized = normalize_quote(raw)
        inverse = check_rate(normalized.rate, self.config.max_edge_rate)
        liquidity = _metadata(normalized.liquidity_usd, self.config.default_liquidity_usd)
        volume = _metadata(normalized.volume_usd, self.config.default_volume_usd)

        u = self._vertex(base)
        v = self._vertex(quote)
        self.graph.add_edge(u, v, edge=MarketEdge(base, quote, venue, normalized.rate, liquidity, volume))
        self.graph.add_edge(v, u, edge=MarketEdge(quote, base, venue, inverse, liquidity, volume))
        self._best = None

    def _vertex(self, symbol: str) -> int:
        node_id = self._ids.get(symbol)
        if node_id is None:
            node_id = len(self._ids)
            self._ids[symbol] = node_id
            meta = self.token_universe.get(symbol, {})
            self.graph.add_node(node_id, token=Token(symbol, meta.get('address'), meta.get('decimals')))
        return node_id

    def _record_drop(self, error: DataError, count: int = 1) -> None:
        self.drop_reasons[error.reason] += count
        logger.debug("Dropped edge: %s", error)

    # --- Read side ---

    @property
    def vertex_count(self) -> int:
        return self.graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self.graph.number_of_edges()

    @property
    def dropped_edges(self) -> int:
        return sum(self.drop_reasons.values())

    def stats(self) -> GraphBuildStats:
        return GraphBuildStats(
            vertex_count=self.vertex_count,
            edge_count=self.edge_count,
            dropped_edges=self.dropped_edges,
            drop_reasons=dict(self.drop_reasons),
        )

    def vertices(self) -> List[int]:
        return sorted(self.graph.nodes)

    def vertex_id(self, symbol: str) -> Optional[int]:
        return self._ids.get(symbol.upper())

    def symbol(self, node_id: int) -> str:
        return self.graph.nodes[node_id]['token'].symbol

    def token(self, node_id: int) -> Token:
        return self.graph.nodes[node_id]['token']

    def edges(self) -> Iterator[MarketEdge]:
        for _, _, data in self.graph.edges(data=True):
            yield data['edge']

    def edges_between(self, u: int, v: int) -> List[MarketEdge]:
        """All parallel edges u->v, one per venue quote."""
        if not self.graph.has_edge(u, v):
            return []
        return [data['edge'] for data in self.graph[u][v].values()]

    def best_edges(self) -> Dict[Tuple[int, int], MarketEdge]:
        """Highest-rate parallel edge for every connected ordered pair, computed once per build."""
        if self._best is None:
            best: Dict[Tuple[int, int], MarketEdge] = {}
            for u, v, data in self.graph.edges(data=True):
                edge = data['edge']
                current = best.get((u, v))
                if current is None or edge.rate > current.rate:
                    best[(u, v)] = edge
            self._best = best
        return self._best

    def best_edge(self, u: int, v: int) -> Optional[MarketEdge]:
        return self.best_edges().get((u, v))

    def successors(self, u: int) -> List[int]:
        return sorted(self.graph.successors(u))
