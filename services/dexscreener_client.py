#!/usr/bin/env python3
import asyncio
import logging
import math
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import aiohttp

from analysis.models import PricePoint, Token, VenueQuote
from constants import CHAIN_CONFIG, DEXSCREENER_API_BASE_URL, TOKEN_UNIVERSE
from errors import FetchFailure
from services.http_utils import api_get, log_error

logger = logging.getLogger(__name__)

# DexScreener accepts up to 30 comma-separated addresses per /tokens request
MAX_ADDRESSES_PER_REQUEST = 30


def _to_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


class DexScreenerClient:
    """Price feed: one quote per (pair, venue) for the configured token universe on one chain."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        chain: str,
        tokens: Sequence[str],
        token_universe: Optional[Mapping[str, Mapping[str, Any]]] = None,
        min_liquidity_usd: float = 0.0,
    ):
        self.session = session
        self.chain = chain
        self.chain_info = CHAIN_CONFIG[chain]
        universe = TOKEN_UNIVERSE if token_universe is None else token_universe
        self.tokens = [t for t in tokens if t in universe]
        self.token_by_symbol = {
            t: Token(t, str(universe[t]['address']).lower(), universe[t].get('decimals')) for t in self.tokens
        }
        self.symbol_by_address = {
            str(universe[t]['address']).lower(): t for t in self.tokens
        }
        self.min_liquidity_usd = min_liquidity_usd
        self._last_request_time = 0.0
        self._rate_limit_delay = 0.5  # 500ms delay between requests to stay under 300 req/min

    async def _wait_for_rate_limit(self):
        elapsed = time.time() - self._last_request_time
        if elapsed < self._rate_limit_delay:
            await asyncio.sleep(self._rate_limit_delay - elapsed)
        self._last_request_time = time.time()

    async def get_native_token_price_in_usd(self) -> Optional[float]:
        """Gets the current price of the chain's native token in USD."""
        await self._wait_for_rate_limit()
        url = f"{DEXSCREENER_API_BASE_URL}/pairs/{self.chain_info['dexscreenerName']}/{self.chain_info['nativeTokenPair']}"
        data = await api_get(url, self.session)
        if data and data.get('pair') and data['pair'].get('priceUsd'):
            price = _to_float(data['pair']['priceUsd'])
            if price and price > 0:
                return price
        log_error(f"Could not parse native token price from API response for {self.chain_info['dexscreenerName']}.")
        return None

    async def get_token_pairs(self, addresses: Sequence[str]) -> Optional[List[Dict]]:
        """Fetches every pool DexScreener lists for the given token addresses."""
        await self._wait_for_rate_limit()
        url = f"{DEXSCREENER_API_BASE_URL}/tokens/{','.join(addresses)}"
        data = await api_get(url, self.session)
        if data is None:
            return None
        return data.get('pairs') or []

    async def fetch_snapshot(self) -> Dict[str, Dict[str, VenueQuote]]:
        """
        Returns {"BASE/QUOTE": {venue: VenueQuote}}. Venues whose pools fail to parse are
        omitted. Raises FetchFailure when no request returned any data.
        """
        addresses = list(self.symbol_by_address)
        if not addresses:
            raise FetchFailure('dexscreener', 'no configured token has a known address')

        chunks = [addresses[i:i + MAX_ADDRESSES_PER_REQUEST] for i in range(0, len(addresses), MAX_ADDRESSES_PER_REQUEST)]
        responses = [await self.get_token_pairs(chunk) for chunk in chunks]
        if all(r is None for r in responses):
            raise FetchFailure('dexscreener', 'every token request failed')

        observed_at = time.time()
        best: Dict[Tuple[str, str], PricePoint] = {}
        seen_pools = set()
        for pairs in responses:
            for pair in pairs or []:
                pool_address = pair.get('pairAddress')
                if pool_address:
                    if pool_address in seen_pools:
                        continue
                    seen_pools.add(pool_address)
                point = self._parse_pair(pair, observed_at)
                if point is None:
                    continue
                current = best.get((point.pair_key, point.venue))
                if current is None or point.liquidity_usd > current.liquidity_usd:
                    best[(point.pair_key, point.venue)] = point

        snapshot: Dict[str, Dict[str, VenueQuote]] = {}
        for (pair_key, venue), point in sorted(best.items()):
            snapshot.setdefault(pair_key, {})[venue] = point.to_quote()
        logger.info("DexScreener snapshot: %d pairs, %d venue quotes", len(snapshot), len(best))
        return snapshot

    def _parse_pair(self, pair: Dict, observed_at: float) -> Optional[PricePoint]:
        if pair.get('chainId') != self.chain_info['dexscreenerName']:
            return None
        try:
            base = self.symbol_by_address.get(pair['baseToken']['address'].lower())
            quote = self.symbol_by_address.get(pair['quoteToken']['address'].lower())
            venue = pair['dexId']
        except (KeyError, AttributeError, TypeError):
            return None
        if not base or not quote or base == quote:
            return None

        rate = _to_float(pair.get('priceNative'))
        if rate is None or rate <= 0:
            return None
        liquidity = _to_float((pair.get('liquidity') or {}).get('usd'))
        if liquidity is None or liquidity < self.min_liquidity_usd:
            return None
        volume = _to_float((pair.get('volume') or {}).get('h24'))

        # One canonical orientation per pair so every venue lands under the same key
        if base > quote:
            base, quote, rate = quote, base, 1.0 / rate
        return PricePoint(
            base=self.token_by_symbol[base],
            quote=self.token_by_symbol[quote],
            venue=venue,
            rate=rate,
            liquidity_usd=liquidity,
            volume_usd=volume,
            observed_at=observed_at,
        )
