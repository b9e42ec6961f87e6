#!/usr/bin/env python3
import asyncio
import time

import aiohttp

from constants import CHAIN_CONFIG, ETHERSCAN_API_BASE_URL
from errors import FetchFailure
from services.http_utils import api_get, log_error

BLOCKSCOUT_BASE_GAS_ORACLE_URL = "https://base.blockscout.com/api/v1/gas-price-oracle"


class EtherscanClient:
    """Gas price oracle for the configured chain."""

    def __init__(self, session: aiohttp.ClientSession, api_key: str, chain: str):
        self.session = session
        self.api_key = api_key
        self.chain = chain
        self.chain_info = CHAIN_CONFIG[chain]
        self._last_request_time = 0.0
        self._rate_limit_delay = 0.2  # Etherscan has a 5 calls/sec rate limit (200ms delay)

    async def _wait_for_rate_limit(self):
        elapsed = time.time() - self._last_request_time
        if elapsed < self._rate_limit_delay:
            await asyncio.sleep(self._rate_limit_delay - elapsed)
        self._last_request_time = time.time()

    async def get_gas_price_in_gwei(self) -> float:
        """
        Gets the current 'standard' gas price in Gwei.
        Uses Blockscout for Base chain and Etherscan for all others. Raises FetchFailure
        when no usable price comes back.
        """
        if self.chain == 'base':
            await self._wait_for_rate_limit()
            data = await api_get(BLOCKSCOUT_BASE_GAS_ORACLE_URL, self.session)
            if data and 'average' in data:
                try:
                    # Blockscout returns Gwei directly
                    return float(data['average'])
                except (ValueError, TypeError):
                    pass
            log_error(f"Could not parse gas price from Blockscout for {self.chain}: {data if data else 'No data'}")
            raise FetchFailure('blockscout', 'no usable gas price')

        if not self.api_key:
            raise FetchFailure('etherscan', 'API key not configured')

        await self._wait_for_rate_limit()
        url = f"{ETHERSCAN_API_BASE_URL}?module=gastracker&action=gasoracle&apikey={self.api_key}&chainid={self.chain_info['chainId']}"
        data = await api_get(url, self.session)
        if data and data.get('status') == '1' and isinstance(data.get('result'), dict):
            # ProposeGasPrice is for EIP-1559 chains, SafeGasPrice is a fallback
            gas_price = data['result'].get('ProposeGasPrice') or data['result'].get('SafeGasPrice')
            try:
                value = float(gas_price)
            except (ValueError, TypeError):
                value = None
            if value is not None and value > 0:
                return value

        log_error(f"Could not parse gas price from Etherscan for {self.chain}: {data if data else 'No data'}")
        raise FetchFailure('etherscan', 'no usable gas price')
