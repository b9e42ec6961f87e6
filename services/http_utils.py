#!/usr/bin/env python3
import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from constants import C_RED, C_RESET

logger = logging.getLogger(__name__)


def log_error(message: str) -> None:
    """Centralized error logging."""
    print(f"{C_RED}{message}{C_RESET}")


async def api_get(
    url: str,
    session: aiohttp.ClientSession,
    retries: int = 3,
    timeout: int = 30,
    backoff: float = 2.0,
) -> Optional[Dict]:
    """Makes an async GET request with retries and timeout. Returns None once retries are exhausted."""
    for attempt in range(retries):
        try:
            async with session.get(url, timeout=timeout) as response:
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientError as e:
            if attempt < retries - 1:
                logger.debug("GET %s failed (attempt %d/%d): %s", url, attempt + 1, retries, e)
                await asyncio.sleep(backoff)
            else:
                log_error(f"API request failed after {retries} attempts: {e}")
    return None
