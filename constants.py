#!/usr/bin/env python3
from typing import Dict, Union

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- API Configuration ---
ETHERSCAN_API_BASE_URL = 'https://api.etherscan.io/v2/api'
DEXSCREENER_API_BASE_URL = 'https://api.dexscreener.com/latest/dex'

# --- Environment Variable Names ---
ETHERSCAN_API_KEY_ENV_VAR = 'ETHERSCAN_API_KEY'
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'
LOG_LEVEL_ENV_VAR = 'LOG_LEVEL'

# --- Chain Configuration ---
CHAIN_CONFIG: Dict[str, Dict[str, Union[str, int]]] = {
    'polygon': {
        'chainId': 137,
        'dexscreenerName': 'polygon',
        'nativeTokenPair': '0x6e7a5fafcec6bb1e78bae2a1f0b612012bf14827',  # WMATIC/USDC
        'nativeSymbol': 'MATIC',
    },
    'ethereum': {
        'chainId': 1,
        'dexscreenerName': 'ethereum',
        'nativeTokenPair': '0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640',  # WETH/USDC
        'nativeSymbol': 'ETH',
    },
    'base': {
        'chainId': 8453,
        'dexscreenerName': 'base',
        'nativeTokenPair': '0x833589fcd6edb6e08f4c7c32d4f71b54bda02913',
        'nativeSymbol': 'ETH',
    },
}

# --- Token Universe (Polygon, lowercase addresses) ---
TOKEN_UNIVERSE: Dict[str, Dict[str, Union[str, int]]] = {
    'USDC': {'address': '0x2791bca1f2de4661ed88a30c99a7a9449aa84174', 'decimals': 6},
    'WETH': {'address': '0x7ceb23fd6bc0add59e62ac25578270cff1b9f619', 'decimals': 18},
    'WMATIC': {'address': '0x0d500b1d8e8ef31e21c99d1db9a6444d3adf1270', 'decimals': 18},
    'USDT': {'address': '0xc2132d05d31c914a87c6611c10748aeb04b58e8f', 'decimals': 6},
    'DAI': {'address': '0x8f3cf7ad23cd3cafb9b98f4040ab1000e0d09b87', 'decimals': 18},
    'AAVE': {'address': '0xd6df932a45c0f255f85145f286ea0b292b21c90b', 'decimals': 18},
    'LINK': {'address': '0x53e0bca35ec356bd5dddfebbd1fc0fd03fabad39', 'decimals': 18},
    'WBTC': {'address': '0x1bfd67037b42cf73acf2047067bd4f2c47d9bfd6', 'decimals': 8},
    'CRV': {'address': '0x172370d5cd63279efa6d502dab29171933a610af', 'decimals': 18},
    'UNI': {'address': '0xb33eaad8d922b1083446dc23f610c2567fb5180f', 'decimals': 18},
}

# Major liquid assets used as DFS seeds for the bounded cycle search
DEFAULT_BASE_TOKENS = ['USDC', 'WETH', 'WMATIC', 'USDT', 'DAI']

# --- Graph Sanity ---
MAX_EDGE_RATE = 1e6
DEFAULT_EDGE_LIQUIDITY_USD = 100000.0
DEFAULT_EDGE_VOLUME_USD = 50000.0
MIN_CYCLE_HOPS = 3

# --- Gas Configuration ---
BASE_GAS_UNITS = 300000
GAS_UNITS_PER_HOP = 150000
DIRECT_HOP_COUNT = 2  # buy + sell

# --- Quality Tiers ---
DIRECT_HIGH_QUALITY_MAX_SPREAD = 5.0
DIRECT_MEDIUM_QUALITY_MAX_SPREAD = 10.0
CYCLE_HIGH_QUALITY_MIN_PROFIT = 2.0
CYCLE_HIGH_QUALITY_MIN_LIQUIDITY = 200000.0
CYCLE_MEDIUM_QUALITY_MIN_PROFIT = 1.0
CYCLE_MEDIUM_QUALITY_MIN_LIQUIDITY = 100000.0

# --- Market Quality ---
SUSPICIOUS_SPREAD_PCT = 10.0

# --- Alert Classification ---
HIGH_PROFIT_ALERT_PCT = 2.0
MEDIUM_PROFIT_ALERT_PCT = 1.0
ALERT_HISTORY_WINDOW_SECONDS = 24 * 60 * 60
LOW_DATA_QUALITY_FLOOR = 20.0
ANOMALOUS_OPPORTUNITY_COUNT = 50
ANOMALOUS_MAX_SPREAD_PCT = 100.0

# --- Cache Defaults (seconds / entries) ---
CACHE_NAMESPACES = ('prices', 'pools', 'opportunities', 'market_snapshots')
CACHE_DEFAULT_TTL: Dict[str, float] = {
    'prices': 30.0,
    'pools': 60.0,
    'opportunities': 15.0,
    'market_snapshots': 45.0,
}
CACHE_DEFAULT_MAX_SIZE: Dict[str, int] = {
    'prices': 1000,
    'pools': 500,
    'opportunities': 200,
    'market_snapshots': 100,
}
CACHE_SWEEP_INTERVAL_SECONDS = 120.0
