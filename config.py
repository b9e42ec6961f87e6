#!/usr/bin/env python3
import os
import argparse
from typing import NamedTuple
import constants

class AppConfig(NamedTuple):
    """Typed configuration object."""
    chain: str = 'polygon'
    tokens: tuple[str, ...] = tuple(constants.TOKEN_UNIVERSE)
    interval: int = 30
    fetch_timeout: float = 20.0
    once: bool = False
    log_level: str = 'INFO'
    # Price feed
    min_pool_liquidity_usd: float = 1000.0
    # Market graph
    max_edge_rate: float = constants.MAX_EDGE_RATE
    default_liquidity_usd: float = constants.DEFAULT_EDGE_LIQUIDITY_USD
    default_volume_usd: float = constants.DEFAULT_EDGE_VOLUME_USD
    # Direct scanner
    max_realistic_spread_pct: float = 5.0
    min_spread_threshold_pct: float = 0.01
    min_profit_pct: float = 0.1
    # Cycle finder
    cycle_strategy: str = 'auto'
    exhaustive_vertex_limit: int = 50
    base_tokens: tuple[str, ...] = tuple(constants.DEFAULT_BASE_TOKENS)
    max_depth: int = 3
    max_realistic_profit_pct: float = 10.0
    min_liquidity_usd: float = 30000.0
    allow_single_venue_cycles: bool = False
    rejected_sample_size: int = 10
    # Cost model
    base_gas_units: int = constants.BASE_GAS_UNITS
    per_hop_gas_units: int = constants.GAS_UNITS_PER_HOP
    protocol_fee_pct: float = 0.3
    max_slippage_pct: float = 0.3
    trade_notional_usd: float = 10000.0
    native_price_usd: float = 0.5
    fallback_gas_price_gwei: float = 30.0
    min_net_profit_pct: float = 0.1
    # Alerts
    alerts_enabled: bool = True
    alert_cooldown: int = 60
    alert_min_profit_pct: float = 0.5
    alert_min_net_profit_pct: float = 0.3
    alert_max_spread_pct: float = 10.0
    alert_min_liquidity_usd: float = 100000.0
    data_quality_floor: float = constants.LOW_DATA_QUALITY_FLOOR
    max_opportunity_count: int = constants.ANOMALOUS_OPPORTUNITY_COUNT
    max_observed_spread_pct: float = constants.ANOMALOUS_MAX_SPREAD_PCT
    # Cache
    cache_enabled: bool = True
    cache_prices_ttl: float = constants.CACHE_DEFAULT_TTL['prices']
    cache_pools_ttl: float = constants.CACHE_DEFAULT_TTL['pools']
    cache_opportunities_ttl: float = constants.CACHE_DEFAULT_TTL['opportunities']
    cache_market_snapshots_ttl: float = constants.CACHE_DEFAULT_TTL['market_snapshots']
    cache_prices_max_size: int = constants.CACHE_DEFAULT_MAX_SIZE['prices']
    cache_pools_max_size: int = constants.CACHE_DEFAULT_MAX_SIZE['pools']
    cache_opportunities_max_size: int = constants.CACHE_DEFAULT_MAX_SIZE['opportunities']
    cache_market_snapshots_max_size: int = constants.CACHE_DEFAULT_MAX_SIZE['market_snapshots']
    cache_sweep_interval: float = constants.CACHE_SWEEP_INTERVAL_SECONDS
    # Execution hand-off
    execution_enabled: bool = False
    execution_queue_size: int = 100
    # Credentials
    etherscan_api_key: str = ''
    telegram_enabled: bool = False
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None

    def cache_ttls(self) -> dict[str, float]:
        return {
            'prices': self.cache_prices_ttl,
            'pools': self.cache_pools_ttl,
            'opportunities': self.cache_opportunities_ttl,
            'market_snapshots': self.cache_market_snapshots_ttl,
        }

    def cache_max_sizes(self) -> dict[str, int]:
        return {
            'prices': self.cache_prices_max_size,
            'pools': self.cache_pools_max_size,
            'opportunities': self.cache_opportunities_max_size,
            'market_snapshots': self.cache_market_snapshots_max_size,
        }


def load_config() -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    defaults = AppConfig()
    parser = argparse.ArgumentParser(
        description="Detect and validate cross-venue DEX arbitrage opportunities, with rate-limited alerts.",
        epilog="Example: ./main.py --chain polygon --token USDC WETH WMATIC --min-profit 0.2 --once"
    )
    # --- Scan Arguments ---
    parser.add_argument('--chain', choices=constants.CHAIN_CONFIG.keys(), default=defaults.chain, help='Blockchain to scan (default: polygon).')
    parser.add_argument('--token', nargs='+', help='Token symbols forming the scanned universe (default: all configured tokens).')
    parser.add_argument('--interval', type=int, default=defaults.interval, help='Seconds between refresh ticks (default: 30).')
    parser.add_argument('--fetch-timeout', type=float, default=defaults.fetch_timeout, help='Timeout in seconds for each collaborator call (default: 20).')
    parser.add_argument('--once', action='store_true', help='Run a single refresh tick and exit.')
    parser.add_argument('--log-level', default=None, help='Logging level (default: INFO or $LOG_LEVEL).')
    parser.add_argument('--min-pool-liquidity', type=float, default=defaults.min_pool_liquidity_usd, help='Min USD liquidity for a pool to enter the snapshot (default: 1000).')

    # --- Detection Arguments ---
    parser.add_argument('--max-realistic-spread', type=float, default=defaults.max_realistic_spread_pct, help='Direct spreads above this percentage are treated as bad data (default: 5.0).')
    parser.add_argument('--min-spread', type=float, default=defaults.min_spread_threshold_pct, help='Direct spreads below this percentage are noise (default: 0.01).')
    parser.add_argument('--min-profit', type=float, default=defaults.min_profit_pct, help='Minimum gross profit percentage for a candidate (default: 0.1).')
    parser.add_argument('--cycle-strategy', choices=['auto', 'exhaustive', 'bounded'], default=defaults.cycle_strategy, help='Cycle search strategy (default: auto).')
    parser.add_argument('--exhaustive-vertex-limit', type=int, default=defaults.exhaustive_vertex_limit, help='Graphs smaller than this use exhaustive triangle search in auto mode (default: 50).')
    parser.add_argument('--base-token', nargs='+', help='Seed tokens for the bounded cycle search.')
    parser.add_argument('--max-depth', type=int, default=defaults.max_depth, help='Max hops in a bounded cycle search (default: 3).')
    parser.add_argument('--max-realistic-profit', type=float, default=defaults.max_realistic_profit_pct, help='Cycle profits above this percentage are treated as bad data (default: 10.0).')
    parser.add_argument('--min-liquidity', type=float, default=defaults.min_liquidity_usd, help='Min USD liquidity of every leg in a cycle (default: 30000).')
    parser.add_argument('--allow-single-venue-cycles', action='store_true', help='Accept cycles that use only one venue.')
    parser.add_argument('--rejected-sample-size', type=int, default=defaults.rejected_sample_size, help='Rejected candidates retained per tick (default: 10).')

    # --- Cost Model Arguments ---
    parser.add_argument('--dex-fee', type=float, default=defaults.protocol_fee_pct, help='Protocol fee percentage per hop (default: 0.3).')
    parser.add_argument('--slippage', type=float, default=defaults.max_slippage_pct, help='Slippage cost percentage per trade (default: 0.3).')
    parser.add_argument('--trade-notional', type=float, default=defaults.trade_notional_usd, help='Trade notional in USD used to express gas as a percentage (default: 10000).')
    parser.add_argument('--native-price', type=float, default=defaults.native_price_usd, help='Fallback native token USD price (default: 0.5).')
    parser.add_argument('--fallback-gas-price', type=float, default=defaults.fallback_gas_price_gwei, help='Gas price in Gwei used when the oracle fails (default: 30).')
    parser.add_argument('--min-net-profit', type=float, default=defaults.min_net_profit_pct, help='Minimum net profit percentage after costs (default: 0.1).')

    # --- Alert Arguments ---
    parser.add_argument('--disable-alerts', action='store_true', help='Disable the alert dispatcher.')
    parser.add_argument('--alert-cooldown', type=int, default=defaults.alert_cooldown, help='Cooldown in seconds before re-alerting for the same route (default: 60).')
    parser.add_argument('--alert-min-profit', type=float, default=defaults.alert_min_profit_pct, help='Minimum gross profit percentage to alert (default: 0.5).')
    parser.add_argument('--alert-min-net-profit', type=float, default=defaults.alert_min_net_profit_pct, help='Minimum net profit percentage to alert (default: 0.3).')
    parser.add_argument('--alert-max-spread', type=float, default=defaults.alert_max_spread_pct, help='Maximum direct spread percentage to alert (default: 10.0).')
    parser.add_argument('--alert-min-liquidity', type=float, default=defaults.alert_min_liquidity_usd, help='Minimum cycle liquidity in USD to alert (default: 100000).')
    parser.add_argument('--telegram-enabled', action='store_true', help='Enable Telegram notifications and commands.')

    # --- Cache Arguments ---
    parser.add_argument('--disable-cache', action='store_true', help='Disable the opportunity cache.')
    parser.add_argument('--cache-sweep-interval', type=float, default=defaults.cache_sweep_interval, help='Seconds between expired-entry sweeps (default: 120).')

    # --- Execution Arguments ---
    parser.add_argument('--execution-enabled', action='store_true', help='Hand the best profitable opportunity of each tick to the execution queue.')

    args = parser.parse_args()

    # Load from environment
    etherscan_api_key = os.environ.get(constants.ETHERSCAN_API_KEY_ENV_VAR)
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)
    log_level = args.log_level or os.environ.get(constants.LOG_LEVEL_ENV_VAR) or defaults.log_level

    if not etherscan_api_key:
        print(f"{constants.C_YELLOW}{constants.ETHERSCAN_API_KEY_ENV_VAR} not set; gas price will use the --fallback-gas-price value.{constants.C_RESET}")

    if args.telegram_enabled and not (telegram_bot_token and telegram_chat_id):
        print(f"{constants.C_RED}Telegram is enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} or {constants.TELEGRAM_CHAT_ID_ENV_VAR} are not set.{constants.C_RESET}")
        exit(1)

    if args.max_depth < constants.MIN_CYCLE_HOPS:
        print(f"{constants.C_RED}--max-depth must be at least {constants.MIN_CYCLE_HOPS}.{constants.C_RESET}")
        exit(1)

    return AppConfig(
        chain=args.chain,
        tokens=tuple(t.upper() for t in args.token) if args.token else defaults.tokens,
        interval=args.interval,
        fetch_timeout=args.fetch_timeout,
        once=args.once,
        log_level=log_level.upper(),
        min_pool_liquidity_usd=args.min_pool_liquidity,
        max_realistic_spread_pct=args.max_realistic_spread,
        min_spread_threshold_pct=args.min_spread,
        min_profit_pct=args.min_profit,
        cycle_strategy=args.cycle_strategy,
        exhaustive_vertex_limit=args.exhaustive_vertex_limit,
        base_tokens=tuple(t.upper() for t in args.base_token) if args.base_token else defaults.base_tokens,
        max_depth=args.max_depth,
        max_realistic_profit_pct=args.max_realistic_profit,
        min_liquidity_usd=args.min_liquidity,
        allow_single_venue_cycles=args.allow_single_venue_cycles,
        rejected_sample_size=args.rejected_sample_size,
        protocol_fee_pct=args.dex_fee,
        max_slippage_pct=args.slippage,
        trade_notional_usd=args.trade_notional,
        native_price_usd=args.native_price,
        fallback_gas_price_gwei=args.fallback_gas_price,
        min_net_profit_pct=args.min_net_profit,
        alerts_enabled=not args.disable_alerts,
        alert_cooldown=args.alert_cooldown,
        alert_min_profit_pct=args.alert_min_profit,
        alert_min_net_profit_pct=args.alert_min_net_profit,
        alert_max_spread_pct=args.alert_max_spread,
        alert_min_liquidity_usd=args.alert_min_liquidity,
        cache_enabled=not args.disable_cache,
        cache_sweep_interval=args.cache_sweep_interval,
        execution_enabled=args.execution_enabled,
        etherscan_api_key=etherscan_api_key or "",
        telegram_enabled=args.telegram_enabled,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
    )
