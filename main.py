#!/usr/bin/env python3
import asyncio
import logging
import time

import aiohttp
from telegram import BotCommand
from telegram.error import TelegramError, TimedOut
from telegram.ext import Application, CommandHandler

import constants
from bot.handlers import (
    alerts_command,
    cache_command,
    help_command,
    opportunities_command,
    status_command,
)
from config import AppConfig, load_config
from scanner import RefreshOrchestrator
from services.alert_dispatcher import AlertDispatcher
from services.dexscreener_client import DexScreenerClient
from services.etherscan_client import EtherscanClient
from services.execution_handoff import ExecutionHandoff
from services.publisher import CompositePublisher, ConsolePublisher, TelegramPublisher
from storage.cache import OpportunityCache


def build_cache(config: AppConfig) -> OpportunityCache:
    return OpportunityCache(
        ttls=config.cache_ttls(),
        max_sizes=config.cache_max_sizes(),
        enabled=config.cache_enabled,
    )


def build_orchestrator(
    config: AppConfig,
    session: aiohttp.ClientSession,
    cache: OpportunityCache,
    dispatcher: AlertDispatcher,
    publishers: list,
    state: dict,
) -> RefreshOrchestrator:
    price_feed = DexScreenerClient(
        session,
        config.chain,
        config.tokens,
        min_liquidity_usd=config.min_pool_liquidity_usd,
    )
    gas_oracle = EtherscanClient(session, config.etherscan_api_key, config.chain)
    execution = ExecutionHandoff(config.execution_queue_size) if config.execution_enabled else None
    return RefreshOrchestrator(
        config,
        price_feed,
        gas_oracle,
        cache,
        dispatcher,
        CompositePublisher(publishers),
        execution=execution,
        state=state,
    )


async def post_init_hook(application: Application) -> None:
    """A hook that runs after the bot is initialized to set up shared clients and tasks."""
    session = aiohttp.ClientSession(headers={'User-Agent': 'DexArbEngine/1.0'})
    application.bot_data['http_session'] = session

    config = application.bot_data['config']
    publishers = [
        ConsolePublisher(),
        TelegramPublisher(application.bot, config.telegram_chat_id),
    ]
    orchestrator = build_orchestrator(
        config,
        session,
        application.bot_data['cache'],
        application.bot_data['dispatcher'],
        publishers,
        application.bot_data,
    )
    application.bot_data['orchestrator'] = orchestrator

    commands = [
        BotCommand("status", "Check engine status"),
        BotCommand("opportunities", "Latest profitable opportunities"),
        BotCommand("alerts", "Alert statistics"),
        BotCommand("cache", "Cache statistics"),
        BotCommand("help", "Show help message"),
    ]
    try:
        await application.bot.set_my_commands(commands)
    except (TimedOut, TelegramError) as exc:
        print(
            f"{constants.C_YELLOW}Warning: unable to set Telegram bot commands ({exc})."
            f" Continuing startup without updating commands.{constants.C_RESET}"
        )

    application.bot_data['scanner_task'] = asyncio.create_task(orchestrator.start())


async def post_shutdown_hook(application: Application) -> None:
    """A hook that runs on application shutdown to clean up resources."""
    task = application.bot_data.get('scanner_task')
    if task and not task.done():
        task.cancel()
    session = application.bot_data.get('http_session')
    if session:
        await session.close()


async def run_headless(config: AppConfig) -> None:
    """Runs the engine without Telegram, printing to the console only."""
    cache = build_cache(config)
    dispatcher = AlertDispatcher(config)
    state = {'config': config, 'start_time': time.time()}
    async with aiohttp.ClientSession(headers={'User-Agent': 'DexArbEngine/1.0'}) as session:
        orchestrator = build_orchestrator(config, session, cache, dispatcher, [ConsolePublisher()], state)
        await orchestrator.start()


def main() -> None:
    """The main synchronous entry point for the application."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if config.once:
        asyncio.run(run_headless(config))
        return
    if not config.telegram_enabled or not config.telegram_bot_token:
        print("Telegram is not configured. The application will run in CLI-only mode.")
        asyncio.run(run_headless(config))
        return

    application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .post_init(post_init_hook)
        .post_shutdown(post_shutdown_hook)
        .build()
    )

    application.bot_data['config'] = config
    application.bot_data['start_time'] = time.time()
    application.bot_data['cache'] = build_cache(config)
    application.bot_data['dispatcher'] = AlertDispatcher(config)

    application.add_handler(CommandHandler("start", help_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("opportunities", opportunities_command))
    application.add_handler(CommandHandler("alerts", alerts_command))
    application.add_handler(CommandHandler("cache", cache_command))

    application.run_polling()


if __name__ == "__main__":
    main()
