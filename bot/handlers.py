# bot/handlers.py
import html
import time

from telegram import Update
from telegram.ext import ContextTypes

from analysis.models import TickBundle
from storage.cache import OpportunityCache

# --- Command Handlers ---

async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays a help message with all available commands."""
    help_text = """
    <b>DEX Arbitrage Detection Engine</b>

    This bot scans DEX prices for cross-venue and cyclic arbitrage and alerts on profitable routes.

    <b><u>Available Commands:</u></b>
    /status - Get engine status and last tick info
    /opportunities - Show the latest profitable opportunities
    /alerts - Show alert statistics
    /cache - Show cache statistics
    /help - Show this help message
    """
    await update.message.reply_html(help_text)


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Checks and reports the engine's operational status."""
    bot_data = context.application.bot_data
    config = bot_data.get('config')
    scanner_task = bot_data.get('scanner_task')
    start_time = bot_data.get('start_time', 0)

    uptime_seconds = time.time() - start_time
    uptime_str = time.strftime('%H:%M:%S', time.gmtime(uptime_seconds))

    if scanner_task and not scanner_task.done():
        scanner_status = "✅ Running"
    elif scanner_task and scanner_task.done():
        scanner_status = "❌ Stopped with error" if not scanner_task.cancelled() and scanner_task.exception() else "⏹️ Stopped"
    else:
        scanner_status = "⚠️ Not running"

    status_text = (
        f"<b>🤖 Engine Status</b>\n"
        f"Uptime: <code>{uptime_str}</code>\n"
        f"Status: {scanner_status}\n"
    )
    if config:
        status_text += f"Chain: <code>{html.escape(config.chain)}</code> | Interval: <code>{config.interval}s</code>\n"

    last_scan = bot_data.get('last_scan_time', 'Never')
    found_last = bot_data.get('found_last_scan', 'N/A')
    data_source = bot_data.get('data_source', 'N/A')
    last_error = bot_data.get('last_error')
    status_text += f"Last Tick: <code>{last_scan}</code>\n"
    status_text += f"Data Source: <code>{data_source}</code>\n"
    status_text += f"Profitable Last Tick: <code>{found_last}</code>\n"
    if last_error:
        status_text += f"Last Error: <pre>{html.escape(last_error)}</pre>\n"

    await update.message.reply_html(status_text)


async def opportunities_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Lists the top opportunities of the latest tick, preferring the cached copy."""
    bot_data = context.application.bot_data
    cache: OpportunityCache | None = bot_data.get('cache')
    opportunities = cache.get('opportunities', 'latest') if cache else None
    if opportunities is None:
        bundle: TickBundle | None = bot_data.get('last_bundle')
        opportunities = bundle.opportunities if bundle else []

    if not opportunities:
        await update.message.reply_text("No profitable opportunities in the latest tick.")
        return

    lines = ["<b>💰 Latest Opportunities</b>\n"]
    for i, opp in enumerate(opportunities[:5], start=1):
        lines.append(
            f"{i}. <b>{html.escape(opp.label)}</b>\n"
            f"   Gross {opp.gross_profit_pct:.3f}% | Net {opp.net_profit_pct:.3f}% | Tier {opp.quality_tier.value}"
        )
    await update.message.reply_html("\n".join(lines))


async def alerts_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Shows alert dispatcher statistics."""
    dispatcher = context.application.bot_data.get('dispatcher')
    if not dispatcher:
        await update.message.reply_text("Alert dispatcher not running.")
        return

    stats = dispatcher.stats()
    by_type = ", ".join(f"{k}: {v}" for k, v in sorted(stats['by_type'].items())) or "none"
    last_alert = (
        time.strftime('%Y-%m-%d %H:%M:%S UTC', time.gmtime(stats['last_alert_at']))
        if stats['last_alert_at'] else "Never"
    )
    message = (
        f"<b>🚨 Alerts</b>\n\n"
        f"<b>Enabled:</b> {'yes' if stats['enabled'] else 'no'}\n"
        f"<b>Last 24h:</b> {stats['total_24h']} ({html.escape(by_type)})\n"
        f"<b>Suppressed by cooldown:</b> {stats['suppressed']}\n"
        f"<b>Last alert:</b> <code>{last_alert}</code>"
    )
    await update.message.reply_html(message)


async def cache_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Shows cache hit rate and namespace sizes."""
    cache: OpportunityCache | None = context.application.bot_data.get('cache')
    if not cache:
        await update.message.reply_text("Cache not configured.")
        return

    stats = cache.stats()
    sizes = "\n".join(f"   {ns}: {size}" for ns, size in stats['sizes'].items())
    message = (
        f"<b>🗄️ Cache</b>\n\n"
        f"<b>Enabled:</b> {'yes' if stats['enabled'] else 'no'}\n"
        f"<b>Hit rate:</b> {stats['hit_rate']:.2f}% ({stats['hits']} hits / {stats['misses']} misses)\n"
        f"<b>Sets:</b> {stats['sets']} | <b>Evictions:</b> {stats['evictions']} | <b>Expired:</b> {stats['expirations']}\n"
        f"<b>Sizes:</b>\n<code>{sizes}</code>"
    )
    await update.message.reply_html(message)
