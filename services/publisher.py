#!/usr/bin/env python3
import html
import logging
import time
from typing import Iterable, List

from analysis.models import AlertRecord, AlertType, DirectOpportunity, TickBundle, ValidatedOpportunity
from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW

logger = logging.getLogger(__name__)

ALERT_EMOJI = {
    AlertType.HIGH_PROFIT: "🔥",
    AlertType.MEDIUM_PROFIT: "⚡",
    AlertType.HIGH_QUALITY: "💎",
    AlertType.STANDARD: "📢",
    AlertType.SYSTEM: "🖥️",
}


def format_opportunity_line(opp: ValidatedOpportunity) -> str:
    kind = opp.kind
    route = kind.label
    extra = f"spread {kind.spread_pct:.3f}%" if isinstance(kind, DirectOpportunity) else f"min liq ${kind.min_liquidity_usd:,.0f}"
    return (
        f"OPPORTUNITY: {route} | Gross: {opp.gross_profit_pct:.3f}% | Net: {opp.net_profit_pct:.3f}%"
        f" | Costs: {opp.costs.total_pct:.3f}% | {extra} | Tier: {opp.quality_tier.value}"
    )


def format_alert_message(alert: AlertRecord) -> str:
    """Formats an alert for Telegram (HTML parse mode)."""
    emoji = ALERT_EMOJI.get(alert.alert_type, "📢")
    stamp = time.strftime('%H:%M:%S', time.gmtime(alert.emitted_at))

    if alert.alert_type == AlertType.SYSTEM:
        lines = [
            f"{emoji} <b>System alert: {html.escape(alert.sub_type or '')}</b> ({stamp} UTC)",
            html.escape(str(alert.details.get('message', ''))),
        ]
        for key, value in alert.details.items():
            if key != 'message':
                lines.append(f"<b>{html.escape(key)}:</b> <code>{html.escape(str(value))}</code>")
        return "\n".join(lines)

    opp = alert.opportunity
    kind = opp.kind
    lines = [
        f"{emoji} <b>{alert.alert_type.value}: {html.escape(opp.route_id)}</b> ({stamp} UTC)",
        "",
        f"<b>Gross:</b> {opp.gross_profit_pct:.3f}% | <b>Net:</b> {opp.net_profit_pct:.3f}% | <b>Tier:</b> {opp.quality_tier.value}",
    ]
    if isinstance(kind, DirectOpportunity):
        lines.append(f"<b>Spread:</b> {kind.spread_pct:.3f}%")
        lines.append(
            f"<b>Route:</b> Buy {html.escape(kind.buy_venue)} @ {kind.buy_rate:.8f} -> "
            f"Sell {html.escape(kind.sell_venue)} @ {kind.sell_rate:.8f}"
        )
    else:
        lines.append(f"<b>Path:</b> {html.escape(kind.label)}")
        lines.append(f"<b>DEXs:</b> {html.escape(', '.join(kind.venues_used))}")
        lines.append(f"<b>Min liquidity:</b> ${kind.min_liquidity_usd:,.0f}")
    lines.extend([
        f"<b>Costs:</b> gas {opp.costs.gas_cost_pct:.4f}% + fees {opp.costs.protocol_fees_pct:.2f}% + slippage {opp.costs.slippage_pct:.2f}%",
        "",
        f"<code>{html.escape(alert.id)}</code>",
        "<i>Disclaimer: This is not financial advice.</i>",
    ])
    return "\n".join(lines)


class ConsolePublisher:
    """Prints tick summaries and alerts to stdout."""

    def __init__(self, max_lines: int = 10):
        self.max_lines = max_lines

    async def publish_bundle(self, bundle: TickBundle) -> None:
        source_color = C_GREEN if bundle.data_source == 'live' else C_YELLOW
        stats = bundle.scan_stats
        print("-" * 40)
        print(
            f"Tick #{bundle.tick_id} [{source_color}{bundle.data_source}{C_RESET}] "
            f"in {bundle.finished_at - bundle.started_at:.2f}s | "
            f"{stats.get('vertex_count', 0)} tokens, {stats.get('edge_count', 0)} edges, "
            f"{stats.get('dropped_edges', 0)} dropped | gas {stats.get('gas_price_gwei', 0):.2f} Gwei ({stats.get('gas_price_source', 'n/a')})"
        )
        for opp in bundle.opportunities[:self.max_lines]:
            print(f"{C_GREEN}{format_opportunity_line(opp)}{C_RESET}")
        for rejected in bundle.rejected_sample[:self.max_lines]:
            gross = f"{rejected.gross_profit_pct:.3f}%" if rejected.gross_profit_pct is not None else "n/a"
            print(f"{C_YELLOW}REJECTED [{rejected.stage}]: {rejected.label} ({gross}) - {rejected.reason}{C_RESET}")
        print(f"Found {len(bundle.opportunities)} profitable opportunities this tick.")

    async def publish_alert(self, alert: AlertRecord) -> None:
        emoji = ALERT_EMOJI.get(alert.alert_type, "📢")
        if alert.alert_type == AlertType.SYSTEM:
            print(f"{C_RED}{emoji} SYSTEM ALERT {alert.sub_type}: {alert.details.get('message', '')}{C_RESET}")
            return
        print(f"{C_BLUE}{emoji} ALERT {alert.alert_type.value}: {format_opportunity_line(alert.opportunity)}{C_RESET}")


class TelegramPublisher:
    """Sends alerts to a Telegram chat. Bundles are served on demand by the bot commands."""

    def __init__(self, bot, chat_id: str):
        self.bot = bot
        self.chat_id = chat_id

    async def publish_bundle(self, bundle: TickBundle) -> None:
        return None

    async def publish_alert(self, alert: AlertRecord) -> None:
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=format_alert_message(alert),
            parse_mode='HTML',
        )


class CompositePublisher:
    """Fans out to several publishers; one failing publisher never blocks the others."""

    def __init__(self, publishers: Iterable):
        self.publishers: List = list(publishers)

    async def publish_bundle(self, bundle: TickBundle) -> None:
        for publisher in self.publishers:
            try:
                await publisher.publish_bundle(bundle)
            except Exception as e:
                logger.error("%s failed to publish bundle: %s", type(publisher).__name__, e)

    async def publish_alert(self, alert: AlertRecord) -> None:
        for publisher in self.publishers:
            try:
                await publisher.publish_alert(alert)
            except Exception as e:
                logger.error("%s failed to publish alert %s: %s", type(publisher).__name__, alert.id, e)
