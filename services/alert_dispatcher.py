#!/usr/bin/env python3
import logging
import time
import uuid
from collections import Counter
from typing import Callable, Dict, List, Optional

from analysis.market_quality import MarketQuality
from analysis.models import AlertRecord, AlertType, DirectOpportunity, QualityTier, ValidatedOpportunity
from config import AppConfig
from constants import ALERT_HISTORY_WINDOW_SECONDS, HIGH_PROFIT_ALERT_PCT, MEDIUM_PROFIT_ALERT_PCT

logger = logging.getLogger(__name__)

SYSTEM_LOW_DATA_QUALITY = 'LOW_DATA_QUALITY'
SYSTEM_HIGH_OPPORTUNITY_COUNT = 'HIGH_OPPORTUNITY_COUNT'
SYSTEM_HIGH_SPREADS = 'HIGH_SPREADS'


def classify_alert(opportunity: ValidatedOpportunity) -> AlertType:
    profit = opportunity.net_profit_pct
    if profit >= HIGH_PROFIT_ALERT_PCT:
        return AlertType.HIGH_PROFIT
    if profit >= MEDIUM_PROFIT_ALERT_PCT:
        return AlertType.MEDIUM_PROFIT
    if opportunity.quality_tier == QualityTier.HIGH:
        return AlertType.HIGH_QUALITY
    return AlertType.STANDARD


def _alert_id(now: float) -> str:
    return f"alert_{int(now * 1000)}_{uuid.uuid4().hex[:9]}"


class AlertDispatcher:
    """
    Turns validated opportunities and per-tick market stats into alerts.
    Each cooldown key alerts at most once per cooldown window. State is only
    touched from the refresh tick.
    """

    def __init__(self, config: AppConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.enabled = config.alerts_enabled
        self.cooldown = float(config.alert_cooldown)
        self._clock = clock
        self.history: List[AlertRecord] = []
        self.last_alert_time: Dict[str, float] = {}
        self.suppressed = 0

    def should_alert(self, opportunity: ValidatedOpportunity) -> bool:
        if not opportunity.is_profitable:
            return False
        if opportunity.net_profit_pct < self.config.alert_min_net_profit_pct:
            return False
        if opportunity.gross_profit_pct < self.config.alert_min_profit_pct:
            return False
        kind = opportunity.kind
        if isinstance(kind, DirectOpportunity):
            return kind.spread_pct <= self.config.alert_max_spread_pct
        return kind.min_liquidity_usd >= self.config.alert_min_liquidity_usd

    def is_in_cooldown(self, key: str, now: Optional[float] = None) -> bool:
        last = self.last_alert_time.get(key)
        if last is None:
            return False
        now = self._clock() if now is None else now
        return now - last < self.cooldown

    def process(
        self,
        opportunities: List[ValidatedOpportunity],
        market_stats: Optional[MarketQuality] = None,
    ) -> List[AlertRecord]:
        """Returns the alerts emitted this tick, opportunity alerts first, then system alerts."""
        if not self.enabled:
            return []

        now = self._clock()
        emitted: List[AlertRecord] = []
        for opportunity in opportunities:
            if not self.should_alert(opportunity):
                continue
            alert_type = classify_alert(opportunity)
            key = f"{alert_type.value}_{opportunity.route_id}"
            if self.is_in_cooldown(key, now):
                self.suppressed += 1
                logger.debug("Alert %s suppressed by cooldown", key)
                continue
            alert = AlertRecord(
                id=_alert_id(now),
                alert_type=alert_type,
                cooldown_key=key,
                emitted_at=now,
                opportunity=opportunity,
            )
            self._record(alert)
            emitted.append(alert)

        if market_stats is not None:
            emitted.extend(self._system_alerts(market_stats, len(opportunities), now))

        self.cleanup(now)
        return emitted

    def _system_alerts(self, market_stats: MarketQuality, opportunity_count: int, now: float) -> List[AlertRecord]:
        checks = []
        if market_stats.quality_score < self.config.data_quality_floor:
            checks.append((SYSTEM_LOW_DATA_QUALITY, {
                'quality_score': market_stats.quality_score,
                'message': 'Data quality score is very low',
            }))
        if opportunity_count > self.config.max_opportunity_count:
            checks.append((SYSTEM_HIGH_OPPORTUNITY_COUNT, {
                'count': opportunity_count,
                'message': 'Anomalous number of opportunities detected',
            }))
        if market_stats.max_spread_pct > self.config.max_observed_spread_pct:
            checks.append((SYSTEM_HIGH_SPREADS, {
                'max_spread_pct': market_stats.max_spread_pct,
                'message': 'Anomalous spreads detected, upstream data may be wrong',
            }))

        emitted = []
        for sub_type, details in checks:
            key = f"SYSTEM_{sub_type}"
            if self.is_in_cooldown(key, now):
                self.suppressed += 1
                continue
            alert = AlertRecord(
                id=_alert_id(now),
                alert_type=AlertType.SYSTEM,
                cooldown_key=key,
                emitted_at=now,
                sub_type=sub_type,
                details=details,
            )
            self._record(alert)
            emitted.append(alert)
        return emitted

    def _record(self, alert: AlertRecord) -> None:
        self.history.append(alert)
        self.last_alert_time[alert.cooldown_key] = alert.emitted_at

    def cleanup(self, now: Optional[float] = None) -> None:
        """Drops alerts and cooldown entries older than the rolling history window."""
        now = self._clock() if now is None else now
        cutoff = now - ALERT_HISTORY_WINDOW_SECONDS
        self.history = [a for a in self.history if a.emitted_at > cutoff]
        self.last_alert_time = {k: t for k, t in self.last_alert_time.items() if t >= cutoff}

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        logger.info("Alert dispatcher %s", "enabled" if enabled else "disabled")

    def stats(self) -> Dict:
        now = self._clock()
        recent = [a for a in self.history if now - a.emitted_at < ALERT_HISTORY_WINDOW_SECONDS]
        by_type = Counter(a.alert_type.value for a in recent)
        return {
            'total_24h': len(recent),
            'total_history': len(self.history),
            'by_type': dict(by_type),
            'suppressed': self.suppressed,
            'last_alert_at': self.history[-1].emitted_at if self.history else None,
            'enabled': self.enabled,
        }
