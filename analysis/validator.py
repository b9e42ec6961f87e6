#!/usr/bin/env python3
from typing import Optional

from analysis.models import CostBreakdown, OpportunityCandidate, ValidatedOpportunity
from config import AppConfig

REJECTION_INSUFFICIENT_PROFIT = 'insufficient profit after costs'


def estimate_gas_cost_pct(
    hop_count: int,
    gas_price_gwei: float,
    config: AppConfig,
    native_price_usd: Optional[float] = None,
) -> float:
    """Gas for a route of `hop_count` hops, as a percentage of the configured trade notional."""
    gas_units = config.base_gas_units + config.per_hop_gas_units * hop_count
    native_usd = native_price_usd if native_price_usd and native_price_usd > 0 else config.native_price_usd
    gas_cost_usd = gas_units * gas_price_gwei * 1e-9 * native_usd
    return gas_cost_usd / config.trade_notional_usd * 100


def validate_opportunity(
    candidate: OpportunityCandidate,
    gas_price_gwei: float,
    config: AppConfig,
    native_price_usd: Optional[float] = None,
) -> ValidatedOpportunity:
    """
    Applies the execution cost model to a candidate. Pure: the same inputs always give
    the same result and nothing outside the returned value is touched.
    """
    hop_count = candidate.hop_count
    costs = CostBreakdown(
        gas_cost_pct=estimate_gas_cost_pct(hop_count, gas_price_gwei, config, native_price_usd),
        protocol_fees_pct=config.protocol_fee_pct * hop_count,
        slippage_pct=config.max_slippage_pct,
    )
    net_profit_pct = candidate.gross_profit_pct - costs.total_pct
    is_profitable = net_profit_pct > config.min_net_profit_pct
    if is_profitable and candidate.gross_profit_pct > 0:
        score = net_profit_pct / candidate.gross_profit_pct
    else:
        score = 0.0

    return ValidatedOpportunity(
        candidate=candidate,
        costs=costs,
        net_profit_pct=net_profit_pct,
        is_profitable=is_profitable,
        quality_tier=candidate.quality_tier,
        profitability_score=score,
        rejection_reason=None if is_profitable else REJECTION_INSUFFICIENT_PROFIT,
    )


class ProfitabilityValidator:
    """Binds the cost model to a config so the orchestrator can validate a batch per tick."""

    def __init__(self, config: AppConfig):
        self.config = config

    def validate(
        self,
        candidate: OpportunityCandidate,
        gas_price_gwei: float,
        native_price_usd: Optional[float] = None,
    ) -> ValidatedOpportunity:
        return validate_opportunity(candidate, gas_price_gwei, self.config, native_price_usd)
