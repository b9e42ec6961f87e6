"""Hand-off queue between the refresh tick and whatever executes trades."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from analysis.models import DirectOpportunity, ValidatedOpportunity


@dataclass(slots=True)
class ExecutionRequest:
    route_id: str
    token_path: tuple[str, ...]
    venue_sequence: tuple[str, ...]
    expected_rates: tuple[float, ...]
    net_profit_pct: float
    submitted_at: float


def build_request(opportunity: ValidatedOpportunity, now: Optional[float] = None) -> ExecutionRequest:
    kind = opportunity.kind
    if isinstance(kind, DirectOpportunity):
        base, quote = kind.pair.split('/')
        token_path = (quote, base, quote)
        venues = (kind.buy_venue, kind.sell_venue)
        rates = (kind.buy_rate, kind.sell_rate)
    else:
        token_path = kind.token_path + kind.token_path[:1]
        venues = kind.venue_path
        rates = tuple(edge.rate for edge in kind.edges)
    return ExecutionRequest(
        route_id=opportunity.route_id,
        token_path=token_path,
        venue_sequence=venues,
        expected_rates=rates,
        net_profit_pct=opportunity.net_profit_pct,
        submitted_at=time.time() if now is None else now,
    )


class ExecutionHandoff:
    """Bounded, non-blocking queue of execution requests; the outcome is never awaited by the tick."""

    def __init__(self, max_size: int = 100) -> None:
        self.queue: asyncio.Queue[ExecutionRequest] = asyncio.Queue(maxsize=max_size)
        self.submitted = 0
        self.dropped = 0
        self.logger = logging.getLogger(__name__)

    def submit(self, opportunity: ValidatedOpportunity) -> bool:
        request = build_request(opportunity)
        try:
            self.queue.put_nowait(request)
        except asyncio.QueueFull:
            self.dropped += 1
            self.logger.warning("Execution queue full, dropping %s", request.route_id)
            return False
        self.submitted += 1
        return True

    async def consume(self) -> None:
        """Logs each request. Transaction building is out of this project's hands."""
        while True:
            request = await self.queue.get()
            try:
                self.logger.info(
                    "[Execution] %s via %s | expected net %.4f%%",
                    " -> ".join(request.token_path),
                    ", ".join(request.venue_sequence),
                    request.net_profit_pct,
                )
            finally:
                self.queue.task_done()
