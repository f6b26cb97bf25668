"""
Opportunity Scanner — the main loop: discover → gate → execute.

One tick at a time, one candidate at a time. Nothing a single candidate or a
single pass does can end the loop; only the shutdown event (or cancellation)
does. Shutdown is observed at the top of each tick, before each candidate,
and during the inter-tick wait, which is interruptible.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ..errors import FlashArbError
from ..execution.bundle import BundleOutcome
from ..execution.engine import BundleExecutor
from ..risk.gate import ProfitabilityGate
from .discovery import RouteDiscovery

logger = logging.getLogger("arb.scanner")


class OpportunityScanner:

    def __init__(
        self,
        discovery: RouteDiscovery,
        gate: ProfitabilityGate,
        executor: BundleExecutor,
        scan_interval: float = 1.0,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        self.discovery = discovery
        self.gate = gate
        self.executor = executor
        self.scan_interval = scan_interval
        self.shutdown_event = shutdown_event or asyncio.Event()

        self._ticks = 0
        self._tick_failures = 0
        self._candidates_seen = 0
        self._candidate_errors = 0
        self._executed = 0
        self._included = 0
        self._last_tick_at: Optional[datetime] = None

    async def run(self):
        logger.info(f"OpportunityScanner started (interval={self.scan_interval}s)")
        while not self.shutdown_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._tick_failures += 1
                logger.error(f"Scan tick failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.scan_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("OpportunityScanner stopped")

    async def tick(self):
        self._ticks += 1
        self._last_tick_at = datetime.now(timezone.utc)

        candidates = await self.discovery.find_opportunities()
        for opportunity in candidates:
            if self.shutdown_event.is_set():
                logger.info("Shutdown requested — dropping remaining candidates")
                return
            self._candidates_seen += 1
            try:
                await self._process(opportunity)
            except FlashArbError as e:
                self._candidate_errors += 1
                logger.warning(
                    f"Candidate {opportunity.opportunity_id} dropped: {type(e).__name__}: {e}"
                )

    async def _process(self, opportunity):
        decision = await self.gate.evaluate(opportunity)
        if not decision.accepted:
            return
        report = await self.executor.execute(opportunity, decision)
        self._executed += 1
        if report.outcome == BundleOutcome.INCLUDED:
            self._included += 1

    def stop(self):
        self.shutdown_event.set()

    def get_stats(self) -> dict:
        return {
            "ticks": self._ticks,
            "tick_failures": self._tick_failures,
            "candidates_seen": self._candidates_seen,
            "candidate_errors": self._candidate_errors,
            "executed": self._executed,
            "included": self._included,
            "last_tick_at": self._last_tick_at.isoformat() if self._last_tick_at else None,
        }
