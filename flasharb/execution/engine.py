"""
Bundle Executor — turns a gate-accepted opportunity into a relay bundle.

CRITICAL PRINCIPLES:
1. SIMULATE FIRST. submit is only called right after a successful simulate.
2. ONE SIGNER. Nonce reads, signing and submission run inside one lock.
3. NEXT BLOCK ONLY. A bundle targets current_block + 1. If the chain moves
   past it before submission the bundle is dropped, never re-aimed.
4. NO DOUBLE SEND. A bundle hash already in the ledger is never resubmitted.
5. BOUNDED WAIT. Inclusion is awaited for at most inclusion_timeout.
Failed simulation, submission error and non-inclusion are normal outcomes,
not exceptions: nothing is on-chain before SUBMITTED.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..chain.client import ChainClient
from ..chain.contracts import ArbitrageContract
from ..chain.relay import BundleReceipt, FlashbotsRelay, SimulationResult
from ..errors import FlashArbError, TransientProviderError
from ..risk.gate import GateDecision
from .bundle import Bundle, BundleOutcome
from .ledger import ExecutionLedger

logger = logging.getLogger("arb.execution")


@dataclass
class ExecutionReport:
    opportunity_id: str
    outcome: BundleOutcome
    bundle_hash: str
    target_block: int
    expected_net_profit: int = 0
    relay_bundle_hash: Optional[str] = None
    simulation: Optional[SimulationResult] = None
    receipt: Optional[BundleReceipt] = None
    error: Optional[str] = None
    duplicate: bool = False
    abandoned: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BundleExecutor:

    INCLUSION_TIMEOUT = 30.0   # ~2.5 mainnet blocks

    def __init__(
        self,
        chain: ChainClient,
        relay: FlashbotsRelay,
        wallet: LocalAccount,
        contract: ArbitrageContract,
        ledger: ExecutionLedger,
        chain_id: int,
        inclusion_timeout: Optional[float] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        self.chain = chain
        self.relay = relay
        self.wallet = wallet
        self.contract = contract
        self.ledger = ledger
        self.chain_id = chain_id
        self.inclusion_timeout = inclusion_timeout or self.INCLUSION_TIMEOUT
        self.shutdown_event = shutdown_event or asyncio.Event()

        self._signing_lock = asyncio.Lock()
        self._outcomes: Dict[BundleOutcome, int] = {o: 0 for o in BundleOutcome}
        self._duplicates = 0
        self._executions = 0

    # ── Build ──────────────────────────────────────────────────────

    async def build_bundle(self, opportunity, decision: GateDecision) -> Bundle:
        current_block = await self.chain.get_block_number()
        nonce = await self.chain.get_pending_nonce(self.wallet.address)
        tx = self.contract.build_transaction(
            opportunity,
            sender=self.wallet.address,
            nonce=nonce,
            gas_limit=decision.gas_quote.gas_limit,
            gas_price=decision.gas_quote.gas_price,
            chain_id=self.chain_id,
        )
        signed = self.wallet.sign_transaction(tx)
        return Bundle(
            transactions=(bytes(signed.raw_transaction),),
            tx_hashes=(Web3.to_hex(signed.hash),),
            target_block=current_block + 1,
        )

    # ── Main execution ─────────────────────────────────────────────

    async def execute(self, opportunity, decision: GateDecision) -> ExecutionReport:
        if not decision.accepted or decision.gas_quote is None:
            raise ValueError(f"{opportunity.opportunity_id} was not accepted by the gate")

        async with self._signing_lock:
            self._executions += 1
            bundle = await self.build_bundle(opportunity, decision)
            report = await self._run(opportunity, decision, bundle)

        if not report.duplicate:
            self._outcomes[report.outcome] += 1
        return report

    async def _run(self, opportunity, decision: GateDecision, bundle: Bundle) -> ExecutionReport:
        bundle_hash = bundle.bundle_hash
        report = ExecutionReport(
            opportunity_id=opportunity.opportunity_id,
            outcome=BundleOutcome.BUILT,
            bundle_hash=bundle_hash,
            target_block=bundle.target_block,
            expected_net_profit=decision.net_profit or 0,
        )

        existing = self.ledger.get(bundle_hash)
        if existing is not None:
            self._duplicates += 1
            logger.warning(
                f"DUPLICATE bundle {bundle_hash} ({existing.outcome.value}) — not resubmitting"
            )
            report.outcome = existing.outcome
            report.duplicate = True
            return report

        self._advance(report, BundleOutcome.BUILT)

        # SIMULATE
        try:
            simulation = await self.relay.simulate(bundle, bundle.target_block)
        except TransientProviderError as e:
            simulation = SimulationResult(success=False, error=str(e))
        report.simulation = simulation

        if not simulation.success:
            logger.info(f"Simulation failed for {opportunity.opportunity_id}: {simulation.error}")
            report.error = simulation.error
            return self._advance(report, BundleOutcome.SIMULATED_FAIL)
        self._advance(report, BundleOutcome.SIMULATED_OK)
        logger.info(
            f"Simulation OK {opportunity.opportunity_id}: gas={simulation.total_gas_used} "
            f"target={bundle.target_block}"
        )

        # Still aimed at the next block?
        try:
            current_block = await self.chain.get_block_number()
        except TransientProviderError as e:
            report.error = f"block_check_failed: {e}"
            return self._advance(report, BundleOutcome.SUBMISSION_ERROR)
        if current_block >= bundle.target_block:
            logger.info(
                f"Bundle {bundle_hash} stale: chain at {current_block}, target {bundle.target_block}"
            )
            report.error = "stale_target_block"
            return self._advance(report, BundleOutcome.SUBMISSION_ERROR)

        # SUBMIT
        try:
            signed = self.relay.sign_bundle(bundle)
            submission = await self.relay.send_bundle(signed, bundle.target_block)
        except FlashArbError as e:
            logger.error(f"Bundle submission failed for {opportunity.opportunity_id}: {e}")
            report.error = str(e)
            return self._advance(report, BundleOutcome.SUBMISSION_ERROR)
        report.relay_bundle_hash = submission.bundle_hash
        self._advance(report, BundleOutcome.SUBMITTED)

        if self.shutdown_event.is_set():
            logger.warning(f"Shutdown requested — not waiting on bundle {bundle_hash}")
            report.abandoned = True
            return report

        # AWAIT INCLUSION (bounded by inclusion_timeout)
        try:
            receipt = await asyncio.wait_for(submission.wait(), timeout=self.inclusion_timeout)
        except asyncio.TimeoutError:
            receipt = None
        except FlashArbError as e:
            logger.warning(f"Inclusion check for bundle {bundle_hash} failed: {e}")
            report.error = f"inclusion_check_failed: {e}"
            receipt = None

        if receipt is None:
            logger.info(f"Bundle {bundle_hash} not included in block {bundle.target_block}")
            return self._advance(report, BundleOutcome.NOT_INCLUDED)

        report.receipt = receipt
        logger.info(
            f"ARB INCLUDED {opportunity.opportunity_id} in block {receipt.block_number} | "
            f"gas used {receipt.gas_used} | expected net "
            f"{Web3.from_wei(report.expected_net_profit, 'ether')} ETH"
        )
        return self._advance(report, BundleOutcome.INCLUDED)

    def _advance(self, report: ExecutionReport, outcome: BundleOutcome) -> ExecutionReport:
        self.ledger.record(report.bundle_hash, outcome, report.target_block)
        report.outcome = outcome
        return report

    def get_stats(self) -> dict:
        included = self._outcomes[BundleOutcome.INCLUDED]
        submitted = included + self._outcomes[BundleOutcome.NOT_INCLUDED]
        return {
            "executions": self._executions,
            "duplicates": self._duplicates,
            "outcomes": {o.value: n for o, n in self._outcomes.items()},
            "inclusion_rate": included / max(1, submitted),
        }
