"""
Profitability Gate — every opportunity must pass through this gate.

Stages run in order and stop at the first failure:
    1. Liquidity   — can each pool on the route absorb the trade?
    2. Slippage    — is realized slippage on each hop within the absolute cap?
    3. Gas         — what does executeArbitrage cost right now?
    4. Net profit  — gross − gas must be STRICTLY greater than min_profit.

Each stage reads live chain state on its own, so acceptance is PROVISIONAL.
The relay simulation right before submission is the final word.
Rejections are results. Transient RPC failures and DivideByZero are raised
so the caller can tell "not worth it" from "couldn't tell".
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..amm import uint256 as u
from ..amm.liquidity import LiquidityGuard
from ..amm.slippage import SlippageModel, SlippageQuote
from ..chain.contracts import ArbitrageContract
from ..chain.oracle import PoolOracle
from ..costs.gas import CostEstimator, GasQuote

logger = logging.getLogger("arb.gate")


class RejectionReason(Enum):
    INSUFFICIENT_LIQUIDITY = "insufficient_liquidity"
    EXCESSIVE_SLIPPAGE = "excessive_slippage"
    UNPROFITABLE_AFTER_GAS = "unprofitable_after_gas"


@dataclass
class GateDecision:
    opportunity: Any
    accepted: bool
    reason: Optional[RejectionReason] = None
    hop_quotes: Tuple[SlippageQuote, ...] = field(default_factory=tuple)
    gas_quote: Optional[GasQuote] = None
    net_profit: Optional[int] = None
    candidate_tx: Optional[Dict[str, Any]] = None


class ProfitabilityGate:

    def __init__(
        self,
        oracle: PoolOracle,
        liquidity_guard: LiquidityGuard,
        slippage_model: SlippageModel,
        cost_estimator: CostEstimator,
        contract: ArbitrageContract,
        sender: str,
    ):
        self.oracle = oracle
        self.liquidity = liquidity_guard
        self.slippage = slippage_model
        self.costs = cost_estimator
        self.contract = contract
        self.sender = sender

        self._evaluated = 0
        self._accepted = 0
        self._rejects: Dict[RejectionReason, int] = {r: 0 for r in RejectionReason}

    async def evaluate(self, opportunity) -> GateDecision:
        self._evaluated += 1

        # Stage 1: liquidity, hop by hop against fresh reserves
        quotes = []
        amount = opportunity.amount_in
        for hop in opportunity.route:
            pool = await self.oracle.get_pool(hop.dex, hop.token_in, hop.token_out, hop.fee_bps)
            if not self.liquidity.check(pool, amount):
                return self._reject(opportunity, RejectionReason.INSUFFICIENT_LIQUIDITY,
                                    hop_quotes=tuple(quotes))
            quote = self.slippage.quote(pool, amount)
            quotes.append(quote)
            amount = quote.amount_out

        # Stage 2: slippage cap on every hop
        for quote in quotes:
            if not self.slippage.is_acceptable(quote):
                return self._reject(opportunity, RejectionReason.EXCESSIVE_SLIPPAGE,
                                    hop_quotes=tuple(quotes))

        # Stage 3: gas. EstimationFailed propagates, never priced as zero
        candidate_tx = self.contract.candidate_transaction(opportunity, self.sender)
        gas_quote = await self.costs.estimate(candidate_tx)

        # Stage 4: net profit must clear the threshold
        net_profit = u.signed_sub(opportunity.gross_profit, gas_quote.cost)
        if net_profit <= opportunity.min_profit:
            return self._reject(
                opportunity, RejectionReason.UNPROFITABLE_AFTER_GAS,
                hop_quotes=tuple(quotes), gas_quote=gas_quote, net_profit=net_profit,
            )

        self._accepted += 1
        logger.info(
            f"GATE ACCEPT {opportunity.opportunity_id}: gross={opportunity.gross_profit} "
            f"gas={gas_quote.cost} net={net_profit} min={opportunity.min_profit}"
        )
        return GateDecision(
            opportunity=opportunity,
            accepted=True,
            hop_quotes=tuple(quotes),
            gas_quote=gas_quote,
            net_profit=net_profit,
            candidate_tx=candidate_tx,
        )

    def _reject(self, opportunity, reason: RejectionReason, **details) -> GateDecision:
        self._rejects[reason] += 1
        count = self._rejects[reason]
        if count <= 5 or count % 100 == 0:
            logger.info(f"GATE: {reason.value} reject #{count} {opportunity.opportunity_id}")
        return GateDecision(opportunity=opportunity, accepted=False, reason=reason, **details)

    def get_stats(self) -> dict:
        return {
            "evaluated": self._evaluated,
            "accepted": self._accepted,
            "rejects": {r.value: n for r, n in self._rejects.items()},
        }
