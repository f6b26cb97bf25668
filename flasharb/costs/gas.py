"""
Gas Cost Estimator — what will this transaction cost to land?

cost = gas_limit × gas_price, both read against CURRENT chain state.
CRITICAL: if estimation fails the cost is UNKNOWN. Unknown is not zero —
a zero fallback would wave an unprofitable trade straight through the gate.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict

from ..amm import uint256 as u
from ..errors import EstimationFailed, FlashArbError
from ..chain.client import ChainClient

logger = logging.getLogger("arb.costs")


@dataclass(frozen=True)
class GasQuote:
    gas_limit: int
    gas_price: int
    cost: int

    @classmethod
    def of(cls, gas_limit: int, gas_price: int) -> "GasQuote":
        return cls(gas_limit=gas_limit, gas_price=gas_price, cost=u.mul(gas_limit, gas_price))


class CostEstimator:

    def __init__(self, chain: ChainClient, gas_limit_buffer_bps: int = 0):
        self.chain = chain
        if gas_limit_buffer_bps < 0:
            raise ValueError("gas_limit_buffer_bps must be >= 0")
        self.gas_limit_buffer_bps = gas_limit_buffer_bps
        self._recent_quotes: deque = deque(maxlen=500)
        self._estimates = 0
        self._failures = 0

    async def estimate(self, candidate_tx: Dict[str, Any]) -> GasQuote:
        self._estimates += 1
        try:
            gas_limit = await self.chain.estimate_gas(candidate_tx)
            gas_price = await self.chain.get_gas_price()
            if gas_limit <= 0 or gas_price <= 0:
                raise EstimationFailed(f"implausible estimate: gas_limit={gas_limit}, gas_price={gas_price}")
            if self.gas_limit_buffer_bps:
                gas_limit = u.mul_div(gas_limit, u.BPS_DENOMINATOR + self.gas_limit_buffer_bps,
                                      u.BPS_DENOMINATOR)
            quote = GasQuote.of(gas_limit, gas_price)
        except EstimationFailed:
            self._failures += 1
            raise
        except FlashArbError as e:
            self._failures += 1
            raise EstimationFailed(f"gas estimation failed: {e}") from e

        self._recent_quotes.append(quote)
        logger.debug(
            f"Gas quote: limit={quote.gas_limit} price={quote.gas_price} cost={quote.cost}"
        )
        return quote

    def get_stats(self) -> dict:
        quotes = list(self._recent_quotes)
        return {
            "estimates": self._estimates,
            "failures": self._failures,
            "avg_cost_wei": sum(q.cost for q in quotes) // len(quotes) if quotes else 0,
            "last_gas_price": quotes[-1].gas_price if quotes else 0,
        }
