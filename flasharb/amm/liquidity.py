"""
Liquidity Guard — rejects trades the pool cannot absorb.

Deliberately coarse: a trade passes when BOTH reserves are at least the
trade amount (equality passes). It catches pool exhaustion, not a trade that
eats an oversized share of the pool. Slippage limits handle the latter.
"""
import logging

from .pool import Pool

logger = logging.getLogger("arb.liquidity")


class LiquidityGuard:

    @staticmethod
    def has_sufficient_liquidity(reserve_in: int, reserve_out: int, amount_in: int) -> bool:
        return reserve_in >= amount_in and reserve_out >= amount_in

    def check(self, pool: Pool, amount_in: int) -> bool:
        ok = self.has_sufficient_liquidity(pool.reserve_in, pool.reserve_out, amount_in)
        if not ok:
            logger.debug(
                f"Insufficient liquidity on {pool.dex} {pool.token_in}->{pool.token_out}: "
                f"reserves={pool.reserve_in}/{pool.reserve_out}, amount_in={amount_in}"
            )
        return ok
