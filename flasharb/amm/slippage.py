"""
Slippage Model — expected output and price impact under x·y = k.

Formulas (integer, floor division, fee taken from the input):
    amount_out   = a·(10000−f)·R_out / (R_in·10000 + a·(10000−f))
    price_impact = R_out − R_out·R_in / (R_in + a)        (fee-exclusive)
    naive_out    = a·R_out / R_in                          (spot, no fee, no impact)
    slippage     = naive_out − amount_out

CRITICAL: all math goes through amm.uint256. A zero reserve raises
DivideByZero — a drained pool must never quietly price a trade at zero.
"""
import logging
from dataclasses import dataclass

from ..errors import DivideByZero
from . import uint256 as u
from .pool import Pool

logger = logging.getLogger("arb.slippage")


@dataclass(frozen=True)
class SlippageQuote:
    pool: Pool
    amount_in: int
    amount_out: int
    naive_amount_out: int
    slippage: int                # naive − actual, in token_out base units
    price_impact: int
    min_amount_out: int          # amount_out after the tolerance haircut


class SlippageModel:

    def __init__(self, max_slippage: int, slippage_tolerance_bps: int = 100):
        self.max_slippage = u.uint256(max_slippage)
        if not 0 <= slippage_tolerance_bps <= u.BPS_DENOMINATOR:
            raise ValueError(f"slippage_tolerance_bps out of range: {slippage_tolerance_bps}")
        self.slippage_tolerance_bps = slippage_tolerance_bps

    @staticmethod
    def _require_reserves(reserve_in: int, reserve_out: int):
        if reserve_in == 0 or reserve_out == 0:
            raise DivideByZero(
                f"pool reserve is zero (reserve_in={reserve_in}, reserve_out={reserve_out})"
            )

    @staticmethod
    def amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
        SlippageModel._require_reserves(reserve_in, reserve_out)
        amount_in_with_fee = u.mul(amount_in, u.BPS_DENOMINATOR - fee_bps)
        numerator = u.mul(amount_in_with_fee, reserve_out)
        denominator = u.add(u.mul(reserve_in, u.BPS_DENOMINATOR), amount_in_with_fee)
        return u.div(numerator, denominator)

    @staticmethod
    def price_impact(amount_in: int, reserve_in: int, reserve_out: int) -> int:
        SlippageModel._require_reserves(reserve_in, reserve_out)
        new_reserve_in = u.add(reserve_in, amount_in)
        new_reserve_out = u.mul_div(reserve_out, reserve_in, new_reserve_in)
        return u.sub(reserve_out, new_reserve_out)

    @staticmethod
    def naive_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
        SlippageModel._require_reserves(reserve_in, reserve_out)
        return u.mul_div(amount_in, reserve_out, reserve_in)

    def min_amount_out(self, amount_out: int) -> int:
        return u.apply_bps(amount_out, self.slippage_tolerance_bps)

    def quote(self, pool: Pool, amount_in: int) -> SlippageQuote:
        out = self.amount_out(amount_in, pool.reserve_in, pool.reserve_out, pool.fee_bps)
        naive = self.naive_amount_out(amount_in, pool.reserve_in, pool.reserve_out)
        return SlippageQuote(
            pool=pool,
            amount_in=amount_in,
            amount_out=out,
            naive_amount_out=naive,
            # naive >= out always holds for fee >= 0, sub() would flag a model bug
            slippage=u.sub(naive, out),
            price_impact=self.price_impact(amount_in, pool.reserve_in, pool.reserve_out),
            min_amount_out=self.min_amount_out(out),
        )

    def is_acceptable(self, quote: SlippageQuote) -> bool:
        if quote.slippage > self.max_slippage:
            logger.debug(
                f"Slippage {quote.slippage} > max {self.max_slippage} on "
                f"{quote.pool.dex} {quote.pool.token_in}->{quote.pool.token_out}"
            )
            return False
        return True
