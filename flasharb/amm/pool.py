"""
Constant-product pool snapshot.

One direction of one pair on one exchange, as read at a single block.
Immutable: a fresher read produces a new Pool.
"""
from dataclasses import dataclass

from .uint256 import BPS_DENOMINATOR, uint256


@dataclass(frozen=True)
class Pool:
    dex: str              # exchange contract the reserves were read from
    token_in: str
    token_out: str
    reserve_in: int
    reserve_out: int
    fee_bps: int = 30     # 0.30%, Uniswap V2 / Sushiswap

    def __post_init__(self):
        uint256(self.reserve_in)
        uint256(self.reserve_out)
        if not 0 <= self.fee_bps < BPS_DENOMINATOR:
            raise ValueError(f"fee_bps out of range: {self.fee_bps}")
        if self.token_in == self.token_out:
            raise ValueError(f"pool must join two different tokens, got {self.token_in} twice")

    @property
    def is_usable(self) -> bool:
        """A drained side makes every price computation meaningless."""
        return self.reserve_in > 0 and self.reserve_out > 0
