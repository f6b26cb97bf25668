"""
Pool Oracle — reads current reserves for a token pair from an exchange.

No caching. Every call reflects the latest block the node has. Staleness
between this read and execution is covered by bundle simulation, not here.
"""
import asyncio
import logging
from typing import Dict, Tuple

from web3 import Web3

from ..amm.pool import Pool
from ..errors import PoolUnavailable, TransientProviderError
from .client import PROVIDER_ERRORS, ChainClient
from .contracts import DexContract

logger = logging.getLogger("arb.oracle")


class PoolOracle:

    def __init__(self, chain: ChainClient):
        self.chain = chain
        self._dexes: Dict[str, DexContract] = {}
        self._reads = 0
        self._failures = 0

    def _dex(self, address: str) -> DexContract:
        key = Web3.to_checksum_address(address)
        if key not in self._dexes:
            self._dexes[key] = DexContract(self.chain.web3, key)
        return self._dexes[key]

    async def get_reserves(self, dex: str, token_a: str, token_b: str) -> Tuple[int, int]:
        self._reads += 1
        try:
            reserves = await asyncio.wait_for(
                self._dex(dex).get_reserves(token_a, token_b),
                timeout=self.chain.request_timeout,
            )
        except (TransientProviderError, *PROVIDER_ERRORS) as e:
            self._failures += 1
            raise PoolUnavailable(f"getReserves({token_a}, {token_b}) on {dex} failed: {e}") from e

        reserve_a, reserve_b = reserves
        if reserve_a < 0 or reserve_b < 0:
            self._failures += 1
            raise PoolUnavailable(f"malformed reserves from {dex}: {reserves}")
        return reserve_a, reserve_b

    async def get_pool(self, dex: str, token_in: str, token_out: str, fee_bps: int = 30) -> Pool:
        reserve_in, reserve_out = await self.get_reserves(dex, token_in, token_out)
        return Pool(
            dex=dex,
            token_in=token_in,
            token_out=token_out,
            reserve_in=reserve_in,
            reserve_out=reserve_out,
            fee_bps=fee_bps,
        )

    def get_stats(self) -> dict:
        return {"reads": self._reads, "failures": self._failures}
