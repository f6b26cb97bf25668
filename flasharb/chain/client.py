"""
Chain RPC adapter — the only place that talks to the node.

Wraps web3.AsyncWeb3 and turns every transport or RPC failure into
TransientProviderError, so the rest of the pipeline never has to know
which of web3 / aiohttp / the OS raised.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception

from ..errors import TransientProviderError

logger = logging.getLogger("arb.chain")

# Errors that mean "the node / network misbehaved", never "our logic is wrong"
PROVIDER_ERRORS = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError)


class ChainClient:

    def __init__(self, web3: AsyncWeb3, request_timeout: float = 10.0):
        self.web3 = web3
        self.request_timeout = request_timeout
        self._request_count = 0
        self._error_count = 0

    @classmethod
    def from_url(cls, rpc_url: str, request_timeout: float = 10.0) -> "ChainClient":
        provider = AsyncWeb3.AsyncHTTPProvider(
            rpc_url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
        )
        return cls(AsyncWeb3(provider), request_timeout=request_timeout)

    async def _rpc(self, label: str, awaitable):
        self._request_count += 1
        try:
            return await asyncio.wait_for(awaitable, timeout=self.request_timeout)
        except PROVIDER_ERRORS as e:
            self._error_count += 1
            raise TransientProviderError(f"{label} failed: {e}") from e

    async def get_block_number(self) -> int:
        return int(await self._rpc("eth_blockNumber", self.web3.eth.block_number))

    async def get_gas_price(self) -> int:
        return int(await self._rpc("eth_gasPrice", self.web3.eth.gas_price))

    async def get_chain_id(self) -> int:
        return int(await self._rpc("eth_chainId", self.web3.eth.chain_id))

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return int(await self._rpc("eth_estimateGas", self.web3.eth.estimate_gas(tx)))

    async def get_pending_nonce(self, address: str) -> int:
        return int(await self._rpc(
            "eth_getTransactionCount",
            self.web3.eth.get_transaction_count(address, "pending"),
        ))

    async def get_receipt(self, tx_hash: str) -> Optional[dict]:
        """Receipt or None if the transaction is not mined."""
        self._request_count += 1
        try:
            receipt = await asyncio.wait_for(
                self.web3.eth.get_transaction_receipt(tx_hash),
                timeout=self.request_timeout,
            )
        except TransactionNotFound:
            return None
        except PROVIDER_ERRORS as e:
            self._error_count += 1
            raise TransientProviderError(f"eth_getTransactionReceipt failed: {e}") from e
        return dict(receipt) if receipt is not None else None

    def get_stats(self) -> dict:
        return {
            "requests": self._request_count,
            "errors": self._error_count,
        }
