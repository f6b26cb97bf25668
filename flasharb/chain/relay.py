"""
Private relay client (Flashbots JSON-RPC conventions).

- eth_callBundle  → simulate a bundle against the target block
- eth_sendBundle  → hand the bundle to block builders, never to the mempool

Every request carries X-Flashbots-Signature: <address>:<sig>, where sig is an
EIP-191 signature by the relay identity key over keccak256(body). The identity
key is NOT the trading wallet; it only builds relay reputation.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..errors import RelayError, TransientProviderError
from ..execution.bundle import Bundle
from .client import ChainClient

logger = logging.getLogger("arb.relay")


@dataclass
class SimulationResult:
    success: bool
    error: Optional[str] = None
    results: List[dict] = field(default_factory=list)
    total_gas_used: int = 0
    coinbase_diff: int = 0


@dataclass(frozen=True)
class SignedBundle:
    bundle: Bundle
    body: str            # exact JSON bytes the signature covers
    signature: str       # "<address>:<0x signature>"


@dataclass
class BundleReceipt:
    block_number: int
    tx_hashes: Tuple[str, ...]
    gas_used: int


class BundleSubmission:
    """Handle returned by send_bundle. wait() resolves once the target block is mined."""

    def __init__(self, bundle_hash: str, bundle: Bundle, chain: ChainClient,
                 poll_interval: float = 1.0):
        self.bundle_hash = bundle_hash
        self.bundle = bundle
        self.target_block = bundle.target_block
        self._chain = chain
        self._poll_interval = poll_interval

    async def wait(self) -> Optional[BundleReceipt]:
        """Receipt if every bundle tx landed in the target block, else None.

        Unbounded on its own: callers time-box it.
        """
        while True:
            try:
                if await self._chain.get_block_number() >= self.target_block:
                    break
            except TransientProviderError as e:
                logger.debug(f"Block poll failed while waiting on {self.bundle_hash}: {e}")
            await asyncio.sleep(self._poll_interval)

        receipts = []
        for tx_hash in self.bundle.tx_hashes:
            receipt = await self._receipt_with_retry(tx_hash)
            if receipt is None or int(receipt.get("blockNumber", -1)) != self.target_block:
                return None
            receipts.append(receipt)

        return BundleReceipt(
            block_number=self.target_block,
            tx_hashes=self.bundle.tx_hashes,
            gas_used=sum(int(r.get("gasUsed", 0)) for r in receipts),
        )

    async def _receipt_with_retry(self, tx_hash: str) -> Optional[dict]:
        while True:
            try:
                return await self._chain.get_receipt(tx_hash)
            except TransientProviderError as e:
                logger.debug(f"Receipt poll failed for {tx_hash}: {e}")
                await asyncio.sleep(self._poll_interval)


class FlashbotsRelay:

    def __init__(
        self,
        endpoint: str,
        auth_account: LocalAccount,
        chain: ChainClient,
        timeout: float = 10.0,
        receipt_poll_interval: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.endpoint = endpoint
        self.auth_account = auth_account
        self.chain = chain
        self.timeout = timeout
        self.receipt_poll_interval = receipt_poll_interval
        self._session = session
        self._request_id = 0
        self._stats = {
            "simulations": 0,
            "simulation_failures": 0,
            "submissions": 0,
            "errors": 0,
        }

    # ── Auth ───────────────────────────────────────────────────────

    def _sign_body(self, body: str) -> str:
        digest = Web3.to_hex(Web3.keccak(text=body))
        signed = self.auth_account.sign_message(encode_defunct(text=digest))
        return f"{self.auth_account.address}:{Web3.to_hex(signed.signature)}"

    def _encode(self, method: str, params: List[Any]) -> str:
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        return json.dumps(payload, separators=(",", ":"))

    # ── Transport ──────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def _post(self, body: str, signature: str) -> dict:
        """POST a signed JSON-RPC body. Returns the decoded reply (may carry "error")."""
        headers = {
            "Content-Type": "application/json",
            "X-Flashbots-Signature": signature,
        }
        session = await self._get_session()
        try:
            async with session.post(self.endpoint, data=body, headers=headers) as resp:
                status = resp.status
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
            self._stats["errors"] += 1
            raise RelayError(f"relay unreachable: {e}") from e
        if status >= 400:
            self._stats["errors"] += 1
            raise RelayError(f"relay HTTP {status}: {data}")
        if not isinstance(data, dict):
            self._stats["errors"] += 1
            raise RelayError(f"malformed relay reply: {data!r}")
        return data

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()

    # ── Relay API ──────────────────────────────────────────────────

    async def simulate(self, bundle: Bundle, target_block: int) -> SimulationResult:
        """Dry-run the bundle on top of the target block's parent state.

        RelayError on transport failure or an HTTP error status. A bundle that
        would revert, or a reply without one result per transaction, comes back
        as success=False.
        """
        self._stats["simulations"] += 1
        body = self._encode("eth_callBundle", [{
            "txs": list(bundle.raw_transactions),
            "blockNumber": hex(target_block),
            "stateBlockNumber": "latest",
        }])
        data = await self._post(body, self._sign_body(body))

        if "error" in data:
            self._stats["simulation_failures"] += 1
            err = data["error"]
            return SimulationResult(
                success=False,
                error=err.get("message", str(err)) if isinstance(err, dict) else str(err),
            )

        result = data.get("result")
        results = result.get("results") if isinstance(result, dict) else None
        if (not isinstance(results, list) or len(results) != len(bundle.transactions)
                or not all(isinstance(r, dict) for r in results)):
            self._stats["simulation_failures"] += 1
            logger.warning(f"Malformed eth_callBundle reply: {data!r}")
            return SimulationResult(success=False, error="malformed simulation reply")
        for tx_result in results:
            if "error" in tx_result or "revert" in tx_result:
                self._stats["simulation_failures"] += 1
                return SimulationResult(
                    success=False,
                    error=str(tx_result.get("revert") or tx_result.get("error")),
                    results=results,
                )

        return SimulationResult(
            success=True,
            results=results,
            total_gas_used=int(result.get("totalGasUsed", 0)),
            coinbase_diff=int(result.get("coinbaseDiff", 0)),
        )

    def sign_bundle(self, bundle: Bundle) -> SignedBundle:
        body = self._encode("eth_sendBundle", [{
            "txs": list(bundle.raw_transactions),
            "blockNumber": hex(bundle.target_block),
        }])
        return SignedBundle(bundle=bundle, body=body, signature=self._sign_body(body))

    async def send_bundle(self, signed: SignedBundle, target_block: int) -> BundleSubmission:
        if target_block != signed.bundle.target_block:
            # a bundle is only ever valid for the block it was built for
            raise RelayError(
                f"bundle built for block {signed.bundle.target_block}, not {target_block}"
            )
        self._stats["submissions"] += 1
        data = await self._post(signed.body, signed.signature)
        if "error" in data:
            self._stats["errors"] += 1
            raise RelayError(f"eth_sendBundle rejected: {data['error']}")

        result = data.get("result") or {}
        bundle_hash = result.get("bundleHash") if isinstance(result, dict) else None
        if not bundle_hash:
            raise RelayError(f"eth_sendBundle returned no bundleHash: {data}")

        logger.info(f"Bundle submitted for block {target_block}: {bundle_hash}")
        return BundleSubmission(
            bundle_hash=bundle_hash,
            bundle=signed.bundle,
            chain=self.chain,
            poll_interval=self.receipt_poll_interval,
        )

    def get_stats(self) -> dict:
        return dict(self._stats)
