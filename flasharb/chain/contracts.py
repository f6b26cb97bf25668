"""
Static contract bindings.

ABIs are generated from the deployed contracts' interface descriptions and
pinned here, so there is no runtime JSON loading and a missing file can't
surface as an error mid-trade.

- FlashLoanArbitrage.executeArbitrage(dexes, paths, amountIn, minProfit)
- IDex.getReserves(tokenA, tokenB) -> (reserveA, reserveB)
"""
from typing import Any, Dict, Sequence, Tuple

from web3 import AsyncWeb3, Web3

FLASH_LOAN_ARBITRAGE_ABI = [
    {
        "type": "function",
        "name": "executeArbitrage",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "dexes", "type": "address[]"},
            {"name": "paths", "type": "address[]"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "minProfit", "type": "uint256"},
        ],
        "outputs": [],
    },
]

DEX_ABI = [
    {
        "type": "function",
        "name": "getReserves",
        "stateMutability": "view",
        "inputs": [
            {"name": "tokenA", "type": "address"},
            {"name": "tokenB", "type": "address"},
        ],
        "outputs": [
            {"name": "reserveA", "type": "uint256"},
            {"name": "reserveB", "type": "uint256"},
        ],
    },
]


class ArbitrageContract:
    """Typed wrapper around the on-chain executor contract."""

    def __init__(self, web3: AsyncWeb3, address: str):
        self.address = Web3.to_checksum_address(address)
        self._contract = web3.eth.contract(address=self.address, abi=FLASH_LOAN_ARBITRAGE_ABI)

    def encode_execute(
        self, dexes: Sequence[str], paths: Sequence[str], amount_in: int, min_profit: int
    ) -> str:
        return self._contract.encode_abi(
            "executeArbitrage",
            args=[
                [Web3.to_checksum_address(d) for d in dexes],
                [Web3.to_checksum_address(p) for p in paths],
                amount_in,
                min_profit,
            ],
        )

    def candidate_transaction(self, opportunity, sender: str) -> Dict[str, Any]:
        """Unsigned call used for gas estimation. No gas / nonce fields."""
        return {
            "from": Web3.to_checksum_address(sender),
            "to": self.address,
            "value": 0,
            "data": self.encode_execute(
                opportunity.dexes, opportunity.path,
                opportunity.amount_in, opportunity.min_profit,
            ),
        }

    def build_transaction(
        self, opportunity, sender: str, nonce: int, gas_limit: int, gas_price: int, chain_id: int,
    ) -> Dict[str, Any]:
        """Fully specified legacy transaction, ready to sign offline."""
        tx = self.candidate_transaction(opportunity, sender)
        tx.update({
            "nonce": nonce,
            "gas": gas_limit,
            "gasPrice": gas_price,
            "chainId": chain_id,
        })
        return tx


class DexContract:

    def __init__(self, web3: AsyncWeb3, address: str):
        self.address = Web3.to_checksum_address(address)
        self._contract = web3.eth.contract(address=self.address, abi=DEX_ABI)

    async def get_reserves(self, token_a: str, token_b: str) -> Tuple[int, int]:
        reserve_a, reserve_b = await self._contract.functions.getReserves(
            Web3.to_checksum_address(token_a), Web3.to_checksum_address(token_b),
        ).call()
        return int(reserve_a), int(reserve_b)
