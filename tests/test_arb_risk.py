"""
Tests for flasharb/risk/gate.py

Covers:
  - Accept when gross − gas strictly exceeds min_profit
  - gross 0.02 / gas 0.015 / min 0.01 ETH → UNPROFITABLE_AFTER_GAS
  - Net exactly equal to min_profit is rejected
  - Stage order: liquidity before slippage before gas
  - Fresh reserves: a pool drained since discovery is rejected
  - EstimationFailed propagates instead of pricing gas at zero
  - Rejection counters
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from web3 import Web3

from flasharb.amm.liquidity import LiquidityGuard
from flasharb.amm.pool import Pool
from flasharb.amm.slippage import SlippageModel
from flasharb.costs.gas import GasQuote
from flasharb.detector.discovery import Opportunity
from flasharb.errors import EstimationFailed
from flasharb.risk.gate import ProfitabilityGate, RejectionReason

ETH = 10 ** 18
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
DEX1 = "0x1111111111111111111111111111111111111111"
DEX2 = "0x2222222222222222222222222222222222222222"
SENDER = "0x3333333333333333333333333333333333333333"


def _make_opportunity(gross="0.05", min_profit="0.01", amount_in=ETH, reserve=1_000 * ETH):
    route = (
        Pool(DEX1, WETH, USDC, reserve, reserve),
        Pool(DEX2, USDC, WETH, reserve, reserve),
    )
    return Opportunity(
        token_in=WETH, token_out=WETH, amount_in=amount_in, route=route,
        gross_profit=Web3.to_wei(gross, "ether"), min_profit=Web3.to_wei(min_profit, "ether"),
    )


def _make_oracle(reserve=1_000 * ETH, reserve_out=None):
    oracle = MagicMock()

    async def get_pool(dex, token_in, token_out, fee_bps=30):
        return Pool(dex, token_in, token_out, reserve,
                    reserve if reserve_out is None else reserve_out, fee_bps)

    oracle.get_pool = AsyncMock(side_effect=get_pool)
    return oracle


def _make_costs(cost_eth="0.015"):
    costs = MagicMock()
    gas_limit = 500_000
    cost = Web3.to_wei(cost_eth, "ether")
    costs.estimate = AsyncMock(return_value=GasQuote(gas_limit, cost // gas_limit, cost))
    return costs


def _make_gate(oracle=None, costs=None, max_slippage=5 * 10 ** 15):
    contract = MagicMock()
    contract.candidate_transaction = MagicMock(return_value={"from": SENDER, "to": DEX1, "data": "0x"})
    return ProfitabilityGate(
        oracle or _make_oracle(),
        LiquidityGuard(),
        SlippageModel(max_slippage=max_slippage, slippage_tolerance_bps=100),
        costs or _make_costs(),
        contract,
        sender=SENDER,
    )


class TestProfitabilityGate:
    @pytest.mark.asyncio
    async def test_accepts_profitable(self):
        gate = _make_gate()
        decision = await gate.evaluate(_make_opportunity(gross="0.05"))
        assert decision.accepted
        assert decision.reason is None
        assert decision.net_profit == Web3.to_wei("0.035", "ether")
        assert len(decision.hop_quotes) == 2
        assert decision.candidate_tx is not None

    @pytest.mark.asyncio
    async def test_unprofitable_after_gas(self):
        gate = _make_gate(costs=_make_costs("0.015"))
        decision = await gate.evaluate(_make_opportunity(gross="0.02", min_profit="0.01"))
        assert not decision.accepted
        assert decision.reason == RejectionReason.UNPROFITABLE_AFTER_GAS
        assert decision.net_profit == Web3.to_wei("0.005", "ether")

    @pytest.mark.asyncio
    async def test_net_equal_to_min_profit_rejected(self):
        costs = MagicMock()
        costs.estimate = AsyncMock(return_value=GasQuote(1, 10 ** 16, 10 ** 16))
        opp = Opportunity(
            token_in=WETH, token_out=WETH, amount_in=ETH,
            route=_make_opportunity().route,
            gross_profit=2 * 10 ** 16, min_profit=10 ** 16,
        )
        decision = await _make_gate(costs=costs).evaluate(opp)
        assert decision.reason == RejectionReason.UNPROFITABLE_AFTER_GAS

    @pytest.mark.asyncio
    async def test_gas_exceeding_gross_rejected(self):
        decision = await _make_gate(costs=_make_costs("0.1")).evaluate(_make_opportunity(gross="0.05"))
        assert decision.reason == RejectionReason.UNPROFITABLE_AFTER_GAS
        assert decision.net_profit < 0

    @pytest.mark.asyncio
    async def test_insufficient_liquidity_skips_gas(self):
        costs = _make_costs()
        gate = _make_gate(oracle=_make_oracle(reserve=ETH // 2), costs=costs)
        decision = await gate.evaluate(_make_opportunity())
        assert decision.reason == RejectionReason.INSUFFICIENT_LIQUIDITY
        costs.estimate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_liquidity_checked_before_slippage(self):
        # Would also fail the 1-wei slippage cap
        gate = _make_gate(oracle=_make_oracle(reserve=ETH // 2), max_slippage=1)
        decision = await gate.evaluate(_make_opportunity())
        assert decision.reason == RejectionReason.INSUFFICIENT_LIQUIDITY

    @pytest.mark.asyncio
    async def test_excessive_slippage_skips_gas(self):
        costs = _make_costs()
        gate = _make_gate(costs=costs, max_slippage=1)
        decision = await gate.evaluate(_make_opportunity())
        assert decision.reason == RejectionReason.EXCESSIVE_SLIPPAGE
        costs.estimate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reads_fresh_reserves(self):
        # Discovery saw deep pools; the chain now shows a drained output side
        oracle = _make_oracle(reserve=1_000 * ETH, reserve_out=ETH // 10)
        decision = await _make_gate(oracle=oracle).evaluate(_make_opportunity())
        assert decision.reason == RejectionReason.INSUFFICIENT_LIQUIDITY
        assert oracle.get_pool.await_count >= 1

    @pytest.mark.asyncio
    async def test_estimation_failure_propagates(self):
        costs = MagicMock()
        costs.estimate = AsyncMock(side_effect=EstimationFailed("reverted"))
        with pytest.raises(EstimationFailed):
            await _make_gate(costs=costs).evaluate(_make_opportunity())

    @pytest.mark.asyncio
    async def test_stats(self):
        gate = _make_gate()
        await gate.evaluate(_make_opportunity(gross="0.05"))
        await gate.evaluate(_make_opportunity(gross="0.02"))
        stats = gate.get_stats()
        assert stats["evaluated"] == 2
        assert stats["accepted"] == 1
        assert stats["rejects"]["unprofitable_after_gas"] == 1
