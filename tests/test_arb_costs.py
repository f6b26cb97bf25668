"""
Tests for flasharb/costs/gas.py

Covers:
  - cost = gas_limit × gas_price
  - Gas-limit safety buffer in basis points
  - Estimation failure raises EstimationFailed, never a zero cost
  - Implausible (zero) estimates rejected
  - Stats tracking
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from flasharb.costs.gas import CostEstimator, GasQuote
from flasharb.errors import EstimationFailed, TransientProviderError

GWEI = 10 ** 9


def _make_chain(gas_limit=250_000, gas_price=30 * GWEI):
    chain = MagicMock()
    chain.estimate_gas = AsyncMock(return_value=gas_limit)
    chain.get_gas_price = AsyncMock(return_value=gas_price)
    return chain


class TestGasQuote:
    def test_of(self):
        quote = GasQuote.of(21_000, 10 * GWEI)
        assert quote.cost == 210_000 * GWEI


class TestCostEstimator:
    @pytest.mark.asyncio
    async def test_estimate(self):
        estimator = CostEstimator(_make_chain())
        quote = await estimator.estimate({"to": "0x0"})
        assert quote.gas_limit == 250_000
        assert quote.gas_price == 30 * GWEI
        assert quote.cost == 250_000 * 30 * GWEI

    @pytest.mark.asyncio
    async def test_buffer_applied_to_limit(self):
        estimator = CostEstimator(_make_chain(gas_limit=200_000), gas_limit_buffer_bps=2_000)
        quote = await estimator.estimate({})
        assert quote.gas_limit == 240_000
        assert quote.cost == 240_000 * 30 * GWEI

    @pytest.mark.asyncio
    async def test_estimate_failure_is_not_zero(self):
        chain = _make_chain()
        chain.estimate_gas = AsyncMock(side_effect=TransientProviderError("execution reverted"))
        estimator = CostEstimator(chain)
        with pytest.raises(EstimationFailed):
            await estimator.estimate({})
        assert estimator.get_stats()["failures"] == 1

    @pytest.mark.asyncio
    async def test_gas_price_failure(self):
        chain = _make_chain()
        chain.get_gas_price = AsyncMock(side_effect=TransientProviderError("timeout"))
        with pytest.raises(EstimationFailed):
            await CostEstimator(chain).estimate({})

    @pytest.mark.asyncio
    async def test_zero_gas_limit_rejected(self):
        with pytest.raises(EstimationFailed):
            await CostEstimator(_make_chain(gas_limit=0)).estimate({})

    @pytest.mark.asyncio
    async def test_stats(self):
        estimator = CostEstimator(_make_chain(gas_limit=100, gas_price=2))
        await estimator.estimate({})
        await estimator.estimate({})
        stats = estimator.get_stats()
        assert stats["estimates"] == 2
        assert stats["failures"] == 0
        assert stats["avg_cost_wei"] == 200
        assert stats["last_gas_price"] == 2

    def test_negative_buffer_rejected(self):
        with pytest.raises(ValueError):
            CostEstimator(_make_chain(), gas_limit_buffer_bps=-1)
