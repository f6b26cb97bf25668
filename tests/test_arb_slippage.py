"""
Tests for flasharb/amm/slippage.py and flasharb/amm/pool.py

Covers:
  - Constant-product output with fee (1000/1000/100/30 → 90)
  - Zero reserves raise DivideByZero, never price at zero
  - Output strictly increasing in input and bounded by reserve_out
  - Price impact, naive output, slippage, tolerance haircut
  - Absolute slippage cap
  - Pool validation
"""
import pytest

from flasharb.amm.pool import Pool
from flasharb.amm.slippage import SlippageModel
from flasharb.errors import DivideByZero

ETH = 10 ** 18


def _make_pool(reserve_in=1000, reserve_out=1000, fee_bps=30):
    return Pool(dex="dex1", token_in="WETH", token_out="USDC",
                reserve_in=reserve_in, reserve_out=reserve_out, fee_bps=fee_bps)


class TestAmountOut:
    def test_reference_example(self):
        assert SlippageModel.amount_out(100, 1000, 1000, 30) == 90

    def test_zero_fee(self):
        # 100 * 1000 / 1100
        assert SlippageModel.amount_out(100, 1000, 1000, 0) == 90

    def test_zero_reserve_out_raises(self):
        with pytest.raises(DivideByZero):
            SlippageModel.amount_out(100, 500, 0, 30)

    def test_zero_reserve_in_raises(self):
        with pytest.raises(DivideByZero):
            SlippageModel.amount_out(100, 0, 500, 30)

    def test_zero_input_gives_zero(self):
        assert SlippageModel.amount_out(0, 1000, 1000, 30) == 0

    def test_strictly_increasing_at_realistic_scale(self):
        reserve_in, reserve_out = 5_000 * ETH, 10_000_000 * 10 ** 6
        previous = -1
        for amount in (ETH // 10, ETH, 10 * ETH, 100 * ETH, 1_000 * ETH, 5_000 * ETH):
            out = SlippageModel.amount_out(amount, reserve_in, reserve_out, 30)
            assert out > previous
            assert out < reserve_out
            previous = out


class TestQuote:
    @pytest.fixture
    def model(self):
        return SlippageModel(max_slippage=50, slippage_tolerance_bps=100)

    def test_quote_fields(self, model):
        quote = model.quote(_make_pool(), 100)
        assert quote.amount_out == 90
        assert quote.naive_amount_out == 100
        assert quote.slippage == 10
        # 1000 - 1000*1000/1100 = 1000 - 909
        assert quote.price_impact == 91
        # 90 * 9900 / 10000
        assert quote.min_amount_out == 89

    def test_quote_zero_reserve_raises(self, model):
        with pytest.raises(DivideByZero):
            model.quote(_make_pool(reserve_out=0), 100)

    def test_acceptable_within_cap(self, model):
        assert model.is_acceptable(model.quote(_make_pool(), 100))

    def test_rejected_above_cap(self):
        model = SlippageModel(max_slippage=9, slippage_tolerance_bps=100)
        assert not model.is_acceptable(model.quote(_make_pool(), 100))

    def test_cap_is_inclusive(self):
        model = SlippageModel(max_slippage=10, slippage_tolerance_bps=100)
        assert model.is_acceptable(model.quote(_make_pool(), 100))

    def test_tolerance_out_of_range(self):
        with pytest.raises(ValueError):
            SlippageModel(max_slippage=1, slippage_tolerance_bps=10_001)


class TestPool:
    def test_usable(self):
        assert _make_pool().is_usable
        assert not _make_pool(reserve_out=0).is_usable

    def test_same_token_rejected(self):
        with pytest.raises(ValueError):
            Pool(dex="d", token_in="A", token_out="A", reserve_in=1, reserve_out=1)

    def test_fee_out_of_range(self):
        with pytest.raises(ValueError):
            _make_pool(fee_bps=10_000)

    def test_negative_reserve_rejected(self):
        with pytest.raises(OverflowError):
            _make_pool(reserve_in=-1)
