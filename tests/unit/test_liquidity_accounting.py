"""
Тесты для Liquidity Accounting

Coverage:
- Первый provide: xcp - MINIMUM_LIQUIDITY, одностороннее / слишком малое предложение
- Последующий provide: пропорциональный mint, provide fee, refund rounding dust
- min_share / slippage_tolerance
- Withdraw: пропорциональный floor, превышение баланса / supply
- min_assets
"""

from decimal import Decimal

import pytest

from pcl_pool.core.domain.assets import AssetInfo
from pcl_pool.core.domain.pool_config import PoolConfig, PoolParams
from pcl_pool.core.domain.pool_state import AmpGamma, PoolState, PriceState
from pcl_pool.core.errors import (
    InsufficientLiquidity,
    InvalidParameters,
    InvalidZeroAmount,
    MinimumLiquidityAmountError,
    SlippageExceeded,
)
from pcl_pool.liquidity.accounting import (
    MINIMUM_LIQUIDITY,
    check_min_assets,
    share_in_assets,
    shares_to_burn,
    shares_to_mint,
)

# =============================================================================
# FIXTURES
# =============================================================================


def _state(reserves=(0, 0), total_share=0, price_scale="1") -> PoolState:
    return PoolState(
        reserves=reserves,
        total_share=total_share,
        amp_gamma=AmpGamma.fixed(Decimal(40), Decimal("0.02")),
        price_state=PriceState.initial(Decimal(price_scale), 0),
    )


@pytest.fixture
def config():
    return PoolConfig(
        contract_addr="contract1",
        factory_addr="factory",
        owner="owner",
        asset_infos=(AssetInfo.native("uosmo"), AssetInfo.native("uusd")),
        precisions=(6, 6),
        lp_denom="factory/contract1/astroport/share",
        params=PoolParams(mid_fee=Decimal("0.003"), out_fee=Decimal("0.003")),
    )


@pytest.fixture
def funded_state():
    """1000 / 1000 при price_scale 1; total_share = xcp = 1000 LP."""
    return _state(reserves=(1000_000000, 1000_000000), total_share=1000_000000)


# =============================================================================
# PROVIDE
# =============================================================================


class TestFirstProvide:
    """Первый provide в пустой пул."""

    def test_share_is_xcp_minus_minimum_liquidity(self, config):
        """1000 / 1000 → xcp 1000 LP, получателю 999.999 LP."""
        result = shares_to_mint([1000_000000, 1000_000000], _state(), config, now=0)

        assert result.share == 999_999000
        assert result.min_liquidity == MINIMUM_LIQUIDITY
        assert result.total_minted == 1000_000000
        assert result.consumed == (1000_000000, 1000_000000)
        assert result.refunds == (0, 0)
        assert result.last_price is None

    def test_price_scale_two(self, config):
        """100000 uosmo + 50000 uusd при price_scale 2 → 70710.677118 LP."""
        result = shares_to_mint(
            [100_000_000000, 50_000_000000], _state(price_scale="2"), config, now=0
        )

        assert result.share == 70710_677118

    def test_one_sided_rejected(self, config):
        with pytest.raises(InvalidZeroAmount):
            shares_to_mint([1000_000000, 0], _state(), config, now=0)

    def test_below_minimum_liquidity(self, config):
        """xcp 0.0001 LP не покрывает MINIMUM_LIQUIDITY."""
        with pytest.raises(MinimumLiquidityAmountError):
            shares_to_mint([100, 100], _state(), config, now=0)

    def test_nothing_to_provide(self, config):
        with pytest.raises(InvalidParameters):
            shares_to_mint([0, 0], _state(), config, now=0)


class TestSubsequentProvide:
    """Provide в пул с ликвидностью."""

    def test_balanced_deposit(self, config, funded_state):
        """+10% обоих активов → +10% LP без fee."""
        result = shares_to_mint([100_000000, 100_000000], funded_state, config, now=0)

        assert result.share == 100_000000
        assert result.min_liquidity == 0
        assert result.consumed == (100_000000, 100_000000)
        assert result.refunds == (0, 0)
        assert result.slippage == 0

    def test_one_sided_deposit(self, config, funded_state):
        """Односторонний депозит платит provide fee и двигает цену."""
        result = shares_to_mint([100_000000, 0], funded_state, config, now=0)

        assert 0 < result.share < 50_000000
        assert result.consumed[0] + result.refunds[0] == 100_000000
        assert result.refunds[0] <= 100
        assert result.consumed[1] == 0
        assert result.last_price is not None
        assert result.slippage > 0

    def test_min_share(self, config, funded_state):
        with pytest.raises(SlippageExceeded) as exc_info:
            shares_to_mint(
                [100_000000, 100_000000], funded_state, config, now=0, min_share=100_000001
            )

        assert exc_info.value.expected == 100_000001
        assert exc_info.value.actual == 100_000000

    def test_slippage_tolerance(self, config, funded_state):
        """Односторонний депозит 10% пула: slippage ~0.19% > 0.1%."""
        with pytest.raises(SlippageExceeded):
            shares_to_mint(
                [100_000000, 0],
                funded_state,
                config,
                now=0,
                slippage_tolerance=Decimal("0.001"),
            )


# =============================================================================
# WITHDRAW
# =============================================================================


class TestWithdraw:
    """Пропорциональный withdraw."""

    @pytest.fixture
    def state(self):
        return _state(reserves=(1000_000000, 500_000000), total_share=1000_000000)

    def test_share_in_assets_floors(self, state):
        assert share_in_assets(333, state) == (333, 166)

    def test_share_in_assets_empty_pool(self):
        assert share_in_assets(1, _state()) == (0, 0)

    def test_shares_to_burn(self, state):
        assert shares_to_burn(100_000000, 100_000000, state) == (100_000000, 50_000000)

    def test_exceeds_balance(self, state):
        with pytest.raises(InsufficientLiquidity) as exc_info:
            shares_to_burn(100_000001, 100_000000, state)

        assert exc_info.value.details == {"expected": 100_000000, "actual": 100_000001}

    def test_exceeds_total_share(self, state):
        with pytest.raises(InsufficientLiquidity):
            shares_to_burn(1000_000001, 2000_000000, state)

    def test_non_positive_amount(self, state):
        with pytest.raises(InvalidParameters):
            shares_to_burn(0, 100, state)


class TestMinAssets:
    """min_assets при withdraw."""

    def test_none_skips_check(self):
        check_min_assets((0, 0), None)

    def test_satisfied(self):
        check_min_assets((100, 50), [100, 50])

    def test_violated(self):
        with pytest.raises(SlippageExceeded, match="asset 1"):
            check_min_assets((100, 49), [100, 50])
