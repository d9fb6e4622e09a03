"""
Liquidity Accounting — конверсия депозитов ↔ LP shares

shares_to_mint:
- первый provide: share = xcp(D_new) - MINIMUM_LIQUIDITY (минимальная
  ликвидность mint'ится на сам контракт и никогда не выводится)
- последующие: share = total * (D_new / D_old - 1) * (1 - provide_fee), floor;
  неиспользованный остаток депозита (rounding dust) возвращается как refund,
  consumed часть округляется ВВЕРХ

shares_to_burn:
- withdraw_i = floor(reserve_i * amount / total_share)

Баланс LP вызывающего хранит Token-Issuance Gateway, сюда он передаётся
параметром.
"""

import decimal
from dataclasses import dataclass
from decimal import Decimal
from typing import Final, Optional, Sequence

from pcl_pool.core.domain.pool_config import PoolConfig
from pcl_pool.core.domain.pool_state import PoolState
from pcl_pool.core.errors import (
    InsufficientLiquidity,
    InvalidParameters,
    InvalidZeroAmount,
    MinimumLiquidityAmountError,
    SlippageExceeded,
)
from pcl_pool.core.math.curve_invariant import calc_d, get_xcp
from pcl_pool.core.math.numerical_safeguards import (
    LP_TOKEN_PRECISION,
    MATH_CONTEXT,
    MIN_TRADE_SIZE,
    ONE,
    ZERO,
    abs_diff,
    ceil_to_units,
    floor_to_units,
    mul_div_floor,
    saturating_sub,
    to_decimal,
)
from pcl_pool.core.math.swap_math import assert_slippage_tolerance, provide_fee

# LP base units, mint'ятся на контракт при первом provide
MINIMUM_LIQUIDITY: Final[int] = 1000


@dataclass(frozen=True)
class MintResult:
    """Результат расчёта provide."""

    share: int
    min_liquidity: int
    consumed: tuple[int, int]
    refunds: tuple[int, int]
    slippage: Decimal
    # Цена несбалансированной части депозита (None, если депозит почти сбалансирован)
    last_price: Optional[Decimal]

    @property
    def total_minted(self) -> int:
        return self.share + self.min_liquidity


def shares_to_mint(
    deposits: Sequence[int],
    state: PoolState,
    config: PoolConfig,
    now: int,
    slippage_tolerance: Optional[Decimal] = None,
    min_share: Optional[int] = None,
) -> MintResult:
    """
    Расчёт LP shares для депозита.

    Args:
        deposits: депозиты (base units) в порядке активов пула
        state: текущее состояние пула
        config: конфигурация пула (precisions, fee параметры)
        now: время блока (amp/gamma ramp)
        slippage_tolerance: допустимый slippage против "справедливого" количества LP
        min_share: минимально приемлемое количество LP

    Raises:
        InvalidZeroAmount: первый provide односторонний
        MinimumLiquidityAmountError: первый provide не покрывает MINIMUM_LIQUIDITY
        SlippageExceeded: min_share / slippage_tolerance не выполнены
    """
    precisions = config.precisions
    deposits_dec = [to_decimal(deposits[i], precisions[i]) for i in range(2)]
    if deposits_dec[0] == 0 and deposits_dec[1] == 0:
        raise InvalidParameters("Nothing to provide")

    first_provide = state.total_share == 0
    if first_provide and (deposits_dec[0] == 0 or deposits_dec[1] == 0):
        raise InvalidZeroAmount()

    price_scale = state.price_state.price_scale
    amp, gamma = state.amp_gamma.get_amp_gamma(now)
    total_share = to_decimal(state.total_share, LP_TOKEN_PRECISION)

    with decimal.localcontext(MATH_CONTEXT):
        old_balances = state.balances(precisions)
        new_xp = [
            old_balances[0] + deposits_dec[0],
            (old_balances[1] + deposits_dec[1]) * price_scale,
        ]
        new_d = calc_d(new_xp, amp, gamma)

        if first_provide:
            xcp = get_xcp(new_d, price_scale)
            share_exact = saturating_sub(
                xcp, to_decimal(MINIMUM_LIQUIDITY, LP_TOKEN_PRECISION)
            )
            if share_exact == 0:
                raise MinimumLiquidityAmountError(MINIMUM_LIQUIDITY)
            xcp_profit_real = ONE
        else:
            old_d = calc_d(state.xp(precisions), amp, gamma)
            share_exact = saturating_sub(total_share * new_d / old_d, total_share)
            ideposits = [deposits_dec[0], deposits_dec[1] * price_scale]
            share_exact *= ONE - provide_fee(ideposits, new_xp, config.params)
            xcp_profit_real = state.price_state.xcp_profit_real

        share = floor_to_units(share_exact, LP_TOKEN_PRECISION)
        if share == 0:
            raise SlippageExceeded("Provide mints zero shares", expected=1, actual=0)
        if min_share is not None and share < min_share:
            raise SlippageExceeded(
                "Minted share is below min_share", expected=min_share, actual=share
            )

        # Несбалансированная часть депозита двигает цену как свап
        share_ratio = share_exact / (total_share + share_exact)
        balanced = [new_xp[0] * share_ratio, new_xp[1] * share_ratio / price_scale]
        diffs = [abs_diff(deposits_dec[0], balanced[0]), abs_diff(deposits_dec[1], balanced[1])]

        slippage = ZERO
        last_price = None
        if diffs[0] >= MIN_TRADE_SIZE and diffs[1] >= MIN_TRADE_SIZE:
            slippage = assert_slippage_tolerance(
                deposits_dec, share_exact, price_scale, xcp_profit_real, slippage_tolerance
            )
            last_price = diffs[0] / diffs[1]

        if first_provide:
            consumed = (deposits[0], deposits[1])
        else:
            share_dec = to_decimal(share, LP_TOKEN_PRECISION)
            consumed = tuple(
                min(
                    deposits[i],
                    ceil_to_units(deposits_dec[i] * share_dec / share_exact, precisions[i]),
                )
                for i in range(2)
            )

    return MintResult(
        share=share,
        min_liquidity=MINIMUM_LIQUIDITY if first_provide else 0,
        consumed=consumed,
        refunds=(deposits[0] - consumed[0], deposits[1] - consumed[1]),
        slippage=slippage,
        last_price=last_price,
    )


def share_in_assets(amount: int, state: PoolState) -> tuple[int, int]:
    """Доля резервов, соответствующая amount LP (floor)."""
    if state.total_share == 0:
        return 0, 0
    return (
        mul_div_floor(state.reserves[0], amount, state.total_share),
        mul_div_floor(state.reserves[1], amount, state.total_share),
    )


def shares_to_burn(amount: int, balance: int, state: PoolState) -> tuple[int, int]:
    """
    Пропорциональный withdraw.

    Args:
        amount: сжигаемые LP (base units)
        balance: баланс LP вызывающего (по данным Token-Issuance Gateway)
        state: текущее состояние пула

    Raises:
        InvalidParameters: amount <= 0
        InsufficientLiquidity: amount больше баланса или supply
    """
    if amount <= 0:
        raise InvalidParameters("Withdraw amount must be positive", actual=amount)
    if amount > balance:
        raise InsufficientLiquidity(
            "Withdraw exceeds the caller's share balance", expected=balance, actual=amount
        )
    if amount > state.total_share:
        raise InsufficientLiquidity(
            "Withdraw exceeds total share", expected=state.total_share, actual=amount
        )
    return share_in_assets(amount, state)


def check_min_assets(
    withdrawn: Sequence[int], min_assets: Optional[Sequence[int]]
) -> None:
    """
    Raises:
        SlippageExceeded: Если какой-то из withdrawn ниже минимума
    """
    if min_assets is None:
        return
    for ind, (actual, minimum) in enumerate(zip(withdrawn, min_assets)):
        if actual < minimum:
            raise SlippageExceeded(
                f"Withdrawn amount of asset {ind} is below minimum",
                expected=minimum,
                actual=actual,
            )
