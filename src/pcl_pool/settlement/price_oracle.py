"""
Price Oracle — EMA oracle, repeg price_scale, TWAP и observations

EMA oracle (раз в блок):
    alpha  = 0.5 ^ (dt / ma_half_time)
    oracle = last_price * (1 - alpha) + oracle * alpha

Repeg:
    norm = |oracle / price_scale - 1|
    step = clamp(norm * repeg_gain, min_price_scale_delta, max_price_scale_delta)
    условие: norm > min_price_scale_delta
             и xcp_profit_real - 1 > (xcp_profit - 1) / 2 + repeg_profit_threshold
    price_scale_new = price_scale + (oracle - price_scale) * min(step, norm) / norm

    Относительный сдвиг price_scale за вызов = min(step, norm) <= max_price_scale_delta.
    Новый price_scale принимается только если
    2 * vp_new - 1 > xcp_profit и vp_new >= vp до операции.

TWAP:
    price1_cumulative += last_price * dt        (asset0 за 1 asset1)
    price0_cumulative += (1 / last_price) * dt  (asset1 за 1 asset0)
"""

import decimal
import logging
from decimal import Decimal
from typing import Sequence

from pcl_pool.core.domain.pool_config import PoolParams
from pcl_pool.core.domain.pool_state import (
    OBSERVATIONS_SIZE,
    Observation,
    OracleAccumulators,
    PoolState,
    PriceState,
)
from pcl_pool.core.errors import InvalidParameters
from pcl_pool.core.math.curve_invariant import calc_d, get_xcp
from pcl_pool.core.math.numerical_safeguards import (
    MATH_CONTEXT,
    ONE,
    TWO,
    ZERO,
    abs_diff,
    clamp,
)

logger = logging.getLogger(__name__)

HALF: Decimal = Decimal("0.5")


# =============================================================================
# TWAP
# =============================================================================


def accumulate_prices(state: PoolState, now: int) -> PoolState:
    """
    Накопление TWAP-счётчиков ценой ДО операции.

    Вызывается в начале каждой state-changing операции.
    """
    acc = state.accumulators
    if now <= acc.last_updated:
        return state

    dt = Decimal(now - acc.last_updated)
    if state.total_share == 0:
        # Пустой пул: цены нет, только сдвигаем окно
        return state.model_copy(
            update={"accumulators": acc.model_copy(update={"last_updated": now})}
        )

    with decimal.localcontext(MATH_CONTEXT):
        price = state.price_state.last_price
        new_acc = OracleAccumulators(
            price0_cumulative=acc.price0_cumulative + dt / price,
            price1_cumulative=acc.price1_cumulative + dt * price,
            last_updated=now,
        )
    return state.model_copy(update={"accumulators": new_acc})


# =============================================================================
# OBSERVATIONS
# =============================================================================


def record_observation(
    state: PoolState, now: int, base_amount: Decimal, quote_amount: Decimal
) -> PoolState:
    """
    Добавление объёма свапа в observation текущего блока.

    Свапы одного блока суммируются в одну запись; самые старые записи
    вытесняются после OBSERVATIONS_SIZE.
    """
    observations = list(state.observations)
    if observations and observations[-1].ts == now:
        last = observations[-1]
        observations[-1] = Observation(
            ts=now,
            base_amount=last.base_amount + base_amount,
            quote_amount=last.quote_amount + quote_amount,
        )
    else:
        observations.append(
            Observation(ts=now, base_amount=base_amount, quote_amount=quote_amount)
        )
    if len(observations) > OBSERVATIONS_SIZE:
        observations = observations[-OBSERVATIONS_SIZE:]
    return state.model_copy(update={"observations": tuple(observations)})


def observe(observations: Sequence[Observation], now: int, seconds_ago: int) -> Decimal:
    """
    Средняя цена ближайшего observation не позже now - seconds_ago.

    Raises:
        InvalidParameters: Нет observations или запрошенная точка старше буфера
    """
    if not observations:
        raise InvalidParameters("Buffer is empty")

    target = now - seconds_ago
    for observation in reversed(observations):
        if observation.ts <= target:
            return observation.price

    raise InvalidParameters(
        "Requested observation is too old",
        oldest=observations[0].ts,
        actual=target,
    )


# =============================================================================
# PRICE UPDATE / REPEG
# =============================================================================


def _virtual_price(
    xp: Sequence[Decimal], price_scale: Decimal, total_lp: Decimal, amp: Decimal, gamma: Decimal
) -> Decimal:
    d = calc_d(xp, amp, gamma)
    return get_xcp(d, price_scale) / total_lp


def update_ema(price_state: PriceState, params: PoolParams, now: int) -> PriceState:
    """EMA oracle, не чаще раза в блок."""
    if now <= price_state.last_price_update:
        return price_state
    with decimal.localcontext(MATH_CONTEXT):
        dt = Decimal(now - price_state.last_price_update)
        alpha = HALF ** (dt / Decimal(params.ma_half_time))
        oracle = price_state.last_price * (ONE - alpha) + price_state.oracle_price * alpha
    return price_state.model_copy(
        update={"oracle_price": oracle, "last_price_update": now}
    )


def refresh_profit(
    price_state: PriceState,
    xp: Sequence[Decimal],
    total_lp: Decimal,
    amp: Decimal,
    gamma: Decimal,
) -> PriceState:
    """
    Пересчёт xcp_profit_real (virtual price) после изменения резервов.

    xcp_profit растёт в той же пропорции, что и xcp_profit_real.
    """
    if total_lp == 0:
        return price_state
    with decimal.localcontext(MATH_CONTEXT):
        vp = _virtual_price(xp, price_state.price_scale, total_lp, amp, gamma)
        xcp_profit = price_state.xcp_profit
        if price_state.xcp_profit_real > 0:
            xcp_profit = xcp_profit * vp / price_state.xcp_profit_real
    return price_state.model_copy(
        update={"xcp_profit_real": vp, "xcp_profit": xcp_profit}
    )


def repeg_price_scale(
    price_state: PriceState,
    params: PoolParams,
    xp: Sequence[Decimal],
    total_lp: Decimal,
    amp: Decimal,
    gamma: Decimal,
    vp_floor: Decimal,
) -> PriceState:
    """
    Bounded шаг price_scale в сторону oracle.

    Args:
        price_state: состояние ПОСЛЕ refresh_profit
        xp: internal балансы после операции (со старым price_scale)
        total_lp: LP supply после операции
        vp_floor: virtual price до операции

    Returns:
        PriceState с новым price_scale или исходный, если repeg не выгоден
    """
    if total_lp == 0:
        return price_state

    with decimal.localcontext(MATH_CONTEXT):
        price_scale = price_state.price_scale
        oracle = price_state.oracle_price
        norm = abs_diff(oracle / price_scale, ONE)
        if norm <= params.min_price_scale_delta:
            return price_state

        threshold = (price_state.xcp_profit - ONE) / TWO + params.repeg_profit_threshold
        if price_state.xcp_profit_real - ONE <= threshold:
            return price_state

        step = clamp(
            norm * params.repeg_gain,
            params.min_price_scale_delta,
            params.max_price_scale_delta,
        )
        move = min(step, norm)
        price_scale_new = price_scale + (oracle - price_scale) * move / norm

        new_xp = [xp[0], xp[1] * price_scale_new / price_scale]
        vp_new = _virtual_price(new_xp, price_scale_new, total_lp, amp, gamma)
        if TWO * vp_new - ONE <= price_state.xcp_profit or vp_new < vp_floor:
            return price_state

    logger.info(
        "Repeg price_scale: %s -> %s (oracle=%s)", price_scale, price_scale_new, oracle
    )
    return price_state.model_copy(
        update={"price_scale": price_scale_new, "xcp_profit_real": vp_new}
    )


def update_price(
    price_state: PriceState,
    params: PoolParams,
    now: int,
    xp: Sequence[Decimal],
    total_lp: Decimal,
    last_price: Decimal,
    amp: Decimal,
    gamma: Decimal,
    vp_floor: Decimal = ZERO,
) -> PriceState:
    """
    Полный цикл обновления цены после сделки: EMA → last_price → profit → repeg.
    """
    price_state = update_ema(price_state, params, now)
    price_state = price_state.model_copy(update={"last_price": last_price})
    price_state = refresh_profit(price_state, xp, total_lp, amp, gamma)
    return repeg_price_scale(price_state, params, xp, total_lp, amp, gamma, vp_floor)
