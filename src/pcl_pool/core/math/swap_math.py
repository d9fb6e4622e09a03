"""
Swap Math — ценообразование свапа, dynamic fee и slippage-проверки

Все функции работают в internal Decimal (units / 10**precision) и НЕ
конвертируют в base units: округление (floor/ceil) — ответственность
вызывающего, по таблице политики округления.

Dynamic fee:
    K    = 4 * x0 * x1 / (x0 + x1)^2
    f    = fee_gamma / (fee_gamma + 1 - K)
    fee  = mid_fee * f + out_fee * (1 - f)

Сбалансированный пул платит mid_fee, сильно несбалансированный — out_fee.
"""

import decimal
from dataclasses import dataclass
from decimal import Decimal
from typing import Final, Optional, Sequence

from pcl_pool.core.domain.pool_config import PoolParams
from pcl_pool.core.errors import (
    InsufficientLiquidity,
    InvalidAsset,
    InvalidParameters,
    MaxSpreadExceeded,
    SlippageExceeded,
)
from pcl_pool.core.math.curve_invariant import calc_d, calc_y
from pcl_pool.core.math.numerical_safeguards import (
    MATH_CONTEXT,
    ONE,
    TWO,
    ZERO,
    safe_divide,
    saturating_sub,
    sqrt,
)

# Max spread / slippage tolerance по умолчанию
DEFAULT_SLIPPAGE: Final[Decimal] = Decimal("0.005")

# Верхняя граница max spread / slippage tolerance
MAX_ALLOWED_SLIPPAGE: Final[Decimal] = Decimal("0.5")


# =============================================================================
# FEES
# =============================================================================


def dynamic_fee(xp: Sequence[Decimal], params: PoolParams) -> Decimal:
    """
    Dynamic fee rate для internal балансов xp.

    Examples:
        >>> p = PoolParams(mid_fee=Decimal("0.003"), out_fee=Decimal("0.003"))
        >>> dynamic_fee([Decimal(1), Decimal(1)], p)
        Decimal('0.003')
    """
    with decimal.localcontext(MATH_CONTEXT):
        total = xp[0] + xp[1]
        if total == 0:
            return params.out_fee
        k = Decimal(4) * xp[0] * xp[1] / (total * total)
        f = params.fee_gamma / (params.fee_gamma + ONE - k)
        return params.mid_fee * f + params.out_fee * (ONE - f)


def provide_fee(
    deposits: Sequence[Decimal], xp: Sequence[Decimal], params: PoolParams
) -> Decimal:
    """
    Fee на несбалансированный provide.

    fee(xp) / 2 * (|d0 - avg| + |d1 - avg|) / (d0 + d1)

    Args:
        deposits: депозиты в internal представлении ([d0, d1 * price_scale])
        xp: internal балансы ПОСЛЕ депозита
    """
    with decimal.localcontext(MATH_CONTEXT):
        total = deposits[0] + deposits[1]
        if total == 0:
            return ZERO
        avg = total / TWO
        deviation = abs(deposits[0] - avg) + abs(deposits[1] - avg)
        return dynamic_fee(xp, params) / TWO * deviation / total


# =============================================================================
# SWAP COMPUTATION
# =============================================================================


@dataclass(frozen=True)
class SwapComputation:
    """Результат прямого свапа (все величины в единицах ask актива)."""

    dy: Decimal
    spread_fee: Decimal
    total_fee: Decimal
    maker_fee: Decimal

    def calc_last_price(self, offer: Decimal, offer_ind: int) -> Decimal:
        """Цена исполнения в asset0 за 1 asset1."""
        with decimal.localcontext(MATH_CONTEXT):
            received = self.dy + self.maker_fee
            if offer_ind == 0:
                return offer / received
            return received / offer


def _scale(value: Decimal, ind: int, price_scale: Decimal) -> Decimal:
    return value * price_scale if ind == 1 else value


def _unscale(value: Decimal, ind: int, price_scale: Decimal) -> Decimal:
    return value / price_scale if ind == 1 else value


def _to_ask_at_scale(offer: Decimal, offer_ind: int, price_scale: Decimal) -> Decimal:
    """Offer, переведённый в ask единицы по price_scale (без impact и fee)."""
    return offer / price_scale if offer_ind == 0 else offer * price_scale


def before_swap_check(xs: Sequence[Decimal], offer: Decimal) -> None:
    """
    Предусловия свапа.

    Raises:
        InvalidParameters: Если offer <= 0
        InsufficientLiquidity: Если один из резервов пуст
    """
    if offer <= 0:
        raise InvalidParameters("Swap amount must be positive", actual=offer)
    if xs[0] <= 0 or xs[1] <= 0:
        raise InsufficientLiquidity("One of the pools is empty", reserves=list(xs))


def compute_swap(
    xs: Sequence[Decimal],
    offer: Decimal,
    ask_ind: int,
    price_scale: Decimal,
    amp: Decimal,
    gamma: Decimal,
    params: PoolParams,
    maker_fee_share: Decimal = ZERO,
) -> SwapComputation:
    """
    Прямой свап: offer актива 1 - ask_ind → ask актив.

    Args:
        xs: резервы ДО свапа (internal, без price_scale)
        offer: offer amount (internal)
        ask_ind: индекс ask актива
        price_scale, amp, gamma: параметры кривой
        params: fee параметры
        maker_fee_share: доля total_fee, уходящая fee_address

    Returns:
        SwapComputation: dy — return после fee; maker_fee выводится из резервов отдельно

    Raises:
        InvalidAsset: Если свап опустошает ask резерв
    """
    offer_ind = 1 - ask_ind
    with decimal.localcontext(MATH_CONTEXT):
        xp = [xs[0], xs[1] * price_scale]
        d = calc_d(xp, amp, gamma)

        ixs = list(xp)
        ixs[offer_ind] += _scale(offer, offer_ind, price_scale)
        new_y = calc_y(ixs, d, amp, gamma, ask_ind)
        dy_scaled = ixs[ask_ind] - new_y
        ixs[ask_ind] = new_y

        dy = _unscale(dy_scaled, ask_ind, price_scale)
        if dy >= xs[ask_ind]:
            raise InvalidAsset(
                "Swap would drain the ask reserve", reserve=xs[ask_ind], actual=dy
            )

        spread_fee = saturating_sub(_to_ask_at_scale(offer, offer_ind, price_scale), dy)
        total_fee = dynamic_fee(ixs, params) * dy
        maker_fee = total_fee * maker_fee_share

        return SwapComputation(
            dy=dy - total_fee,
            spread_fee=spread_fee,
            total_fee=total_fee,
            maker_fee=maker_fee,
        )


def compute_offer_amount(
    xs: Sequence[Decimal],
    ask: Decimal,
    ask_ind: int,
    price_scale: Decimal,
    amp: Decimal,
    gamma: Decimal,
    params: PoolParams,
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Reverse simulation: сколько offer нужно для получения ask.

    Dynamic fee заранее неизвестен, поэтому применяется максимальный out_fee:
    результат — верхняя оценка offer.

    Returns:
        (offer, spread_fee, total_fee)

    Raises:
        InvalidAsset: Если ask не меньше резерва
    """
    offer_ind = 1 - ask_ind
    with decimal.localcontext(MATH_CONTEXT):
        xp = [xs[0], xs[1] * price_scale]
        d = calc_d(xp, amp, gamma)

        dy = ask / (ONE - params.out_fee)
        if dy >= xs[ask_ind]:
            raise InvalidAsset(
                "Ask amount exceeds pool reserves", reserve=xs[ask_ind], actual=dy
            )

        ixs = list(xp)
        ixs[ask_ind] -= _scale(dy, ask_ind, price_scale)
        new_x = calc_y(ixs, d, amp, gamma, offer_ind)
        offer = _unscale(new_x - xp[offer_ind], offer_ind, price_scale)

        spread_fee = saturating_sub(_to_ask_at_scale(offer, offer_ind, price_scale), dy)
        return offer, spread_fee, dy - ask


# =============================================================================
# ASSERTIONS
# =============================================================================


def assert_max_spread(
    belief_price: Optional[Decimal],
    max_spread: Optional[Decimal],
    offer_amount: int,
    return_amount: int,
    spread_amount: int,
) -> None:
    """
    Проверка отклонения цены свапа.

    belief_price — ожидаемая цена ask актива в offer единицах.
    Без belief_price спред считается по spread_amount из кривой.

    Raises:
        MaxSpreadExceeded: Если спред > max_spread или max_spread > MAX_ALLOWED_SLIPPAGE
    """
    limit = DEFAULT_SLIPPAGE if max_spread is None else max_spread
    if limit > MAX_ALLOWED_SLIPPAGE:
        raise MaxSpreadExceeded(
            "Allowed spread must be less than 50%",
            max_spread=MAX_ALLOWED_SLIPPAGE,
            actual=limit,
        )

    with decimal.localcontext(MATH_CONTEXT):
        if belief_price is not None:
            if belief_price <= 0:
                raise InvalidParameters("Belief price must be positive", actual=belief_price)
            expected_return = Decimal(offer_amount) / belief_price
            spread = saturating_sub(expected_return, Decimal(return_amount))
            if Decimal(return_amount) < expected_return and spread / expected_return > limit:
                raise MaxSpreadExceeded(
                    "Operation exceeds max spread limit",
                    max_spread=limit,
                    actual=spread / expected_return,
                )
            return

        total = Decimal(return_amount + spread_amount)
        actual = safe_divide(Decimal(spread_amount), total)
        if actual > limit:
            raise MaxSpreadExceeded(
                "Operation exceeds max spread limit", max_spread=limit, actual=actual
            )


def assert_slippage_tolerance(
    deposits: Sequence[Decimal],
    share: Decimal,
    price_scale: Decimal,
    xcp_profit_real: Decimal,
    slippage_tolerance: Optional[Decimal],
) -> Decimal:
    """
    Проверка slippage provide'а против "справедливого" количества LP.

    lp_expected = (d0 + d1 * price_scale) / 2 / sqrt(price_scale) / xcp_profit_real

    Returns:
        Фактический slippage

    Raises:
        SlippageExceeded: Если slippage > tolerance или tolerance > MAX_ALLOWED_SLIPPAGE
    """
    tolerance = DEFAULT_SLIPPAGE if slippage_tolerance is None else slippage_tolerance
    if tolerance > MAX_ALLOWED_SLIPPAGE:
        raise SlippageExceeded(
            "Slippage tolerance must be less than 50%",
            expected=MAX_ALLOWED_SLIPPAGE,
            actual=tolerance,
        )

    with decimal.localcontext(MATH_CONTEXT):
        deposit_value = deposits[0] + deposits[1] * price_scale
        lp_expected = safe_divide(
            deposit_value / TWO / sqrt(price_scale), xcp_profit_real, fallback=ZERO
        )
        if lp_expected == 0:
            return ZERO
        slippage = saturating_sub(lp_expected, share) / lp_expected
        if slippage > tolerance:
            raise SlippageExceeded(
                "Operation exceeds max slippage tolerance",
                expected=tolerance,
                actual=slippage,
            )
        return slippage
