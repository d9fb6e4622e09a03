"""
Curve Invariant — 2-coin cryptoswap инвариант (D) и его solver'ы

Инвариант над internal балансами xs = [x0, x1 * price_scale]:

    K0 = 4 * x0 * x1 / D^2
    K  = A * gamma^2 * K0 / (gamma + 1 - K0)^2
    F(D, xs) = K * D * (x0 + x1) + x0 * x1 - K * D^2 - D^2 / 4 = 0

Solver'ы (calc_d / calc_y) — safeguarded Newton: шаг Ньютона по аналитической
производной, при выходе шага за bracket — бисекция. Bracket гарантирует
K0 <= 1, т.е. знаменатель (gamma + 1 - K0) >= gamma > 0.

Численный контракт:
- сходимость: |x_{k+1} - x_k| <= SOLVER_EPS * max(x_{k+1}, 1)
- не более SOLVER_MAX_ITERATIONS итераций, иначе ConvergenceError
"""

import decimal
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Sequence

from pcl_pool.core.errors import ConvergenceError
from pcl_pool.core.math.numerical_safeguards import (
    MATH_CONTEXT,
    ONE,
    SOLVER_EPS,
    SOLVER_MAX_ITERATIONS,
    TWO,
    ZERO,
)

N_POW2 = Decimal(4)


@dataclass(frozen=True)
class SolverConfig:
    """Численный контракт solver'а.

    eps: относительный критерий остановки
    max_iterations: предел итераций, после которого ConvergenceError
    """

    eps: Decimal = SOLVER_EPS
    max_iterations: int = SOLVER_MAX_ITERATIONS


DEFAULT_SOLVER_CONFIG = SolverConfig()


# =============================================================================
# INVARIANT FUNCTION
# =============================================================================


def _k_terms(
    k0: Decimal, amp: Decimal, gamma: Decimal
) -> tuple[Decimal, Decimal]:
    """K и dK/dK0 для заданного K0."""
    den = gamma + ONE - k0
    gamma2 = gamma * gamma
    k = amp * gamma2 * k0 / (den * den)
    dk_dk0 = amp * gamma2 * (gamma + ONE + k0) / (den * den * den)
    return k, dk_dk0


def invariant_residual(
    d: Decimal, xs: Sequence[Decimal], amp: Decimal, gamma: Decimal
) -> Decimal:
    """
    F(D, xs) — невязка инварианта.

    F == 0 на кривой; F > 0 если D "слишком мал" для xs.
    """
    with decimal.localcontext(MATH_CONTEXT):
        x0, x1 = xs
        mul = x0 * x1
        d2 = d * d
        k0 = mul * N_POW2 / d2
        k, _ = _k_terms(k0, amp, gamma)
        return k * d * (x0 + x1) + mul - k * d2 - d2 / N_POW2


# =============================================================================
# SAFEGUARDED NEWTON
# =============================================================================


def _safeguarded_newton(
    func: Callable[[Decimal], tuple[Decimal, Decimal]],
    lo: Decimal,
    hi: Decimal,
    guess: Decimal,
    increasing: bool,
    what: str,
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Decimal:
    """
    Поиск корня func в [lo, hi].

    Args:
        func: x -> (F(x), F'(x))
        lo, hi: bracket, содержащий корень
        guess: начальное приближение внутри bracket
        increasing: True если F возрастает на bracket
        what: имя величины (для сообщения об ошибке)
        config: eps / max_iterations
    """
    x = guess
    for _ in range(config.max_iterations):
        f, df = func(x)
        if f == 0:
            return x

        # Сужение bracket по знаку невязки
        if (f > 0) == increasing:
            hi = x
        else:
            lo = x

        x_new = None
        if df != 0:
            candidate = x - f / df
            if lo < candidate < hi:
                x_new = candidate
        if x_new is None:
            x_new = (lo + hi) / TWO

        tolerance = config.eps * max(x_new, ONE)
        if abs(x_new - x) <= tolerance or hi - lo <= tolerance:
            return x_new
        x = x_new

    raise ConvergenceError(
        f"{what} solver did not converge in {config.max_iterations} iterations",
        lo=lo,
        hi=hi,
        last=x,
    )


# =============================================================================
# SOLVERS
# =============================================================================


def calc_d(
    xs: Sequence[Decimal],
    amp: Decimal,
    gamma: Decimal,
    config: Optional[SolverConfig] = None,
) -> Decimal:
    """
    Вычисление инварианта D для internal балансов xs.

    Корень ищется в [2*sqrt(x0*x1), x0 + x1]: F(lo) >= 0, F(hi) <= 0.

    Args:
        xs: internal балансы [x0, x1 * price_scale]
        amp: A
        gamma: gamma

    Returns:
        D >= 0 (0 для пустого или одностороннего пула)

    Raises:
        ConvergenceError: Если solver не сошёлся
    """
    with decimal.localcontext(MATH_CONTEXT):
        x0, x1 = xs
        total = x0 + x1
        mul = x0 * x1
        if total == 0 or mul == 0:
            return ZERO

        lo = TWO * mul.sqrt()
        hi = total
        if hi <= lo:
            return hi

        def func(d: Decimal) -> tuple[Decimal, Decimal]:
            d2 = d * d
            k0 = mul * N_POW2 / d2
            k, dk_dk0 = _k_terms(k0, amp, gamma)
            f = k * d * total + mul - k * d2 - d2 / N_POW2
            dk_dd = dk_dk0 * (-TWO * k0 / d)
            df = dk_dd * (d * total - d2) + k * (total - TWO * d) - d / TWO
            return f, df

        return _safeguarded_newton(
            func, lo, hi, hi, increasing=False, what="D",
            config=config or DEFAULT_SOLVER_CONFIG,
        )


def calc_y(
    xs: Sequence[Decimal],
    d: Decimal,
    amp: Decimal,
    gamma: Decimal,
    ind: int,
    config: Optional[SolverConfig] = None,
) -> Decimal:
    """
    Вычисление баланса xs[ind], сохраняющего инвариант D.

    Корень ищется в [max(D - x_other, 0), D^2 / (4 * x_other)], F возрастает.

    Args:
        xs: internal балансы (xs[ind] игнорируется)
        d: целевой инвариант
        amp, gamma: параметры кривой
        ind: индекс искомого баланса (0 или 1)

    Raises:
        ValueError: Если противоположный баланс или D не положительны
        ConvergenceError: Если solver не сошёлся
    """
    with decimal.localcontext(MATH_CONTEXT):
        x = xs[1 - ind]
        if x <= 0 or d <= 0:
            raise ValueError(f"calc_y requires positive balance and D, got x={x}, D={d}")

        d2 = d * d
        lo = max(d - x, ZERO)
        hi = d2 / (N_POW2 * x)
        if hi <= lo:
            return hi

        def func(y: Decimal) -> tuple[Decimal, Decimal]:
            mul = x * y
            k0 = mul * N_POW2 / d2
            k, dk_dk0 = _k_terms(k0, amp, gamma)
            f = k * d * (x + y) + mul - k * d2 - d2 / N_POW2
            dk_dy = dk_dk0 * N_POW2 * x / d2
            df = dk_dy * (d * (x + y) - d2) + k * d + x
            return f, df

        return _safeguarded_newton(
            func, lo, hi, hi, increasing=True, what="y",
            config=config or DEFAULT_SOLVER_CONFIG,
        )


def get_xcp(d: Decimal, price_scale: Decimal) -> Decimal:
    """
    XCP — "виртуальная" ликвидность: D / (2 * sqrt(price_scale)).

    Для сбалансированного пула равна геометрическому среднему балансов
    в единицах актива 0.
    """
    with decimal.localcontext(MATH_CONTEXT):
        if d == 0:
            return ZERO
        return d / (TWO * price_scale.sqrt())
