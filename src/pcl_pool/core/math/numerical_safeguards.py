"""
Numerical Safeguards — Decimal-примитивы пула

Модуль обеспечивает детерминированную fixed-point арифметику пула:
- Единый Decimal-контекст для всей curve-математики (60 значащих цифр)
- Конверсия base units (int) ↔ internal Decimal с учётом precision актива
- Политика округления в пользу пула (две РАЗНЫЕ функции, без флага направления)
- Epsilon-сравнения

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Всё, что пул отдаёт (return свапа, withdraw, mint LP) → floor_to_units
2. Всё, что контрагент обязан внести (reverse swap offer, consumed deposit) → ceil_to_units
3. Деление на ноль никогда не происходит молча (ValueError или fallback)
4. Все операции детерминированы и воспроизводимы
"""

import decimal
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Final

# =============================================================================
# DECIMAL CONTEXT
# =============================================================================

# Точность контекста (значащие цифры) для curve-математики
DECIMAL_PRECISION: Final[int] = 60

MATH_CONTEXT: Final[decimal.Context] = decimal.Context(
    prec=DECIMAL_PRECISION,
    rounding=decimal.ROUND_HALF_EVEN,
    traps=[decimal.InvalidOperation, decimal.DivisionByZero, decimal.Overflow],
)

ZERO: Final[Decimal] = Decimal(0)
ONE: Final[Decimal] = Decimal(1)
TWO: Final[Decimal] = Decimal(2)

# =============================================================================
# EPSILON-ПАРАМЕТРЫ
# =============================================================================

# Относительный epsilon сходимости solver'а (D / y)
SOLVER_EPS: Final[Decimal] = Decimal("1e-18")

# Максимум итераций solver'а
SOLVER_MAX_ITERATIONS: Final[int] = 255

# Относительная толерантность проверки инварианта в Pool Ledger
INVARIANT_TOLERANCE: Final[Decimal] = Decimal("1e-12")

# Минимальный размер сделки (internal Decimal); ниже него price state не трогаем
MIN_TRADE_SIZE: Final[Decimal] = Decimal("0.000001")

# Precision LP-токена (decimals)
LP_TOKEN_PRECISION: Final[int] = 6


# =============================================================================
# КОНВЕРСИЯ UNITS ↔ DECIMAL
# =============================================================================


def to_decimal(amount: int, precision: int) -> Decimal:
    """
    Конверсия base units → internal Decimal.

    Args:
        amount: Количество в base units (неотрицательный int)
        precision: Decimals актива

    Returns:
        amount / 10**precision

    Examples:
        >>> to_decimal(1_500000, 6)
        Decimal('1.5')
    """
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    return MATH_CONTEXT.divide(Decimal(amount), Decimal(10) ** precision)


def floor_to_units(value: Decimal, precision: int) -> int:
    """
    Конверсия internal Decimal → base units с округлением ВНИЗ.

    Используется для всего, что пул ОТДАЁТ: return свапа, withdraw,
    количество mint LP. Никогда не переплачивает контрагенту.

    Examples:
        >>> floor_to_units(Decimal("1.9999999"), 6)
        1999999
    """
    if value < 0:
        raise ValueError(f"value must be non-negative, got {value}")
    scaled = MATH_CONTEXT.multiply(value, Decimal(10) ** precision)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def ceil_to_units(value: Decimal, precision: int) -> int:
    """
    Конверсия internal Decimal → base units с округлением ВВЕРХ.

    Используется для всего, что контрагент ОБЯЗАН ВНЕСТИ: offer в reverse
    swap, consumed часть депозита.

    Examples:
        >>> ceil_to_units(Decimal("1.0000001"), 6)
        1000001
    """
    if value < 0:
        raise ValueError(f"value must be non-negative, got {value}")
    scaled = MATH_CONTEXT.multiply(value, Decimal(10) ** precision)
    return int(scaled.to_integral_value(rounding=ROUND_CEILING))


def mul_div_floor(amount: int, numerator: int, denominator: int) -> int:
    """
    Целочисленное amount * numerator / denominator с округлением вниз.

    Raises:
        ValueError: Если denominator <= 0
    """
    if denominator <= 0:
        raise ValueError(f"denominator must be positive, got {denominator}")
    return amount * numerator // denominator


def mul_div_ceil(amount: int, numerator: int, denominator: int) -> int:
    """Целочисленное amount * numerator / denominator с округлением вверх."""
    if denominator <= 0:
        raise ValueError(f"denominator must be positive, got {denominator}")
    return -((-amount * numerator) // denominator)


# =============================================================================
# БЕЗОПАСНЫЕ ОПЕРАЦИИ
# =============================================================================


def safe_divide(
    numerator: Decimal,
    denominator: Decimal,
    fallback: Decimal = ZERO,
) -> Decimal:
    """
    Деление с fallback при нулевом знаменателе.

    Examples:
        >>> safe_divide(Decimal(10), Decimal(4))
        Decimal('2.5')
        >>> safe_divide(Decimal(10), Decimal(0))
        Decimal('0')
    """
    if denominator == 0:
        return fallback
    return MATH_CONTEXT.divide(numerator, denominator)


def saturating_sub(a: Decimal, b: Decimal) -> Decimal:
    """max(a - b, 0)."""
    diff = MATH_CONTEXT.subtract(a, b)
    return diff if diff > 0 else ZERO


def abs_diff(a: Decimal, b: Decimal) -> Decimal:
    """|a - b|."""
    return abs(MATH_CONTEXT.subtract(a, b))


def sqrt(value: Decimal) -> Decimal:
    """Квадратный корень в MATH_CONTEXT."""
    if value < 0:
        raise ValueError(f"sqrt of negative value: {value}")
    return value.sqrt(context=MATH_CONTEXT)


def clamp(
    value: Decimal,
    min_value: Decimal | None = None,
    max_value: Decimal | None = None,
) -> Decimal:
    """
    Ограничение значения в заданном диапазоне.

    Examples:
        >>> clamp(Decimal(5), Decimal(0), Decimal(3))
        Decimal('3')
    """
    result = value

    if min_value is not None:
        result = max(result, min_value)

    if max_value is not None:
        result = min(result, max_value)

    return result


# =============================================================================
# EPSILON-СРАВНЕНИЯ
# =============================================================================


def is_close(a: Decimal, b: Decimal, rel_tol: Decimal = SOLVER_EPS) -> bool:
    """
    Сравнение двух Decimal с относительной толерантностью.

    Алгоритм:
        |a - b| <= rel_tol * max(|a|, |b|, 1)
    """
    scale = max(abs(a), abs(b), ONE)
    return abs_diff(a, b) <= rel_tol * scale

