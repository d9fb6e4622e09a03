"""
Pool Errors — таксономия ошибок пула

Все ошибки наследуют PoolError и несут структурированные поля нарушенной
границы (expected / actual), чтобы host мог вернуть structured error response.

Политика распространения:
- Любая ошибка прерывает top-level транзакцию целиком (rollback на host)
- Автоматических retry нет — вызывающий повторяет с другими параметрами
- InvariantViolation дополнительно открывает circuit breaker (PoolHalted)
"""

from typing import Any


class PoolError(Exception):
    """Базовая ошибка пула."""

    kind: str = "PoolError"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> dict[str, Any]:
        """Structured error response: kind + сообщение + нарушенная граница."""
        return {
            "error": self.kind,
            "message": self.message,
            **{key: str(value) for key, value in self.details.items()},
        }


# =============================================================================
# ASSETS
# =============================================================================


class InvalidAsset(PoolError):
    """Неверная / неподдерживаемая denomination."""

    kind = "InvalidAsset"


class InvalidZeroAmount(InvalidAsset):
    """Initial provide не может быть односторонним."""

    kind = "InvalidZeroAmount"

    def __init__(self):
        super().__init__("Initial provide can not be one-sided")


class InvalidNumberOfAssets(InvalidAsset):
    """Пул поддерживает ровно 2 актива."""

    kind = "InvalidNumberOfAssets"

    def __init__(self, actual: int):
        super().__init__(
            "Invalid number of assets. This pair supports only 2 assets",
            expected=2,
            actual=actual,
        )


# =============================================================================
# AMOUNTS
# =============================================================================


class SlippageExceeded(PoolError):
    """Minimum-output или minimum-mint не достигнут."""

    kind = "SlippageExceeded"

    def __init__(self, message: str, expected: Any, actual: Any):
        super().__init__(message, expected=expected, actual=actual)
        self.expected = expected
        self.actual = actual


class MaxSpreadExceeded(PoolError):
    """Отклонение цены свапа от belief_price больше max_spread."""

    kind = "MaxSpreadExceeded"

    def __init__(self, message: str, max_spread: Any, actual: Any):
        super().__init__(message, max_spread=max_spread, actual=actual)
        self.max_spread = max_spread
        self.actual = actual


class InsufficientLiquidity(PoolError):
    """Withdraw превышает записанные shares вызывающего."""

    kind = "InsufficientLiquidity"


class MinimumLiquidityAmountError(InsufficientLiquidity):
    """Initial liquidity не покрывает MINIMUM_LIQUIDITY."""

    kind = "MinimumLiquidityAmountError"

    def __init__(self, minimum: int):
        super().__init__(
            f"Initial liquidity must be more than {minimum}", minimum=minimum
        )


# =============================================================================
# INVARIANTS
# =============================================================================


class InvariantViolation(PoolError):
    """
    Commit уменьшил бы инвариант сверх толерантности (или резерв < 0).

    Fatal programming-error сигнал: в корректной работе никогда не возникает.
    При возникновении host открывает circuit breaker до ручной проверки.
    """

    kind = "InvariantViolation"


class ConvergenceError(InvariantViolation):
    """Solver инварианта не сошёлся за SOLVER_MAX_ITERATIONS."""

    kind = "ConvergenceError"


# =============================================================================
# GATEWAYS / ACCESS
# =============================================================================


class GatewayError(PoolError):
    """Token-Issuance или Trade-Routing Gateway сообщил failure или неожиданный fill."""

    kind = "GatewayError"


class Unauthorized(PoolError):
    """Инстанциация / админ-операция не от авторизованного адреса."""

    kind = "Unauthorized"

    def __init__(self, sender: str = ""):
        super().__init__("Unauthorized", sender=sender)


class PoolHalted(PoolError):
    """Circuit breaker открыт после InvariantViolation."""

    kind = "PoolHalted"


# =============================================================================
# PARAMETERS / STATE
# =============================================================================


class InvalidParameters(PoolError):
    """Некорректные параметры сообщения."""

    kind = "InvalidParameters"


class IncorrectPoolParam(InvalidParameters):
    """Параметр пула вне допустимых границ."""

    kind = "IncorrectPoolParam"

    def __init__(self, name: str, min_value: Any, max_value: Any):
        super().__init__(
            f"Incorrect pool parameter {name}: must be within [{min_value}, {max_value}]",
            param=name,
            min=min_value,
            max=max_value,
        )
        self.param = name


class MigrationError(PoolError):
    """Неизвестная версия persisted record или нарушение инвариантов при миграции."""

    kind = "MigrationError"
