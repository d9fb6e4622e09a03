"""
PoolState — состояние пула (versioned record "pool_state")

Immutable Pydantic модели:
- AmpGamma: текущие / целевые amp и gamma с линейным ramp во времени
- PriceState: price_scale, EMA oracle, last_price, xcp_profit трекинг
- OracleAccumulators: cumulative TWAP-счётчики обоих направлений
- Observation: объём торгов одного блока (для observe query)
- PoolState: резервы, LP supply, fee growth, всё перечисленное выше
- BalanceSnapshot: резервы на высоте блока (история asset balances)

Цены везде выражены в единицах asset0 за 1 asset1 (как price_scale).

Инварианты:
- reserves >= 0
- total_share == сумма всех закоммиченных provide/withdraw дельт
- observations — ring buffer не длиннее OBSERVATIONS_SIZE
"""

from decimal import Decimal
from typing import Final

from pydantic import BaseModel, Field, field_validator

from pcl_pool.core.math.numerical_safeguards import MATH_CONTEXT, ONE, ZERO, to_decimal


POOL_STATE_SCHEMA_VERSION: Final[int] = 2

# Размер ring buffer'а observations
OBSERVATIONS_SIZE: Final[int] = 3000


# =============================================================================
# NESTED MODELS
# =============================================================================


class AmpGamma(BaseModel):
    """
    Параметры кривой с ramp'ом.

    Между initial_time и future_time amp/gamma линейно интерполируются
    от initial_* к future_*; после future_time равны future_*.
    """

    initial_amp: Decimal = Field(..., gt=0, description="A в начале ramp")
    initial_gamma: Decimal = Field(..., gt=0, description="gamma в начале ramp")
    future_amp: Decimal = Field(..., gt=0, description="A в конце ramp")
    future_gamma: Decimal = Field(..., gt=0, description="gamma в конце ramp")
    initial_time: int = Field(0, ge=0, description="Начало ramp (unix seconds)")
    future_time: int = Field(0, ge=0, description="Конец ramp (unix seconds)")

    model_config = {"frozen": True}

    @classmethod
    def fixed(cls, amp: Decimal, gamma: Decimal) -> "AmpGamma":
        return cls(
            initial_amp=amp,
            initial_gamma=gamma,
            future_amp=amp,
            future_gamma=gamma,
        )

    def get_amp_gamma(self, now: int) -> tuple[Decimal, Decimal]:
        """(A, gamma) на момент now."""
        if now >= self.future_time or self.future_time <= self.initial_time:
            return self.future_amp, self.future_gamma

        elapsed = Decimal(max(now - self.initial_time, 0))
        total = Decimal(self.future_time - self.initial_time)
        frac = MATH_CONTEXT.divide(elapsed, total)
        amp = self.initial_amp + (self.future_amp - self.initial_amp) * frac
        gamma = self.initial_gamma + (self.future_gamma - self.initial_gamma) * frac
        return amp, gamma

    def is_changing(self, now: int) -> bool:
        return self.initial_time <= now < self.future_time


class PriceState(BaseModel):
    """Ценовое состояние кривой."""

    price_scale: Decimal = Field(..., gt=0, description="Текущий price_scale")
    oracle_price: Decimal = Field(..., gt=0, description="EMA oracle price")
    last_price: Decimal = Field(..., gt=0, description="Цена последней сделки")
    last_price_update: int = Field(0, ge=0, description="Время последнего обновления EMA")
    xcp_profit: Decimal = Field(ONE, description="Накопленная прибыль (без учёта repeg)")
    xcp_profit_real: Decimal = Field(ONE, description="Текущая virtual price LP")

    model_config = {"frozen": True}

    @classmethod
    def initial(cls, price_scale: Decimal, now: int) -> "PriceState":
        return cls(
            price_scale=price_scale,
            oracle_price=price_scale,
            last_price=price_scale,
            last_price_update=now,
        )


class OracleAccumulators(BaseModel):
    """
    Cumulative TWAP-счётчики.

    price0_cumulative += (asset1 за 1 asset0) * dt
    price1_cumulative += (asset0 за 1 asset1) * dt
    """

    price0_cumulative: Decimal = Field(ZERO, ge=0)
    price1_cumulative: Decimal = Field(ZERO, ge=0)
    last_updated: int = Field(0, ge=0, description="Время последнего накопления")

    model_config = {"frozen": True}


class Observation(BaseModel):
    """Суммарный объём свапов одного блока."""

    ts: int = Field(..., ge=0, description="Время блока")
    base_amount: Decimal = Field(..., ge=0, description="Объём asset1")
    quote_amount: Decimal = Field(..., ge=0, description="Объём asset0")

    model_config = {"frozen": True}

    @property
    def price(self) -> Decimal:
        """Средняя цена блока (asset0 за 1 asset1)."""
        if self.base_amount == 0:
            return ZERO
        return MATH_CONTEXT.divide(self.quote_amount, self.base_amount)


# =============================================================================
# POOL STATE MODEL
# =============================================================================


class PoolState(BaseModel):
    """
    Состояние пула.

    Immutable модель (frozen=True). Settlement State Machine строит новый
    экземпляр через model_copy(update=...) и коммитит его через Pool Ledger.
    """

    schema_version: int = Field(POOL_STATE_SCHEMA_VERSION, description="Версия record")

    # Неотрицательность резервов проверяет Pool Ledger при commit (InvariantViolation)
    reserves: tuple[int, int] = Field((0, 0), description="Резервы (base units)")
    total_share: int = Field(0, ge=0, description="LP supply (base units)")
    cumulative_fees: tuple[int, int] = Field(
        (0, 0), description="Fee growth accumulator по активам (base units)"
    )

    amp_gamma: AmpGamma = Field(..., description="Параметры кривой")
    price_state: PriceState = Field(..., description="Ценовое состояние")
    accumulators: OracleAccumulators = Field(
        default_factory=OracleAccumulators, description="TWAP счётчики"
    )
    observations: tuple[Observation, ...] = Field(
        (), description="Ring buffer объёмов по блокам"
    )

    last_updated: int = Field(0, ge=0, description="Время последнего commit")

    model_config = {"frozen": True}

    @field_validator("cumulative_fees")
    @classmethod
    def validate_non_negative_pair(cls, v: tuple[int, int]) -> tuple[int, int]:
        if v[0] < 0 or v[1] < 0:
            raise ValueError(f"amounts must be non-negative, got {v}")
        return v

    @field_validator("observations")
    @classmethod
    def validate_observations_size(
        cls, v: tuple[Observation, ...]
    ) -> tuple[Observation, ...]:
        if len(v) > OBSERVATIONS_SIZE:
            raise ValueError(f"observations exceed {OBSERVATIONS_SIZE} entries")
        return v

    def balances(self, precisions: tuple[int, int]) -> list[Decimal]:
        """Резервы в internal Decimal (без price_scale)."""
        return [
            to_decimal(self.reserves[0], precisions[0]),
            to_decimal(self.reserves[1], precisions[1]),
        ]

    def xp(self, precisions: tuple[int, int]) -> list[Decimal]:
        """Internal балансы кривой: [x0, x1 * price_scale]."""
        x0, x1 = self.balances(precisions)
        return [x0, MATH_CONTEXT.multiply(x1, self.price_state.price_scale)]

    @property
    def is_empty(self) -> bool:
        return self.total_share == 0


class BalanceSnapshot(BaseModel):
    """Резервы пула, записанные commit'ом в блоке block_height."""

    block_height: int = Field(..., ge=0)
    reserves: tuple[int, int]

    model_config = {"frozen": True}

    @field_validator("reserves")
    @classmethod
    def validate_reserves(cls, v: tuple[int, int]) -> tuple[int, int]:
        if v[0] < 0 or v[1] < 0:
            raise ValueError(f"reserves must be non-negative, got {v}")
        return v
