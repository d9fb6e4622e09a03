"""
PoolConfig — неизменяемая конфигурация пула

Immutable Pydantic модели:
- PoolParams: fee / repeg / oracle параметры (меняются только через update_config)
- ConcentratedPoolParams: init_params сообщения instantiate (PoolParams + amp/gamma/price_scale)
- PoolConfig: пара активов, precisions, LP denomination, pinned factory, owner

Инвариант: denominations активов фиксированы на всё время жизни пула;
contract-token (cw20-style) не может быть активом пула.
Persisted как versioned record "config".
"""

from decimal import Decimal
from typing import Final

from pydantic import BaseModel, Field, model_validator

from .assets import AssetInfo
from pcl_pool.core.errors import IncorrectPoolParam, InvalidAsset, InvalidParameters


# =============================================================================
# ГРАНИЦЫ ПАРАМЕТРОВ
# =============================================================================

CONFIG_SCHEMA_VERSION: Final[int] = 2

PARAM_BOUNDS: Final[dict[str, tuple[Decimal, Decimal]]] = {
    "amp": (Decimal("0.1"), Decimal("100000")),
    "gamma": (Decimal("0.00000001"), Decimal("0.02")),
    "mid_fee": (Decimal("0.0001"), Decimal("0.1")),
    "out_fee": (Decimal("0.0001"), Decimal("0.1")),
    "fee_gamma": (Decimal("0"), Decimal("1")),
    "repeg_profit_threshold": (Decimal("0"), Decimal("0.01")),
    "min_price_scale_delta": (Decimal("0"), Decimal("0.1")),
    "max_price_scale_delta": (Decimal("0.000001"), Decimal("0.1")),
    "repeg_gain": (Decimal("0.000001"), Decimal("1")),
    "ma_half_time": (Decimal("1"), Decimal("604800")),
    "maker_fee_share": (Decimal("0"), Decimal("1")),
}


def check_param_bounds(name: str, value: Decimal | int) -> None:
    """
    Проверка параметра по таблице PARAM_BOUNDS.

    Raises:
        IncorrectPoolParam: Если значение вне [min, max]
    """
    min_value, max_value = PARAM_BOUNDS[name]
    if not (min_value <= Decimal(value) <= max_value):
        raise IncorrectPoolParam(name, min_value, max_value)


# =============================================================================
# POOL PARAMS
# =============================================================================


class PoolParams(BaseModel):
    """
    Fee / repeg / oracle параметры пула.

    Dynamic fee:
        fee = mid_fee * f + out_fee * (1 - f),  f = fee_gamma / (fee_gamma + 1 - K)
    Repeg:
        шаг price_scale = clamp(norm * repeg_gain, min_price_scale_delta, max_price_scale_delta)
    """

    mid_fee: Decimal = Field(Decimal("0.0026"), description="Fee в сбалансированном пуле")
    out_fee: Decimal = Field(Decimal("0.0045"), description="Fee в несбалансированном пуле")
    fee_gamma: Decimal = Field(Decimal("0.00023"), description="Скорость перехода mid → out fee")
    repeg_profit_threshold: Decimal = Field(
        Decimal("0.000002"), description="Минимальная прибыль для repeg"
    )
    min_price_scale_delta: Decimal = Field(
        Decimal("0.000146"), description="Минимальный относительный шаг price_scale"
    )
    max_price_scale_delta: Decimal = Field(
        Decimal("0.01"), description="Максимальный относительный шаг price_scale за вызов"
    )
    repeg_gain: Decimal = Field(
        Decimal("0.5"), description="Доля расхождения oracle/price_scale, закрываемая за шаг"
    )
    ma_half_time: int = Field(600, description="Half-time EMA oracle (секунды)")
    maker_fee_share: Decimal = Field(
        Decimal("0"), description="Доля fee, уходящая на fee_address (per-swap cut)"
    )
    fee_address: str | None = Field(None, description="Адрес получателя maker fee")
    track_asset_balances: bool = Field(
        False, description="Вести историю резервов по высотам блоков"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_bounds(self) -> "PoolParams":
        for name in (
            "mid_fee",
            "out_fee",
            "fee_gamma",
            "repeg_profit_threshold",
            "min_price_scale_delta",
            "max_price_scale_delta",
            "repeg_gain",
            "ma_half_time",
            "maker_fee_share",
        ):
            check_param_bounds(name, getattr(self, name))

        if self.mid_fee > self.out_fee:
            raise InvalidParameters(
                "mid_fee must be less than or equal to out_fee",
                mid_fee=self.mid_fee,
                out_fee=self.out_fee,
            )
        if self.min_price_scale_delta > self.max_price_scale_delta:
            raise InvalidParameters(
                "min_price_scale_delta must not exceed max_price_scale_delta",
                min_price_scale_delta=self.min_price_scale_delta,
                max_price_scale_delta=self.max_price_scale_delta,
            )
        return self

    @property
    def charges_maker_fee(self) -> bool:
        return self.fee_address is not None and self.maker_fee_share > 0


class ConcentratedPoolParams(BaseModel):
    """init_params сообщения instantiate."""

    amp: Decimal = Field(..., description="Amplification A")
    gamma: Decimal = Field(..., description="Gamma")
    price_scale: Decimal = Field(..., description="Начальный price_scale (asset0 за asset1)")
    mid_fee: Decimal = Decimal("0.0026")
    out_fee: Decimal = Decimal("0.0045")
    fee_gamma: Decimal = Decimal("0.00023")
    repeg_profit_threshold: Decimal = Decimal("0.000002")
    min_price_scale_delta: Decimal = Decimal("0.000146")
    max_price_scale_delta: Decimal = Decimal("0.01")
    repeg_gain: Decimal = Decimal("0.5")
    ma_half_time: int = 600
    maker_fee_share: Decimal = Decimal("0")
    fee_address: str | None = None
    track_asset_balances: bool = False

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_curve(self) -> "ConcentratedPoolParams":
        if self.price_scale <= 0:
            raise InvalidParameters(
                "Initial price scale can not be zero", price_scale=self.price_scale
            )
        check_param_bounds("amp", self.amp)
        check_param_bounds("gamma", self.gamma)
        return self

    def to_pool_params(self) -> PoolParams:
        return PoolParams(
            mid_fee=self.mid_fee,
            out_fee=self.out_fee,
            fee_gamma=self.fee_gamma,
            repeg_profit_threshold=self.repeg_profit_threshold,
            min_price_scale_delta=self.min_price_scale_delta,
            max_price_scale_delta=self.max_price_scale_delta,
            repeg_gain=self.repeg_gain,
            ma_half_time=self.ma_half_time,
            maker_fee_share=self.maker_fee_share,
            fee_address=self.fee_address,
            track_asset_balances=self.track_asset_balances,
        )


# =============================================================================
# POOL CONFIG
# =============================================================================


class PoolConfig(BaseModel):
    """
    Конфигурация пула (versioned record "config").

    Immutable модель (frozen=True). Изменения (lp_denom после reply, pool_id,
    params через update_config) создают новый экземпляр.
    """

    schema_version: int = Field(CONFIG_SCHEMA_VERSION, description="Версия record")
    contract_addr: str = Field(..., min_length=1, description="Адрес контракта пула")
    factory_addr: str = Field(..., min_length=1, description="Pinned factory")
    owner: str = Field(..., min_length=1, description="Владелец (update_config)")
    asset_infos: tuple[AssetInfo, AssetInfo] = Field(..., description="Пара активов")
    precisions: tuple[int, int] = Field(..., description="Decimals активов")
    lp_denom: str = Field("", description="Native LP denomination (после create-denom reply)")
    pool_id: int | None = Field(None, description="Pool id в Trade-Routing модуле")
    params: PoolParams = Field(..., description="Fee / repeg параметры")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_assets(self) -> "PoolConfig":
        for info in self.asset_infos:
            if not info.is_native:
                raise InvalidAsset(
                    "CW20 tokens are not supported", asset=info.identifier
                )
        if self.asset_infos[0] == self.asset_infos[1]:
            raise InvalidAsset(
                "Doubling assets in asset infos", asset=self.asset_infos[0].identifier
            )
        for precision in self.precisions:
            if not 0 <= precision <= 18:
                raise InvalidParameters(
                    "Asset precision must be within [0, 18]", precision=precision
                )
        return self

    @property
    def denoms(self) -> tuple[str, str]:
        return self.asset_infos[0].denom, self.asset_infos[1].denom

    def asset_index(self, info: AssetInfo) -> int:
        """
        Индекс актива в паре.

        Raises:
            InvalidAsset: Если актив не принадлежит паре
        """
        for ind, pool_info in enumerate(self.asset_infos):
            if pool_info == info:
                return ind
        raise InvalidAsset(
            f"The asset {info} does not belong to the pair", asset=info.identifier
        )

    def denom_index(self, denom: str) -> int:
        return self.asset_index(AssetInfo.native(denom))
