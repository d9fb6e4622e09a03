"""
Messages — PendingOperation и протоколы Gateway

Immutable Pydantic модели deferred-call-with-reply протокола:
- PendingOperation: контекст операции на время round-trip к Gateway
- Token-Issuance: CreateDenomRequest / MintRequest / BurnRequest → GatewayAck
- Trade-Routing: RouteSwapRequest → RouteSwapAck
- BankSend / Response: то, что операция возвращает вызывающему

PendingOperation живёт только внутри одной top-level транзакции и
сопоставляется с acknowledgement по correlation_id.
"""

from enum import Enum
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from .assets import Asset, Coin


# =============================================================================
# PENDING OPERATION
# =============================================================================


class OperationKind(str, Enum):
    """Тип операции, ожидающей acknowledgement."""

    CREATE_DENOM = "create_denom"
    PROVIDE = "provide"
    WITHDRAW = "withdraw"
    SWAP = "swap"


class SwapParams(BaseModel):
    """Параметры свапа, переданные через routed path в sudo hook."""

    sender: str = Field(..., min_length=1, description="Исходный инициатор свапа")
    belief_price: Optional[Decimal] = None
    max_spread: Optional[Decimal] = None
    receiver: Optional[str] = None

    model_config = {"frozen": True}


class PendingOperation(BaseModel):
    """
    Операция в фазе AWAITING_GATEWAY_ACK.

    amounts — значения, посчитанные ДО вызова Gateway (mint/burn shares,
    withdraw amounts, offer); fill — исполнение pool-leg'а routed свапа,
    записанное sudo hook'ом.
    """

    correlation_id: int = Field(..., ge=1, description="Ключ сопоставления ack")
    kind: OperationKind = Field(..., description="Тип операции")
    caller: str = Field(..., min_length=1, description="Инициатор")
    amounts: dict[str, int] = Field(default_factory=dict, description="Расчётные amounts")
    fill: Optional[Asset] = Field(None, description="Исполнение pool-leg'а (routed swap)")
    swap_params: Optional[SwapParams] = Field(None, description="Параметры routed свапа")

    model_config = {"frozen": True}

    def with_fill(self, fill: Asset) -> "PendingOperation":
        return self.model_copy(update={"fill": fill})


# =============================================================================
# TOKEN-ISSUANCE GATEWAY
# =============================================================================


class CreateDenomRequest(BaseModel):
    """Создание native denomination factory/<creator>/<subdenom>."""

    correlation_id: int = Field(..., ge=1)
    creator: str = Field(..., min_length=1)
    subdenom: str = Field(..., min_length=1)

    model_config = {"frozen": True}


class MintRequest(BaseModel):
    """Mint LP denomination на recipient."""

    correlation_id: int = Field(..., ge=1)
    denom: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    recipient: str = Field(..., min_length=1)

    model_config = {"frozen": True}


class BurnRequest(BaseModel):
    """Burn LP denomination с баланса owner."""

    correlation_id: int = Field(..., ge=1)
    denom: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    owner: str = Field(..., min_length=1)

    model_config = {"frozen": True}


class GatewayAck(BaseModel):
    """Acknowledgement Token-Issuance Gateway."""

    correlation_id: int = Field(..., ge=1)
    success: bool
    amount: int = Field(0, ge=0, description="Фактически перемещённое количество")
    denom: str = Field("", description="Denomination (для create_denom — новая)")
    error: str = Field("", description="Причина failure")

    model_config = {"frozen": True}


# =============================================================================
# TRADE-ROUTING GATEWAY
# =============================================================================


class RouteStep(BaseModel):
    """Один шаг маршрута: пул и выходная denomination."""

    pool_id: int = Field(..., ge=1)
    token_out_denom: str = Field(..., min_length=1)

    model_config = {"frozen": True}


class RouteSwapRequest(BaseModel):
    """Запрос исполнения свапа через Trade-Routing модуль."""

    correlation_id: int = Field(..., ge=1)
    sender: str = Field(..., min_length=1)
    offer: Asset
    route: tuple[RouteStep, ...] = Field(..., min_length=1)
    min_return: int = Field(0, ge=0)
    recipient: str = Field(..., min_length=1, description="Получатель итога маршрута")

    model_config = {"frozen": True}


class RouteSwapAck(BaseModel):
    """
    Acknowledgement Trade-Routing Gateway.

    pool_fill — исполнение шага через этот пул, как его видит модуль;
    return_asset — итог маршрута, отправленный sender'у.
    """

    correlation_id: int = Field(..., ge=1)
    success: bool
    pool_fill: Optional[Asset] = None
    return_asset: Optional[Asset] = None
    error: str = ""

    model_config = {"frozen": True}


# =============================================================================
# RESPONSE
# =============================================================================


class BankSend(BaseModel):
    """Перевод native coins с баланса пула."""

    to_address: str = Field(..., min_length=1)
    amount: tuple[Coin, ...] = Field(..., min_length=1)

    model_config = {"frozen": True}


class Response(BaseModel):
    """Structured success response entry point'а."""

    action: str = Field(..., description="Имя операции")
    attributes: dict[str, str] = Field(default_factory=dict)
    messages: tuple[BankSend, ...] = Field(())
    data: Optional[dict[str, Any]] = None

    model_config = {"frozen": True}

    def attribute(self, key: str) -> str:
        return self.attributes[key]
