"""
Assets — denominations и количества пула

Immutable Pydantic модели для описания активов пула:
- AssetInfo: native denomination (bank module) или contract-token (cw20-style)
- Asset: AssetInfo + количество в base units
- Coin: native denomination + количество (то, что реально двигает bank)

Contract-token активы описываются только для того, чтобы их можно было
явно отвергнуть на границе: пул работает исключительно с native assets.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from pcl_pool.core.errors import InvalidAsset


# =============================================================================
# ENUMS
# =============================================================================


class AssetKind(str, Enum):
    """Тип актива."""

    NATIVE = "native_token"
    TOKEN = "token"


# =============================================================================
# MODELS
# =============================================================================


class AssetInfo(BaseModel):
    """
    Идентификатор актива.

    JSON форма (как во входящих сообщениях):
    - {"native_token": {"denom": "uosmo"}}
    - {"token": {"contract_addr": "osmo1..."}}
    """

    kind: AssetKind = Field(..., description="native_token или token")
    identifier: str = Field(..., min_length=1, description="denom или contract_addr")

    model_config = {"frozen": True}

    @classmethod
    def native(cls, denom: str) -> "AssetInfo":
        return cls(kind=AssetKind.NATIVE, identifier=denom)

    @classmethod
    def from_msg(cls, data: dict[str, Any]) -> "AssetInfo":
        """Парсинг JSON формы сообщения."""
        if "native_token" in data:
            return cls(kind=AssetKind.NATIVE, identifier=data["native_token"]["denom"])
        if "token" in data:
            return cls(kind=AssetKind.TOKEN, identifier=data["token"]["contract_addr"])
        raise InvalidAsset(f"Unknown asset info: {data}")

    def to_msg(self) -> dict[str, Any]:
        if self.kind == AssetKind.NATIVE:
            return {"native_token": {"denom": self.identifier}}
        return {"token": {"contract_addr": self.identifier}}

    @property
    def is_native(self) -> bool:
        return self.kind == AssetKind.NATIVE

    @property
    def denom(self) -> str:
        """Native denomination; для contract-token — InvalidAsset."""
        if not self.is_native:
            raise InvalidAsset(
                f"Contract-mediated token {self.identifier} is not supported",
                asset=self.identifier,
            )
        return self.identifier

    def with_balance(self, amount: int) -> "Asset":
        return Asset(info=self, amount=amount)

    def __str__(self) -> str:
        return self.identifier


class Asset(BaseModel):
    """Актив с количеством (base units)."""

    info: AssetInfo = Field(..., description="Идентификатор актива")
    amount: int = Field(..., ge=0, description="Количество в base units")

    model_config = {"frozen": True}

    @classmethod
    def from_msg(cls, data: dict[str, Any]) -> "Asset":
        return cls(info=AssetInfo.from_msg(data["info"]), amount=int(data["amount"]))

    def to_msg(self) -> dict[str, Any]:
        return {"info": self.info.to_msg(), "amount": str(self.amount)}

    def as_coin(self) -> "Coin":
        return Coin(denom=self.info.denom, amount=self.amount)

    def __str__(self) -> str:
        return f"{self.amount}{self.info}"


class Coin(BaseModel):
    """Native coin (bank module)."""

    denom: str = Field(..., min_length=1, description="Native denomination")
    amount: int = Field(..., ge=0, description="Количество в base units")

    model_config = {"frozen": True}

    @classmethod
    def from_msg(cls, data: dict[str, Any]) -> "Coin":
        return cls(denom=data["denom"], amount=int(data["amount"]))

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"
