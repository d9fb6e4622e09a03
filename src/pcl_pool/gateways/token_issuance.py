"""
Token-Issuance Gateway — native denominations host chain'а

Интерфейс (то, что видит пул):
- create_denom: создание LP denomination factory/<creator>/<subdenom>
- mint / burn: выпуск и сжигание LP denomination
- balance / supply: учёт балансов ведёт модуль, а не пул

InMemoryBank — in-memory host реализация: bank (native coins) + token factory.
Каждый запрос завершается GatewayAck; failure не бросает исключение, а
сообщается в ack, решение об abort принимает пул.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable

from pcl_pool.core.domain.assets import Coin
from pcl_pool.core.domain.messages import (
    BurnRequest,
    CreateDenomRequest,
    GatewayAck,
    MintRequest,
)
from pcl_pool.core.errors import GatewayError

logger = logging.getLogger(__name__)


class TokenIssuanceGateway(ABC):
    """Token-Issuance модуль host chain'а."""

    @abstractmethod
    def create_denom(self, request: CreateDenomRequest) -> GatewayAck:
        ...

    @abstractmethod
    def mint(self, request: MintRequest) -> GatewayAck:
        ...

    @abstractmethod
    def burn(self, request: BurnRequest) -> GatewayAck:
        ...

    @abstractmethod
    def balance(self, address: str, denom: str) -> int:
        ...

    @abstractmethod
    def supply(self, denom: str) -> int:
        ...

    @abstractmethod
    def denom_exists(self, denom: str) -> bool:
        ...


class InMemoryBank(TokenIssuanceGateway):
    """
    Bank + token factory в памяти.

    Состояние — балансы по адресам, supply по denominations и создатели
    factory denominations. snapshot / restore используются host'ом для rollback.
    """

    def __init__(self):
        self._balances: Dict[str, Dict[str, int]] = {}
        self._supplies: Dict[str, int] = {}
        self._creators: Dict[str, str] = {}

    # -------------------------------------------------------------------------
    # BANK
    # -------------------------------------------------------------------------

    def fund(self, address: str, coins: Iterable[Coin]) -> None:
        """Genesis выпуск native coins (только для настройки окружения)."""
        for coin in coins:
            self._add(address, coin.denom, coin.amount)
            self._supplies[coin.denom] = self._supplies.get(coin.denom, 0) + coin.amount

    def denom_exists(self, denom: str) -> bool:
        return self._supplies.get(denom, 0) > 0 or denom in self._creators

    def balance(self, address: str, denom: str) -> int:
        return self._balances.get(address, {}).get(denom, 0)

    def balances_of(self, address: str) -> Dict[str, int]:
        return {d: a for d, a in self._balances.get(address, {}).items() if a > 0}

    def supply(self, denom: str) -> int:
        return self._supplies.get(denom, 0)

    def send(self, from_address: str, to_address: str, coins: Iterable[Coin]) -> None:
        """
        Перевод coins.

        Raises:
            GatewayError: Недостаточно средств у отправителя
        """
        coins = list(coins)
        for coin in coins:
            available = self.balance(from_address, coin.denom)
            if available < coin.amount:
                raise GatewayError(
                    f"Insufficient funds: {from_address} has {available}{coin.denom}",
                    expected=coin.amount,
                    actual=available,
                )
        for coin in coins:
            self._add(from_address, coin.denom, -coin.amount)
            self._add(to_address, coin.denom, coin.amount)

    # -------------------------------------------------------------------------
    # TOKEN FACTORY
    # -------------------------------------------------------------------------

    def create_denom(self, request: CreateDenomRequest) -> GatewayAck:
        denom = f"factory/{request.creator}/{request.subdenom}"
        if denom in self._creators:
            return GatewayAck(
                correlation_id=request.correlation_id,
                success=False,
                error=f"Denom {denom} already exists",
            )
        self._creators[denom] = request.creator
        self._supplies.setdefault(denom, 0)
        logger.debug("Created denom %s", denom)
        return GatewayAck(correlation_id=request.correlation_id, success=True, denom=denom)

    def mint(self, request: MintRequest) -> GatewayAck:
        if request.denom not in self._creators:
            return GatewayAck(
                correlation_id=request.correlation_id,
                success=False,
                denom=request.denom,
                error=f"Denom {request.denom} is not a factory denom",
            )
        self._add(request.recipient, request.denom, request.amount)
        self._supplies[request.denom] += request.amount
        return GatewayAck(
            correlation_id=request.correlation_id,
            success=True,
            amount=request.amount,
            denom=request.denom,
        )

    def burn(self, request: BurnRequest) -> GatewayAck:
        available = self.balance(request.owner, request.denom)
        if request.denom not in self._creators or available < request.amount:
            return GatewayAck(
                correlation_id=request.correlation_id,
                success=False,
                denom=request.denom,
                error=f"Cannot burn {request.amount}{request.denom}: balance {available}",
            )
        self._add(request.owner, request.denom, -request.amount)
        self._supplies[request.denom] -= request.amount
        return GatewayAck(
            correlation_id=request.correlation_id,
            success=True,
            amount=request.amount,
            denom=request.denom,
        )

    # -------------------------------------------------------------------------
    # ROLLBACK
    # -------------------------------------------------------------------------

    def snapshot(self) -> tuple:
        return copy.deepcopy((self._balances, self._supplies, self._creators))

    def restore(self, snapshot: tuple) -> None:
        self._balances, self._supplies, self._creators = copy.deepcopy(snapshot)

    def _add(self, address: str, denom: str, delta: int) -> None:
        account = self._balances.setdefault(address, {})
        account[denom] = account.get(denom, 0) + delta
