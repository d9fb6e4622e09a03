"""
Trade-Routing Gateway — cross-module swap path host chain'а

Интерфейс (то, что видит пул):
    route_swap(env, RouteSwapRequest) -> RouteSwapAck

InMemoryRouter — in-memory реализация routing модуля:
1. забирает offer у sender'а (пула, инициировавшего routed swap)
2. для каждого шага маршрута переводит монету в пул шага и вызывает его
   sudo hook swap_exact_amount_in (для пула-инициатора — с correlation_id)
3. исполняет BankSend'ы ответа пула, итог отправляет recipient'у
4. возвращает RouteSwapAck с исполнением pool-leg'а инициатора и итогом

min_return роутер не проверяет: его сверяет пул при reconciliation ack.
Ошибки пулов (PoolError) пробрасываются как есть и прерывают транзакцию.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from pcl_pool.core.domain.assets import Asset, AssetInfo, Coin
from pcl_pool.core.domain.messages import Response, RouteSwapAck, RouteSwapRequest
from pcl_pool.core.domain.transaction import Env
from pcl_pool.core.errors import GatewayError

from .token_issuance import InMemoryBank

logger = logging.getLogger(__name__)

# (env, sudo msg) -> Response
SudoHandler = Callable[[Env, Dict[str, Any]], Response]


class TradeRoutingGateway(ABC):
    """Trade-Routing модуль host chain'а."""

    @abstractmethod
    def route_swap(self, env: Env, request: RouteSwapRequest) -> RouteSwapAck:
        ...


class InMemoryRouter(TradeRoutingGateway):
    """Routing модуль поверх InMemoryBank."""

    def __init__(self, bank: InMemoryBank, address: str = "router"):
        self.bank = bank
        self.address = address
        self._pools: Dict[int, tuple[str, SudoHandler]] = {}
        self._next_pool_id = 1

    def register_pool(
        self, contract_addr: str, sudo: SudoHandler, pool_id: Optional[int] = None
    ) -> int:
        """Регистрация пула; возвращает присвоенный pool_id."""
        if pool_id is None:
            pool_id = self._next_pool_id
        if pool_id in self._pools:
            raise GatewayError("Pool id is already registered", pool_id=pool_id)
        self._pools[pool_id] = (contract_addr, sudo)
        self._next_pool_id = max(self._next_pool_id, pool_id + 1)
        return pool_id

    def pool_address(self, pool_id: int) -> Optional[str]:
        pool = self._pools.get(pool_id)
        return pool[0] if pool else None

    def route_swap(self, env: Env, request: RouteSwapRequest) -> RouteSwapAck:
        unknown = [step.pool_id for step in request.route if step.pool_id not in self._pools]
        if unknown:
            return self._failed(request, f"Unknown pool ids in route: {unknown}")

        coin = request.offer.as_coin()
        try:
            self.bank.send(request.sender, self.address, [coin])
        except GatewayError as exc:
            return self._failed(request, exc.message)

        pool_fill = None
        for step in request.route:
            contract_addr, sudo = self._pools[step.pool_id]
            is_origin = contract_addr == request.sender
            self.bank.send(self.address, contract_addr, [coin])

            response = sudo(
                env,
                {
                    "swap_exact_amount_in": {
                        "sender": self.address,
                        "token_in": {"denom": coin.denom, "amount": str(coin.amount)},
                        "token_out_denom": step.token_out_denom,
                        "token_out_min_amount": "1",
                        "correlation_id": request.correlation_id if is_origin else None,
                    }
                },
            )
            for send in response.messages:
                self.bank.send(contract_addr, send.to_address, send.amount)

            coin = Coin(
                denom=step.token_out_denom,
                amount=int(response.data["token_out_amount"]),
            )
            if is_origin and pool_fill is None:
                pool_fill = Asset(info=AssetInfo.native(coin.denom), amount=coin.amount)
            logger.debug("Route step through pool %d returned %s", step.pool_id, coin)

        self.bank.send(self.address, request.recipient, [coin])
        return RouteSwapAck(
            correlation_id=request.correlation_id,
            success=True,
            pool_fill=pool_fill,
            return_asset=Asset(info=AssetInfo.native(coin.denom), amount=coin.amount),
        )

    @staticmethod
    def _failed(request: RouteSwapRequest, error: str) -> RouteSwapAck:
        logger.debug("Route swap %d failed: %s", request.correlation_id, error)
        return RouteSwapAck(
            correlation_id=request.correlation_id, success=False, error=error
        )
