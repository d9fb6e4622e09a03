"""
Host Chain — in-memory окружение исполнения пулов

Обязанности host'а:
- часы блоков (block_time / block_height)
- bank + token factory (InMemoryBank) и routing модуль (InMemoryRouter)
- pinned factory (AccessGate) и создание пулов
- транзакционность: execute / sudo / instantiate исполняются целиком или
  откатываются целиком (storage всех контрактов + bank)

После rollback'а из-за InvariantViolation host отдельной записью открывает
circuit breaker контракта (запись делается после restore и переживает откат).
"""

import logging
from typing import Any, Callable, Dict, Iterable, Sequence

from pcl_pool.contract import PoolContract
from pcl_pool.core.domain.assets import Coin
from pcl_pool.core.domain.messages import Response
from pcl_pool.core.domain.transaction import Env
from pcl_pool.core.errors import InvariantViolation, PoolError
from pcl_pool.gateways.access_gate import AccessGate
from pcl_pool.gateways.token_issuance import InMemoryBank
from pcl_pool.gateways.trade_routing import InMemoryRouter
from pcl_pool.ledger.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_GENESIS_TIME = 1_700_000_000
DEFAULT_BLOCK_SECONDS = 5


class HostChain:
    """In-memory host chain с транзакционным исполнением."""

    def __init__(
        self,
        factory_addr: str = "factory",
        block_time: int = DEFAULT_GENESIS_TIME,
        block_height: int = 1,
    ):
        self.bank = InMemoryBank()
        self.router = InMemoryRouter(self.bank)
        self.access_gate = AccessGate(factory_addr)
        self.block_time = block_time
        self.block_height = block_height
        self._contracts: Dict[str, PoolContract] = {}
        self._next_contract = 1

    # -------------------------------------------------------------------------
    # CLOCK / BANK
    # -------------------------------------------------------------------------

    @property
    def factory_addr(self) -> str:
        return self.access_gate.factory_addr

    def next_block(self, seconds: int = DEFAULT_BLOCK_SECONDS) -> None:
        self.block_time += seconds
        self.block_height += 1

    def env(self) -> Env:
        return Env(block_time=self.block_time, block_height=self.block_height)

    def fund(self, address: str, coins: Iterable[Coin]) -> None:
        self.bank.fund(address, coins)

    def balance(self, address: str, denom: str) -> int:
        return self.bank.balance(address, denom)

    def contract(self, address: str) -> PoolContract:
        return self._contracts[address]

    # -------------------------------------------------------------------------
    # POOLS
    # -------------------------------------------------------------------------

    def instantiate_pool(self, sender: str, msg: Dict[str, Any]) -> PoolContract:
        """Инстанциация контракта пула (без регистрации в routing модуле)."""
        contract = PoolContract(
            f"contract{self._next_contract}",
            KeyValueStore(),
            self.bank,
            self.router,
            self.access_gate,
        )
        self._next_contract += 1
        self._run(contract, sender, (), lambda env: contract.instantiate(env, sender, msg))
        self._contracts[contract.address] = contract
        return contract

    def create_pool(self, msg: Dict[str, Any]) -> PoolContract:
        """
        Полный сценарий factory: instantiate → регистрация в routing модуле → set_pool_id.
        """
        contract = self.instantiate_pool(self.factory_addr, msg)
        pool_id = self.router.register_pool(contract.address, contract.sudo)
        self.execute(contract.address, self.factory_addr, {"set_pool_id": {"pool_id": pool_id}})
        return contract

    # -------------------------------------------------------------------------
    # ENTRY POINTS
    # -------------------------------------------------------------------------

    def execute(
        self,
        contract_addr: str,
        sender: str,
        msg: Dict[str, Any],
        funds: Sequence[Coin] = (),
    ) -> Response:
        contract = self._contracts[contract_addr]
        return self._run(
            contract, sender, funds, lambda env: contract.execute(env, sender, msg, funds)
        )

    def sudo(
        self,
        contract_addr: str,
        msg: Dict[str, Any],
        funds: Sequence[Coin] = (),
    ) -> Response:
        """Sudo вызов от имени routing модуля; funds списываются с msg sender'а."""
        contract = self._contracts[contract_addr]
        payload = next(iter(msg.values()), {})
        sender = payload.get("sender", self.router.address)
        return self._run(contract, sender, funds, lambda env: contract.sudo(env, msg))

    def query(self, contract_addr: str, msg: Dict[str, Any]) -> Any:
        return self._contracts[contract_addr].query(self.env(), msg)

    # -------------------------------------------------------------------------
    # TRANSACTION
    # -------------------------------------------------------------------------

    def _snapshot(self, contract: PoolContract) -> tuple:
        contracts = dict(self._contracts)
        contracts[contract.address] = contract
        storages = {addr: c.storage.snapshot() for addr, c in contracts.items()}
        return contracts, storages, self.bank.snapshot()

    @staticmethod
    def _restore(snapshot: tuple, bank: InMemoryBank) -> None:
        contracts, storages, bank_snapshot = snapshot
        for addr, storage_snapshot in storages.items():
            contracts[addr].storage.restore(storage_snapshot)
        bank.restore(bank_snapshot)

    def _run(
        self,
        contract: PoolContract,
        sender: str,
        funds: Sequence[Coin],
        call: Callable[[Env], Response],
    ) -> Response:
        """
        Исполнение entry point'а в транзакции.

        funds переводятся sender → контракт до вызова, BankSend'ы ответа
        исполняются после; PendingOperation'ы должны быть закрыты.
        """
        snapshot = self._snapshot(contract)
        env = self.env()
        try:
            if funds:
                self.bank.send(sender, contract.address, funds)
            response = call(env)
            for send in response.messages:
                self.bank.send(contract.address, send.to_address, send.amount)
            env.registry.ensure_empty()
        except Exception as exc:
            self._restore(snapshot, self.bank)
            if isinstance(exc, InvariantViolation):
                contract.breaker.open(
                    exc.message, {"kind": exc.kind, **exc.details}, env.block_time
                )
            elif isinstance(exc, PoolError):
                logger.warning(
                    "Rejected call on %s from %s: %s", contract.address, sender, exc.to_response()
                )
            raise
        return response
