"""
Pool Ledger — авторитетная запись состояния пула

Контракт:
    read() -> PoolState
    commit(new_state, now, precisions) -> None  (InvariantViolation при нарушении)
    record_balances(block_height, reserves) -> None
    balance_at(asset_ind, block_height) -> Optional[int]

Проверка при commit:
1. reserves >= 0
2. LP virtual price (xcp / total_share) не уменьшается больше чем на
   invariant_tolerance (относительно). Пре- и пост-состояние считаются
   с одними и теми же (amp, gamma) на момент now.
3. Если передан lp_supply — total_share совпадает с supply LP denomination.

Virtual price, а не сам D: withdraw легально уменьшает D, но не D на долю.
Для пустого пула (total_share == 0) проверка 2 пропускается.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Final, Optional

from pcl_pool.core.contracts.validators import (
    validate_config_record,
    validate_pool_state_record,
)
from pcl_pool.core.domain.pool_config import PoolConfig
from pcl_pool.core.domain.pool_state import BalanceSnapshot, PoolState
from pcl_pool.core.errors import InvariantViolation, MigrationError
from pcl_pool.core.math.curve_invariant import calc_d, get_xcp
from pcl_pool.core.math.numerical_safeguards import (
    INVARIANT_TOLERANCE,
    LP_TOKEN_PRECISION,
    MATH_CONTEXT,
    ONE,
    ZERO,
    to_decimal,
)
from pcl_pool.ledger.migration import CONFIG_KEY, POOL_STATE_KEY, migrate_record
from pcl_pool.ledger.storage import KeyValueStore

logger = logging.getLogger(__name__)

ASSET_BALANCES_KEY: Final[str] = "asset_balances"

# Размер истории резервов; старейшие записи вытесняются
BALANCE_HISTORY_SIZE: Final[int] = 3000


@dataclass(frozen=True)
class LedgerConfig:
    """Настройки проверки инварианта."""

    invariant_tolerance: Decimal = INVARIANT_TOLERANCE


def virtual_price(
    state: PoolState,
    precisions: tuple[int, int],
    amp: Decimal,
    gamma: Decimal,
) -> Decimal:
    """
    LP virtual price: xcp(D, price_scale) / total_share.

    Returns:
        0 для пустого пула
    """
    if state.total_share == 0:
        return ZERO
    d = calc_d(state.xp(precisions), amp, gamma)
    xcp = get_xcp(d, state.price_state.price_scale)
    return MATH_CONTEXT.divide(xcp, to_decimal(state.total_share, LP_TOKEN_PRECISION))


class PoolLedger:
    """
    Pool Ledger поверх KeyValueStore.

    Хранит два versioned record'а: "config" и "pool_state". При чтении
    record мигрируется до текущей версии и валидируется по JSON Schema.
    Отдельно, если включён track_asset_balances, хранится история резервов
    по высотам блоков ("asset_balances").
    """

    def __init__(self, storage: KeyValueStore, config: Optional[LedgerConfig] = None):
        self.storage = storage
        self.config = config or LedgerConfig()

    # -------------------------------------------------------------------------
    # CONFIG
    # -------------------------------------------------------------------------

    def has_config(self) -> bool:
        return self.storage.has(CONFIG_KEY)

    def load_config(self) -> PoolConfig:
        record = self._load_record(CONFIG_KEY)
        validate_config_record(record)
        return PoolConfig.model_validate(record)

    def save_config(self, config: PoolConfig) -> None:
        self.storage.set(CONFIG_KEY, config.model_dump(mode="json"))

    # -------------------------------------------------------------------------
    # POOL STATE
    # -------------------------------------------------------------------------

    def has_state(self) -> bool:
        return self.storage.has(POOL_STATE_KEY)

    def read(self) -> PoolState:
        """Текущее состояние пула (консистентный snapshot операции)."""
        record = self._load_record(POOL_STATE_KEY)
        validate_pool_state_record(record)
        return PoolState.model_validate(record)

    def init_state(self, state: PoolState) -> None:
        """Первичная запись состояния при instantiate."""
        if self.has_state():
            raise InvariantViolation("Pool state is already initialized")
        self._check_reserves(state)
        self.storage.set(POOL_STATE_KEY, state.model_dump(mode="json"))

    def commit(
        self,
        new_state: PoolState,
        now: int,
        precisions: tuple[int, int],
        lp_supply: Optional[int] = None,
        pre_state: Optional[PoolState] = None,
    ) -> None:
        """
        Commit нового состояния с проверкой инварианта.

        Args:
            new_state: пост-состояние операции
            now: время блока (для amp/gamma ramp)
            precisions: decimals активов
            lp_supply: supply LP denomination по данным Token-Issuance Gateway
            pre_state: snapshot, прочитанный операцией; без него record
                перечитывается из storage

        Raises:
            InvariantViolation: резерв < 0, падение virtual price, расхождение supply
        """
        self._check_reserves(new_state)

        if lp_supply is not None and lp_supply != new_state.total_share:
            raise InvariantViolation(
                "LP supply diverged from recorded total share",
                expected=new_state.total_share,
                actual=lp_supply,
            )

        if pre_state is None:
            pre_state = self.read()
        amp, gamma = new_state.amp_gamma.get_amp_gamma(now)
        if pre_state.total_share > 0 and new_state.total_share > 0:
            vp_pre = virtual_price(pre_state, precisions, amp, gamma)
            vp_post = virtual_price(new_state, precisions, amp, gamma)
            floor = vp_pre * (ONE - self.config.invariant_tolerance)
            if vp_post < floor:
                raise InvariantViolation(
                    "Commit would decrease the pool invariant",
                    expected=vp_pre,
                    actual=vp_post,
                )

        self.storage.set(POOL_STATE_KEY, new_state.model_dump(mode="json"))
        logger.debug(
            "Committed pool state: reserves=%s total_share=%d",
            new_state.reserves,
            new_state.total_share,
        )

    # -------------------------------------------------------------------------
    # ASSET BALANCES HISTORY
    # -------------------------------------------------------------------------

    def balance_history(self) -> list[BalanceSnapshot]:
        record = self.storage.get(ASSET_BALANCES_KEY)
        if record is None:
            return []
        return [BalanceSnapshot.model_validate(entry) for entry in record["entries"]]

    def record_balances(self, block_height: int, reserves: tuple[int, int]) -> None:
        """
        Запись резервов на высоте block_height.

        Повторная запись в том же блоке заменяет предыдущую; запись с теми же
        резервами, что и последняя, пропускается. Хранится не больше
        BALANCE_HISTORY_SIZE записей.
        """
        history = self.balance_history()
        snapshot = BalanceSnapshot(block_height=block_height, reserves=reserves)
        if history and history[-1].block_height > block_height:
            raise InvariantViolation(
                "Balance history must grow with block height",
                expected=history[-1].block_height,
                actual=block_height,
            )
        if history and history[-1].block_height == block_height:
            history[-1] = snapshot
        elif history and history[-1].reserves == snapshot.reserves:
            return
        else:
            history.append(snapshot)
        self.storage.set(
            ASSET_BALANCES_KEY,
            {
                "entries": [
                    entry.model_dump(mode="json") for entry in history[-BALANCE_HISTORY_SIZE:]
                ]
            },
        )

    def balance_at(self, asset_ind: int, block_height: int) -> Optional[int]:
        """
        Резерв актива к началу блока block_height.

        Запись, сделанная в блоке h, видна только для block_height > h.

        Returns:
            None, если до block_height ничего не записано (или запись вытеснена)
        """
        for snapshot in reversed(self.balance_history()):
            if snapshot.block_height < block_height:
                return snapshot.reserves[asset_ind]
        return None

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_reserves(state: PoolState) -> None:
        if state.reserves[0] < 0 or state.reserves[1] < 0:
            raise InvariantViolation(
                "Reserve would go negative", expected=0, actual=list(state.reserves)
            )

    def _load_record(self, key: str) -> dict:
        record = self.storage.get(key)
        if record is None:
            raise MigrationError(f"Record {key} is not initialized")
        return migrate_record(key, record)
