"""
Circuit Breaker — остановка пула после InvariantViolation

InvariantViolation — сигнал ошибки в математике или учёте. Транзакция,
в которой он возник, откатывается целиком; host затем отдельной записью
открывает breaker (запись переживает rollback, потому что делается после него).

Пока breaker открыт, все execute / sudo entry points отвечают PoolHalted;
queries продолжают работать. Снять остановку может только owner через
update_config {"resume": {}} после ручной проверки.
"""

import logging
from typing import Any, Final, Optional

from pcl_pool.core.errors import PoolHalted
from pcl_pool.ledger.storage import KeyValueStore

logger = logging.getLogger(__name__)

BREAKER_KEY: Final[str] = "circuit_breaker"


class CircuitBreaker:
    """Флаг остановки пула в storage контракта."""

    def __init__(self, storage: KeyValueStore):
        self.storage = storage

    def status(self) -> Optional[dict[str, Any]]:
        return self.storage.get(BREAKER_KEY)

    def is_open(self) -> bool:
        return self.storage.has(BREAKER_KEY)

    def open(self, reason: str, details: dict[str, Any], now: int) -> None:
        self.storage.set(
            BREAKER_KEY,
            {
                "reason": reason,
                "details": {key: str(value) for key, value in details.items()},
                "since": now,
            },
        )
        logger.error("Circuit breaker opened at %d: %s", now, reason)

    def close(self) -> None:
        self.storage.remove(BREAKER_KEY)
        logger.info("Circuit breaker closed")

    def ensure_closed(self) -> None:
        """
        Raises:
            PoolHalted: Если breaker открыт
        """
        status = self.status()
        if status is not None:
            raise PoolHalted(
                "Pool is halted pending manual review",
                reason=status["reason"],
                since=status["since"],
            )
