"""
Transaction — контекст одной top-level транзакции

- Env: время и высота блока + registry pending операций
- PendingRegistry: PendingOperation по correlation_id

Registry создаётся host'ом на каждую транзакцию и передаётся явно через Env
во все entry points (включая вложенные sudo вызовы Trade-Routing модуля).
Глобального реестра callback'ов нет: после завершения транзакции registry
отбрасывается вместе с Env.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from pcl_pool.core.errors import GatewayError, InvariantViolation

from .messages import OperationKind, PendingOperation


class PendingRegistry:
    """PendingOperation'ы текущей транзакции."""

    def __init__(self):
        self._operations: Dict[int, PendingOperation] = {}
        self._next_id = 1

    def open(
        self,
        kind: OperationKind,
        caller: str,
        amounts: Optional[Dict[str, int]] = None,
        **extra,
    ) -> PendingOperation:
        """Создание PendingOperation с новым correlation_id."""
        operation = PendingOperation(
            correlation_id=self._next_id,
            kind=kind,
            caller=caller,
            amounts=amounts or {},
            **extra,
        )
        self._operations[operation.correlation_id] = operation
        self._next_id += 1
        return operation

    def get(self, correlation_id: int) -> PendingOperation:
        """
        Raises:
            GatewayError: Acknowledgement без соответствующей операции
        """
        operation = self._operations.get(correlation_id)
        if operation is None:
            raise GatewayError(
                "Unknown correlation id", correlation_id=correlation_id
            )
        return operation

    def update(self, operation: PendingOperation) -> None:
        self.get(operation.correlation_id)
        self._operations[operation.correlation_id] = operation

    def close(self, correlation_id: int) -> PendingOperation:
        operation = self.get(correlation_id)
        del self._operations[correlation_id]
        return operation

    def ensure_empty(self) -> None:
        """
        Raises:
            InvariantViolation: Остались неподтверждённые операции
        """
        if self._operations:
            raise InvariantViolation(
                "Pending operations left unacknowledged",
                pending=sorted(self._operations),
            )

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, correlation_id: int) -> bool:
        return correlation_id in self._operations


@dataclass
class Env:
    """Окружение вызова entry point'а."""

    block_time: int
    block_height: int = 1
    registry: PendingRegistry = field(default_factory=PendingRegistry)
