"""
Storage — транзакционное key-value хранилище контракта

Значения хранятся как канонический JSON (sort_keys, без пробелов), поэтому
два состояния равны тогда и только тогда, когда равны их байтовые
представления. Snapshot / restore используются host'ом для атомарного
rollback top-level транзакции.
"""

import json
from typing import Any, Dict, Iterator, Optional


class KeyValueStore:
    """In-memory key-value storage с snapshot / restore."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    @staticmethod
    def encode(value: Dict[str, Any]) -> str:
        return json.dumps(value, sort_keys=True, separators=(",", ":"))

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def get_raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = self.encode(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def has(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> Iterator[str]:
        return iter(sorted(self._data))

    def snapshot(self) -> Dict[str, str]:
        """Копия всего содержимого (для rollback)."""
        return dict(self._data)

    def restore(self, snapshot: Dict[str, str]) -> None:
        self._data = dict(snapshot)
