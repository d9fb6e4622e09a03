"""
Access Gate — авторизация инстанциации пула

Единственный предикат: is_authorized_instantiator(caller). Pinned factory
фиксируется при создании гейта и сравнивается напрямую, без иерархий ролей.
"""

from dataclasses import dataclass

from pcl_pool.core.errors import Unauthorized


@dataclass(frozen=True)
class AccessGate:
    """Pinned factory address."""

    factory_addr: str

    def is_authorized_instantiator(self, caller: str) -> bool:
        return caller == self.factory_addr

    def assert_factory(self, caller: str) -> None:
        """
        Raises:
            Unauthorized: Если caller не pinned factory
        """
        if not self.is_authorized_instantiator(caller):
            raise Unauthorized(caller)
