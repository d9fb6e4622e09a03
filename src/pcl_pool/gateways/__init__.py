"""
Gateways — внешние модули host chain'а.

Token-Issuance (create/mint/burn LP denomination), Trade-Routing (routed swap)
и Access Gate (pinned factory). Абстрактные интерфейсы + in-memory реализации.
"""

from pcl_pool.gateways.access_gate import AccessGate
from pcl_pool.gateways.token_issuance import InMemoryBank, TokenIssuanceGateway
from pcl_pool.gateways.trade_routing import (
    InMemoryRouter,
    SudoHandler,
    TradeRoutingGateway,
)

__all__ = [
    "AccessGate",
    "InMemoryBank",
    "InMemoryRouter",
    "SudoHandler",
    "TokenIssuanceGateway",
    "TradeRoutingGateway",
]
