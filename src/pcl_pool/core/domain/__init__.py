"""
Domain models and value objects.

Contains the pool's immutable entities: assets, configuration, pool state,
pending operations and gateway messages.
"""

from pcl_pool.core.domain.assets import Asset, AssetInfo, AssetKind, Coin
from pcl_pool.core.domain.messages import (
    BankSend,
    BurnRequest,
    CreateDenomRequest,
    GatewayAck,
    MintRequest,
    OperationKind,
    PendingOperation,
    Response,
    RouteStep,
    RouteSwapAck,
    RouteSwapRequest,
    SwapParams,
)
from pcl_pool.core.domain.pool_config import (
    CONFIG_SCHEMA_VERSION,
    PARAM_BOUNDS,
    ConcentratedPoolParams,
    PoolConfig,
    PoolParams,
    check_param_bounds,
)
from pcl_pool.core.domain.pool_state import (
    OBSERVATIONS_SIZE,
    POOL_STATE_SCHEMA_VERSION,
    AmpGamma,
    BalanceSnapshot,
    Observation,
    OracleAccumulators,
    PoolState,
    PriceState,
)
from pcl_pool.core.domain.transaction import Env, PendingRegistry

__all__ = [
    # Assets
    "Asset",
    "AssetInfo",
    "AssetKind",
    "Coin",
    # Config
    "CONFIG_SCHEMA_VERSION",
    "PARAM_BOUNDS",
    "ConcentratedPoolParams",
    "PoolConfig",
    "PoolParams",
    "check_param_bounds",
    # Pool state
    "OBSERVATIONS_SIZE",
    "POOL_STATE_SCHEMA_VERSION",
    "AmpGamma",
    "BalanceSnapshot",
    "Observation",
    "OracleAccumulators",
    "PoolState",
    "PriceState",
    # Pending operations / gateway messages
    "BankSend",
    "BurnRequest",
    "CreateDenomRequest",
    "GatewayAck",
    "MintRequest",
    "OperationKind",
    "PendingOperation",
    "Response",
    "RouteStep",
    "RouteSwapAck",
    "RouteSwapRequest",
    "SwapParams",
    # Transaction
    "Env",
    "PendingRegistry",
]
