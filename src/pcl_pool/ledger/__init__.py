"""
Pool Ledger — versioned records и транзакционное хранилище.
"""

from pcl_pool.ledger.migration import (
    CONFIG_KEY,
    CURRENT_VERSIONS,
    POOL_STATE_KEY,
    migrate_record,
)
from pcl_pool.ledger.pool_ledger import (
    ASSET_BALANCES_KEY,
    BALANCE_HISTORY_SIZE,
    LedgerConfig,
    PoolLedger,
    virtual_price,
)
from pcl_pool.ledger.storage import KeyValueStore

__all__ = [
    "ASSET_BALANCES_KEY",
    "BALANCE_HISTORY_SIZE",
    "CONFIG_KEY",
    "CURRENT_VERSIONS",
    "POOL_STATE_KEY",
    "KeyValueStore",
    "LedgerConfig",
    "PoolLedger",
    "migrate_record",
    "virtual_price",
]
