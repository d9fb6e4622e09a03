"""
Migration — версионирование persisted records

Records "config" и "pool_state" хранятся как {"schema_version": N, ...}.
Текущая версия — 2. Версия 1:
- config.params содержит единый fee_rate вместо mid_fee / out_fee
  и не содержит max_price_scale_delta / repeg_gain / maker_fee_share
- pool_state не содержит TWAP accumulators и observations

Миграция сохраняет инварианты: reserves >= 0, total_share >= 0.
"""

import copy
import logging
from typing import Any, Callable, Dict, Final

from pcl_pool.core.domain.pool_config import CONFIG_SCHEMA_VERSION
from pcl_pool.core.domain.pool_state import POOL_STATE_SCHEMA_VERSION
from pcl_pool.core.errors import MigrationError

logger = logging.getLogger(__name__)

CONFIG_KEY: Final[str] = "config"
POOL_STATE_KEY: Final[str] = "pool_state"

CURRENT_VERSIONS: Final[Dict[str, int]] = {
    CONFIG_KEY: CONFIG_SCHEMA_VERSION,
    POOL_STATE_KEY: POOL_STATE_SCHEMA_VERSION,
}


# =============================================================================
# V1 → V2
# =============================================================================


def _config_v1_to_v2(record: Dict[str, Any]) -> Dict[str, Any]:
    params = record.get("params")
    if not isinstance(params, dict) or "fee_rate" not in params:
        raise MigrationError("config v1 record has no params.fee_rate")

    fee_rate = params.pop("fee_rate")
    params["mid_fee"] = fee_rate
    params["out_fee"] = fee_rate
    params.setdefault("max_price_scale_delta", "0.01")
    params.setdefault("repeg_gain", "0.5")
    params.setdefault("maker_fee_share", "0")
    params.setdefault("fee_address", None)
    params.setdefault("track_asset_balances", False)
    record["schema_version"] = 2
    return record


def _pool_state_v1_to_v2(record: Dict[str, Any]) -> Dict[str, Any]:
    reserves = record.get("reserves", [])
    if len(reserves) != 2 or any(int(r) < 0 for r in reserves):
        raise MigrationError("pool_state v1 record has invalid reserves", reserves=reserves)
    if int(record.get("total_share", -1)) < 0:
        raise MigrationError(
            "pool_state v1 record has invalid total_share",
            total_share=record.get("total_share"),
        )

    record.setdefault(
        "accumulators",
        {
            "price0_cumulative": "0",
            "price1_cumulative": "0",
            "last_updated": record.get("last_updated", 0),
        },
    )
    record.setdefault("observations", [])
    record.setdefault("cumulative_fees", [0, 0])
    record["schema_version"] = 2
    return record


# (key, from_version) -> шаг миграции на from_version + 1
MIGRATIONS: Final[Dict[tuple[str, int], Callable[[Dict[str, Any]], Dict[str, Any]]]] = {
    (CONFIG_KEY, 1): _config_v1_to_v2,
    (POOL_STATE_KEY, 1): _pool_state_v1_to_v2,
}


def migrate_record(key: str, record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Миграция record до текущей версии схемы.

    Args:
        key: "config" или "pool_state"
        record: загруженный record (не изменяется)

    Returns:
        Record текущей версии (копия, если миграция была)

    Raises:
        MigrationError: Неизвестный key, неизвестная версия или нарушение инвариантов
    """
    if key not in CURRENT_VERSIONS:
        raise MigrationError(f"Unknown record key: {key}")

    target = CURRENT_VERSIONS[key]
    version = record.get("schema_version")
    if not isinstance(version, int) or version < 1 or version > target:
        raise MigrationError(
            f"Unsupported {key} schema version",
            expected=target,
            actual=version,
        )
    if version == target:
        return record

    migrated = copy.deepcopy(record)
    while version < target:
        step = MIGRATIONS.get((key, version))
        if step is None:
            raise MigrationError(
                f"No migration for {key} from version {version}", actual=version
            )
        migrated = step(migrated)
        logger.info("Migrated %s record: v%d -> v%d", key, version, version + 1)
        version = migrated["schema_version"]

    return migrated
