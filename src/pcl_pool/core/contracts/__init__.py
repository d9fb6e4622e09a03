"""
Contract Validation Module

Валидация входящих сообщений и persisted records пула (JSON Schema).
"""

from .validators import (
    ConfigRecordValidator,
    ContractValidator,
    ExecuteMsgValidator,
    InstantiateMsgValidator,
    PoolStateRecordValidator,
    QueryMsgValidator,
    SchemaLoader,
    SudoMsgValidator,
    validate_config_record,
    validate_execute_msg,
    validate_instantiate_msg,
    validate_pool_state_record,
    validate_query_msg,
    validate_sudo_msg,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "InstantiateMsgValidator",
    "ExecuteMsgValidator",
    "QueryMsgValidator",
    "SudoMsgValidator",
    "ConfigRecordValidator",
    "PoolStateRecordValidator",
    # Functions
    "validate_instantiate_msg",
    "validate_execute_msg",
    "validate_query_msg",
    "validate_sudo_msg",
    "validate_config_record",
    "validate_pool_state_record",
]
