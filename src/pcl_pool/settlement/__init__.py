"""
Settlement — оркестрация операций пула.

Settlement State Machine (provide / withdraw / swap / sudo hooks),
price oracle + repeg, circuit breaker, передача ownership.
"""

from pcl_pool.settlement.circuit_breaker import BREAKER_KEY, CircuitBreaker
from pcl_pool.settlement.ownership import (
    MAX_PROPOSAL_TTL,
    OWNERSHIP_PROPOSAL_KEY,
    OwnershipProposal,
    OwnershipTransfer,
)
from pcl_pool.settlement.price_oracle import (
    accumulate_prices,
    observe,
    record_observation,
    refresh_profit,
    repeg_price_scale,
    update_ema,
    update_price,
)
from pcl_pool.settlement.state_machine import (
    LP_SUBDENOM,
    MAX_AMP_GAMMA_CHANGE,
    MIN_AMP_CHANGING_TIME,
    SettlementPhase,
    SettlementStateMachine,
    SwapOutcome,
)

__all__ = [
    # Circuit breaker
    "BREAKER_KEY",
    "CircuitBreaker",
    # Ownership
    "MAX_PROPOSAL_TTL",
    "OWNERSHIP_PROPOSAL_KEY",
    "OwnershipProposal",
    "OwnershipTransfer",
    # Price oracle
    "accumulate_prices",
    "observe",
    "record_observation",
    "refresh_profit",
    "repeg_price_scale",
    "update_ema",
    "update_price",
    # State machine
    "LP_SUBDENOM",
    "MAX_AMP_GAMMA_CHANGE",
    "MIN_AMP_CHANGING_TIME",
    "SettlementPhase",
    "SettlementStateMachine",
    "SwapOutcome",
]
