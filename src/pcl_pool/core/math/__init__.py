"""
Core math modules для pcl-pool

Decimal-примитивы, solver инварианта и математика свапа.
"""

# Numerical Safeguards
from pcl_pool.core.math.numerical_safeguards import (
    # Decimal context / constants
    INVARIANT_TOLERANCE,
    LP_TOKEN_PRECISION,
    MATH_CONTEXT,
    MIN_TRADE_SIZE,
    SOLVER_EPS,
    SOLVER_MAX_ITERATIONS,
    # Rounding policy
    ceil_to_units,
    floor_to_units,
    mul_div_ceil,
    mul_div_floor,
    to_decimal,
    # Utilities
    abs_diff,
    clamp,
    is_close,
    safe_divide,
    saturating_sub,
    sqrt,
)

# Curve Invariant
from pcl_pool.core.math.curve_invariant import (
    DEFAULT_SOLVER_CONFIG,
    SolverConfig,
    calc_d,
    calc_y,
    get_xcp,
    invariant_residual,
)

# Swap Math
from pcl_pool.core.math.swap_math import (
    DEFAULT_SLIPPAGE,
    MAX_ALLOWED_SLIPPAGE,
    SwapComputation,
    assert_max_spread,
    assert_slippage_tolerance,
    before_swap_check,
    compute_offer_amount,
    compute_swap,
    dynamic_fee,
    provide_fee,
)

__all__ = [
    # Numerical Safeguards: constants
    "INVARIANT_TOLERANCE",
    "LP_TOKEN_PRECISION",
    "MATH_CONTEXT",
    "MIN_TRADE_SIZE",
    "SOLVER_EPS",
    "SOLVER_MAX_ITERATIONS",
    # Numerical Safeguards: rounding policy
    "ceil_to_units",
    "floor_to_units",
    "mul_div_ceil",
    "mul_div_floor",
    "to_decimal",
    # Numerical Safeguards: utilities
    "abs_diff",
    "clamp",
    "is_close",
    "safe_divide",
    "saturating_sub",
    "sqrt",
    # Curve Invariant
    "DEFAULT_SOLVER_CONFIG",
    "SolverConfig",
    "calc_d",
    "calc_y",
    "get_xcp",
    "invariant_residual",
    # Swap Math
    "DEFAULT_SLIPPAGE",
    "MAX_ALLOWED_SLIPPAGE",
    "SwapComputation",
    "assert_max_spread",
    "assert_slippage_tolerance",
    "before_swap_check",
    "compute_offer_amount",
    "compute_swap",
    "dynamic_fee",
    "provide_fee",
]
