"""
Liquidity Accounting — LP shares ↔ доли резервов.
"""

from pcl_pool.liquidity.accounting import (
    MINIMUM_LIQUIDITY,
    MintResult,
    check_min_assets,
    share_in_assets,
    shares_to_burn,
    shares_to_mint,
)

__all__ = [
    "MINIMUM_LIQUIDITY",
    "MintResult",
    "check_min_assets",
    "share_in_assets",
    "shares_to_burn",
    "shares_to_mint",
]
