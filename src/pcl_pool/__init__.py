"""
pcl-pool — two-asset concentrated-liquidity pool

Curve invariant, liquidity-share accounting and settlement state machine,
settled against a host chain's native bank and token-issuance modules.
"""

__version__ = "0.1.0"
