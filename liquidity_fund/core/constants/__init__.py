from liquidity_fund.core.constants.base import (
    ADDR_SIZE,
    COMPONENT_FUND,
    COMPONENT_LIQUIDITY,
    COMPONENT_ROUTER,
    DEFAULT_FEE_DENOMINATOR,
    DEFAULT_SLIPPAGE_BPS,
    FEE_SIZE,
    MANTISSA,
    MAX_TICK,
    MAX_UINT24,
    MAX_UINT128,
    MAX_UINT256,
    MIN_TICK,
    NEXT_OFFSET,
    SECONDS_PER_YEAR,
    STATE_NAMESPACE,
    TICK_SPACING,
    ZERO_ADDRESS,
)

__all__ = [
    "ADDR_SIZE",
    "COMPONENT_FUND",
    "COMPONENT_LIQUIDITY",
    "COMPONENT_ROUTER",
    "DEFAULT_FEE_DENOMINATOR",
    "DEFAULT_SLIPPAGE_BPS",
    "FEE_SIZE",
    "MANTISSA",
    "MAX_TICK",
    "MAX_UINT24",
    "MAX_UINT128",
    "MAX_UINT256",
    "MIN_TICK",
    "NEXT_OFFSET",
    "SECONDS_PER_YEAR",
    "STATE_NAMESPACE",
    "TICK_SPACING",
    "ZERO_ADDRESS",
]
