MANTISSA = 10**18
# Julian year, matching the management-fee accrual basis.
SECONDS_PER_YEAR = 31_557_600
MAX_UINT24 = 2**24 - 1
MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1

DEFAULT_FEE_DENOMINATOR = 1000
DEFAULT_SLIPPAGE_BPS = 50

# Packed route layout: token (20 bytes) || fee (3 bytes) || token ...
ADDR_SIZE = 20
FEE_SIZE = 3
NEXT_OFFSET = ADDR_SIZE + FEE_SIZE

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

COMPONENT_FUND = "FUND"
COMPONENT_LIQUIDITY = "UNIV3_LIQUIDITY"
COMPONENT_ROUTER = "SWAP_ROUTER"

# fee tier -> tick spacing
TICK_SPACING = {100: 1, 500: 10, 3000: 60, 10000: 200}
MIN_TICK = -887272
MAX_TICK = 887272

STATE_NAMESPACE = "state"
