"""Uniswap v3 math helpers.

Pure integer math (tick/sqrt-price/liquidity conversions) used to value and size
concentrated-liquidity positions. Float helpers (``price_to_tick``,
``tick_to_price``, ``ticks_for_range``) exist only for choosing ranges and never
feed accounting.
"""

from __future__ import annotations

import math
from typing import TypedDict

from liquidity_fund.core.constants import MAX_TICK, MAX_UINT128, MIN_TICK
from liquidity_fund.core.errors import ArithmeticOverflowError

Q96 = 1 << 96
Q192 = 1 << 192
Q32 = 1 << 32
TICK_BASE = 1.0001

__all__ = [
    "MAX_UINT128",
    "PositionData",
    "Q96",
    "Q192",
    "amounts_for_liquidity",
    "checked_uint",
    "liquidity_for_amounts",
    "mul_div",
    "mul_div_rounding_up",
    "price_to_tick",
    "round_tick_to_spacing",
    "round_tick_up",
    "slippage_min",
    "sqrt_price_x96_from_tick",
    "tick_to_price",
    "ticks_for_range",
]


class PositionData(TypedDict):
    nonce: int
    operator: str
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int


def checked_uint(value: int, bits: int = 256) -> int:
    if value < 0 or value >= 1 << bits:
        raise ArithmeticOverflowError(f"value {value} does not fit in uint{bits}")
    return value


def mul_div(a: int, b: int, denominator: int) -> int:
    if denominator == 0:
        raise ZeroDivisionError("mul_div: zero denominator")
    return (a * b) // denominator


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    if denominator == 0:
        raise ZeroDivisionError("mul_div_rounding_up: zero denominator")
    return -((-(a * b)) // denominator)


def price_to_tick(price: float) -> int:
    return math.floor(math.log(price, TICK_BASE))


def tick_to_price(tick: int) -> float:
    return TICK_BASE**tick


def round_tick_to_spacing(tick: int, spacing: int) -> int:
    if spacing <= 0:
        return tick
    return tick - (tick % spacing)


def round_tick_up(tick: int, spacing: int) -> int:
    if spacing <= 0:
        return tick
    remainder = tick % spacing
    if remainder == 0:
        return tick
    return tick + (spacing - remainder)


def ticks_for_range(current_tick: int, bps: int, spacing: int) -> tuple[int, int]:
    delta = math.floor(math.log(1 + bps / 10_000, TICK_BASE))
    tick_lower = round_tick_to_spacing(current_tick - delta, spacing)
    tick_upper = round_tick_up(current_tick + delta, spacing)
    return tick_lower, tick_upper


def sqrt_price_x96_from_tick(
    tick: int, *, min_tick: int = MIN_TICK, max_tick: int = MAX_TICK
) -> int:
    if tick < min_tick or tick > max_tick:
        raise ValueError(f"tick {tick} out of range [{min_tick}, {max_tick}]")

    abs_tick = tick if tick >= 0 else -tick
    ratio = 0x100000000000000000000000000000000

    if abs_tick & 0x1:
        ratio = (ratio * 0xFFFCB933BD6FAD37AA2D162D1A594001) >> 128
    if abs_tick & 0x2:
        ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

    if tick > 0:
        ratio = (1 << 256) // ratio

    sqrt_price_x96 = ratio >> 32
    if ratio & (Q32 - 1):
        sqrt_price_x96 += 1
    return int(sqrt_price_x96)


def _sorted_bounds(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    return (sqrt_a, sqrt_b) if sqrt_a <= sqrt_b else (sqrt_b, sqrt_a)


def amount0_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if a == 0:
        return 0
    return mul_div(liquidity << 96, b - a, b) // a


def amount1_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    return mul_div(liquidity, b - a, Q96)


def liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if b == a:
        return 0
    intermediate = mul_div(a, b, Q96)
    return mul_div(amount0, intermediate, b - a)


def liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if b == a:
        return 0
    return mul_div(amount1, Q96, b - a)


def liquidity_for_amounts(
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
    amount0: int,
    amount1: int,
) -> int:
    """Largest liquidity the given amounts can back in ``[tick_lower, tick_upper)``.

    Below the range only token0 counts, above it only token1, otherwise the
    smaller of the two constraints.
    """
    sqrt_a = sqrt_price_x96_from_tick(tick_lower)
    sqrt_b = sqrt_price_x96_from_tick(tick_upper)
    if sqrt_price_x96 <= sqrt_a:
        return liquidity_for_amount0(sqrt_a, sqrt_b, amount0)
    if sqrt_price_x96 >= sqrt_b:
        return liquidity_for_amount1(sqrt_a, sqrt_b, amount1)
    liq0 = liquidity_for_amount0(sqrt_price_x96, sqrt_b, amount0)
    liq1 = liquidity_for_amount1(sqrt_a, sqrt_price_x96, amount1)
    return min(liq0, liq1)


def amounts_for_liquidity(
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
    liquidity: int,
) -> tuple[int, int]:
    """Token amounts (rounded down) represented by ``liquidity`` at the given price."""
    sqrt_a = sqrt_price_x96_from_tick(tick_lower)
    sqrt_b = sqrt_price_x96_from_tick(tick_upper)
    if sqrt_price_x96 <= sqrt_a:
        return amount0_for_liquidity(sqrt_a, sqrt_b, liquidity), 0
    if sqrt_price_x96 >= sqrt_b:
        return 0, amount1_for_liquidity(sqrt_a, sqrt_b, liquidity)
    return (
        amount0_for_liquidity(sqrt_price_x96, sqrt_b, liquidity),
        amount1_for_liquidity(sqrt_a, sqrt_price_x96, liquidity),
    )


def slippage_min(amount: int, slippage_bps: int) -> int:
    bps = max(0, min(10_000, int(slippage_bps)))
    return max(0, (int(amount) * (10_000 - bps)) // 10_000)
