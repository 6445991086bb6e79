"""Fee schedule and the pure fee formulas.

All results are share amounts, floored. A denominator of 0 means "unset" and
falls back to the default (1000).
"""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel

from liquidity_fund.core.constants import DEFAULT_FEE_DENOMINATOR, SECONDS_PER_YEAR
from liquidity_fund.core.errors import InvalidRatioError


class FeeKind(IntEnum):
    ENTRY = 0
    EXIT = 1
    MANAGEMENT = 2
    PERFORMANCE = 3


class FeeSetting(BaseModel):
    ratio: int = 0
    denominator: int = 0
    last_timestamp: int = 0

    def effective_denominator(self, default: int = DEFAULT_FEE_DENOMINATOR) -> int:
        return self.denominator or default


def validate_fee(
    ratio: int, denominator: int, *, default: int = DEFAULT_FEE_DENOMINATOR
) -> None:
    if ratio < 0 or denominator < 0:
        raise InvalidRatioError("ratio and denominator must be non-negative")
    effective = denominator or default
    if ratio > effective:
        raise InvalidRatioError(f"ratio {ratio} > denominator {effective}")


def ratio_fee(
    setting: FeeSetting, amount: int, *, default: int = DEFAULT_FEE_DENOMINATOR
) -> int:
    """Entry/exit fee on a gross share amount."""
    if setting.ratio == 0 or amount <= 0:
        return 0
    return amount * setting.ratio // setting.effective_denominator(default)


def management_fee(
    setting: FeeSetting,
    total_supply: int,
    now: int,
    *,
    default: int = DEFAULT_FEE_DENOMINATOR,
) -> int:
    """Time-proportional fee on the whole supply since ``setting.last_timestamp``."""
    if setting.last_timestamp == 0 or setting.ratio == 0 or total_supply <= 0:
        return 0
    elapsed = now - setting.last_timestamp
    if elapsed <= 0:
        return 0
    return (total_supply * elapsed * setting.ratio) // (
        setting.effective_denominator(default) * SECONDS_PER_YEAR
    )


def performance_fee(
    setting: FeeSetting,
    balance: int,
    old_net: int,
    new_net: int,
    *,
    default: int = DEFAULT_FEE_DENOMINATOR,
) -> int:
    """Share-denominated cut of the per-share gain from ``old_net`` to ``new_net``."""
    if new_net <= 0 or new_net <= old_net or setting.ratio == 0 or balance <= 0:
        return 0
    gross = (new_net - old_net) * balance * setting.ratio // setting.effective_denominator(
        default
    )
    return gross // new_net
