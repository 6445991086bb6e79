from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class Custody(StrEnum):
    SELF = "self"
    STAKED = "staked"


class Position(BaseModel):
    token_id: int
    pool: str
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int = 0
    custody: Custody = Custody.SELF
    custodian: str | None = None

    @property
    def key(self) -> tuple[str, int, int]:
        return position_key(self.pool, self.tick_lower, self.tick_upper)

    def holds(self, token: str) -> bool:
        t = token.lower()
        return self.token0.lower() == t or self.token1.lower() == t


class IncentiveRecord(BaseModel):
    reward_token: str
    pool: str
    start_time: int
    end_time: int
    reward: int


class ManagerState(BaseModel):
    io_token: str | None = None
    fund: str | None = None
    underlyings: list[str] = []
    # token_id -> Position, in opening order
    positions: dict[int, Position] = {}
    incentives: list[IncentiveRecord] = []


def position_key(pool: str, tick_lower: int, tick_upper: int) -> tuple[str, int, int]:
    return pool.lower(), int(tick_lower), int(tick_upper)
