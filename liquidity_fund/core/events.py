"""Typed audit records and the append-only log they are committed to."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter


class EventBase(BaseModel):
    # Stamped by the transaction manager when the event is emitted.
    emitter: str = "unknown"
    operation: str | None = None
    timestamp: int = 0


class Bound(EventBase):
    type: Literal["Bound"] = "Bound"
    reserve_asset: str
    counterparty: str


class CapChanged(EventBase):
    type: Literal["CapChanged"] = "CapChanged"
    setter: str
    old_cap: int
    new_cap: int


class FeeChanged(EventBase):
    type: Literal["FeeChanged"] = "FeeChanged"
    setter: str
    kind: int
    old_ratio: int
    old_denominator: int
    new_ratio: int
    new_denominator: int


class FeeCharged(EventBase):
    type: Literal["FeeCharged"] = "FeeCharged"
    kind: int
    payer: str
    recipient: str
    shares: int


class PoolJoined(EventBase):
    type: Literal["PoolJoined"] = "PoolJoined"
    investor: str
    amount: int
    shares: int


class PoolExited(EventBase):
    type: Literal["PoolExited"] = "PoolExited"
    investor: str
    shares: int
    amount: int


class SwapRouteSet(EventBase):
    type: Literal["SwapRouteSet"] = "SwapRouteSet"
    token_in: str
    token_out: str
    path: str


class Swap(EventBase):
    type: Literal["Swap"] = "Swap"
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int


class Mint(EventBase):
    type: Literal["Mint"] = "Mint"
    token_id: int
    pool: str
    tick_lower: int
    tick_upper: int
    liquidity: int
    amount0: int
    amount1: int


class IncreaseLiquidity(EventBase):
    type: Literal["IncreaseLiquidity"] = "IncreaseLiquidity"
    token_id: int
    liquidity: int
    amount0: int
    amount1: int


class DecreaseLiquidity(EventBase):
    type: Literal["DecreaseLiquidity"] = "DecreaseLiquidity"
    token_id: int
    liquidity: int
    amount0: int
    amount1: int


class Collect(EventBase):
    type: Literal["Collect"] = "Collect"
    token_id: int
    recipient: str
    amount0: int
    amount1: int


class Burn(EventBase):
    type: Literal["Burn"] = "Burn"
    token_id: int


class UnderlyingsChanged(EventBase):
    type: Literal["UnderlyingsChanged"] = "UnderlyingsChanged"
    added: list[str] = []
    removed: list[str] = []


class Withdrawn(EventBase):
    type: Literal["Withdrawn"] = "Withdrawn"
    recipient: str
    amount: int
    scale: int
    in_kind: bool = False


class IncentiveCreated(EventBase):
    type: Literal["IncentiveCreated"] = "IncentiveCreated"
    reward_token: str
    pool: str
    start_time: int
    end_time: int
    reward: int


class IncentiveEnded(EventBase):
    type: Literal["IncentiveEnded"] = "IncentiveEnded"
    reward_token: str
    pool: str
    refund: int


class Staker(EventBase):
    type: Literal["Staker"] = "Staker"
    token_id: int
    program: str
    staked: bool = False


class UnStaker(EventBase):
    type: Literal["UnStaker"] = "UnStaker"
    token_id: int
    program: str
    withdrawn: bool = False


class RewardClaimed(EventBase):
    type: Literal["RewardClaimed"] = "RewardClaimed"
    reward_token: str
    amount: int


FundEvent = (
    Bound
    | CapChanged
    | FeeChanged
    | FeeCharged
    | PoolJoined
    | PoolExited
    | SwapRouteSet
    | Swap
    | Mint
    | IncreaseLiquidity
    | DecreaseLiquidity
    | Collect
    | Burn
    | UnderlyingsChanged
    | Withdrawn
    | IncentiveCreated
    | IncentiveEnded
    | Staker
    | UnStaker
    | RewardClaimed
)

EVENT_ADAPTER: TypeAdapter[FundEvent] = TypeAdapter(
    Annotated[FundEvent, Field(discriminator="type")]
)


def parse_event(payload: dict) -> FundEvent:
    return EVENT_ADAPTER.validate_python(payload)


class EventLog:
    """Append-only record of committed events.

    Subscribers are notified after each commit, in commit order. The log is
    never read back by the engine itself.
    """

    def __init__(self) -> None:
        self._records: list[FundEvent] = []
        self._subscribers: list[Callable[[FundEvent], None]] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[FundEvent]:
        return iter(tuple(self._records))

    @property
    def records(self) -> tuple[FundEvent, ...]:
        return tuple(self._records)

    def of_type[E: EventBase](self, event_type: type[E]) -> list[E]:
        return [r for r in self._records if isinstance(r, event_type)]

    def subscribe(self, callback: Callable[[FundEvent], None]) -> None:
        self._subscribers.append(callback)

    def extend(self, events: list[FundEvent]) -> None:
        self._records.extend(events)
        for event in events:
            for callback in self._subscribers:
                callback(event)
