"""All-or-nothing units of work over every registered participant.

A participant is anything holding mutable state that an operation may touch:
the fund, the position manager, and the token/AMM/staking substrates. The
outermost ``atomic`` block snapshots all of them, fixes the transaction
timestamp and buffers emitted events; an exception restores every snapshot and
drops the buffer, a clean exit persists state (when a store is attached) and
publishes the events.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger

from liquidity_fund.core.events import EventLog, FundEvent
from liquidity_fund.core.state_store import StateStore


class Participant(ABC):
    """Component state the transaction manager snapshots and restores.

    ``snapshot``/``restore`` are required. Persistence is opt-in: a participant
    that sets ``state_key`` must also override ``dump_state`` and
    ``load_state``, which are then called on every commit and by
    ``TransactionManager.load_from_store``. Participants without a key are
    never asked for them.
    """

    state_key: str | None = None

    @abstractmethod
    def snapshot(self) -> Any:
        pass

    @abstractmethod
    def restore(self, snapshot: Any) -> None:
        pass

    def dump_state(self) -> dict[str, Any]:
        raise NotImplementedError

    def load_state(self, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class TransactionManager:
    def __init__(
        self,
        *,
        clock: Callable[[], int] | None = None,
        events: EventLog | None = None,
        store: StateStore | None = None,
    ) -> None:
        self.clock = clock or (lambda: int(time.time()))
        self.events = events or EventLog()
        self.store = store
        self.logger = logger.bind(component=self.__class__.__name__)
        self._participants: list[Participant] = []
        self._lock = threading.RLock()
        self._depth = 0
        self._now: int | None = None
        self._operation: str | None = None
        self._pending: list[FundEvent] = []

    def register(self, participant: Participant) -> None:
        if self._depth:
            raise RuntimeError("cannot register participants inside a transaction")
        if participant not in self._participants:
            self._participants.append(participant)

    @property
    def participants(self) -> tuple[Participant, ...]:
        return tuple(self._participants)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def operation(self) -> str | None:
        return self._operation

    def now(self) -> int:
        if self._now is not None:
            return self._now
        return int(self.clock())

    def emit(self, event: FundEvent) -> None:
        if not self._depth:
            raise RuntimeError("events can only be emitted inside a transaction")
        self._pending.append(
            event.model_copy(
                update={"operation": self._operation, "timestamp": self._now}
            )
        )

    @contextmanager
    def atomic(self, operation: str) -> Iterator[TransactionManager]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshots = [(p, p.snapshot()) for p in self._participants]
            self._depth = 1
            self._now = int(self.clock())
            self._operation = operation
            self._pending = []
            try:
                yield self
                committed = self._commit()
            except BaseException as exc:
                for participant, snap in reversed(snapshots):
                    participant.restore(snap)
                self.logger.warning(f"Rolled back {operation}: {exc!r}")
                raise
            finally:
                self._depth = 0
                self._now = None
                self._operation = None
                self._pending = []
            # Subscribers only ever see committed events.
            self.events.extend(committed)

    def _commit(self) -> list[FundEvent]:
        pending = list(self._pending)
        if self.store is not None:
            states = {
                p.state_key: p.dump_state()
                for p in self._participants
                if p.state_key is not None
            }
            self.store.commit(states=states, events=pending)
        self.logger.debug(f"Committed {self._operation} ({len(pending)} events)")
        return pending

    def load_from_store(self) -> list[str]:
        """Load persisted state into every registered participant that has some."""
        if self.store is None:
            return []
        loaded: list[str] = []
        for participant in self._participants:
            if participant.state_key is None:
                continue
            payload = self.store.load_state(participant.state_key)
            if payload is None:
                continue
            participant.load_state(payload)
            loaded.append(participant.state_key)
        return loaded
