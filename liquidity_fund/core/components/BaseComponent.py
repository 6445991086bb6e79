from __future__ import annotations

import copy
from abc import ABC
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger

from liquidity_fund.core.access import GovIdentity
from liquidity_fund.core.transaction import Participant, TransactionManager


class BaseComponent(Participant, ABC):
    component_type: str | None = None

    def __init__(
        self,
        name: str,
        *,
        address: str,
        identity: GovIdentity,
        tx: TransactionManager,
        config: dict[str, Any] | None = None,
    ):
        self.name = name
        self.address = to_checksum_address(address)
        self.identity = identity
        self.tx = tx
        self.config = config or {}
        self.logger = logger.bind(component=self.__class__.__name__)
        self.state_key = f"{self.component_type or self.__class__.__name__}:{self.address}"
        tx.register(self)

    # Subclasses keep all mutable state on ``self.state`` (a pydantic model).
    def snapshot(self) -> Any:
        return self.state.model_copy(deep=True)

    def restore(self, snapshot: Any) -> None:
        self.state = snapshot

    def dump_state(self) -> dict[str, Any]:
        return self.state.model_dump(mode="json")

    def load_state(self, payload: dict[str, Any]) -> None:
        self.state = type(self.state).model_validate(copy.deepcopy(payload))
