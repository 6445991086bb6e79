"""Surface of the external liquidity-mining (Uniswap V3 staker) program."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from eth_utils import to_checksum_address


@dataclass(frozen=True)
class IncentiveKey:
    reward_token: str
    pool: str
    start_time: int
    end_time: int
    refundee: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "reward_token", to_checksum_address(self.reward_token))
        object.__setattr__(self, "pool", to_checksum_address(self.pool))
        object.__setattr__(self, "refundee", to_checksum_address(self.refundee))


class IncentiveProgram(ABC):
    address: str

    @abstractmethod
    def create_incentive(self, key: IncentiveKey, reward: int, *, sender: str) -> None:
        pass

    @abstractmethod
    def end_incentive(self, key: IncentiveKey, *, sender: str) -> int:
        """Refund the unclaimed reward to ``key.refundee``; returns the refund."""

    @abstractmethod
    def deposit_token(self, token_id: int, *, sender: str) -> None:
        """Take custody of the position NFT from ``sender``."""

    @abstractmethod
    def withdraw_token(self, token_id: int, to: str, *, sender: str) -> None:
        pass

    @abstractmethod
    def stake_token(self, key: IncentiveKey, token_id: int, *, sender: str) -> None:
        pass

    @abstractmethod
    def unstake_token(self, key: IncentiveKey, token_id: int, *, sender: str) -> None:
        pass

    @abstractmethod
    def claim_reward(
        self, reward_token: str, to: str, amount_requested: int, *, sender: str
    ) -> int:
        """Pay out up to ``amount_requested`` (0 means everything owed)."""

    @abstractmethod
    def deposits(self, token_id: int) -> tuple[str | None, int]:
        """``(owner, number_of_stakes)`` for a deposited position."""

    @abstractmethod
    def rewards(self, reward_token: str, owner: str) -> int:
        pass
