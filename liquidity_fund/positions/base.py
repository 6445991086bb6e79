from __future__ import annotations

from abc import ABC, abstractmethod


class AssetManager(ABC):
    """What the fund needs from whoever holds its capital."""

    address: str

    @abstractmethod
    def assets(self) -> int:
        """Total holdings valued in the reserve asset."""

    @abstractmethod
    def withdraw(self, to: str, amount: int, scale: int, *, sender: str) -> int:
        """Pay ``amount`` of the reserve asset to ``to``.

        ``scale`` is the fund fraction being redeemed, 1e18-scaled.
        """

    @abstractmethod
    def withdraw_of_underlying(
        self, to: str, scale: int, *, sender: str
    ) -> dict[str, int]:
        """Pay ``scale`` (1e18-scaled) of every holding to ``to`` in kind."""
