"""Surface of the external Uniswap V3 deployment the position manager drives.

The position manager and swap router only ever talk to these methods: the
factory (``get_pool``), pool state (``slot0``/``pool_key``), the swap router
and quoter, and the nonfungible position manager (``mint`` ... ``burn``,
``positions``, NFT custody). The AMM's own swap and liquidity math lives behind
this boundary. ``liquidity_fund.testing.mock_uniswap`` ships an in-memory
implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from liquidity_fund.core.constants import TICK_SPACING
from liquidity_fund.core.utils.uniswap_v3_math import PositionData


@dataclass(frozen=True)
class MintParams:
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    amount0_desired: int
    amount1_desired: int
    amount0_min: int
    amount1_min: int
    recipient: str


def tick_spacing_for_fee(fee: int) -> int:
    spacing = TICK_SPACING.get(int(fee))
    if spacing is None:
        raise ValueError(f"Unknown fee tier {fee}; expected one of {list(TICK_SPACING)}")
    return int(spacing)


class UniswapV3Periphery(ABC):
    router_address: str
    npm_address: str

    # factory / pool
    @abstractmethod
    def get_pool(self, token_a: str, token_b: str, fee: int) -> str | None:
        pass

    @abstractmethod
    def slot0(self, pool: str) -> tuple[int, int]:
        """``(sqrt_price_x96, tick)`` of the pool."""

    @abstractmethod
    def pool_key(self, pool: str) -> tuple[str, str, int]:
        """``(token0, token1, fee)`` of the pool."""

    # swap router / quoter
    @abstractmethod
    def exact_input(
        self,
        path: bytes,
        recipient: str,
        amount_in: int,
        amount_out_minimum: int,
        *,
        payer: str,
    ) -> int:
        pass

    @abstractmethod
    def exact_output(
        self,
        path: bytes,
        recipient: str,
        amount_out: int,
        amount_in_maximum: int,
        *,
        payer: str,
    ) -> int:
        """Swap for exactly ``amount_out``; ``path`` is encoded output-token first."""

    @abstractmethod
    def quote_exact_input(self, path: bytes, amount_in: int) -> int:
        pass

    @abstractmethod
    def quote_exact_output(self, path: bytes, amount_out: int) -> int:
        """Input needed for ``amount_out``; ``path`` is encoded output-token first."""

    # nonfungible position manager
    @abstractmethod
    def mint(self, params: MintParams, *, payer: str) -> tuple[int, int, int, int]:
        """Returns ``(token_id, liquidity, amount0, amount1)``."""

    @abstractmethod
    def increase_liquidity(
        self,
        token_id: int,
        amount0_desired: int,
        amount1_desired: int,
        amount0_min: int,
        amount1_min: int,
        *,
        payer: str,
    ) -> tuple[int, int, int]:
        """Returns ``(liquidity_added, amount0, amount1)``."""

    @abstractmethod
    def decrease_liquidity(
        self,
        token_id: int,
        liquidity: int,
        amount0_min: int,
        amount1_min: int,
        *,
        sender: str,
    ) -> tuple[int, int]:
        pass

    @abstractmethod
    def collect(
        self,
        token_id: int,
        recipient: str,
        amount0_max: int,
        amount1_max: int,
        *,
        sender: str,
    ) -> tuple[int, int]:
        pass

    @abstractmethod
    def burn(self, token_id: int, *, sender: str) -> None:
        pass

    @abstractmethod
    def positions(self, token_id: int) -> PositionData:
        pass

    @abstractmethod
    def owner_of(self, token_id: int) -> str:
        pass

    @abstractmethod
    def transfer_position(
        self, token_id: int, from_: str, to: str, *, sender: str
    ) -> None:
        pass
