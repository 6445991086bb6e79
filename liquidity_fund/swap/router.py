from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address, to_hex
from hexbytes import HexBytes
from pydantic import BaseModel

from liquidity_fund.adapters.uniswap_v3_adapter.adapter import UniswapV3Periphery
from liquidity_fund.core.access import GovIdentity
from liquidity_fund.core.components import BaseComponent
from liquidity_fund.core.constants import COMPONENT_ROUTER
from liquidity_fund.core.errors import (
    InvalidAmountError,
    PoolNotFoundError,
    RouteNotSetError,
    SlippageError,
)
from liquidity_fund.core.events import Swap, SwapRouteSet
from liquidity_fund.core.transaction import TransactionManager
from liquidity_fund.core.utils.path import decode_path, path_bytes, reverse_path


class RouterState(BaseModel):
    # "tokenIn:tokenOut" -> 0x-prefixed packed path
    routes: dict[str, str] = {}


def _route_key(token_in: str, token_out: str) -> str:
    return f"{to_checksum_address(token_in)}:{to_checksum_address(token_out)}"


class SwapRouter(BaseComponent):
    """Directional route table plus exact-in/exact-out swaps along stored routes.

    Swaps are paid from and, unless told otherwise, delivered to ``owner``.
    Authorization belongs to the owning component; the router only guarantees
    that every settlement is atomic and audited.
    """

    component_type = COMPONENT_ROUTER
    policy_name = "SwapRouter"

    def __init__(
        self,
        amm: UniswapV3Periphery,
        *,
        owner: str,
        identity: GovIdentity,
        tx: TransactionManager,
        config: dict[str, Any] | None = None,
    ):
        super().__init__(
            "swap_router", address=owner, identity=identity, tx=tx, config=config
        )
        self.amm = amm
        self.state = RouterState()

    def set_route(self, path: bytes | str) -> tuple[str, str]:
        raw = path_bytes(path)
        tokens, fees = decode_path(raw)
        for i, fee in enumerate(fees):
            if self.amm.get_pool(tokens[i], tokens[i + 1], fee) is None:
                raise PoolNotFoundError(
                    f"no pool for hop {tokens[i]} -> {tokens[i + 1]} (fee {fee})"
                )
        token_in, token_out = tokens[0], tokens[-1]
        with self.tx.atomic("SwapRouter.set_route"):
            self.state.routes[_route_key(token_in, token_out)] = to_hex(raw)
            self.tx.emit(
                SwapRouteSet(
                    emitter=self.policy_name,
                    token_in=token_in,
                    token_out=token_out,
                    path=to_hex(raw),
                )
            )
        return token_in, token_out

    def has_route(self, token_in: str, token_out: str) -> bool:
        return _route_key(token_in, token_out) in self.state.routes

    def swap_route(self, token_in: str, token_out: str) -> bytes:
        encoded = self.state.routes.get(_route_key(token_in, token_out))
        if encoded is None:
            raise RouteNotSetError(f"no route {token_in} -> {token_out}")
        return bytes(HexBytes(encoded))

    def routes(self) -> dict[tuple[str, str], bytes]:
        out: dict[tuple[str, str], bytes] = {}
        for key, encoded in self.state.routes.items():
            token_in, token_out = key.split(":")
            out[(token_in, token_out)] = bytes(HexBytes(encoded))
        return out

    def estimate_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        if amount_in <= 0:
            return 0
        if to_checksum_address(token_in) == to_checksum_address(token_out):
            return int(amount_in)
        return self.amm.quote_exact_input(self.swap_route(token_in, token_out), amount_in)

    def estimate_amount_in(self, token_in: str, token_out: str, amount_out: int) -> int:
        if amount_out <= 0:
            return 0
        if to_checksum_address(token_in) == to_checksum_address(token_out):
            return int(amount_out)
        path = reverse_path(self.swap_route(token_in, token_out))
        return self.amm.quote_exact_output(path, amount_out)

    def exact_input(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        recipient: str,
        min_out: int = 0,
    ) -> int:
        if amount_in <= 0:
            raise InvalidAmountError("amount_in must be positive")
        path = self.swap_route(token_in, token_out)
        with self.tx.atomic("SwapRouter.exact_input"):
            amount_out = self.amm.exact_input(
                path, recipient, amount_in, min_out, payer=self.address
            )
            if amount_out < min_out:
                raise SlippageError(f"received {amount_out} < minimum {min_out}")
            self._emit_swap(token_in, token_out, amount_in, amount_out)
        return amount_out

    def exact_output(
        self,
        token_in: str,
        token_out: str,
        amount_out: int,
        recipient: str,
        max_in: int,
    ) -> int:
        if amount_out <= 0:
            raise InvalidAmountError("amount_out must be positive")
        path = reverse_path(self.swap_route(token_in, token_out))
        with self.tx.atomic("SwapRouter.exact_output"):
            amount_in = self.amm.exact_output(
                path, recipient, amount_out, max_in, payer=self.address
            )
            if amount_in > max_in:
                raise SlippageError(f"spent {amount_in} > maximum {max_in}")
            self._emit_swap(token_in, token_out, amount_in, amount_out)
        return amount_in

    def _emit_swap(
        self, token_in: str, token_out: str, amount_in: int, amount_out: int
    ) -> None:
        self.logger.info(
            f"Swap {amount_in} {token_in} -> {amount_out} {token_out}"
        )
        self.tx.emit(
            Swap(
                emitter=self.policy_name,
                token_in=to_checksum_address(token_in),
                token_out=to_checksum_address(token_out),
                amount_in=amount_in,
                amount_out=amount_out,
            )
        )
