"""Asset manager deploying the fund's reserve into Uniswap V3 positions.

Owns the open position set, the underlying-token whitelist and (through its
``SwapRouter``) the route table. Values everything in the io token and
liquidates positions pro rata when the fund pays out more than is idle.
"""

from __future__ import annotations

from collections import defaultdict
from types import ModuleType
from typing import Any

from eth_utils import to_checksum_address

from liquidity_fund.adapters.uniswap_v3_adapter.adapter import (
    MintParams,
    UniswapV3Periphery,
    tick_spacing_for_fee,
)
from liquidity_fund.core.access import GovIdentity
from liquidity_fund.core.components import BaseComponent, operation
from liquidity_fund.core.config import get_slippage_bps
from liquidity_fund.core.constants import (
    COMPONENT_LIQUIDITY,
    MANTISSA,
    MAX_TICK,
    MAX_UINT128,
    MAX_UINT256,
    MIN_TICK,
)
from liquidity_fund.core.errors import (
    AlreadyBoundError,
    CustodyError,
    InsufficientLiquidityError,
    InvalidAmountError,
    NonZeroBalanceError,
    NotWhitelistedError,
    PoolNotFoundError,
    SlippageError,
    ValidationError,
)
from liquidity_fund.core.events import (
    Bound,
    Burn,
    Collect,
    DecreaseLiquidity,
    IncreaseLiquidity,
    Mint,
    UnderlyingsChanged,
    Withdrawn,
)
from liquidity_fund.core.transaction import TransactionManager
from liquidity_fund.core.utils import uniswap_v3_math
from liquidity_fund.core.utils.tokens import TokenLedger
from liquidity_fund.positions.base import AssetManager
from liquidity_fund.positions.types import (
    Custody,
    ManagerState,
    Position,
    position_key,
)
from liquidity_fund.swap.router import SwapRouter


class UniV3Liquidity(BaseComponent, AssetManager):
    component_type = COMPONENT_LIQUIDITY
    policy_name = "UniV3Liquidity"

    def __init__(
        self,
        amm: UniswapV3Periphery,
        tokens: TokenLedger,
        *,
        address: str,
        identity: GovIdentity,
        tx: TransactionManager,
        math: ModuleType = uniswap_v3_math,
        config: dict[str, Any] | None = None,
    ):
        super().__init__(
            "univ3_liquidity", address=address, identity=identity, tx=tx, config=config
        )
        self.amm = amm
        self.tokens = tokens
        self.math = math
        self.router = SwapRouter(
            amm, owner=self.address, identity=identity, tx=tx, config=config
        )
        self.slippage_bps = int(self.config.get("slippage_bps", get_slippage_bps()))
        self.state = ManagerState()
        self._by_key: dict[tuple[str, int, int], int] = {}

    # ------------------------------------------------------------------ state

    def restore(self, snapshot: Any) -> None:
        super().restore(snapshot)
        self._reindex()

    def load_state(self, payload: dict[str, Any]) -> None:
        super().load_state(payload)
        self._reindex()

    def _reindex(self) -> None:
        self._by_key = {p.key: tid for tid, p in self.state.positions.items()}

    @property
    def fund_address(self) -> str | None:
        return self.state.fund

    @property
    def io_token(self) -> str | None:
        return self.state.io_token

    def underlyings(self) -> list[str]:
        return list(self.state.underlyings)

    def is_underlying(self, token: str) -> bool:
        return to_checksum_address(token) in self.state.underlyings

    def _require_underlying(self, *tokens: str) -> None:
        for token in tokens:
            if not self.is_underlying(token):
                raise NotWhitelistedError(f"{token} is not an underlying")

    def _require_bound(self) -> str:
        if self.state.io_token is None:
            raise ValidationError("manager is not bound to a fund")
        return self.state.io_token

    # ------------------------------------------------------------ governance

    @operation("bind")
    def bind(self, fund: str, io_token: str, *, sender: str) -> None:
        if self.state.fund is not None:
            raise AlreadyBoundError("already bind")
        fund = to_checksum_address(fund)
        io_token = to_checksum_address(io_token)
        self.state.fund = fund
        self.state.io_token = io_token
        if io_token not in self.state.underlyings:
            self.state.underlyings.insert(0, io_token)
        self.tx.emit(
            Bound(emitter=self.policy_name, reserve_asset=io_token, counterparty=fund)
        )

    @operation("safe_approve_all")
    def safe_approve_all(self, token: str, *, sender: str) -> None:
        for spender in (self.amm.router_address, self.amm.npm_address):
            self.tokens.approve(token, self.address, spender, MAX_UINT256)

    @operation("setting_swap_route")
    def setting_swap_route(self, path: bytes | str, *, sender: str) -> tuple[str, str]:
        return self.router.set_route(path)

    def swap_route(self, token_in: str, token_out: str) -> bytes:
        return self.router.swap_route(token_in, token_out)

    @operation("set_underlyings")
    def set_underlyings(self, tokens: list[str], *, sender: str) -> list[str]:
        added = []
        for token in tokens:
            token = to_checksum_address(token)
            if token not in self.state.underlyings:
                self.state.underlyings.append(token)
                added.append(token)
        if added:
            self.tx.emit(UnderlyingsChanged(emitter=self.policy_name, added=added))
        return self.underlyings()

    @operation("remove_underlyings")
    def remove_underlyings(self, tokens: list[str], *, sender: str) -> list[str]:
        removed = []
        for token in tokens:
            token = to_checksum_address(token)
            if token not in self.state.underlyings:
                raise NotWhitelistedError(f"{token} is not an underlying")
            if token == self.state.io_token:
                raise ValidationError("the io token cannot be removed")
            balance = self.tokens.balance_of(token, self.address)
            if balance > 0:
                raise NonZeroBalanceError(f"{token} balance is {balance}")
            if any(p.holds(token) for p in self.state.positions.values()):
                raise NonZeroBalanceError(f"an open position holds {token}")
            self.state.underlyings.remove(token)
            removed.append(token)
        if removed:
            self.tx.emit(UnderlyingsChanged(emitter=self.policy_name, removed=removed))
        return self.underlyings()

    @operation("multicall")
    def multicall(
        self, calls: list[tuple[str, tuple, dict[str, Any]]], *, sender: str
    ) -> list[Any]:
        """Run manager operations in one transaction with the manager as caller."""
        results = []
        for name, args, kwargs in calls:
            fn = getattr(self, name, None)
            if fn is None or not hasattr(fn, "operation_name") or name == "multicall":
                raise ValidationError(f"{name!r} is not a manager operation")
            results.append(fn(*args, sender=self.address, **kwargs))
        return results

    # ------------------------------------------------------------------ swaps

    @operation("exact_input")
    def exact_input(
        self, token_in: str, token_out: str, amount_in: int, min_out: int, *, sender: str
    ) -> int:
        self._require_underlying(token_out)
        return self.router.exact_input(
            token_in, token_out, amount_in, self.address, min_out
        )

    @operation("exact_output")
    def exact_output(
        self, token_in: str, token_out: str, amount_out: int, max_in: int, *, sender: str
    ) -> int:
        self._require_underlying(token_out)
        return self.router.exact_output(
            token_in, token_out, amount_out, self.address, max_in
        )

    def estimate_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        return self.router.estimate_amount_out(token_in, token_out, amount_in)

    def estimate_amount_in(self, token_in: str, token_out: str, amount_out: int) -> int:
        return self.router.estimate_amount_in(token_in, token_out, amount_out)

    # -------------------------------------------------------------- positions

    def check_pos(self, pool: str, tick_lower: int, tick_upper: int) -> Position | None:
        token_id = self._by_key.get(position_key(pool, tick_lower, tick_upper))
        if token_id is None:
            return None
        return self.state.positions[token_id]

    def works_pos(self) -> list[Position]:
        return list(self.state.positions.values())

    def position_of(self, token_id: int) -> Position:
        position = self.state.positions.get(int(token_id))
        if position is None:
            raise ValidationError(f"unknown position {token_id}")
        return position

    def _self_held(self, token_id: int) -> Position:
        position = self.position_of(token_id)
        if position.custody != Custody.SELF:
            raise CustodyError(f"position {token_id} is held by {position.custodian}")
        return position

    @operation("mint")
    def mint(
        self,
        token_a: str,
        token_b: str,
        fee: int,
        tick_lower: int,
        tick_upper: int,
        amount0: int,
        amount1: int,
        *,
        sender: str,
    ) -> Position:
        t0 = to_checksum_address(token_a)
        t1 = to_checksum_address(token_b)
        if int(t0, 16) > int(t1, 16):
            t0, t1 = t1, t0
            amount0, amount1 = amount1, amount0
            tick_lower, tick_upper = -tick_upper, -tick_lower
        self._require_underlying(t0, t1)

        try:
            spacing = tick_spacing_for_fee(fee)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        tick_lower, tick_upper = int(tick_lower), int(tick_upper)
        if tick_lower >= tick_upper:
            raise ValidationError(f"empty tick range [{tick_lower}, {tick_upper})")
        if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
            raise ValidationError(f"tick range [{tick_lower}, {tick_upper}) out of bounds")
        if tick_lower % spacing or tick_upper % spacing:
            raise ValidationError(f"ticks must be multiples of the pool spacing {spacing}")

        pool = self.amm.get_pool(t0, t1, fee)
        if pool is None:
            raise PoolNotFoundError(f"no pool for {t0}/{t1} fee {fee}")

        existing = self.check_pos(pool, tick_lower, tick_upper)
        if existing is not None:
            self._increase(existing, amount0, amount1, 0, 0)
            return existing

        token_id, liquidity, used0, used1 = self.amm.mint(
            MintParams(
                token0=t0,
                token1=t1,
                fee=int(fee),
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                amount0_desired=int(amount0),
                amount1_desired=int(amount1),
                amount0_min=0,
                amount1_min=0,
                recipient=self.address,
            ),
            payer=self.address,
        )
        position = Position(
            token_id=token_id,
            pool=pool,
            token0=t0,
            token1=t1,
            fee=int(fee),
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            liquidity=liquidity,
        )
        self.state.positions[token_id] = position
        self._by_key[position.key] = token_id
        self.tx.emit(
            Mint(
                emitter=self.policy_name,
                token_id=token_id,
                pool=pool,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                liquidity=liquidity,
                amount0=used0,
                amount1=used1,
            )
        )
        return position

    @operation("increase_liquidity")
    def increase_liquidity(
        self,
        token_id: int,
        amount0: int,
        amount1: int,
        amount0_min: int,
        amount1_min: int,
        *,
        sender: str,
    ) -> tuple[int, int, int]:
        return self._increase(
            self.position_of(token_id), amount0, amount1, amount0_min, amount1_min
        )

    def _increase(
        self,
        position: Position,
        amount0: int,
        amount1: int,
        amount0_min: int,
        amount1_min: int,
    ) -> tuple[int, int, int]:
        self._self_held(position.token_id)
        liquidity, used0, used1 = self.amm.increase_liquidity(
            position.token_id,
            int(amount0),
            int(amount1),
            int(amount0_min),
            int(amount1_min),
            payer=self.address,
        )
        if used0 < amount0_min or used1 < amount1_min:
            raise SlippageError(
                f"added ({used0}, {used1}) below minimum ({amount0_min}, {amount1_min})"
            )
        position.liquidity = self.math.checked_uint(position.liquidity + liquidity, 128)
        self.tx.emit(
            IncreaseLiquidity(
                emitter=self.policy_name,
                token_id=position.token_id,
                liquidity=liquidity,
                amount0=used0,
                amount1=used1,
            )
        )
        return liquidity, used0, used1

    @operation("decrease_liquidity")
    def decrease_liquidity(
        self,
        token_id: int,
        liquidity: int,
        amount0_min: int,
        amount1_min: int,
        *,
        sender: str,
    ) -> tuple[int, int]:
        return self._decrease(
            self.position_of(token_id), liquidity, amount0_min, amount1_min
        )

    def _decrease(
        self, position: Position, liquidity: int, amount0_min: int, amount1_min: int
    ) -> tuple[int, int]:
        self._self_held(position.token_id)
        if liquidity <= 0:
            raise InvalidAmountError("liquidity must be positive")
        if liquidity > position.liquidity:
            raise InsufficientLiquidityError(
                f"position {position.token_id} has {position.liquidity} < {liquidity}"
            )
        amount0, amount1 = self.amm.decrease_liquidity(
            position.token_id,
            int(liquidity),
            int(amount0_min),
            int(amount1_min),
            sender=self.address,
        )
        if amount0 < amount0_min or amount1 < amount1_min:
            raise SlippageError(
                f"removed ({amount0}, {amount1}) below minimum ({amount0_min}, {amount1_min})"
            )
        position.liquidity -= liquidity
        self.tx.emit(
            DecreaseLiquidity(
                emitter=self.policy_name,
                token_id=position.token_id,
                liquidity=liquidity,
                amount0=amount0,
                amount1=amount1,
            )
        )
        return amount0, amount1

    @operation("collect")
    def collect(
        self, token_id: int, amount0_max: int, amount1_max: int, *, sender: str
    ) -> tuple[int, int]:
        return self._collect(
            self.position_of(token_id), self.address, amount0_max, amount1_max
        )

    def _collect(
        self, position: Position, recipient: str, amount0_max: int, amount1_max: int
    ) -> tuple[int, int]:
        self._self_held(position.token_id)
        amount0, amount1 = self.amm.collect(
            position.token_id,
            recipient,
            min(int(amount0_max), MAX_UINT128),
            min(int(amount1_max), MAX_UINT128),
            sender=self.address,
        )
        self.tx.emit(
            Collect(
                emitter=self.policy_name,
                token_id=position.token_id,
                recipient=to_checksum_address(recipient),
                amount0=amount0,
                amount1=amount1,
            )
        )
        return amount0, amount1

    @operation("burn")
    def burn(self, token_id: int, *, sender: str) -> None:
        position = self._self_held(token_id)
        if position.liquidity > 0:
            raise ValidationError(f"position {token_id} still has liquidity")
        self.amm.burn(position.token_id, sender=self.address)
        del self.state.positions[position.token_id]
        self._by_key.pop(position.key, None)
        self.tx.emit(Burn(emitter=self.policy_name, token_id=position.token_id))

    # -------------------------------------------------------------- valuation

    def _value_in_io(self, token: str, amount: int) -> int:
        if amount <= 0:
            return 0
        io_token = self._require_bound()
        if to_checksum_address(token) == io_token:
            return int(amount)
        return self.router.estimate_amount_out(token, io_token, amount)

    def position_amounts(self, position: Position) -> tuple[int, int]:
        """Tokens the position would return now: liquidity at spot plus owed."""
        sqrt_price_x96, _ = self.amm.slot0(position.pool)
        amount0, amount1 = self.math.amounts_for_liquidity(
            sqrt_price_x96, position.tick_lower, position.tick_upper, position.liquidity
        )
        data = self.amm.positions(position.token_id)
        return amount0 + data["tokens_owed0"], amount1 + data["tokens_owed1"]

    def idle_assets(self) -> int:
        return sum(
            self._value_in_io(token, self.tokens.balance_of(token, self.address))
            for token in self.state.underlyings
        )

    def liquidity_assets(self) -> int:
        total = 0
        for position in self.state.positions.values():
            amount0, amount1 = self.position_amounts(position)
            total += self._value_in_io(position.token0, amount0)
            total += self._value_in_io(position.token1, amount1)
        return total

    def assets(self) -> int:
        if self.state.io_token is None:
            return 0
        return self.idle_assets() + self.liquidity_assets()

    # ------------------------------------------------------------ withdrawals

    @operation("withdraw")
    def withdraw(self, to: str, amount: int, scale: int, *, sender: str) -> int:
        io_token = self._require_bound()
        if amount <= 0:
            raise InvalidAmountError("amount must be positive")
        if self.tokens.balance_of(io_token, self.address) < amount:
            proceeds = self._liquidate_pro_rata(scale, self.address)
            self._convert_to_io(proceeds, amount)
            available = self.tokens.balance_of(io_token, self.address)
            if available < amount:
                raise InsufficientLiquidityError(
                    f"only {available} of {amount} could be raised"
                )
        self.tokens.transfer(io_token, self.address, to, amount)
        self.tx.emit(
            Withdrawn(
                emitter=self.policy_name,
                recipient=to_checksum_address(to),
                amount=amount,
                scale=scale,
            )
        )
        return amount

    @operation("withdraw_of_underlying")
    def withdraw_of_underlying(
        self, to: str, scale: int, *, sender: str
    ) -> dict[str, int]:
        self._require_bound()
        if scale <= 0 or scale > MANTISSA:
            raise InvalidAmountError(f"scale {scale} outside (0, 1e18]")
        paid: dict[str, int] = defaultdict(int)
        for token in self.state.underlyings:
            share = self.tokens.balance_of(token, self.address) * scale // MANTISSA
            if share > 0:
                self.tokens.transfer(token, self.address, to, share)
                paid[token] += share
        for token, amount in self._liquidate_pro_rata(scale, to).items():
            paid[token] += amount
        self.tx.emit(
            Withdrawn(
                emitter=self.policy_name,
                recipient=to_checksum_address(to),
                amount=0,
                scale=scale,
                in_kind=True,
            )
        )
        return dict(paid)

    def _liquidate_pro_rata(self, scale: int, recipient: str) -> dict[str, int]:
        """Shrink every self-held position by ``scale`` and collect to ``recipient``."""
        proceeds: dict[str, int] = defaultdict(int)
        for position in list(self.state.positions.values()):
            if position.custody != Custody.SELF or position.liquidity == 0:
                continue
            liquidity = min(position.liquidity, position.liquidity * scale // MANTISSA)
            if liquidity == 0:
                continue
            sqrt_price_x96, _ = self.amm.slot0(position.pool)
            expected0, expected1 = self.math.amounts_for_liquidity(
                sqrt_price_x96, position.tick_lower, position.tick_upper, liquidity
            )
            amount0, amount1 = self._decrease(
                position,
                liquidity,
                self.math.slippage_min(expected0, self.slippage_bps),
                self.math.slippage_min(expected1, self.slippage_bps),
            )
            got0, got1 = self._collect(position, recipient, amount0, amount1)
            proceeds[position.token0] += got0
            proceeds[position.token1] += got1
        return dict(proceeds)

    def _convert_to_io(self, proceeds: dict[str, int], amount: int) -> None:
        io_token = self._require_bound()
        for token, received in proceeds.items():
            if token == io_token or received == 0:
                continue
            quoted = self.router.estimate_amount_out(token, io_token, received)
            self.router.exact_input(
                token,
                io_token,
                received,
                self.address,
                self.math.slippage_min(quoted, self.slippage_bps),
            )

        shortfall = amount - self.tokens.balance_of(io_token, self.address)
        for token in self.state.underlyings:
            if shortfall <= 0:
                break
            if token == io_token:
                continue
            balance = self.tokens.balance_of(token, self.address)
            if balance == 0:
                continue
            needed = self.router.estimate_amount_in(token, io_token, shortfall)
            if needed <= balance:
                max_in = min(
                    balance, needed + needed * self.slippage_bps // 10_000
                )
                self.router.exact_output(
                    token, io_token, shortfall, self.address, max_in
                )
                shortfall = 0
            else:
                quoted = self.router.estimate_amount_out(token, io_token, balance)
                shortfall -= self.router.exact_input(
                    token,
                    io_token,
                    balance,
                    self.address,
                    self.math.slippage_min(quoted, self.slippage_bps),
                )
