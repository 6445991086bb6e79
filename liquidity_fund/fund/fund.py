"""Share ledger: prices deposits and redemptions against the asset manager's NAV.

Net value per share is ``total_assets * 1e18 / total_supply``. Management and
performance fees are minted to the fee recipient before every join/exit is
priced; entry fees are carved out of the minted shares and exit fees are moved
to the fee recipient instead of being redeemed.
"""

from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address
from pydantic import BaseModel, Field

from liquidity_fund.core.access import GovIdentity
from liquidity_fund.core.components import BaseComponent, operation
from liquidity_fund.core.config import get_default_fee_denominator
from liquidity_fund.core.constants import COMPONENT_FUND, MANTISSA
from liquidity_fund.core.errors import (
    AlreadyBoundError,
    CapExceededError,
    InsufficientBalanceError,
    InvalidAmountError,
    ValidationError,
)
from liquidity_fund.core.events import (
    Bound,
    CapChanged,
    FeeChanged,
    FeeCharged,
    PoolExited,
    PoolJoined,
)
from liquidity_fund.core.transaction import TransactionManager
from liquidity_fund.core.utils.tokens import TokenLedger
from liquidity_fund.fund.fees import (
    FeeKind,
    FeeSetting,
    management_fee,
    performance_fee,
    ratio_fee,
    validate_fee,
)
from liquidity_fund.positions.base import AssetManager

DEFAULT_FUND_NAME = "KF Uniswap Liquidity Fund"
DEFAULT_FUND_SYMBOL = "KFUNLF"


class FundState(BaseModel):
    reserve_asset: str | None = None
    asset_manager: str | None = None
    total_supply: int = 0
    cap: int = 0
    fees: list[FeeSetting] = Field(default_factory=lambda: [FeeSetting() for _ in FeeKind])
    balances: dict[str, int] = {}
    # per-share net value each account last settled at (performance watermark)
    checkpoints: dict[str, int] = {}


class Fund(BaseComponent):
    component_type = COMPONENT_FUND
    policy_name = "Fund"

    def __init__(
        self,
        tokens: TokenLedger,
        *,
        address: str,
        identity: GovIdentity,
        tx: TransactionManager,
        name: str = DEFAULT_FUND_NAME,
        symbol: str = DEFAULT_FUND_SYMBOL,
        config: dict[str, Any] | None = None,
    ):
        super().__init__(name, address=address, identity=identity, tx=tx, config=config)
        self.symbol = symbol
        self.tokens = tokens
        self.default_denominator = int(
            self.config.get("default_fee_denominator", get_default_fee_denominator())
        )
        self.state = FundState()
        self._asset_manager: AssetManager | None = None

    # ------------------------------------------------------------------ state

    def restore(self, snapshot: Any) -> None:
        super().restore(snapshot)
        if self.state.asset_manager is None:
            self._asset_manager = None

    def attach_asset_manager(self, asset_manager: AssetManager) -> None:
        """Reconnect a fund reloaded from a StateStore to its asset manager."""
        if self.state.asset_manager is None:
            raise ValidationError("fund is not bound")
        if to_checksum_address(asset_manager.address) != self.state.asset_manager:
            raise ValidationError(
                f"asset manager {asset_manager.address} is not {self.state.asset_manager}"
            )
        self._asset_manager = asset_manager

    @property
    def reserve_asset(self) -> str | None:
        return self.state.reserve_asset

    @property
    def asset_manager(self) -> AssetManager | None:
        return self._asset_manager

    @property
    def decimals(self) -> int:
        if self.state.reserve_asset is None:
            return 18
        return self.tokens.decimals(self.state.reserve_asset)

    def _require_bound(self) -> AssetManager:
        if self._asset_manager is None or self.state.reserve_asset is None:
            raise ValidationError("fund is not bound")
        return self._asset_manager

    # ------------------------------------------------------------------ reads

    def total_supply(self) -> int:
        return self.state.total_supply

    def balance_of(self, who: str) -> int:
        return self.state.balances.get(to_checksum_address(who), 0)

    def net_value_checkpoint(self, who: str) -> int:
        return self.state.checkpoints.get(to_checksum_address(who), 0)

    def get_cap(self) -> int:
        return self.state.cap

    def get_fee(self, kind: FeeKind | int) -> FeeSetting:
        return self.state.fees[FeeKind(kind)].model_copy()

    def total_assets(self) -> int:
        if self._asset_manager is None:
            return 0
        return self._asset_manager.assets()

    def global_net_value(self) -> int:
        supply = self.state.total_supply
        if supply == 0:
            return 0
        return self.total_assets() * MANTISSA // supply

    def account_net_value(self, who: str) -> int:
        supply = self.state.total_supply
        if supply == 0:
            return 0
        return self.balance_of(who) * self.total_assets() // supply

    # -------------------------------------------------------------- balances

    def _mint(self, who: str, shares: int) -> None:
        who = to_checksum_address(who)
        self.state.balances[who] = self.state.balances.get(who, 0) + shares
        self.state.total_supply += shares

    def _burn(self, who: str, shares: int) -> None:
        who = to_checksum_address(who)
        balance = self.state.balances.get(who, 0)
        if balance < shares:
            raise InsufficientBalanceError(f"burn {shares} exceeds balance {balance}")
        self.state.balances[who] = balance - shares
        self.state.total_supply -= shares

    def _move(self, src: str, dst: str, shares: int) -> None:
        self._burn(src, shares)
        self._mint(dst, shares)

    def _set_checkpoint(self, who: str, net_value: int) -> None:
        who = to_checksum_address(who)
        if self.state.balances.get(who, 0) == 0:
            self.state.checkpoints.pop(who, None)
        else:
            self.state.checkpoints[who] = net_value

    def _charge(self, kind: FeeKind, payer: str, shares: int) -> None:
        self.tx.emit(
            FeeCharged(
                emitter=self.policy_name,
                kind=int(kind),
                payer=to_checksum_address(payer),
                recipient=self.identity.rewards,
                shares=shares,
            )
        )

    def _accrue(self, investor: str, assets: int, fee_shares: int = 0) -> None:
        """Mint management and performance fees against the pre-operation NAV.

        The performance fee is charged on the investor's balance net of
        ``fee_shares``, the entry or exit fee this operation takes.
        """
        now = self.tx.now()
        supply = self.state.total_supply
        net_value = assets * MANTISSA // supply if supply else 0

        management = self.state.fees[FeeKind.MANAGEMENT]
        m_shares = management_fee(
            management, supply, now, default=self.default_denominator
        )
        if management.last_timestamp:
            management.last_timestamp = max(management.last_timestamp, now)

        performance = self.state.fees[FeeKind.PERFORMANCE]
        checkpoint = self.net_value_checkpoint(investor)
        p_shares = 0
        if checkpoint:
            p_shares = performance_fee(
                performance,
                max(self.balance_of(investor) - fee_shares, 0),
                checkpoint,
                net_value,
                default=self.default_denominator,
            )
        if performance.last_timestamp:
            performance.last_timestamp = max(performance.last_timestamp, now)

        if m_shares:
            self._mint(self.identity.rewards, m_shares)
            self._charge(FeeKind.MANAGEMENT, investor, m_shares)
        if p_shares:
            self._mint(self.identity.rewards, p_shares)
            self._charge(FeeKind.PERFORMANCE, investor, p_shares)

    # ------------------------------------------------------------ governance

    @operation("bind")
    def bind(self, reserve_asset: str, asset_manager: AssetManager, *, sender: str) -> None:
        if self.state.asset_manager is not None:
            raise AlreadyBoundError("already bind")
        self.state.reserve_asset = to_checksum_address(reserve_asset)
        self.state.asset_manager = to_checksum_address(asset_manager.address)
        self._asset_manager = asset_manager
        self.tx.emit(
            Bound(
                emitter=self.policy_name,
                reserve_asset=self.state.reserve_asset,
                counterparty=self.state.asset_manager,
            )
        )

    @operation("set_cap")
    def set_cap(self, cap: int, *, sender: str) -> None:
        if cap < 0:
            raise InvalidAmountError("cap must be non-negative")
        old = self.state.cap
        self.state.cap = int(cap)
        self.tx.emit(
            CapChanged(
                emitter=self.policy_name,
                setter=to_checksum_address(sender),
                old_cap=old,
                new_cap=self.state.cap,
            )
        )

    @operation("set_fee")
    def set_fee(
        self,
        kind: FeeKind | int,
        ratio: int,
        denominator: int,
        start: int = 0,
        *,
        sender: str,
    ) -> FeeSetting:
        try:
            kind = FeeKind(kind)
        except ValueError as exc:
            raise ValidationError(f"unknown fee kind {kind!r}") from exc
        validate_fee(ratio, denominator, default=self.default_denominator)
        old = self.state.fees[kind]
        new = FeeSetting(
            ratio=int(ratio),
            denominator=int(denominator),
            last_timestamp=int(start) if start else self.tx.now(),
        )
        self.state.fees[kind] = new
        self.tx.emit(
            FeeChanged(
                emitter=self.policy_name,
                setter=to_checksum_address(sender),
                kind=int(kind),
                old_ratio=old.ratio,
                old_denominator=old.denominator,
                new_ratio=new.ratio,
                new_denominator=new.denominator,
            )
        )
        return new.model_copy()

    # -------------------------------------------------------------- investors

    @operation("join_pool")
    def join_pool(self, amount: int, *, sender: str) -> int:
        """Deposit ``amount`` of the reserve asset; returns the shares credited."""
        manager = self._require_bound()
        if amount <= 0:
            raise InvalidAmountError("amount must be positive")
        assets = manager.assets()
        if assets + amount > self.state.cap:
            raise CapExceededError(
                f"{assets} + {amount} exceeds cap {self.state.cap}"
            )

        supply = self.state.total_supply
        priced = amount * supply // assets if supply and assets else amount
        self._accrue(
            sender,
            assets,
            ratio_fee(
                self.state.fees[FeeKind.ENTRY], priced, default=self.default_denominator
            ),
        )
        supply = self.state.total_supply
        if supply == 0:
            shares = int(amount)
        elif assets == 0:
            raise InvalidAmountError("fund has no net value to price shares against")
        else:
            shares = amount * supply // assets
        if shares == 0:
            raise InvalidAmountError("deposit too small to mint a share")

        self.tokens.transfer_from(
            self.state.reserve_asset, self.address, sender, manager.address, amount
        )

        fee = ratio_fee(
            self.state.fees[FeeKind.ENTRY], shares, default=self.default_denominator
        )
        net = shares - fee
        self._mint(sender, net)
        if fee:
            self._mint(self.identity.rewards, fee)
            self._charge(FeeKind.ENTRY, sender, fee)

        new_assets = assets + amount
        self._set_checkpoint(sender, new_assets * MANTISSA // self.state.total_supply)
        self.tx.emit(
            PoolJoined(
                emitter=self.policy_name,
                investor=to_checksum_address(sender),
                amount=amount,
                shares=net,
            )
        )
        return net

    def _redeem(self, investor: str, shares: int) -> tuple[int, int, int, int]:
        """Settle fees and burn; returns ``(net_shares, amount, assets, supply)``."""
        manager = self._require_bound()
        if shares <= 0:
            raise InvalidAmountError("shares must be positive")
        balance = self.balance_of(investor)
        if shares > balance:
            raise InsufficientBalanceError(f"shares {shares} exceed balance {balance}")

        fee = ratio_fee(
            self.state.fees[FeeKind.EXIT], shares, default=self.default_denominator
        )
        assets = manager.assets()
        self._accrue(investor, assets, fee)
        supply = self.state.total_supply

        net = shares - fee
        amount = net * assets // supply
        if fee:
            self._move(investor, self.identity.rewards, fee)
            self._charge(FeeKind.EXIT, investor, fee)
        self._burn(investor, net)

        remaining = self.state.total_supply
        self._set_checkpoint(
            investor, (assets - amount) * MANTISSA // remaining if remaining else 0
        )
        return net, amount, assets, supply

    @operation("exit_pool")
    def exit_pool(self, shares: int, *, sender: str) -> int:
        """Redeem ``shares`` for the reserve asset; returns the amount paid."""
        net, amount, assets, _ = self._redeem(sender, shares)
        if amount > 0:
            scale = amount * MANTISSA // assets
            self._asset_manager.withdraw(sender, amount, scale, sender=self.address)
        self.tx.emit(
            PoolExited(
                emitter=self.policy_name,
                investor=to_checksum_address(sender),
                shares=shares,
                amount=amount,
            )
        )
        return amount

    @operation("exit_pool_of_underlying")
    def exit_pool_of_underlying(self, shares: int, *, sender: str) -> dict[str, int]:
        """Redeem ``shares`` for a pro-rata slice of every holding, in kind."""
        net, amount, _, supply = self._redeem(sender, shares)
        paid: dict[str, int] = {}
        if net > 0:
            scale = net * MANTISSA // supply
            paid = self._asset_manager.withdraw_of_underlying(
                sender, scale, sender=self.address
            )
        self.tx.emit(
            PoolExited(
                emitter=self.policy_name,
                investor=to_checksum_address(sender),
                shares=shares,
                amount=amount,
            )
        )
        return paid
