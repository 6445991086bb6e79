"""Role identities and the operation -> allowed-roles policy table."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from eth_utils import to_checksum_address

from liquidity_fund.core.errors import AuthorizationError


class Role(StrEnum):
    GOVERNANCE = "governance"
    STRATEGIST = "strategist"
    FUND = "fund"
    SELF = "self"
    ANYONE = "anyone"


_GOV = frozenset({Role.GOVERNANCE})
_GOV_STRAT = frozenset({Role.GOVERNANCE, Role.STRATEGIST})
_AUTHORIZED = frozenset({Role.GOVERNANCE, Role.STRATEGIST, Role.SELF})
_FUND = frozenset({Role.FUND})
_ANYONE = frozenset({Role.ANYONE})

POLICIES: dict[str, frozenset[Role]] = {
    # share ledger
    "Fund.bind": _GOV,
    "Fund.set_cap": _GOV_STRAT,
    "Fund.set_fee": _GOV,
    "Fund.join_pool": _ANYONE,
    "Fund.exit_pool": _ANYONE,
    "Fund.exit_pool_of_underlying": _ANYONE,
    # position manager
    "UniV3Liquidity.bind": _GOV,
    "UniV3Liquidity.safe_approve_all": _GOV_STRAT,
    "UniV3Liquidity.setting_swap_route": _GOV,
    "UniV3Liquidity.set_underlyings": _GOV,
    "UniV3Liquidity.remove_underlyings": _GOV,
    "UniV3Liquidity.exact_input": _AUTHORIZED,
    "UniV3Liquidity.exact_output": _AUTHORIZED,
    "UniV3Liquidity.mint": _AUTHORIZED,
    "UniV3Liquidity.increase_liquidity": _AUTHORIZED,
    "UniV3Liquidity.decrease_liquidity": _AUTHORIZED,
    "UniV3Liquidity.collect": _AUTHORIZED,
    "UniV3Liquidity.burn": _AUTHORIZED,
    "UniV3Liquidity.withdraw": _FUND,
    "UniV3Liquidity.withdraw_of_underlying": _FUND,
    "UniV3Liquidity.multicall": _GOV_STRAT,
    # staking
    "UniV3Liquidity.create_incentive": _AUTHORIZED,
    "UniV3Liquidity.end_incentive": _AUTHORIZED,
    "UniV3Liquidity.staker_nft": _AUTHORIZED,
    "UniV3Liquidity.stake_token": _AUTHORIZED,
    "UniV3Liquidity.unstake_token": _AUTHORIZED,
    "UniV3Liquidity.claim_reward": _AUTHORIZED,
    "UniV3Liquidity.withdraw_token": _AUTHORIZED,
}


def _same(a: str | None, b: str | None) -> bool:
    return bool(a) and bool(b) and str(a).lower() == str(b).lower()


class GovIdentity:
    """Who holds governance, strategist and fee-recipient ("rewards") roles."""

    def __init__(
        self,
        governance: str,
        strategist: str | None = None,
        rewards: str | None = None,
        *,
        policies: dict[str, frozenset[Role]] | None = None,
    ) -> None:
        self.governance = to_checksum_address(governance)
        self.strategist = to_checksum_address(strategist) if strategist else None
        self.rewards = to_checksum_address(rewards) if rewards else self.governance
        self.policies = policies if policies is not None else POLICIES

    def set_strategist(self, strategist: str, *, sender: str) -> None:
        if not _same(sender, self.governance):
            raise AuthorizationError("!governance", operation="GovIdentity.set_strategist")
        self.strategist = to_checksum_address(strategist)

    def set_rewards(self, rewards: str, *, sender: str) -> None:
        if not _same(sender, self.governance):
            raise AuthorizationError("!governance", operation="GovIdentity.set_rewards")
        self.rewards = to_checksum_address(rewards)

    def roles_of(self, sender: str, component: Any = None) -> set[Role]:
        roles = {Role.ANYONE}
        if _same(sender, self.governance):
            roles.add(Role.GOVERNANCE)
        if _same(sender, self.strategist):
            roles.add(Role.STRATEGIST)
        if component is not None:
            if _same(sender, getattr(component, "address", None)):
                roles.add(Role.SELF)
            if _same(sender, getattr(component, "fund_address", None)):
                roles.add(Role.FUND)
        return roles

    def require(self, operation: str, sender: str, component: Any = None) -> None:
        allowed = self.policies.get(operation)
        if allowed is None:
            raise AuthorizationError(f"no policy for {operation}", operation=operation)
        if not allowed & self.roles_of(sender, component):
            wanted = "/".join(sorted(r.value for r in allowed))
            raise AuthorizationError(f"!{wanted}", operation=operation)
