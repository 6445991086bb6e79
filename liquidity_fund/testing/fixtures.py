"""pytest plugin wiring a complete fund against the in-memory substrates.

Every pool trades at tick 0 (raw 1:1) so expected amounts stay easy to derive:
one 0.3% hop turns ``x`` into ``x * 997_000 // 1_000_000``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from liquidity_fund.core.access import GovIdentity
from liquidity_fund.core.constants import MAX_UINT256
from liquidity_fund.core.state_store import StateStore
from liquidity_fund.core.transaction import TransactionManager
from liquidity_fund.core.utils.path import encode_path
from liquidity_fund.core.utils.tokens import InMemoryTokenLedger
from liquidity_fund.fund.fund import Fund
from liquidity_fund.positions.staker import UniV3LiquidityStaker
from liquidity_fund.testing.mock_staker import MockUniswapV3Staker
from liquidity_fund.testing.mock_uniswap import MockUniswapV3

GOVERNANCE = "0x1000000000000000000000000000000000000001"
STRATEGIST = "0x2000000000000000000000000000000000000002"
ALICE = "0x3000000000000000000000000000000000000003"
BOB = "0x4000000000000000000000000000000000000004"
FUND_ADDRESS = "0x5000000000000000000000000000000000000005"
MANAGER_ADDRESS = "0x6000000000000000000000000000000000000006"
OUTSIDER = "0x7000000000000000000000000000000000000007"

USDT = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
WBTC = "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
UNI = "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984"

FEE = 3000
VAULT_FUNDING = 10**30
START_TIME = 1_700_000_000


class FakeClock:
    def __init__(self, now: int = START_TIME) -> None:
        self.now = int(now)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += int(seconds)
        return self.now


@dataclass
class Deployment:
    clock: FakeClock
    tx: TransactionManager
    tokens: InMemoryTokenLedger
    amm: MockUniswapV3
    staker: MockUniswapV3Staker
    identity: GovIdentity
    manager: UniV3LiquidityStaker
    fund: Fund
    pools: dict[str, str] = field(default_factory=dict)

    def fund_investor(self, who: str, amount: int) -> None:
        self.tokens.mint(USDT, who, amount)
        self.tokens.approve(USDT, who, self.fund.address, MAX_UINT256)


def build_substrate(
    clock: FakeClock | None = None, store: StateStore | None = None
) -> Deployment:
    """Components and substrates, unbound."""
    clock = clock or FakeClock()
    tx = TransactionManager(clock=clock, store=store)
    tokens = InMemoryTokenLedger({USDT: 6, WETH: 18, WBTC: 8, DAI: 18, UNI: 18})
    tx.register(tokens)
    amm = MockUniswapV3(tokens)
    tx.register(amm)
    staker = MockUniswapV3Staker(amm, tokens, clock=tx.now)
    tx.register(staker)
    identity = GovIdentity(GOVERNANCE, STRATEGIST)

    pools = {
        "WETH/USDT": amm.create_pool(WETH, USDT, FEE, 0),
        "WBTC/WETH": amm.create_pool(WBTC, WETH, FEE, 0),
        "DAI/USDT": amm.create_pool(DAI, USDT, FEE, 0),
    }
    for token in (USDT, WETH, WBTC, DAI):
        tokens.mint(token, amm.vault_address, VAULT_FUNDING)

    manager = UniV3LiquidityStaker(
        amm, tokens, staker, address=MANAGER_ADDRESS, identity=identity, tx=tx
    )
    fund = Fund(tokens, address=FUND_ADDRESS, identity=identity, tx=tx)
    return Deployment(
        clock=clock,
        tx=tx,
        tokens=tokens,
        amm=amm,
        staker=staker,
        identity=identity,
        manager=manager,
        fund=fund,
        pools=pools,
    )


def wire(dep: Deployment, *, cap: int = 10**24) -> Deployment:
    """Bind fund and manager, whitelist underlyings, approve and set routes."""
    dep.fund.bind(USDT, dep.manager, sender=GOVERNANCE)
    dep.manager.bind(dep.fund.address, USDT, sender=GOVERNANCE)
    dep.manager.set_underlyings([USDT, WETH, WBTC], sender=GOVERNANCE)
    for token in (USDT, WETH, WBTC):
        dep.manager.safe_approve_all(token, sender=GOVERNANCE)
    for tokens in (
        [USDT, WETH],
        [WETH, USDT],
        [WETH, WBTC],
        [WBTC, WETH],
        [WBTC, WETH, USDT],
    ):
        dep.manager.setting_swap_route(
            encode_path(tokens, [FEE] * (len(tokens) - 1)), sender=GOVERNANCE
        )
    dep.fund.set_cap(cap, sender=GOVERNANCE)
    return dep


def build_deployment(
    clock: FakeClock | None = None, store: StateStore | None = None
) -> Deployment:
    return wire(build_substrate(clock, store))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def substrate(clock: FakeClock) -> Deployment:
    return build_substrate(clock)


@pytest.fixture
def deployment(clock: FakeClock) -> Deployment:
    return build_deployment(clock)


@pytest.fixture
def state_store(tmp_path: Path) -> StateStore:
    store = StateStore(tmp_path / "state.db")
    yield store
    store.close()
