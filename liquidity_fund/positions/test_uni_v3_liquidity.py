from __future__ import annotations

import pytest

from liquidity_fund.core.constants import MANTISSA, MAX_UINT128, MAX_UINT256
from liquidity_fund.core.errors import (
    AlreadyBoundError,
    ArithmeticOverflowError,
    AuthorizationError,
    InsufficientLiquidityError,
    InvalidAmountError,
    MalformedRouteError,
    NonZeroBalanceError,
    NotWhitelistedError,
    PoolNotFoundError,
    RouteNotSetError,
    ValidationError,
)
from liquidity_fund.core.events import (
    Burn,
    Collect,
    DecreaseLiquidity,
    IncreaseLiquidity,
    Mint,
    Swap,
    UnderlyingsChanged,
    Withdrawn,
)
from liquidity_fund.core.utils.path import encode_path
from liquidity_fund.testing.fixtures import (
    ALICE,
    DAI,
    FUND_ADDRESS,
    GOVERNANCE,
    MANAGER_ADDRESS,
    OUTSIDER,
    STRATEGIST,
    USDT,
    WBTC,
    WETH,
)


@pytest.fixture
def manager(deployment):
    return deployment.manager


@pytest.fixture
def tokens(deployment):
    return deployment.tokens


@pytest.fixture
def stocked(deployment):
    """Manager holding 1e6 each of USDT and WETH."""
    deployment.tokens.mint(USDT, MANAGER_ADDRESS, 10**6)
    deployment.tokens.mint(WETH, MANAGER_ADDRESS, 10**6)
    return deployment


def _open_position(manager):
    return manager.mint(WETH, USDT, 3000, -60, 60, 10**6, 10**6, sender=STRATEGIST)


# ------------------------------------------------------------------ governance


def test_bind_only_once(manager):
    assert manager.fund_address == FUND_ADDRESS
    assert manager.io_token == USDT
    with pytest.raises(AlreadyBoundError, match="already bind") as exc_info:
        manager.bind(OUTSIDER, WETH, sender=GOVERNANCE)
    assert exc_info.value.operation == "UniV3Liquidity.bind"
    assert manager.fund_address == FUND_ADDRESS


def test_io_token_is_first_underlying(manager):
    assert manager.underlyings() == [USDT, WETH, WBTC]


def test_set_underlyings_needs_governance(manager):
    with pytest.raises(AuthorizationError):
        manager.set_underlyings([DAI], sender=STRATEGIST)
    assert not manager.is_underlying(DAI)


def test_set_underlyings_skips_duplicates(manager, deployment):
    manager.set_underlyings([DAI, WETH, DAI.lower()], sender=GOVERNANCE)
    assert manager.underlyings() == [USDT, WETH, WBTC, DAI]
    event = deployment.tx.events.of_type(UnderlyingsChanged)[-1]
    assert event.added == [DAI]


def test_remove_underlyings(manager, tokens):
    with pytest.raises(NotWhitelistedError):
        manager.remove_underlyings([DAI], sender=GOVERNANCE)
    with pytest.raises(ValidationError, match="io token"):
        manager.remove_underlyings([USDT], sender=GOVERNANCE)

    tokens.mint(WBTC, MANAGER_ADDRESS, 1)
    with pytest.raises(NonZeroBalanceError):
        manager.remove_underlyings([WBTC], sender=GOVERNANCE)
    assert manager.is_underlying(WBTC)

    tokens.transfer(WBTC, MANAGER_ADDRESS, GOVERNANCE, 1)
    assert manager.remove_underlyings([WBTC], sender=GOVERNANCE) == [USDT, WETH]


def test_remove_underlying_held_by_position(manager, stocked):
    _open_position(manager)
    stocked.tokens.transfer(
        WETH, MANAGER_ADDRESS, GOVERNANCE, stocked.tokens.balance_of(WETH, MANAGER_ADDRESS)
    )
    with pytest.raises(NonZeroBalanceError, match="open position"):
        manager.remove_underlyings([WETH], sender=GOVERNANCE)


def test_safe_approve_all(manager, deployment):
    for spender in (deployment.amm.router_address, deployment.amm.npm_address):
        assert deployment.tokens.allowance(WETH, MANAGER_ADDRESS, spender) == MAX_UINT256


# ----------------------------------------------------------------------- swaps


def test_exact_input_and_estimates(manager, stocked):
    assert manager.estimate_amount_out(USDT, WETH, 1000) == 997
    assert manager.estimate_amount_in(USDT, WETH, 997) == 1000
    assert manager.exact_input(USDT, WETH, 1000, 990, sender=STRATEGIST) == 997
    assert stocked.tokens.balance_of(WETH, MANAGER_ADDRESS) == 10**6 + 997
    assert manager.exact_output(WETH, USDT, 997, 1000, sender=GOVERNANCE) == 1000


def test_swap_output_must_be_whitelisted(manager, stocked):
    with pytest.raises(NotWhitelistedError):
        manager.exact_input(USDT, DAI, 1000, 0, sender=STRATEGIST)
    assert stocked.tokens.balance_of(USDT, MANAGER_ADDRESS) == 10**6


def test_non_underlying_input_can_be_sold(manager, deployment):
    deployment.amm.create_pool(DAI, WETH, 3000)
    manager.setting_swap_route(encode_path([DAI, WETH], [3000]), sender=GOVERNANCE)
    manager.safe_approve_all(DAI, sender=GOVERNANCE)
    deployment.tokens.mint(DAI, MANAGER_ADDRESS, 1000)
    assert manager.exact_input(DAI, WETH, 1000, 0, sender=STRATEGIST) == 997


def test_route_must_be_hex(manager):
    with pytest.raises(MalformedRouteError) as excinfo:
        manager.setting_swap_route("0xzz", sender=GOVERNANCE)
    assert excinfo.value.operation == "UniV3Liquidity.setting_swap_route"


def test_idle_balance_without_route_cannot_be_valued(manager, deployment):
    manager.set_underlyings([DAI], sender=GOVERNANCE)
    deployment.tokens.mint(DAI, MANAGER_ADDRESS, 1000)
    with pytest.raises(RouteNotSetError):
        manager.assets()


def test_swaps_require_authorized_caller(manager, stocked):
    with pytest.raises(AuthorizationError):
        manager.exact_input(USDT, WETH, 1000, 0, sender=OUTSIDER)
    assert stocked.tokens.balance_of(USDT, MANAGER_ADDRESS) == 10**6


# ------------------------------------------------------------------- positions


def test_mint_opens_position(manager, stocked):
    position = _open_position(manager)
    assert position.liquidity > 0
    assert (position.token0, position.token1) == (WETH, USDT)
    assert (position.tick_lower, position.tick_upper) == (-60, 60)
    assert manager.check_pos(position.pool, -60, 60) == position
    assert manager.works_pos() == [position]
    assert stocked.amm.owner_of(position.token_id) == MANAGER_ADDRESS

    (mint,) = stocked.tx.events.of_type(Mint)
    assert mint.token_id == position.token_id
    assert stocked.tokens.balance_of(WETH, MANAGER_ADDRESS) == 10**6 - mint.amount0
    assert stocked.tokens.balance_of(USDT, MANAGER_ADDRESS) == 10**6 - mint.amount1


def test_mint_sorts_tokens_and_reuses_range(manager, stocked):
    first = manager.mint(WETH, USDT, 3000, -60, 60, 10**5, 10**5, sender=STRATEGIST)
    liquidity = first.liquidity
    again = manager.mint(USDT, WETH, 3000, -60, 60, 10**5, 10**5, sender=STRATEGIST)
    assert again.token_id == first.token_id
    assert again.liquidity > liquidity
    assert len(manager.works_pos()) == 1
    assert len(stocked.tx.events.of_type(IncreaseLiquidity)) == 1


@pytest.mark.parametrize(
    "fee,lower,upper,match",
    [
        (3000, -100, 120, "multiples"),
        (3000, 60, 60, "empty"),
        (3000, 120, -120, "empty"),
        (3000, -887280, 60, "out of bounds"),
        (1234, -60, 60, "Unknown fee tier"),
    ],
)
def test_mint_rejects_bad_ranges(manager, stocked, fee, lower, upper, match):
    with pytest.raises(ValidationError, match=match):
        manager.mint(WETH, USDT, fee, lower, upper, 10**5, 10**5, sender=STRATEGIST)
    assert manager.works_pos() == []
    assert stocked.tokens.balance_of(WETH, MANAGER_ADDRESS) == 10**6


def test_liquidity_is_bounded_to_uint128(manager, stocked):
    position = _open_position(manager)
    manager.position_of(position.token_id).liquidity = MAX_UINT128
    usdt_before = stocked.tokens.balance_of(USDT, MANAGER_ADDRESS)
    with pytest.raises(ArithmeticOverflowError) as excinfo:
        manager.increase_liquidity(position.token_id, 10, 10, 0, 0, sender=STRATEGIST)
    assert excinfo.value.operation == "UniV3Liquidity.increase_liquidity"
    assert manager.position_of(position.token_id).liquidity == MAX_UINT128
    assert stocked.tokens.balance_of(USDT, MANAGER_ADDRESS) == usdt_before


def test_mint_unknown_pool_changes_nothing(manager, stocked):
    with pytest.raises(PoolNotFoundError):
        manager.mint(WETH, USDT, 500, -60, 60, 10**5, 10**5, sender=STRATEGIST)
    assert manager.works_pos() == []
    assert stocked.tokens.balance_of(WETH, MANAGER_ADDRESS) == 10**6


def test_mint_non_underlying(manager, stocked):
    stocked.tokens.mint(DAI, MANAGER_ADDRESS, 10**6)
    with pytest.raises(NotWhitelistedError):
        manager.mint(DAI, USDT, 3000, -60, 60, 10**5, 10**5, sender=STRATEGIST)


def test_decrease_collect_burn(manager, stocked):
    position = _open_position(manager)
    token_id = position.token_id
    usdt_before = stocked.tokens.balance_of(USDT, MANAGER_ADDRESS)

    amount0, amount1 = manager.decrease_liquidity(
        token_id, position.liquidity, 0, 0, sender=STRATEGIST
    )
    assert manager.position_of(token_id).liquidity == 0
    # zero-liquidity positions stay tracked until burned
    assert manager.check_pos(position.pool, -60, 60) is not None

    with pytest.raises(ValidationError, match="Not cleared"):
        manager.burn(token_id, sender=STRATEGIST)

    got0, got1 = manager.collect(token_id, MAX_UINT128, MAX_UINT128, sender=STRATEGIST)
    assert (got0, got1) == (amount0, amount1)
    assert stocked.tokens.balance_of(USDT, MANAGER_ADDRESS) == usdt_before + amount1

    manager.burn(token_id, sender=STRATEGIST)
    assert manager.works_pos() == []
    assert manager.check_pos(position.pool, -60, 60) is None
    assert [type(e) for e in stocked.tx.events.records[-3:]] == [
        DecreaseLiquidity,
        Collect,
        Burn,
    ]


def test_burn_with_liquidity_fails(manager, stocked):
    position = _open_position(manager)
    with pytest.raises(ValidationError, match="still has liquidity"):
        manager.burn(position.token_id, sender=STRATEGIST)


def test_decrease_bounds(manager, stocked):
    position = _open_position(manager)
    with pytest.raises(InvalidAmountError):
        manager.decrease_liquidity(position.token_id, 0, 0, 0, sender=STRATEGIST)
    with pytest.raises(InsufficientLiquidityError):
        manager.decrease_liquidity(
            position.token_id, position.liquidity + 1, 0, 0, sender=STRATEGIST
        )
    with pytest.raises(ValidationError, match="unknown position"):
        manager.decrease_liquidity(999, 1, 0, 0, sender=STRATEGIST)


def test_collect_picks_up_fees(manager, stocked):
    position = _open_position(manager)
    stocked.amm.accrue_fees(position.token_id, 7, 11)
    amounts = manager.position_amounts(position)
    assert manager.collect(position.token_id, 5, MAX_UINT128, sender=STRATEGIST) == (5, 11)
    assert manager.position_amounts(position) == (amounts[0] - 5, amounts[1] - 11)


# ------------------------------------------------------------------- valuation


def test_assets_values_idle_tokens_in_io(manager, stocked):
    # 1e6 USDT + 1e6 WETH quoted at 0.997
    assert manager.idle_assets() == 10**6 + 997_000
    assert manager.assets() == manager.idle_assets()


def test_assets_include_positions(manager, stocked):
    before = manager.assets()
    _open_position(manager)
    assert manager.liquidity_assets() > 0
    # value only moves by quote rounding between idle and deployed WETH
    assert abs(manager.assets() - before) <= 10


# ----------------------------------------------------------------- withdrawals


def test_withdraw_is_fund_only(manager, stocked):
    with pytest.raises(AuthorizationError):
        manager.withdraw(ALICE, 10, MANTISSA // 10, sender=GOVERNANCE)
    with pytest.raises(AuthorizationError):
        manager.withdraw_of_underlying(ALICE, MANTISSA // 10, sender=STRATEGIST)


def test_withdraw_from_idle(manager, stocked):
    assert manager.withdraw(ALICE, 500, MANTISSA // 100, sender=FUND_ADDRESS) == 500
    assert stocked.tokens.balance_of(USDT, ALICE) == 500
    (event,) = stocked.tx.events.of_type(Withdrawn)
    assert (event.recipient, event.amount, event.in_kind) == (ALICE, 500, False)


def test_withdraw_swaps_idle_underlying_for_shortfall(deployment, manager):
    deployment.tokens.mint(WETH, MANAGER_ADDRESS, 10_000)
    manager.withdraw(ALICE, 997, MANTISSA // 10, sender=FUND_ADDRESS)
    assert deployment.tokens.balance_of(USDT, ALICE) == 997
    assert deployment.tokens.balance_of(WETH, MANAGER_ADDRESS) == 9_000


def test_withdraw_liquidates_positions_pro_rata(manager, stocked):
    position = _open_position(manager)
    liquidity = position.liquidity
    stocked.tokens.transfer(
        USDT, MANAGER_ADDRESS, GOVERNANCE, stocked.tokens.balance_of(USDT, MANAGER_ADDRESS)
    )

    manager.withdraw(ALICE, 1000, MANTISSA // 10, sender=FUND_ADDRESS)
    assert stocked.tokens.balance_of(USDT, ALICE) == 1000
    assert manager.position_of(position.token_id).liquidity == liquidity - liquidity // 10

    types = [type(e) for e in stocked.tx.events.records]
    assert DecreaseLiquidity in types and Collect in types and Swap in types
    last = stocked.tx.events.records[-1]
    assert isinstance(last, Withdrawn)
    assert last.operation == "UniV3Liquidity.withdraw"


def test_withdraw_insufficient_liquidity_rolls_back(manager, deployment):
    deployment.tokens.mint(USDT, MANAGER_ADDRESS, 100)
    with pytest.raises(InsufficientLiquidityError):
        manager.withdraw(ALICE, 1000, MANTISSA, sender=FUND_ADDRESS)
    assert deployment.tokens.balance_of(USDT, MANAGER_ADDRESS) == 100
    assert deployment.tokens.balance_of(USDT, ALICE) == 0


def test_withdraw_of_underlying_pays_in_kind(manager, stocked):
    paid = manager.withdraw_of_underlying(ALICE, MANTISSA // 2, sender=FUND_ADDRESS)
    assert paid == {USDT: 500_000, WETH: 500_000}
    assert stocked.tokens.balance_of(WETH, ALICE) == 500_000
    assert stocked.tx.events.of_type(Withdrawn)[-1].in_kind


def test_withdraw_of_underlying_includes_positions(manager, stocked):
    position = _open_position(manager)
    liquidity = position.liquidity
    paid = manager.withdraw_of_underlying(ALICE, MANTISSA // 4, sender=FUND_ADDRESS)
    assert paid[WETH] > 0 and paid[USDT] > 0
    assert manager.position_of(position.token_id).liquidity == liquidity - liquidity // 4


@pytest.mark.parametrize("scale", [0, MANTISSA + 1])
def test_withdraw_of_underlying_scale_bounds(manager, stocked, scale):
    with pytest.raises(InvalidAmountError):
        manager.withdraw_of_underlying(ALICE, scale, sender=FUND_ADDRESS)


# -------------------------------------------------------------------- multicall


def test_multicall_runs_as_manager(manager, stocked):
    results = manager.multicall(
        [
            ("exact_input", (USDT, WETH, 1000, 0), {}),
            ("mint", (WETH, USDT, 3000, -60, 60, 10**5, 10**5), {}),
        ],
        sender=STRATEGIST,
    )
    assert results[0] == 997
    assert results[1].liquidity > 0


def test_multicall_is_atomic(manager, stocked):
    with pytest.raises(PoolNotFoundError) as exc_info:
        manager.multicall(
            [
                ("exact_input", (USDT, WETH, 1000, 0), {}),
                ("mint", (WETH, USDT, 500, -60, 60, 10**5, 10**5), {}),
            ],
            sender=STRATEGIST,
        )
    assert exc_info.value.operation == "UniV3Liquidity.mint"
    assert stocked.tokens.balance_of(USDT, MANAGER_ADDRESS) == 10**6
    assert stocked.tx.events.of_type(Swap) == []


def test_multicall_cannot_escalate(manager, stocked):
    with pytest.raises(AuthorizationError):
        manager.multicall([("set_underlyings", ([DAI],), {})], sender=STRATEGIST)
    with pytest.raises(ValidationError):
        manager.multicall([("assets", (), {})], sender=STRATEGIST)
