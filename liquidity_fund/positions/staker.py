from __future__ import annotations

from types import ModuleType
from typing import Any

from eth_utils import to_checksum_address

from liquidity_fund.adapters.staker_adapter.adapter import IncentiveKey, IncentiveProgram
from liquidity_fund.adapters.uniswap_v3_adapter.adapter import UniswapV3Periphery
from liquidity_fund.core.access import GovIdentity
from liquidity_fund.core.components import operation
from liquidity_fund.core.errors import AlreadyConfiguredError, CustodyError, ValidationError
from liquidity_fund.core.events import (
    IncentiveCreated,
    IncentiveEnded,
    RewardClaimed,
    Staker,
    UnStaker,
)
from liquidity_fund.core.transaction import TransactionManager
from liquidity_fund.core.utils import uniswap_v3_math
from liquidity_fund.core.utils.tokens import TokenLedger
from liquidity_fund.positions.types import Custody, IncentiveRecord, Position
from liquidity_fund.positions.uni_v3_liquidity import UniV3Liquidity


class UniV3LiquidityStaker(UniV3Liquidity):
    """Position manager that can park position NFTs in a liquidity-mining program.

    A deposited position stays in the position set (``check_pos`` resolves it
    and ``assets()`` counts it) but cannot be resized or collected until it is
    withdrawn back.
    """

    def __init__(
        self,
        amm: UniswapV3Periphery,
        tokens: TokenLedger,
        staker: IncentiveProgram,
        *,
        address: str,
        identity: GovIdentity,
        tx: TransactionManager,
        math: ModuleType = uniswap_v3_math,
        config: dict[str, Any] | None = None,
    ):
        super().__init__(
            amm,
            tokens,
            address=address,
            identity=identity,
            tx=tx,
            math=math,
            config=config,
        )
        self.staker = staker

    def _key(
        self, reward_token: str, pool: str, start_time: int, end_time: int
    ) -> IncentiveKey:
        return IncentiveKey(
            reward_token=reward_token,
            pool=pool,
            start_time=int(start_time),
            end_time=int(end_time),
            refundee=self.address,
        )

    def _find_incentive(self, key: IncentiveKey) -> IncentiveRecord | None:
        for record in self.state.incentives:
            if (
                record.reward_token == key.reward_token
                and record.pool == key.pool
                and record.start_time == key.start_time
                and record.end_time == key.end_time
            ):
                return record
        return None

    def incentives(self) -> list[IncentiveRecord]:
        return list(self.state.incentives)

    def check_stakers(self, token_id: int) -> bool:
        return self.position_of(token_id).custody == Custody.STAKED

    @operation("create_incentive")
    def create_incentive(
        self,
        reward_token: str,
        pool: str,
        start_time: int,
        end_time: int,
        reward: int,
        *,
        sender: str,
    ) -> IncentiveKey:
        key = self._key(reward_token, pool, start_time, end_time)
        if self._find_incentive(key) is not None:
            raise AlreadyConfiguredError("incentive already exists")
        self.tokens.approve(key.reward_token, self.address, self.staker.address, reward)
        self.staker.create_incentive(key, reward, sender=self.address)
        self.state.incentives.append(
            IncentiveRecord(
                reward_token=key.reward_token,
                pool=key.pool,
                start_time=key.start_time,
                end_time=key.end_time,
                reward=reward,
            )
        )
        self.tx.emit(
            IncentiveCreated(
                emitter=self.policy_name,
                reward_token=key.reward_token,
                pool=key.pool,
                start_time=key.start_time,
                end_time=key.end_time,
                reward=reward,
            )
        )
        return key

    @operation("end_incentive")
    def end_incentive(
        self,
        reward_token: str,
        pool: str,
        start_time: int,
        end_time: int,
        *,
        sender: str,
    ) -> int:
        key = self._key(reward_token, pool, start_time, end_time)
        refund = self.staker.end_incentive(key, sender=self.address)
        record = self._find_incentive(key)
        if record is not None:
            self.state.incentives.remove(record)
        self.tx.emit(
            IncentiveEnded(
                emitter=self.policy_name,
                reward_token=key.reward_token,
                pool=key.pool,
                refund=refund,
            )
        )
        return refund

    def _deposit(self, position: Position) -> None:
        if position.custody != Custody.SELF:
            raise CustodyError(f"position {position.token_id} already deposited")
        self.staker.deposit_token(position.token_id, sender=self.address)
        position.custody = Custody.STAKED
        position.custodian = to_checksum_address(self.staker.address)
        self.tx.emit(
            Staker(
                emitter=self.policy_name,
                token_id=position.token_id,
                program=position.custodian,
            )
        )

    @operation("staker_nft")
    def staker_nft(self, token_id: int, *, sender: str) -> None:
        self._deposit(self.position_of(token_id))

    @operation("stake_token")
    def stake_token(
        self,
        reward_token: str,
        pool: str,
        start_time: int,
        end_time: int,
        token_id: int,
        *,
        sender: str,
    ) -> None:
        position = self.position_of(token_id)
        if position.custody == Custody.SELF:
            self._deposit(position)
        key = self._key(reward_token, pool, start_time, end_time)
        self.staker.stake_token(key, position.token_id, sender=self.address)
        self.tx.emit(
            Staker(
                emitter=self.policy_name,
                token_id=position.token_id,
                program=to_checksum_address(self.staker.address),
                staked=True,
            )
        )

    @operation("unstake_token")
    def unstake_token(
        self,
        reward_token: str,
        pool: str,
        start_time: int,
        end_time: int,
        token_id: int,
        *,
        sender: str,
    ) -> None:
        position = self.position_of(token_id)
        key = self._key(reward_token, pool, start_time, end_time)
        self.staker.unstake_token(key, position.token_id, sender=self.address)
        self.tx.emit(
            UnStaker(
                emitter=self.policy_name,
                token_id=position.token_id,
                program=to_checksum_address(self.staker.address),
            )
        )

    @operation("claim_reward")
    def claim_reward(self, reward_token: str, *, sender: str) -> int:
        amount = self.staker.claim_reward(
            reward_token, self.address, 0, sender=self.address
        )
        self.tx.emit(
            RewardClaimed(
                emitter=self.policy_name,
                reward_token=to_checksum_address(reward_token),
                amount=amount,
            )
        )
        return amount

    @operation("withdraw_token")
    def withdraw_token(self, token_id: int, *, sender: str) -> None:
        position = self.position_of(token_id)
        if position.custody != Custody.STAKED:
            raise CustodyError(f"position {token_id} is not deposited")
        _, stakes = self.staker.deposits(position.token_id)
        if stakes:
            raise ValidationError(f"position {token_id} is still staked in {stakes} incentives")
        self.staker.withdraw_token(position.token_id, self.address, sender=self.address)
        program = position.custodian or to_checksum_address(self.staker.address)
        position.custody = Custody.SELF
        position.custodian = None
        self.tx.emit(
            UnStaker(
                emitter=self.policy_name,
                token_id=position.token_id,
                program=program,
                withdrawn=True,
            )
        )
