"""Fungible-token balances the engine moves funds through.

``TokenLedger`` is the surface the fund and the position manager consume.
``InMemoryTokenLedger`` is an atomic in-process implementation used for local
simulation and tests; it takes part in transactions so token movements roll
back together with fund state.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any

from eth_utils import to_checksum_address

from liquidity_fund.core.constants import MAX_UINT256
from liquidity_fund.core.errors import InsufficientBalanceError, InvalidAmountError
from liquidity_fund.core.transaction import Participant


class TokenLedger(ABC):
    @abstractmethod
    def balance_of(self, token: str, account: str) -> int:
        pass

    @abstractmethod
    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        pass

    @abstractmethod
    def allowance(self, token: str, owner: str, spender: str) -> int:
        pass

    @abstractmethod
    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        pass

    @abstractmethod
    def transfer_from(
        self, token: str, spender: str, owner: str, recipient: str, amount: int
    ) -> None:
        pass

    def decimals(self, token: str) -> int:
        return 18


def _key(*parts: str) -> tuple[str, ...]:
    return tuple(to_checksum_address(p) for p in parts)


class InMemoryTokenLedger(TokenLedger, Participant):
    def __init__(self, decimals: dict[str, int] | None = None) -> None:
        self._balances: dict[tuple[str, ...], int] = {}
        self._allowances: dict[tuple[str, ...], int] = {}
        self._decimals = {to_checksum_address(k): int(v) for k, v in (decimals or {}).items()}

    def snapshot(self) -> Any:
        return copy.deepcopy((self._balances, self._allowances))

    def restore(self, snapshot: Any) -> None:
        self._balances, self._allowances = snapshot

    def decimals(self, token: str) -> int:
        return self._decimals.get(to_checksum_address(token), 18)

    def set_decimals(self, token: str, decimals: int) -> None:
        self._decimals[to_checksum_address(token)] = int(decimals)

    def mint(self, token: str, account: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmountError("mint amount must be non-negative")
        key = _key(token, account)
        self._balances[key] = self._balances.get(key, 0) + int(amount)

    def balance_of(self, token: str, account: str) -> int:
        return self._balances.get(_key(token, account), 0)

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        amount = int(amount)
        if amount < 0:
            raise InvalidAmountError("transfer amount must be non-negative")
        src = _key(token, sender)
        balance = self._balances.get(src, 0)
        if balance < amount:
            raise InsufficientBalanceError(
                f"transfer amount exceeds balance ({balance} < {amount})"
            )
        self._balances[src] = balance - amount
        dst = _key(token, recipient)
        self._balances[dst] = self._balances.get(dst, 0) + amount

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self._allowances.get(_key(token, owner, spender), 0)

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmountError("approve amount must be non-negative")
        self._allowances[_key(token, owner, spender)] = int(amount)

    def transfer_from(
        self, token: str, spender: str, owner: str, recipient: str, amount: int
    ) -> None:
        key = _key(token, owner, spender)
        allowed = self._allowances.get(key, 0)
        if allowed < amount:
            raise InsufficientBalanceError(
                f"transfer amount exceeds allowance ({allowed} < {amount})"
            )
        self.transfer(token, owner, recipient, amount)
        if allowed != MAX_UINT256:
            self._allowances[key] = allowed - int(amount)
