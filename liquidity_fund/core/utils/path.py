"""Packed multi-hop swap paths.

Layout: ``token0 (20 bytes) || fee0 (3 bytes, big-endian) || token1 || ... ||
tokenN``, no padding. Exact-output swaps walk the path backwards, see
``reverse_path``.
"""

from __future__ import annotations

from eth_abi.packed import encode_packed
from eth_utils import is_address, to_checksum_address
from hexbytes import HexBytes

from liquidity_fund.core.constants import ADDR_SIZE, FEE_SIZE, MAX_UINT24, NEXT_OFFSET
from liquidity_fund.core.errors import MalformedRouteError


def path_length(num_tokens: int) -> int:
    return ADDR_SIZE * num_tokens + FEE_SIZE * (num_tokens - 1)


def path_bytes(data: bytes | str) -> bytes:
    try:
        return bytes(HexBytes(data))
    except (TypeError, ValueError) as exc:
        raise MalformedRouteError(f"path is not valid hex: {data!r}") from exc


def encode_path(tokens: list[str], fees: list[int]) -> bytes:
    if len(tokens) < 2:
        raise MalformedRouteError("path needs at least two tokens")
    if len(fees) != len(tokens) - 1:
        raise MalformedRouteError(
            f"expected {len(tokens) - 1} fees for {len(tokens)} tokens, got {len(fees)}"
        )
    for token in tokens:
        if not is_address(token):
            raise MalformedRouteError(f"invalid token address: {token!r}")
    for fee in fees:
        if not isinstance(fee, int) or fee < 0 or fee > MAX_UINT24:
            raise MalformedRouteError(f"fee {fee!r} does not fit in 24 bits")

    types: list[str] = []
    values: list[object] = []
    for i, token in enumerate(tokens):
        types.append("address")
        values.append(to_checksum_address(token))
        if i < len(fees):
            types.append("uint24")
            values.append(fees[i])
    return encode_packed(types, values)


def decode_path(data: bytes | str) -> tuple[list[str], list[int]]:
    raw = path_bytes(data)
    if len(raw) < NEXT_OFFSET + ADDR_SIZE or (len(raw) - ADDR_SIZE) % NEXT_OFFSET:
        raise MalformedRouteError(f"invalid path length {len(raw)}")

    hops = (len(raw) - ADDR_SIZE) // NEXT_OFFSET
    tokens: list[str] = []
    fees: list[int] = []
    for i in range(hops):
        offset = i * NEXT_OFFSET
        tokens.append(to_checksum_address(raw[offset : offset + ADDR_SIZE]))
        fees.append(int.from_bytes(raw[offset + ADDR_SIZE : offset + NEXT_OFFSET], "big"))
    tokens.append(to_checksum_address(raw[-ADDR_SIZE:]))
    return tokens, fees


def reverse_path(data: bytes | str) -> bytes:
    tokens, fees = decode_path(data)
    return encode_path(tokens[::-1], fees[::-1])


def path_endpoints(data: bytes | str) -> tuple[str, str]:
    tokens, _ = decode_path(data)
    return tokens[0], tokens[-1]


def num_pools(data: bytes | str) -> int:
    return len(decode_path(data)[1])
