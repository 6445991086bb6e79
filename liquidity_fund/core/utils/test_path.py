from __future__ import annotations

import pytest

from liquidity_fund.core.errors import MalformedRouteError
from liquidity_fund.core.utils.path import (
    decode_path,
    encode_path,
    num_pools,
    path_endpoints,
    path_length,
    reverse_path,
)

WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDT = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
WBTC = "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599"


def test_single_hop_layout():
    path = encode_path([WETH, USDT], [3000])
    assert len(path) == 43 == path_length(2)
    assert path[:20] == bytes.fromhex(WETH[2:])
    assert path[20:23] == (3000).to_bytes(3, "big")
    assert path[23:] == bytes.fromhex(USDT[2:])


def test_multi_hop_decode():
    path = encode_path([WBTC, WETH, USDT], [500, 3000])
    assert len(path) == path_length(3) == 66
    tokens, fees = decode_path(path)
    assert tokens == [WBTC, WETH, USDT]
    assert fees == [500, 3000]
    assert num_pools(path) == 2
    assert path_endpoints(path) == (WBTC, USDT)


def test_decode_accepts_hex_and_checksums():
    path = encode_path([WETH.lower(), USDT.lower()], [100])
    tokens, fees = decode_path("0x" + path.hex())
    assert tokens == [WETH, USDT]
    assert fees == [100]


def test_reverse_path():
    path = encode_path([WBTC, WETH, USDT], [500, 3000])
    tokens, fees = decode_path(reverse_path(path))
    assert tokens == [USDT, WETH, WBTC]
    assert fees == [3000, 500]


def test_max_fee_fits_in_three_bytes():
    path = encode_path([WETH, USDT], [2**24 - 1])
    assert decode_path(path)[1] == [2**24 - 1]


@pytest.mark.parametrize(
    "tokens,fees",
    [
        ([WETH], []),
        ([WETH, USDT], []),
        ([WETH, USDT], [3000, 500]),
        ([WETH, USDT], [2**24]),
        ([WETH, USDT], [-1]),
        ([WETH, "0x1234"], [3000]),
    ],
)
def test_encode_rejects_malformed(tokens, fees):
    with pytest.raises(MalformedRouteError):
        encode_path(tokens, fees)


@pytest.mark.parametrize("size", [0, 20, 23, 42, 44, 65])
def test_decode_rejects_bad_lengths(size):
    with pytest.raises(MalformedRouteError, match="invalid path length"):
        decode_path(b"\x01" * size)


@pytest.mark.parametrize("data", ["0xzz", "0x" + "g" * 86, "weth-usdt"])
def test_decode_rejects_non_hex(data):
    with pytest.raises(MalformedRouteError, match="not valid hex"):
        decode_path(data)


@pytest.mark.parametrize("hops", [1, 2, 3, 4])
def test_round_trip(hops):
    tokens = [WETH, USDT, WBTC, WETH, USDT][: hops + 1]
    fees = [100, 500, 3000, 10000][:hops]
    assert decode_path(encode_path(tokens, fees)) == (tokens, fees)
