from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from loguru import logger

from liquidity_fund.core.config import get_default_fee_denominator, get_state_db_path
from liquidity_fund.core.errors import FundError
from liquidity_fund.core.state_store import StateStore
from liquidity_fund.core.utils.path import decode_path, encode_path
from liquidity_fund.core.utils.units import from_erc20_raw, to_erc20_raw
from liquidity_fund.fund.fees import FeeSetting, management_fee, validate_fee


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(exc: FundError) -> NoReturn:
    _echo_json(
        {
            "ok": False,
            "error": exc.kind,
            "operation": exc.operation,
            "details": exc.message,
        }
    )
    sys.exit(1)


@click.group(name="liquidity-fund", help="Uniswap V3 liquidity fund tooling.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def cli(log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())


@cli.command(name="encode-path", help="Pack TOKENS and --fee tiers into a swap path.")
@click.argument("tokens", nargs=-1, required=True)
@click.option("--fee", "fees", type=int, multiple=True, help="Fee tier per hop.")
def encode_path_cmd(tokens: tuple[str, ...], fees: tuple[int, ...]) -> None:
    try:
        path = encode_path(list(tokens), list(fees))
    except FundError as exc:
        _fail(exc)
    _echo_json({"ok": True, "result": {"path": "0x" + path.hex()}})


@cli.command(name="decode-path", help="Unpack a 0x-prefixed swap path.")
@click.argument("path")
def decode_path_cmd(path: str) -> None:
    try:
        tokens, fees = decode_path(path)
    except FundError as exc:
        _fail(exc)
    _echo_json({"ok": True, "result": {"tokens": tokens, "fees": fees}})


@cli.command(name="management-fee", help="Preview the management fee in shares.")
@click.option("--supply", type=int, required=True, help="Total share supply.")
@click.option("--ratio", type=int, required=True)
@click.option("--denominator", type=int, default=0, show_default=True)
@click.option("--elapsed", type=int, required=True, help="Seconds since last accrual.")
def management_fee_cmd(supply: int, ratio: int, denominator: int, elapsed: int) -> None:
    default = get_default_fee_denominator()
    try:
        validate_fee(ratio, denominator, default=default)
    except FundError as exc:
        _fail(exc)
    setting = FeeSetting(ratio=ratio, denominator=denominator, last_timestamp=1)
    shares = management_fee(setting, supply, 1 + elapsed, default=default)
    _echo_json(
        {
            "ok": True,
            "result": {
                "shares": shares,
                "denominator": setting.effective_denominator(default),
            },
        }
    )


@cli.group(name="units", help="Convert between token units and raw integers.")
def units_cli() -> None:
    pass


@units_cli.command(name="to-raw")
@click.argument("amount")
@click.option("--decimals", type=int, required=True)
def to_raw_cmd(amount: str, decimals: int) -> None:
    try:
        raw = to_erc20_raw(amount, decimals)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="amount") from exc
    _echo_json({"ok": True, "result": {"raw": raw}})


@units_cli.command(name="from-raw")
@click.argument("raw", type=int)
@click.option("--decimals", type=int, required=True)
def from_raw_cmd(raw: int, decimals: int) -> None:
    _echo_json({"ok": True, "result": {"amount": str(from_erc20_raw(raw, decimals))}})


@cli.group(name="state", help="Inspect a persisted fund state database.")
def state_cli() -> None:
    pass


@state_cli.command(name="show", help="Dump component state and recent audit events.")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="State database (defaults to fund.state_db from config).",
)
@click.option("--events", "limit", type=int, default=20, show_default=True)
@click.option("--type", "event_type", default=None, help="Only events of this type.")
def state_show_cmd(db_path: Path | None, limit: int, event_type: str | None) -> None:
    path = db_path or get_state_db_path()
    if not path.exists():
        _echo_json({"ok": False, "error": "state_db_not_found", "details": str(path)})
        sys.exit(1)
    store = StateStore(path)
    try:
        states = {key: store.load_state(key) for key in store.state_keys()}
        events = [
            {
                "id": row.id,
                "operation": row.operation,
                "type": row.type,
                "payload": row.payload,
                "created_at": row.created_at,
            }
            for row in store.events(limit=limit, type=event_type)
        ]
    finally:
        store.close()
    _echo_json({"ok": True, "result": {"db": str(path), "states": states, "events": events}})


if __name__ == "__main__":
    cli()
