import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from liquidity_fund.core.constants import (
    DEFAULT_FEE_DENOMINATOR,
    DEFAULT_SLIPPAGE_BPS,
)

CONFIG_ENV_VARS = ("LIQUIDITY_FUND_CONFIG_PATH", "LIQUIDITY_FUND_CONFIG")
CONFIG_FILENAME = "config.json"


class FundSettings(BaseModel):
    """The ``fund`` section of config.json."""

    model_config = ConfigDict(extra="ignore")

    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    default_fee_denominator: int = DEFAULT_FEE_DENOMINATOR
    state_db: str = ".liquidity_fund/state.db"


def _project_root() -> Path | None:
    for start in (Path.cwd(), Path(__file__).parent):
        start = start.resolve()
        for candidate in (start, *start.parents):
            if (candidate / "pyproject.toml").exists():
                return candidate
    return None


def _anchor(p: Path) -> Path:
    # relative paths live under the project root when there is one
    if p.is_absolute():
        return p
    root = _project_root()
    return root / p if root else p


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()
    for var in CONFIG_ENV_VARS:
        value = os.getenv(var, "").strip()
        if value:
            return _anchor(Path(value).expanduser())
    return _anchor(Path(CONFIG_FILENAME))


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.is_file():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        data = json.loads(cfg_path.read_text())
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def write_config_json(path: str | Path | None, config: dict[str, Any]) -> Path:
    cfg_path = resolve_config_path(path)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(json.dumps(config, indent=2) + "\n")
    return cfg_path


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Swap the contents of CONFIG; modules holding a reference see the change."""
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    set_config(load_config_json(path, require_exists=require_exists))


def fund_settings() -> FundSettings:
    return FundSettings.model_validate(CONFIG.get("fund") or {})


def get_fund_settings() -> dict[str, Any]:
    return fund_settings().model_dump()


def get_slippage_bps() -> int:
    return fund_settings().slippage_bps


def get_default_fee_denominator() -> int:
    return fund_settings().default_fee_denominator


def get_state_db_path() -> Path:
    return _anchor(Path(fund_settings().state_db).expanduser())
