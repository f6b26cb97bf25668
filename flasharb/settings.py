"""
Settings — one validated, immutable configuration object.

Non-secret settings come from YAML; secrets come from the environment only.
Everything is checked once at startup: a missing key, a malformed address or
an amount that does not parse is a ConfigurationError and the process does
not start.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from web3 import Web3

from .amm import uint256 as u
from .errors import ConfigurationError

logger = logging.getLogger("arb.settings")

DEFAULT_CONFIG_PATH = "flasharb/config/arbitrage.yaml"

_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    private_key: str = field(repr=False)
    relay_url: str
    contract_address: str
    dex_addresses: Tuple[str, ...]
    tokens: Tuple[str, ...]
    slippage_tolerance_bps: int
    max_slippage: int
    min_profit: int
    trade_amount: int
    relay_signing_key: Optional[str] = field(default=None, repr=False)
    fee_bps: int = 30
    scan_interval_sec: float = 1.0
    inclusion_timeout_sec: float = 30.0
    receipt_poll_interval_sec: float = 1.0
    relay_timeout_sec: float = 10.0
    rpc_timeout_sec: float = 10.0
    gas_limit_buffer_bps: int = 0
    max_candidates: int = 10
    status_interval_sec: float = 60.0
    chain_id: Optional[int] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None


def parse_amount(value: Any, key: str) -> int:
    """Integer base units, or "<number> <unit>" with a web3 denomination."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{key}: expected an amount, got {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        parts = value.split()
        try:
            if len(parts) == 1:
                amount = int(parts[0])
            elif len(parts) == 2:
                amount = Web3.to_wei(Decimal(parts[0]), parts[1].lower())
            else:
                raise ValueError(value)
        except (ValueError, InvalidOperation) as e:
            raise ConfigurationError(f"{key}: cannot parse amount {value!r}") from e
    else:
        raise ConfigurationError(
            f"{key}: amounts must be integers or '<number> <unit>' strings, got {value!r}"
        )
    if amount < 0 or amount > u.UINT256_MAX:
        raise ConfigurationError(f"{key}: amount {amount} out of range")
    return int(amount)


def _address(value: Any, key: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ConfigurationError(f"{key}: not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


def _address_list(value: Any, key: str, minimum: int) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)) or len(value) < minimum:
        raise ConfigurationError(f"{key}: need a list of at least {minimum} address(es)")
    addresses = tuple(_address(v, f"{key}[{i}]") for i, v in enumerate(value))
    if len(set(addresses)) != len(addresses):
        raise ConfigurationError(f"{key}: duplicate addresses")
    return addresses


def _private_key(value: Optional[str], key: str) -> str:
    if not value or not _PRIVATE_KEY_RE.match(value.strip()):
        raise ConfigurationError(f"{key}: expected a 32-byte hex private key")
    return value.strip()


def _number(raw: Mapping[str, Any], key: str, default, cast=float, minimum=0):
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ConfigurationError(f"{key}: expected a number, got {value!r}")
    try:
        value = cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key}: expected a number, got {value!r}") from e
    if value < minimum:
        raise ConfigurationError(f"{key}: must be >= {minimum}")
    return value


def _require(raw: Mapping[str, Any], key: str) -> Any:
    value = raw.get(key)
    if value is None or value == "":
        raise ConfigurationError(f"missing required setting: {key}")
    return value


def _read_yaml(path: str) -> Dict[str, Any]:
    config_file = Path(path)
    if not config_file.exists() and path == DEFAULT_CONFIG_PATH:
        # Look relative to this file
        config_file = Path(__file__).parent / "config" / "arbitrage.yaml"
    if not config_file.exists():
        raise ConfigurationError(f"config file not found: {path}")
    try:
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"config file {config_file} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {config_file} must contain a mapping")
    return data


def build_settings(raw: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    rpc_url = env.get("RPC_URL") or _require(raw, "rpc_url")
    if raw.get("private_key"):
        logger.warning("private_key in the config file is ignored — set PRIVATE_KEY instead")
    private_key = _private_key(env.get("PRIVATE_KEY"), "PRIVATE_KEY")
    signing_key = env.get("FLASHBOTS_SIGNING_KEY") or raw.get("relay_signing_key")
    if signing_key:
        signing_key = _private_key(signing_key, "relay_signing_key")

    tolerance = _number(raw, "slippage_tolerance_bps", _require(raw, "slippage_tolerance_bps"), int)
    if tolerance > u.BPS_DENOMINATOR:
        raise ConfigurationError("slippage_tolerance_bps: must be within 0..10000")
    fee_bps = _number(raw, "fee_bps", 30, int)
    if fee_bps >= u.BPS_DENOMINATOR:
        raise ConfigurationError("fee_bps: must be below 10000")

    trade_amount = parse_amount(_require(raw, "trade_amount"), "trade_amount")
    if trade_amount == 0:
        raise ConfigurationError("trade_amount: must be positive")

    chain_id = raw.get("chain_id")
    if chain_id is not None:
        chain_id = _number(raw, "chain_id", None, int, minimum=1)

    log_cfg = raw.get("logging") or {}
    log_level = str(log_cfg.get("level", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"logging.level: unknown level {log_level!r}")

    return Settings(
        rpc_url=str(rpc_url),
        private_key=private_key,
        relay_url=str(_require(raw, "relay_url")),
        contract_address=_address(_require(raw, "contract_address"), "contract_address"),
        dex_addresses=_address_list(_require(raw, "dex_addresses"), "dex_addresses", 1),
        tokens=_address_list(_require(raw, "tokens"), "tokens", 2),
        slippage_tolerance_bps=tolerance,
        max_slippage=parse_amount(_require(raw, "max_slippage"), "max_slippage"),
        min_profit=parse_amount(_require(raw, "min_profit"), "min_profit"),
        trade_amount=trade_amount,
        relay_signing_key=signing_key or None,
        fee_bps=fee_bps,
        scan_interval_sec=_number(raw, "scan_interval_sec", 1.0),
        inclusion_timeout_sec=_number(raw, "inclusion_timeout_sec", 30.0, minimum=0.1),
        receipt_poll_interval_sec=_number(raw, "receipt_poll_interval_sec", 1.0, minimum=0.01),
        relay_timeout_sec=_number(raw, "relay_timeout_sec", 10.0, minimum=0.1),
        rpc_timeout_sec=_number(raw, "rpc_timeout_sec", 10.0, minimum=0.1),
        gas_limit_buffer_bps=_number(raw, "gas_limit_buffer_bps", 0, int),
        max_candidates=_number(raw, "max_candidates", 10, int, minimum=1),
        status_interval_sec=_number(raw, "status_interval_sec", 60.0, minimum=1),
        chain_id=chain_id,
        log_level=log_level,
        log_file=log_cfg.get("file"),
    )


def load_settings(path: str = DEFAULT_CONFIG_PATH,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    settings = build_settings(_read_yaml(path), environ)
    logger.debug(f"Settings loaded from {path}: {settings}")
    return settings
