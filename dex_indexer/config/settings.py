import json
import logging
import os
import pathlib
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict

from dotenv import load_dotenv
from web3 import Web3

# Automatically load .env from project root
load_dotenv(dotenv_path=pathlib.Path(__file__).resolve().parents[2] / ".env")

FACTORY_ABI = [
    { "name": "allPoolsLength", "outputs": [ { "type": "uint256" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
    { "name": "allPools", "outputs": [ { "type": "address" } ],
      "inputs": [ { "name": "", "type": "uint256" } ],
      "stateMutability": "view", "type": "function"},
]

# reserveA / reserveB / getReserves are intentionally absent: they drift from
# the actual token balances and are never read.
POOL_ABI = [
    { "name": "tokenA", "outputs": [ { "type": "address" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
    { "name": "tokenB", "outputs": [ { "type": "address" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
]

ERC20_ABI = [
    { "name": "decimals", "outputs": [ { "type": "uint8" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
    { "name": "symbol", "outputs": [ { "type": "string" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
    { "name": "balanceOf", "outputs": [ { "type": "uint256" } ],
      "inputs": [ { "name": "account", "type": "address" } ],
      "stateMutability": "view", "type": "function"},
]

SWAP_EVENT_SIGNATURE = "Swap(address,uint256,uint256,uint256,uint256,address)"
POOL_CREATED_EVENT_SIGNATURE = "PoolCreated(address,address,address,uint256)"

SWAP_TOPIC = Web3.to_hex(Web3.keccak(text=SWAP_EVENT_SIGNATURE))
POOL_CREATED_TOPIC = Web3.to_hex(Web3.keccak(text=POOL_CREATED_EVENT_SIGNATURE))

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_FACTORY_ADDRESS = "0x10E949cf49a713363aC6158A4f83A897dA004EC7"
DEFAULT_STABLE_ASSET = "0x3600000000000000000000000000000000000000"

DEFAULT_KNOWN_TOKENS: Dict[str, Dict] = {
    "0x3600000000000000000000000000000000000000": {"symbol": "USDC", "decimals": 6},
    "0x12dfe2bd72c55e7d91e0679da7c9cc5ecb5524e6": {"symbol": "RAC", "decimals": 18},
    "0xd472f90af8048f1b2bcd8f22784e900146cd9ecc": {"symbol": "RACA", "decimals": 18},
}


class ConfigError(Exception):
    """Raised when the process cannot start with the given environment."""


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    database_url: str
    factory_address: str = DEFAULT_FACTORY_ADDRESS
    stable_asset: str = DEFAULT_STABLE_ASSET
    known_tokens: Dict[str, Dict] = field(default_factory=lambda: dict(DEFAULT_KNOWN_TOKENS))
    poll_interval_seconds: float = 10.0
    initial_lookback_blocks: int = 10_000
    rpc_timeout_seconds: float = 10.0
    rpc_max_workers: int = 8
    snapshot_interval_seconds: int = 60
    dust_threshold: Decimal = Decimal("0.000001")
    volume_window_days: int = 30
    fee_rate: Decimal = Decimal("0.003")
    max_retry_delay_seconds: float = 300.0
    blocks_per_call: int = 2000
    log_level: str = "INFO"


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw.strip())
    except (ValueError, InvalidOperation):
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def _env_address(name: str, default: str) -> str:
    raw = os.getenv(name, default).strip()
    if not Web3.is_address(raw):
        raise ConfigError(f"{name} is not a valid address: {raw!r}")
    return raw.lower()


def _parse_known_tokens(raw: str | None) -> Dict[str, Dict]:
    """Merge the KNOWN_TOKENS json override (address → {symbol, decimals}) over the defaults."""
    tokens = {addr.lower(): dict(meta) for addr, meta in DEFAULT_KNOWN_TOKENS.items()}
    if not raw:
        return tokens
    try:
        overrides = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"KNOWN_TOKENS is not valid JSON: {e}")
    if not isinstance(overrides, dict):
        raise ConfigError("KNOWN_TOKENS must be a JSON object keyed by token address")

    for addr, meta in overrides.items():
        if not Web3.is_address(addr) or not isinstance(meta, dict):
            raise ConfigError(f"Invalid KNOWN_TOKENS entry for {addr!r}")
        try:
            tokens[addr.lower()] = {
                "symbol": str(meta["symbol"]),
                "decimals": int(meta.get("decimals", 18)),
            }
        except (KeyError, TypeError, ValueError):
            raise ConfigError(f"KNOWN_TOKENS entry for {addr} needs a symbol and integer decimals")
    return tokens


def _env_log_level() -> str:
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    # getLevelName maps known names to ints and anything else to "Level X"
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, got {level!r}")
    return level


def load_settings() -> Settings:
    """Build Settings from the environment. Raises ConfigError on missing endpoints."""
    rpc_url = os.getenv("RPC_URL", "").strip()
    database_url = os.getenv("DATABASE_URL", "").strip()
    missing = [name for name, value in (("RPC_URL", rpc_url), ("DATABASE_URL", database_url)) if not value]
    if missing:
        raise ConfigError(f"Missing required environment variable(s): {', '.join(missing)}")

    return Settings(
        rpc_url=rpc_url,
        database_url=database_url,
        factory_address=_env_address("FACTORY_ADDRESS", DEFAULT_FACTORY_ADDRESS),
        stable_asset=_env_address("STABLE_ASSET_ADDRESS", DEFAULT_STABLE_ASSET),
        known_tokens=_parse_known_tokens(os.getenv("KNOWN_TOKENS")),
        poll_interval_seconds=_env_number("POLL_INTERVAL_SECONDS", 10.0, float),
        initial_lookback_blocks=_env_number("INITIAL_LOOKBACK_BLOCKS", 10_000, int),
        rpc_timeout_seconds=_env_number("RPC_TIMEOUT_SECONDS", 10.0, float),
        rpc_max_workers=max(1, _env_number("RPC_MAX_WORKERS", 8, int)),
        snapshot_interval_seconds=_env_number("SNAPSHOT_INTERVAL_SECONDS", 60, int),
        dust_threshold=_env_number("DUST_THRESHOLD", Decimal("0.000001"), Decimal),
        volume_window_days=_env_number("VOLUME_WINDOW_DAYS", 30, int),
        fee_rate=_env_number("FEE_RATE", Decimal("0.003"), Decimal),
        max_retry_delay_seconds=_env_number("MAX_RETRY_DELAY_SECONDS", 300.0, float),
        blocks_per_call=max(1, _env_number("BLOCKS_PER_CALL", 2000, int)),
        log_level=_env_log_level(),
    )
