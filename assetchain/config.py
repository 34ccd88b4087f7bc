"""
assetchain/config.py

Process configuration for AssetChain.

Configuration is read once from the environment into a frozen ``AppConfig``.
An optional env file (``ASSETCHAIN_ENV_FILE``, default ``.env``) is loaded
first; it only fills variables that are not already set, so the process
environment always wins.

Environment
-----------
- SUI_NETWORK                      dev | test | main (default dev)
- SUI_RPC_URL                      explicit fullnode URL (overrides network)
- SUI_PRIVATE_KEY                  signing credential (required at startup)
- SUI_PACKAGE_ID                   contract package id (required at startup)
- SUI_GAS_BUDGET                   gas budget in MIST (default 50000000)
- LEDGER_TIMEOUT_SECONDS           HTTP timeout (default 15)
- JOB_STORE_PATH                   SQLite file for recurring jobs
- FRONTEND_URL                     allowed origin for CORS / websocket
- SENSOR_ANOMALY_PROBABILITY       default 0.05
- SENSOR_ANOMALY_AMPLIFICATION     default 1.5
- SENSOR_DEFAULT_INTERVAL_SECONDS  default 10
- FANOUT_QUEUE_SIZE                per-subscriber outbox bound (default 256)
- SIMULATE_ON_SUBSCRIBE            comma-separated sensor kinds, empty = off
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final, Mapping, Optional, Tuple

from assetchain.errors import ConfigError

LOGGER = logging.getLogger("assetchain.config")

_ENV_FILE_VAR: Final[str] = "ASSETCHAIN_ENV_FILE"
_DEFAULT_ENV_FILE: Final[str] = ".env"


class LedgerNetwork(str, Enum):
    DEV = "dev"
    TEST = "test"
    MAIN = "main"


_NETWORK_ALIASES: Final[Mapping[str, LedgerNetwork]] = {
    "dev": LedgerNetwork.DEV,
    "devnet": LedgerNetwork.DEV,
    "test": LedgerNetwork.TEST,
    "testnet": LedgerNetwork.TEST,
    "main": LedgerNetwork.MAIN,
    "mainnet": LedgerNetwork.MAIN,
}

FULLNODE_URLS: Final[Mapping[LedgerNetwork, str]] = {
    LedgerNetwork.DEV: "https://fullnode.devnet.sui.io:443",
    LedgerNetwork.TEST: "https://fullnode.testnet.sui.io:443",
    LedgerNetwork.MAIN: "https://fullnode.mainnet.sui.io:443",
}


@dataclass(frozen=True)
class SimulationDefaults:
    """
    Demo-tuned defaults for synthetic telemetry.

    anomaly_probability and anomaly_amplification apply to every job that
    does not override them.
    """

    anomaly_probability: float = 0.05
    anomaly_amplification: float = 1.5
    interval_seconds: float = 10.0
    variance_ratio: float = 0.1


@dataclass(frozen=True)
class AppConfig:
    network: LedgerNetwork = LedgerNetwork.DEV
    rpc_url: str = FULLNODE_URLS[LedgerNetwork.DEV]
    private_key: str = field(default="", repr=False)
    package_id: str = ""
    gas_budget: int = 50_000_000
    ledger_timeout_s: float = 15.0
    job_store_path: Path = Path("runtime/sensor_jobs.sqlite3")
    allowed_origin: str = "http://localhost:5173"
    fanout_queue_size: int = 256
    simulate_on_subscribe: Tuple[str, ...] = ()
    simulation: SimulationDefaults = field(default_factory=SimulationDefaults)

    def require_ledger_credentials(self) -> None:
        """Fail fast when the process cannot sign or target transactions."""
        if not self.private_key:
            raise ConfigError("SUI_PRIVATE_KEY not set in environment")
        if not self.package_id:
            raise ConfigError("SUI_PACKAGE_ID not set in environment")


# ---------------------------------------------------------------------------
# Env helpers
# ---------------------------------------------------------------------------


def _env(env: Mapping[str, str], name: str) -> str:
    return str(env.get(name) or "").strip()


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _env(env, name)
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid {name}: {raw!r}") from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _env(env, name)
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid {name}: {raw!r}") from exc


def _parse_network(raw: str) -> LedgerNetwork:
    if not raw:
        return LedgerNetwork.DEV
    try:
        return _NETWORK_ALIASES[raw.strip().lower()]
    except KeyError as exc:
        raise ConfigError(f"Invalid SUI_NETWORK value {raw!r} (expected dev, test or main)") from exc


def load_env_file(path: str | os.PathLike[str]) -> None:
    """
    Best-effort loader for an .env-style file.

    Reads KEY=VALUE lines and populates os.environ for any missing keys.
    Ignores comments and malformed lines.
    """
    p = Path(path)
    if not p.is_file():
        return
    with p.open("r", encoding="utf-8") as f:
        for raw_line in f:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and value and key not in os.environ:
                os.environ[key] = value


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Build the effective AppConfig.

    Passing ``env`` bypasses the process environment and the env file, which
    keeps tests hermetic.
    """
    if env is None:
        load_env_file(os.environ.get(_ENV_FILE_VAR, _DEFAULT_ENV_FILE))
        env = os.environ

    network = _parse_network(_env(env, "SUI_NETWORK"))
    rpc_url = _env(env, "SUI_RPC_URL") or FULLNODE_URLS[network]

    probability = _env_float(env, "SENSOR_ANOMALY_PROBABILITY", SimulationDefaults.anomaly_probability)
    if not 0.0 <= probability <= 1.0:
        raise ConfigError(f"SENSOR_ANOMALY_PROBABILITY must be within [0, 1], got {probability}")
    amplification = _env_float(env, "SENSOR_ANOMALY_AMPLIFICATION", SimulationDefaults.anomaly_amplification)
    if amplification <= 0:
        raise ConfigError("SENSOR_ANOMALY_AMPLIFICATION must be positive")
    interval_s = _env_float(env, "SENSOR_DEFAULT_INTERVAL_SECONDS", SimulationDefaults.interval_seconds)
    if interval_s <= 0:
        raise ConfigError("SENSOR_DEFAULT_INTERVAL_SECONDS must be positive")

    queue_size = _env_int(env, "FANOUT_QUEUE_SIZE", 256)
    if queue_size <= 0:
        raise ConfigError("FANOUT_QUEUE_SIZE must be positive")

    kinds = tuple(k.strip().lower() for k in _env(env, "SIMULATE_ON_SUBSCRIBE").split(",") if k.strip())

    cfg = AppConfig(
        network=network,
        rpc_url=rpc_url,
        private_key=_env(env, "SUI_PRIVATE_KEY"),
        package_id=_env(env, "SUI_PACKAGE_ID"),
        gas_budget=_env_int(env, "SUI_GAS_BUDGET", 50_000_000),
        ledger_timeout_s=_env_float(env, "LEDGER_TIMEOUT_SECONDS", 15.0),
        job_store_path=Path(_env(env, "JOB_STORE_PATH") or "runtime/sensor_jobs.sqlite3"),
        allowed_origin=_env(env, "FRONTEND_URL") or "http://localhost:5173",
        fanout_queue_size=queue_size,
        simulate_on_subscribe=kinds,
        simulation=SimulationDefaults(
            anomaly_probability=probability,
            anomaly_amplification=amplification,
            interval_seconds=interval_s,
        ),
    )
    LOGGER.info("Configuration loaded: network=%s rpc=%s", cfg.network.value, cfg.rpc_url)
    return cfg
