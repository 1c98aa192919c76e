# config_loader.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://api.etherscan.io/v2/api"

CHAINID: Dict[str, int] = {
    "ethereum": 1,
    "optimism": 10,
    "bsc": 56,
    "polygon": 137,
    "fantom": 250,
    "arbitrum": 42161,
    "avalanche": 43114,
    "base": 8453,
    "celo": 42220,
    "linea": 59144,
    "scroll": 534352,
    "mantle": 5000,
    "blast": 81457,
    "metis": 1088,
    "gnosis": 100,
    "sei": 1329,
}

CHAIN_ALIASES = {
    "eth": "ethereum",
    "mainnet": "ethereum",
    "arbitrum one": "arbitrum",
    "op": "optimism",
    "avax": "avalanche",
    "binance": "bsc",
    "binance smart chain": "bsc",
}


def norm_chain(x: Any) -> str:
    s = str(x or "").strip().lower()
    return CHAIN_ALIASES.get(s, s)


def norm_addr(x: Any) -> str:
    return str(x or "").strip().lower()


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    return int(raw) if raw else default


def _env_path(name: str, default: str) -> Path:
    """Read a path-like env var and expand shell variables like $PWD and ~."""
    raw = os.getenv(name, default)
    raw = os.path.expandvars(raw)
    raw = os.path.expanduser(raw)
    return Path(raw)


def load_api_key(env_file: Optional[Path] = None) -> str:
    load_dotenv(env_file)
    key = _env_str("EXPLORER_API_KEY") or _env_str("ETHERSCAN_API_KEY")
    if not key:
        raise ValueError("⚠️ Explorer API key not found. Set EXPLORER_API_KEY (or ETHERSCAN_API_KEY) in your .env file!")
    return key


@dataclass(frozen=True)
class SourceFetchSettings:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    chain: str = "ethereum"
    outdir: Path = Path("contracts")
    timeout: float = 25.0
    max_retries: int = 4
    retry_sleep: float = 1.5
    sleep_sec: float = 0.2

    @property
    def chain_id(self) -> int:
        return CHAINID[self.chain]

    def for_chain(self, chain: Any) -> "SourceFetchSettings":
        c = norm_chain(chain)
        if c not in CHAINID:
            raise ValueError(f"Unsupported chain: {chain!r}. Known: {', '.join(sorted(CHAINID))}")
        return replace(self, chain=c)


def load_settings(env_file: Optional[Path] = None, **overrides: Any) -> SourceFetchSettings:
    """Build settings from .env / environment; keyword overrides win (None is ignored)."""
    load_dotenv(env_file)
    overrides = {k: v for k, v in overrides.items() if v is not None}
    api_key = overrides.pop("api_key", None) or load_api_key(env_file)

    settings = SourceFetchSettings(
        api_key=api_key,
        base_url=_env_str("EXPLORER_BASE_URL", DEFAULT_BASE_URL),
        outdir=_env_path("SOURCES_OUTDIR", "contracts"),
        timeout=_env_float("FETCH_TIMEOUT", 25.0),
        max_retries=_env_int("FETCH_MAX_RETRIES", 4),
        retry_sleep=_env_float("FETCH_RETRY_SLEEP", 1.5),
        sleep_sec=_env_float("FETCH_SLEEP_SEC", 0.2),
    )

    chain = overrides.pop("chain", None) or _env_str("EXPLORER_CHAIN", "ethereum")
    if "outdir" in overrides:
        overrides["outdir"] = Path(overrides["outdir"])
    return replace(settings, **overrides).for_chain(chain)
