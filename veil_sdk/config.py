"""
SDK configuration: RPC endpoint, retry/timeouts, polling bounds and prover.

Precedence (highest first):
  1) explicit keyword overrides (`SDKConfig.with_overrides` / `load_config`)
  2) environment variables (VEIL_*)
  3) TOML client file (default ``veil-client.toml`` in the working directory)
  4) built-in defaults

TOML layout::

    [rpc]
    url = "https://rpc.testnet.example:443"
    timeout = 10.0
    max_retries = 3
    backoff = 0.25

    [poll]
    interval = 3.0
    max_attempts = 40
    timeout = 180.0

    [prover]
    url = "https://prover.testnet.example"

    [logging]
    level = "INFO"
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .version import __version__

CLIENT_CONFIG_FILE_NAME = "veil-client.toml"

_DEFAULT_RPC = "http://127.0.0.1:57291"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ValueError(f"URL must start with {allowed}, got: {url!r}")
    return url


def _optional_int(v: Any) -> Optional[int]:
    if v is None or v == "" or str(v).lower() == "none":
        return None
    return int(v)


def _optional_float(v: Any) -> Optional[float]:
    if v is None or v == "" or str(v).lower() == "none":
        return None
    return float(v)


@dataclass(slots=True)
class SDKConfig:
    # RPC
    rpc_url: str = field(default_factory=lambda: _DEFAULT_RPC)
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_factor: float = 0.25
    # Consumability polling
    poll_interval: float = 3.0
    poll_max_attempts: Optional[int] = 40
    poll_timeout: Optional[float] = 180.0
    # Delegated proving (None = node proves locally)
    prover_url: Optional[str] = None
    # Misc
    log_level: str = "INFO"
    user_agent: str = field(default_factory=lambda: f"veil-sdk-py/{__version__}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_toml(cls, path: Union[str, Path]) -> "SDKConfig":
        """Load a client TOML file on top of the defaults."""
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.with_overrides(cls(), **_flatten_toml(data))

    @classmethod
    def from_env(cls, prefix: str = "VEIL_", base: Optional["SDKConfig"] = None) -> "SDKConfig":
        """
        Layer environment variables on `base` (defaults when omitted):

        VEIL_RPC_URL            (http/https)
        VEIL_TIMEOUT            (float seconds, HTTP)
        VEIL_MAX_RETRIES        (int)
        VEIL_BACKOFF            (float)
        VEIL_POLL_INTERVAL      (float seconds)
        VEIL_POLL_MAX_ATTEMPTS  (int, or "none" for unbounded)
        VEIL_POLL_TIMEOUT       (float seconds, or "none")
        VEIL_PROVER_URL         (http/https) optional
        VEIL_LOG_LEVEL          (str)
        """
        base = base or cls()
        overrides: Dict[str, Any] = {}
        mapping = {
            "RPC_URL": "rpc_url",
            "TIMEOUT": "request_timeout",
            "MAX_RETRIES": "max_retries",
            "BACKOFF": "backoff_factor",
            "POLL_INTERVAL": "poll_interval",
            "POLL_MAX_ATTEMPTS": "poll_max_attempts",
            "POLL_TIMEOUT": "poll_timeout",
            "PROVER_URL": "prover_url",
            "LOG_LEVEL": "log_level",
            "USER_AGENT": "user_agent",
        }
        for env_key, attr in mapping.items():
            v = _env(f"{prefix}{env_key}")
            if v is not None:
                overrides[attr] = v
        return cls.with_overrides(base, **overrides)

    @classmethod
    def with_overrides(cls, base: Optional["SDKConfig"] = None, **overrides: Any) -> "SDKConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored; string values are coerced to the field type.
        """
        base = base or cls()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data})
        data["request_timeout"] = float(data["request_timeout"])
        data["max_retries"] = int(data["max_retries"])
        data["backoff_factor"] = float(data["backoff_factor"])
        data["poll_interval"] = float(data["poll_interval"])
        data["poll_max_attempts"] = _optional_int(data["poll_max_attempts"])
        data["poll_timeout"] = _optional_float(data["poll_timeout"])
        data["log_level"] = str(data["log_level"]).upper()
        _ensure_scheme(data["rpc_url"], ("http", "https"))
        _ensure_scheme(data["prover_url"], ("http", "https"))
        if data["poll_interval"] < 0:
            raise ValueError("poll_interval must be non-negative")
        if data["poll_max_attempts"] is not None and data["poll_max_attempts"] < 1:
            raise ValueError("poll_max_attempts must be >= 1 (or None for unbounded)")
        return cls(**data)


def _flatten_toml(data: Dict[str, Any]) -> Dict[str, Any]:
    rpc = data.get("rpc", {})
    poll = data.get("poll", {})
    prover = data.get("prover", {})
    logging_ = data.get("logging", {})
    out: Dict[str, Any] = {}
    pairs = (
        (rpc, "url", "rpc_url"),
        (rpc, "timeout", "request_timeout"),
        (rpc, "max_retries", "max_retries"),
        (rpc, "backoff", "backoff_factor"),
        (poll, "interval", "poll_interval"),
        (poll, "max_attempts", "poll_max_attempts"),
        (poll, "timeout", "poll_timeout"),
        (prover, "url", "prover_url"),
        (logging_, "level", "log_level"),
    )
    for section, key, attr in pairs:
        if key in section:
            out[attr] = section[key]
    return out


def load_config(path: Optional[Union[str, Path]] = None, **overrides: Any) -> SDKConfig:
    """
    Resolve the effective configuration: defaults, then the TOML file (if it
    exists), then VEIL_* environment variables, then `overrides`.
    """
    cfg_path = Path(path) if path else Path(_env("VEIL_CONFIG", CLIENT_CONFIG_FILE_NAME) or CLIENT_CONFIG_FILE_NAME)
    if cfg_path.is_file():
        cfg = SDKConfig.from_toml(cfg_path)
    elif path:
        raise FileNotFoundError(f"client config not found: {cfg_path}")
    else:
        cfg = SDKConfig()
    cfg = SDKConfig.from_env(base=cfg)
    return SDKConfig.with_overrides(cfg, **{k: v for k, v in overrides.items() if v is not None})


__all__ = ["SDKConfig", "load_config", "CLIENT_CONFIG_FILE_NAME"]
