"""
TOML-based configuration for OpenLedger nodes.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from openledger_core.config import load_config
    cfg = load_config("openledger.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import,no-redef]


@dataclass
class LedgerConfig:
    """Ledger identity and the contracts it hosts at start-up."""
    ledger_id: str = "ledger-1"
    org_id: str = "org-1"
    deploy_fungible: bool = True
    deploy_non_fungible: bool = True


@dataclass
class AdminConfig:
    """
    Organization admins.

    ``seeds`` are wallet seed phrases; each derived address becomes an
    admin of ``ledger.org_id``.  ``addresses`` adds admins by address
    only, for keys held elsewhere.
    """
    seeds: list[str] = field(default_factory=list)
    addresses: list[str] = field(default_factory=list)
    seed_iterations: int = 600_000


@dataclass
class APIConfig:
    """REST gateway settings."""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080
    api_key: str = ""                 # require this key on POST endpoints (empty = no auth)
    rate_limit_rpm: int = 120          # max requests per minute per IP (0 = unlimited)
    cors_origins: list[str] = field(default_factory=list)  # allowed CORS origins (empty = no CORS)
    max_body_bytes: int = 1_048_576    # 1 MiB max request body


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class OpenLedgerConfig:
    """Top-level configuration container."""
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config(path: str | None = None) -> OpenLedgerConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        OPENLEDGER_LEDGER_ID    -> ledger.ledger_id
        OPENLEDGER_ORG_ID       -> ledger.org_id
        OPENLEDGER_ADMIN_SEEDS  -> admin.seeds      (comma-separated)
        OPENLEDGER_HOST         -> api.host
        OPENLEDGER_API_PORT     -> api.port
        OPENLEDGER_API_KEY      -> api.api_key
        OPENLEDGER_CORS_ORIGINS -> api.cors_origins (comma-separated)
        OPENLEDGER_LOG_LEVEL    -> logging.level
        OPENLEDGER_LOG_FMT      -> logging.format
        OPENLEDGER_LOG_FILE     -> logging.file
    """
    cfg = OpenLedgerConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("ledger", cfg.ledger),
                ("admin", cfg.admin),
                ("api", cfg.api),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("OPENLEDGER_LEDGER_ID"):
        cfg.ledger.ledger_id = v
    if v := os.environ.get("OPENLEDGER_ORG_ID"):
        cfg.ledger.org_id = v
    if v := os.environ.get("OPENLEDGER_ADMIN_SEEDS"):
        cfg.admin.seeds = _split(v)
    if v := os.environ.get("OPENLEDGER_HOST"):
        cfg.api.host = v
    if v := os.environ.get("OPENLEDGER_API_PORT"):
        cfg.api.port = int(v)
        cfg.api.enabled = True
    if v := os.environ.get("OPENLEDGER_API_KEY"):
        cfg.api.api_key = v
    if v := os.environ.get("OPENLEDGER_CORS_ORIGINS"):
        cfg.api.cors_origins = _split(v)
    if v := os.environ.get("OPENLEDGER_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("OPENLEDGER_LOG_FMT"):
        cfg.logging.format = v
    if v := os.environ.get("OPENLEDGER_LOG_FILE"):
        cfg.logging.file = v

    return cfg
