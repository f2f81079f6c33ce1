from __future__ import annotations
"""
nominal.config — process configuration for a Nominal registry deployment

Covers:
- Bootstrap values for the on-ledger registry config (admin, treasury, fee, referrer share)
- Deployment identity (native asset id, signing origin, settlement account)
- Storage URI and logging preferences

Environment overrides (all optional; sensible defaults provided):

  # Registry bootstrap (used by `initialize`)
  NOMINAL_ADMIN=admin.id
  NOMINAL_TREASURY=treasury.id
  NOMINAL_REGISTRATION_FEE=1000
  NOMINAL_REFERRER_BPS=300
  NOMINAL_REQUIRE_ALLOWLISTED_RELAYER=false

  # Deployment
  NOMINAL_NATIVE_ASSET=native
  NOMINAL_ORIGIN=nominal-devnet
  NOMINAL_SETTLEMENT_ACCOUNT=nominal.registry
  NOMINAL_DB_URI=memory://

  # Logging
  NOMINAL_LOG_LEVEL=INFO
  NOMINAL_LOG_FORMAT=text

You can also load from a JSON or YAML file via `NOMINAL_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .fees import BPS_DENOMINATOR


# -------------------------- Data classes --------------------------


@dataclass
class RegistryDefaults:
    """Values written into the registry config singleton by `initialize`."""
    admin: str = "admin.id"
    treasury: str = "treasury.id"
    registration_fee: int = 1_000
    referrer_bps: int = 300
    require_allowlisted_relayer: bool = False

    def validate(self) -> None:
        if not self.admin:
            raise ValueError("admin must be a non-empty identity.")
        if not self.treasury:
            raise ValueError("treasury must be a non-empty identity.")
        if self.registration_fee < 0:
            raise ValueError(f"registration_fee must be non-negative (got {self.registration_fee}).")
        if not (0 <= self.referrer_bps <= BPS_DENOMINATOR):
            raise ValueError(f"referrer_bps must be between 0 and 10000 (got {self.referrer_bps}).")


@dataclass
class DeploymentConfig:
    native_asset: str = "native"
    origin: str = "nominal-devnet"          # bound into every sponsored-request digest
    settlement_account: str = "nominal.registry"
    db_uri: str = "memory://"

    def validate(self) -> None:
        for name, v in (("native_asset", self.native_asset),
                        ("origin", self.origin),
                        ("settlement_account", self.settlement_account),
                        ("db_uri", self.db_uri)):
            if not v:
                raise ValueError(f"{name} must be non-empty.")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "text"  # text | json

    def validate(self) -> None:
        if self.level.upper() not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown log level {self.level!r}.")
        if self.format not in ("text", "json"):
            raise ValueError(f"log format must be 'text' or 'json' (got {self.format!r}).")


@dataclass
class NominalConfig:
    """Top-level configuration container."""
    registry: RegistryDefaults = field(default_factory=RegistryDefaults)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        self.registry.validate()
        self.deployment.validate()
        self.logging.validate()
        if self.registry.treasury == self.deployment.settlement_account:
            raise ValueError("treasury must differ from the settlement account.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip()


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except Exception as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    s = v.strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid bool for {name}: {v!r}")


def _getenv_bps(name: str, default: int) -> int:
    bps = _getenv_int(name, default)
    if not (0 <= bps <= BPS_DENOMINATOR):
        raise ValueError(f"{name} must be between 0 and 10000 bps (got {bps}).")
    return bps


def from_env(base: Optional[NominalConfig] = None, prefix: str = "NOMINAL_") -> NominalConfig:
    """
    Build a NominalConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or NominalConfig()
    r, d, lg = cfg.registry, cfg.deployment, cfg.logging

    new_cfg = NominalConfig(
        registry=RegistryDefaults(
            admin=_getenv_str(f"{prefix}ADMIN", r.admin),
            treasury=_getenv_str(f"{prefix}TREASURY", r.treasury),
            registration_fee=_getenv_int(f"{prefix}REGISTRATION_FEE", r.registration_fee),
            referrer_bps=_getenv_bps(f"{prefix}REFERRER_BPS", r.referrer_bps),
            require_allowlisted_relayer=_getenv_bool(
                f"{prefix}REQUIRE_ALLOWLISTED_RELAYER", r.require_allowlisted_relayer
            ),
        ),
        deployment=DeploymentConfig(
            native_asset=_getenv_str(f"{prefix}NATIVE_ASSET", d.native_asset),
            origin=_getenv_str(f"{prefix}ORIGIN", d.origin),
            settlement_account=_getenv_str(f"{prefix}SETTLEMENT_ACCOUNT", d.settlement_account),
            db_uri=_getenv_str(f"{prefix}DB_URI", d.db_uri),
        ),
        logging=LoggingConfig(
            level=_getenv_str(f"{prefix}LOG_LEVEL", lg.level),
            format=_getenv_str(f"{prefix}LOG_FORMAT", lg.format).lower(),
        ),
    )
    new_cfg.validate()
    return new_cfg


def from_mapping(data: Mapping[str, Any]) -> NominalConfig:
    """Build a config from a nested mapping (the shape `to_dict()` produces)."""
    reg = dict(data.get("registry") or {})
    dep = dict(data.get("deployment") or {})
    lg = dict(data.get("logging") or {})
    defaults = NominalConfig()

    cfg = NominalConfig(
        registry=RegistryDefaults(
            admin=str(reg.get("admin", defaults.registry.admin)),
            treasury=str(reg.get("treasury", defaults.registry.treasury)),
            registration_fee=int(reg.get("registration_fee", defaults.registry.registration_fee)),
            referrer_bps=int(reg.get("referrer_bps", defaults.registry.referrer_bps)),
            require_allowlisted_relayer=bool(
                reg.get("require_allowlisted_relayer", defaults.registry.require_allowlisted_relayer)
            ),
        ),
        deployment=DeploymentConfig(
            native_asset=str(dep.get("native_asset", defaults.deployment.native_asset)),
            origin=str(dep.get("origin", defaults.deployment.origin)),
            settlement_account=str(dep.get("settlement_account", defaults.deployment.settlement_account)),
            db_uri=str(dep.get("db_uri", defaults.deployment.db_uri)),
        ),
        logging=LoggingConfig(
            level=str(lg.get("level", defaults.logging.level)),
            format=str(lg.get("format", defaults.logging.format)).lower(),
        ),
    )
    cfg.validate()
    return cfg


def from_file(path: str | os.PathLike[str]) -> NominalConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ValueError(f"config file {p} must contain a mapping at the top level")
    return from_mapping(data)


def load() -> NominalConfig:
    """
    Load configuration using the following precedence:
      1) File at $NOMINAL_CONFIG_FILE (JSON/YAML)
      2) Environment variables (NOMINAL_*), applied on top of defaults or file values
    """
    file_path = os.getenv("NOMINAL_CONFIG_FILE")
    base = from_file(file_path) if file_path else NominalConfig()
    return from_env(base=base)


def pretty(cfg: Optional[NominalConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


__all__ = [
    "RegistryDefaults",
    "DeploymentConfig",
    "LoggingConfig",
    "NominalConfig",
    "from_env",
    "from_mapping",
    "from_file",
    "load",
    "pretty",
]
