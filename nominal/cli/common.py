"""
Shared state and helpers for the `nominal` CLI subcommands.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import typer

from .. import logging as nlog
from ..config import NominalConfig, from_env, from_file, load
from ..errors import NominalError
from ..service import Receipt, RegistrationService


class GlobalContext:
    def __init__(self) -> None:
        self.db_uri: Optional[str] = None
        self.config_path: Optional[str] = None
        self.json_output: bool = False
        self.verbose: bool = False


_ctx = GlobalContext()


def context() -> GlobalContext:
    return _ctx


def load_config() -> NominalConfig:
    """Config file (--config or NOMINAL_CONFIG_FILE) → env → --db override."""
    if _ctx.config_path:
        cfg = from_env(base=from_file(_ctx.config_path))
    else:
        cfg = load()
    if _ctx.db_uri:
        cfg.deployment.db_uri = _ctx.db_uri
    return cfg


@contextmanager
def service_session() -> Iterator[RegistrationService]:
    """
    Open a service over the configured store for one command. Registry errors
    are printed as JSON on stderr and exit with status 1.
    """
    try:
        cfg = load_config()
    except (ValueError, FileNotFoundError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(2)

    nlog.configure(
        json=cfg.logging.format == "json",
        level="DEBUG" if _ctx.verbose else cfg.logging.level,
    )
    svc = RegistrationService.from_config(cfg)
    try:
        yield svc
    except NominalError as e:
        typer.echo(json.dumps(e.to_dict(), sort_keys=True, default=str), err=True)
        raise typer.Exit(1)
    finally:
        svc.store.close()


def emit(obj: Any) -> None:
    """Print a JSON document (or `null`) to stdout."""
    if hasattr(obj, "to_dict"):
        obj = obj.to_dict()
    typer.echo(json.dumps(obj, indent=2, sort_keys=True, default=str))


def emit_receipt(receipt: Receipt, summary: str) -> None:
    if _ctx.json_output:
        emit(receipt)
    else:
        typer.echo(summary)
