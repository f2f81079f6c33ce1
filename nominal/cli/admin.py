"""
nominal.cli.admin — registry administration.

Implements:
  - nominal init                    Create the registry config (caller becomes admin)
  - nominal set-fee / set-asset-fee / set-referrer-bps / set-treasury
  - nominal transfer-admin / accept-admin
  - nominal relayer add|remove|list
  - nominal allowlist on|off
"""

from __future__ import annotations

from typing import Optional

import typer

from .common import emit, emit_receipt, load_config, service_session

relayer_app = typer.Typer(help="Manage the relayer allowlist", no_args_is_help=True)
allowlist_app = typer.Typer(help="Toggle the relayer allowlist requirement", no_args_is_help=True)

CallerOpt = typer.Option(None, "--as", help="Acting identity (default: configured admin)")


def _admin_caller(caller: Optional[str]) -> str:
    return caller or load_config().registry.admin


def init(
    caller: Optional[str] = CallerOpt,
    treasury: Optional[str] = typer.Option(None, "--treasury", help="Treasury identity"),
    fee: Optional[int] = typer.Option(None, "--fee", min=0, help="Native registration fee"),
    referrer_bps: Optional[int] = typer.Option(None, "--referrer-bps", min=0, max=10_000),
    require_allowlist: Optional[bool] = typer.Option(
        None, "--require-allowlist/--no-require-allowlist", help="Only allowlisted relayers may sponsor"
    ),
) -> None:
    """Initialize the registry; values default to the process configuration."""
    cfg = load_config().registry
    with service_session() as svc:
        r = svc.initialize(
            _admin_caller(caller),
            treasury=treasury or cfg.treasury,
            registration_fee=cfg.registration_fee if fee is None else fee,
            referrer_bps=cfg.referrer_bps if referrer_bps is None else referrer_bps,
            require_allowlisted_relayer=(
                cfg.require_allowlisted_relayer if require_allowlist is None else require_allowlist
            ),
        )
        emit_receipt(r, f"initialized: admin={r.result.admin} treasury={r.result.treasury} "
                        f"fee={r.result.registration_fee} referrer_bps={r.result.referrer_bps}")


def show_config() -> None:
    """Print the registry config, asset fees and relayers as JSON."""
    with service_session() as svc:
        cfg = svc.get_config()
        emit({
            "origin": svc.origin,
            "native_asset": svc.native_asset,
            "settlement_account": svc.settlement_account,
            "registry": cfg.to_dict() if cfg else None,
            "asset_fees": [a.to_dict() for a in svc.store.list_asset_fees()],
            "relayers": svc.store.list_relayers(),
        })


def set_fee(
    fee: int = typer.Argument(..., min=0, help="New native registration fee"),
    caller: Optional[str] = CallerOpt,
) -> None:
    with service_session() as svc:
        r = svc.set_fee(_admin_caller(caller), fee)
        emit_receipt(r, f"registration fee = {fee}")


def set_asset_fee(
    asset: str = typer.Argument(..., help="Asset id"),
    amount: int = typer.Argument(..., min=0),
    enabled: bool = typer.Option(True, "--enabled/--disabled"),
    caller: Optional[str] = CallerOpt,
) -> None:
    with service_session() as svc:
        r = svc.set_asset_fee(_admin_caller(caller), asset, amount, enabled)
        emit_receipt(r, f"{asset} fee = {amount} ({'enabled' if enabled else 'disabled'})")


def set_referrer_bps(
    bps: int = typer.Argument(..., help="Referrer share in basis points (0..10000)"),
    caller: Optional[str] = CallerOpt,
) -> None:
    with service_session() as svc:
        r = svc.set_referrer_bps(_admin_caller(caller), bps)
        emit_receipt(r, f"referrer bps = {bps}")


def set_treasury(
    treasury: str = typer.Argument(...),
    caller: Optional[str] = CallerOpt,
) -> None:
    with service_session() as svc:
        r = svc.set_treasury(_admin_caller(caller), treasury)
        emit_receipt(r, f"treasury = {treasury}")


def transfer_admin(
    candidate: str = typer.Argument(..., help="Identity that must call accept-admin"),
    caller: Optional[str] = CallerOpt,
) -> None:
    with service_session() as svc:
        r = svc.transfer_admin(_admin_caller(caller), candidate)
        emit_receipt(r, f"pending admin = {candidate}")


def accept_admin(
    caller: str = typer.Option(..., "--as", help="The pending admin"),
) -> None:
    with service_session() as svc:
        r = svc.accept_admin(caller)
        emit_receipt(r, f"admin = {caller}")


@relayer_app.command("add")
def relayer_add(relayer: str = typer.Argument(...), caller: Optional[str] = CallerOpt) -> None:
    """Allowlist a relayer."""
    with service_session() as svc:
        r = svc.add_relayer(_admin_caller(caller), relayer)
        emit_receipt(r, f"relayer added: {relayer}")


@relayer_app.command("remove")
def relayer_remove(relayer: str = typer.Argument(...), caller: Optional[str] = CallerOpt) -> None:
    """Remove a relayer from the allowlist (no-op if absent)."""
    with service_session() as svc:
        r = svc.remove_relayer(_admin_caller(caller), relayer)
        emit_receipt(r, f"relayer removed: {relayer}")


@relayer_app.command("list")
def relayer_list() -> None:
    with service_session() as svc:
        emit(svc.store.list_relayers())


@allowlist_app.command("on")
def allowlist_on(caller: Optional[str] = CallerOpt) -> None:
    """Require sponsors to be allowlisted."""
    with service_session() as svc:
        r = svc.set_require_allowlisted_relayer(_admin_caller(caller), True)
        emit_receipt(r, "relayer allowlist required")


@allowlist_app.command("off")
def allowlist_off(caller: Optional[str] = CallerOpt) -> None:
    with service_session() as svc:
        r = svc.set_require_allowlisted_relayer(_admin_caller(caller), False)
        emit_receipt(r, "relayer allowlist not required")
