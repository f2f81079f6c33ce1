"""
nominal — command-line interface for a Nominal name registry.

Global options:
  --db TEXT             Store URI (memory://, sqlite:///path.db); overrides NOMINAL_DB_URI
  --config PATH         JSON/YAML config file; overrides NOMINAL_CONFIG_FILE
  --json                Print receipts as JSON instead of one-line summaries
  --verbose / -v        Debug logging

Examples:
  nominal --db sqlite:///reg.db init --as admin.id --treasury treasury.id --fee 1000
  nominal --db sqlite:///reg.db faucet alice.id 5000
  nominal --db sqlite:///reg.db register alice --as alice.id
  nominal --db sqlite:///reg.db record alice
  nominal --db sqlite:///reg.db relayer add carol.id
"""

from __future__ import annotations

from typing import Optional

import typer

from ..types import SponsoredRequest
from ..version import __version__
from . import admin, keys
from .common import context, emit, emit_receipt, service_session

app = typer.Typer(
    name="nominal",
    help="Nominal name registry command-line interface",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main_callback(
    db: Optional[str] = typer.Option(None, "--db", help="Store URI", envvar="NOMINAL_DB_URI"),
    config: Optional[str] = typer.Option(None, "--config", help="Config file", envvar="NOMINAL_CONFIG_FILE"),
    json_output: bool = typer.Option(False, "--json", help="Print receipts as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """
    Nominal — pay-once human-readable names.

    Configuration is resolved in this order (highest to lowest priority):
      1. Command-line flags (--db, --config)
      2. Environment variables (NOMINAL_*)
      3. Config file (NOMINAL_CONFIG_FILE)
      4. Built-in defaults
    """
    ctx = context()
    ctx.db_uri = db
    ctx.config_path = config
    ctx.json_output = json_output
    ctx.verbose = verbose


@app.command()
def version() -> None:
    """Print the package version."""
    typer.echo(__version__)


# ── Reads ──────────────────────────────────────────────────────────────────────


@app.command()
def record(name: str = typer.Argument(...)) -> None:
    """Print the record for NAME as JSON (null if unregistered)."""
    with service_session() as svc:
        emit(svc.get_record(name))


@app.command("name-of")
def name_of(identity: str = typer.Argument(...)) -> None:
    """Print the primary name of IDENTITY (null if none)."""
    with service_session() as svc:
        emit(svc.name_of(identity))


@app.command()
def nonce(name: str = typer.Argument(...)) -> None:
    """Print the nonce the next sponsored request for NAME must carry."""
    with service_session() as svc:
        emit(svc.get_nonce(name))


@app.command()
def quote(asset: Optional[str] = typer.Option(None, "--asset")) -> None:
    """Print the current registration fee for an asset."""
    with service_session() as svc:
        emit(svc.quote(asset))


# ── Reference ledger ───────────────────────────────────────────────────────────


@app.command()
def faucet(
    identity: str = typer.Argument(...),
    amount: int = typer.Argument(..., min=0),
    asset: Optional[str] = typer.Option(None, "--asset"),
) -> None:
    """Mint test funds on the reference ledger."""
    with service_session() as svc:
        a = asset or svc.native_asset
        bal = svc.gateway.mint(identity, a, amount)  # type: ignore[attr-defined]
        typer.echo(f"{identity} {a} balance = {bal}")


@app.command()
def balance(
    identity: str = typer.Argument(...),
    asset: Optional[str] = typer.Option(None, "--asset"),
) -> None:
    with service_session() as svc:
        emit(svc.gateway.balance(identity, asset or svc.native_asset))  # type: ignore[attr-defined]


# ── Registration & owner operations ────────────────────────────────────────────


@app.command()
def register(
    name: str = typer.Argument(...),
    caller: str = typer.Option(..., "--as", help="Registrant (becomes owner and pays)"),
    asset: Optional[str] = typer.Option(None, "--asset"),
    fee: Optional[int] = typer.Option(None, "--fee", min=0, help="Amount offered (default: exact fee)"),
) -> None:
    """Register NAME directly; the whole fee goes to the treasury."""
    with service_session() as svc:
        r = svc.register_direct(caller, name, asset, fee)
        st = r.settlement
        emit_receipt(r, f"registered {name} to {caller}; paid {st.required} {st.asset}, change {st.change}")


@app.command("register-sponsored")
def register_sponsored(
    name: str = typer.Argument(...),
    owner: str = typer.Option(..., "--owner"),
    caller: str = typer.Option(..., "--as", help="Sponsor submitting and paying"),
    amount: int = typer.Option(..., "--amount", min=0),
    deadline: int = typer.Option(..., "--deadline", min=0),
    nonce_: int = typer.Option(0, "--nonce", min=0),
    signature: str = typer.Option(..., "--signature", help="<pubkey-hex>:<sig-hex>"),
    asset: Optional[str] = typer.Option(None, "--asset"),
    fee: Optional[int] = typer.Option(None, "--fee", min=0),
) -> None:
    """Register NAME for OWNER from a signed request; the sponsor earns the referrer share."""
    with service_session() as svc:
        req = SponsoredRequest(
            name=name,
            owner=owner,
            sponsor=caller,
            asset=asset or svc.native_asset,
            amount=amount,
            deadline=deadline,
            nonce=nonce_,
        )
        r = svc.register_sponsored(caller, req, signature, fee)
        st = r.settlement
        emit_receipt(
            r,
            f"registered {name} to {owner}; treasury +{st.split.treasury_amount}, "
            f"referrer +{st.split.referrer_amount}, change {st.change}",
        )


@app.command("set-resolved")
def set_resolved(
    name: str = typer.Argument(...),
    target: str = typer.Argument(...),
    caller: str = typer.Option(..., "--as"),
) -> None:
    with service_session() as svc:
        r = svc.set_resolved(caller, name, target)
        emit_receipt(r, f"{name} → {target}")


@app.command()
def transfer(
    name: str = typer.Argument(...),
    new_owner: str = typer.Argument(...),
    caller: str = typer.Option(..., "--as"),
) -> None:
    with service_session() as svc:
        r = svc.transfer_name(caller, name, new_owner)
        emit_receipt(r, f"{name} transferred to {new_owner}")


@app.command("set-primary")
def set_primary(
    name: str = typer.Argument(...),
    caller: str = typer.Option(..., "--as"),
) -> None:
    with service_session() as svc:
        r = svc.set_primary_name(caller, name)
        emit_receipt(r, f"primary name of {caller} = {name}")


# ── Admin & keys ───────────────────────────────────────────────────────────────

app.command("init")(admin.init)
app.command("show-config")(admin.show_config)
app.command("set-fee")(admin.set_fee)
app.command("set-asset-fee")(admin.set_asset_fee)
app.command("set-referrer-bps")(admin.set_referrer_bps)
app.command("set-treasury")(admin.set_treasury)
app.command("transfer-admin")(admin.transfer_admin)
app.command("accept-admin")(admin.accept_admin)
app.add_typer(admin.relayer_app, name="relayer")
app.add_typer(admin.allowlist_app, name="allowlist")

app.command("keygen")(keys.keygen)
app.command("sign-request")(keys.sign_request)
app.command("authorize-key")(keys.authorize_key)
app.command("revoke-key")(keys.revoke_key)
app.command("keys")(keys.list_keys)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
