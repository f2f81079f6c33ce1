"""
nominal.cli.keys — signing keys and sponsored-request signatures.

Implements:
  - nominal keygen                Generate an Ed25519 keypair
  - nominal sign-request          Sign a sponsored registration request as its owner
  - nominal authorize-key / revoke-key / keys
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from ..adapters.verifier import generate_keypair, sign_digest
from ..auth import registration_digest
from ..types import SponsoredRequest
from .common import emit, emit_receipt, load_config, service_session


def keygen(
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save key to file (default: prints to stdout)"
    ),
) -> None:
    """Generate a new Ed25519 keypair. The public key hex is also an implicit identity."""
    sk_hex, pk_hex = generate_keypair()
    key_data = {"public_key_hex": pk_hex, "secret_key_hex": sk_hex, "algorithm_name": "ed25519"}
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(key_data, indent=2), encoding="utf-8")
        output.chmod(0o600)
        typer.echo(f"Key saved to {output}")
        typer.echo(f"Public key: {pk_hex}")
    else:
        emit(key_data)


def _secret_from(secret_key: Optional[str], key_file: Optional[Path]) -> str:
    if secret_key:
        return secret_key
    if key_file:
        return json.loads(key_file.read_text(encoding="utf-8"))["secret_key_hex"]
    typer.echo("Error: pass --secret-key or --key-file", err=True)
    raise typer.Exit(2)


def sign_request(
    name: str = typer.Argument(...),
    owner: str = typer.Option(..., "--owner"),
    sponsor: str = typer.Option(..., "--sponsor"),
    amount: int = typer.Option(..., "--amount", min=0),
    deadline: int = typer.Option(..., "--deadline", min=0, help="UNIX seconds (inclusive)"),
    nonce: int = typer.Option(0, "--nonce", min=0),
    asset: Optional[str] = typer.Option(None, "--asset", help="Default: native asset"),
    secret_key: Optional[str] = typer.Option(None, "--secret-key", help="Owner's Ed25519 secret key hex"),
    key_file: Optional[Path] = typer.Option(None, "--key-file", exists=True, dir_okay=False),
) -> None:
    """Print the request and the owner's signature over its digest as JSON."""
    cfg = load_config()
    req = SponsoredRequest(
        name=name,
        owner=owner,
        sponsor=sponsor,
        asset=asset or cfg.deployment.native_asset,
        amount=amount,
        deadline=deadline,
        nonce=nonce,
    )
    digest = registration_digest(req, cfg.deployment.origin)
    emit({
        "request": req.to_dict(),
        "digest": digest.hex(),
        "signature": sign_digest(_secret_from(secret_key, key_file), digest),
    })


def authorize_key(
    public_key: str = typer.Argument(..., help="Ed25519 public key hex"),
    caller: str = typer.Option(..., "--as", help="Identity the key will sign for"),
) -> None:
    with service_session() as svc:
        r = svc.authorize_key(caller, public_key)
        emit_receipt(r, f"key {'authorized' if r.result else 'already authorized'} for {caller}")


def revoke_key(
    public_key: str = typer.Argument(...),
    caller: str = typer.Option(..., "--as"),
) -> None:
    with service_session() as svc:
        r = svc.revoke_key(caller, public_key)
        emit_receipt(r, f"key {'revoked' if r.result else 'was not authorized'} for {caller}")


def list_keys(identity: str = typer.Argument(...)) -> None:
    with service_session() as svc:
        emit(svc.get_authorized_keys(identity))
