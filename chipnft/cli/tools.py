"""
Offline chip helpers for the chipnft CLI.

  digest   SHA-256(message || nonce) a chip must sign
  sign     sign with a software chip and print a submit-ready envelope (dev only)
  der      convert a chip's DER signature to r||s (low-s) and find its selector
"""

from __future__ import annotations

import json
from typing import Optional

import typer

from chipnft.auth import chip_digest
from chipnft.chip import SoftChip, build_envelope, determine_recovery_id
from chipnft.crypto.der import DerError, der_to_compact

from .common import cfg, emit, fail, message_bytes, parse_hex


def _encoding(value: Optional[str]) -> str:
    enc = (value or cfg().nonce_encoding).lower()
    if enc not in ("be32", "xdr"):
        fail("invalid_input", f"unknown nonce encoding {enc!r}")
    return enc


def digest(
    message: Optional[str] = typer.Option(None, "--message", help="Message (UTF-8 text)"),
    message_hex: Optional[str] = typer.Option(None, "--message-hex", help="Message (hex)"),
    nonce: int = typer.Option(..., "--nonce", min=0, max=0xFFFFFFFF, help="Nonce"),
    encoding: Optional[str] = typer.Option(None, "--encoding", help="be32 | xdr"),
) -> None:
    """Print the digest a chip signs for (message, nonce)."""
    enc = _encoding(encoding)
    d = chip_digest(message_bytes(message, message_hex), nonce, encoding=enc)
    emit({"digest": d.hex(), "nonce": nonce, "encoding": enc}, d.hex())


def sign(
    seed: Optional[str] = typer.Option(None, "--seed", help="Derive the software chip key from a seed"),
    private_key: Optional[str] = typer.Option(None, "--private-key", help="32-byte private key (hex)"),
    message: Optional[str] = typer.Option(None, "--message", help="Message (UTF-8 text)"),
    message_hex: Optional[str] = typer.Option(None, "--message-hex", help="Message (hex)"),
    nonce: int = typer.Option(..., "--nonce", min=0, max=0xFFFFFFFF, help="Nonce"),
    encoding: Optional[str] = typer.Option(None, "--encoding", help="be32 | xdr"),
) -> None:
    """Sign with a software chip and print the envelope as JSON (development only)."""
    if (seed is None) == (private_key is None):
        fail("invalid_input", "pass exactly one of --seed or --private-key")
    try:
        chip = SoftChip.from_seed(seed) if seed is not None else SoftChip(parse_hex(private_key or "", "private key"))
    except ValueError as e:
        fail("invalid_input", str(e))
    env = build_envelope(chip, message_bytes(message, message_hex), nonce, encoding=_encoding(encoding))
    typer.echo(json.dumps(env.to_dict(), indent=2))


def der(
    signature: str = typer.Argument(..., help="DER-encoded ECDSA signature (hex)"),
    public_key: Optional[str] = typer.Option(None, "--public-key", help="Chip key, to find the selector"),
    message: Optional[str] = typer.Option(None, "--message", help="Signed message (UTF-8 text)"),
    message_hex: Optional[str] = typer.Option(None, "--message-hex", help="Signed message (hex)"),
    nonce: Optional[int] = typer.Option(None, "--nonce", min=0, max=0xFFFFFFFF, help="Signed nonce"),
    encoding: Optional[str] = typer.Option(None, "--encoding", help="be32 | xdr"),
) -> None:
    """Convert a DER signature to 64-byte r||s with low-s applied."""
    try:
        compact, normalized = der_to_compact(parse_hex(signature, "signature"))
    except DerError as e:
        fail("invalid_input", str(e))

    data = {"signature": compact.hex(), "was_normalized": normalized}
    if public_key is not None:
        if nonce is None:
            fail("invalid_input", "--nonce is required with --public-key")
        d = chip_digest(message_bytes(message, message_hex), nonce, encoding=_encoding(encoding))
        try:
            data["recovery_id"] = determine_recovery_id(d, compact, parse_hex(public_key, "public key"))
        except ValueError as e:
            fail("invalid_input", str(e))

    text = compact.hex()
    if "recovery_id" in data:
        text += f"\nrecovery_id {data['recovery_id']}"
    emit(data, text)
