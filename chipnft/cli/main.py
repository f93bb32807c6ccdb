"""
chipnft - command-line interface for a chip-bound token collection.

Ledger commands run against a local store (SQLite by default) and append
committed events to a JSONL log:

  chipnft init --admin GADMIN --name Merch --symbol MRC --base-uri ipfs://cid --max-supply 100
  chipnft mint --envelope mint.json
  chipnft claim --claimant GALICE --message m2 --signature <hex> --recovery-id 1 \\
                --public-key <hex> --nonce 2
  chipnft transfer --from GALICE --to GBOB --token-id 0 --envelope t.json
  chipnft owner 0 | balance GALICE | nonce <pubkey hex> | uri 0 | info | events

Offline helpers (no store needed):

  chipnft digest --message m1 --nonce 1
  chipnft sign --seed demo --message m1 --nonce 1 > mint.json   (software chip, dev only)
  chipnft der 3045022100...

Global options:
  --db TEXT          Store URI (sqlite:///path, memory://, or a path)  [env CHIPNFT_DB]
  --events PATH      JSONL event log                                   [env CHIPNFT_EVENTS]
  --nonce-encoding   be32 | xdr                                        [env CHIPNFT_NONCE_ENCODING]
  --json             Output JSON instead of human-readable text
  --verbose / -v     Log ledger activity to stderr

Domain errors print "code: message" to stderr and exit with status 1.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from chipnft import logging as clog
from chipnft.auth import AuthEnvelope
from chipnft.chip import normalize_recovery_id
from chipnft.config import expand_db_uri, load_config
from chipnft.contract import ChipNFT
from chipnft.errors import ConfigError, NftError, StorageError
from chipnft.state.events import JsonlEventSink

from . import tools
from .common import cfg, ctx, emit, fail, message_bytes, parse_hex

app = typer.Typer(
    name="chipnft",
    help="Chip-authorized token collection",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main_callback(
    db: Optional[str] = typer.Option(
        None,
        "--db",
        help="Store URI (sqlite:///path.db, memory://, or a bare path)",
        envvar="CHIPNFT_DB",
    ),
    events_path: Optional[Path] = typer.Option(
        None,
        "--events",
        help="JSONL event log path",
        envvar="CHIPNFT_EVENTS",
    ),
    nonce_encoding: Optional[str] = typer.Option(
        None,
        "--nonce-encoding",
        help="Nonce encoding in the signed digest (be32 | xdr)",
        envvar="CHIPNFT_NONCE_ENCODING",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output JSON instead of human-readable text",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log ledger activity to stderr",
    ),
) -> None:
    """
    chipnft — mint, claim and transfer tokens authorized by NFC chips.

    Configuration is resolved in this order (highest to lowest priority):
      1. Command-line flags (--db, --events, --nonce-encoding)
      2. Environment variables (CHIPNFT_*)
      3. Built-in defaults (~/.chipnft/ledger.db, ~/.chipnft/events.jsonl, be32)
    """
    overrides: dict = {}
    if db:
        overrides["db_uri"] = expand_db_uri(db)
    if events_path:
        overrides["events_path"] = events_path.expanduser()
    if nonce_encoding:
        overrides["nonce_encoding"] = nonce_encoding.lower()
    try:
        config = load_config().with_overrides(**overrides)
    except ConfigError as e:
        typer.echo(f"config_error: {e}", err=True)
        raise typer.Exit(2)

    ctx.config = config
    ctx.json_output = json_output
    ctx.verbose = verbose
    clog.configure(
        json=(config.log_format == "json") if config.log_format else None,
        level=config.log_level if verbose else "WARNING",
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _open_contract() -> Iterator[ChipNFT]:
    config = cfg()
    try:
        sink = JsonlEventSink(config.events_path)
    except OSError as e:
        fail("storage_error", str(e))
    try:
        nft = ChipNFT.open(config.db_uri, events=sink, config=config)
    except (StorageError, OSError) as e:
        sink.close()
        fail("storage_error", str(e))
    try:
        yield nft
    except NftError as e:
        fail(e.code, e.message)
    except StorageError as e:
        fail("storage_error", str(e))
    except ValueError as e:
        fail("invalid_input", str(e))
    finally:
        nft.close()
        sink.close()


def _envelope(
    envelope: Optional[Path],
    message: Optional[str],
    message_hex: Optional[str],
    signature: Optional[str],
    recovery_id: Optional[int],
    public_key: Optional[str],
    nonce: Optional[int],
) -> AuthEnvelope:
    if envelope is not None:
        try:
            return AuthEnvelope.from_dict(json.loads(envelope.read_text()))
        except (OSError, ValueError, KeyError, TypeError) as e:
            fail("invalid_input", f"cannot read envelope {envelope}: {e}")

    missing = [
        flag
        for flag, v in (
            ("--signature", signature),
            ("--recovery-id", recovery_id),
            ("--public-key", public_key),
            ("--nonce", nonce),
        )
        if v is None
    ]
    if missing:
        fail("invalid_input", "missing " + ", ".join(missing) + " (or pass --envelope)")
    assert signature is not None and recovery_id is not None
    assert public_key is not None and nonce is not None

    try:
        recid = normalize_recovery_id(recovery_id)
    except ValueError as e:
        fail("invalid_input", str(e))
    return AuthEnvelope(
        message=message_bytes(message, message_hex),
        signature=parse_hex(signature, "signature"),
        recovery_id=recid,
        public_key=parse_hex(public_key, "public key"),
        nonce=nonce,
    )


EnvelopeOpt = typer.Option(None, "--envelope", help="JSON envelope (as printed by `chipnft sign`)")
MessageOpt = typer.Option(None, "--message", help="Signed message (UTF-8 text)")
MessageHexOpt = typer.Option(None, "--message-hex", help="Signed message (hex)")
SignatureOpt = typer.Option(None, "--signature", help="64-byte r||s signature (hex)")
RecoveryOpt = typer.Option(None, "--recovery-id", help="Recovery selector 0-3 (or 27-30)")
PublicKeyOpt = typer.Option(None, "--public-key", help="65-byte uncompressed chip key (hex)")
NonceOpt = typer.Option(None, "--nonce", help="Nonce the chip signed")


# ---------------------------------------------------------------------------
# Ledger commands
# ---------------------------------------------------------------------------


@app.command()
def init(
    admin: str = typer.Option(..., "--admin", help="Collection admin address"),
    name: str = typer.Option(..., "--name", help="Collection name"),
    symbol: str = typer.Option(..., "--symbol", help="Collection symbol"),
    base_uri: str = typer.Option("", "--base-uri", help="Base URI for token metadata"),
    max_supply: int = typer.Option(..., "--max-supply", min=0, help="Supply cap"),
) -> None:
    """Construct the collection (once per store)."""
    with _open_contract() as nft:
        nft.construct(admin, name, symbol, base_uri, max_supply)
        collection = nft.info()
    emit(
        collection.as_dict(),
        f"Collection {collection.name} ({collection.symbol}) created, max supply {collection.max_supply}",
    )


@app.command()
def info() -> None:
    """Show collection metadata and supply."""
    with _open_contract() as nft:
        data = nft.info().as_dict()
    data["nonce_encoding"] = cfg().nonce_encoding
    emit(data, "\n".join(f"{k:<15} {v}" for k, v in data.items()))


@app.command()
def mint(
    envelope: Optional[Path] = EnvelopeOpt,
    message: Optional[str] = MessageOpt,
    message_hex: Optional[str] = MessageHexOpt,
    signature: Optional[str] = SignatureOpt,
    recovery_id: Optional[int] = RecoveryOpt,
    public_key: Optional[str] = PublicKeyOpt,
    nonce: Optional[int] = NonceOpt,
) -> None:
    """Mint the next token, bound to the signing chip."""
    env = _envelope(envelope, message, message_hex, signature, recovery_id, public_key, nonce)
    with _open_contract() as nft:
        token_id = nft.mint(*env.fields())
    emit({"token_id": token_id}, f"Minted token {token_id}")


@app.command()
def claim(
    claimant: str = typer.Option(..., "--claimant", help="Address receiving the token"),
    envelope: Optional[Path] = EnvelopeOpt,
    message: Optional[str] = MessageOpt,
    message_hex: Optional[str] = MessageHexOpt,
    signature: Optional[str] = SignatureOpt,
    recovery_id: Optional[int] = RecoveryOpt,
    public_key: Optional[str] = PublicKeyOpt,
    nonce: Optional[int] = NonceOpt,
) -> None:
    """Claim the chip's token for an address."""
    env = _envelope(envelope, message, message_hex, signature, recovery_id, public_key, nonce)
    with _open_contract() as nft:
        token_id = nft.claim(claimant, *env.fields())
    emit({"token_id": token_id, "owner": claimant}, f"Token {token_id} claimed by {claimant}")


@app.command()
def transfer(
    from_: str = typer.Option(..., "--from", help="Current owner"),
    to: str = typer.Option(..., "--to", help="New owner"),
    token_id: int = typer.Option(..., "--token-id", help="Token id"),
    envelope: Optional[Path] = EnvelopeOpt,
    message: Optional[str] = MessageOpt,
    message_hex: Optional[str] = MessageHexOpt,
    signature: Optional[str] = SignatureOpt,
    recovery_id: Optional[int] = RecoveryOpt,
    public_key: Optional[str] = PublicKeyOpt,
    nonce: Optional[int] = NonceOpt,
) -> None:
    """Transfer a token; must be signed by the chip bound at mint."""
    env = _envelope(envelope, message, message_hex, signature, recovery_id, public_key, nonce)
    with _open_contract() as nft:
        nft.transfer(from_, to, token_id, *env.fields())
    emit(
        {"token_id": token_id, "from": from_, "to": to},
        f"Token {token_id} transferred {from_} -> {to}",
    )


@app.command()
def owner(token_id: int = typer.Argument(..., help="Token id")) -> None:
    """Show the owner of a token."""
    with _open_contract() as nft:
        addr = nft.owner_of(token_id)
    emit({"token_id": token_id, "owner": addr}, addr)


@app.command()
def balance(address: str = typer.Argument(..., help="Owner address")) -> None:
    """Show how many tokens an address owns."""
    with _open_contract() as nft:
        n = nft.balance(address)
    emit({"address": address, "balance": n}, str(n))


@app.command()
def nonce(public_key: str = typer.Argument(..., help="65-byte chip public key (hex)")) -> None:
    """Show the last accepted nonce for a chip."""
    pk = parse_hex(public_key, "public key")
    with _open_contract() as nft:
        n = nft.get_nonce(pk)
    emit({"public_key": pk.hex(), "nonce": n}, str(n))


@app.command()
def uri(token_id: int = typer.Argument(..., help="Token id")) -> None:
    """Show the metadata URI of a token."""
    with _open_contract() as nft:
        u = nft.token_uri(token_id)
    emit({"token_id": token_id, "uri": u}, u)


@app.command()
def events(
    name: Optional[str] = typer.Option(None, "--name", help="Event name (mint, claim, transfer)"),
    topic: Optional[List[str]] = typer.Option(
        None,
        "--topic",
        help="Per-position topic filter; repeat for positions. '*' = any, 'a|b' = either",
    ),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Maximum records"),
) -> None:
    """List committed events from the JSONL log."""
    selectors: Optional[list] = None
    if topic:
        selectors = [None if t == "*" else (t.split("|") if "|" in t else t) for t in topic]
    sink = JsonlEventSink(cfg().events_path)
    try:
        records = list(sink.get_logs(name=name, topics=selectors, limit=limit))
    finally:
        sink.close()
    text = "\n".join(
        f"#{r.seq} call={r.call_index} {r.name} "
        + " ".join(f"{k}={v}" for k, v in sorted(r.data.items()))
        for r in records
    )
    emit([r.to_dict() for r in records], text or "(no events)")


app.command(name="digest")(tools.digest)
app.command(name="sign")(tools.sign)
app.command(name="der")(tools.der)


def main() -> None:
    """Entry point for the chipnft CLI."""
    app()


if __name__ == "__main__":
    main()
