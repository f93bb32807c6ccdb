"""Shared CLI state and output helpers."""

from __future__ import annotations

import json
from typing import Any, NoReturn, Optional

import typer

from chipnft.config import NftConfig, load_config


class GlobalContext:
    def __init__(self) -> None:
        self.config: Optional[NftConfig] = None
        self.json_output: bool = False
        self.verbose: bool = False


ctx = GlobalContext()


def cfg() -> NftConfig:
    return ctx.config or load_config()


def emit(data: Any, text: Optional[str] = None) -> None:
    """Print `data` as JSON under --json (or when there is no text form)."""
    if ctx.json_output or text is None:
        typer.echo(json.dumps(data, indent=2, sort_keys=True))
    else:
        typer.echo(text)


def fail(code: str, message: str) -> NoReturn:
    typer.echo(f"{code}: {message}", err=True)
    raise typer.Exit(1)


def parse_hex(value: str, what: str) -> bytes:
    h = value.strip()
    if h.lower().startswith("0x"):
        h = h[2:]
    try:
        return bytes.fromhex(h)
    except ValueError:
        fail("invalid_input", f"{what} is not valid hex")


def message_bytes(message: Optional[str], message_hex: Optional[str]) -> bytes:
    if message is not None and message_hex is not None:
        fail("invalid_input", "pass either --message or --message-hex, not both")
    if message is not None:
        return message.encode("utf-8")
    if message_hex is not None:
        return parse_hex(message_hex, "message")
    fail("invalid_input", "missing --message or --message-hex")
