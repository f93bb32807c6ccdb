"""
chipnft.config — nonce encoding, store locations, logging and input caps.

Configuration precedence:
  1) Environment variables (CHIPNFT_*)
  2) Hardcoded safe defaults below

Key env vars:
  - CHIPNFT_NONCE_ENCODING     (str)   default: be32   ("be32" | "xdr")
  - CHIPNFT_DB                 (uri)   default: ~/.chipnft/ledger.db
  - CHIPNFT_EVENTS             (path)  default: ~/.chipnft/events.jsonl
  - CHIPNFT_LOG_LEVEL          (str)   default: INFO
  - CHIPNFT_LOG_FORMAT         (str)   default: "" (auto: json off-TTY, text on TTY)
  - CHIPNFT_MAX_MESSAGE_BYTES  (int)   default: 4096

The nonce encoding must match what the signing client appends to the message
before hashing. "be32" is the 4-byte big-endian counter; "xdr" is the 8-byte
ScVal U32 form (0x00000003 || be32) produced by Soroban's `nonce.to_xdr()`.

Usage:
    from chipnft.config import load_config
    CFG = load_config()
    if CFG.nonce_encoding == "xdr": ...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from .errors import ConfigError

NONCE_ENCODINGS = ("be32", "xdr")
LOG_FORMATS = ("", "json", "text")

DEFAULT_HOME = Path("~/.chipnft")


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def expand_db_uri(uri: str) -> str:
    """Expand `~` in a bare store path; URIs with a scheme pass through unchanged."""
    if "://" in uri:
        return uri
    return str(Path(uri).expanduser())


def _env_int(name: str, default: int, *, min_v: int, max_v: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw, 0)
    except ValueError:
        return default
    if v < min_v:
        return min_v
    if v > max_v:
        return max_v
    return v


@dataclass(frozen=True)
class NftConfig:
    nonce_encoding: str
    db_uri: str
    events_path: Path
    log_level: str
    log_format: str
    max_message_bytes: int

    def __post_init__(self) -> None:
        if self.nonce_encoding not in NONCE_ENCODINGS:
            raise ConfigError(
                f"nonce_encoding must be one of {NONCE_ENCODINGS}, got {self.nonce_encoding!r}"
            )
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(
                f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}"
            )
        if self.max_message_bytes < 1:
            raise ConfigError("max_message_bytes must be positive")

    def with_overrides(self, **changes: Any) -> "NftConfig":
        """Return a copy with the given fields replaced (validated again)."""
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "nonce_encoding": self.nonce_encoding,
            "db_uri": self.db_uri,
            "events_path": str(self.events_path),
            "log_level": self.log_level,
            "log_format": self.log_format,
            "max_message_bytes": self.max_message_bytes,
        }


@lru_cache(maxsize=1)
def load_config() -> NftConfig:
    """
    Build and cache an NftConfig from environment + safe defaults.
    Call `load_config.cache_clear()` after changing the environment.
    """
    home = DEFAULT_HOME.expanduser()
    return NftConfig(
        nonce_encoding=_env_str("CHIPNFT_NONCE_ENCODING", "be32").lower(),
        db_uri=expand_db_uri(_env_str("CHIPNFT_DB", str(home / "ledger.db"))),
        events_path=Path(_env_str("CHIPNFT_EVENTS", str(home / "events.jsonl"))).expanduser(),
        log_level=_env_str("CHIPNFT_LOG_LEVEL", "INFO").upper(),
        log_format=_env_str("CHIPNFT_LOG_FORMAT", "").lower(),
        max_message_bytes=_env_int("CHIPNFT_MAX_MESSAGE_BYTES", 4096, min_v=1, max_v=1_048_576),
    )


__all__ = ["NftConfig", "load_config", "expand_db_uri", "NONCE_ENCODINGS", "LOG_FORMATS"]
