"""
Chip-side helpers: software chips, recovery ids and authorization messages.

A real chip only ever exposes its 65-byte public key and signatures over
32-byte digests (often DER-encoded, sometimes high-s). The helpers here turn
that into a ready-to-submit `AuthEnvelope`:

    der = chip.sign(chip_digest(message, nonce))           # hardware
    env = envelope_from_der(message, der, chip_pubkey, nonce)

`SoftChip` plays the chip in tests, in the CLI `sign` command and during
development. It holds its private key in memory; never use it for real
collections.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, Tuple, Union, runtime_checkable

from chipnft.auth import AuthEnvelope, chip_digest
from chipnft.crypto.der import der_to_compact
from chipnft.crypto.secp256k1 import (N, RecoveryError,
                                      normalize_recovery_id,
                                      private_key_to_public_key,
                                      recover_public_key, sign_digest)


@runtime_checkable
class ChipSigner(Protocol):
    @property
    def public_key(self) -> bytes: ...

    def sign_digest(self, digest: bytes) -> Tuple[bytes, int]:
        """Return (r || s low-s, recovery_id) over a 32-byte digest."""
        ...


@dataclass(frozen=True)
class SoftChip:
    private_key: bytes = field(repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_public_key", private_key_to_public_key(self.private_key))

    @classmethod
    def generate(cls) -> "SoftChip":
        while True:
            k = secrets.token_bytes(32)
            if 0 < int.from_bytes(k, "big") < N:
                return cls(k)

    @classmethod
    def from_seed(cls, seed: Union[str, bytes]) -> "SoftChip":
        """Deterministic chip for tests and demos: key = SHA-256(seed)."""
        raw = seed.encode("utf-8") if isinstance(seed, str) else bytes(seed)
        return cls(hashlib.sha256(raw).digest())

    @property
    def public_key(self) -> bytes:
        return self._public_key  # type: ignore[attr-defined]

    def sign_digest(self, digest: bytes) -> Tuple[bytes, int]:
        return sign_digest(digest, self.private_key)


def determine_recovery_id(digest: bytes, signature: bytes, public_key: bytes) -> int:
    """Find the selector under which `signature` recovers to `public_key`."""
    for recid in range(4):
        try:
            if recover_public_key(digest, signature, recid) == bytes(public_key):
                return recid
        except RecoveryError:
            continue
    raise ValueError("signature does not recover to the given public key under any selector")


def build_auth_message(
    contract_id: Union[str, bytes],
    function_name: str,
    args: Sequence[Any],
    network_passphrase: str,
) -> bytes:
    """
    Authorization message used by the mobile and web clients:

        sha256(network_passphrase) || contract_id || function_name || json(args)

    `contract_id` is the raw 32-byte contract id, or its hex form. The nonce is
    not part of the message; it is appended when the digest is computed.
    """
    if isinstance(contract_id, str):
        h = contract_id[2:] if contract_id.lower().startswith("0x") else contract_id
        cid = bytes.fromhex(h if len(h) % 2 == 0 else "0" + h)
    else:
        cid = bytes(contract_id)
    return b"".join(
        (
            hashlib.sha256(network_passphrase.encode("utf-8")).digest(),
            cid,
            function_name.encode("utf-8"),
            json.dumps(list(args), separators=(",", ":"), ensure_ascii=False).encode("utf-8"),
        )
    )


def build_envelope(
    chip: ChipSigner,
    message: bytes,
    nonce: int,
    *,
    encoding: str = "be32",
) -> AuthEnvelope:
    """Have `chip` sign (message, nonce) and package the result."""
    signature, recid = chip.sign_digest(chip_digest(message, nonce, encoding=encoding))
    return AuthEnvelope(
        message=bytes(message),
        signature=signature,
        recovery_id=recid,
        public_key=chip.public_key,
        nonce=nonce,
    )


def envelope_from_der(
    message: bytes,
    der: bytes,
    public_key: bytes,
    nonce: int,
    *,
    encoding: str = "be32",
) -> AuthEnvelope:
    """Package a DER signature returned by a chip, normalizing s and finding the selector."""
    signature, _ = der_to_compact(der)
    digest = chip_digest(message, nonce, encoding=encoding)
    return AuthEnvelope(
        message=bytes(message),
        signature=signature,
        recovery_id=determine_recovery_id(digest, signature, public_key),
        public_key=bytes(public_key),
        nonce=nonce,
    )


__all__ = [
    "ChipSigner",
    "SoftChip",
    "normalize_recovery_id",
    "determine_recovery_id",
    "build_auth_message",
    "build_envelope",
    "envelope_from_der",
]
