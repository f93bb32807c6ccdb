"""
Chip authorization envelopes and their verification.

A chip authorizes one ledger call by signing

    digest = SHA-256(message || encode_nonce(nonce))

with its secp256k1 key. The ledger recovers the signer from
(digest, r || s, recovery_id) and accepts the call only if the recovered key
equals the presented public key and the nonce is strictly greater than the
last one accepted for that key.

Nonce encodings
---------------
- "be32": 4-byte big-endian counter.
- "xdr":  8 bytes, 0x00000003 || be32. This is the ScVal U32 form produced by
          Soroban's `nonce.to_xdr()`, so chips and clients built for the
          on-chain contract verify unchanged.

`verify` never writes. The caller advances the nonce inside the same
checkpoint as the rest of the call's effects.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from chipnft import logging as clog
from chipnft.crypto.secp256k1 import (PUBLIC_KEY_LEN, SIGNATURE_LEN,
                                      RecoveryError, normalize_recovery_id,
                                      recover_public_key)
from chipnft.errors import InvalidSignature
from chipnft.nonces import U32_MAX, NonceRegistry

log = clog.get_logger(__name__)

_XDR_U32_TAG = (3).to_bytes(4, "big")


@dataclass(frozen=True)
class AuthEnvelope:
    """Everything a chip contributes to one authorized call."""

    message: bytes
    signature: bytes
    recovery_id: int
    public_key: bytes
    nonce: int

    def fields(self) -> Tuple[bytes, bytes, int, bytes, int]:
        """Positional arguments for ChipNFT.mint / claim / transfer (after their own)."""
        return (self.message, self.signature, self.recovery_id, self.public_key, self.nonce)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message.hex(),
            "signature": self.signature.hex(),
            "recovery_id": self.recovery_id,
            "public_key": self.public_key.hex(),
            "nonce": self.nonce,
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "AuthEnvelope":
        return cls(
            message=bytes.fromhex(obj["message"]),
            signature=bytes.fromhex(obj["signature"]),
            recovery_id=normalize_recovery_id(int(obj["recovery_id"])),
            public_key=bytes.fromhex(obj["public_key"]),
            nonce=int(obj["nonce"]),
        )


def encode_nonce(nonce: int, encoding: str = "be32") -> bytes:
    if not (0 <= nonce <= U32_MAX):
        raise ValueError("nonce out of u32 range")
    be = nonce.to_bytes(4, "big")
    if encoding == "be32":
        return be
    if encoding == "xdr":
        return _XDR_U32_TAG + be
    raise ValueError(f"unknown nonce encoding {encoding!r}")


def chip_digest(message: bytes, nonce: int, *, encoding: str = "be32") -> bytes:
    """The 32-byte digest a chip signs for (message, nonce)."""
    return hashlib.sha256(bytes(message) + encode_nonce(nonce, encoding)).digest()


def _reject(reason: str, message: str, **ctx: Any) -> InvalidSignature:
    log.debug("authorization rejected", extra={"reason": reason, **ctx})
    return InvalidSignature(message, context={"reason": reason, **ctx})


def check_envelope(env: AuthEnvelope, *, max_message_bytes: Optional[int] = None) -> None:
    """Shape checks; every failure is an InvalidSignature with a `reason`."""
    if not isinstance(env.message, (bytes, bytearray)):
        raise _reject("malformed_message", "message must be bytes")
    if max_message_bytes is not None and len(env.message) > max_message_bytes:
        raise _reject(
            "message_too_long",
            "message exceeds the configured cap",
            length=len(env.message),
            limit=max_message_bytes,
        )
    if not isinstance(env.signature, (bytes, bytearray)) or len(env.signature) != SIGNATURE_LEN:
        raise _reject("malformed_signature", "signature must be 64 bytes (r || s)")
    if (
        not isinstance(env.public_key, (bytes, bytearray))
        or len(env.public_key) != PUBLIC_KEY_LEN
        or env.public_key[0] != 0x04
    ):
        raise _reject("malformed_public_key", "public key must be 65 bytes starting with 0x04")
    if isinstance(env.recovery_id, bool) or env.recovery_id not in (0, 1, 2, 3):
        raise _reject("malformed_recovery_id", "recovery id must be in 0..3")
    if isinstance(env.nonce, bool) or not isinstance(env.nonce, int) or not (0 <= env.nonce <= U32_MAX):
        raise _reject("malformed_nonce", "nonce must be an unsigned 32-bit integer")


def verify(
    nonces: NonceRegistry,
    env: AuthEnvelope,
    *,
    encoding: str = "be32",
    max_message_bytes: Optional[int] = None,
) -> None:
    """
    Succeed silently or raise InvalidSignature.

    Order: envelope shape → nonce freshness → digest → recovery → key equality.
    """
    check_envelope(env, max_message_bytes=max_message_bytes)

    stored = nonces.get_nonce(bytes(env.public_key))
    if env.nonce <= stored:
        raise _reject("stale_nonce", "nonce already used", stored=stored, nonce=env.nonce)

    digest = chip_digest(env.message, env.nonce, encoding=encoding)
    try:
        recovered = recover_public_key(digest, bytes(env.signature), env.recovery_id)
    except RecoveryError as e:
        raise _reject("signature_mismatch", "signature does not recover", detail=str(e)) from e

    if recovered != bytes(env.public_key):
        raise _reject("signature_mismatch", "signature was not made by the presented key")


__all__ = [
    "AuthEnvelope",
    "encode_nonce",
    "chip_digest",
    "check_envelope",
    "verify",
]
