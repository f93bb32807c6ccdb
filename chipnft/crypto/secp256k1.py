"""
chipnft.crypto.secp256k1
========================

ECDSA public-key recovery and signature helpers over secp256k1.

Recovery (SEC1 §4.1.6), for digest z, signature (r, s) and selector j ∈ {0..3}:

    x   = r + (j >> 1) * n          (j ≥ 2 selects the rare r ≥ p - n case)
    R   = point with abscissa x and y parity (j & 1)
    Q   = r⁻¹ · (s·R − z·G)

The curve arithmetic comes from `py_ecc.secp256k1`; this module adds the
selector handling, range checks and SEC1 encodings around it.

Signatures must be in canonical low-s form (s ≤ n/2). A high-s signature is
rejected outright; use `normalize_s` (and flip the selector parity) first.

License: MIT
"""

from __future__ import annotations

from typing import Optional, Tuple

from py_ecc.secp256k1 import secp256k1 as _curve

P: int = _curve.P
N: int = _curve.N
G: Tuple[int, int] = _curve.G
HALF_N: int = N // 2

PUBLIC_KEY_LEN = 65
SIGNATURE_LEN = 64
DIGEST_LEN = 32

Point = Tuple[int, int]


class RecoveryError(ValueError):
    """The (digest, signature, selector) triple does not recover to a valid point."""


# ---- encodings --------------------------------------------------------------


def is_on_curve(point: Point) -> bool:
    x, y = point
    if not (0 <= x < P and 0 <= y < P):
        return False
    return (y * y - (x * x * x + _curve.A * x + _curve.B)) % P == 0


def encode_public_key(point: Point) -> bytes:
    """SEC1 uncompressed encoding: 0x04 || X(32) || Y(32)."""
    x, y = point
    return b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")


def decode_public_key(data: bytes) -> Point:
    """Inverse of `encode_public_key`; validates length, tag and curve membership."""
    if len(data) != PUBLIC_KEY_LEN or data[0] != 0x04:
        raise ValueError("public key must be 65 bytes starting with 0x04")
    point = (int.from_bytes(data[1:33], "big"), int.from_bytes(data[33:65], "big"))
    if not is_on_curve(point):
        raise ValueError("public key is not on secp256k1")
    return point


def split_signature(signature: bytes) -> Tuple[int, int]:
    if len(signature) != SIGNATURE_LEN:
        raise ValueError(f"signature must be {SIGNATURE_LEN} bytes")
    return int.from_bytes(signature[:32], "big"), int.from_bytes(signature[32:], "big")


def join_signature(r: int, s: int) -> bytes:
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


# ---- low-s ------------------------------------------------------------------


def is_low_s(s: int) -> bool:
    return 0 < s <= HALF_N


def normalize_s(s: int) -> Tuple[int, bool]:
    """Return (low_s, flipped). Flipping s also flips the recovery parity bit."""
    if s > HALF_N:
        return N - s, True
    return s, False


# ---- recovery ---------------------------------------------------------------


def _lift_x(x: int, odd: bool) -> Optional[Point]:
    if x >= P:
        return None
    alpha = (pow(x, 3, P) + _curve.A * x + _curve.B) % P
    beta = pow(alpha, (P + 1) // 4, P)
    if (beta * beta) % P != alpha:
        return None
    y = beta if (beta & 1) == int(odd) else P - beta
    return (x, y)


def recover_point(digest: bytes, r: int, s: int, recovery_id: int) -> Point:
    if len(digest) != DIGEST_LEN:
        raise RecoveryError("digest must be 32 bytes")
    if recovery_id not in (0, 1, 2, 3):
        raise RecoveryError("recovery id must be in 0..3")
    if not (0 < r < N):
        raise RecoveryError("r out of range")
    if not is_low_s(s):
        raise RecoveryError("s out of range or not low-s")

    R = _lift_x(r + (recovery_id >> 1) * N, bool(recovery_id & 1))
    if R is None:
        raise RecoveryError("no curve point for r")

    z = int.from_bytes(digest, "big") % N
    r_inv = _curve.inv(r, N)
    u1 = (-z * r_inv) % N
    u2 = (s * r_inv) % N
    Q = _curve.add(_curve.multiply(G, u1), _curve.multiply(R, u2))
    # py_ecc represents the point at infinity with a zero y
    if not Q[1] or not is_on_curve(Q):
        raise RecoveryError("recovered point at infinity")
    return Q


def recover_public_key(digest: bytes, signature: bytes, recovery_id: int) -> bytes:
    """
    Recover the 65-byte uncompressed public key that produced `signature`
    (r || s, 64 bytes) over `digest`. Raises RecoveryError on failure.
    """
    try:
        r, s = split_signature(signature)
    except ValueError as e:
        raise RecoveryError(str(e)) from e
    return encode_public_key(recover_point(digest, r, s, recovery_id))


def normalize_recovery_id(v: int) -> int:
    """Accept a raw selector (0-3) or an Ethereum-style v (27-30)."""
    if 27 <= v <= 30:
        return v - 27
    if 0 <= v <= 3:
        return v
    raise ValueError(f"invalid recovery value: {v}")


# ---- signing (software keys only) -------------------------------------------


def private_key_to_public_key(private_key: bytes) -> bytes:
    if len(private_key) != 32:
        raise ValueError("private key must be 32 bytes")
    k = int.from_bytes(private_key, "big")
    if not (0 < k < N):
        raise ValueError("private key out of range")
    return encode_public_key(_curve.privtopub(private_key))


def sign_digest(digest: bytes, private_key: bytes) -> Tuple[bytes, int]:
    """
    Deterministic (RFC 6979) low-s signature. Returns (r || s, recovery_id).
    """
    if len(digest) != DIGEST_LEN:
        raise ValueError("digest must be 32 bytes")
    v, r, s = _curve.ecdsa_raw_sign(digest, private_key)
    return join_signature(r, s), v - 27


__all__ = [
    "P",
    "N",
    "G",
    "HALF_N",
    "PUBLIC_KEY_LEN",
    "SIGNATURE_LEN",
    "RecoveryError",
    "is_on_curve",
    "encode_public_key",
    "decode_public_key",
    "split_signature",
    "join_signature",
    "is_low_s",
    "normalize_s",
    "recover_point",
    "recover_public_key",
    "normalize_recovery_id",
    "private_key_to_public_key",
    "sign_digest",
]
