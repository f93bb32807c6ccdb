"""
DER → compact signature conversion for chips that answer with ASN.1.

    SEQUENCE { INTEGER r, INTEGER s }   →   r(32) || s(32), s normalized low

Only short-form lengths are accepted; a secp256k1 signature never needs more.
"""

from __future__ import annotations

from typing import Tuple

from .secp256k1 import N, join_signature, normalize_s


class DerError(ValueError):
    pass


def _read_int(der: bytes, offset: int, what: str) -> Tuple[int, int]:
    if offset + 2 > len(der) or der[offset] != 0x02:
        raise DerError(f"invalid DER: {what} is not an INTEGER")
    length = der[offset + 1]
    start = offset + 2
    end = start + length
    if length == 0 or length > 33 or end > len(der):
        raise DerError(f"invalid DER: bad {what} length {length}")
    raw = der[start:end]
    if raw[0] & 0x80:
        raise DerError(f"invalid DER: {what} is negative")
    return int.from_bytes(raw, "big"), end


def parse_der_signature(der: bytes) -> Tuple[int, int]:
    """Return (r, s) as integers. s is not normalized here."""
    if len(der) < 8 or der[0] != 0x30:
        raise DerError("invalid DER: not a SEQUENCE")
    if der[1] != len(der) - 2:
        raise DerError("invalid DER: sequence length mismatch")
    r, off = _read_int(der, 2, "r")
    s, off = _read_int(der, off, "s")
    if off != len(der):
        raise DerError("invalid DER: trailing bytes")
    if not (0 < r < N and 0 < s < N):
        raise DerError("invalid DER: r or s out of range")
    return r, s


def der_to_compact(der: bytes) -> Tuple[bytes, bool]:
    """
    Convert a DER signature to 64-byte r || s with low-s applied.
    Returns (signature64, was_normalized). A normalized signature recovers
    with the opposite parity bit of the selector.
    """
    r, s = parse_der_signature(der)
    s, flipped = normalize_s(s)
    return join_signature(r, s), flipped


__all__ = ["DerError", "parse_der_signature", "der_to_compact"]
