"""
chipnft.crypto — secp256k1 recovery, low-s and DER helpers.
"""

from __future__ import annotations

from .der import DerError, der_to_compact, parse_der_signature
from .secp256k1 import (N, P, RecoveryError, decode_public_key,
                        encode_public_key, is_low_s, normalize_s,
                        private_key_to_public_key, recover_public_key,
                        sign_digest)

__all__ = [
    "N",
    "P",
    "RecoveryError",
    "DerError",
    "recover_public_key",
    "encode_public_key",
    "decode_public_key",
    "is_low_s",
    "normalize_s",
    "private_key_to_public_key",
    "sign_digest",
    "parse_der_signature",
    "der_to_compact",
]
