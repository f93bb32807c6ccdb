"""
Per-chip anti-replay counters.

Storage: bucket `n:` keyed by the 65-byte public key, value u32 big-endian.
A key that was never used reads as 0. Only the orchestrator advances a
counter, and only inside the checkpoint of a call whose signature verified
for exactly that value.
"""

from __future__ import annotations

from chipnft.db.kv import Prefix, be_u32, decode_be
from chipnft.errors import InvalidSignature
from chipnft.state.journal import Journal

NONCE = Prefix(b"n")

U32_MAX = (1 << 32) - 1


class NonceRegistry:
    def __init__(self, journal: Journal) -> None:
        self._journal = journal

    def get_nonce(self, public_key: bytes) -> int:
        raw = self._journal.get(NONCE.key(public_key))
        if raw is None:
            return 0
        return decode_be(raw, 4, what="nonce")

    def advance(self, public_key: bytes, value: int) -> None:
        """Record `value` as the last accepted nonce. Must strictly increase."""
        current = self.get_nonce(public_key)
        if not (current < value <= U32_MAX):
            raise InvalidSignature(
                "nonce must increase",
                context={"reason": "stale_nonce", "stored": current, "nonce": value},
            )
        self._journal.set(NONCE.key(public_key), be_u32(value))


__all__ = ["NONCE", "NonceRegistry"]
