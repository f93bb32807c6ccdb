"""
chipnft.ledger — token identity, chip binding, ownership and balances.

Buckets (see chipnft.db.kv for the key scheme):

    o:  token id  → owner address (UTF-8)
    p:  token id  → bound chip public key (65 bytes)
    t:  public key → token id (u64 BE)       reverse index
    b:  address   → balance (u32 BE)

The ledger only reads and stages writes on the journal. Preconditions that
decide which error a call raises live in `chipnft.contract`; the checks here
guard the storage invariants themselves (bind-once, checked balance math).
"""

from __future__ import annotations

from typing import Optional

from chipnft.db.kv import Prefix, be_u32, be_u64, decode_be
from chipnft.errors import MathOverflow, StorageError, TokenAlreadyMinted
from chipnft.state.journal import Journal

OWNER = Prefix(b"o")
PUBKEY = Prefix(b"p")
TOKEN = Prefix(b"t")
BALANCE = Prefix(b"b")

U32_MAX = (1 << 32) - 1


# ---- checked u32 arithmetic ------------------------------------------------


def u32_add(x: int, y: int) -> int:
    z = x + y
    if z > U32_MAX:
        raise MathOverflow("balance would exceed u32", context={"value": x, "delta": y})
    return z


def u32_sub(x: int, y: int) -> int:
    if y > x:
        raise MathOverflow("balance would underflow", context={"value": x, "delta": y})
    return x - y


class TokenLedger:
    def __init__(self, journal: Journal) -> None:
        self._j = journal

    # ---- reads -------------------------------------------------------------

    def token_of(self, public_key: bytes) -> Optional[int]:
        raw = self._j.get(TOKEN.key(public_key))
        return None if raw is None else decode_be(raw, 8, what="token id")

    def public_key_of(self, token_id: int) -> Optional[bytes]:
        return self._j.get(PUBKEY.key(token_id))

    def owner_of(self, token_id: int) -> Optional[str]:
        raw = self._j.get(OWNER.key(token_id))
        if raw is None:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageError(f"owner of token {token_id} is not UTF-8") from e

    def exists(self, token_id: int) -> bool:
        return self._j.has(PUBKEY.key(token_id))

    def balance(self, address: str) -> int:
        raw = self._j.get(BALANCE.key(address))
        return 0 if raw is None else decode_be(raw, 4, what="balance")

    # ---- writes ------------------------------------------------------------

    def bind(self, token_id: int, public_key: bytes) -> None:
        """Persist both directions of the id ↔ public key mapping, once."""
        if self._j.has(TOKEN.key(public_key)) or self._j.has(PUBKEY.key(token_id)):
            raise TokenAlreadyMinted(context={"token_id": token_id})
        self._j.set(PUBKEY.key(token_id), bytes(public_key))
        self._j.set(TOKEN.key(public_key), be_u64(token_id))

    def set_owner(self, token_id: int, address: str) -> None:
        self._j.set(OWNER.key(token_id), address.encode("utf-8"))

    def credit(self, address: str, amount: int = 1) -> int:
        new = u32_add(self.balance(address), amount)
        self._j.set(BALANCE.key(address), be_u32(new))
        return new

    def debit(self, address: str, amount: int = 1) -> int:
        new = u32_sub(self.balance(address), amount)
        if new == 0:
            self._j.delete(BALANCE.key(address))
        else:
            self._j.set(BALANCE.key(address), be_u32(new))
        return new


__all__ = ["OWNER", "PUBKEY", "TOKEN", "BALANCE", "TokenLedger", "u32_add", "u32_sub"]
