"""
Collection metadata: admin, name, symbol, base URI, supply cap, id counter.

Everything is written once by `construct`; only `next_id` moves afterwards.
Reads before construction raise UnsetMetadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from chipnft.db.kv import Prefix, be_u64, decode_be
from chipnft.errors import AlreadyConstructed, StorageError, UnsetMetadata
from chipnft.state.journal import Journal

META = Prefix(b"m")

K_ADMIN = META.key("admin")
K_NAME = META.key("name")
K_SYMBOL = META.key("symbol")
K_URI = META.key("uri")
K_MAX_SUPPLY = META.key("max_supply")
K_NEXT_ID = META.key("next_id")

U64_MAX = (1 << 64) - 1


@dataclass(frozen=True)
class CollectionInfo:
    admin: str
    name: str
    symbol: str
    base_uri: str
    max_supply: int
    next_id: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "admin": self.admin,
            "name": self.name,
            "symbol": self.symbol,
            "base_uri": self.base_uri,
            "max_supply": self.max_supply,
            "total_minted": self.next_id,
        }


def token_uri_for(base_uri: str, token_id: int) -> str:
    """base + decimal id, joined by a single "/" unless base is empty or ends in "/"."""
    if not base_uri or base_uri.endswith("/"):
        return f"{base_uri}{token_id}"
    return f"{base_uri}/{token_id}"


class MetadataStore:
    def __init__(self, journal: Journal) -> None:
        self._j = journal

    def is_constructed(self) -> bool:
        return self._j.has(K_MAX_SUPPLY)

    def construct(
        self,
        admin: str,
        name: str,
        symbol: str,
        base_uri: str,
        max_supply: int,
    ) -> None:
        if self.is_constructed():
            raise AlreadyConstructed()
        if not isinstance(admin, str) or not admin:
            raise ValueError("admin must be a non-empty string")
        if not isinstance(name, str) or not name:
            raise ValueError("name must be a non-empty string")
        if not isinstance(symbol, str) or not symbol:
            raise ValueError("symbol must be a non-empty string")
        if not isinstance(base_uri, str):
            raise ValueError("base_uri must be a string")
        if isinstance(max_supply, bool) or not isinstance(max_supply, int) or not (0 <= max_supply <= U64_MAX):
            raise ValueError("max_supply must be an unsigned 64-bit integer")

        self._j.set(K_ADMIN, admin.encode("utf-8"))
        self._j.set(K_NAME, name.encode("utf-8"))
        self._j.set(K_SYMBOL, symbol.encode("utf-8"))
        self._j.set(K_URI, base_uri.encode("utf-8"))
        self._j.set(K_MAX_SUPPLY, be_u64(max_supply))
        self._j.set(K_NEXT_ID, be_u64(0))

    # ---- reads -------------------------------------------------------------

    def _text(self, key: bytes, field: str) -> str:
        raw = self._j.get(key)
        if raw is None:
            raise UnsetMetadata(context={"field": field})
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageError(f"metadata field {field} is not UTF-8") from e

    def _u64(self, key: bytes, field: str) -> int:
        raw = self._j.get(key)
        if raw is None:
            raise UnsetMetadata(context={"field": field})
        return decode_be(raw, 8, what=field)

    def admin(self) -> str:
        return self._text(K_ADMIN, "admin")

    def name(self) -> str:
        return self._text(K_NAME, "name")

    def symbol(self) -> str:
        return self._text(K_SYMBOL, "symbol")

    def base_uri(self) -> str:
        return self._text(K_URI, "base_uri")

    def max_supply(self) -> int:
        return self._u64(K_MAX_SUPPLY, "max_supply")

    def next_id(self) -> int:
        return self._u64(K_NEXT_ID, "next_id")

    def set_next_id(self, value: int) -> None:
        self._j.set(K_NEXT_ID, be_u64(value))

    def info(self) -> CollectionInfo:
        return CollectionInfo(
            admin=self.admin(),
            name=self.name(),
            symbol=self.symbol(),
            base_uri=self.base_uri(),
            max_supply=self.max_supply(),
            next_id=self.next_id(),
        )


__all__ = ["META", "CollectionInfo", "MetadataStore", "token_uri_for"]
