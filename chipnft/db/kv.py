"""
chipnft.db.kv — storage protocols and the bucket key scheme.

The ledger sees storage only through the `KV` protocol below; SQLite is the
one backend (`chipnft.db.sqlite`). Keys are built with `Prefix`:

    NONCE = Prefix(b"n")
    NONCE.key(public_key)        -> b"n:" + varlen(65) + public_key
    OWNER.key(7)                 -> b"o:" + varlen(8) + u64be(7)

Each part carries its own length, so two different part tuples can never
produce the same key (an address containing ":" is just bytes). Integers as
parts and as stored values are fixed-width big-endian, which also keeps
numeric keys in numeric order for prefix scans.

Writes that must land together go through a batch:

    with kv.batch() as b:
        b.put(key_a, value_a)
        b.delete(key_b)
"""

from __future__ import annotations

from typing import Iterator, Optional, Protocol, Tuple, Union, runtime_checkable

from chipnft.errors import StorageError

KeyPart = Union[bytes, bytearray, memoryview, str, int]

SEP = b":"


def _varlen(n: int) -> bytes:
    """Unsigned LEB128."""
    if n < 0:
        raise ValueError("length must be non-negative")
    out = bytearray([n & 0x7F])
    n >>= 7
    while n:
        out[-1] |= 0x80
        out.append(n & 0x7F)
        n >>= 7
    return bytes(out)


def _fixed(n: int, width: int) -> bytes:
    if not (0 <= n < 1 << (8 * width)):
        raise ValueError(f"value {n} does not fit in u{8 * width}")
    return n.to_bytes(width, "big")


def be_u32(n: int) -> bytes:
    return _fixed(n, 4)


def be_u64(n: int) -> bytes:
    return _fixed(n, 8)


def decode_be(raw: bytes, width: int, *, what: str = "value") -> int:
    """Inverse of be_u32/be_u64; a stored value of the wrong width is corruption."""
    if len(raw) != width:
        raise StorageError(f"{what}: expected {width} bytes, found {len(raw)}")
    return int.from_bytes(raw, "big")


def _encode_part(part: KeyPart) -> bytes:
    if isinstance(part, bool):
        raise TypeError("bool is not a key part")
    if isinstance(part, int):
        return be_u64(part)
    if isinstance(part, str):
        return part.encode("utf-8")
    if isinstance(part, (bytes, bytearray, memoryview)):
        return bytes(part)
    raise TypeError(f"unsupported key part type: {type(part)!r}")


class Prefix:
    """One storage bucket: `raw` is the namespace (ending in ":"), `key()` builds keys in it."""

    __slots__ = ("_raw",)

    def __init__(self, ns: Union[bytes, str]) -> None:
        ns_b = ns.encode("ascii") if isinstance(ns, str) else bytes(ns)
        ns_b = ns_b.rstrip(SEP)
        if not ns_b:
            raise ValueError("namespace must be non-empty")
        self._raw = ns_b + SEP

    @property
    def raw(self) -> bytes:
        return self._raw

    def key(self, *parts: KeyPart) -> bytes:
        encoded = [_encode_part(p) for p in parts]
        return self._raw + b"".join(_varlen(len(e)) + e for e in encoded)

    def __repr__(self) -> str:
        return f"Prefix({self._raw!r})"


# ---- protocols ---------------------------------------------------------------


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        """Stored value, or None."""
        ...

    def has(self, key: bytes) -> bool: ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """(key, value) pairs under `prefix`, ascending by key bytes."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class Batch(Protocol):
    """
    Atomic group of writes. Leaving the `with` block normally commits;
    leaving it with an exception rolls every write back.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def batch(self) -> Batch: ...


__all__ = ["Prefix", "KeyPart", "be_u32", "be_u64", "decode_be", "ReadOnlyKV", "Batch", "KV"]
