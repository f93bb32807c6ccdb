"""
chipnft.state.journal — staged writes over a KV with begin/commit/revert.

Every ledger call runs inside a checkpoint. Writes go to the top overlay;
reads consult overlays from top → bottom and then the backing store.
`commit()` merges the top overlay into its parent, or, for the outermost
checkpoint, writes every staged key to the store through a single
`kv.batch()`. `revert()` discards the top overlay.

Key properties
--------------
- No write reaches the store until the outermost checkpoint commits.
- `None` in an overlay is an explicit deletion marker.
- Nested checkpoints merge in O(changes).

Intended usage
--------------
    j = Journal(open_kv("memory://"))
    j.begin()
    j.set(b"n:...", be_u32(1))
    j.commit()          # one atomic batch to the store

Writing outside a checkpoint is an error: there would be nothing to revert.
"""

from __future__ import annotations

import sqlite3
from typing import Dict, List, Optional

from chipnft.db.kv import KV
from chipnft.errors import StorageError


def _b(x: bytes | bytearray | memoryview, *, name: str) -> bytes:
    if not isinstance(x, (bytes, bytearray, memoryview)):
        raise TypeError(f"{name} must be bytes-like")
    return bytes(x)


class Journal:
    """
    A copy-on-write write journal with nested checkpoints over a `KV`.

    API highlights
    --------------
    - begin() / commit() / revert() / depth()
    - get(), has(), set(), delete()
    - pending_keys()
    """

    def __init__(self, kv: KV) -> None:
        self._kv = kv
        self._layers: List[Dict[bytes, Optional[bytes]]] = []

    @property
    def kv(self) -> KV:
        return self._kv

    # ------------------------------------------------------------------ #
    # Checkpointing
    # ------------------------------------------------------------------ #

    def depth(self) -> int:
        """Number of open checkpoints (0 when idle)."""
        return len(self._layers)

    def begin(self) -> int:
        """Open a checkpoint. Returns the new depth."""
        self._layers.append({})
        return len(self._layers)

    def commit(self) -> None:
        """Merge the top overlay into its parent, or flush it to the store."""
        if not self._layers:
            raise RuntimeError("commit without an open checkpoint")
        top = self._layers.pop()
        if self._layers:
            self._layers[-1].update(top)
            return
        self._flush(top)

    def revert(self) -> None:
        """Discard the top overlay."""
        if not self._layers:
            raise RuntimeError("revert without an open checkpoint")
        self._layers.pop()

    # ------------------------------------------------------------------ #
    # Reads & writes
    # ------------------------------------------------------------------ #

    def get(self, key: bytes | bytearray | memoryview) -> Optional[bytes]:
        k = _b(key, name="key")
        for layer in reversed(self._layers):
            if k in layer:
                return layer[k]
        return self._kv.get(k)

    def has(self, key: bytes | bytearray | memoryview) -> bool:
        return self.get(key) is not None

    def set(
        self,
        key: bytes | bytearray | memoryview,
        value: bytes | bytearray | memoryview,
    ) -> None:
        self._top()[_b(key, name="key")] = _b(value, name="value")

    def delete(self, key: bytes | bytearray | memoryview) -> None:
        self._top()[_b(key, name="key")] = None

    def pending_keys(self) -> int:
        """Distinct staged keys across all open checkpoints."""
        seen = set()
        for layer in self._layers:
            seen.update(layer.keys())
        return len(seen)

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _top(self) -> Dict[bytes, Optional[bytes]]:
        if not self._layers:
            raise RuntimeError("write outside of a checkpoint")
        return self._layers[-1]

    def _flush(self, layer: Dict[bytes, Optional[bytes]]) -> None:
        if not layer:
            return
        try:
            with self._kv.batch() as b:
                for k in sorted(layer):
                    v = layer[k]
                    if v is None:
                        b.delete(k)
                    else:
                        b.put(k, v)
        except sqlite3.Error as e:
            raise StorageError(f"journal flush failed: {e}") from e


__all__ = ["Journal"]
