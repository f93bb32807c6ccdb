"""
chipnft.contract — the chip-bound token collection.

`ChipNFT` composes the metadata store, the nonce registry and the token ledger
over one write journal, and runs every state-mutating call as an
all-or-nothing unit:

    lock → checkpoint → verify → ledger writes + nonce advance → buffer events
         → commit (one KV batch) → publish events

Any exception reverts the checkpoint and drops the buffered events, so a
failed call leaves neither state nor log behind. Calls are serialized with a
re-entrant lock; a nested call joins the outer call's checkpoint and event
buffer.

Usage
-----
    nft = ChipNFT.open("memory://")
    nft.construct("GADMIN", "Merch", "MRC", "ipfs://cid", 100)
    env = build_envelope(chip, b"mint", nonce=1)
    token_id = nft.mint(*env.fields())
    nft.claim("GALICE", *build_envelope(chip, b"claim", nonce=2).fields())
"""

from __future__ import annotations

import threading
from contextlib import ExitStack, contextmanager
from typing import Any, Iterator, List, Optional, Sequence

from chipnft import logging as clog
from chipnft.auth import AuthEnvelope, verify
from chipnft.config import NONCE_ENCODINGS, NftConfig, load_config
from chipnft.db import open_kv
from chipnft.db.kv import KV
from chipnft.errors import (ConfigError, IncorrectOwner, InvalidSignature,
                            NftError, NonExistentToken, TokenAlreadyMinted,
                            TokenIDsAreDepleted)
from chipnft.ledger import TokenLedger
from chipnft.metadata import CollectionInfo, MetadataStore, token_uri_for
from chipnft.nonces import NonceRegistry
from chipnft.state.events import (Event, EventRecord, EventSink,
                                  InMemoryEventSink, TopicSelector,
                                  claim_event, mint_event, transfer_event)
from chipnft.state.journal import Journal

log = clog.get_logger(__name__)

U64_MAX = (1 << 64) - 1


def _check_address(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{field} must be a non-empty address string")
    return value


def _check_token_id(token_id: Any) -> int:
    if isinstance(token_id, bool) or not isinstance(token_id, int):
        raise TypeError("token_id must be an int")
    if not (0 <= token_id <= U64_MAX):
        raise NonExistentToken(context={"token_id": token_id})
    return token_id


class ChipNFT:
    """
    A chip-authorized token collection over a KV store.

    Parameters
    ----------
    kv : KV
        Backing store. Committed calls reach it through one atomic batch each.
    events : EventSink | None
        Where committed events are published (default: in-memory).
    config : NftConfig | None
        Defaults to `load_config()`.
    nonce_encoding : str | None
        Overrides `config.nonce_encoding` ("be32" or "xdr").
    """

    def __init__(
        self,
        kv: KV,
        *,
        events: Optional[EventSink] = None,
        config: Optional[NftConfig] = None,
        nonce_encoding: Optional[str] = None,
    ) -> None:
        self._cfg = config or load_config()
        self._encoding = nonce_encoding or self._cfg.nonce_encoding
        if self._encoding not in NONCE_ENCODINGS:
            raise ConfigError(f"unknown nonce encoding {self._encoding!r}")
        self._kv = kv
        self._journal = Journal(kv)
        self._owns_events = events is None
        self._events: EventSink = InMemoryEventSink() if events is None else events
        self.meta = MetadataStore(self._journal)
        self.nonces = NonceRegistry(self._journal)
        self.ledger = TokenLedger(self._journal)
        self._lock = threading.RLock()
        self._buffers: List[List[Event]] = []

    @classmethod
    def open(
        cls,
        uri: str = "memory://",
        *,
        events: Optional[EventSink] = None,
        config: Optional[NftConfig] = None,
        nonce_encoding: Optional[str] = None,
    ) -> "ChipNFT":
        return cls(open_kv(uri), events=events, config=config, nonce_encoding=nonce_encoding)

    @property
    def nonce_encoding(self) -> str:
        return self._encoding

    @property
    def events(self) -> EventSink:
        return self._events

    def close(self) -> None:
        """Close the store, and the event sink only if this instance created it."""
        with self._lock:
            if self._owns_events:
                self._events.close()
            self._kv.close()

    def __enter__(self) -> "ChipNFT":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Call scope
    # ------------------------------------------------------------------ #

    @contextmanager
    def _call(self, op: str) -> Iterator[List[Event]]:
        with self._lock, ExitStack() as scope:
            if not self._buffers:
                scope.enter_context(clog.trace_scope(clog.context().get("trace_id")))
                clog.bind(op=op)
            buffered: List[Event] = []
            self._buffers.append(buffered)
            self._journal.begin()
            try:
                yield buffered
            except BaseException as e:
                self._journal.revert()
                self._buffers.pop()
                if isinstance(e, NftError):
                    log.info("call aborted", extra={"error": e.code, "status": e.status})
                raise
            self._buffers.pop()
            self._journal.commit()
            if self._buffers:
                self._buffers[-1].extend(buffered)
                return
            try:
                records = self._events.publish(buffered)
            except Exception:
                # state is committed at this point; the call still succeeds
                log.exception("event publish failed", extra={"events": len(buffered)})
                return
            log.info("call committed", extra={"events": len(records)})

    def _verify(self, env: AuthEnvelope) -> None:
        verify(
            self.nonces,
            env,
            encoding=self._encoding,
            max_message_bytes=self._cfg.max_message_bytes,
        )

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    def construct(
        self,
        admin: str,
        name: str,
        symbol: str,
        base_uri: str,
        max_supply: int,
    ) -> None:
        """Fix the collection metadata. Raises AlreadyConstructed on a second call."""
        with self._call("construct"):
            self.meta.construct(admin, name, symbol, base_uri, max_supply)

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def mint(
        self,
        message: bytes,
        signature: bytes,
        recovery_id: int,
        public_key: bytes,
        nonce: int,
    ) -> int:
        """Bind a new sequential token id to the signing chip. Leaves it unowned."""
        env = AuthEnvelope(message, signature, recovery_id, public_key, nonce)
        with self._call("mint") as events:
            self._verify(env)
            pk = bytes(public_key)

            existing = self.ledger.token_of(pk)
            if existing is not None:
                raise TokenAlreadyMinted(context={"token_id": existing})

            cap = self.meta.max_supply()
            token_id = self.meta.next_id()
            if token_id >= cap:
                raise TokenIDsAreDepleted(context={"max_supply": cap})

            self.ledger.bind(token_id, pk)
            self.meta.set_next_id(token_id + 1)
            self.nonces.advance(pk, nonce)
            events.append(mint_event(token_id))
            clog.bind(token_id=token_id)
            return token_id

    def claim(
        self,
        claimant: str,
        message: bytes,
        signature: bytes,
        recovery_id: int,
        public_key: bytes,
        nonce: int,
    ) -> int:
        """Give the chip's token its first owner."""
        _check_address(claimant, "claimant")
        env = AuthEnvelope(message, signature, recovery_id, public_key, nonce)
        with self._call("claim") as events:
            self._verify(env)
            pk = bytes(public_key)

            token_id = self.ledger.token_of(pk)
            if token_id is None:
                raise NonExistentToken("no token is bound to this chip")
            clog.bind(token_id=token_id)
            if self.ledger.owner_of(token_id) is not None:
                raise TokenAlreadyMinted("token already claimed", context={"token_id": token_id})

            self.ledger.set_owner(token_id, claimant)
            self.ledger.credit(claimant)
            self.nonces.advance(pk, nonce)
            events.append(claim_event(claimant, token_id))
            return token_id

    def transfer(
        self,
        from_: str,
        to: str,
        token_id: int,
        message: bytes,
        signature: bytes,
        recovery_id: int,
        public_key: bytes,
        nonce: int,
    ) -> None:
        """Move `token_id` from its current owner to `to`, authorized by the minting chip."""
        _check_address(from_, "from")
        _check_address(to, "to")
        token_id = _check_token_id(token_id)
        env = AuthEnvelope(message, signature, recovery_id, public_key, nonce)
        with self._call("transfer") as events:
            clog.bind(token_id=token_id)
            self._verify(env)
            pk = bytes(public_key)

            bound = self.ledger.public_key_of(token_id)
            if bound is None:
                raise NonExistentToken(context={"token_id": token_id})
            if bound != pk:
                raise InvalidSignature(
                    "chip is not the one bound to this token",
                    context={"reason": "chip_mismatch", "token_id": token_id},
                )

            owner = self.ledger.owner_of(token_id)
            if owner is None:
                raise NonExistentToken("token has not been claimed", context={"token_id": token_id})
            if owner != from_:
                raise IncorrectOwner(context={"token_id": token_id})

            self.ledger.set_owner(token_id, to)
            self.ledger.debit(from_)
            self.ledger.credit(to)
            self.nonces.advance(pk, nonce)
            events.append(transfer_event(from_, to, token_id))

    # ------------------------------------------------------------------ #
    # Views
    # ------------------------------------------------------------------ #

    def owner_of(self, token_id: int) -> str:
        token_id = _check_token_id(token_id)
        with self._lock:
            owner = self.ledger.owner_of(token_id)
        if owner is None:
            raise NonExistentToken(context={"token_id": token_id})
        return owner

    def balance(self, address: str) -> int:
        with self._lock:
            return self.ledger.balance(address)

    def get_nonce(self, public_key: bytes) -> int:
        with self._lock:
            return self.nonces.get_nonce(bytes(public_key))

    def token_uri(self, token_id: int) -> str:
        token_id = _check_token_id(token_id)
        with self._lock:
            if not self.ledger.exists(token_id):
                raise NonExistentToken(context={"token_id": token_id})
            return token_uri_for(self.meta.base_uri(), token_id)

    def token_of(self, public_key: bytes) -> int:
        with self._lock:
            token_id = self.ledger.token_of(bytes(public_key))
        if token_id is None:
            raise NonExistentToken("no token is bound to this chip")
        return token_id

    def name(self) -> str:
        with self._lock:
            return self.meta.name()

    def symbol(self) -> str:
        with self._lock:
            return self.meta.symbol()

    def max_supply(self) -> int:
        with self._lock:
            return self.meta.max_supply()

    def total_minted(self) -> int:
        with self._lock:
            return self.meta.next_id()

    def info(self) -> CollectionInfo:
        with self._lock:
            return self.meta.info()

    def get_logs(
        self,
        *,
        name: Optional[str] = None,
        topics: Optional[Sequence[TopicSelector]] = None,
        limit: Optional[int] = None,
    ) -> List[EventRecord]:
        return list(self._events.get_logs(name=name, topics=topics, limit=limit))


__all__ = ["ChipNFT"]
