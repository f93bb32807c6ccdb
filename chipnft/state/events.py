"""
chipnft.state.events — pluggable event sinks for ledger events.

Events are append-only and topic-indexed. The orchestrator buffers the events
of a call and hands them to a sink only once the call's checkpoint has been
committed, so a reverted call never leaves a record behind.

Backends
--------
- InMemoryEventSink: fast, test/dev friendly; keeps all records in RAM.
- JsonlEventSink: append-only JSONL file; durable, used by the CLI.
- NullEventSink: drops everything.

Ordering
--------
Each published record carries a global `seq`, the `call_index` of the
committed call that produced it, and its `log_index` inside that call.
All three strictly increase in publication order.

Topic filtering is per-position with OR sets:
    get_logs(topics=["transfer", None, "GB..."])   # any sender, fixed recipient
    get_logs(topics=[("claim", "transfer")])       # either event kind
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from itertools import islice
from typing import (Any, Dict, Iterable, Iterator, List, Optional, Protocol,
                    Sequence, Tuple, Union, runtime_checkable)

log = logging.getLogger("chipnft.events")


@dataclass(frozen=True)
class Event:
    """An event as emitted by a ledger call (before publication)."""

    name: str
    topics: Tuple[str, ...]
    data: Dict[str, Any] = field(default_factory=dict)


def mint_event(token_id: int) -> Event:
    return Event("mint", ("mint",), {"token_id": token_id})


def claim_event(claimant: str, token_id: int) -> Event:
    return Event("claim", ("claim", claimant), {"claimant": claimant, "token_id": token_id})


def transfer_event(from_: str, to: str, token_id: int) -> Event:
    return Event(
        "transfer",
        ("transfer", from_, to),
        {"from": from_, "to": to, "token_id": token_id},
    )


@dataclass(frozen=True)
class EventRecord:
    """
    A published event with its ordering context.

    Fields
    ------
    seq : int
        0-based global sequence number in the sink.
    call_index : int
        0-based index of the committed call that emitted the event.
    log_index : int
        0-based index of the event inside its call, in emission order.
    event : Event
        The payload (name, topics, data).
    """

    seq: int
    call_index: int
    log_index: int
    event: Event

    @property
    def name(self) -> str:
        return self.event.name

    @property
    def topics(self) -> Tuple[str, ...]:
        return self.event.topics

    @property
    def data(self) -> Dict[str, Any]:
        return self.event.data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "call_index": self.call_index,
            "log_index": self.log_index,
            "name": self.name,
            "topics": list(self.topics),
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "EventRecord":
        return cls(
            seq=int(obj["seq"]),
            call_index=int(obj["call_index"]),
            log_index=int(obj["log_index"]),
            event=Event(
                name=str(obj["name"]),
                topics=tuple(str(t) for t in obj.get("topics", [])),
                data=dict(obj.get("data", {})),
            ),
        )


TopicSelector = Optional[Union[str, Sequence[str]]]
# Per-position topic filter. None = wildcard; str = exact; sequence = OR-of-options.


@runtime_checkable
class EventSink(Protocol):
    def publish(self, events: Sequence[Event]) -> List[EventRecord]:
        """Publish the events of one committed call. Returns stored records."""

    def get_logs(
        self,
        *,
        name: Optional[str] = None,
        topics: Optional[Sequence[TopicSelector]] = None,
        limit: Optional[int] = None,
    ) -> Iterable[EventRecord]:
        """Iterate matching records in ascending `seq` order."""

    def flush(self) -> None:
        """Force persistence, if applicable."""

    def close(self) -> None:
        """Release resources (files, buffers)."""


def _selects(value: str, selector: TopicSelector) -> bool:
    if selector is None:
        return True
    if isinstance(selector, str):
        return value == selector
    return value in selector


def matches(
    rec: EventRecord,
    name: Optional[str] = None,
    topics: Optional[Sequence[TopicSelector]] = None,
) -> bool:
    """True if `rec` passes the name filter and every positional topic selector."""
    if name is not None and rec.name != name:
        return False
    if topics is None:
        return True
    return len(topics) <= len(rec.topics) and all(
        _selects(value, sel) for value, sel in zip(rec.topics, topics)
    )


class _SinkBase:
    """
    Stamping and querying shared by the concrete sinks. Subclasses store
    records in `_store` and replay them in `_replay`.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._next_seq = 0
        self._next_call = 0

    def _store(self, records: List[EventRecord]) -> None:
        raise NotImplementedError

    def _replay(self) -> Iterator[EventRecord]:
        raise NotImplementedError

    def publish(self, events: Sequence[Event]) -> List[EventRecord]:
        if not events:
            return []
        with self._lock:
            first = self._next_seq
            records = [
                EventRecord(first + i, self._next_call, i, ev) for i, ev in enumerate(events)
            ]
            self._next_seq = first + len(records)
            self._next_call += 1
            self._store(records)
        return records

    def get_logs(
        self,
        *,
        name: Optional[str] = None,
        topics: Optional[Sequence[TopicSelector]] = None,
        limit: Optional[int] = None,
    ) -> List[EventRecord]:
        with self._lock:
            hits = (r for r in self._replay() if matches(r, name, topics))
            return list(islice(hits, limit))

    def flush(self) -> None:
        return

    def close(self) -> None:
        return


class InMemoryEventSink(_SinkBase, EventSink):
    """Thread-safe sink keeping every record in RAM. Tests and short-lived processes."""

    def __init__(self) -> None:
        super().__init__()
        self._records: List[EventRecord] = []

    def _store(self, records: List[EventRecord]) -> None:
        self._records.extend(records)

    def _replay(self) -> Iterator[EventRecord]:
        return iter(list(self._records))

    def close(self) -> None:
        with self._lock:
            self._records.clear()


class JsonlEventSink(_SinkBase, EventSink):
    """
    Append-only JSONL file, one EventRecord per line:

        {"seq":0,"call_index":0,"log_index":0,"name":"mint",
         "topics":["mint"],"data":{"token_id":0}}

    Reopening an existing file resumes `seq` and `call_index` after its last
    record. Lines that do not parse are logged and skipped. `flush()` fsyncs.
    """

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        super().__init__()
        self._path = os.fspath(path)
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        self._fh = open(self._path, "a+", encoding="utf-8", buffering=1)
        last = None
        for last in self._replay():
            pass
        if last is not None:
            self._next_seq = last.seq + 1
            self._next_call = last.call_index + 1

    @property
    def path(self) -> str:
        return self._path

    def _store(self, records: List[EventRecord]) -> None:
        self._fh.write(
            "".join(json.dumps(r.to_dict(), separators=(",", ":")) + "\n" for r in records)
        )

    def _replay(self) -> Iterator[EventRecord]:
        self._fh.flush()
        self._fh.seek(0)
        for n, line in enumerate(self._fh, 1):
            if not line.strip():
                continue
            try:
                yield EventRecord.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as e:
                log.warning(
                    "skipping malformed event line",
                    extra={"path": self._path, "line_no": n, "error": repr(e)},
                )

    def flush(self) -> None:
        with self._lock:
            self._fh.flush()
            os.fsync(self._fh.fileno())

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()


class NullEventSink(_SinkBase, EventSink):
    """Stamps records and returns them, stores nothing."""

    def _store(self, records: List[EventRecord]) -> None:
        return

    def _replay(self) -> Iterator[EventRecord]:
        return iter(())


__all__ = [
    "Event",
    "EventRecord",
    "TopicSelector",
    "EventSink",
    "InMemoryEventSink",
    "JsonlEventSink",
    "NullEventSink",
    "matches",
    "mint_event",
    "claim_event",
    "transfer_event",
]
