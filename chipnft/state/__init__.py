"""
chipnft.state — write journal and event sinks shared by the ledger.
"""

from __future__ import annotations

from .events import (Event, EventRecord, EventSink, InMemoryEventSink,
                     JsonlEventSink, NullEventSink)
from .journal import Journal

__all__ = [
    "Journal",
    "Event",
    "EventRecord",
    "EventSink",
    "InMemoryEventSink",
    "JsonlEventSink",
    "NullEventSink",
]
