"""
chipnft.logging
---------------

Structured logging on top of the standard library.

Every record under the `chipnft` logger tree is rendered with the fields
bound in the current context (trace_id, op, token_id, public_key, ...) plus
any `extra=` fields passed at the call site. Two renderings exist: one JSON
object per line, or a single human-readable line (colored on a TTY).

    from chipnft import logging as clog

    clog.configure(json=False, level="INFO")
    log = clog.get_logger(__name__)

    with clog.trace_scope():
        clog.bind(op="mint")
        log.info("minted", extra={"token_id": 0})

Values are made printable before rendering: bytes become hex, paths and
unknown objects become strings, dataclasses become dicts.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

ROOT_LOGGER = "chipnft"

_CTX: ContextVar[Dict[str, Any]] = ContextVar("chipnft_log_context", default={})

# Context fields shown in the text rendering, in this order.
TEXT_CONTEXT_KEYS = ("trace_id", "op", "token_id", "public_key")

# Attributes every LogRecord carries; anything else on a record came from `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}

_RESET = "\x1b[0m"
_DIM = "\x1b[90m"
_NAME = "\x1b[36m"
_LEVEL_COLORS = {
    logging.DEBUG: _DIM,
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;35m",
}


# -- context ------------------------------------------------------------------


def context() -> Dict[str, Any]:
    """Snapshot of the fields bound in the current context."""
    return dict(_CTX.get())


def bind(**fields: Any) -> None:
    merged = {**_CTX.get(), **{k: _printable(v) for k, v in fields.items()}}
    _CTX.set(merged)


def unbind(*keys: str) -> None:
    _CTX.set({k: v for k, v in _CTX.get().items() if k not in keys})


def clear_context() -> None:
    _CTX.set({})


def short_uuid() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind `trace_id` (a fresh one if not given) for the body of the block.
    Whatever was bound inside the block is discarded on exit.
    """
    token = _CTX.set(dict(_CTX.get()))
    tid = trace_id or short_uuid()
    bind(trace_id=tid)
    try:
        yield tid
    finally:
        _CTX.reset(token)


# -- rendering ----------------------------------------------------------------


def _printable(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, _dt.datetime):
        return (v if v.tzinfo else v.replace(tzinfo=_dt.timezone.utc)).isoformat()
    if is_dataclass(v) and not isinstance(v, type):
        return asdict(v)
    return str(v)


def _now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _is_tty(stream: Any) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return callable(isatty) and bool(isatty()) and "NO_COLOR" not in os.environ
    except (ValueError, OSError):
        return False


class _ContextFormatter(logging.Formatter):
    """Shared plumbing: split a record into (context fields, extra fields)."""

    def fields(self, record: logging.LogRecord) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        ctx = context()
        extras = {
            k: _printable(v)
            for k, v in vars(record).items()
            if k not in _RECORD_ATTRS and not k.startswith("_") and k not in ctx
        }
        return ctx, extras

    @staticmethod
    def traceback_text(record: logging.LogRecord) -> str:
        return "".join(traceback.format_exception(*record.exc_info)).rstrip()


class JSONFormatter(_ContextFormatter):
    def format(self, record: logging.LogRecord) -> str:
        ctx, extras = self.fields(record)
        doc: Dict[str, Any] = {
            "ts": _now(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **ctx,
            **extras,
        }
        if record.exc_info:
            doc["err"] = self.traceback_text(record)
        return json.dumps(doc, default=str, separators=(",", ":"))


class TextFormatter(_ContextFormatter):
    """
    2026-01-05T12:34:56.789+00:00 | INFO  | chipnft.contract | trace_id=abc op=mint | call committed events=1
    """

    def __init__(self, stream: Any) -> None:
        super().__init__()
        self._color = _is_tty(stream)

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self._color and color else text

    def format(self, record: logging.LogRecord) -> str:
        ctx, extras = self.fields(record)
        parts = [
            self._paint(_now(), _DIM),
            self._paint(f"{record.levelname:<5}", _LEVEL_COLORS.get(record.levelno, "")),
            self._paint(record.name, _NAME),
        ]
        bound = " ".join(f"{k}={ctx[k]}" for k in TEXT_CONTEXT_KEYS if ctx.get(k) is not None)
        if bound:
            parts.append(bound)
        tail = record.getMessage()
        if extras:
            tail += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        parts.append(tail)
        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.traceback_text(record)
        return line


# -- setup --------------------------------------------------------------------


def _level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _wants_json(flag: Optional[bool], stream: Any) -> bool:
    if flag is not None:
        return flag
    env = os.environ.get("CHIPNFT_LOG_FORMAT", "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    return not _is_tty(stream)


def configure(
    *,
    json: Optional[bool] = None,
    level: Union[str, int] = "INFO",
    stream: Any = None,
    file_path: Optional[Union[str, Path]] = None,
) -> None:
    """
    (Re)install the handlers of the `chipnft` logger tree.

    json=None picks the format from CHIPNFT_LOG_FORMAT, else JSON when the
    console is not a TTY. `file_path` adds a handler that always writes JSON.
    Calling this again replaces the previous handlers.
    """
    stream = sys.stderr if stream is None else stream
    lvl = _level(level)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(lvl)
    for h in list(root.handlers):
        root.removeHandler(h)

    handlers = []
    console = logging.StreamHandler(stream)
    console.setFormatter(JSONFormatter() if _wants_json(json, stream) else TextFormatter(stream))
    handlers.append(console)

    if file_path:
        target = Path(file_path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(target, encoding="utf-8")
        fh.setFormatter(JSONFormatter())
        handlers.append(fh)

    for h in handlers:
        h.setLevel(lvl)
        root.addHandler(h)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger inside the `chipnft` tree; bare names are nested under it."""
    if not name or name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    if name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


__all__ = [
    "ROOT_LOGGER",
    "bind",
    "unbind",
    "clear_context",
    "context",
    "trace_scope",
    "short_uuid",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "get_logger",
]
