"""Error-only log capture.

Installs a Loguru sink at ERROR level and keeps a bounded in-memory list of
error records, persisted to a JSONL file so ``tgrelay status`` can show
failures from hook runs and pollers that have already exited.
"""

from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger


@dataclass
class ErrorRecord:
    ts: str
    level: str
    message: str
    where: str
    exception: str | None = None


class ErrorStore:
    def __init__(self, path: Path | None = None, max_items: int = 200):
        self._path = path.expanduser() if path else None
        self._max_items = max(10, int(max_items))
        self._lock = threading.Lock()
        self._items: list[ErrorRecord] = []
        self._load_tail()

    def _load_tail(self) -> None:
        if not self._path or not self._path.exists():
            return
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()[-self._max_items :]
        except OSError:
            return
        loaded: list[ErrorRecord] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(obj, dict):
                continue
            loaded.append(
                ErrorRecord(
                    ts=str(obj.get("ts", "")),
                    level=str(obj.get("level", "ERROR")),
                    message=str(obj.get("message", "")),
                    where=str(obj.get("where", "")),
                    exception=obj.get("exception"),
                )
            )
        with self._lock:
            self._items = loaded[-self._max_items :]

    def _append_file(self, rec: ErrorRecord) -> None:
        if not self._path:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(asdict(rec), ensure_ascii=True) + "\n")
        except OSError:
            # A broken log file must not take the process down with it.
            return

    def ingest_loguru_record(self, record: dict[str, Any]) -> None:
        dt = record.get("time")
        ts = dt.isoformat() if isinstance(dt, datetime) else str(dt)
        level = record.get("level")
        where = f"{record.get('name') or '?'}:{record.get('function') or '?'}:{record.get('line') or '?'}"
        exc_obj = record.get("exception")
        rec = ErrorRecord(
            ts=ts,
            level=str(getattr(level, "name", level or "ERROR")),
            message=str(record.get("message", "")),
            where=where,
            exception=str(exc_obj) if exc_obj else None,
        )

        with self._lock:
            self._items.append(rec)
            if len(self._items) > self._max_items:
                self._items = self._items[-self._max_items :]

        self._append_file(rec)

    def get(self, limit: int = 50) -> list[dict[str, Any]]:
        n = max(1, min(int(limit), self._max_items))
        with self._lock:
            items = list(self._items[-n:])
        # Newest first
        items.reverse()
        return [asdict(r) for r in items]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
        if self._path:
            self._path.unlink(missing_ok=True)


_STORE: ErrorStore | None = None
_SINK_ID: int | None = None


def init_error_store(path: Path | None = None, max_items: int = 200) -> ErrorStore:
    """Initialize the global error store and its loguru sink (idempotent)."""
    global _STORE, _SINK_ID
    if _STORE is None:
        _STORE = ErrorStore(path=path, max_items=max_items)

    if _SINK_ID is None:
        def _sink(message):  # type: ignore[no-untyped-def]
            if _STORE is not None:
                _STORE.ingest_loguru_record(message.record)

        _SINK_ID = logger.add(_sink, level="ERROR", backtrace=True, diagnose=False, catch=True)
    return _STORE


def reset_error_store() -> None:
    """Detach the sink and forget the store."""
    global _STORE, _SINK_ID
    if _SINK_ID is not None:
        try:
            logger.remove(_SINK_ID)
        except ValueError:
            pass
    _STORE = None
    _SINK_ID = None


def get_errors(limit: int = 50) -> list[dict[str, Any]]:
    if _STORE is None:
        return []
    return _STORE.get(limit=limit)


def clear_errors() -> None:
    if _STORE is None:
        return
    _STORE.clear()
