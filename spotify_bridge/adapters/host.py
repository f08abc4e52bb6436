"""
Host collaborators for the bridge

The bridge only talks to its host through three small surfaces:
- Storage: opaque string persistence (used for the refresh token)
- DataSink: per-call output handle (null / raw JSON / error strings)
- Notifier: "data ready" signal for a command's source identifier

Concrete implementations here back the CLI and the tests; an embedding host
passes its own objects with the same methods.
"""

from __future__ import annotations

import json
import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable

from loguru import logger


@runtime_checkable
class Storage(Protocol):
    def get_string(self, key: str) -> Optional[str]: ...
    def set_string(self, key: str, value: str) -> None: ...


@runtime_checkable
class DataSink(Protocol):
    def set_null(self) -> None: ...
    def set_json(self, data: bytes) -> None: ...
    def append_error(self, message: str) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    def signal_data_ready(self, source: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage, handy for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.values: Dict[str, str] = dict(initial or {})
        self.writes: List[tuple] = []

    def get_string(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set_string(self, key: str, value: str) -> None:
        self.values[key] = value
        self.writes.append((key, value))


class BufferedSink:
    """Records whatever a drain writes so callers can inspect or print it."""

    def __init__(self) -> None:
        self.written = False
        self.data: Optional[bytes] = None
        self.errors: List[str] = []

    def set_null(self) -> None:
        self.written = True
        self.data = None

    def set_json(self, data: bytes) -> None:
        self.written = True
        self.data = bytes(data)

    def append_error(self, message: str) -> None:
        self.errors.append(message)

    @property
    def touched(self) -> bool:
        return self.written or bool(self.errors)

    def json(self):
        if not self.data:
            return None
        try:
            return json.loads(self.data)
        except ValueError:
            return self.data.decode("utf-8", errors="replace")


class LogNotifier:
    def signal_data_ready(self, source: str) -> None:
        logger.debug("Data ready for '{}'", source)


class EventNotifier:
    """One threading.Event per source so a caller can block until a completion lands."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: Dict[str, threading.Event] = {}

    def _event(self, source: str) -> threading.Event:
        with self._lock:
            return self._events.setdefault(source, threading.Event())

    def signal_data_ready(self, source: str) -> None:
        logger.debug("Data ready for '{}'", source)
        self._event(source).set()

    def wait(self, source: str, timeout: Optional[float] = None) -> bool:
        event = self._event(source)
        fired = event.wait(timeout)
        if fired:
            event.clear()
        return fired
