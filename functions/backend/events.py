"""
Process-wide event emitter.

Backends publish permission failures here so the app can report them in one
place, independent of which request or client triggered them.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

PERMISSION_ERROR = "permission-error"

Listener = Callable[[Any], None]


class EventEmitter:
    def __init__(self):
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def on(self, event: str, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners[event]:
                self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

    def emit(self, event: str, payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners[event])
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %s failed", event)


emitter = EventEmitter()
