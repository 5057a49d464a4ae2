"""Простой диспетчер событий клиента с подписками `on` и одноразовыми `once`."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("dualrpc.client.events")

Listener = Callable[..., Any]


class EventEmitter:
    """Список подписчиков на каждое имя события.

    `emit` возвращает False, если хотя бы один подписчик вернул False:
    так `beforeresult` может отменить вызов колбэка.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Tuple[Listener, bool]]] = {}
        self._lock = threading.Lock()

    def on(self, event: str, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(event, []).append((listener, False))

    def once(self, event: str, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(event, []).append((listener, True))

    def off(self, event: str, listener: Optional[Listener] = None) -> None:
        with self._lock:
            if listener is None:
                self._listeners.pop(event, None)
                return
            self._listeners[event] = [
                entry for entry in self._listeners.get(event, []) if entry[0] is not listener
            ]

    def listeners(self, event: str) -> List[Listener]:
        with self._lock:
            return [listener for listener, _ in self._listeners.get(event, [])]

    def emit(self, event: str, *args: Any) -> bool:
        with self._lock:
            entries = list(self._listeners.get(event, []))
            if any(single for _, single in entries):
                self._listeners[event] = [entry for entry in entries if not entry[1]]
        proceed = True
        for listener, _ in entries:
            if listener(*args) is False:
                proceed = False
        return proceed


__all__ = ["EventEmitter", "Listener"]
