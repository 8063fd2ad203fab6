from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]


class MessagePipe(Protocol):
    def write(self, message: dict[str, Any]) -> None: ...

    def on_message(self, listener: Listener) -> None: ...

    def remove_listener(self, listener: Listener) -> None: ...


class PostMessageBus:
    """
    In-process stand-in for a window post-message channel.

    Endpoints are named; a message written on an endpoint is delivered to every
    listener of its target endpoint on a later loop iteration, as a deep copy
    (structured-clone semantics). Listeners never see their own writes.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._listeners: dict[str, list[Listener]] = {}

    def endpoint(self, name: str, target: str) -> "BusEndpoint":
        return BusEndpoint(self, name=name, target=target)

    def _subscribe(self, name: str, listener: Listener) -> None:
        self._listeners.setdefault(name, []).append(listener)

    def _unsubscribe(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.get(name) or []
        if listener in listeners:
            listeners.remove(listener)

    def _post(self, target: str, message: dict[str, Any]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_soon(self._deliver, target, copy.deepcopy(message))

    def _deliver(self, target: str, message: dict[str, Any]) -> None:
        for listener in list(self._listeners.get(target) or []):
            try:
                listener(message)
            except Exception:
                logger.exception("listener on %s failed", target)


class BusEndpoint:
    def __init__(self, bus: PostMessageBus, *, name: str, target: str) -> None:
        self._bus = bus
        self.name = name
        self.target = target

    def write(self, message: dict[str, Any]) -> None:
        self._bus._post(self.target, message)

    def on_message(self, listener: Listener) -> None:
        self._bus._subscribe(self.name, listener)

    def remove_listener(self, listener: Listener) -> None:
        self._bus._unsubscribe(self.name, listener)
