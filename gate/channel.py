from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from shared.errors import ChannelClosedError
from shared.pipe import MessagePipe
from shared.types import ConfirmationMessage, SensitiveRequest, VerdictMessage, dump_wire

logger = logging.getLogger(__name__)


class CorrelationChannel:
    """
    Request/response correlation on top of a one-way message pipe.

    Every `request()` gets a fresh identifier and waits for the one verdict
    carrying it. Traffic with unknown identifiers belongs to someone else on
    the shared pipe and is dropped silently. There is no timeout: a request the
    authority never answers stays pending until the caller cancels it or the
    channel is closed.
    """

    def __init__(self, pipe: MessagePipe, *, name: str = "inpage") -> None:
        self._pipe = pipe
        self._name = name
        self._pending: dict[str, asyncio.Future[bool]] = {}
        self._closed = False
        self._pipe.on_message(self._on_message)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(self, payload: SensitiveRequest, *, origin: str | None = None) -> bool:
        if self._closed:
            raise ChannelClosedError(self._name)

        msg = ConfirmationMessage(payload=payload, origin=origin)
        if msg.id in self._pending:
            # uuid4 collision; never hand the same id to two callers
            raise RuntimeError(f"duplicate correlation id: {msg.id}")

        fut: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending[msg.id] = fut
        logger.debug("confirmation %s sent (%s)", msg.id, payload.type)
        try:
            self._pipe.write(dump_wire(msg))
            return await fut
        finally:
            self._pending.pop(msg.id, None)

    def _on_message(self, message: dict[str, Any]) -> None:
        if not isinstance(message, dict) or "response" not in message:
            return
        try:
            verdict = VerdictMessage.model_validate(message)
        except ValidationError:
            logger.debug("ignoring malformed verdict on %s", self._name)
            return

        fut = self._pending.pop(verdict.id, None)
        if fut is None or fut.done():
            return
        logger.debug("confirmation %s answered: %s", verdict.id, verdict.response)
        fut.set_result(verdict.response)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pipe.remove_listener(self._on_message)
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(ChannelClosedError(self._name, "abandoned: channel closed"))
        if pending:
            logger.info("closed %s with %d pending confirmation(s)", self._name, len(pending))
