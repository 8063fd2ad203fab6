from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Protocol

from pydantic import ValidationError

from shared.pipe import MessagePipe
from shared.types import ConfirmationMessage, SensitiveRequest, VerdictMessage, dump_wire

logger = logging.getLogger(__name__)


class ConfirmationAuthority(Protocol):
    async def confirm(self, request: SensitiveRequest, origin: str | None) -> bool: ...


class ConfirmationResponder:
    """
    Extension-side end of the stream: turns each incoming confirmation
    request into one `authority.confirm()` call and writes back
    `{id, response}`. Anything that is not a confirmation request is ignored.

    Ids already answered are remembered (up to `max_seen` of them) so a
    replayed request does not reach the authority twice.
    """

    def __init__(self, pipe: MessagePipe, authority: ConfirmationAuthority, *, max_seen: int = 1024) -> None:
        self._pipe = pipe
        self._authority = authority
        self._tasks: set[asyncio.Task[None]] = set()
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._max_seen = max(1, int(max_seen))
        self._pipe.on_message(self._on_message)

    def _on_message(self, message: dict[str, Any]) -> None:
        if not isinstance(message, dict) or "payload" not in message:
            return
        try:
            msg = ConfirmationMessage.model_validate(message)
        except ValidationError as e:
            logger.warning("dropping malformed confirmation request: %s", e.errors()[:1])
            return
        if msg.id in self._seen:
            logger.debug("duplicate confirmation request %s ignored", msg.id)
            return
        self._seen[msg.id] = None
        while len(self._seen) > self._max_seen:
            self._seen.popitem(last=False)

        task = asyncio.get_running_loop().create_task(self._answer(msg))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _answer(self, msg: ConfirmationMessage) -> None:
        try:
            approved = bool(await self._authority.confirm(msg.payload, msg.origin))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("confirmation authority failed for %s; rejecting", msg.id)
            approved = False
        self._pipe.write(dump_wire(VerdictMessage(id=msg.id, response=approved)))

    def close(self) -> None:
        self._pipe.remove_listener(self._on_message)
        for task in list(self._tasks):
            task.cancel()
