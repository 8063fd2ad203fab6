from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from gate.channel import CorrelationChannel
from gate.classifier import Match, RequestClassifier
from gate.config import GateConfig
from shared.errors import DISCONNECTED, ChannelClosedError, ProviderRpcError, UserRejectedRequestError
from shared.jsonrpc import split_call
from shared.types import SensitiveRequest

logger = logging.getLogger(__name__)

GATE_MARKER = "__wallet_gate__"


def is_gate_wrapper(fn: Any) -> bool:
    return bool(getattr(fn, GATE_MARKER, False))


def _as_provider_error(exc: BaseException) -> ProviderRpcError:
    if isinstance(exc, ProviderRpcError):
        return exc
    if isinstance(exc, ChannelClosedError):
        return ProviderRpcError(DISCONNECTED, str(exc))
    return ProviderRpcError(-32603, str(exc) or "Internal error")


class _Normalizer:
    """
    Shared plumbing for the three call-shape wrappers.

    A wrapper holds the host's original entry point in `__wrapped__` and only
    ever calls it with the exact arguments it was given.
    """

    def __init__(
        self,
        original: Callable[..., Any],
        *,
        classifier: RequestClassifier,
        channel: CorrelationChannel,
        config: GateConfig,
        origin: Callable[[], str | None] | None = None,
    ) -> None:
        self.__wrapped__ = original
        self._classifier = classifier
        self._channel = channel
        self._config = config
        self._origin = origin or (lambda: None)
        setattr(self, GATE_MARKER, True)

    def _recognize(self, call: Any) -> Match | None:
        method, params = split_call(call)
        return self._classifier.recognize(method, params)

    async def _confirm(self, match: Match) -> tuple[SensitiveRequest | None, bool]:
        request = await self._classifier.resolve(match)
        if request is None:
            return None, True
        approved = await self._channel.request(request, origin=self._origin())
        logger.info("%s %s", request.type, "approved" if approved else "rejected")
        return request, approved

    def _rejection(self, request: SensitiveRequest | None) -> UserRejectedRequestError:
        what = request.describe() if request is not None else "message signature"
        return UserRejectedRequestError(self._config.rejection_message(what))


class RequestNormalizer(_Normalizer):
    """`provider.request(args)`: the awaitable shape."""

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        call = args[0] if args else kwargs.get("args")
        match = self._recognize(call)
        if match is None:
            return self.__wrapped__(*args, **kwargs)
        return self._gated(match, args, kwargs)

    async def _gated(self, match: Match, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        try:
            request, approved = await self._confirm(match)
        except ChannelClosedError as e:
            raise _as_provider_error(e) from e
        if not approved:
            raise self._rejection(request)
        result = self.__wrapped__(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


class SendAsyncNormalizer(_Normalizer):
    """`provider.send_async(payload, callback)`: the callback shape."""

    def __init__(self, original: Callable[..., Any], **kwargs: Any) -> None:
        super().__init__(original, **kwargs)
        self._tasks: set[asyncio.Task[None]] = set()

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        payload = args[0] if args else kwargs.get("payload")
        callback = args[1] if len(args) > 1 else kwargs.get("callback")
        if not callable(callback):
            return self.__wrapped__(*args, **kwargs)

        match = self._recognize(payload)
        if match is None:
            return self.__wrapped__(*args, **kwargs)

        task = asyncio.get_running_loop().create_task(self._gated(match, payload, callback, args, kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return None

    async def _gated(
        self,
        match: Match,
        payload: dict[str, Any],
        callback: Callable[[Any, Any], Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        request_id = payload.get("id")
        try:
            request, approved = await self._confirm(match)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = _as_provider_error(e)
            logger.warning("confirmation for %s failed: %s", payload.get("method"), err)
            callback(err, err.to_response(request_id))
            return

        if approved:
            self.__wrapped__(*args, **kwargs)
            return
        err = self._rejection(request)
        callback(err, err.to_response(request_id))


class SendNormalizer(_Normalizer):
    """
    Legacy `provider.send(...)`, which overloads three conventions:

      send(method: str, params=None)  -> handled like request()
      send(payload)                   -> cannot carry a signature, forwarded
      send(payload, callback)         -> handled like send_async()
    """

    def __init__(self, original: Callable[..., Any], *, provider: Any, **kwargs: Any) -> None:
        super().__init__(original, **kwargs)
        self._provider = provider
        # used when the provider has no send_async to redirect to
        self._callback_gate = SendAsyncNormalizer(original, **kwargs)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        rest = dict(kwargs)
        first = args[0] if args else _pop_first(rest, "method", "payload")
        second = args[1] if len(args) > 1 else _pop_first(rest, "callback", "params")

        if isinstance(first, str):
            call: dict[str, Any] = {"method": first}
            if second is not None:
                call["params"] = second
            return self._provider.request(call, **rest)

        if not second:
            return self.__wrapped__(*args, **kwargs)

        send_async = getattr(self._provider, "send_async", None)
        if not callable(send_async):
            return self._callback_gate(*args, **kwargs)
        return send_async(first, second, **rest)


def _pop_first(kwargs: dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in kwargs:
            return kwargs.pop(name)
    return None
