from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tenacity import AsyncRetrying, retry_if_result, wait_fixed

from gate.channel import CorrelationChannel
from gate.classifier import RequestClassifier
from gate.config import GateConfig
from gate.network import NetworkInfo
from gate.normalizers import RequestNormalizer, SendAsyncNormalizer, SendNormalizer, is_gate_wrapper
from shared.errors import AttachmentError

logger = logging.getLogger(__name__)

_MISSING = object()

ENTRY_POINTS = ("request", "send_async", "send")


class AttachmentState(str, Enum):
    UNINSTALLED = "uninstalled"
    POLLING = "polling"
    INSTALLED = "installed"


@dataclass
class Installation:
    provider: Any
    # entry point name -> the provider's own instance attribute (or _MISSING)
    originals: dict[str, Any] = field(default_factory=dict)
    wrappers: dict[str, Any] = field(default_factory=dict)


class ProviderAttachmentManager:
    """
    Finds the host-injected provider and installs the call-shape wrappers on
    it, once per provider instance.

    The provider may show up after we start, so `start()` tries immediately
    and then polls; the poll is cancelled as soon as wrappers are in place.
    From then on a slower watch checks that the host still exposes our
    wrappers and re-attaches when the provider object, or one of its entry
    points, was swapped out. Nothing raised while attaching escapes: a
    provider we cannot wrap is logged and retried on the next tick.
    """

    def __init__(self, host: Any, channel: CorrelationChannel, *, config: GateConfig | None = None) -> None:
        self._host = host
        self._channel = channel
        self._cfg = config or GateConfig.from_env()
        self._state = AttachmentState.UNINSTALLED
        self._installation: Installation | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> AttachmentState:
        return self._state

    @property
    def installation(self) -> Installation | None:
        return self._installation

    def _current_provider(self) -> Any:
        return getattr(self._host, self._cfg.provider_attr, None)

    def _origin(self) -> str | None:
        origin = getattr(self._host, "origin", None)
        return origin if isinstance(origin, str) else None

    def _is_installed_on(self, provider: Any) -> bool:
        inst = self._installation
        return inst is not None and inst.provider is provider and fully_wrapped(provider)

    def ensure_attached(self) -> None:
        if not self._cfg.enabled:
            return
        provider = self._current_provider()
        if provider is None:
            return
        if self._is_installed_on(provider):
            self._mark_installed()
            return

        previous = self._installation
        if previous is not None and previous.provider is not provider:
            logger.info("provider object was replaced; attaching to the new one")
            previous = None
        elif previous is not None:
            logger.info("provider entry points were replaced; re-wrapping them")

        try:
            self._installation = self._install(provider, previous)
        except AttachmentError as e:
            logger.warning("cannot attach to provider yet: %s", e)
            return
        except Exception:
            logger.exception("unexpected error while attaching to provider")
            return
        self._mark_installed()

    def _mark_installed(self) -> None:
        if self._state is not AttachmentState.INSTALLED:
            logger.info("confirmation gate installed on %s", self._cfg.provider_attr)
        self._state = AttachmentState.INSTALLED
        self._poll_task = _cancel(self._poll_task)
        self._start_watch()

    def _install(self, provider: Any, previous: Installation | None = None) -> Installation:
        request = getattr(provider, "request", None)
        if not callable(request):
            raise AttachmentError(f"{type(provider).__name__} has no callable request()")

        inst = Installation(provider=provider)
        if previous is not None:
            inst.originals.update(previous.originals)
            inst.wrappers.update(previous.wrappers)

        lookup = request.__wrapped__ if is_gate_wrapper(request) else request
        classifier = RequestClassifier(NetworkInfo(lookup).chain_id)
        common: dict[str, Any] = {
            "classifier": classifier,
            "channel": self._channel,
            "config": self._cfg,
            "origin": self._origin,
        }
        factories = {
            "request": lambda fn: RequestNormalizer(fn, **common),
            "send_async": lambda fn: SendAsyncNormalizer(fn, **common),
            "send": lambda fn: SendNormalizer(fn, provider=provider, **common),
        }

        own = getattr(provider, "__dict__", {})
        added: dict[str, Any] = {}
        try:
            for name in ENTRY_POINTS:
                fn = getattr(provider, name, None)
                # never wrap a gate wrapper, ours or another manager's
                if not callable(fn) or is_gate_wrapper(fn):
                    continue
                wrapper = factories[name](fn)
                added[name] = own.get(name, _MISSING)
                setattr(provider, name, wrapper)
                inst.wrappers[name] = wrapper
        except (AttributeError, TypeError) as e:
            for name, original in added.items():
                _put_back(provider, name, original)
            raise AttachmentError(f"cannot patch {type(provider).__name__}: {e}") from e

        if not added:
            logger.debug("provider already carries confirmation wrappers")
        inst.originals.update(added)
        return inst

    @staticmethod
    def _restore(inst: Installation) -> None:
        own = getattr(inst.provider, "__dict__", {})
        for name, wrapper in list(inst.wrappers.items()):
            # leave entry points the host has since replaced alone
            if own.get(name) is wrapper:
                _put_back(inst.provider, name, inst.originals.get(name, _MISSING))
        inst.wrappers.clear()

    async def _attempt(self) -> bool:
        self.ensure_attached()
        return self._state is AttachmentState.INSTALLED

    async def _poll(self) -> None:
        retrying = AsyncRetrying(
            retry=retry_if_result(lambda attached: not attached),
            wait=wait_fixed(self._cfg.poll_interval_s),
        )
        await retrying(self._attempt)

    async def _replaced(self) -> bool:
        return not self._is_installed_on(self._current_provider())

    async def _watch(self) -> None:
        retrying = AsyncRetrying(
            retry=retry_if_result(lambda replaced: not replaced),
            wait=wait_fixed(self._cfg.watch_interval_s),
        )
        await retrying(self._replaced)
        self._watch_task = None
        logger.info("wrapped provider is gone from the host; re-attaching")
        self.rearm()

    def _start_watch(self) -> None:
        if self._watch_task is not None and not self._watch_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # called outside the loop; the next start()/rearm() arms it
            return
        self._watch_task = loop.create_task(self._watch())

    def start(self) -> None:
        """Attach now if possible, otherwise keep polling until we can."""
        self.ensure_attached()
        if self._state is AttachmentState.INSTALLED or not self._cfg.enabled:
            return
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._state = AttachmentState.POLLING
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    def rearm(self) -> None:
        """Go back to polling if the host swapped out the provider we wrapped."""
        if self._state is AttachmentState.INSTALLED and self._is_installed_on(self._current_provider()):
            self._start_watch()
            return
        self._state = AttachmentState.UNINSTALLED
        self.start()

    def stop(self) -> None:
        self._poll_task = _cancel(self._poll_task)
        self._watch_task = _cancel(self._watch_task)
        if self._state is AttachmentState.POLLING:
            self._state = AttachmentState.UNINSTALLED

    def detach(self) -> None:
        self.stop()
        if self._installation is not None:
            self._restore(self._installation)
            self._installation = None
        self._state = AttachmentState.UNINSTALLED


def fully_wrapped(provider: Any) -> bool:
    """`request` and every other callable entry point carry our wrapper."""
    if not is_gate_wrapper(getattr(provider, "request", None)):
        return False
    for name in ENTRY_POINTS:
        fn = getattr(provider, name, None)
        if callable(fn) and not is_gate_wrapper(fn):
            return False
    return True


def _put_back(provider: Any, name: str, original: Any) -> None:
    try:
        if original is _MISSING:
            delattr(provider, name)
        else:
            setattr(provider, name, original)
    except (AttributeError, TypeError):
        logger.warning("could not restore %s on provider", name)


def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return None
    try:
        current = asyncio.current_task()
    except RuntimeError:
        current = None
    if task is not current:
        task.cancel()
    return None
