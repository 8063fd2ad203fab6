"""
Shared fixtures: an in-memory provider with all three call shapes, a host
object to inject it into, and scripted confirmation authorities.
"""

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from authority.responder import ConfirmationResponder
from gate.config import GateConfig
from shared.pipe import PostMessageBus

ADDRESS = "0x" + "a" * 36 + "1234"


class FakeProvider:
    """Records every call that reaches the host implementation."""

    def __init__(self, chain_id: Any = "0x1") -> None:
        self.chain_id = chain_id
        self.calls: list[tuple[str, Any]] = []

    def page_calls(self) -> list[tuple[str, Any]]:
        return [c for c in self.calls if not (c[0] == "request" and c[1].get("method") == "eth_chainId")]

    async def request(self, args):
        self.calls.append(("request", args))
        if args.get("method") == "eth_chainId":
            return self.chain_id
        if args.get("method") == "boom":
            raise RuntimeError("host failure")
        return {"result_for": args.get("method")}

    def send_async(self, payload, callback):
        self.calls.append(("send_async", payload))
        callback(None, {"id": payload.get("id"), "jsonrpc": "2.0", "result": f"ok:{payload.get('method')}"})

    def send(self, *args):
        self.calls.append(("send", args))
        return {"sync": args[0]}


class RequestOnlyProvider:
    def __init__(self) -> None:
        self.calls: list[Any] = []

    async def request(self, args):
        self.calls.append(args)
        if args.get("method") == "eth_chainId":
            return "0x89"
        return "done"


class ScriptedAuthority:
    """Answers with a fixed verdict (or a per-call list of verdicts)."""

    def __init__(self, verdicts) -> None:
        self._verdicts = list(verdicts) if isinstance(verdicts, (list, tuple)) else None
        self._default = verdicts if isinstance(verdicts, bool) else False
        self.seen: list[tuple[Any, Any]] = []

    async def confirm(self, request, origin):
        self.seen.append((request, origin))
        if self._verdicts is not None:
            return self._verdicts.pop(0)
        return self._default


class RecordingPipe:
    """A message pipe that keeps what was written and delivers on demand."""

    def __init__(self) -> None:
        self.written: list[dict] = []
        self.listeners: list = []

    def write(self, message):
        self.written.append(message)

    def on_message(self, listener):
        self.listeners.append(listener)

    def remove_listener(self, listener):
        self.listeners.remove(listener)

    def deliver(self, message):
        for listener in list(self.listeners):
            listener(message)


class GatedAuthority:
    """Holds every request until the test releases it explicitly."""

    def __init__(self) -> None:
        self.waiting: list[tuple[Any, asyncio.Future]] = []

    async def confirm(self, request, origin):
        fut = asyncio.get_running_loop().create_future()
        self.waiting.append((request, fut))
        return await fut


@pytest.fixture
def config():
    return GateConfig(poll_interval_s=0.01, watch_interval_s=0.01, rejection_prefix="Test Gate")


@pytest.fixture
def bus():
    return PostMessageBus()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def host(provider):
    return SimpleNamespace(ethereum=provider, origin="https://dapp.example")


def connect_authority(bus, config, authority):
    return ConfirmationResponder(bus.endpoint(config.content_script_name, config.inpage_name), authority)


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def callback_recorder():
    fut = asyncio.get_running_loop().create_future()

    def callback(error, response):
        if not fut.done():
            fut.set_result((error, response))

    return fut, callback
