from __future__ import annotations

from typing import Any

from shared.jsonrpc import jsonrpc_error

# EIP-1193 provider error codes.
USER_REJECTED_REQUEST = 4001
DISCONNECTED = 4900


class ProviderRpcError(Exception):
    """
    Error surfaced to the page through a provider call.

    Mirrors the `{code, message, data}` shape wallets and dapps agree on, so
    callers can branch on `code` (or `kind`) instead of parsing text.
    """

    kind = "provider_error"

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = str(message)
        self.data = data

    def to_response(self, request_id: str | int | None) -> dict[str, Any]:
        return jsonrpc_error(request_id, code=self.code, message=self.message, data=self.data)


class UserRejectedRequestError(ProviderRpcError):
    kind = "user_rejected"

    def __init__(self, message: str = "User rejected the request.", data: Any | None = None) -> None:
        super().__init__(USER_REJECTED_REQUEST, message, data)


class ChannelClosedError(RuntimeError):
    def __init__(self, channel: str, message: str = "correlation channel closed") -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class AttachmentError(RuntimeError):
    """Host provider is not in a shape the gate can wrap."""
