from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable

from shared.errors import ProviderRpcError
from shared.jsonrpc import parse_chain_id

logger = logging.getLogger(__name__)

RequestFn = Callable[[dict[str, Any]], Any]


class NetworkInfo:
    """Active-chain lookup through the provider's own (unwrapped) `request`."""

    def __init__(self, request: RequestFn) -> None:
        self._request = request

    async def chain_id(self) -> int:
        result = self._request({"method": "eth_chainId", "params": []})
        if inspect.isawaitable(result):
            result = await result
        chain_id = parse_chain_id(result)
        if chain_id is None:
            logger.warning("provider returned an unusable chain id: %r", result)
            raise ProviderRpcError(-32603, f"invalid chain id from provider: {result!r}")
        return chain_id


ChainIdLookup = Callable[[], Awaitable[int]]
