from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from gate.network import ChainIdLookup
from shared.jsonrpc import parse_json_object
from shared.types import (
    RequestType,
    SensitiveRequest,
    TransactionRequest,
    TypedSignatureRequest,
    UntypedSignatureRequest,
)

logger = logging.getLogger(__name__)

TRANSACTION_METHODS = frozenset({"eth_sendTransaction"})
TYPED_SIGNATURE_METHODS = frozenset({"eth_signTypedData_v3", "eth_signTypedData_v4"})
UNTYPED_SIGNATURE_METHODS = frozenset({"eth_sign", "personal_sign"})

ADDRESS_HEX_LEN = 40


@dataclass(frozen=True)
class Match:
    """A call recognised as sensitive, before the chain id is known."""

    kind: RequestType
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def needs_chain_id(self) -> bool:
        return self.kind in (RequestType.TRANSACTION, RequestType.TYPED_SIGNATURE)


def looks_like_address(value: Any) -> bool:
    # eth_sign passes (address, message), personal_sign passes (message, address)
    return len(str(value).replace("0x", "", 1)) == ADDRESS_HEX_LEN


def _typed_data(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return None
    return parse_json_object(raw)


def recognize(method: str | None, params: list[Any]) -> Match | None:
    """
    Decide whether `(method, params)` needs confirmation.

    Pure and synchronous; returns `None` (not sensitive) for unknown methods
    and for known methods whose arguments are missing or unparseable, so a
    malformed call is forwarded instead of blocked.
    """
    if method in TRANSACTION_METHODS:
        tx = params[0] if params else None
        if not tx or not isinstance(tx, dict):
            return None
        return Match(RequestType.TRANSACTION, {"transaction": tx})

    if method in TYPED_SIGNATURE_METHODS:
        address = params[0] if len(params) > 0 else None
        raw = params[1] if len(params) > 1 else None
        if not address or not raw:
            return None
        typed_data = _typed_data(raw)
        if typed_data is None:
            logger.debug("%s with unparseable typed data; forwarding", method)
            return None
        return Match(RequestType.TYPED_SIGNATURE, {"address": str(address), "typedData": typed_data})

    if method in UNTYPED_SIGNATURE_METHODS:
        first = params[0] if len(params) > 0 else None
        second = params[1] if len(params) > 1 else None
        if not first or not second:
            return None
        message = second if looks_like_address(first) else first
        return Match(RequestType.UNTYPED_SIGNATURE, {"message": str(message)})

    return None


def build_request(match: Match, *, chain_id: int | None = None) -> SensitiveRequest | None:
    try:
        if match.kind is RequestType.TRANSACTION:
            return TransactionRequest(transaction=match.fields["transaction"], chainId=chain_id)
        if match.kind is RequestType.TYPED_SIGNATURE:
            return TypedSignatureRequest(
                address=match.fields["address"],
                typedData=match.fields["typedData"],
                chainId=chain_id,
            )
        return UntypedSignatureRequest(message=match.fields["message"])
    except ValidationError as e:
        logger.debug("could not build %s request: %s", match.kind.value, e)
        return None


class RequestClassifier:
    def __init__(self, chain_id: ChainIdLookup) -> None:
        self._chain_id = chain_id

    def recognize(self, method: str | None, params: list[Any]) -> Match | None:
        return recognize(method, params)

    async def resolve(self, match: Match) -> SensitiveRequest | None:
        chain_id = await self._chain_id() if match.needs_chain_id else None
        return build_request(match, chain_id=chain_id)

    async def classify(self, method: str | None, params: list[Any]) -> SensitiveRequest | None:
        match = self.recognize(method, params)
        if match is None:
            return None
        return await self.resolve(match)
