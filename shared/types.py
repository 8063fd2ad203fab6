from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class RequestType(str, Enum):
    TRANSACTION = "transaction"
    TYPED_SIGNATURE = "typed-signature"
    UNTYPED_SIGNATURE = "untyped-signature"


class _Frozen(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class TransactionRequest(_Frozen):
    type: Literal["transaction"] = "transaction"
    transaction: dict[str, Any]
    chain_id: int = Field(alias="chainId")

    def describe(self) -> str:
        return "transaction signature"


class TypedSignatureRequest(_Frozen):
    type: Literal["typed-signature"] = "typed-signature"
    address: str
    typed_data: dict[str, Any] = Field(alias="typedData")
    chain_id: int = Field(alias="chainId")

    def describe(self) -> str:
        return "message signature"


class UntypedSignatureRequest(_Frozen):
    type: Literal["untyped-signature"] = "untyped-signature"
    message: str

    def describe(self) -> str:
        return "message signature"


SensitiveRequest = Annotated[
    Union[TransactionRequest, TypedSignatureRequest, UntypedSignatureRequest],
    Field(discriminator="type"),
]


class ConfirmationMessage(_Frozen):
    """
    Outbound half of a correlated round trip: one sensitive request, tagged
    with an identifier that is never reused.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    payload: SensitiveRequest
    origin: str | None = None


class VerdictMessage(_Frozen):
    """Inbound half: the authority's answer for `id`."""

    id: str
    response: StrictBool


def dump_wire(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)
