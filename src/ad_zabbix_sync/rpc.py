"""
JSON-RPC 2.0 envelope for the Zabbix API.

Request and response bodies are modelled explicitly so that every
decoded response is classified as exactly one of:
- success (payload taken from ``result``)
- protocol error (Zabbix understood and rejected the call)
- transport failure (HTTP status, network or malformed body)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"


class RpcRequest(BaseModel):
    """Single JSON-RPC request posted to api_jsonrpc.php."""

    jsonrpc: str = Field(
        default=JSONRPC_VERSION,
        description="JSON-RPC protocol version"
    )
    method: str = Field(
        ...,
        min_length=1,
        description="API method, e.g. host.get"
    )
    params: Any = Field(
        default_factory=dict,
        description="Method parameters"
    )
    id: int = Field(
        ...,
        ge=0,
        description="Request identifier"
    )
    auth: Optional[str] = Field(
        default=None,
        description="Session API key (absent for user.login)"
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for the wire. ``auth`` is dropped for unauthenticated calls."""
        payload = self.model_dump()
        if self.auth is None:
            payload.pop("auth")
        return payload


class RpcError(BaseModel):
    """Structured ``error`` member of a JSON-RPC response."""

    code: int
    message: str = ""
    data: Optional[Any] = None


class RpcResponse(BaseModel):
    """
    Decoded JSON-RPC response.

    Exactly one of ``result`` or ``error`` must be present; anything
    else fails validation and is treated as a malformed body.
    """

    jsonrpc: Optional[str] = None
    id: Optional[Any] = None
    result: Optional[Any] = None
    error: Optional[RpcError] = None

    model_config = ConfigDict(extra='ignore')

    @model_validator(mode='after')
    def check_exclusive(self):
        has_result = 'result' in self.model_fields_set
        has_error = self.error is not None
        if has_result and has_error:
            raise ValueError('response carries both result and error')
        if not has_result and not has_error:
            raise ValueError('response carries neither result nor error')
        return self


class FailureKind(str, Enum):
    """Failure categories for a JSON-RPC call."""
    TRANSPORT = "transport"   # timeout, DNS, non-200, malformed body
    PROTOCOL = "protocol"     # Zabbix returned an error object


@dataclass
class RpcFailure:
    """Why a JSON-RPC call did not produce a result."""

    kind: FailureKind
    message: str
    code: Optional[int] = None
    data: Optional[str] = None

    @classmethod
    def transport(cls, message: str) -> "RpcFailure":
        return cls(kind=FailureKind.TRANSPORT, message=message)

    @classmethod
    def protocol(cls, code: int, message: str, data: Optional[str] = None) -> "RpcFailure":
        return cls(kind=FailureKind.PROTOCOL, message=message, code=code, data=data)

    @property
    def is_transport(self) -> bool:
        return self.kind == FailureKind.TRANSPORT

    @property
    def detail(self) -> str:
        """
        Most actionable description of the failure.

        Zabbix puts the human readable cause in ``data``; ``message`` is
        only a generic category such as "Invalid params.".
        """
        return self.data or self.message

    def __str__(self) -> str:
        if self.kind == FailureKind.PROTOCOL:
            return f"{self.message} ({self.code}): {self.data}" if self.data else f"{self.message} ({self.code})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }


@dataclass
class RpcResult:
    """Outcome of one JSON-RPC call: either a payload or a failure."""

    success: bool
    payload: Any = None
    failure: Optional[RpcFailure] = None

    @classmethod
    def ok(cls, payload: Any) -> "RpcResult":
        return cls(success=True, payload=payload)

    @classmethod
    def fail(cls, failure: RpcFailure) -> "RpcResult":
        return cls(success=False, failure=failure)


def decode_response(status: int, body: str) -> RpcResult:
    """
    Classify an HTTP response from the Zabbix API.

    Args:
        status: HTTP status code
        body: Raw response body

    Returns:
        RpcResult holding either the ``result`` payload or an RpcFailure
    """
    if status != 200:
        snippet = (body or "").strip()[:200]
        return RpcResult.fail(RpcFailure.transport(
            f"HTTP {status}: {snippet}" if snippet else f"HTTP {status}"
        ))

    try:
        response = RpcResponse.model_validate_json(body)
    except ValidationError as e:
        logger.debug(f"Malformed JSON-RPC body: {(body or '')[:500]}")
        return RpcResult.fail(RpcFailure.transport(
            f"Malformed response body: {e.errors()[0]['msg']}"
        ))

    if response.error is not None:
        error = response.error
        data = str(error.data) if error.data is not None else None
        return RpcResult.fail(RpcFailure.protocol(error.code, error.message, data))

    return RpcResult.ok(response.result)
