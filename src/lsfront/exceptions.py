"""Error taxonomy for the protocol front-end.

Protocol-visible errors derive from the JSON-RPC exceptions shipped with
pygls so that every failure a handler raises already carries a stable code.
Transport failures are plain exceptions: they never reach the client and
always end the session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pygls.exceptions import (
    JsonRpcException,
    JsonRpcInternalError,
    JsonRpcInvalidRequest,
    JsonRpcRequestCancelled,
    JsonRpcServerNotInitialized,
)

from lsfront.json_types import JSONObject

if TYPE_CHECKING:
    from lsfront.lifecycle import SessionState


class NeverThrown(RuntimeError):
    """Raised by the never() marker; reaching it is a bug."""

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})


class ConfigError(ValueError):
    pass


class TransportClosed(ConnectionError):
    """The peer closed the byte stream or a write failed."""


class FramingError(TransportClosed):
    """The header stream is corrupt; the session cannot resynchronise."""


class MalformedMessage(ValueError):
    """A frame was read but its body is not a JSON-RPC object."""


class DuplicateRequestId(JsonRpcInvalidRequest):
    def __init__(self, request_id: object):
        super().__init__(message=f"Request id {request_id!r} is already in flight")
        self.request_id = request_id


class RequestCancelled(JsonRpcRequestCancelled):
    def __init__(self, request_id: object = None):
        super().__init__(message="Request cancelled")
        self.request_id = request_id


class LifecycleError(JsonRpcException):
    """A method arrived in a state where it is not legal."""

    def __init__(self, method: str, state: SessionState, message: str, code: int):
        JsonRpcException.__init__(self, message=message, code=code)
        self.method = method
        self.state = state


class NotInitializedError(LifecycleError, JsonRpcServerNotInitialized):
    def __init__(self, method: str, state: SessionState):
        super().__init__(
            method,
            state,
            f"Server not initialized: {method} rejected in state {state.value}",
            JsonRpcServerNotInitialized.CODE,
        )


class InvalidStateError(LifecycleError, JsonRpcInvalidRequest):
    def __init__(self, method: str, state: SessionState, detail: str = ""):
        suffix = f" ({detail})" if detail else ""
        super().__init__(
            method,
            state,
            f"{method} is not valid in state {state.value}{suffix}",
            JsonRpcInvalidRequest.CODE,
        )


class EngineError(JsonRpcInternalError):
    """Wraps any non-protocol exception raised by the analysis engine."""

    def __init__(self, method: str, cause: BaseException):
        super().__init__(message=f"{method} failed: {cause}")
        self.method = method
        self.__cause__ = cause


def error_payload(exc: JsonRpcException) -> JSONObject:
    payload: JSONObject = {"code": int(exc.code), "message": str(exc.message)}
    if exc.data is not None:
        payload["data"] = exc.data
    return payload
