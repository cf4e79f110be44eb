"""JSON-RPC 2.0 message shapes and the lsprotocol (de)serializer."""

from __future__ import annotations

import json
from typing import Any, TypeVar

from lsprotocol import converters
from pygls.exceptions import JsonRpcException

from lsfront.exceptions import error_payload
from lsfront.json_types import JSONObject, JSONValue, RequestId

JSONRPC_VERSION = "2.0"

# Legacy spelling used by some clients alongside "$/cancelRequest".
LEGACY_CANCEL_REQUEST = "cancelRequest"

T = TypeVar("T")

_converter = converters.get_converter()


def structure(payload: object, params_type: type[T]) -> T:
    return _converter.structure(payload, params_type)


def unstructure(value: Any) -> JSONValue:
    if value is None:
        return None
    return _converter.unstructure(value)


def ensure_json(value: JSONValue) -> None:
    """Raise TypeError or ValueError when the encoder would reject value."""
    json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def result_message(request_id: RequestId, result: JSONValue) -> JSONObject:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_message(request_id: RequestId | None, error: JsonRpcException) -> JSONObject:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error_payload(error)}


def notification_message(method: str, params: object) -> JSONObject:
    message: JSONObject = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = unstructure(params)
    return message


def request_message(request_id: RequestId, method: str, params: object) -> JSONObject:
    message = notification_message(method, params)
    message["id"] = request_id
    return message


def is_request(message: JSONObject) -> bool:
    return "method" in message and "id" in message


def is_notification(message: JSONObject) -> bool:
    return "method" in message and "id" not in message


def is_response(message: JSONObject) -> bool:
    return "method" not in message and "id" in message and (
        "result" in message or "error" in message
    )
