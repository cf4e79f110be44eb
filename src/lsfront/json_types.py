from __future__ import annotations

"""JSON value aliases for the wire boundary.

Anything that crosses the transport is declared with these aliases instead of
`Any`, so message shapes stay visible at call sites.
"""

from typing import TypeAlias


JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONArray: TypeAlias = list[JSONValue]

# Client-supplied request ids; booleans are not valid ids.
RequestId: TypeAlias = int | str


def is_request_id(value: object) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, str))
