from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping

from loguru import logger
from pygls.exceptions import (
    JsonRpcException,
    JsonRpcInternalError,
    JsonRpcInvalidParams,
    JsonRpcMethodNotFound,
    JsonRpcRequestCancelled,
)

from lsfront import protocol
from lsfront.cancellation import CancellationHandle
from lsfront.exceptions import LifecycleError
from lsfront.invariants import never
from lsfront.json_types import JSONObject, RequestId
from lsfront.lifecycle import Gate, SessionLifecycle


class RouteKind(str, Enum):
    REQUEST = "request"
    NOTIFICATION = "notification"


RequestHandler = Callable[[Any, CancellationHandle], Awaitable[Any]]
NotificationHandler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class Route:
    method: str
    kind: RouteKind
    handler: Callable[..., Awaitable[Any]]
    params_type: type | None
    gate: Gate = Gate.FEATURE


def build_table(routes: Iterable[Route]) -> Mapping[str, Route]:
    table: dict[str, Route] = {}
    for route in routes:
        if route.method in table:
            never("duplicate route", method=route.method)
        table[route.method] = route
    return MappingProxyType(table)


class Router:
    """Dispatches inbound messages through the lifecycle gate to handlers.

    A request always yields exactly one response message; a notification
    never yields one. Handler failures stop here.
    """

    def __init__(self, routes: Iterable[Route], lifecycle: SessionLifecycle) -> None:
        self._table = build_table(routes)
        self._lifecycle = lifecycle

    @property
    def table(self) -> Mapping[str, Route]:
        return self._table

    def lookup(self, method: str) -> Route | None:
        return self._table.get(method)

    async def dispatch_request(
        self,
        request_id: RequestId,
        method: str,
        raw_params: object,
        handle: CancellationHandle,
    ) -> JSONObject:
        try:
            result = await self._invoke_request(method, raw_params, handle)
        except JsonRpcRequestCancelled as exc:
            logger.debug("request {!r} ({}) cancelled", request_id, method)
            return protocol.error_message(request_id, exc)
        except LifecycleError as exc:
            logger.info("rejected {} in state {}", method, exc.state.value)
            return protocol.error_message(request_id, exc)
        except JsonRpcException as exc:
            logger.warning("request {!r} ({}) failed: {}", request_id, method, exc.message)
            return protocol.error_message(request_id, exc)
        except Exception as exc:
            logger.exception("unhandled error in {} handler", method)
            return protocol.error_message(
                request_id, JsonRpcInternalError(message=f"{method}: {exc}")
            )
        return protocol.result_message(request_id, result)

    async def _invoke_request(
        self, method: str, raw_params: object, handle: CancellationHandle
    ) -> Any:
        route = self._table.get(method)
        if route is None or route.kind is not RouteKind.REQUEST:
            raise JsonRpcMethodNotFound(message=f"Method not found: {method}")
        self._lifecycle.check(method, route.gate)
        params = self._structure(route, raw_params)
        handle.raise_if_cancelled()
        logger.debug("dispatching request {!r} {}", handle.request_id, method)
        result = await route.handler(params, handle)
        payload = protocol.unstructure(result)
        try:
            protocol.ensure_json(payload)
        except (TypeError, ValueError) as exc:
            raise JsonRpcInternalError(
                message=f"{method} returned a result that is not JSON: {exc}"
            ) from exc
        return payload

    async def dispatch_notification(self, method: str, raw_params: object) -> None:
        route = self._table.get(method)
        if route is None or route.kind is not RouteKind.NOTIFICATION:
            logger.debug("ignoring notification {}", method)
            return
        try:
            self._lifecycle.check(method, route.gate)
            params = self._structure(route, raw_params)
            logger.debug("dispatching notification {}", method)
            await route.handler(params)
        except JsonRpcRequestCancelled:
            logger.debug("notification {} cancelled", method)
        except LifecycleError as exc:
            logger.warning("dropped {} in state {}", method, exc.state.value)
        except JsonRpcException as exc:
            logger.warning("notification {} failed: {}", method, exc.message)
        except Exception:
            logger.exception("unhandled error in {} handler", method)

    @staticmethod
    def _structure(route: Route, raw_params: object) -> Any:
        if route.params_type is None:
            return None
        if raw_params is None:
            raw_params = {}
        try:
            return protocol.structure(raw_params, route.params_type)
        except Exception as exc:
            raise JsonRpcInvalidParams(
                message=f"Invalid params for {route.method}: {exc}"
            ) from exc
