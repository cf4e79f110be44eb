from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Protocol

from loguru import logger
from lsprotocol import types
from pygls.exceptions import JsonRpcException

from lsfront.cancellation import CancellationHandle
from lsfront.disposal import DisposalCoordinator, Subscription
from lsfront.engine import Engine, EngineEvent
from lsfront.exceptions import EngineError, InvalidStateError
from lsfront.lifecycle import SessionState


class OutboundKind(str, Enum):
    NOTIFICATION = "notification"
    REQUEST = "request"


class Outbound(Protocol):
    def send_notification(self, method: str, params: object) -> None: ...

    def send_request(self, method: str, params: object) -> None: ...


EVENT_ROUTES: dict[EngineEvent, tuple[str, OutboundKind]] = {
    EngineEvent.LOG_MESSAGE: (types.WINDOW_LOG_MESSAGE, OutboundKind.NOTIFICATION),
    EngineEvent.SHOW_MESSAGE: (types.WINDOW_SHOW_MESSAGE, OutboundKind.NOTIFICATION),
    EngineEvent.TELEMETRY: (types.TELEMETRY_EVENT, OutboundKind.NOTIFICATION),
    EngineEvent.PUBLISH_DIAGNOSTICS: (
        types.TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
        OutboundKind.NOTIFICATION,
    ),
    EngineEvent.APPLY_WORKSPACE_EDIT: (types.WORKSPACE_APPLY_EDIT, OutboundKind.REQUEST),
    EngineEvent.REGISTER_CAPABILITY: (
        types.CLIENT_REGISTER_CAPABILITY,
        OutboundKind.REQUEST,
    ),
    EngineEvent.UNREGISTER_CAPABILITY: (
        types.CLIENT_UNREGISTER_CAPABILITY,
        OutboundKind.REQUEST,
    ),
}


class EngineAdapter:
    """The only component that talks to the engine.

    Calls flow in through ``request``/``notify``; engine events flow out
    through subscriptions created by ``attach``, each one recorded with the
    disposal coordinator so teardown removes it.
    """

    def __init__(
        self,
        engine: Engine,
        coordinator: DisposalCoordinator,
        outbound: Outbound,
    ) -> None:
        self._engine: Engine | None = engine
        self._coordinator = coordinator
        self._outbound = outbound
        self._attached = False

    @property
    def released(self) -> bool:
        return self._engine is None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise InvalidStateError("engine", SessionState.EXITED, "engine was released")
        return self._engine

    def attach(self) -> None:
        if self._attached:
            return
        self._attached = True
        engine = self.engine
        for event, (method, kind) in EVENT_ROUTES.items():
            handler = self._forwarder(event, method, kind)
            engine.events.subscribe(event, handler)
            self._coordinator.track(Subscription(engine.events, event, handler))
        self._coordinator.add_finalizer("engine", self.release)

    def release(self) -> None:
        engine, self._engine = self._engine, None
        if engine is None:
            return
        engine.dispose()
        logger.debug("engine released")

    def _forwarder(
        self, event: EngineEvent, method: str, kind: OutboundKind
    ) -> Callable[[Any], None]:
        def forward(payload: Any) -> None:
            if self._engine is None or self._coordinator.disposed:
                logger.debug("dropping {} event after teardown", event.value)
                return
            try:
                if kind is OutboundKind.REQUEST:
                    self._outbound.send_request(method, payload)
                else:
                    self._outbound.send_notification(method, payload)
            except Exception:
                logger.exception("failed to forward {} as {}", event.value, method)

        forward.__name__ = f"forward_{event.value}"
        return forward

    async def request(
        self, operation: str, params: object, token: CancellationHandle
    ) -> Any:
        call = getattr(self.engine, operation)
        try:
            return await call(params, token)
        except (JsonRpcException, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise EngineError(operation, exc) from exc

    async def notify(self, operation: str, params: object) -> None:
        call = getattr(self.engine, operation)
        try:
            await call(params)
        except (JsonRpcException, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise EngineError(operation, exc) from exc

    async def initialize(self, params: types.InitializeParams) -> types.InitializeResult:
        try:
            return await self.engine.initialize(params)
        except JsonRpcException:
            raise
        except Exception as exc:
            raise EngineError("initialize", exc) from exc

    async def initialized(self, params: types.InitializedParams) -> None:
        await self.notify("initialized", params)

    async def shutdown(self) -> None:
        try:
            await self.engine.shutdown()
        except JsonRpcException:
            raise
        except Exception as exc:
            raise EngineError("shutdown", exc) from exc

    async def exit(self) -> None:
        if self._engine is None:
            return
        try:
            await self._engine.exit()
        except Exception:
            logger.exception("engine exit hook failed")
