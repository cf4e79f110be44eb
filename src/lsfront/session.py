from __future__ import annotations

import asyncio
import itertools
from enum import Enum
from functools import partial
from typing import Callable

from loguru import logger
from lsprotocol import types
from pygls.exceptions import JsonRpcInvalidRequest, JsonRpcParseError

from lsfront import protocol
from lsfront.adapter import EngineAdapter
from lsfront.cancellation import (
    CancellationHandle,
    CancellationRegistry,
    CancellationSource,
)
from lsfront.config import ServerSettings
from lsfront.disposal import DisposalCoordinator
from lsfront.engine import Engine
from lsfront.exceptions import DuplicateRequestId, MalformedMessage, TransportClosed
from lsfront.features import FEATURE_NOTIFICATIONS, FEATURE_REQUESTS
from lsfront.invariants import never
from lsfront.json_types import JSONObject, RequestId, is_request_id
from lsfront.lifecycle import Gate, SessionLifecycle, SessionState
from lsfront.router import Route, RouteKind, Router
from lsfront.supervisor import ProcessSupervisor, process_alive
from lsfront.transport import MessageTransport


class TerminationReason(str, Enum):
    EXIT = "exit"
    PROCESS_EXITED = "process_exited"
    TRANSPORT_CLOSED = "transport_closed"
    TRANSPORT_ERROR = "transport_error"


class Session:
    """One client connection from accept to teardown.

    Notifications are handled inline by the read loop, so document mutations
    are applied in arrival order before any later request is read. Requests
    each run in their own task and answer by id. Everything outbound goes
    through a single queue drained by one writer task.
    """

    max_pending_outbound = 256

    def __init__(
        self,
        transport: MessageTransport,
        engine: Engine,
        settings: ServerSettings | None = None,
        *,
        probe: Callable[[int], bool] = process_alive,
    ) -> None:
        self.settings = settings if settings is not None else ServerSettings()
        self.transport = transport
        self.lifecycle = SessionLifecycle()
        self.cancellation = CancellationSource()
        self.registry = CancellationRegistry(self.cancellation)
        self.coordinator = DisposalCoordinator()
        self.adapter = EngineAdapter(engine, self.coordinator, self)
        self.supervisor = ProcessSupervisor(
            self._on_process_exit,
            self.cancellation,
            interval=self.settings.watchdog_interval,
            probe=probe,
        )
        self.coordinator.add_finalizer("supervisor", self.supervisor.stop)
        self.router = Router(self._routes(), self.lifecycle)

        self._requests: dict[RequestId, asyncio.Task[None]] = {}
        self._abandoned: list[asyncio.Task[None]] = []
        self._outbox: asyncio.Queue[JSONObject] = asyncio.Queue()
        self._outbound_ids = itertools.count(1)
        self._pending_outbound: dict[RequestId, str] = {}
        self._closed = asyncio.Event()
        self._terminating = False
        self._draining = False
        self._reason: TerminationReason | None = None

    @property
    def state(self) -> SessionState:
        return self.lifecycle.state

    @property
    def termination_reason(self) -> TerminationReason | None:
        return self._reason

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def clean_exit(self) -> bool:
        return self._reason is TerminationReason.EXIT and self.lifecycle.shutdown_requested

    def _routes(self) -> list[Route]:
        routes = [
            Route(
                types.INITIALIZE,
                RouteKind.REQUEST,
                self._initialize,
                types.InitializeParams,
                Gate.INITIALIZE,
            ),
            Route(
                types.INITIALIZED,
                RouteKind.NOTIFICATION,
                self._initialized,
                types.InitializedParams,
                Gate.INITIALIZED,
            ),
            Route(types.SHUTDOWN, RouteKind.REQUEST, self._shutdown, None, Gate.SHUTDOWN),
            Route(types.EXIT, RouteKind.NOTIFICATION, self._exit, None, Gate.ALWAYS),
            Route(
                types.CANCEL_REQUEST,
                RouteKind.NOTIFICATION,
                self._cancel_request,
                types.CancelParams,
                Gate.ALWAYS,
            ),
            Route(
                protocol.LEGACY_CANCEL_REQUEST,
                RouteKind.NOTIFICATION,
                self._cancel_request,
                types.CancelParams,
                Gate.ALWAYS,
            ),
        ]
        for feature in FEATURE_REQUESTS:
            routes.append(
                Route(
                    feature.method,
                    RouteKind.REQUEST,
                    partial(self.adapter.request, feature.operation),
                    feature.params_type,
                )
            )
        for feature in FEATURE_NOTIFICATIONS:
            routes.append(
                Route(
                    feature.method,
                    RouteKind.NOTIFICATION,
                    partial(self.adapter.notify, feature.operation),
                    feature.params_type,
                )
            )
        return routes

    # Lifecycle handlers

    async def _initialize(
        self, params: types.InitializeParams, handle: CancellationHandle
    ) -> types.InitializeResult:
        self.lifecycle.begin_initialize()
        try:
            if params.process_id is not None:
                self.supervisor.watch(params.process_id)
            return await self.adapter.initialize(params)
        except Exception:
            if self.lifecycle.state is SessionState.INITIALIZING:
                self.supervisor.stop()
                self.lifecycle.abort_initialize()
            raise

    async def _initialized(self, params: types.InitializedParams) -> None:
        self.lifecycle.complete_initialize()
        await self.adapter.initialized(params)

    async def _shutdown(self, params: None, handle: CancellationHandle) -> None:
        self.lifecycle.begin_shutdown()
        await self.adapter.shutdown()
        return None

    async def _exit(self, params: None) -> None:
        if not self.lifecycle.shutdown_requested:
            logger.warning("exit received without a prior shutdown")
        await self.terminate(TerminationReason.EXIT)

    async def _cancel_request(self, params: types.CancelParams) -> None:
        self.registry.cancel(params.id)

    async def _on_process_exit(self, pid: int) -> None:
        await self.terminate(TerminationReason.PROCESS_EXITED)

    # Outbound

    def _post(self, message: JSONObject) -> None:
        if self._terminating:
            logger.debug(
                "dropping outbound message after teardown: {}",
                message.get("method", message.get("id")),
            )
            return
        self._outbox.put_nowait(message)

    def send_notification(self, method: str, params: object) -> None:
        self._post(protocol.notification_message(method, params))

    def send_request(self, method: str, params: object) -> None:
        request_id = f"lsfront-{next(self._outbound_ids)}"
        message = protocol.request_message(request_id, method, params)
        if self._terminating:
            logger.debug("dropping outbound {} after teardown", method)
            return
        if len(self._pending_outbound) >= self.max_pending_outbound:
            stale = next(iter(self._pending_outbound))
            logger.warning(
                "client never answered {} {}; forgetting it",
                self._pending_outbound.pop(stale),
                stale,
            )
        self._pending_outbound[request_id] = method
        self._post(message)

    async def _write_loop(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                if self._terminating and not self._draining:
                    continue
                await self.transport.write_message(message)
            except TransportClosed as exc:
                if not self._terminating:
                    logger.error("transport write failed: {}", exc)
                    await self.terminate(TerminationReason.TRANSPORT_ERROR)
            except Exception:
                logger.exception(
                    "dropping unwritable outbound message: {}",
                    message.get("method", message.get("id")),
                )
            finally:
                self._outbox.task_done()

    # Inbound

    async def _read_loop(self) -> None:
        reason = TerminationReason.TRANSPORT_CLOSED
        try:
            while not self._terminating:
                try:
                    message = await self.transport.read_message()
                except MalformedMessage as exc:
                    logger.warning("unparseable message: {}", exc)
                    self._post(
                        protocol.error_message(None, JsonRpcParseError(message=str(exc)))
                    )
                    continue
                if message is None:
                    logger.info("client closed the connection")
                    break
                try:
                    await self._handle_message(message)
                except Exception:
                    logger.exception("failed to handle inbound message")
        except TransportClosed as exc:
            logger.error("transport failed: {}", exc)
            reason = TerminationReason.TRANSPORT_ERROR
        except Exception:
            logger.exception("read loop failed")
            reason = TerminationReason.TRANSPORT_ERROR
        if not self._terminating:
            await self.terminate(reason)

    async def _handle_message(self, message: JSONObject) -> None:
        if protocol.is_response(message):
            self._on_response(message)
            return
        method = message.get("method")
        has_id = "id" in message
        request_id = message.get("id")
        if not isinstance(method, str) or (has_id and not is_request_id(request_id)):
            logger.warning("invalid JSON-RPC message: {}", message)
            reply_id = request_id if is_request_id(request_id) else None
            self._post(
                protocol.error_message(
                    reply_id, JsonRpcInvalidRequest(message="Invalid JSON-RPC message")
                )
            )
            return
        if has_id:
            self._start_request(request_id, method, message.get("params"))
            return
        await self.router.dispatch_notification(method, message.get("params"))

    def _start_request(self, request_id: RequestId, method: str, params: object) -> None:
        try:
            handle = self.registry.register(request_id)
        except DuplicateRequestId as exc:
            logger.warning("duplicate request id {!r} for {}", request_id, method)
            self._post(protocol.error_message(request_id, exc))
            return
        self._requests[request_id] = asyncio.get_running_loop().create_task(
            self._run_request(request_id, method, params, handle),
            name=f"lsfront-request-{request_id}",
        )

    async def _run_request(
        self,
        request_id: RequestId,
        method: str,
        params: object,
        handle: CancellationHandle,
    ) -> None:
        try:
            response = await self.router.dispatch_request(request_id, method, params, handle)
        finally:
            self.registry.complete(request_id)
            self._requests.pop(request_id, None)
        self._post(response)

    def _on_response(self, message: JSONObject) -> None:
        if not is_request_id(message["id"]):
            logger.warning("ignoring response with invalid id {!r}", message["id"])
            return
        method = self._pending_outbound.pop(message["id"], None)
        if method is None:
            logger.debug("response for unknown outbound id {!r}", message["id"])
            return
        if "error" in message:
            logger.warning("client rejected {}: {}", method, message["error"])
        else:
            logger.debug("client answered {}: {}", method, message.get("result"))

    # Termination

    async def terminate(self, reason: TerminationReason) -> bool:
        """Run the teardown once; later callers get False."""
        if self._terminating:
            return False
        self._terminating = True
        self._reason = reason
        logger.info("terminating session: {}", reason.value)
        self.cancellation.cancel()
        current = asyncio.current_task()
        for task in list(self._requests.values()):
            if task is not current:
                task.cancel()
                self._abandoned.append(task)
        self._requests.clear()
        self._pending_outbound.clear()
        if reason is TerminationReason.EXIT:
            await self.adapter.exit()
        self.coordinator.run_once()
        self.lifecycle.mark_exited()
        if reason is TerminationReason.EXIT:
            await self._flush()
        self.transport.close()
        self._closed.set()
        return True

    async def _flush(self) -> None:
        self._draining = True
        try:
            await asyncio.wait_for(self._outbox.join(), timeout=self.settings.flush_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "outbound queue not flushed in time; dropping {} messages",
                self._outbox.qsize(),
            )
        finally:
            self._draining = False

    async def serve(self) -> TerminationReason:
        loop = asyncio.get_running_loop()
        self.adapter.attach()
        writer = loop.create_task(self._write_loop(), name="lsfront-writer")
        reader = loop.create_task(self._read_loop(), name="lsfront-reader")
        try:
            await self._closed.wait()
        finally:
            if not self._terminating:
                await self.terminate(TerminationReason.TRANSPORT_CLOSED)
            tasks = [reader, writer, *self._abandoned]
            for task in tasks:
                if task is not asyncio.current_task():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._reason is None:
            never("session closed without a termination reason")
        return self._reason
