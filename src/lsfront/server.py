from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger

from lsfront.config import ServerSettings
from lsfront.engine import Engine, EngineFactory, load_engine_factory
from lsfront.session import Session, TerminationReason
from lsfront.transport import MessageTransport, StreamTransport, open_stdio_transport


def build_session(
    transport: MessageTransport,
    settings: ServerSettings,
    engine_factory: EngineFactory | None = None,
) -> Session:
    factory = engine_factory or load_engine_factory(settings.engine)
    engine = factory(settings)
    if not isinstance(engine, Engine):
        logger.warning(
            "engine factory {} returned {}, not an Engine subclass",
            settings.engine,
            type(engine).__name__,
        )
    return Session(transport, engine, settings)


async def serve_stdio(
    settings: ServerSettings,
    engine_factory: EngineFactory | None = None,
) -> Session:
    session = build_session(open_stdio_transport(), settings, engine_factory)
    logger.info("{} {} listening on stdio", settings.name, settings.version)
    await session.serve()
    return session


async def serve_tcp(
    settings: ServerSettings,
    engine_factory: EngineFactory | None = None,
    *,
    on_listening: Callable[[asyncio.AbstractServer], None] | None = None,
) -> Session:
    """Accept clients until one of them ends its session with ``exit``."""
    finished: asyncio.Future[Session] = asyncio.get_running_loop().create_future()

    async def _handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        logger.info("client connected from {}", peer)
        session = build_session(StreamTransport(reader, writer), settings, engine_factory)
        reason = await session.serve()
        logger.info("client {} disconnected ({})", peer, reason.value)
        if reason is TerminationReason.EXIT and not finished.done():
            finished.set_result(session)

    server = await asyncio.start_server(_handle, settings.host, settings.port)
    async with server:
        for sock in server.sockets:
            logger.info("{} listening on {}", settings.name, sock.getsockname())
        if on_listening is not None:
            on_listening(server)
        return await finished


def run(
    settings: ServerSettings,
    engine_factory: EngineFactory | None = None,
) -> int:
    """Serve until the session ends; exit status follows the LSP convention."""
    if settings.transport == "tcp":
        session = asyncio.run(serve_tcp(settings, engine_factory))
    else:
        session = asyncio.run(serve_stdio(settings, engine_factory))
    return 0 if session.clean_exit else 1
