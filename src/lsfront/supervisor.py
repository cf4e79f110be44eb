from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import psutil
from loguru import logger

from lsfront.cancellation import CancellationSource


def process_alive(pid: int) -> bool:
    try:
        process = psutil.Process(pid)
        return process.is_running() and process.status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, ValueError):
        # ValueError: psutil rejects non-positive pids.
        return False
    except psutil.AccessDenied:
        # Exists but belongs to someone else.
        return True


class ProcessSupervisor:
    """Watches the client's owning process and ends the session when it dies.

    The poll loop is a task on the session's event loop. It re-checks the
    session source on every wake-up and returns as soon as the session is
    cancelled, so it never outlives the session.
    """

    def __init__(
        self,
        on_process_exit: Callable[[int], Awaitable[object]],
        session: CancellationSource,
        *,
        interval: float = 2.0,
        probe: Callable[[int], bool] = process_alive,
    ) -> None:
        self._on_process_exit = on_process_exit
        self._session = session
        self._interval = interval
        self._probe = probe
        self._task: asyncio.Task[None] | None = None
        self._pid: int | None = None

    @property
    def pid(self) -> int | None:
        return self._pid

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def watch(self, pid: int) -> bool:
        if self.running:
            logger.warning("already supervising process {}; ignoring {}", self._pid, pid)
            return False
        if not self._probe(pid):
            logger.warning("client process {} not found; not supervising it", pid)
            return False
        self._pid = pid
        self._task = asyncio.get_running_loop().create_task(
            self._poll(pid), name=f"lsfront-supervisor-{pid}"
        )
        logger.info("supervising client process {} every {}s", pid, self._interval)
        return True

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # Teardown triggered from inside the poll loop; it returns on its own.
            return
        task.cancel()

    async def _poll(self, pid: int) -> None:
        while not self._session.is_cancelled:
            await asyncio.sleep(self._interval)
            if self._session.is_cancelled:
                return
            if self._probe(pid):
                continue
            logger.warning("client process {} exited; terminating session", pid)
            await self._on_process_exit(pid)
            return
