from __future__ import annotations

from enum import Enum

from loguru import logger

from lsfront.exceptions import InvalidStateError, NotInitializedError
from lsfront.invariants import never


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    SHUTTING_DOWN = "shutting_down"
    EXITED = "exited"


class Gate(str, Enum):
    """Which lifecycle states admit a method."""

    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    SHUTDOWN = "shutdown"
    FEATURE = "feature"
    ALWAYS = "always"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.UNINITIALIZED: frozenset(
        {SessionState.INITIALIZING, SessionState.EXITED}
    ),
    SessionState.INITIALIZING: frozenset(
        {SessionState.UNINITIALIZED, SessionState.INITIALIZED, SessionState.EXITED}
    ),
    SessionState.INITIALIZED: frozenset(
        {SessionState.SHUTTING_DOWN, SessionState.EXITED}
    ),
    SessionState.SHUTTING_DOWN: frozenset({SessionState.EXITED}),
    SessionState.EXITED: frozenset(),
}

_PRE_INITIALIZED = frozenset({SessionState.UNINITIALIZED, SessionState.INITIALIZING})


class SessionLifecycle:
    """Protocol state for one session.

    Only the router's lifecycle handlers and the termination path move the
    state; everything else reads it through ``check``.
    """

    def __init__(self) -> None:
        self._state = SessionState.UNINITIALIZED
        self._shutdown_requested = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def exited(self) -> bool:
        return self._state is SessionState.EXITED

    def allows(self, gate: Gate) -> bool:
        state = self._state
        if gate is Gate.ALWAYS:
            return True
        if gate is Gate.INITIALIZE:
            return state is SessionState.UNINITIALIZED
        if gate is Gate.INITIALIZED:
            return state is SessionState.INITIALIZING
        if gate is Gate.SHUTDOWN or gate is Gate.FEATURE:
            return state is SessionState.INITIALIZED
        never("unknown lifecycle gate", gate=gate)

    def check(self, method: str, gate: Gate) -> None:
        if self.allows(gate):
            return
        state = self._state
        if gate is Gate.INITIALIZE:
            raise InvalidStateError(method, state, "initialize was already received")
        if state in _PRE_INITIALIZED:
            raise NotInitializedError(method, state)
        if state is SessionState.SHUTTING_DOWN:
            raise InvalidStateError(method, state, "server is shutting down")
        raise InvalidStateError(method, state)

    def _move(self, target: SessionState) -> None:
        current = self._state
        if target not in _TRANSITIONS[current]:
            never(
                "illegal lifecycle transition",
                current=current.value,
                target=target.value,
            )
        self._state = target
        logger.info("session state {} -> {}", current.value, target.value)

    def begin_initialize(self) -> None:
        self._move(SessionState.INITIALIZING)

    def abort_initialize(self) -> None:
        self._move(SessionState.UNINITIALIZED)

    def complete_initialize(self) -> None:
        self._move(SessionState.INITIALIZED)

    def begin_shutdown(self) -> None:
        self._move(SessionState.SHUTTING_DOWN)
        self._shutdown_requested = True

    def mark_exited(self) -> None:
        if self._state is SessionState.EXITED:
            return
        self._move(SessionState.EXITED)
