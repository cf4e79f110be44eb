from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from loguru import logger


class EventSource(Protocol):
    def subscribe(self, event: object, handler: Callable[..., None]) -> None: ...

    def unsubscribe(self, event: object, handler: Callable[..., None]) -> None: ...


@dataclass(frozen=True, eq=False)
class Subscription:
    source: EventSource
    event: object
    handler: Callable[..., None]

    def remove(self) -> None:
        self.source.unsubscribe(self.event, self.handler)


class DisposalCoordinator:
    """Owns every teardown step of a session and runs them exactly once.

    Subscriptions are removed newest first, then finalizers run in the order
    they were added. A failing step is logged and the rest still run.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._finalizers: list[tuple[str, Callable[[], None]]] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(self._subscriptions)

    def track(self, subscription: Subscription) -> Subscription:
        if self._disposed:
            # Registered after teardown; undo at once.
            self._remove(subscription)
            return subscription
        self._subscriptions.append(subscription)
        return subscription

    def add_finalizer(self, name: str, callback: Callable[[], None]) -> None:
        if self._disposed:
            self._call(name, callback)
            return
        self._finalizers.append((name, callback))

    def run_once(self) -> bool:
        """Tear everything down; returns False when already disposed."""
        if self._disposed:
            return False
        self._disposed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in reversed(subscriptions):
            self._remove(subscription)
        finalizers, self._finalizers = self._finalizers, []
        for name, callback in finalizers:
            self._call(name, callback)
        logger.debug(
            "disposed {} subscriptions and {} finalizers",
            len(subscriptions),
            len(finalizers),
        )
        return True

    @staticmethod
    def _remove(subscription: Subscription) -> None:
        try:
            subscription.remove()
        except Exception:
            logger.exception("failed to remove subscription for {}", subscription.event)

    @staticmethod
    def _call(name: str, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("finalizer {} failed", name)
