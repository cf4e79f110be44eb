from __future__ import annotations

from lsfront.disposal import DisposalCoordinator, Subscription
from lsfront.engine import EngineEvent, EventHub


def _noop(payload: object) -> None:
    return None


def test_run_once_removes_subscriptions_newest_first_then_finalizers() -> None:
    calls: list[str] = []

    class _Source:
        def subscribe(self, event: object, handler: object) -> None:
            return None

        def unsubscribe(self, event: object, handler: object) -> None:
            calls.append(f"unsubscribe:{event}")

    coordinator = DisposalCoordinator()
    source = _Source()
    coordinator.track(Subscription(source, "first", _noop))
    coordinator.track(Subscription(source, "second", _noop))
    coordinator.add_finalizer("a", lambda: calls.append("finalize:a"))
    coordinator.add_finalizer("b", lambda: calls.append("finalize:b"))
    assert len(coordinator.subscriptions) == 2

    assert coordinator.run_once() is True
    assert calls == [
        "unsubscribe:second",
        "unsubscribe:first",
        "finalize:a",
        "finalize:b",
    ]
    assert coordinator.disposed
    assert coordinator.subscriptions == ()

    assert coordinator.run_once() is False
    assert len(calls) == 4


def test_subscriptions_are_removed_from_a_real_hub() -> None:
    hub = EventHub()
    coordinator = DisposalCoordinator()
    hub.subscribe(EngineEvent.LOG_MESSAGE, _noop)
    coordinator.track(Subscription(hub, EngineEvent.LOG_MESSAGE, _noop))
    assert hub.handler_count() == 1
    coordinator.run_once()
    assert hub.handler_count() == 0


def test_failing_step_does_not_stop_teardown() -> None:
    hub = EventHub()
    coordinator = DisposalCoordinator()
    # Never subscribed, so removal fails.
    coordinator.track(Subscription(hub, EngineEvent.TELEMETRY, _noop))
    ran: list[str] = []

    def _broken() -> None:
        raise RuntimeError("finalizer exploded")

    coordinator.add_finalizer("broken", _broken)
    coordinator.add_finalizer("after", lambda: ran.append("after"))
    assert coordinator.run_once() is True
    assert ran == ["after"]


def test_late_registrations_are_undone_immediately() -> None:
    hub = EventHub()
    coordinator = DisposalCoordinator()
    coordinator.run_once()

    hub.subscribe(EngineEvent.SHOW_MESSAGE, _noop)
    coordinator.track(Subscription(hub, EngineEvent.SHOW_MESSAGE, _noop))
    assert hub.handler_count(EngineEvent.SHOW_MESSAGE) == 0
    assert coordinator.subscriptions == ()

    ran: list[str] = []
    coordinator.add_finalizer("late", lambda: ran.append("late"))
    assert ran == ["late"]
