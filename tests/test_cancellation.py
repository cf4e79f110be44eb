from __future__ import annotations

import gc

import pytest

from lsfront.cancellation import CancellationHandle, CancellationRegistry, CancellationSource
from lsfront.exceptions import DuplicateRequestId, RequestCancelled


def test_register_cancel_and_complete() -> None:
    registry = CancellationRegistry()
    handle = registry.register(1)
    assert 1 in registry
    assert registry.outstanding() == [1]
    assert not handle.is_cancelled

    assert registry.cancel(1) is True
    assert handle.is_cancelled

    registry.complete(1)
    assert 1 not in registry
    assert registry.cancel(1) is False
    # Completing twice is harmless.
    registry.complete(1)


def test_cancel_unknown_id_is_a_no_op() -> None:
    registry = CancellationRegistry()
    keep = registry.register("a")
    assert registry.cancel("b") is False
    assert not keep.is_cancelled


def test_duplicate_outstanding_id_is_rejected() -> None:
    registry = CancellationRegistry()
    first = registry.register(7)
    with pytest.raises(DuplicateRequestId) as excinfo:
        registry.register(7)
    assert excinfo.value.code == -32600
    assert excinfo.value.request_id == 7
    assert not first.is_cancelled

    registry.complete(7)
    again = registry.register(7)
    assert again is not first


def test_int_and_string_ids_are_distinct() -> None:
    registry = CancellationRegistry()
    numeric = registry.register(1)
    text = registry.register("1")
    registry.cancel("1")
    assert text.is_cancelled
    assert not numeric.is_cancelled


def test_session_source_cancels_every_handle() -> None:
    source = CancellationSource()
    registry = CancellationRegistry(source)
    first = registry.register(1)
    second = registry.register(2)
    source.cancel()
    assert first.is_cancelled and second.is_cancelled


def test_raise_if_cancelled_uses_request_cancelled_code() -> None:
    handle = CancellationHandle("req")
    handle.raise_if_cancelled()
    handle.cancel()
    try:
        handle.raise_if_cancelled()
    except RequestCancelled as exc:
        assert exc.code == -32800
        assert exc.request_id == "req"
    else:
        raise AssertionError("Expected RequestCancelled once the handle is cancelled")


def test_registry_does_not_keep_abandoned_handles_alive() -> None:
    registry = CancellationRegistry()
    registry.register(1)
    gc.collect()
    assert 1 not in registry
    assert len(registry) == 0
