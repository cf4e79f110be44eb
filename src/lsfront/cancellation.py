from __future__ import annotations

import weakref
from dataclasses import dataclass, field

from loguru import logger

from lsfront.exceptions import DuplicateRequestId, RequestCancelled
from lsfront.json_types import RequestId


class CancellationSource:
    """Session-wide cancellation flag shared by every request handle."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(eq=False)
class CancellationHandle:
    request_id: RequestId
    source: CancellationSource | None = None
    _cancelled: bool = field(default=False, init=False)

    @property
    def is_cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self.source is not None and self.source.is_cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise RequestCancelled(self.request_id)


class CancellationRegistry:
    """Lookup table from outstanding request id to its cancellation handle.

    The registry holds handles weakly: the request task owns the handle, so a
    request that vanishes without calling ``complete`` cannot leak an entry.
    Cancellation is advisory; marking a handle never interrupts a handler.
    """

    def __init__(self, source: CancellationSource | None = None) -> None:
        self._source = source
        self._handles: weakref.WeakValueDictionary[RequestId, CancellationHandle] = (
            weakref.WeakValueDictionary()
        )

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def register(self, request_id: RequestId) -> CancellationHandle:
        if request_id in self._handles:
            raise DuplicateRequestId(request_id)
        handle = CancellationHandle(request_id, self._source)
        self._handles[request_id] = handle
        return handle

    def cancel(self, request_id: RequestId) -> bool:
        handle = self._handles.get(request_id)
        if handle is None:
            logger.debug("cancel for unknown or finished request {!r}", request_id)
            return False
        handle.cancel()
        logger.debug("request {!r} marked cancelled", request_id)
        return True

    def complete(self, request_id: RequestId) -> None:
        self._handles.pop(request_id, None)

    def outstanding(self) -> list[RequestId]:
        return list(self._handles.keys())
