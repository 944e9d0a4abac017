"""
Capture buffer for browser-delivered payloads.

The browser runtime hands data responses to an event hook on its own
schedule, while the discovery driver pulls pages one call at a time.
The buffer sits between the two: the hook appends decoded payloads, and
``list_page`` pops the oldest one after each page action.

Pairing is by arrival order only. This is correct while the source
issues exactly one matching data request per page action and answers
them in order.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from tenderwatch.core.errors import NoDataError


class CaptureBuffer:
    """Lock-guarded FIFO of captured payloads.

    A ``threading.Lock`` guards every access so producers may run as
    event-loop tasks or on foreign threads.
    """

    def __init__(self, source: str | None = None) -> None:
        self.source = source
        self._lock = threading.Lock()
        self._queue: deque[Any] = deque()

    def append(self, payload: Any) -> None:
        """Enqueue a payload captured by the event hook."""
        with self._lock:
            self._queue.append(payload)

    def pop_oldest(self) -> Any:
        """Dequeue the oldest payload.

        Raises:
            NoDataError: If nothing has been captured
        """
        with self._lock:
            if not self._queue:
                raise NoDataError(
                    "No data response captured for page load",
                    source=self.source,
                )
            return self._queue.popleft()

    def clear(self) -> int:
        """Drop everything buffered so far. Returns how many were dropped."""
        with self._lock:
            dropped = len(self._queue)
            self._queue.clear()
            return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)
