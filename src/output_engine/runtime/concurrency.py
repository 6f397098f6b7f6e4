"""Thread concurrency primitives used by the batch driver."""

from __future__ import annotations

import threading
from typing import List, Optional


class CancellationToken:
    """Cooperative cancellation token backed by ``threading.Event``.

    Cancelling a token also cancels every token created with ``child()``.
    """

    def __init__(self, parent: Optional[CancellationToken] = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: List[CancellationToken] = []
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: CancellationToken) -> None:
        with self._lock:
            self._children.append(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; True when cancelled."""
        return self._event.wait(timeout)


__all__ = ["CancellationToken"]
