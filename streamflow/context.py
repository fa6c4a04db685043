"""Cancellation and deadline propagation for stream, channel and writer operations."""

from __future__ import annotations

import threading
import time
import weakref


class CancelledError(Exception):
    """Raised when work is abandoned because its context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceededError(TimeoutError):
    """Raised when work is abandoned because its context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """A cancellation signal with an optional deadline.

    Cancelling a context also cancels every context derived from it; a derived
    context never outlives the deadline of its parent.
    """

    def __init__(self, timeout: float | None = None, parent: Context | None = None) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._error_type: type[Exception] | None = None
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()

        deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent._deadline is not None:
            if deadline is None or parent._deadline < deadline:
                deadline = parent._deadline
        self._deadline = deadline

        if parent is not None:
            parent._adopt(self)

    def cancel(self) -> None:
        """Cancel this context and all contexts derived from it."""
        self._finish(CancelledError)

    def with_timeout(self, seconds: float) -> Context:
        """Return a derived context that expires after ``seconds``."""
        return Context(timeout=seconds, parent=self)

    def child(self) -> Context:
        """Return a derived context that can be cancelled on its own."""
        return Context(parent=self)

    def is_done(self) -> bool:
        """Return True once the context is cancelled or past its deadline."""
        self._refresh()
        return self._done.is_set()

    def error(self) -> Exception | None:
        """Return the reason the context is done, or None while it is live."""
        self._refresh()
        error_type = self._error_type
        return None if error_type is None else error_type()

    def check(self) -> None:
        """Raise the context's error if it is done."""
        error = self.error()
        if error is not None:
            raise error

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is done or ``timeout`` elapses; return whether it is done."""
        limit = timeout
        if self._deadline is not None:
            remaining = max(0.0, self._deadline - time.monotonic())
            limit = remaining if limit is None else min(limit, remaining)
        self._done.wait(limit)
        return self.is_done()

    def _refresh(self) -> None:
        if self._done.is_set() or self._deadline is None:
            return
        if time.monotonic() >= self._deadline:
            self._finish(DeadlineExceededError)

    def _adopt(self, child: Context) -> None:
        self._refresh()
        with self._lock:
            error_type = self._error_type
            if error_type is None:
                self._children.add(child)
                return
        child._finish(error_type)

    def _finish(self, error_type: type[Exception]) -> None:
        with self._lock:
            if self._done.is_set():
                return
            self._error_type = error_type
            self._done.set()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child._finish(error_type)


def background() -> Context:
    """Return a fresh root context with no deadline."""
    return Context()