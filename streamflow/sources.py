"""Element sources that feed a stream."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from contextlib import suppress
from typing import Any, Generic, TypeVar

from streamflow.context import Context

T = TypeVar("T")
U = TypeVar("U")

_POLL_INTERVAL = 0.02


class _ChannelClosed:
    """Marker that tells channel readers no more values will arrive."""

    def __repr__(self) -> str:
        return "CLOSED"


CLOSED = _ChannelClosed()

_EXHAUSTED: tuple[None, bool] = (None, False)


class Source(ABC, Generic[T]):
    """Produces elements one at a time.

    ``next`` returns a ``(value, has_more)`` pair; once ``has_more`` is False the
    value is None and the source is exhausted.
    """

    @abstractmethod
    def next(self, context: Context) -> tuple[T | None, bool]:
        """Return the next element and True, or None and False when exhausted."""

    def close(self) -> None:
        """Release any resources held by the source; by default there are none."""


class SliceSource(Source[T]):
    """Yields the items of a sequence in order."""

    def __init__(self, items: Sequence[T]) -> None:
        self._items = items
        self._index = 0
        self._lock = threading.Lock()

    def next(self, context: Context) -> tuple[T | None, bool]:
        with self._lock:
            index = self._index
            self._index += 1
        if index >= len(self._items):
            return _EXHAUSTED
        context.check()
        return self._items[index], True

    def close(self) -> None:
        """A sequence holds no resources; nothing to release."""


class ChannelSource(Source[T]):
    """Reads from a queue until the ``CLOSED`` marker is taken from it.

    The queue belongs to its producer, so closing the source releases nothing.
    """

    def __init__(self, channel: queue.Queue[Any]) -> None:
        self._channel = channel
        self._closed = False

    def next(self, context: Context) -> tuple[T | None, bool]:
        if self._closed:
            return _EXHAUSTED
        while True:
            context.check()
            try:
                item = self._channel.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if item is CLOSED:
                self._closed = True
                # Leave the marker for any other reader of the same queue.
                with suppress(queue.Full):
                    self._channel.put_nowait(CLOSED)
                return _EXHAUSTED
            return item, True

    def close(self) -> None:
        """The queue belongs to its producer; nothing to release."""


class GeneratorSource(Source[T]):
    """Calls a function for every element; never runs out."""

    def __init__(self, generator: Callable[[], T]) -> None:
        self._generator = generator

    def next(self, context: Context) -> tuple[T | None, bool]:
        context.check()
        return self._generator(), True

    def close(self) -> None:
        """A generator function holds no resources; nothing to release."""


class EmptySource(Source[Any]):
    """A source with no elements."""

    def next(self, context: Context) -> tuple[None, bool]:
        return _EXHAUSTED

    def close(self) -> None:
        """Nothing to release."""


class MappingSource(Source[U], Generic[T, U]):
    """Transforms each element of another source."""

    def __init__(self, source: Source[T], mapper: Callable[[T], U]) -> None:
        self._source = source
        self._mapper = mapper

    def next(self, context: Context) -> tuple[U | None, bool]:
        value, has_more = self._source.next(context)
        if not has_more:
            return _EXHAUSTED
        return self._mapper(value), True

    def close(self) -> None:
        self._source.close()