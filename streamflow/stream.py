"""Lazy, chainable streams over sources, with context-aware terminal operations."""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from streamflow.context import Context, background
from streamflow.operations import (
    DistinctOperation,
    FilterOperation,
    FlatMapOperation,
    LimitOperation,
    MapOperation,
    Operation,
    PeekOperation,
    SkipOperation,
    SortOperation,
)
from streamflow.sources import (
    ChannelSource,
    EmptySource,
    GeneratorSource,
    MappingSource,
    SliceSource,
    Source,
)

T = TypeVar("T")


class StreamClosedError(Exception):
    """Raised when an operation is attempted on a closed stream."""

    def __init__(self, message: str = "stream is closed") -> None:
        super().__init__(message)


class _PipelineSource(Source[Any]):
    """Exposes the output of another stream's pipeline as a source."""

    def __init__(self, stream: Stream[Any]) -> None:
        self._stream = stream
        self._iterator: Iterator[Any] | None = None

    def next(self, context: Context) -> tuple[Any, bool]:
        if self._iterator is None:
            self._iterator = self._stream.iterate(context)
        try:
            return next(self._iterator), True
        except StopIteration:
            return None, False

    def close(self) -> None:
        iterator = self._iterator
        if iterator is not None:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
        self._stream.close()


class Stream(Generic[T]):
    """A lazy sequence of elements drawn from a source through a pipeline of operations.

    Intermediate operations return new streams sharing the same source; terminal
    operations consume the stream and close it.
    """

    def __init__(self, source: Source[T], pipeline: Iterable[Operation[T]] = ()) -> None:
        self._source = source
        self._pipeline: tuple[Operation[T], ...] = tuple(pipeline)
        self._closed = False
        self._lock = threading.Lock()

    # Intermediate operations

    def _extend(self, operation: Operation[T]) -> Stream[T]:
        return Stream(self._source, (*self._pipeline, operation))

    def filter(self, predicate: Callable[[T], bool]) -> Stream[T]:
        """Keep the elements for which ``predicate`` is true."""
        return self._extend(FilterOperation(predicate))

    def map(self, mapper: Callable[[T], T]) -> Stream[T]:
        """Replace each element with ``mapper(element)``."""
        return self._extend(MapOperation(mapper))

    def map_to(self, mapper: Callable[[T], Any]) -> Stream[Any]:
        """Return a stream of ``mapper`` applied to this stream's output."""
        return Stream(MappingSource(_PipelineSource(self), mapper))

    def flat_map(self, mapper: Callable[[T], Any]) -> Stream[T]:
        """Replace each element with the contents of the stream ``mapper`` returns."""
        return self._extend(FlatMapOperation(mapper))

    def distinct(self) -> Stream[T]:
        """Drop elements equal to one already seen."""
        return self._extend(DistinctOperation())

    def sorted(self, compare: Callable[[T, T], int]) -> Stream[T]:
        """Order the elements by a three-way ``compare`` function."""
        return self._extend(SortOperation(compare))

    def skip(self, n: int) -> Stream[T]:
        """Drop the first ``n`` elements."""
        return self._extend(SkipOperation(n))

    def limit(self, max_size: int) -> Stream[T]:
        """Keep at most ``max_size`` elements."""
        return self._extend(LimitOperation(max_size))

    def peek(self, action: Callable[[T], Any]) -> Stream[T]:
        """Call ``action`` on each element as it passes through."""
        return self._extend(PeekOperation(action))

    # Execution

    def iterate(self, context: Context | None = None) -> Iterator[T]:
        """Return an iterator over the pipeline's output without closing the stream."""
        if self.is_closed():
            raise StreamClosedError()
        ctx = context if context is not None else background()
        elements: Iterator[T] = self._pull(ctx)
        for operation in self._pipeline:
            elements = operation.apply(ctx, elements)
        return self._guard(ctx, elements)

    def _pull(self, context: Context) -> Iterator[T]:
        while not self.is_closed():
            context.check()
            value, has_more = self._source.next(context)
            if not has_more:
                return
            yield value

    def _guard(self, context: Context, elements: Iterator[T]) -> Iterator[T]:
        try:
            for value in elements:
                if self.is_closed():
                    return
                context.check()
                yield value
        finally:
            close = getattr(elements, "close", None)
            if close is not None:
                close()

    @contextmanager
    def _consume(self, context: Context | None) -> Iterator[Iterator[T]]:
        elements = self.iterate(context)
        try:
            yield elements
        finally:
            close = getattr(elements, "close", None)
            if close is not None:
                close()
            self.close()

    # Terminal operations

    def for_each(self, action: Callable[[T], Any], context: Context | None = None) -> None:
        """Call ``action`` on every element."""
        with self._consume(context) as elements:
            for value in elements:
                action(value)

    def reduce(
        self, identity: T, accumulator: Callable[[T, T], T], context: Context | None = None
    ) -> T:
        """Fold the elements into one value, starting from ``identity``."""
        with self._consume(context) as elements:
            result = identity
            for value in elements:
                result = accumulator(result, value)
            return result

    def collect(
        self,
        supplier: Callable[[], Any],
        accumulator: Callable[[Any, T], Any],
        combiner: Callable[[Any, Any], Any] | None = None,
        context: Context | None = None,
    ) -> Any:
        """Accumulate the elements into a container made by ``supplier``.

        ``combiner`` is accepted for symmetry with parallel collection but is not
        needed for sequential streams.
        """
        with self._consume(context) as elements:
            result = supplier()
            for value in elements:
                accumulator(result, value)
            return result

    def to_list(self, context: Context | None = None) -> list[T]:
        """Return all elements as a list."""
        with self._consume(context) as elements:
            return list(elements)

    def count(self, context: Context | None = None) -> int:
        """Return the number of elements."""
        with self._consume(context) as elements:
            return sum(1 for _ in elements)

    def any_match(self, predicate: Callable[[T], bool], context: Context | None = None) -> bool:
        """Return True if some element satisfies ``predicate``."""
        with self._consume(context) as elements:
            return any(predicate(value) for value in elements)

    def all_match(self, predicate: Callable[[T], bool], context: Context | None = None) -> bool:
        """Return True if every element satisfies ``predicate``."""
        with self._consume(context) as elements:
            return all(predicate(value) for value in elements)

    def none_match(self, predicate: Callable[[T], bool], context: Context | None = None) -> bool:
        """Return True if no element satisfies ``predicate``."""
        return not self.any_match(predicate, context)

    def find_first(self, context: Context | None = None) -> tuple[T | None, bool]:
        """Return the first element and True, or None and False if there is none."""
        with self._consume(context) as elements:
            for value in elements:
                return value, True
            return None, False

    def find_any(self, context: Context | None = None) -> tuple[T | None, bool]:
        """Return some element; for a sequential stream, the first one."""
        return self.find_first(context)

    def min(
        self, compare: Callable[[T, T], int], context: Context | None = None
    ) -> tuple[T | None, bool]:
        """Return the smallest element by ``compare`` and whether one was found."""
        return self._extreme(lambda a, b: compare(a, b) < 0, context)

    def max(
        self, compare: Callable[[T, T], int], context: Context | None = None
    ) -> tuple[T | None, bool]:
        """Return the largest element by ``compare`` and whether one was found."""
        return self._extreme(lambda a, b: compare(a, b) > 0, context)

    def _extreme(
        self, better: Callable[[T, T], bool], context: Context | None
    ) -> tuple[T | None, bool]:
        with self._consume(context) as elements:
            best: T | None = None
            found = False
            for value in elements:
                if not found or better(value, best):  # type: ignore[arg-type]
                    best = value
                    found = True
            return best, found

    # Lifecycle

    def close(self) -> None:
        """Close the stream and its source; closing twice does nothing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._source is not None:
            self._source.close()

    def is_closed(self) -> bool:
        """Return True once the stream is closed."""
        return self._closed

    def __enter__(self) -> Stream[T]:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def from_slice(items: Sequence[T]) -> Stream[T]:
    """Return a stream over the items of a sequence."""
    return Stream(SliceSource(items))


def from_channel(channel: queue.Queue[Any]) -> Stream[Any]:
    """Return a stream reading a queue until its ``CLOSED`` marker."""
    return Stream(ChannelSource(channel))


def generate(generator: Callable[[], T]) -> Stream[T]:
    """Return an infinite stream of values produced by ``generator``."""
    return Stream(GeneratorSource(generator))


def empty() -> Stream[Any]:
    """Return a stream with no elements."""
    return Stream(EmptySource())