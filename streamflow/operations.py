"""Intermediate stream operations, each a lazy stage over an element iterator."""

from __future__ import annotations

import functools
import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from streamflow.context import Context

T = TypeVar("T")


def _checked(context: Context, elements: Iterable[T]) -> Iterator[T]:
    """Yield the elements, raising as soon as the context is done."""
    for value in elements:
        context.check()
        yield value


class Operation(ABC, Generic[T]):
    """A lazy transformation from one element sequence to another."""

    @abstractmethod
    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        """Return an iterator over the transformed elements."""


@dataclass(frozen=True)
class FilterOperation(Operation[T]):
    """Keeps the elements for which ``predicate`` is true."""

    predicate: Callable[[T], bool]

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        return filter(self.predicate, _checked(context, elements))


@dataclass(frozen=True)
class MapOperation(Operation[T]):
    """Replaces each element with ``mapper(element)``."""

    mapper: Callable[[T], T]

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        return map(self.mapper, _checked(context, elements))


@dataclass(frozen=True)
class FlatMapOperation(Operation[T]):
    """Replaces each element with the contents of the stream ``mapper`` returns.

    The mapped object may be a stream (anything with ``iterate(context)``) or a
    plain iterable; it is closed once drained when it has a ``close`` method.
    """

    mapper: Callable[[T], Any]

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        for value in _checked(context, elements):
            inner = self.mapper(value)
            try:
                items = inner.iterate(context) if hasattr(inner, "iterate") else iter(inner)
                yield from _checked(context, items)
            finally:
                close = getattr(inner, "close", None)
                if close is not None:
                    close()


@dataclass(frozen=True)
class DistinctOperation(Operation[T]):
    """Drops elements equal to one already seen."""

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        seen: set[Any] = set()
        seen_unhashable: list[Any] = []
        for value in _checked(context, elements):
            try:
                if value in seen:
                    continue
                seen.add(value)
            except TypeError:
                if value in seen_unhashable:
                    continue
                seen_unhashable.append(value)
            yield value


@dataclass(frozen=True)
class SortOperation(Operation[T]):
    """Collects every element, then yields them ordered by ``compare``.

    ``compare(a, b)`` returns a negative number, zero or a positive number.
    """

    compare: Callable[[T, T], int]

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        ordered = sorted(_checked(context, elements), key=functools.cmp_to_key(self.compare))
        yield from _checked(context, ordered)


@dataclass(frozen=True)
class SkipOperation(Operation[T]):
    """Drops the first ``count`` elements."""

    count: int

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        return itertools.islice(_checked(context, elements), max(self.count, 0), None)


@dataclass(frozen=True)
class LimitOperation(Operation[T]):
    """Yields at most ``max_size`` elements, pulling no more than needed."""

    max_size: int

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        return itertools.islice(_checked(context, elements), max(self.max_size, 0))


@dataclass(frozen=True)
class PeekOperation(Operation[T]):
    """Calls ``action`` on each element and passes it on unchanged."""

    action: Callable[[T], Any]

    def apply(self, context: Context, elements: Iterable[T]) -> Iterator[T]:
        for value in _checked(context, elements):
            self.action(value)
            yield value