"""Bounded channels with configurable backpressure handling and statistics."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Generic, TypeVar

from streamflow.context import Context, background

T = TypeVar("T")

_DEFAULT_BUFFER_SIZE = 100
_POLL_INTERVAL = 0.02


class BackpressureStrategy(Enum):
    """What a send does when the buffer is full."""

    BLOCK = "block"
    """Wait until space is available."""
    DROP = "drop"
    """Discard the new value."""
    DROP_OLDEST = "drop_oldest"
    """Discard the oldest buffered value to make room."""
    ERROR = "error"
    """Raise ``ChannelFullError``."""


class ChannelFullError(Exception):
    """Raised when the buffer is full and the strategy does not allow waiting."""

    def __init__(self, message: str = "channel buffer is full") -> None:
        super().__init__(message)


class ChannelClosedError(Exception):
    """Raised when operating on a closed channel."""

    def __init__(self, message: str = "channel is closed") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class ChannelStats:
    """A snapshot of channel counters; times are in seconds."""

    send_count: int = 0
    receive_count: int = 0
    dropped_count: int = 0
    blocked_sends: int = 0
    average_send_time: float = 0.0
    average_receive_time: float = 0.0
    buffer_utilization: float = 0.0
    last_send_time: float | None = None
    last_receive_time: float | None = None


@dataclass
class ChannelConfig:
    """Settings for a ``BackpressureChannel``; timeouts are in seconds, 0 for none."""

    buffer_size: int = _DEFAULT_BUFFER_SIZE
    strategy: BackpressureStrategy = BackpressureStrategy.BLOCK
    on_drop: Callable[[Any], Any] | None = None
    on_block: Callable[[], Any] | None = None
    on_error: Callable[[Exception], Any] | None = None
    send_timeout: float = 0.0
    receive_timeout: float = 0.0


def default_config() -> ChannelConfig:
    """Return the default configuration: 100 slots, blocking, no timeouts."""
    return ChannelConfig()


class BackpressureChannel(Generic[T]):
    """A thread-safe bounded FIFO whose behaviour when full is set by a strategy."""

    def __init__(self, buffer_size: int | None = None, config: ChannelConfig | None = None) -> None:
        config = replace(config) if config is not None else default_config()
        if buffer_size is not None:
            config.buffer_size = buffer_size
        if config.buffer_size <= 0:
            config.buffer_size = _DEFAULT_BUFFER_SIZE
        self._config = config
        self._capacity = config.buffer_size
        self._buffer: deque[T] = deque()
        self._closed = False

        self._lock = threading.RLock()
        self._not_full = threading.Condition(self._lock)
        self._not_empty = threading.Condition(self._lock)

        self._stats_lock = threading.Lock()
        self._send_count = 0
        self._receive_count = 0
        self._dropped_count = 0
        self._blocked_sends = 0
        self._send_time_total = 0.0
        self._receive_time_total = 0.0
        self._last_send_time: float | None = None
        self._last_receive_time: float | None = None

    # Sending

    def send(self, value: T, context: Context | None = None) -> None:
        """Send ``value``, applying the configured strategy when the buffer is full."""
        started = time.monotonic()
        try:
            if self.is_closed():
                raise ChannelClosedError()
            ctx = context if context is not None else background()
            if self._config.send_timeout > 0:
                ctx = ctx.with_timeout(self._config.send_timeout)
            strategy = self._config.strategy
            if strategy is BackpressureStrategy.DROP:
                self._drop_send(value)
            elif strategy is BackpressureStrategy.DROP_OLDEST:
                self._drop_oldest_send(value)
            elif strategy is BackpressureStrategy.ERROR:
                self._error_send(value)
            else:
                self._blocking_send(ctx, value)
        finally:
            self._record_send_time(time.monotonic() - started)

    def try_send(self, value: T) -> None:
        """Send without waiting; a full buffer is handled without blocking."""
        if self.is_closed():
            raise ChannelClosedError()
        with self._lock:
            if len(self._buffer) >= self._capacity:
                strategy = self._config.strategy
                if strategy is BackpressureStrategy.DROP:
                    self._count(dropped=1)
                    if self._config.on_drop is not None:
                        self._config.on_drop(value)
                    return
                if strategy is BackpressureStrategy.DROP_OLDEST:
                    if self._buffer:
                        self._buffer.popleft()
                    self._buffer.append(value)
                    self._count(sent=1, dropped=1)
                    return
                raise ChannelFullError()
            self._push(value)

    def _push(self, value: T) -> None:
        self._buffer.append(value)
        self._count(sent=1)
        self._not_empty.notify()

    def _blocking_send(self, context: Context, value: T) -> None:
        with self._lock:
            while len(self._buffer) >= self._capacity and not self._closed:
                if self._config.on_block is not None:
                    self._config.on_block()
                self._count(blocked=1)
                context.check()
                while not self._not_full.wait(_POLL_INTERVAL):
                    context.check()
                context.check()
            if self._closed:
                raise ChannelClosedError()
            self._push(value)

    def _drop_send(self, value: T) -> None:
        with self._lock:
            if len(self._buffer) >= self._capacity:
                self._count(dropped=1)
                if self._config.on_drop is not None:
                    self._config.on_drop(value)
                return
            self._push(value)

    def _drop_oldest_send(self, value: T) -> None:
        with self._lock:
            if len(self._buffer) >= self._capacity:
                oldest = self._buffer.popleft()
                self._count(dropped=1)
                if self._config.on_drop is not None:
                    self._config.on_drop(oldest)
            self._push(value)

    def _error_send(self, value: T) -> None:
        with self._lock:
            if len(self._buffer) >= self._capacity:
                raise ChannelFullError()
            self._push(value)

    # Receiving

    def receive(self, context: Context | None = None) -> T:
        """Take the oldest value, waiting until one arrives or the channel closes."""
        started = time.monotonic()
        try:
            ctx = context if context is not None else background()
            if self._config.receive_timeout > 0:
                ctx = ctx.with_timeout(self._config.receive_timeout)
            with self._lock:
                while not self._buffer and not self._closed:
                    ctx.check()
                    while not self._not_empty.wait(_POLL_INTERVAL):
                        ctx.check()
                    ctx.check()
                if not self._buffer:
                    raise ChannelClosedError()
                return self._pop()
        finally:
            self._record_receive_time(time.monotonic() - started)

    def try_receive(self) -> tuple[T | None, bool]:
        """Take the oldest value without waiting; return ``(None, False)`` when empty."""
        if self.is_closed():
            raise ChannelClosedError()
        with self._lock:
            if not self._buffer:
                if self._closed:
                    raise ChannelClosedError()
                return None, False
            return self._pop(), True

    def _pop(self) -> T:
        value = self._buffer.popleft()
        self._count(received=1)
        self._not_full.notify()
        return value

    # Lifecycle and inspection

    def close(self) -> None:
        """Stop accepting sends and wake every waiter; closing twice does nothing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._not_full.notify_all()
            self._not_empty.notify_all()

    def is_closed(self) -> bool:
        """Return True once the channel is closed."""
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def capacity(self) -> int:
        """Return the buffer capacity."""
        return self._capacity

    def stats(self) -> ChannelStats:
        """Return a snapshot of the channel's counters."""
        with self._lock:
            utilization = len(self._buffer) / self._capacity
        with self._stats_lock:
            return ChannelStats(
                send_count=self._send_count,
                receive_count=self._receive_count,
                dropped_count=self._dropped_count,
                blocked_sends=self._blocked_sends,
                average_send_time=(
                    self._send_time_total / self._send_count if self._send_count else self._send_time_total
                ),
                average_receive_time=(
                    self._receive_time_total / self._receive_count
                    if self._receive_count
                    else self._receive_time_total
                ),
                buffer_utilization=utilization,
                last_send_time=self._last_send_time,
                last_receive_time=self._last_receive_time,
            )

    def __enter__(self) -> BackpressureChannel[T]:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # Statistics bookkeeping

    def _count(self, sent: int = 0, received: int = 0, dropped: int = 0, blocked: int = 0) -> None:
        with self._stats_lock:
            self._send_count += sent
            self._receive_count += received
            self._dropped_count += dropped
            self._blocked_sends += blocked

    def _record_send_time(self, duration: float) -> None:
        with self._stats_lock:
            self._send_time_total += duration
            self._last_send_time = time.time()

    def _record_receive_time(self, duration: float) -> None:
        with self._stats_lock:
            self._receive_time_total += duration
            self._last_receive_time = time.time()