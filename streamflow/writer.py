"""Asynchronous buffered writer that flushes to an underlying binary sink in the background."""

from __future__ import annotations

import enum
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Protocol

from streamflow.context import CancelledError, Context, background

_DEFAULT_BUFFER_SIZE = 64 * 1024
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_RETRY_DELAY = 0.1
_REQUEST_QUEUE_SIZE = 110
_POLL_INTERVAL = 0.01


class WriterClosedError(Exception):
    """Raised when writing to or flushing a closed writer."""

    def __init__(self, message: str = "writer is closed") -> None:
        super().__init__(message)


class BufferFullError(Exception):
    """Raised when the buffer cannot take a write and blocking is disabled."""

    def __init__(self, message: str = "buffer is full") -> None:
        super().__init__(message)


class _Writable(Protocol):
    def write(self, data: bytes) -> Any: ...


@dataclass(frozen=True)
class WriterStats:
    """A snapshot of writer counters; times are in seconds."""

    bytes_written: int = 0
    write_count: int = 0
    flush_count: int = 0
    error_count: int = 0
    buffer_overflows: int = 0
    average_write_time: float = 0.0
    total_write_time: float = 0.0
    last_write_time: float | None = None
    buffer_utilization: float = 0.0


@dataclass
class WriterConfig:
    """Settings for an ``AsyncWriter``; intervals and delays are in seconds.

    A ``flush_interval`` of 0 turns automatic flushing off.
    """

    buffer_size: int = _DEFAULT_BUFFER_SIZE
    flush_interval: float = 1.0
    block_on_full: bool = True
    max_retries: int = _DEFAULT_MAX_RETRIES
    retry_delay: float = _DEFAULT_RETRY_DELAY
    on_error: Callable[[Exception], Any] | None = None
    on_flush: Callable[[int, float], Any] | None = None
    on_buffer_full: Callable[[], Any] | None = None


def default_config() -> WriterConfig:
    """Return the default configuration: 64 KiB buffer, 1 s auto-flush, blocking, 3 retries."""
    return WriterConfig()


class _Kind(enum.Enum):
    WRITE = "write"
    FLUSH = "flush"
    CLOSE = "close"


class _Request:
    """A unit of work for the background thread, with a completion signal."""

    def __init__(self, kind: _Kind, data: bytes = b"") -> None:
        self.kind = kind
        self.data = data
        self.error: Exception | None = None
        self.done = threading.Event()

    def finish(self, error: Exception | None) -> None:
        self.error = error
        self.done.set()


class AsyncWriter:
    """Buffers writes in memory and writes them to ``underlying`` on a background thread.

    ``underlying`` needs only a ``write(bytes)`` method returning the number of
    bytes written (or None, taken as all of them).
    """

    def __init__(self, underlying: _Writable, config: WriterConfig | None = None) -> None:
        config = replace(config) if config is not None else default_config()
        if config.buffer_size <= 0:
            config.buffer_size = _DEFAULT_BUFFER_SIZE
        if config.max_retries < 0:
            config.max_retries = _DEFAULT_MAX_RETRIES
        if config.retry_delay <= 0:
            config.retry_delay = _DEFAULT_RETRY_DELAY
        self._underlying = underlying
        self._config = config
        self._capacity = config.buffer_size

        self._buffer = bytearray()
        self._buffer_lock = threading.Lock()
        self._flush_lock = threading.Lock()

        self._requests: queue.Queue[_Request] = queue.Queue(maxsize=_REQUEST_QUEUE_SIZE)
        self._stopped = threading.Event()
        self._state_lock = threading.Lock()
        self._closed = False

        self._stats_lock = threading.Lock()
        self._bytes_written = 0
        self._write_count = 0
        self._flush_count = 0
        self._error_count = 0
        self._buffer_overflows = 0
        self._total_write_time = 0.0
        self._last_write_time: float | None = None

        self._threads = [threading.Thread(target=self._worker_loop, daemon=True)]
        if config.flush_interval > 0:
            self._threads.append(threading.Thread(target=self._flush_loop, daemon=True))
        for thread in self._threads:
            thread.start()

    # Writing

    def write(self, data: bytes) -> None:
        """Queue ``data`` for writing."""
        self.write_context(background(), data)

    def write_string(self, text: str) -> None:
        """Queue ``text`` for writing, encoded as UTF-8."""
        self.write_context(background(), text.encode("utf-8"))

    def write_context(self, context: Context, data: bytes) -> None:
        """Queue ``data`` for writing, giving up when ``context`` is done.

        With ``block_on_full`` the call returns once the data is in the buffer;
        otherwise it returns as soon as the data is queued, and raises
        ``BufferFullError`` if the buffer has no room for it.
        """
        if self.is_closed():
            raise WriterClosedError()
        if not data:
            return
        payload = bytes(data)

        with self._buffer_lock:
            would_overflow = len(self._buffer) + len(payload) > self._capacity
        if would_overflow and not self._config.block_on_full:
            with self._stats_lock:
                self._buffer_overflows += 1
            if self._config.on_buffer_full is not None:
                self._config.on_buffer_full()
            raise BufferFullError()

        request = _Request(_Kind.WRITE, payload)
        self._enqueue(request, context)
        if self._config.block_on_full:
            self._await(request, context)

    def flush(self, context: Context | None = None) -> None:
        """Write all buffered data to the underlying sink, waiting until it is done."""
        if self.is_closed():
            raise WriterClosedError()
        ctx = context if context is not None else background()
        request = _Request(_Kind.FLUSH)
        self._enqueue(request, ctx)
        self._await(request, ctx)

    def _enqueue(self, request: _Request, context: Context) -> None:
        context.check()
        while True:
            if self._stopped.is_set():
                raise WriterClosedError()
            try:
                self._requests.put(request, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                context.check()

    def _await(self, request: _Request, context: Context) -> None:
        while not request.done.wait(_POLL_INTERVAL):
            context.check()
            if self._stopped.is_set() and not request.done.is_set():
                raise WriterClosedError()
        if request.error is not None:
            raise request.error

    # Lifecycle and inspection

    def close(self) -> None:
        """Flush what remains, stop the background threads and refuse further writes.

        Raises the flush error, if any. Closing twice does nothing.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        request = _Request(_Kind.CLOSE)
        if self._threads[0].is_alive():
            self._requests.put(request)
            request.done.wait()
        else:
            self._stopped.set()
        for thread in self._threads:
            thread.join()
        if request.error is not None:
            raise request.error

    def is_closed(self) -> bool:
        """Return True once the writer is closed."""
        return self._closed

    def buffer_size(self) -> int:
        """Return the number of bytes currently buffered."""
        with self._buffer_lock:
            return len(self._buffer)

    def buffer_capacity(self) -> int:
        """Return the configured buffer capacity in bytes."""
        return self._capacity

    def stats(self) -> WriterStats:
        """Return a snapshot of the writer's counters."""
        with self._buffer_lock:
            utilization = min(1.0, len(self._buffer) / self._capacity)
        with self._stats_lock:
            average = self._total_write_time / self._write_count if self._write_count else 0.0
            return WriterStats(
                bytes_written=self._bytes_written,
                write_count=self._write_count,
                flush_count=self._flush_count,
                error_count=self._error_count,
                buffer_overflows=self._buffer_overflows,
                average_write_time=average,
                total_write_time=self._total_write_time,
                last_write_time=self._last_write_time,
                buffer_utilization=utilization,
            )

    def __enter__(self) -> AsyncWriter:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # Background work

    def _worker_loop(self) -> None:
        while True:
            request = self._requests.get()
            if request.kind is _Kind.WRITE:
                request.finish(self._handle_write(request.data))
            elif request.kind is _Kind.FLUSH:
                request.finish(self._flush_buffer())
            else:
                error = self._flush_buffer()
                self._stopped.set()
                request.finish(error)
                return

    def _flush_loop(self) -> None:
        while not self._stopped.wait(self._config.flush_interval):
            self._flush_buffer()

    def _handle_write(self, data: bytes) -> Exception | None:
        started = time.monotonic()
        with self._buffer_lock:
            needs_flush = len(self._buffer) + len(data) > self._capacity
        if needs_flush:
            error = self._flush_buffer()
            if error is not None:
                with self._stats_lock:
                    self._error_count += 1
                if self._config.on_error is not None:
                    self._config.on_error(error)
                return error
        with self._buffer_lock:
            self._buffer.extend(data)
        duration = time.monotonic() - started
        with self._stats_lock:
            self._write_count += 1
            self._bytes_written += len(data)
            self._total_write_time += duration
            self._last_write_time = time.time()
        return None

    def _flush_buffer(self) -> Exception | None:
        with self._flush_lock:
            with self._buffer_lock:
                if not self._buffer:
                    return None
                data = bytes(self._buffer)
                self._buffer.clear()

            started = time.monotonic()
            written, error = self._write_with_retries(data)
            duration = time.monotonic() - started

            with self._stats_lock:
                self._flush_count += 1
                if error is not None:
                    self._error_count += 1
        if self._config.on_flush is not None:
            self._config.on_flush(written, duration)
        if error is not None and self._config.on_error is not None:
            self._config.on_error(error)
        return error

    def _write_with_retries(self, data: bytes) -> tuple[int, Exception | None]:
        total = 0
        last_error: Exception | None = None
        for attempt in range(self._config.max_retries + 1):
            if attempt > 0 and self._stopped.wait(self._config.retry_delay):
                return total, CancelledError()
            chunk = data[total:]
            try:
                result = self._underlying.write(chunk)
            except Exception as exc:  # any sink failure is retried
                last_error = exc
                continue
            total += len(chunk) if result is None else int(result)
            if total >= len(data):
                return total, None
        return total, last_error