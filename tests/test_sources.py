import queue
import threading

import pytest

from streamflow.context import CancelledError, background
from streamflow.sources import (
    CLOSED,
    ChannelSource,
    EmptySource,
    GeneratorSource,
    MappingSource,
    SliceSource,
    Source,
)


def drain(source, ctx=None):
    ctx = ctx or background()
    items = []
    while True:
        value, has_more = source.next(ctx)
        if not has_more:
            return items
        items.append(value)


def test_slice_source_in_order_then_exhausted():
    source = SliceSource([1, 2, 3, 4, 5])
    assert drain(source) == [1, 2, 3, 4, 5]
    assert source.next(background()) == (None, False)


def test_slice_source_respects_cancellation():
    ctx = background()
    ctx.cancel()
    with pytest.raises(CancelledError):
        SliceSource([1, 2, 3]).next(ctx)


def test_slice_source_exhausted_before_context_check():
    ctx = background()
    ctx.cancel()
    assert SliceSource([]).next(ctx) == (None, False)


def test_channel_source_reads_until_closed():
    channel = queue.Queue()
    for item in ["hello", "world", "test", CLOSED]:
        channel.put(item)
    source = ChannelSource(channel)
    assert drain(source) == ["hello", "world", "test"]
    assert source.next(background()) == (None, False)


def test_channel_source_leaves_marker_for_other_readers():
    channel = queue.Queue()
    channel.put(CLOSED)
    assert drain(ChannelSource(channel)) == []
    assert drain(ChannelSource(channel)) == []


def test_channel_source_waits_for_producer():
    channel = queue.Queue()

    def produce():
        channel.put("apple")
        channel.put(CLOSED)

    timer = threading.Timer(0.05, produce)
    timer.start()
    try:
        assert drain(ChannelSource(channel)) == ["apple"]
    finally:
        timer.cancel()


def test_channel_source_blocking_read_is_cancellable():
    ctx = background().with_timeout(0.05)
    with pytest.raises(TimeoutError):
        ChannelSource(queue.Queue()).next(ctx)


def test_generator_source_calls_function():
    counter = iter(range(1, 100))
    source = GeneratorSource(lambda: next(counter))
    ctx = background()
    assert [source.next(ctx)[0] for _ in range(5)] == [1, 2, 3, 4, 5]


def test_generator_source_cancelled():
    calls = []
    ctx = background()
    ctx.cancel()
    with pytest.raises(CancelledError):
        GeneratorSource(lambda: calls.append(1)).next(ctx)
    assert calls == []


def test_empty_source():
    assert EmptySource().next(background()) == (None, False)


class RecordingSource(Source):
    def __init__(self, items):
        self._inner = SliceSource(items)
        self.closed = False

    def next(self, context):
        return self._inner.next(context)

    def close(self):
        self.closed = True


def test_mapping_source_transforms_and_closes_inner():
    inner = RecordingSource([1, 2, 3])
    source = MappingSource(inner, lambda x: f"number-{x}")
    assert drain(source) == ["number-1", "number-2", "number-3"]
    source.close()
    assert inner.closed is True


def test_mapping_source_propagates_errors():
    ctx = background()
    ctx.cancel()
    with pytest.raises(CancelledError):
        MappingSource(SliceSource([1]), str).next(ctx)