# streamflow

Three thread-based building blocks for moving data through a program:

- **Streams** (`streamflow.stream`) are lazy, chainable pipelines. They can
  draw from sequences, queues or generator functions.
- **Backpressure channels** (`streamflow.channel`) are bounded, thread-safe
  FIFOs. A strategy sets what a send does when the buffer is full, and each
  channel keeps counters.
- **An asynchronous writer** (`streamflow.writer`) buffers bytes in memory. A
  background thread writes them to any object with a `write(bytes)` method.
  It flushes on a timer and retries failed writes.

Every blocking operation accepts a `Context` (`streamflow.context`) for
cancellation and deadlines.

## Installation

```
pip install streamflow
```

Python 3.10 or later is required. There are no runtime dependencies.

## Streams

```python
from streamflow.stream import from_slice, generate

with from_slice([1, 2, 3, 4, 5, 6, 7, 8, 9, 10]) as s:
    result = s.filter(lambda x: x % 2 == 0).map(lambda x: x * 2).limit(3).to_list()
# [4, 8, 12]

counter = iter(range(1, 1_000_000))
squares = generate(lambda: next(counter)).map(lambda x: x * x).limit(5).to_list()
# [1, 4, 9, 16, 25]
```

### Creating streams

| Function | Elements |
|---|---|
| `from_slice(items)` | The items of a sequence, in order. |
| `from_channel(queue)` | Values taken from a `queue.Queue` until the `streamflow.sources.CLOSED` marker is read. |
| `generate(fn)` | One call of `fn()` per element. The stream never ends on its own. |
| `empty()` | No elements. |

`Stream(source, pipeline)` builds a stream from any `streamflow.sources.Source`.

### Intermediate operations

Each of these returns a new stream over the same source:

- `filter(predicate)` and `map(mapper)` keep or transform elements.
- `map_to(mapper)` maps the output into a new stream.
- `flat_map(mapper)` flattens the stream, or plain iterable, that the mapper
  returns.
- `distinct()` drops repeats. It also handles values that cannot be hashed.
- `sorted(compare)` collects every element, then sorts.
- `skip(n)`, `limit(max_size)` and `peek(action)`.

Comparators passed to `sorted`, `min` and `max` return a negative number,
zero or a positive number, in the same way as a classic `cmp` function.

### Terminal operations

- `to_list()`, `count()` and `for_each(action)`.
- `reduce(identity, accumulator)`.
- `collect(supplier, accumulator, combiner=None)`. The combiner is accepted
  but never used, because streams are sequential.
- `any_match`, `all_match` and `none_match`.
- `find_first()` and `find_any()` return `(value, found)`.
- `min(compare)` and `max(compare)` also return `(value, found)`.

Each takes an optional `context`. A terminal operation closes its stream.
Calling another operation on a closed stream raises `StreamClosedError`.
`iterate(context)` returns an iterator over the output without closing the
stream.

## Backpressure channels

```python
from streamflow.channel import BackpressureChannel, BackpressureStrategy, ChannelConfig

config = ChannelConfig(buffer_size=2, strategy=BackpressureStrategy.DROP_OLDEST)
with BackpressureChannel(config=config) as ch:
    for value in (1, 2, 3):
        ch.send(value)
    print(ch.receive(), ch.receive())   # 2 3
    print(ch.stats().dropped_count)     # 1
```

The strategies behave as follows:

- `BLOCK` (the default) waits until the buffer has space.
- `DROP` discards the value being sent and passes it to `on_drop`.
- `DROP_OLDEST` evicts the oldest buffered value and passes it to `on_drop`.
- `ERROR` raises `ChannelFullError`.

`BackpressureChannel(buffer_size)` creates a blocking channel. If the size is
not positive, 100 slots are used.

For sending and receiving without waiting:

- `try_send(value)` never waits.
- `try_receive()` returns `(value, True)`, or `(None, False)` when the
  channel is empty.

Closing a channel stops sends with `ChannelClosedError`. Buffered values can
still be received. Receiving from a closed, empty channel raises
`ChannelClosedError`.

`len(ch)`, `ch.capacity()` and `ch.stats()` report the channel's state.
`stats()` returns a `ChannelStats` with these fields:

- send, receive, dropped and blocked counts;
- average send and receive times, in seconds;
- buffer utilisation;
- the last send and receive timestamps.

`ChannelConfig.send_timeout` and `receive_timeout` are in seconds, with 0
meaning no timeout. They put a deadline on each call.

## Asynchronous writer

```python
import io
from streamflow.writer import AsyncWriter

sink = io.BytesIO()
with AsyncWriter(sink) as w:
    w.write_string("Hello, ")
    w.write(b"world!")
    w.flush()
print(sink.getvalue())  # b'Hello, world!'
```

`WriterConfig` (see `default_config()`) has these settings:

| Setting | Default |
|---|---|
| `buffer_size` | 64 KiB |
| `flush_interval` | 1 s; 0 turns the timer off |
| `block_on_full` | `True` |
| `max_retries` | 3 |
| `retry_delay` | 0.1 s |

It also accepts the callbacks `on_error`, `on_flush(bytes, seconds)` and
`on_buffer_full`.

When `block_on_full` is set, a write returns once its data is in the buffer.
A buffer that cannot take the data is flushed first. When `block_on_full` is
off, a write that would overflow the buffer raises `BufferFullError`.

- `flush(context)` waits until buffered data is written. It re-raises the
  last write error once retries are used up.
- `close()` flushes what is left and stops the background threads. After
  that, writes raise `WriterClosedError`.
- `stats()`, `buffer_size()` and `buffer_capacity()` report on the buffer.

## Contexts

```python
from streamflow.channel import BackpressureChannel
from streamflow.context import background

ch = BackpressureChannel(1)
ctx = background().with_timeout(0.5)
ch.receive(ctx)   # raises DeadlineExceededError after half a second
```

A context ends in one of two ways:

- `cancel()` ends the context and every context made from it with `child()`
  or `with_timeout()`. Waiting work then raises `CancelledError`.
- A passed deadline raises `DeadlineExceededError`.

## Limits

Streams run sequentially on the calling thread. There are no parallel
streams. The package uses threads throughout and offers no `asyncio`
interface.

## Running the tests

```
pip install -e ".[test]"
pytest
```