import pytest

from streamflow.context import CancelledError, background
from streamflow.operations import (
    DistinctOperation,
    FilterOperation,
    FlatMapOperation,
    LimitOperation,
    MapOperation,
    PeekOperation,
    SkipOperation,
    SortOperation,
)


def run(operation, items, ctx=None):
    return list(operation.apply(ctx or background(), items))


def compare_ints(a, b):
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def _counting_forever(pulled):
    n = 0
    while True:
        n += 1
        pulled.append(n)
        yield n


def _one_then_failure():
    yield 1
    raise ValueError("boom")


def test_filter_keeps_matching():
    result = run(FilterOperation(lambda x: x % 2 == 0), range(1, 11))
    assert len(result) == 5
    assert result[0] == 2
    assert result[4] == 10


def test_map_transforms():
    result = run(MapOperation(lambda x: x * 2), [1, 2, 3, 4, 5])
    assert len(result) == 5
    assert result[0] == 2
    assert result[4] == 10


def test_flat_map_with_iterables():
    result = run(FlatMapOperation(lambda x: [x, x]), [1, 2, 3])
    assert result == [1, 1, 2, 2, 3, 3]


class FakeStream:
    def __init__(self, items):
        self.items = items
        self.closed = False

    def iterate(self, context):
        yield from self.items

    def close(self):
        self.closed = True


def test_flat_map_drains_and_closes_streams():
    made = []

    def mapper(n):
        inner = FakeStream(list(range(1, n + 1)))
        made.append(inner)
        return inner

    result = run(FlatMapOperation(mapper), [2, 3, 4])
    assert result == [1, 2, 1, 2, 3, 1, 2, 3, 4]
    assert all(inner.closed for inner in made)


def test_distinct_removes_duplicates_in_order():
    result = run(DistinctOperation(), [1, 2, 2, 3, 3, 3, 4, 4, 5])
    assert result == [1, 2, 3, 4, 5]


def test_distinct_handles_unhashable_values():
    result = run(DistinctOperation(), [[1], [2], [1], [2]])
    assert result == [[1], [2]]


def test_sort_with_comparator():
    result = run(SortOperation(compare_ints), [5, 2, 8, 1, 9, 3])
    assert result == [1, 2, 3, 5, 8, 9]


def test_sort_output_is_ordered_permutation():
    data = [7, 3, 3, 9, 0, 4]
    result = run(SortOperation(compare_ints), data)
    assert sorted(result) == sorted(data)
    assert all(a <= b for a, b in zip(result, result[1:]))


def test_skip_drops_leading_elements():
    result = run(SkipOperation(2), [1, 2, 3, 4, 5])
    assert len(result) == 3
    assert result[0] == 3


def test_skip_beyond_length_is_empty():
    assert run(SkipOperation(10), [1, 2, 3]) == []


def test_limit_truncates():
    result = run(LimitOperation(3), [1, 2, 3, 4, 5])
    assert len(result) == 3
    assert result[2] == 3


def test_limit_stops_pulling_from_infinite_input():
    pulled = []
    result = run(LimitOperation(5), _counting_forever(pulled))
    assert result == [1, 2, 3, 4, 5]
    assert pulled == [1, 2, 3, 4, 5]


def test_limit_zero_yields_nothing():
    assert run(LimitOperation(0), [1, 2, 3]) == []


def test_peek_sees_every_element_unchanged():
    peeked = []
    result = run(PeekOperation(peeked.append), [1, 2, 3])
    assert result == [1, 2, 3]
    assert peeked == [1, 2, 3]


def test_chained_stages():
    ctx = background()
    elements = FilterOperation(lambda x: x % 2 == 0).apply(ctx, range(1, 11))
    elements = MapOperation(lambda x: x * 3).apply(ctx, elements)
    elements = SkipOperation(1).apply(ctx, elements)
    elements = LimitOperation(2).apply(ctx, elements)
    assert list(elements) == [12, 18]


@pytest.mark.parametrize(
    "operation",
    [
        FilterOperation(lambda x: True),
        MapOperation(lambda x: x),
        FlatMapOperation(lambda x: [x]),
        DistinctOperation(),
        SortOperation(compare_ints),
        SkipOperation(0),
        LimitOperation(10),
        PeekOperation(lambda x: None),
    ],
)
def test_cancelled_context_raises(operation):
    ctx = background()
    ctx.cancel()
    with pytest.raises(CancelledError):
        run(operation, [1, 2, 3], ctx)


def test_errors_from_input_propagate():
    with pytest.raises(ValueError, match="boom"):
        run(MapOperation(lambda x: x), _one_then_failure())