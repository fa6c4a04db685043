import threading

import pytest

from streamflow.context import CancelledError, Context, DeadlineExceededError, background


def assert_live(ctx):
    assert ctx.is_done() is False
    assert ctx.error() is None
    ctx.check()
    assert ctx.wait(0.01) is False


def assert_done(ctx, error_type):
    assert ctx.wait(2.0) is True
    assert ctx.is_done() is True
    assert isinstance(ctx.error(), error_type)
    with pytest.raises(error_type):
        ctx.check()


def _cancelled():
    ctx = background()
    ctx.cancel()
    return ctx


def _cancelled_twice():
    ctx = _cancelled()
    ctx.cancel()
    return ctx


def _expired_then_cancelled():
    ctx = Context(timeout=0)
    ctx.cancel()
    return ctx


@pytest.mark.parametrize(
    "make",
    [
        background,
        lambda: background().with_timeout(60),
        lambda: background().child(),
    ],
)
def test_live_contexts(make):
    assert_live(make())


def test_parent_cancel_propagates_to_children():
    parent = background()
    child = parent.child()
    grandchild = child.with_timeout(60)
    parent.cancel()
    assert_done(child, CancelledError)
    assert_done(grandchild, CancelledError)


def test_child_cancel_leaves_parent_live():
    parent = background()
    child = parent.child()
    child.cancel()
    assert_done(child, CancelledError)
    assert_live(parent)


def test_wait_wakes_on_cancel_from_other_thread():
    ctx = background()
    timer = threading.Timer(0.02, ctx.cancel)
    timer.start()
    try:
        assert_done(ctx, CancelledError)
    finally:
        timer.cancel()


def test_deadline_error_is_a_timeout_error():
    ctx = Context(timeout=0)
    with pytest.raises(TimeoutError):
        ctx.check()