import pytest

from flashup.events import EventLoop, Signal, Timer


def test_signal_calls_handlers_in_order_with_arguments():
    calls = []
    signal = Signal()
    signal.connect(lambda *a: calls.append(("first", a)))
    signal.connect(lambda *a: calls.append(("second", a)))
    signal.emit(1, "x")
    assert calls == [("first", (1, "x")), ("second", (1, "x"))]


def test_signal_disconnect_stops_delivery():
    calls = []
    signal = Signal()
    handler = calls.append
    signal.connect(handler)
    signal.disconnect(handler)
    signal.emit("ignored")
    assert calls == []
    assert len(signal) == 0


def test_signal_disconnect_unknown_handler_raises():
    signal = Signal()
    with pytest.raises(ValueError):
        signal.disconnect(print)


def test_call_later_runs_in_time_order():
    loop = EventLoop()
    order = []
    loop.call_later(20, lambda: order.append("late"))
    loop.call_later(5, lambda: order.append("early"))
    loop.call_later(5, lambda: order.append("early-second"))
    ran = loop.advance(30)
    assert order == ["early", "early-second", "late"]
    assert ran == len(order)


def test_advance_only_runs_due_callbacks():
    loop = EventLoop()
    order = []
    loop.call_later(100, lambda: order.append("due"))
    loop.call_later(300, lambda: order.append("later"))
    loop.advance(250)
    assert order == ["due"]
    assert loop.now == 250
    assert loop.pending == 1


def test_cancelled_call_never_runs():
    loop = EventLoop()
    order = []
    handle = loop.call_later(10, lambda: order.append("cancelled"))
    loop.cancel(handle)
    assert loop.run_until_idle() == 0
    assert order == []


def test_callbacks_scheduled_during_advance_run_if_due():
    loop = EventLoop()
    order = []

    def first():
        order.append("first")
        loop.call_later(0, lambda: order.append("chained"))

    loop.call_later(10, first)
    ran = loop.advance(10)
    assert ran == 2
    assert order == ["first", "chained"]
    assert loop.pending == 0


def test_run_until_idle_moves_clock_to_last_callback():
    loop = EventLoop()
    seen = []
    loop.call_later(40, lambda: seen.append(loop.now))
    loop.call_later(70, lambda: seen.append(loop.now))
    loop.run_until_idle()
    assert seen == [40, 70]
    assert loop.now == 70


def test_negative_delay_is_rejected():
    loop = EventLoop()
    with pytest.raises(ValueError):
        loop.call_later(-1, lambda: None)
    with pytest.raises(ValueError):
        loop.advance(-5)


def test_single_shot_timer_fires_once():
    loop = EventLoop()
    fired = []
    timer = Timer(loop, lambda: fired.append(loop.now), single_shot=True)
    timer.start(50)
    assert timer.is_active()
    loop.advance(500)
    assert fired == [50]
    assert not timer.is_active()


def test_repeating_timer_fires_every_interval():
    loop = EventLoop()
    fired = []
    timer = Timer(loop, lambda: fired.append(loop.now))
    timer.start(100)
    loop.advance(350)
    assert fired == [100, 200, 300]
    assert timer.is_active()


def test_stop_prevents_timer_from_firing():
    loop = EventLoop()
    fired = []
    timer = Timer(loop, lambda: fired.append(True), single_shot=True)
    timer.start(10)
    timer.stop()
    loop.advance(100)
    assert fired == []
    assert not timer.is_active()


def test_restart_replaces_pending_timeout():
    loop = EventLoop()
    fired = []
    timer = Timer(loop, lambda: fired.append(loop.now), single_shot=True)
    timer.start(10)
    loop.advance(5)
    timer.start(10)
    loop.advance(100)
    assert fired == [15]


def test_run_until_idle_is_bounded_by_max_steps():
    loop = EventLoop()
    fired = []
    Timer(loop, lambda: fired.append(True)).start(0)
    assert loop.run_until_idle(max_steps=7) == 7
    assert len(fired) == 7