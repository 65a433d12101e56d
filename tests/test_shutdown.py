"""Tests for the shutdown token."""

import threading

from spawnbot.shutdown import ShutdownSignal


def test_starts_live():
    signal = ShutdownSignal()

    assert not signal.is_set()
    assert signal.reason is None
    assert signal.exit_code == 0
    assert signal.wait(0) is False


def test_fires_once():
    signal = ShutdownSignal()

    assert signal.fire("first", exit_code=1) is True
    assert signal.fire("second", exit_code=0) is False

    assert signal.is_set()
    assert signal.reason == "first"
    assert signal.exit_code == 1


def test_callbacks_run_once():
    signal = ShutdownSignal()
    calls = []
    signal.add_callback(calls.append)

    signal.fire("stop")
    signal.fire("stop again")

    assert calls == [signal]


def test_late_callback_runs_immediately():
    signal = ShutdownSignal()
    signal.fire("stop")
    calls = []

    signal.add_callback(calls.append)

    assert calls == [signal]


def test_failing_callback_does_not_stop_the_others():
    signal = ShutdownSignal()
    calls = []

    def broken(_):
        raise RuntimeError("boom")

    signal.add_callback(broken)
    signal.add_callback(calls.append)

    signal.fire("stop")

    assert calls == [signal]


def test_wakes_up_waiters_on_other_threads():
    signal = ShutdownSignal()
    woke = threading.Event()

    def waiter():
        if signal.wait(5):
            woke.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    signal.fire("stop")
    thread.join(5)

    assert woke.is_set()


def test_only_one_of_many_concurrent_fires_wins():
    signal = ShutdownSignal()
    results = []
    start = threading.Barrier(8)

    def fire(i):
        start.wait()
        results.append(signal.fire(f"thread {i}"))

    threads = [threading.Thread(target=fire, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert results.count(True) == 1
    assert results.count(False) == 7
