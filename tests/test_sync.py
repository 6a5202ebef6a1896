import threading

import pytest

from edgeserve.sync import CountDownLatch, NamedThread, current_thread_name, current_tid


def test_latch_counts_down():
    latch = CountDownLatch(3)
    latch.count_down()
    assert latch.count == 2
    latch.count_down()
    latch.count_down()
    assert latch.count == 0


def test_latch_wait_returns_immediately_at_zero():
    latch = CountDownLatch(0)
    latch.wait()
    assert latch.count == 0


def test_latch_releases_waiter():
    latch = CountDownLatch(2)
    released = threading.Event()

    def waiter():
        latch.wait()
        released.set()

    t = threading.Thread(target=waiter)
    t.start()
    latch.count_down()
    assert latch.count == 1
    assert not released.wait(0.05)
    latch.count_down()
    assert latch.count == 0
    assert released.wait(2)
    t.join()


def test_current_tid_matches_native_id():
    assert current_tid() == threading.get_native_id()


def test_named_thread_runs_function_and_reports_tid():
    seen = {}

    def work():
        seen["tid"] = current_tid()
        seen["name"] = current_thread_name()

    thread = NamedThread(work, "Logging")
    assert thread.started is False
    thread.start()
    assert thread.started is True
    thread.join()
    assert seen["tid"] == thread.tid
    assert thread.tid > 0
    assert seen["name"] == "Logging"
    assert thread.name == "Logging"


def test_named_thread_default_name():
    thread = NamedThread(lambda: None)
    assert thread.name == "Thread"
    thread.start()
    thread.join()


def test_join_before_start_raises():
    thread = NamedThread(lambda: None, "x")
    with pytest.raises(RuntimeError):
        thread.join()


def test_double_join_raises():
    thread = NamedThread(lambda: None, "x")
    thread.start()
    thread.join()
    with pytest.raises(RuntimeError):
        thread.join()


def test_double_start_raises():
    thread = NamedThread(lambda: None, "x")
    thread.start()
    with pytest.raises(RuntimeError):
        thread.start()
    thread.join()