"""Tests for cancellable timers, debouncing and request generations."""

import sys
import threading
import time
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from comparador.scheduling import CancellableTimer, Debouncer, RequestGeneration


class TestCancellableTimer(unittest.TestCase):
    def test_fires_once(self):
        done = threading.Event()
        timer = CancellableTimer(0.01, done.set).start()
        self.assertTrue(done.wait(1))
        self.assertTrue(timer.fired)
        self.assertFalse(timer.run_now())

    def test_cancel_before_firing(self):
        calls = []
        timer = CancellableTimer(0.2, calls.append, "x").start()
        timer.cancel()
        time.sleep(0.3)
        self.assertEqual(calls, [])
        self.assertFalse(timer.fired)


class TestDebouncer(unittest.TestCase):
    def test_rapid_calls_coalesce_to_last(self):
        calls = []
        done = threading.Event()

        def callback(value):
            calls.append(value)
            done.set()

        debouncer = Debouncer(0.05, callback)
        debouncer("a")
        debouncer("b")
        debouncer("c")

        self.assertTrue(done.wait(1))
        time.sleep(0.1)
        self.assertEqual(calls, ["c"])

    def test_flush_runs_pending_call_synchronously(self):
        calls = []
        debouncer = Debouncer(10, calls.append)
        debouncer("x")
        self.assertTrue(debouncer.pending)

        self.assertTrue(debouncer.flush())
        self.assertEqual(calls, ["x"])
        self.assertFalse(debouncer.flush())
        self.assertFalse(debouncer.pending)

    def test_cancel(self):
        calls = []
        debouncer = Debouncer(10, calls.append)
        debouncer("x")
        debouncer.cancel()
        self.assertFalse(debouncer.flush())
        self.assertEqual(calls, [])


class TestRequestGeneration(unittest.TestCase):
    def test_only_latest_token_is_current(self):
        generation = RequestGeneration()
        first = generation.next()
        second = generation.next()
        self.assertFalse(generation.is_current(first))
        self.assertTrue(generation.is_current(second))

        generation.invalidate()
        self.assertFalse(generation.is_current(second))


if __name__ == "__main__":
    unittest.main()
