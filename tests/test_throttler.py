import os
import sys
import threading
import time
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from edgeprobe.core.throttler import (
    PermitGate, clamp, compute_burst_delay, fan_out, sustained_loop, MAX_BURST_DELAY_MS,
)


class TestBurstDelay(unittest.TestCase):
    def test_linear_is_constant(self):
        self.assertEqual([compute_burst_delay(i, 50, "linear") for i in (0, 5, 50)], [50, 50, 50])

    def test_unknown_pattern_is_constant(self):
        self.assertEqual(compute_burst_delay(30, 40, "sawtooth"), 40)

    def test_exponential_growth(self):
        self.assertEqual(compute_burst_delay(0, 100, "exponential"), 100)
        self.assertEqual(compute_burst_delay(10, 100, "EXPONENTIAL"), int(100 * 1.05 ** 10))

    def test_exponential_is_capped(self):
        self.assertEqual(compute_burst_delay(500, 100, "exponential"), MAX_BURST_DELAY_MS)

    def test_clamp(self):
        self.assertEqual(clamp(500, 1, 64), 64)
        self.assertEqual(clamp(0, 1, 64), 1)
        self.assertEqual(clamp(7, 1, 64), 7)


class TestPermitGate(unittest.TestCase):
    def test_rejects_empty_gate(self):
        with self.assertRaises(ValueError):
            PermitGate(0)

    def test_bounds_concurrency(self):
        gate = PermitGate(2)
        peak = {"now": 0, "max": 0}
        lock = threading.Lock()

        def task():
            with gate:
                with lock:
                    peak["now"] += 1
                    peak["max"] = max(peak["max"], peak["now"])
                time.sleep(0.02)
                with lock:
                    peak["now"] -= 1

        fan_out([task] * 8, 8)
        self.assertEqual(peak["max"], 2)
        self.assertEqual(gate.in_use, 0)

    def test_resize_only_widens(self):
        gate = PermitGate(4)
        self.assertEqual(gate.resize(2), 4)
        self.assertEqual(gate.resize(10), 10)
        self.assertEqual(gate.permits, 10)

    def test_resize_wakes_waiters(self):
        gate = PermitGate(1)
        gate.acquire()
        acquired = threading.Event()

        def waiter():
            gate.acquire()
            acquired.set()

        t = threading.Thread(target=waiter)
        t.start()
        self.assertFalse(acquired.wait(0.1))
        gate.resize(2)
        self.assertTrue(acquired.wait(1))
        t.join()

    def test_acquire_gives_up_on_cancel(self):
        gate = PermitGate(1)
        gate.acquire()
        cancel = threading.Event()
        cancel.set()
        self.assertFalse(gate.acquire(cancel_event=cancel))

    def test_release_without_acquire(self):
        with self.assertRaises(RuntimeError):
            PermitGate(1).release()


class TestFanOut(unittest.TestCase):
    def test_results_in_submission_order(self):
        def make(i):
            return lambda: (time.sleep(0.01 * (5 - i)), i)[1]
        self.assertEqual(fan_out([make(i) for i in range(5)], 5), [0, 1, 2, 3, 4])

    def test_exception_propagates_after_barrier(self):
        done = []

        def ok():
            time.sleep(0.05)
            done.append(1)

        def boom():
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            fan_out([boom, ok, ok], 3)
        self.assertEqual(len(done), 2)


class TestSustainedLoop(unittest.TestCase):
    def test_runs_until_window_elapses(self):
        cancel = threading.Event()
        start = time.monotonic()
        n = sustained_loop(2, 0.2, lambda idx: time.sleep(0.02), cancel)
        self.assertGreaterEqual(time.monotonic() - start, 0.2)
        self.assertGreater(n, 2)

    def test_cancel_stops_workers(self):
        cancel = threading.Event()
        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        start = time.monotonic()
        sustained_loop(3, 30, lambda idx: cancel.wait(0.01), cancel)
        self.assertLess(time.monotonic() - start, 5)
        timer.join()


if __name__ == '__main__':
    unittest.main()
