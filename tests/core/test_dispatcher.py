"""Tests for the sequential/parallel dispatcher."""

import threading
import time
from collections import Counter

import pytest

from openacl.core.dispatcher import Dispatcher, DispatchResult, dispatch
from openacl.exceptions import DispatchError


class TestDispatcherConstruction:
    def test_rejects_zero_workers(self):
        with pytest.raises(DispatchError):
            Dispatcher(worker_count=0)

    def test_one_worker_is_sequential(self):
        assert Dispatcher(worker_count=1).is_sequential
        assert not Dispatcher(worker_count=4).is_sequential


class TestSequentialDispatch:
    def test_preserves_input_order(self):
        result = Dispatcher(1).map([3, 1, 2], lambda x: x * 10)
        assert result.results == [30, 10, 20]
        assert result.completed == [(3, 30), (1, 10), (2, 20)]

    def test_runs_on_calling_thread(self):
        caller = threading.get_ident()
        result = Dispatcher(1).map(range(3), lambda _: threading.get_ident())
        assert set(result.results) == {caller}

    def test_failure_is_isolated(self):
        def work(x):
            if x == 2:
                raise ValueError("bad item")
            return x

        result = Dispatcher(1).map([1, 2, 3], work)

        assert result.results == [1, 3]
        assert list(result.failed) == ["2"]
        assert isinstance(result.failed["2"], ValueError)
        assert not result.is_complete

    def test_batch_timeout_skips_remaining_items(self):
        def slow(x):
            time.sleep(0.05)
            return x

        result = Dispatcher(1, timeout=0.01).map([1, 2, 3], slow)

        assert result.results == [1]
        assert result.timed_out == ["2", "3"]


class TestParallelDispatch:
    def test_same_multiset_as_sequential(self):
        items = list(range(50)) + [7, 7, 7]

        sequential = Dispatcher(1).map(items, lambda x: x % 5)
        parallel = Dispatcher(8).map(items, lambda x: x % 5)

        assert Counter(parallel.results) == Counter(sequential.results)
        assert parallel.is_complete

    def test_uses_worker_threads(self):
        caller = threading.get_ident()
        result = Dispatcher(4).map(range(8), lambda _: threading.get_ident())
        assert caller not in result.results

    def test_worker_count_bounds_concurrency(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def work(_):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1

        Dispatcher(3).map(range(12), work)
        assert peak <= 3

    def test_failure_keeps_siblings(self):
        def work(x):
            if x == 5:
                raise RuntimeError("boom")
            return x

        result = Dispatcher(4).map(range(10), work, key=lambda x: f"item-{x}")

        assert sorted(result.results) == [0, 1, 2, 3, 4, 6, 7, 8, 9]
        assert list(result.failed) == ["item-5"]

    def test_batch_timeout_keeps_finished_results(self):
        release = threading.Event()

        def work(x):
            if x == 0:
                release.wait(timeout=5)
            return x

        try:
            result = Dispatcher(2, timeout=0.3).map([0, 1, 2], work)
        finally:
            release.set()

        assert sorted(result.results) == [1, 2]
        assert result.timed_out == ["0"]
        assert not result.is_complete


class TestDispatchHelper:
    def test_returns_results(self):
        assert sorted(dispatch([1, 2, 3], 2, lambda x: -x)) == [-3, -2, -1]

    def test_result_defaults(self):
        result = DispatchResult()
        assert result.results == []
        assert result.is_complete
