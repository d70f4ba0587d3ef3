# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import threading
import time

import pytest

from precompiler.workers import parallel_map


def test_results_keep_item_order() -> None:
	def slow_square(n: int) -> int:
		time.sleep(0.001 * (10 - n))
		return n * n

	assert parallel_map(slow_square, range(10), jobs=4) == [n * n for n in range(10)]


def test_empty_and_single_worker() -> None:
	assert parallel_map(lambda n: n, [], jobs=4) == []
	assert parallel_map(lambda n: n + 1, [1, 2, 3], jobs=1) == [2, 3, 4]


def test_uses_worker_threads() -> None:
	seen: set[int] = set()
	lock = threading.Lock()
	barrier = threading.Barrier(2, timeout=5)

	def work(n: int) -> int:
		with lock:
			seen.add(threading.get_ident())
		barrier.wait()
		return n

	assert parallel_map(work, [1, 2], jobs=2) == [1, 2]
	assert len(seen) == 2


def test_first_failure_is_raised() -> None:
	def work(n: int) -> int:
		if n == 3:
			raise ValueError(f"bad item {n}")
		return n

	with pytest.raises(ValueError, match=r"bad item 3"):
		parallel_map(work, range(8), jobs=3)
	with pytest.raises(ValueError, match=r"bad item 3"):
		parallel_map(work, range(8), jobs=1)
