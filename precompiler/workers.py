# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Bounded fan-out for independent per-item work.

Workers never touch shared state: each returns a value and the caller reduces
the results in submission order. The first failure cancels work that has not
started yet and is re-raised in the caller's thread.
"""

from __future__ import annotations

import os
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def default_jobs() -> int:
	return os.cpu_count() or 1


def parallel_map(fn: Callable[[T], R], items: Iterable[T], *, jobs: int | None = None) -> list[R]:
	"""Apply `fn` to every item on at most `jobs` threads; results keep item order."""
	work = list(items)
	if not work:
		return []
	workers = max(1, min(jobs or default_jobs(), len(work)))
	if workers == 1:
		return [fn(item) for item in work]

	with ThreadPoolExecutor(max_workers=workers) as pool:
		futures: list[Future[R]] = [pool.submit(fn, item) for item in work]
		_, pending = wait(futures, return_when=FIRST_EXCEPTION)
		for fut in pending:
			fut.cancel()
		for fut in futures:
			if fut.done() and not fut.cancelled() and fut.exception() is not None:
				raise fut.exception()  # type: ignore[misc]
		return [fut.result() for fut in futures]
