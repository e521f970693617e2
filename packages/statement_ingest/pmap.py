"""Order-preserving bounded map over a thread pool.

Row parsing and normalization are independent per row, so large statements
can be processed with a small pool. Results always come back in input order;
with ``concurrency == 1`` the mapper runs inline on the calling thread.
Workers run each call in a copy of the caller's context, so context
variables (the upload tag on log records) are visible inside the mapper.
"""

from __future__ import annotations

import contextvars
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` running at most ``concurrency`` calls
    at once.

    The first mapper exception propagates to the caller; mappers that report
    per-item failures should return them as values instead of raising.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    if concurrency == 1:
        return [mapper(item) for item in iterable]

    # Contexts are copied here, on the calling thread.
    calls = [(contextvars.copy_context(), item) for item in iterable]
    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="ingest") as pool:
        # Executor.map yields in submission order regardless of completion order.
        return list(pool.map(lambda call: call[0].run(mapper, call[1]), calls))


__all__ = ["p_map"]
