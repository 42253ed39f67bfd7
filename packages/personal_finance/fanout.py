"""Fan-out/fan-in over a small thread pool.

``fan_out`` runs a handful of independent, zero-argument callables
concurrently and returns their results keyed by name once *all* of them have
finished. It is used for the calendar's three store reads, which have no
ordering dependency on each other but must all complete before merging.

Semantics
---------
- Fail fast: the first exception is re-raised as-is and any not-yet-started
  call is cancelled. No partial result is ever returned.
- ``max_workers=1`` degrades to sequential execution in submission order.
- No shared state is passed between calls; each callable opens whatever
  resources it needs (e.g. its own DB session).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import TypeVar

T = TypeVar("T")


def fan_out(
    calls: Mapping[str, Callable[[], T]],
    *,
    max_workers: int,
    thread_name_prefix: str = "pf-fanout",
) -> dict[str, T]:
    """Run ``calls`` concurrently and return ``{name: result}``.

    Raises the first failure encountered; remaining unstarted work is
    cancelled.
    """

    if not isinstance(max_workers, int) or max_workers < 1:
        raise ValueError("max_workers must be a positive integer")
    if not calls:
        return {}

    if max_workers == 1:
        return {name: fn() for name, fn in calls.items()}

    workers = min(max_workers, len(calls))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=thread_name_prefix) as pool:
        futures: dict[Future[T], str] = {pool.submit(fn): name for name, fn in calls.items()}
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        for fut in done:
            exc = fut.exception()
            if exc is not None:
                for p in pending:
                    p.cancel()
                raise exc

    # All futures completed without error at this point.
    by_name = {name: fut for fut, name in futures.items()}
    return {name: by_name[name].result() for name in calls}


__all__ = ["fan_out"]
