"""Thread pool helpers for fanning out blocking Atera requests."""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def join_all(tasks: Mapping[str, Callable[[], T]], *, max_workers: Optional[int] = None) -> Dict[str, T]:
    """Run independent tasks concurrently and return their results by name.

    The join is all-or-nothing: the exception of the first task to fail, in
    completion order, is re-raised once the running tasks finish, and tasks
    that have not started are cancelled. In-flight requests cannot be
    interrupted.
    """
    if not tasks:
        return {}
    workers = max_workers or len(tasks)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="join") as executor:
        futures: Dict[Future, str] = {executor.submit(task): name for name, task in tasks.items()}
        for future in as_completed(futures):
            error = future.exception()
            if error is None:
                continue
            pending = [other for other in futures if not other.done()]
            for other in pending:
                other.cancel()
            LOGGER.debug("Task %s failed; abandoning %s pending tasks", futures[future], len(pending))
            raise error
    return {name: future.result() for future, name in futures.items()}


def bounded_map(
    func: Callable[[T], R],
    items: Sequence[T],
    *,
    max_workers: int,
    default: Callable[[T], R],
    progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
) -> List[R]:
    """Apply ``func`` to every item with at most ``max_workers`` in flight.

    Results keep the input order. An item whose call raises is logged and
    replaced by ``default(item)`` so one failure never aborts the batch.
    """
    total = len(items)
    if not total:
        return []
    results: List[Optional[R]] = [None] * total
    completed = 0
    with ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="batch") as executor:
        futures: Dict[Future, int] = {executor.submit(func, item): index for index, item in enumerate(items)}
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception:
                LOGGER.warning("Batch item %r failed; using default", items[index], exc_info=True)
                results[index] = default(items[index])
            completed += 1
            if progress_callback:
                progress_callback(completed, total)
    return results  # type: ignore[return-value]
