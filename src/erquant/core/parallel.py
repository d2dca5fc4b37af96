"""
Ordered parallel map over independent work items.

Used twice: once over chromosomes, once over sample files within a chromosome.
Each call owns its pool; nothing is shared between items except the
(read-only) arguments.
"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Iterable, List
import logging

from .resource_utils import resolve_workers

logger = logging.getLogger("erquant.core.parallel")

BACKENDS = ("process", "thread")


def run_parallel(
    func: Callable[..., Any],
    items: Iterable[Any],
    workers: int = 1,
    backend: str = "process",
    **kwargs,
) -> List[Any]:
    """
    Call ``func(item, **kwargs)`` for every item and return results in input order.

    With one effective worker the items run sequentially in this process. With
    more, items are submitted to a pool of ``min(workers, len(items))`` workers
    and results are slotted back by input position as they complete.

    The first failing item cancels the items not yet started and its exception
    propagates; results of the other items are discarded.

    Args:
        func: Top-level (picklable) function for the "process" backend
        items: Work items
        workers: Requested workers (0 = all available CPUs)
        backend: "process" or "thread"
        **kwargs: Extra keyword arguments passed to every call

    Returns:
        List of results, ``results[i]`` belonging to ``items[i]``
    """
    items = list(items)
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend '{backend}'. Valid options are: {', '.join(BACKENDS)}")
    if not items:
        return []

    n_workers = resolve_workers(workers, len(items))
    if n_workers == 1:
        return [func(item, **kwargs) for item in items]

    logger.debug(f"Running {len(items)} items on {n_workers} {backend} workers")
    executor_cls = ProcessPoolExecutor if backend == "process" else ThreadPoolExecutor
    results: List[Any] = [None] * len(items)

    ex = executor_cls(max_workers=n_workers)
    try:
        futs = {ex.submit(func, item, **kwargs): i for i, item in enumerate(items)}
        for fut in as_completed(futs):
            results[futs[fut]] = fut.result()
    except BaseException:
        ex.shutdown(wait=True, cancel_futures=True)
        raise
    ex.shutdown(wait=True)
    return results
