"""
Resource detection utilities for parallel processing.

Provides cgroups-aware CPU detection for sizing worker pools, and memory
checkpoints for long per-chromosome runs.
"""

import os
import logging
import time

import psutil

logger = logging.getLogger("erquant.core.resource_utils")


def detect_available_cpus() -> int:
    """
    Detect available CPUs, respecting cgroups/SLURM allocation.

    Returns:
        Number of available CPU cores.
    """
    try:
        # sched_getaffinity respects cgroups/SLURM task allocation
        return len(os.sched_getaffinity(0))
    except AttributeError:
        # macOS doesn't have sched_getaffinity
        pass

    return os.cpu_count() or 1


def resolve_workers(requested: int, n_items: int) -> int:
    """
    Effective worker count for a batch.

    Args:
        requested: Requested workers (0 = all available CPUs)
        n_items: Number of work items in the batch

    Returns:
        ``min(requested, n_items)``, never below 1
    """
    if requested <= 0:
        requested = detect_available_cpus()
    effective = max(1, min(requested, n_items))
    if requested > n_items > 0:
        logger.debug(f"Requested {requested} workers for {n_items} items, using {effective}")
    return effective


def get_current_memory_gb() -> float:
    """
    Get current process memory usage (RSS) in GB.

    Returns:
        Current RSS memory in GB.
    """
    return psutil.Process(os.getpid()).memory_info().rss / (1024 ** 3)


def log_checkpoint(logger, label: str, stage: str, start_time: float, start_mem: float) -> None:
    """
    Log a processing checkpoint with elapsed time and memory.

    Args:
        logger: Logger instance
        label: Short identifier (chromosome name)
        stage: Current processing stage name
        start_time: Processing start time from time.time()
        start_mem: Starting memory from get_current_memory_gb()
    """
    elapsed = time.time() - start_time
    current_mem = get_current_memory_gb()
    mem_delta = current_mem - start_mem

    if elapsed >= 60:
        mins, secs = divmod(int(elapsed), 60)
        elapsed_str = f"{mins}m{secs:02d}s"
    else:
        elapsed_str = f"{elapsed:.0f}s"

    logger.info(f"[{label}] {elapsed_str} | {stage} | Mem: {current_mem:.1f}GB ({mem_delta:+.1f}GB)")
