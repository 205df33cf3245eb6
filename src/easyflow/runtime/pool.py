"""Worker pool used by parallel blocks.

Parallel blocks take an injected ``concurrent.futures.Executor``. When none is
given, they fall back to a process-wide pool that is created lazily and must be
shut down explicitly by the owning application.
"""

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_shared_executor: ThreadPoolExecutor | None = None

# Marks threads currently running a parallel child, keyed by the owning pool.
_worker = threading.local()


def get_shared_executor(workers: int = 2) -> ThreadPoolExecutor:
    """Return the process-wide pool, creating it on first use.

    Args:
        workers: Thread count, only used when the pool is created.
    """
    global _shared_executor
    with _lock:
        if _shared_executor is None:
            _shared_executor = ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="easyflow-worker"
            )
            logger.info(
                f"Created shared executor with {workers} threads. "
                "Call shutdown_shared_executor() before the application exits."
            )
        return _shared_executor


def shutdown_shared_executor(wait: bool = True) -> None:
    """Shut down the process-wide pool. A later parallel block recreates it."""
    global _shared_executor
    with _lock:
        executor, _shared_executor = _shared_executor, None
    if executor is not None:
        executor.shutdown(wait=wait)
        logger.info("Shared executor shut down")


def running_on(executor: Executor) -> bool:
    """Whether the calling thread is executing a task of this pool."""
    return executor in getattr(_worker, "pools", ())


@contextmanager
def worker_of(executor: Executor) -> Iterator[None]:
    """Mark the current thread as running a task of this pool."""
    pools = getattr(_worker, "pools", None)
    if pools is None:
        pools = _worker.pools = []
    pools.append(executor)
    try:
        yield
    finally:
        pools.pop()
