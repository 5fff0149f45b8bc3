"""Detached background work (anchoring, ethscriptions, notification sends).

Tasks run on a bounded thread pool and never report back to the request that
submitted them; failures are logged and end the task.
"""
from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from app.config import get_settings

log = logging.getLogger("uvicorn.error")

_executor: Executor | None = None


def get_executor() -> Executor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=max(1, get_settings().anchor_worker_threads),
            thread_name_prefix="background",
        )
    return _executor


def set_executor(executor: Executor | None) -> None:
    """Swap the pool (tests run tasks inline)."""
    global _executor
    _executor = executor


def submit(fn, *args, **kwargs) -> Future:
    name = getattr(fn, "__name__", repr(fn))

    def _run():
        try:
            return fn(*args, **kwargs)
        except Exception:
            log.exception("Background task %s failed", name)
            return None

    return get_executor().submit(_run)


def shutdown(wait: bool = False) -> None:
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=wait)
        _executor = None
