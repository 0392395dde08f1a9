"""Executor factory and shared counters used by the export pipeline."""

from __future__ import annotations

import threading
from concurrent import futures


def create_executor(
    workers: int, *, thread_name_prefix: str = "intermediary-fetch"
) -> futures.ThreadPoolExecutor:
    """
    Return a thread pool sized for IO-bound per-version work.

    Args:
        workers: Desired concurrency level; values below one are clamped to one.
        thread_name_prefix: Prefix applied to worker thread names.

    Returns:
        A :class:`~concurrent.futures.ThreadPoolExecutor`. The caller owns it
        and is responsible for shutting it down.
    """
    return futures.ThreadPoolExecutor(
        max_workers=max(1, int(workers)),
        thread_name_prefix=thread_name_prefix,
    )


class CompletionCounter:
    """Thread-safe monotonic counter handed to every worker task."""

    def __init__(self, total: int) -> None:
        self.total = total
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        """Add one and return the new value."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value
