"""
Concurrency helpers shared across MappingsToJSON components.

Exposes :func:`create_executor`, which builds the bounded thread pool used to
fan out per-version work, and :class:`CompletionCounter`, the lock-protected
progress counter shared by those workers.
"""

from .executors import CompletionCounter, create_executor

__all__ = ["CompletionCounter", "create_executor"]
