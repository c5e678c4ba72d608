"""Execution backends: where due tasks go once the sweep releases them.

- ``LocalExecutionBackend``: in-process, via a ``TargetRegistry``
- ``CeleryExecutionBackend``: Celery ``send_task`` to remote workers
"""

from __future__ import annotations

from .local import LocalExecutionBackend
from .registry import TargetRegistry


def __getattr__(name: str):  # noqa: N807
    """Lazy import the Celery adapter so in-process use does not load celery."""
    if name in ("CeleryExecutionBackend", "create_celery_app", "register_invoke_task"):
        from . import celery_backend

        return getattr(celery_backend, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "TargetRegistry",
    "LocalExecutionBackend",
    "CeleryExecutionBackend",
    "create_celery_app",
    "register_invoke_task",
]
