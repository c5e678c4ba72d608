"""LocalExecutionBackend - in-process execution of due tasks."""

from __future__ import annotations

from delay_spine.core.errors import BackendUnavailableError
from delay_spine.core.logging import get_logger

from .registry import TargetRegistry

logger = get_logger(__name__)


class LocalExecutionBackend:
    """
    Executes due tasks synchronously inside the sweeping process.

    Suited to single-process deployments and development. Any failure of the
    invocation is reported as ``BackendUnavailableError``, so under the
    default retain policy the entry stays in the set and the call is retried
    on the next sweep.
    """

    name = "local"

    def __init__(self, registry: TargetRegistry):
        self.registry = registry

    def enqueue(self, target_type: str, method_name: str, target_id: str) -> None:
        try:
            self.registry.invoke(target_type, method_name, target_id)
        except Exception as exc:
            raise BackendUnavailableError(
                f"Local invocation of {target_type}.{method_name} failed: {exc}",
                cause=exc,
            ).with_context(
                target_type=target_type, method_name=method_name, target_id=target_id
            ) from exc

    def health(self) -> dict:
        return {
            "healthy": True,
            "backend": self.name,
            "target_types": self.registry.target_types(),
        }


__all__ = ["LocalExecutionBackend"]
