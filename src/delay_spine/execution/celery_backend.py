"""CeleryExecutionBackend - hand due tasks to Celery workers.

The sweeping process only sends ``(target_type, method_name, target_id)``
by task name; workers register the task with ``register_invoke_task`` and
resolve the target through a ``TargetRegistry``. The two sides share
nothing but the task name and the broker.

::

    ┌──────────────┐  send_task(name, args)  ┌──────────┐   ┌──────────────┐
    │  Dispatcher  │ ──────────────────────► │  broker  │ ─►│ Celery worker│
    └──────────────┘                         └──────────┘   │ registry.    │
                                                            │   invoke()   │
                                                            └──────────────┘

Worker side::

    app = create_celery_app()
    register_invoke_task(app, registry)
    # celery -A myproject.worker worker
"""

from __future__ import annotations

from typing import Any

from celery import Celery
from kombu.exceptions import KombuError

from delay_spine.core.errors import BackendUnavailableError
from delay_spine.core.logging import get_logger
from delay_spine.core.settings import SchedulerSettings, get_settings

from .registry import TargetRegistry

logger = get_logger(__name__)

DEFAULT_TASK_NAME = "delay_spine.invoke"


class CeleryExecutionBackend:
    """
    Celery-based execution backend.

    ``enqueue`` returns once the broker has accepted the message; execution
    outcomes on the worker are not observed.
    """

    name = "celery"

    def __init__(
        self,
        celery_app: Any,
        task_name: str = DEFAULT_TASK_NAME,
        queue: str | None = None,
    ):
        self.celery_app = celery_app
        self.task_name = task_name
        self.queue = queue

    def enqueue(self, target_type: str, method_name: str, target_id: str) -> None:
        """Send the invoke task to the broker.

        Raises:
            BackendUnavailableError: If the broker refused or was unreachable
        """
        options: dict[str, Any] = {}
        if self.queue:
            options["queue"] = self.queue
        try:
            result = self.celery_app.send_task(
                self.task_name,
                args=[target_type, method_name, target_id],
                **options,
            )
        except (KombuError, OSError) as exc:
            raise BackendUnavailableError(
                f"Celery broker rejected {self.task_name}: {exc}", cause=exc
            ).with_context(
                target_type=target_type, method_name=method_name, target_id=target_id
            ) from exc

        logger.debug(
            "task_sent_to_celery",
            task_name=self.task_name,
            celery_task_id=getattr(result, "id", None),
            target_type=target_type,
            method_name=method_name,
            target_id=target_id,
        )

    def health(self) -> dict:
        """Ping workers through the Celery control API."""
        try:
            stats = self.celery_app.control.inspect().stats()
        except (KombuError, OSError) as exc:
            return {"healthy": False, "backend": self.name, "message": str(exc), "workers": []}

        if stats:
            return {
                "healthy": True,
                "backend": self.name,
                "message": f"{len(stats)} workers available",
                "workers": list(stats.keys()),
            }
        return {"healthy": False, "backend": self.name, "message": "No workers available", "workers": []}


def create_celery_app(settings: SchedulerSettings | None = None) -> Celery:
    """Build a Celery app on the scheduler's Redis, configured for at-least-once delivery."""
    settings = settings or get_settings()
    app = Celery("delay_spine", broker=settings.redis_url)
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        task_ignore_result=True,
        # Ack after the invocation so a worker crash redelivers the task
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        timezone="UTC",
        enable_utc=True,
    )
    if settings.celery_queue:
        app.conf.task_default_queue = settings.celery_queue
    return app


def register_invoke_task(
    celery_app: Celery,
    registry: TargetRegistry,
    name: str = DEFAULT_TASK_NAME,
) -> Any:
    """Register the worker-side task that resolves and invokes targets.

    Returns:
        The registered Celery task
    """

    @celery_app.task(name=name)
    def invoke(target_type: str, method_name: str, target_id: str) -> bool:
        return registry.invoke(target_type, method_name, target_id)

    return invoke


__all__ = [
    "CeleryExecutionBackend",
    "create_celery_app",
    "register_invoke_task",
    "DEFAULT_TASK_NAME",
]
