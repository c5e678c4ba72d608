"""Hand due tasks to the execution backend.

For each due entry, oldest first: enqueue, then remove. Removal happens only
after that entry's enqueue attempt, so a crash between the two re-dispatches
the entry on a later sweep (at-least-once triggering).

Enqueue failures follow ``FailurePolicy``:

    RETAIN  entry stays, retried next sweep     (default)
    DROP    entry removed, task lost

Any exception from ``enqueue`` counts as a failure; one that is not a
``DelayError`` is wrapped in ``BackendUnavailableError``. Malformed entries
are logged and left in the set untouched.

When a ``fence`` callable is given (per sweep, or as the default at
construction) it is checked before every removal; if it reports the sweep
lock lost, the sweep stops so that a process whose lease expired does not
keep mutating the set alongside the new holder.
"""

from __future__ import annotations

from collections.abc import Callable

from delay_spine.core.errors import BackendUnavailableError, DelayError
from delay_spine.core.logging import get_logger

from .models import DueEntry, FailurePolicy, SweepResult
from .protocol import ExecutionBackend
from .repository import DelayedTaskStore

logger = get_logger(__name__)


def _fenced(fence: Callable[[], bool] | None) -> bool:
    return fence is None or fence()


class Dispatcher:
    """Sequential dispatcher for one sweep."""

    def __init__(
        self,
        tasks: DelayedTaskStore,
        backend: ExecutionBackend,
        policy: FailurePolicy = FailurePolicy.RETAIN,
        fence: Callable[[], bool] | None = None,
    ) -> None:
        self.tasks = tasks
        self.backend = backend
        self.policy = FailurePolicy(policy)
        self.fence = fence

    def run_sweep(
        self,
        now: float,
        result: SweepResult | None = None,
        fence: Callable[[], bool] | None = None,
    ) -> SweepResult:
        """Dispatch every entry due at ``now``.

        Args:
            now: Sweep timestamp
            result: Result object to fill in (a fresh one if omitted)
            fence: Lease check for this sweep; defaults to ``self.fence``

        Returns:
            The filled-in SweepResult
        """
        result = result or SweepResult(now=now)
        fence = fence or self.fence
        entries = self.tasks.pop_due(now)
        result.due = len(entries)

        for entry in entries:
            if not entry.is_valid:
                result.malformed += 1
                logger.warning(
                    "malformed_entry_skipped",
                    task_key=entry.key,
                    score=entry.score,
                    error=entry.error.message if entry.error else None,
                )
                continue

            if not self._dispatch(entry, result, fence):
                break

        return result

    def _dispatch(self, entry: DueEntry, result: SweepResult, fence: Callable[[], bool] | None) -> bool:
        """Enqueue and remove one entry. Returns False if the sweep must stop."""
        task = entry.task
        try:
            self.backend.enqueue(task.target_type, task.method_name, task.target_id)
        except Exception as exc:
            error = exc if isinstance(exc, DelayError) else BackendUnavailableError(
                f"enqueue raised {type(exc).__name__}: {exc}", cause=exc
            )
            result.failed += 1
            logger.warning(
                "task_enqueue_failed",
                task_key=entry.key,
                policy=self.policy.value,
                error=error,
            )
            if self.policy is FailurePolicy.DROP:
                if not _fenced(fence):
                    return self._abort(entry, result)
                self.tasks.remove(entry.key)
                result.dropped += 1
                logger.warning("task_dropped", task_key=entry.key)
            return True

        if not _fenced(fence):
            return self._abort(entry, result)

        self.tasks.remove(entry.key)
        result.dispatched += 1
        result.dispatched_keys.append(entry.key)
        logger.info(
            "task_dispatched",
            task_key=entry.key,
            target_type=task.target_type,
            method_name=task.method_name,
            target_id=task.target_id,
            lateness=round(result.now - task.due_at, 3),
        )
        return True

    def _abort(self, entry: DueEntry, result: SweepResult) -> bool:
        result.aborted = True
        logger.warning("sweep_lock_lost", task_key=entry.key)
        return False


__all__ = ["Dispatcher"]
