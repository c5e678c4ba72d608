"""Delayed task storage on an ordered set.

Each scheduled task is one member of the ordered set ``set_name``: the
encoded task key, scored by its due time. There is no separate payload; the
member is the task.

Reading due work and removing it are separate steps. ``pop_due()`` only
reads, and the dispatcher calls ``remove()`` per entry after its hand-off to
the execution backend, so a crash mid-sweep leaves undispatched entries in
place.

Set semantics apply: scheduling the same (due time, type, method, id)
twice stores one member.

Tags:
    delay-spine, scheduling, ordered-set, repository

Doc-Types:
    api-reference
"""

from __future__ import annotations

from delay_spine.core.errors import MalformedEntryError
from delay_spine.core.kv import KeyValueStore
from delay_spine.core.logging import get_logger

from .keys import TaskKeyCodec
from .models import DueEntry, Task

logger = get_logger(__name__)


class DelayedTaskStore:
    """Repository for delayed tasks.

    Example:
        >>> tasks = DelayedTaskStore(store)
        >>> tasks.schedule(10, "User", "send_welcome", 1)
        Task(due_at=10, target_type='User', method_name='send_welcome', target_id='1')
        >>> [e.key for e in tasks.pop_due(15)]
        ['10.User.send_welcome.1']
    """

    def __init__(
        self,
        store: KeyValueStore,
        set_name: str = "delay_spine:tasks",
        codec: TaskKeyCodec | None = None,
    ) -> None:
        self.store = store
        self.set_name = set_name
        self.codec = codec or TaskKeyCodec()

    def key_for(self, task: Task) -> str:
        return self.codec.encode(task)

    def schedule(
        self,
        due_at: int,
        target_type: str,
        method_name: str,
        target_id: str | int,
    ) -> Task:
        """Insert a task scored by ``due_at``.

        Raises:
            InvalidTaskError: If the fields cannot be encoded
            StoreUnavailableError: If the store is unreachable
        """
        task = Task(
            due_at=due_at,
            target_type=target_type,
            method_name=method_name,
            target_id=target_id,
        )
        key = self.codec.encode(task)
        is_new = self.store.zadd(self.set_name, key, task.due_at)
        logger.info(
            "task_scheduled",
            task_key=key,
            due_at=task.due_at,
            duplicate=not is_new,
        )
        return task

    def _decode(self, key: str, score: float) -> DueEntry:
        try:
            task = self.codec.decode(key)
        except MalformedEntryError as exc:
            return DueEntry(key=key, score=score, error=exc)

        if task.due_at != score:
            error = MalformedEntryError(
                f"Task key due time {task.due_at} does not match its score {score}"
            ).with_context(task_key=key, score=score)
            return DueEntry(key=key, score=score, error=error)

        return DueEntry(key=key, score=score, task=task)

    def pop_due(self, now: float) -> list[DueEntry]:
        """Read every entry with score ≤ ``now``, oldest first.

        Nothing is removed. Entries that fail to decode, or whose embedded
        due time disagrees with their score, come back with ``error`` set.
        """
        rows = self.store.zrange_by_score(self.set_name, now)
        return [self._decode(key, score) for key, score in rows]

    def remove(self, key: str) -> bool:
        """Remove one entry. Removing an absent key is a no-op returning False."""
        return self.store.zrem(self.set_name, key)

    def pending(self, limit: int | None = None) -> list[DueEntry]:
        """All stored entries (or the first ``limit``), oldest first."""
        rows = self.store.zrange(self.set_name, limit)
        return [self._decode(key, score) for key, score in rows]

    def count(self) -> int:
        return self.store.zcard(self.set_name)


__all__ = ["DelayedTaskStore"]
