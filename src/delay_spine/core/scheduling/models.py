"""Data types shared by the scheduling components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from delay_spine.core.errors import MalformedEntryError


class FailurePolicy(str, Enum):
    """What the dispatcher does with an entry whose enqueue failed.

    RETAIN leaves the entry for the next sweep (a permanently failing task is
    retried forever). DROP removes it (the task is lost).
    """

    RETAIN = "retain"
    DROP = "drop"


@dataclass(frozen=True)
class Task:
    """One scheduled invocation of ``method_name`` on ``target_type``/``target_id``."""

    due_at: int
    target_type: str
    method_name: str
    target_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_id", str(self.target_id))

    def to_dict(self) -> dict[str, Any]:
        return {
            "due_at": self.due_at,
            "target_type": self.target_type,
            "method_name": self.method_name,
            "target_id": self.target_id,
        }


@dataclass
class DueEntry:
    """A member read from the task set, decoded or not.

    Exactly one of ``task`` / ``error`` is set.
    """

    key: str
    score: float
    task: Task | None = None
    error: MalformedEntryError | None = None

    @property
    def is_valid(self) -> bool:
        return self.task is not None


@dataclass(frozen=True)
class LockInfo:
    """Parsed value of the sweep lock key."""

    owner: str
    acquired_at: float

    def held_for(self, now: float) -> float:
        return now - self.acquired_at


@dataclass
class SweepResult:
    """Outcome of one ``run()`` call."""

    now: float
    sweep_id: str | None = None
    admitted: bool = False
    lock_acquired: bool = False
    due: int = 0
    dispatched: int = 0
    failed: int = 0
    dropped: int = 0
    malformed: int = 0
    aborted: bool = False
    dispatched_keys: list[str] = field(default_factory=list)

    @property
    def swept(self) -> bool:
        """True if this call actually scanned the task set."""
        return self.admitted and self.lock_acquired

    def to_dict(self) -> dict[str, Any]:
        return {
            "now": self.now,
            "sweep_id": self.sweep_id,
            "admitted": self.admitted,
            "lock_acquired": self.lock_acquired,
            "due": self.due,
            "dispatched": self.dispatched,
            "failed": self.failed,
            "dropped": self.dropped,
            "malformed": self.malformed,
            "aborted": self.aborted,
        }
