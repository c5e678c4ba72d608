"""
Structured error types for delay-spine.

Every failure the scheduler can surface is a ``DelayError`` carrying a
category, an explicit retry flag and structured task context, so the caller
of ``schedule()`` / ``run()`` can decide what to do without parsing messages.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure mode of the sweep
    - **Explicit Retry Semantics:** Store and backend outages are retryable,
      bad task data never is
    - **Rich Context:** Errors carry the task key and target fields
    - **Error Chaining:** The underlying redis/celery exception is kept as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                         DelayError                               │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientError            ValidationError        LockError      │
        │  (retryable=True)          (VALIDATION)           (LOCK)         │
        │       │                         │                     │          │
        │  StoreUnavailableError     InvalidTaskError      LockStuckError  │
        │  BackendUnavailableError   MalformedEntryError                   │
        │                                                                  │
        │  ConfigError               InvocationError                       │
        │  (CONFIG)                  (INVOCATION)                          │
        │                                 │                                │
        │                            UnknownTargetError                    │
        │                            UnknownMethodError                    │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = BackendUnavailableError("broker down")
    >>> error.retryable
    True
    >>> error.with_context(task_key="10.User.send_welcome.1").context.task_key
    '10.User.send_welcome.1'

Guardrails:
    ❌ DON'T: Raise plain Exception from store or backend adapters
    ✅ DO: Translate client errors into StoreUnavailableError / BackendUnavailableError

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    delay-spine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    STORE = "STORE"               # Shared store unreachable
    BACKEND = "BACKEND"           # Execution backend refused the task

    # Data errors
    PARSE = "PARSE"               # Stored member cannot be decoded
    VALIDATION = "VALIDATION"     # Bad task fields

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"

    # Coordination / execution
    LOCK = "LOCK"                 # Sweep lock problems
    INVOCATION = "INVOCATION"     # Target resolution failures

    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover the task a failure relates to; anything else goes in
    ``metadata``. ``to_dict()`` drops unset fields so log lines stay short.
    """

    task_key: str | None = None
    target_type: str | None = None
    method_name: str | None = None
    target_id: str | None = None
    sweep_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["task_key", "target_type", "method_name", "target_id", "sweep_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DelayError(Exception):
    """
    Base exception for all delay-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so raising
    sites only pass a message and, where relevant, a cause.

    Examples:
        >>> error = DelayError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DelayError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MalformedEntryError("bad member").with_context(task_key=member)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(DelayError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.STORE
    default_retryable = True


class StoreUnavailableError(TransientError):
    """
    The shared store could not be reached.

    Propagates out of ``schedule()`` and ``run()``; the core never retries
    store round trips itself.
    """

    default_category = ErrorCategory.STORE


class BackendUnavailableError(TransientError):
    """The execution backend did not accept an enqueue call."""

    default_category = ErrorCategory.BACKEND


# =============================================================================
# VALIDATION ERRORS (Never Retryable)
# =============================================================================


class ValidationError(DelayError):
    """Data failed validation."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class InvalidTaskError(ValidationError):
    """Task fields rejected at schedule time."""


class MalformedEntryError(ValidationError):
    """
    A stored ordered-set member could not be decoded into a task.

    Non-fatal during a sweep: the entry is logged, skipped and left in the
    store for inspection.
    """

    default_category = ErrorCategory.PARSE


# =============================================================================
# CONFIG / LOCK / INVOCATION
# =============================================================================


class ConfigError(DelayError):
    """Invalid scheduler configuration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class LockError(DelayError):
    """Sweep lock problem."""

    default_category = ErrorCategory.LOCK


class LockStuckError(LockError):
    """The sweep lock has been held far longer than any sweep should take."""

    def __init__(
        self,
        message: str = "Sweep lock appears stuck",
        *,
        owner: str | None = None,
        held_for: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.owner = owner
        self.held_for = held_for
        if owner is not None:
            self.context.metadata["owner"] = owner
        if held_for is not None:
            self.context.metadata["held_for"] = held_for


class InvocationError(DelayError):
    """Target object or method could not be resolved."""

    default_category = ErrorCategory.INVOCATION


class UnknownTargetError(InvocationError):
    """No finder is registered for the target type."""


class UnknownMethodError(InvocationError):
    """The resolved object has no public callable with the given name."""


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DelayError",
    "TransientError",
    "StoreUnavailableError",
    "BackendUnavailableError",
    "ValidationError",
    "InvalidTaskError",
    "MalformedEntryError",
    "ConfigError",
    "LockError",
    "LockStuckError",
    "InvocationError",
    "UnknownTargetError",
    "UnknownMethodError",
]
