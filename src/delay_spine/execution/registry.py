"""Resolve (target type, target id) to an object and call a method on it.

This is the worker side of a delayed task: whatever received the tuple from
the scheduler looks up a finder for the target type, loads the object, and
calls the named method with no arguments. A target that no longer exists is
skipped silently, since the object may have been deleted between scheduling
and execution.

Only explicitly registered target types can be resolved, and only public
methods (no leading underscore) can be called.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from delay_spine.core.errors import UnknownMethodError, UnknownTargetError
from delay_spine.core.logging import get_logger

logger = get_logger(__name__)

Finder = Callable[[str], Any]


class TargetRegistry:
    """Maps target type names to finder callables.

    Example:
        >>> registry = TargetRegistry()
        >>> @registry.register("User")
        ... def find_user(user_id: str) -> User | None:
        ...     return session.get(User, int(user_id))
        >>> registry.invoke("User", "send_welcome", "123")
        True
    """

    def __init__(self) -> None:
        self._finders: dict[str, Finder] = {}

    def register(self, target_type: str, finder: Finder | None = None) -> Any:
        """Register ``finder`` for ``target_type``; usable as a decorator."""
        if finder is None:
            def decorator(fn: Finder) -> Finder:
                self._finders[target_type] = fn
                return fn

            return decorator

        self._finders[target_type] = finder
        return finder

    def unregister(self, target_type: str) -> None:
        self._finders.pop(target_type, None)

    def target_types(self) -> list[str]:
        return sorted(self._finders)

    def __contains__(self, target_type: str) -> bool:
        return target_type in self._finders

    def invoke(self, target_type: str, method_name: str, target_id: str) -> bool:
        """Load the target and call ``method_name`` on it.

        Returns:
            True if the method was called, False if the target was not found

        Raises:
            UnknownTargetError: No finder registered for ``target_type``
            UnknownMethodError: Method is private, missing or not callable
        """
        finder = self._finders.get(target_type)
        if finder is None:
            raise UnknownTargetError(f"No finder registered for {target_type!r}").with_context(
                target_type=target_type, method_name=method_name, target_id=target_id
            )
        if method_name.startswith("_"):
            raise UnknownMethodError(f"Refusing to call private method {method_name!r}").with_context(
                target_type=target_type, method_name=method_name, target_id=target_id
            )

        obj = finder(target_id)
        if obj is None:
            logger.info(
                "target_not_found",
                target_type=target_type,
                method_name=method_name,
                target_id=target_id,
            )
            return False

        method = getattr(obj, method_name, None)
        if not callable(method):
            raise UnknownMethodError(
                f"{target_type} has no callable {method_name!r}"
            ).with_context(target_type=target_type, method_name=method_name, target_id=target_id)

        method()
        logger.debug(
            "target_invoked",
            target_type=target_type,
            method_name=method_name,
            target_id=target_id,
        )
        return True


__all__ = ["TargetRegistry", "Finder"]
