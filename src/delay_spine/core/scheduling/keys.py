"""Task key encoding.

A task is persisted only as its ordered-set member: the four fields joined by
a delimiter, due time first::

    1700000005.User.send_welcome.123

The score of the member is the same due time, so a decoded member must agree
with its score; the repository checks this on every read.

With ``escape=True`` (the default) a backslash escapes the delimiter and
itself inside a field, so ``"a.b"`` is stored as ``a\\.b`` and decodes back
unchanged. Fields without either character encode exactly as the plain
joined form. With ``escape=False`` a delimiter inside a field is rejected at
encode time instead.
"""

from __future__ import annotations

from delay_spine.core.errors import InvalidTaskError, MalformedEntryError

from .models import Task

ESCAPE = "\\"
FIELD_COUNT = 4


class TaskKeyCodec:
    """Encode :class:`Task` objects to ordered-set members and back.

    Example:
        >>> codec = TaskKeyCodec()
        >>> key = codec.encode(Task(10, "User", "send_welcome", "1"))
        >>> key
        '10.User.send_welcome.1'
        >>> codec.decode(key)
        Task(due_at=10, target_type='User', method_name='send_welcome', target_id='1')
    """

    def __init__(self, delimiter: str = ".", *, escape: bool = True) -> None:
        if len(delimiter) != 1 or delimiter == ESCAPE:
            raise ValueError("delimiter must be a single character other than '\\'")
        self.delimiter = delimiter
        self.escape = escape

    # === Encode ===

    def validate(self, task: Task) -> None:
        """Reject tasks that cannot be stored.

        Raises:
            InvalidTaskError: Non-integer due time, empty type/method, or a
                delimiter inside a field when escaping is disabled.
        """
        if isinstance(task.due_at, bool) or not isinstance(task.due_at, int):
            raise InvalidTaskError(f"due_at must be an integer timestamp, got {task.due_at!r}")
        if task.due_at < 0:
            raise InvalidTaskError(f"due_at must not be negative, got {task.due_at}")
        for name in ("target_type", "method_name"):
            value = getattr(task, name)
            if not isinstance(value, str) or not value:
                raise InvalidTaskError(f"{name} must be a non-empty string").with_context(
                    **{name: str(value)}
                )
        if not self.escape:
            for name in ("target_type", "method_name", "target_id"):
                if self.delimiter in getattr(task, name):
                    raise InvalidTaskError(
                        f"{name} contains the key delimiter {self.delimiter!r}"
                    ).with_context(**{name: getattr(task, name)})

    def _escape_field(self, value: str) -> str:
        if not self.escape:
            return value
        return value.replace(ESCAPE, ESCAPE * 2).replace(self.delimiter, ESCAPE + self.delimiter)

    def encode(self, task: Task) -> str:
        self.validate(task)
        fields = [str(task.due_at), task.target_type, task.method_name, task.target_id]
        return self.delimiter.join(self._escape_field(f) for f in fields)

    # === Decode ===

    def _split(self, key: str) -> list[str]:
        if not self.escape:
            return key.split(self.delimiter)

        fields: list[str] = []
        current: list[str] = []
        chars = iter(key)
        for char in chars:
            if char == ESCAPE:
                nxt = next(chars, None)
                if nxt is None:
                    raise MalformedEntryError("Dangling escape at end of task key").with_context(
                        task_key=key
                    )
                current.append(nxt)
            elif char == self.delimiter:
                fields.append("".join(current))
                current = []
            else:
                current.append(char)
        fields.append("".join(current))
        return fields

    def decode(self, key: str) -> Task:
        """Split ``key`` into a :class:`Task`.

        Raises:
            MalformedEntryError: Wrong field count or non-integer due time.
        """
        fields = self._split(key)
        if len(fields) != FIELD_COUNT:
            raise MalformedEntryError(
                f"Expected {FIELD_COUNT} fields in task key, found {len(fields)}"
            ).with_context(task_key=key)

        raw_due, target_type, method_name, target_id = fields
        try:
            due_at = int(raw_due)
        except ValueError as exc:
            raise MalformedEntryError(
                f"Task key due time {raw_due!r} is not an integer", cause=exc
            ).with_context(task_key=key) from exc

        return Task(
            due_at=due_at,
            target_type=target_type,
            method_name=method_name,
            target_id=target_id,
        )


__all__ = ["TaskKeyCodec", "FIELD_COUNT"]
