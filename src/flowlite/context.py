"""Execution context shared by every task of a single workflow execution."""

from __future__ import annotations

from collections.abc import Iterator
from collections.abc import Mapping
from typing import Any

from flowlite.exceptions import RequiredKeyMissingError
from flowlite.utils import build_repr

_MISSING: Any = object()


def result_key(task_id: Any) -> str:
    """Context key under which the result of `task_id` is recorded."""
    return f"{task_id}_result"


def skipped_key(task_id: Any) -> str:
    """Context key under which the skip marker of `task_id` is recorded."""
    return f"{task_id}_skipped"


class Context:
    """
    Ordered key-value scratchpad for one workflow execution.

    A fresh context is created for every top-level execution and the *same* instance is
    handed to every task of that execution's dependency tree, so tasks can read each other's
    results (see `get_result`) and any values they `set`. There is no locking: concurrently
    running sibling tasks must not rely on the order of each other's writes.

    Examples:
        >>> ctx = Context({"order": "order-123"})
        >>> ctx.set("paid", True)
        >>> ctx.get("paid"), ctx.get("missing")
        (True, None)
        >>> "order" in ctx
        True
    """

    def __init__(self, initial_data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {}
        for key, value in (initial_data or {}).items():
            self.set(key, value)

    def set(self, key: str, value: Any) -> None:
        """Store `value` under `key`, overwriting any previous value."""
        self._data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under `key`, or `default` when absent."""
        return self._data.get(key, default)

    def get_required(self, key: str) -> Any:
        """
        Return the value stored under `key`.

        Raises:
            RequiredKeyMissingError: If the key was never set. A key explicitly set to None
                is considered present.
        """
        value = self._data.get(key, _MISSING)
        if value is _MISSING:
            raise RequiredKeyMissingError(key)
        return value

    def has(self, key: str) -> bool:
        """Whether `key` has been set."""
        return key in self._data

    def merge(self, other: Context) -> None:
        """Copy every entry of `other` into this context; `other` is left untouched."""
        for key, value in other.items():
            self.set(key, value)

    def get_result(self, task_id: Any, default: Any = None) -> Any:
        """Return the recorded result of a task that already ran in this context."""
        return self._data.get(result_key(task_id), default)

    def is_skipped(self, task_id: Any) -> bool:
        """Whether a task was skipped by its condition in this context."""
        return bool(self._data.get(skipped_key(task_id), False))

    def keys(self) -> list[str]:
        return list(self._data)

    def items(self) -> list[tuple[str, Any]]:
        return list(self._data.items())

    def to_dict(self) -> dict[str, Any]:
        """Return a shallow copy of the stored entries."""
        return dict(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return build_repr("Context", kwargs=self._data)
