"""Shared utility helpers for flowlite."""

from __future__ import annotations

import inspect
import reprlib
from collections.abc import Mapping
from typing import Any


def build_repr(class_name: str, *leading: str, kwargs: Mapping[str, Any] | None = None) -> str:
    """Build a concise repr string: ``ClassName(leading…, k=v, …)``."""
    parts = list(leading)
    if kwargs:
        parts.extend(f"{k}={reprlib.Repr().repr(v)}" for k, v in kwargs.items())
    return f"{class_name}({', '.join(parts)})"


async def maybe_await(func: Any, *args: Any) -> Any:
    """Call a sync or async callable and return its (awaited) result."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def callable_name(func: Any) -> str:
    """Best-effort display name for a callable, used for default task names."""
    name = getattr(func, "__name__", None)
    if not name or name == "<lambda>":
        return "unnamed_task"
    return name
