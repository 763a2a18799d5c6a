"""Support for host callbacks that may be plain functions or coroutines."""

from __future__ import annotations

import inspect
import typing as typ

T = typ.TypeVar("T")


async def resolve_maybe_awaitable(value: T | typ.Awaitable[T]) -> T:
    """Await ``value`` when it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await typ.cast("typ.Awaitable[T]", value)
    return typ.cast("T", value)
