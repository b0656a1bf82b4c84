"""Memoized async values guarded by an exclusive lock.

Every memoized operation on a model instance (property resolution,
``to_obj``, primary key) goes through :class:`LazyValue`. Concurrent
callers that arrive before the first computation finishes wait on the
same lock and then observe its single result, so side-effecting
computations such as id generation run exactly once.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any


async def resolve(value: Any) -> Any:
    """Await *value* if it is awaitable, else return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class LazyValue:
    """Compute ``method(*args)`` at most once; share the result.

    The method may be sync or async. A raised exception is not cached:
    the next caller retries the computation.
    """

    __slots__ = ("_method", "_lock", "_called", "_value")

    def __init__(self, method: Callable[..., Any | Awaitable[Any]]) -> None:
        self._method = method
        self._lock = asyncio.Lock()
        self._called = False
        self._value: Any = None

    @property
    def called(self) -> bool:
        return self._called

    async def __call__(self, *args: Any) -> Any:
        if self._called:
            return self._value
        async with self._lock:
            if not self._called:
                self._value = await resolve(self._method(*args))
                self._called = True
        return self._value


def lazy_value(method: Callable[..., Any | Awaitable[Any]]) -> LazyValue:
    """Wrap *method* in a :class:`LazyValue`."""
    return LazyValue(method)
