"""Serialization — resolve an instance's getters into plain data.

Output values are JSON-able: nested instances collapse to their own
``to_obj()`` output (references collapse to their id), dates become
ISO-8601 text, and callables are called until a value comes out.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from functional_models.domain.lazy import resolve


async def get_value(value: Any) -> Any:
    """Normalize one resolved getter value into plain data."""
    if value is None:
        return None
    if callable(value):
        return await get_value(await resolve(value()))
    to_obj = getattr(value, "to_obj", None)
    if callable(to_obj):
        return await get_value(await to_obj())
    if isinstance(value, date):
        return value.isoformat()
    return value


def to_obj(getters: Mapping[str, Callable[[], Any]]) -> Callable[[], Any]:
    """Build ``async () -> dict`` serializing every getter concurrently.

    Getters never depend on each other, so they are resolved in any order.
    """
    keys = list(getters)

    async def _to_obj() -> dict[str, Any]:
        values = await asyncio.gather(*(get_value(getters[key]) for key in keys))
        return dict(zip(keys, values, strict=True))

    return _to_obj
