"""Dotted-path value lookup on model instances.

``"address.city"`` resolves the ``address`` getter and then walks nested
mapping keys. For reference properties, ``"author"`` returns the
referenced id, while ``"author.name"`` reads through the fetched
referenced instance.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from functional_models.domain.validation import ModelInstanceLike


def _split_head(path: str) -> tuple[str, str]:
    head, _, tail = path.partition(".")
    return head, tail


def _walk(value: Any, path: str) -> Any:
    """Follow dotted *path* through nested mappings; None when missing."""
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def is_referenced_property(instance: Any, key: str) -> bool:
    return key in instance.references


async def get_value_for_model_instance(instance: Any, path: str) -> Any:
    head, tail = _split_head(path)
    value = await instance.get[head]()
    return _walk(value, tail) if tail else value


async def get_value_for_referenced_model(instance: Any, path: str) -> Any:
    """Resolve *path* whose head is a reference property.

    Raises:
        TypeError: If the reference resolved to a bare id, which happens
            when the property has no fetcher.
    """
    head, tail = _split_head(path)
    if not tail:
        return await instance.references[head]()
    reference = await instance.get[head]()
    if not isinstance(reference, ModelInstanceLike):
        msg = (
            "Value was not an object type. "
            "Likely fetcher was not provided to get referenced model instance."
        )
        raise TypeError(msg)
    nested_head, nested_tail = _split_head(tail)
    nested_value = await reference.get[nested_head]()
    return _walk(nested_value, nested_tail) if nested_tail else nested_value
