"""Uniqueness validators backed by the owning model's ``search``."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from functional_models.domain.validation import ValidatorContext
from functional_models.orm.contracts import OrmSearch
from functional_models.orm.query import LinkBuilder, QueryBuilder

logger = logging.getLogger(__name__)

UNIQUE_SEARCH_TAKE = 2


class OrmValidatorContext(ValidatorContext):
    """Validation context understood by the ORM validators.

    Attributes:
        no_orm_validation: Skip every validator that queries the datastore.
    """

    no_orm_validation: bool = False


def build_orm_validator_context(*, no_orm_validation: bool = False) -> OrmValidatorContext:
    return OrmValidatorContext(no_orm_validation=no_orm_validation)


def _skip_orm_validation(context: ValidatorContext | None) -> bool:
    return bool(getattr(context, "no_orm_validation", False))


def _unique_search(properties: Sequence[tuple[str, Any]]) -> OrmSearch:
    """Case-insensitive AND of every ``(key, value)``, at most two results."""
    (first_key, first_value), *rest = properties
    linked: LinkBuilder = (
        QueryBuilder()
        .take(UNIQUE_SEARCH_TAKE)
        .property(first_key, first_value, case_sensitive=False)
    )
    for key, value in rest:
        linked = linked.and_().property(key, value, case_sensitive=False)
    return linked.compile()


async def _do_unique_check(
    search: OrmSearch,
    instance: Any,
    instance_data: Mapping[str, Any],
    build_error_message: Callable[[], str],
) -> str | None:
    """Decide whether *search* results conflict with *instance*.

    No results, or results that include the instance's own id, are not a
    conflict. With two or more results that include the instance, the
    other results are not compared with each other.
    """
    model = instance.get_model()
    results = await model.search(search)
    if not results.instances:
        return None
    ids = await asyncio.gather(*(x.get_primary_key() for x in results.instances))
    instance_id = instance_data.get(model.primary_key_name)
    if len(ids) == 1 and ids[0] == instance_id:
        return None
    if len(ids) > 1 and instance_id in ids:
        return None
    logger.debug("Uniqueness conflict on %s for %s", model.name, instance_id)
    return build_error_message()


def unique_together(property_keys: Sequence[str]) -> Callable[..., Any]:
    """Model validator: no other stored instance shares these values.

    Matching is case-insensitive. Skipped when the context sets
    ``no_orm_validation``.
    """
    keys = list(property_keys)
    if not keys:
        msg = "unique_together needs at least one property key"
        raise ValueError(msg)
    if len(keys) > 1:
        message = f"{','.join(keys)} must be unique together. Another instance found."
    else:
        message = f"{keys[0]} must be unique. Another instance found."

    async def _unique_together(
        instance: Any,
        instance_data: Mapping[str, Any],
        context: ValidatorContext | None = None,
    ) -> str | None:
        if _skip_orm_validation(context):
            return None
        search = _unique_search([(key, instance_data.get(key)) for key in keys])
        return await _do_unique_check(search, instance, instance_data, lambda: message)

    return _unique_together


def unique(property_key: str) -> Callable[..., Any]:
    """Property validator: no other stored instance has this value."""
    check = unique_together([property_key])

    async def _unique(
        value: Any,
        instance: Any,
        instance_data: Mapping[str, Any],
        context: ValidatorContext | None = None,
    ) -> str | None:
        return await check(instance, instance_data, context)

    return _unique
