"""Persistence on top of models.

``Orm(adapter).model(definition)`` builds an :class:`OrmModel`: a regular
:class:`~functional_models.domain.models.Model` whose instances can
``save()`` and ``delete()`` themselves and whose model exposes retrieve,
search, count and bulk operations against the datastore adapter.

Saving never mutates an instance. It refreshes any last-modified property
by rebuilding the instance, validates the result, hands it to the adapter,
and returns a new instance built from the record the adapter returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from functional_models.config.settings import get_settings
from functional_models.domain.lazy import resolve
from functional_models.domain.models import Model, ModelDefinition, ModelInstance, ModelOptions
from functional_models.domain.validation import ModelInstanceLike, ValidatorContext
from functional_models.errors import ValidationError
from functional_models.orm.contracts import (
    DatastoreAdapter,
    OrmSearch,
    OrmSearchResult,
    PrimaryKey,
    records_of,
)
from functional_models.orm.properties import TracksLastModified
from functional_models.orm.query import QueryBuilder, validate_orm_search
from functional_models.orm.validation import unique_together
from functional_models.telemetry import get_current_span, trace_span, traced

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Definition and options
# ---------------------------------------------------------------------------


class OrmModelDefinition(ModelDefinition):
    """A model definition with datastore-level constraints.

    Attributes:
        unique_together: Property keys whose combined values must not be
            shared with another stored instance.
    """

    unique_together: tuple[str, ...] | None = None


class OrmModelOptions(ModelOptions):
    """Model options with persistence overrides.

    Attributes:
        save: ``(default_save, instance) -> saved instance``, replacing
            ``instance.save()``. ``default_save(instance)`` is the model's save.
        delete: ``(default_delete, instance) -> None``, replacing
            ``instance.delete()``. ``default_delete(primary_key)`` is the
            model's delete.
    """

    save: Callable[..., Any] | None = None
    delete: Callable[..., Any] | None = None


def _as_orm_definition(definition: ModelDefinition | Mapping[str, Any]) -> OrmModelDefinition:
    if isinstance(definition, OrmModelDefinition):
        parsed = definition
    elif isinstance(definition, ModelDefinition):
        # only explicitly set fields, so the primary key default still applies
        parsed = OrmModelDefinition.model_validate(
            {name: getattr(definition, name) for name in definition.model_fields_set}
        )
    else:
        parsed = OrmModelDefinition.model_validate(dict(definition))

    updates: dict[str, Any] = {}
    if "primary_key_name" not in parsed.model_fields_set:
        updates["primary_key_name"] = get_settings().primary_key_name
    if parsed.unique_together:
        updates["model_validators"] = (
            *parsed.model_validators,
            unique_together(parsed.unique_together),
        )
    return parsed.model_copy(update=updates) if updates else parsed


def _as_orm_options(options: ModelOptions | None) -> OrmModelOptions:
    if options is None:
        return OrmModelOptions()
    if isinstance(options, OrmModelOptions):
        return options
    return OrmModelOptions(**dict(options))


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


class OrmModelInstance(ModelInstance):
    """A model instance that can persist itself."""

    __slots__ = ()

    async def save(self) -> OrmModelInstance:
        """Save through the model (or the ``save`` override) and return the stored instance."""
        model = self.get_model()
        override = model.options.save
        if override is not None:
            return await resolve(override(model.save, self))
        return await model.save(self)

    async def delete(self) -> None:
        """Delete through the model (or the ``delete`` override)."""
        model = self.get_model()
        override = model.options.delete
        if override is not None:
            await resolve(override(model.delete, self))
            return
        await model.delete(await self.get_primary_key())


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class OrmModel(Model):
    """A model bound to a datastore adapter.

    Args:
        definition: An :class:`OrmModelDefinition` (or a plain definition
            or mapping). Without an explicit ``primary_key_name`` the
            configured default is used.
        datastore_adapter: Storage backend.
        options: Factory options, including ``save``/``delete`` overrides.
    """

    instance_class = OrmModelInstance

    def __init__(
        self,
        definition: ModelDefinition | Mapping[str, Any],
        datastore_adapter: DatastoreAdapter,
        options: ModelOptions | None = None,
    ) -> None:
        self._adapter = datastore_adapter
        super().__init__(_as_orm_definition(definition), _as_orm_options(options))

    @property
    def datastore_adapter(self) -> DatastoreAdapter:
        return self._adapter

    async def _refresh_last_modified(self, instance: ModelInstance) -> ModelInstance:
        for key, prop in self.properties.items():
            if isinstance(prop, TracksLastModified):
                data = await instance.to_obj()
                return self.create({**data, key: prop.last_modified_value()})
        return instance

    @traced
    async def save(
        self,
        instance: ModelInstance,
        context: ValidatorContext | None = None,
    ) -> OrmModelInstance:
        """Validate and store *instance*; return the instance built from the stored record.

        Raises:
            ValidationError: If the instance does not pass validation.
        """
        to_save = await self._refresh_last_modified(instance)
        with trace_span("validate"):
            errors = await to_save.validate(context)
        if errors:
            logger.debug("%s failed validation on keys %s", self.name, sorted(errors))
            raise ValidationError(self.name, errors)
        with trace_span("adapter.save"):
            record = await self._adapter.save(to_save)
        logger.debug("Saved %s", self.name)
        return self.create(record)

    @traced
    async def delete(self, primary_key: PrimaryKey) -> None:
        await self._adapter.delete(self, primary_key)
        logger.debug("Deleted %s:%s", self.name, primary_key)

    @traced
    async def retrieve(self, primary_key: PrimaryKey) -> OrmModelInstance | None:
        """Load one instance; None when the adapter has no such record."""
        record = await self._adapter.retrieve(self, primary_key)
        if not record:
            logger.debug("%s:%s not found", self.name, primary_key)
            return None
        return self.create(record)

    @traced
    async def search(self, search: OrmSearch) -> OrmSearchResult:
        """Run *search* and build instances from the returned records.

        Raises:
            ValueError: If the search's token list is malformed.
        """
        validate_orm_search(search)
        with trace_span("adapter.search") as span:
            result = await self._adapter.search(self, search)
            records, page = records_of(result)
            if span is not None:
                span.annotate("records", len(records))
        logger.debug("Search on %s returned %d records", self.name, len(records))
        return OrmSearchResult(instances=[self.create(r) for r in records], page=page)

    async def search_one(self, search: OrmSearch) -> OrmModelInstance | None:
        """Run *search* limited to one result; return it or None."""
        result = await self.search(search.model_copy(update={"take": 1}))
        if not result.instances:
            return None
        return result.instances[0]

    @traced
    async def create_and_save(
        self, data: ModelInstance | Mapping[str, Any]
    ) -> OrmModelInstance:
        """Create and store in one step, using the adapter's fast path when it has one."""
        instance = data if isinstance(data, ModelInstanceLike) else self.create(data)
        if hasattr(self._adapter, "create_and_save"):
            record = await self._adapter.create_and_save(instance)
            return self.create(record)
        return await self.create(await instance.to_obj()).save()

    @traced
    async def bulk_insert(self, instances: Iterable[OrmModelInstance]) -> None:
        to_insert = list(instances)
        if hasattr(self._adapter, "bulk_insert"):
            await self._adapter.bulk_insert(self, to_insert)
            return
        await asyncio.gather(*(instance.save() for instance in to_insert))

    @traced
    async def bulk_delete(
        self, keys_or_instances: Iterable[PrimaryKey | ModelInstance]
    ) -> None:
        """Delete by primary keys or by instances."""
        ids = await asyncio.gather(
            *(
                resolve(x.get_primary_key() if isinstance(x, ModelInstanceLike) else x)
                for x in keys_or_instances
            )
        )
        if hasattr(self._adapter, "bulk_delete"):
            await self._adapter.bulk_delete(self, list(ids))
            return
        await asyncio.gather(*(self.delete(primary_key) for primary_key in ids))

    @traced
    async def count(self) -> int:
        """Count stored instances.

        Without an adapter ``count``, pages through every record until the
        adapter returns no page token or repeats the previous one.
        """
        if hasattr(self._adapter, "count"):
            return await self._adapter.count(self)
        span = get_current_span()
        total = 0
        pages = 0
        page = None
        while True:
            result = await self.search(QueryBuilder().pagination(page).compile())
            total += len(result.instances)
            pages += 1
            if not result.page or result.page == page:
                if span is not None:
                    span.annotate("pages", pages)
                return total
            page = result.page


# ---------------------------------------------------------------------------
# Orm
# ---------------------------------------------------------------------------


class Orm:
    """Entry point tying models to one datastore adapter.

    Raises:
        ValueError: If no adapter is given.
    """

    def __init__(self, datastore_adapter: DatastoreAdapter) -> None:
        if datastore_adapter is None:
            msg = "Must include a datastore_adapter"
            raise ValueError(msg)
        self._adapter = datastore_adapter

    @property
    def datastore_adapter(self) -> DatastoreAdapter:
        return self._adapter

    def model(
        self,
        definition: ModelDefinition | Mapping[str, Any],
        options: ModelOptions | None = None,
    ) -> OrmModel:
        return OrmModel(definition, self._adapter, options)

    async def retrieve(self, model: Model, primary_key: PrimaryKey) -> ModelInstance | None:
        record = await self._adapter.retrieve(model, primary_key)
        if not record:
            return None
        return model.create(record)

    async def fetcher(self, model: Model, primary_key: PrimaryKey) -> ModelInstance | None:
        """Reference fetcher; pass as ``fetcher=orm.fetcher`` on reference properties."""
        return await self.retrieve(model, primary_key)


def create_orm(datastore_adapter: DatastoreAdapter) -> Orm:
    return Orm(datastore_adapter)
