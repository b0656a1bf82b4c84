"""Properties — reusable field descriptors producing getters and validators.

A :class:`Property` is built once, at model definition time, and reused by
every instance of the model. For each instance it produces:

- a *getter* (``create_getter``): an async, memoized accessor resolving the
  raw input value into the property's value;
- a *validator* (``get_validator``): an async check of that value returning
  a list of error messages.

Getter resolution order, first match wins:

1. the configured constant ``value`` (the raw value is ignored);
2. ``default_value`` when the raw value is None;
3. ``lazy_load_method(raw_value)``;
4. ``raw_value()`` when the raw value is callable;
5. the raw value itself.

The ``value_selector`` post-processes every result.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from functional_models.domain.ids import generate_unique_id
from functional_models.domain.lazy import LazyValue, resolve
from functional_models.domain.types import PropertyType
from functional_models.domain.validation import (
    ModelInstanceLike,
    ValidatorContext,
    create_property_validator,
    is_object,
    reference_type_match,
)

logger = logging.getLogger(__name__)

Getter = Callable[[], Any]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class PropertyConfig(BaseModel):
    """Configuration for a :class:`Property`.

    Unset values are None (or empty); a constant ``value`` of None is the
    same as no constant. ``extra`` carries free-form settings for custom
    property types.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: str | None = None
    value: Any = None
    default_value: Any = None
    choices: tuple[Any, ...] = ()
    lazy_load_method: Callable[..., Any] | None = None
    # Checked by Property so that a bad selector fails with TypeError.
    value_selector: Any = None
    validators: tuple[Callable[..., Any], ...] = ()
    max_length: int | None = None
    min_length: int | None = None
    max_value: int | float | None = None
    min_value: int | float | None = None
    auto_now: bool = False
    fetcher: Callable[..., Any] | None = None
    required: bool = False
    is_integer: bool = False
    is_number: bool = False
    is_string: bool = False
    is_array: bool = False
    is_boolean: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)

    def merged(self, **updates: Any) -> PropertyConfig:
        """Return a copy with *updates* applied."""
        return self.model_copy(update=updates)

    def with_validators(self, *validators: Callable[..., Any]) -> PropertyConfig:
        """Return a copy with *validators* placed ahead of the configured ones."""
        return self.merged(validators=(*validators, *self.validators))


def as_property_config(config: PropertyConfig | Mapping[str, Any] | None) -> PropertyConfig:
    """Accept a PropertyConfig, a plain mapping, or None."""
    if config is None:
        return PropertyConfig()
    if isinstance(config, PropertyConfig):
        return config
    return PropertyConfig.model_validate(dict(config))


def _identity(value: Any) -> Any:
    return value


# ---------------------------------------------------------------------------
# Base property
# ---------------------------------------------------------------------------


class Property:
    """A typed, validated field descriptor.

    Args:
        property_type: Type tag. ``config.type`` overrides it.
        config: A :class:`PropertyConfig` or an equivalent mapping.
        metadata: Additional read-only information about the property.

    Raises:
        ValueError: If no property type is given.
        TypeError: If ``value_selector`` is not callable.
    """

    __slots__ = ("_property_type", "_config", "_value_selector", "_metadata")

    def __init__(
        self,
        property_type: str | None,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        resolved = as_property_config(config)
        resolved_type = resolved.type or property_type
        if not resolved_type:
            msg = "Property type must be provided."
            raise ValueError(msg)
        value_selector = (
            resolved.value_selector if resolved.value_selector is not None else _identity
        )
        if not callable(value_selector):
            msg = "value_selector must be a function"
            raise TypeError(msg)
        self._property_type = str(resolved_type)
        self._config = resolved
        self._value_selector: Callable[[Any], Any] = value_selector
        self._metadata = MappingProxyType(dict(metadata or {}))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(property_type={self._property_type!r})"

    @property
    def property_type(self) -> str:
        return self._property_type

    @property
    def config(self) -> PropertyConfig:
        return self._config

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._metadata

    @property
    def choices(self) -> list[Any]:
        return list(self._config.choices)

    @property
    def default_value(self) -> Any:
        return self._config.default_value

    @property
    def constant_value(self) -> Any:
        return self._config.value

    def create_getter(self, raw_value: Any = None) -> Getter:
        """Build a memoized async accessor for *raw_value*."""
        config = self._config
        select = self._value_selector

        if config.value is not None:
            constant = config.value

            def method() -> Any:
                return constant

        elif config.default_value is not None and raw_value is None:
            default = config.default_value

            def method() -> Any:
                # each getter gets its own copy of a mutable default
                return copy.deepcopy(default)

        elif config.lazy_load_method is not None:
            lazy_load = config.lazy_load_method

            def method() -> Any:
                return lazy_load(raw_value)

        elif callable(raw_value):
            method = raw_value

        else:

            def method() -> Any:
                return raw_value

        async def _resolve_value() -> Any:
            return select(await resolve(method()))

        return LazyValue(_resolve_value)

    def get_validator(self, getter: Getter) -> Callable[..., Any]:
        """Bind this property's validation rules to *getter*.

        Returns ``async validator(instance, instance_data, context=None)``.
        """
        validator = create_property_validator(self._config)

        async def _property_validator(
            instance: Any,
            instance_data: Mapping[str, Any],
            context: ValidatorContext | None = None,
        ) -> list[str]:
            value = await getter()
            return await validator(value, instance, instance_data, context or ValidatorContext())

        return _property_validator


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


def _generate_if_empty(value: Any) -> Any:
    if not value:
        return generate_unique_id()
    return value


class UniqueId(Property):
    """A primary-key style property that generates a UUID when empty."""

    __slots__ = ()

    def __init__(
        self,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        resolved = as_property_config(config).merged(lazy_load_method=_generate_if_empty)
        super().__init__(PropertyType.UNIQUE_ID, resolved, metadata=metadata)


class DateProperty(Property):
    """A date/datetime property. ``auto_now`` fills empty values with now (UTC)."""

    __slots__ = ()

    def __init__(
        self,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        metadata: Mapping[str, Any] | None = None,
        property_type: str = PropertyType.DATE,
    ) -> None:
        resolved = as_property_config(config)
        auto_now = resolved.auto_now

        def _load_date(value: Any) -> Any:
            if not value and auto_now:
                return datetime.now(UTC)
            return value

        super().__init__(
            property_type, resolved.merged(lazy_load_method=_load_date), metadata=metadata
        )


class ArrayProperty(Property):
    """A list property, defaulting to an empty list."""

    __slots__ = ()

    def __init__(
        self,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        resolved = as_property_config(config)
        updates: dict[str, Any] = {"is_array": True}
        if resolved.default_value is None:
            updates["default_value"] = []
        super().__init__(PropertyType.ARRAY, resolved.merged(**updates), metadata=metadata)


class ObjectProperty(Property):
    """A mapping-valued property."""

    __slots__ = ()

    def __init__(
        self,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        resolved = as_property_config(config).with_validators(is_object)
        super().__init__(PropertyType.OBJECT, resolved, metadata=metadata)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


@runtime_checkable
class ReferencingProperty(Protocol):
    """A property whose value points at an instance of another model."""

    async def get_referenced_id(self, value: Any) -> Any: ...

    def get_referenced_model(self) -> Any: ...


class ModelReference:
    """A referenced instance that serializes to the id it was referenced by.

    Attribute access is delegated to the wrapped instance, so
    ``await reference.get.name()`` reads the referenced record while
    ``await reference.to_obj()`` returns only its id.
    """

    __slots__ = ("_instance", "_referenced_id")

    def __init__(self, instance: ModelInstanceLike, referenced_id: Any) -> None:
        self._instance = instance
        self._referenced_id = referenced_id

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._instance, name)

    def __repr__(self) -> str:
        return f"ModelReference({self._referenced_id!r})"

    @property
    def instance(self) -> ModelInstanceLike:
        return self._instance

    @property
    def referenced_id(self) -> Any:
        return self._referenced_id

    def get_model(self) -> Any:
        return self._instance.get_model()

    async def get_primary_key(self) -> Any:
        return await self._instance.get_primary_key()

    async def to_obj(self) -> Any:
        return self._referenced_id


class ReferenceProperty(Property):
    """A property referencing an instance of another model.

    Args:
        model: The referenced model, or a zero-argument callable returning
            it (for forward and self references).
        config: Property configuration. ``config.fetcher`` is an async
            ``(model, id) -> record | instance | None`` used to hydrate
            the reference.

    Raises:
        ValueError: If *model* is missing.
    """

    __slots__ = ("_model",)

    def __init__(
        self,
        model: Any,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        if not model:
            msg = "Must include the referenced model"
            raise ValueError(msg)
        self._model = model
        resolved = (
            as_property_config(config)
            .with_validators(reference_type_match(model))
            .merged(lazy_load_method=self._load_reference)
        )
        super().__init__(PropertyType.REFERENCE, resolved, metadata=metadata)

    def get_referenced_model(self) -> Any:
        """Resolve the referenced model (calling it when it is a thunk)."""
        # Models are never callable, so a callable here is a thunk.
        if callable(self._model):
            return self._model()
        return self._model

    async def get_referenced_id(self, value: Any) -> Any:
        """Extract the referenced id from a raw id, a record, or an instance."""
        if value is None:
            return None
        if isinstance(value, ModelInstanceLike):
            return await value.get_primary_key()
        if isinstance(value, Mapping):
            primary_key = self.get_referenced_model().primary_key_name
            if value.get(primary_key):
                return value[primary_key]
        return value

    async def _load_reference(self, value: Any) -> Any:
        if isinstance(value, ModelInstanceLike):
            return ModelReference(value, await self.get_referenced_id(value))
        referenced_id = await self.get_referenced_id(value)
        fetcher = self._config.fetcher
        if fetcher is None:
            return referenced_id
        model = self.get_referenced_model()
        fetched = await resolve(fetcher(model, referenced_id))
        if fetched is None:
            logger.debug("Reference %s:%s not found by fetcher", model.name, referenced_id)
            return referenced_id
        instance = fetched if isinstance(fetched, ModelInstanceLike) else model.create(fetched)
        return ModelReference(instance, referenced_id)
