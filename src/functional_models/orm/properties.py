"""Properties that only make sense with a datastore behind the model."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, runtime_checkable

from functional_models.domain.properties import (
    DateProperty,
    Property,
    PropertyConfig,
    as_property_config,
)
from functional_models.domain.types import PropertyType
from functional_models.domain.validation import is_valid_uuid
from functional_models.orm.validation import unique as unique_validator

ForeignKeyDataType = Literal["uuid", "string", "integer"]


@runtime_checkable
class TracksLastModified(Protocol):
    """A property whose value is refreshed every time its instance is saved."""

    def last_modified_value(self) -> Any: ...


class LastModifiedDateProperty(DateProperty):
    """A date property set to the current time (UTC) on every save."""

    __slots__ = ()

    def __init__(
        self,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(config, metadata=metadata, property_type=PropertyType.LAST_MODIFIED)

    def last_modified_value(self) -> datetime:
        return datetime.now(UTC)


class ForeignKeyProperty(Property):
    """The raw id of an instance of another model.

    Unlike :class:`~functional_models.domain.properties.ReferenceProperty`
    the value is never fetched; it is always the id itself.

    Args:
        model: The referenced model, or a zero-argument callable returning it.
        config: Property configuration.
        data_type: ``"uuid"`` (the default) checks the UUID format,
            ``"integer"`` and ``"string"`` check the value type.

    Raises:
        ValueError: If *model* is missing or *data_type* is unknown.
    """

    __slots__ = ("_model", "_data_type")

    def __init__(
        self,
        model: Any,
        config: PropertyConfig | Mapping[str, Any] | None = None,
        *,
        data_type: ForeignKeyDataType = "uuid",
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        if not model:
            msg = "Must include the referenced model"
            raise ValueError(msg)
        resolved = as_property_config(config)
        if data_type == "uuid":
            resolved = resolved.with_validators(is_valid_uuid)
        elif data_type == "integer":
            resolved = resolved.merged(is_integer=True)
        elif data_type == "string":
            resolved = resolved.merged(is_string=True)
        else:
            msg = f"Unknown foreign key data type {data_type!r}"
            raise ValueError(msg)
        self._model = model
        self._data_type = data_type
        super().__init__(PropertyType.FOREIGN_KEY, resolved, metadata=metadata)

    @property
    def data_type(self) -> ForeignKeyDataType:
        return self._data_type

    def get_referenced_model(self) -> Any:
        if callable(self._model):
            return self._model()
        return self._model

    async def get_referenced_id(self, value: Any) -> Any:
        return value


def orm_property_config(
    config: PropertyConfig | Mapping[str, Any] | None = None,
    *,
    unique: str | None = None,
    **kwargs: Any,
) -> PropertyConfig:
    """Build a property config, optionally enforcing a unique stored value.

    Args:
        config: Base configuration.
        unique: Property key that must be unique across stored instances.
        **kwargs: Further :class:`PropertyConfig` fields.
    """
    resolved = as_property_config(config)
    if kwargs:
        resolved = as_property_config({**dict(resolved), **kwargs})
    if unique:
        resolved = resolved.merged(validators=(*resolved.validators, unique_validator(unique)))
    return resolved
