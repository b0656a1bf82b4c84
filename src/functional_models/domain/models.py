"""Models — factories assembling properties into immutable instances.

A :class:`Model` is built from a :class:`ModelDefinition`. A primary-key
property (``UniqueId(required=True)`` unless configured otherwise) is
injected ahead of the declared properties; declaring a property under the
primary key name overrides it.

``model.create(data)`` produces a :class:`ModelInstance` whose getters,
serialized form, primary key, and validation results are each computed at
most once. Instances are never mutated after creation.

The model and its instances refer to each other through an owner cell:
the cell is allocated before any method closure is built and filled with
the finished model at the end of construction, so instance and model
methods can call back into the model that produced them.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from functional_models.domain.lazy import LazyValue
from functional_models.domain.properties import Property, ReferencingProperty, UniqueId
from functional_models.domain.serialization import to_obj
from functional_models.domain.validation import (
    ModelErrors,
    ValidatorContext,
    create_model_validator,
)

DEFAULT_PRIMARY_KEY = "id"


# ---------------------------------------------------------------------------
# Definition and options
# ---------------------------------------------------------------------------


class ModelDefinition(BaseModel):
    """Declarative description of a model.

    Attributes:
        name: Model name, used in error messages and reference checks.
        namespace: Optional grouping for datastores that partition by it.
        properties: Property name to :class:`Property`.
        primary_key_name: Property holding the primary key.
        model_validators: ``(instance, instance_data, context) -> str | None``
            checks whose messages are merged under ``overall``.
        instance_methods: Exposed on instances; called as
            ``method(instance, *args)``.
        model_methods: Exposed on the model; called as
            ``method(model, *args)``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, protected_namespaces=())

    name: str
    namespace: str | None = None
    properties: dict[str, Property] = Field(default_factory=dict)
    primary_key_name: str = DEFAULT_PRIMARY_KEY
    model_validators: tuple[Callable[..., Any], ...] = ()
    instance_methods: dict[str, Callable[..., Any]] = Field(default_factory=dict)
    model_methods: dict[str, Callable[..., Any]] = Field(default_factory=dict)


def _default_primary_key_property() -> Property:
    return UniqueId({"required": True})


class ModelOptions(BaseModel):
    """Factory options that are not part of the data description.

    Attributes:
        instance_created_callback: One callable or a sequence of callables,
            each called with every newly created instance.
        primary_key_property: Factory for the injected primary-key property.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    instance_created_callback: Callable[..., Any] | tuple[Callable[..., Any], ...] | None = None
    primary_key_property: Callable[[], Property] = _default_primary_key_property

    def instance_created_callbacks(self) -> tuple[Callable[..., Any], ...]:
        callback = self.instance_created_callback
        if callback is None:
            return ()
        if callable(callback):
            return (callback,)
        return tuple(callback)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


T = TypeVar("T")


class AccessorMap(Mapping[str, T], Generic[T]):
    """Read-only mapping that also allows attribute access.

    Names shadowed by mapping methods (``get``, ``items``, ...) are only
    reachable by item access.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, T]) -> None:
        self._items = dict(items)

    def __getitem__(self, key: str) -> T:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getattr__(self, name: str) -> T:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._items[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"AccessorMap({list(self._items)!r})"


class _OwnerCell:
    """Forward reference to a model, filled once construction finishes."""

    __slots__ = ("_owner",)

    def __init__(self) -> None:
        self._owner: Model | None = None

    def fill(self, owner: Model) -> None:
        if self._owner is not None:
            msg = "Model owner cell is already filled"
            raise RuntimeError(msg)
        self._owner = owner

    def get(self) -> Model:
        if self._owner is None:
            msg = "Model is still under construction"
            raise RuntimeError(msg)
        return self._owner


def _public_names(cls: type) -> frozenset[str]:
    return frozenset(name for name in dir(cls) if not name.startswith("_"))


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


class ModelInstance:
    """One realized record.

    Attributes:
        get: Property name to async getter.
        validators: Property name to async property validator.
        references: Reference property name to async referenced-id resolver.

    Instance methods from the definition are available as attributes.
    """

    __slots__ = (
        "_cell",
        "_primary_key_name",
        "_methods",
        "_to_obj",
        "_model_validator",
        "_validations",
        "get",
        "validators",
        "references",
    )

    def __init__(
        self,
        cell: _OwnerCell,
        *,
        getters: Mapping[str, Callable[[], Any]],
        validators: Mapping[str, Callable[..., Any]],
        references: Mapping[str, Callable[[], Any]],
        instance_methods: Mapping[str, Callable[..., Any]],
        model_validators: tuple[Callable[..., Any], ...],
        primary_key_name: str,
    ) -> None:
        self._cell = cell
        self._primary_key_name = primary_key_name
        self.get: AccessorMap[Callable[[], Any]] = AccessorMap(getters)
        self.validators: AccessorMap[Callable[..., Any]] = AccessorMap(validators)
        self.references: AccessorMap[Callable[[], Any]] = AccessorMap(references)
        self._to_obj = LazyValue(to_obj(getters))
        self._model_validator = create_model_validator(validators, model_validators)
        self._validations: list[tuple[ValidatorContext, LazyValue]] = []
        self._methods = {
            name: functools.partial(method, self) for name, method in instance_methods.items()
        }

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._methods[name]
        except KeyError:
            msg = f"{type(self).__name__!r} object has no attribute {name!r}"
            raise AttributeError(msg) from None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} of {self._cell.get().name}>"

    def get_model(self) -> Model:
        return self._cell.get()

    async def get_primary_key(self) -> Any:
        return await self.get[self._primary_key_name]()

    async def to_obj(self) -> dict[str, Any]:
        """Serialize to plain data. Computed once and shared."""
        return await self._to_obj()

    async def validate(self, context: ValidatorContext | None = None) -> ModelErrors:
        """Validate every property and model validator.

        Returns a dict holding only failing keys (``overall`` for model
        validators); an empty dict means the instance is valid. Results
        are cached per context.
        """
        context = context or ValidatorContext()
        for seen, cached in self._validations:
            if seen == context:
                return await cached()
        cached = LazyValue(functools.partial(self._model_validator, self, context))
        self._validations.append((context, cached))
        return await cached()


# ---------------------------------------------------------------------------
# Model factory
# ---------------------------------------------------------------------------


class Model:
    """Factory producing :class:`ModelInstance` objects.

    Args:
        definition: A :class:`ModelDefinition` (or equivalent mapping).
        options: Factory options.

    Raises:
        ValueError: If an instance or model method name collides with a
            framework attribute.
    """

    instance_class: ClassVar[type[ModelInstance]] = ModelInstance

    def __init__(
        self,
        definition: ModelDefinition | Mapping[str, Any],
        options: ModelOptions | None = None,
    ) -> None:
        self._cell = _OwnerCell()
        if not isinstance(definition, ModelDefinition):
            definition = ModelDefinition.model_validate(dict(definition))
        self._options = options or ModelOptions()

        primary_key = definition.primary_key_name
        properties = {
            primary_key: self._options.primary_key_property(),
            **definition.properties,
        }
        self._definition = definition.model_copy(update={"properties": properties})
        self._properties = MappingProxyType(properties)

        self._check_method_names()
        cell = self._cell
        self._model_methods = {
            name: self._bind_model_method(cell, method)
            for name, method in definition.model_methods.items()
        }
        cell.fill(self)

    @staticmethod
    def _bind_model_method(cell: _OwnerCell, method: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(method)
        def _model_method(*args: Any, **kwargs: Any) -> Any:
            return method(cell.get(), *args, **kwargs)

        return _model_method

    def _check_method_names(self) -> None:
        protected_instance = _public_names(self.instance_class)
        for name in self._definition.instance_methods:
            if name in protected_instance or name.startswith("_"):
                msg = f"Instance method {name!r} collides with a protected name"
                raise ValueError(msg)
        protected_model = _public_names(type(self))
        for name in self._definition.model_methods:
            if name in protected_model or name.startswith("_"):
                msg = f"Model method {name!r} collides with a protected name"
                raise ValueError(msg)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._model_methods[name]
        except KeyError:
            msg = f"{type(self).__name__!r} object has no attribute {name!r}"
            raise AttributeError(msg) from None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def namespace(self) -> str | None:
        return self._definition.namespace

    @property
    def definition(self) -> ModelDefinition:
        """The definition, including the injected primary-key property."""
        return self._definition

    @property
    def options(self) -> ModelOptions:
        return self._options

    @property
    def properties(self) -> Mapping[str, Property]:
        return self._properties

    @property
    def primary_key_name(self) -> str:
        return self._definition.primary_key_name

    def create(self, data: Mapping[str, Any] | None = None) -> ModelInstance:
        """Create an instance from raw *data*. Unknown keys are ignored."""
        values = dict(data or {})
        getters: dict[str, Callable[[], Any]] = {}
        validators: dict[str, Callable[..., Any]] = {}
        references: dict[str, Callable[[], Any]] = {}
        for key, prop in self._properties.items():
            raw_value = values.get(key)
            getter = prop.create_getter(raw_value)
            getters[key] = getter
            validators[key] = prop.get_validator(getter)
            if isinstance(prop, ReferencingProperty):
                references[key] = LazyValue(functools.partial(prop.get_referenced_id, raw_value))

        instance = self.instance_class(
            self._cell,
            getters=getters,
            validators=validators,
            references=references,
            instance_methods=self._definition.instance_methods,
            model_validators=self._definition.model_validators,
            primary_key_name=self.primary_key_name,
        )
        for callback in self._options.instance_created_callbacks():
            callback(instance)
        return instance
