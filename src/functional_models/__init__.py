"""functional_models — declarative, lazily-resolved data models.

Layers:

- ``domain``: properties, validators, models, serialization (stdlib + pydantic).
- ``orm``: persistence through a pluggable DatastoreAdapter.
- ``config``: settings and structlog logging setup.
"""

from functional_models.domain.models import Model, ModelDefinition, ModelInstance, ModelOptions
from functional_models.domain.properties import (
    ArrayProperty,
    DateProperty,
    ObjectProperty,
    Property,
    PropertyConfig,
    ReferenceProperty,
    UniqueId,
)
from functional_models.errors import ValidationError

__all__ = [
    "ArrayProperty",
    "DateProperty",
    "Model",
    "ModelDefinition",
    "ModelInstance",
    "ModelOptions",
    "ObjectProperty",
    "Property",
    "PropertyConfig",
    "ReferenceProperty",
    "UniqueId",
    "ValidationError",
]
