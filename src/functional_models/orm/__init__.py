"""ORM layer — persistence, query construction, and uniqueness validation.

The ORM layer depends on the domain layer and talks to storage only
through the DatastoreAdapter protocol. It never imports a storage driver.
"""

from functional_models.orm.contracts import DatastoreAdapter, OrmSearch, OrmSearchResult
from functional_models.orm.models import (
    Orm,
    OrmModel,
    OrmModelDefinition,
    OrmModelInstance,
    OrmModelOptions,
    create_orm,
)
from functional_models.orm.properties import (
    ForeignKeyProperty,
    LastModifiedDateProperty,
    orm_property_config,
)
from functional_models.orm.query import QueryBuilder, query_builder, threeitize
from functional_models.orm.validation import (
    OrmValidatorContext,
    build_orm_validator_context,
    unique,
    unique_together,
)

__all__ = [
    "DatastoreAdapter",
    "ForeignKeyProperty",
    "LastModifiedDateProperty",
    "Orm",
    "OrmModel",
    "OrmModelDefinition",
    "OrmModelInstance",
    "OrmModelOptions",
    "OrmSearch",
    "OrmSearchResult",
    "OrmValidatorContext",
    "QueryBuilder",
    "build_orm_validator_context",
    "create_orm",
    "orm_property_config",
    "query_builder",
    "threeitize",
    "unique",
    "unique_together",
]
