"""Property types and query vocabulary enums."""

from __future__ import annotations

from enum import StrEnum


class PropertyType(StrEnum):
    """Type tags carried by the built-in property variants."""

    UNIQUE_ID = "UniqueId"
    DATE = "DateProperty"
    ARRAY = "ArrayProperty"
    REFERENCE = "ReferenceProperty"
    OBJECT = "ObjectProperty"
    FOREIGN_KEY = "ForeignKeyProperty"
    LAST_MODIFIED = "LastModifiedDateProperty"


class DatastoreValueType(StrEnum):
    """How a datastore should interpret a queried value."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    OBJECT = "object"
    BOOLEAN = "boolean"


class EqualitySymbol(StrEnum):
    """Comparison operators allowed in a property match."""

    EQ = "="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="


class SortOrder(StrEnum):
    """Sort directions."""

    ASC = "asc"
    DSC = "dsc"
