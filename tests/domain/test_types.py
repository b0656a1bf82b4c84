"""Tests for the property type and query vocabulary enums."""

import pytest

from functional_models.domain.types import (
    DatastoreValueType,
    EqualitySymbol,
    PropertyType,
    SortOrder,
)

ENUM_CASES = [
    (DatastoreValueType, {"string", "number", "date", "object", "boolean"}),
    (EqualitySymbol, {"=", "<", "<=", ">", ">="}),
    (SortOrder, {"asc", "dsc"}),
]


@pytest.mark.parametrize(
    "enum_cls,expected_values",
    ENUM_CASES,
    ids=[cls.__name__ for cls, _ in ENUM_CASES],
)
def test_enum_values(enum_cls: type, expected_values: set[str]) -> None:
    assert {e.value for e in enum_cls} == expected_values
    for member in enum_cls:
        assert member == member.value


def test_property_type_tags_match_class_names() -> None:
    assert PropertyType.FOREIGN_KEY == "ForeignKeyProperty"
    assert PropertyType.LAST_MODIFIED == "LastModifiedDateProperty"
    assert PropertyType("UniqueId") is PropertyType.UNIQUE_ID
