"""Typed contracts between the ORM layer and datastore adapters.

Query tokens and compiled searches are frozen pydantic models so that a
search handed to an adapter can never be altered behind the builder's back.
The :class:`DatastoreAdapter` protocol is the whole surface an adapter has
to implement; optional fast paths are detected by attribute presence.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from functional_models.domain.types import DatastoreValueType, EqualitySymbol, SortOrder

if TYPE_CHECKING:
    from functional_models.domain.models import Model, ModelInstance

LinkToken = Literal["AND", "OR"]
PrimaryKey = str | int


# ---------------------------------------------------------------------------
# Query tokens
# ---------------------------------------------------------------------------


class MatchOptions(BaseModel):
    """Text matching modifiers for a property match. None means unset."""

    model_config = ConfigDict(frozen=True)

    case_sensitive: bool | None = None
    starts_with: bool | None = None
    ends_with: bool | None = None


class PropertyQuery(BaseModel):
    """Match a property against a value."""

    model_config = ConfigDict(frozen=True)

    type: Literal["property"] = "property"
    key: str
    value: Any = None
    value_type: DatastoreValueType = DatastoreValueType.STRING
    equality_symbol: EqualitySymbol = EqualitySymbol.EQ
    options: MatchOptions = Field(default_factory=MatchOptions)


class DatesBeforeQuery(BaseModel):
    """Match dates before (or equal to) a point in time."""

    model_config = ConfigDict(frozen=True)

    type: Literal["datesBefore"] = "datesBefore"
    key: str
    date: str
    value_type: DatastoreValueType = DatastoreValueType.DATE
    equal_to_and_before: bool = True


class DatesAfterQuery(BaseModel):
    """Match dates after (or equal to) a point in time."""

    model_config = ConfigDict(frozen=True)

    type: Literal["datesAfter"] = "datesAfter"
    key: str
    date: str
    value_type: DatastoreValueType = DatastoreValueType.DATE
    equal_to_and_after: bool = True


Query = PropertyQuery | DatesBeforeQuery | DatesAfterQuery
# A token is a Query, a LinkToken, or a nested list of tokens.
QueryToken = Any


class SortStatement(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    order: SortOrder = SortOrder.ASC


# ---------------------------------------------------------------------------
# Searches
# ---------------------------------------------------------------------------


class OrmSearch(BaseModel):
    """A compiled search.

    ``take``, ``sort`` and ``page`` are only present when they were set;
    check ``model_fields_set`` or use :meth:`to_dict` rather than testing
    for None.
    """

    model_config = ConfigDict(frozen=True)

    query: list[QueryToken] = Field(default_factory=list)
    take: int | None = None
    sort: SortStatement | None = None
    page: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form, with unset keys omitted."""
        return self.model_dump(exclude_unset=True)


class OrmSearchResult(BaseModel):
    """Instances returned by a model search, plus the next page token."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    instances: list[Any] = Field(default_factory=list)
    page: Any = None


# ---------------------------------------------------------------------------
# Datastore adapter
# ---------------------------------------------------------------------------


@runtime_checkable
class DatastoreAdapter(Protocol):
    """Storage backend contract.

    Records are plain data: str, int, float, bool, None, dicts and lists,
    with dates as ISO-8601 text. ``search`` returns a mapping shaped like
    ``{"instances": [record, ...], "page": token}``; ``page`` is optional.

    Adapters may also provide these optional fast paths::

        async def bulk_insert(self, model, instances) -> None
        async def bulk_delete(self, model, ids) -> None
        async def count(self, model) -> int
        async def create_and_save(self, instance) -> record
    """

    async def save(self, instance: ModelInstance) -> dict[str, Any]: ...

    async def delete(self, model: Model, primary_key: PrimaryKey) -> None: ...

    async def retrieve(self, model: Model, primary_key: PrimaryKey) -> dict[str, Any] | None: ...

    async def search(self, model: Model, search: OrmSearch) -> dict[str, Any]: ...


def records_of(result: Any) -> tuple[Sequence[Any], Any]:
    """Split an adapter search result into ``(records, page)``."""
    if isinstance(result, OrmSearchResult):
        return result.instances, result.page
    return result.get("instances", []), result.get("page")
