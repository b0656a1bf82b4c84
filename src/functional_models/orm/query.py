"""Backend-agnostic query construction.

Builders are persistent: every call returns a new builder over frozen
state, so a partially built query can be shared and extended in several
directions. The builder types encode what may come next:

- :class:`QueryBuilder` — the root; accepts a match or modifiers.
- :class:`LinkBuilder` — after a match; accepts ``and_``/``or_``,
  modifiers, or ``compile``.
- :class:`MatchBuilder` — after a link; accepts only another match.

Usage::

    search = (
        query_builder()
        .property("name", "sam", case_sensitive=False)
        .and_()
        .complex(lambda b: b.property("age", 30).or_().property("age", 31))
        .take(10)
        .compile()
    )
    # [PropertyQuery(name), "AND", [PropertyQuery(age), "OR", PropertyQuery(age)]]
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Self, TypeVar

from functional_models.domain.types import DatastoreValueType, EqualitySymbol, SortOrder
from functional_models.orm.contracts import (
    DatesAfterQuery,
    DatesBeforeQuery,
    LinkToken,
    MatchOptions,
    OrmSearch,
    PropertyQuery,
    Query,
    QueryToken,
    SortStatement,
)

AND: LinkToken = "AND"
OR: LinkToken = "OR"


# ---------------------------------------------------------------------------
# Token constructors
# ---------------------------------------------------------------------------


def property_query(
    key: str,
    value: Any,
    *,
    equality_symbol: EqualitySymbol | str = EqualitySymbol.EQ,
    value_type: DatastoreValueType | str | None = None,
    case_sensitive: bool | None = None,
    starts_with: bool | None = None,
    ends_with: bool | None = None,
) -> PropertyQuery:
    """Create a property match.

    Raises:
        ValueError: For an unknown equality symbol or value type, or a
            non-``=`` symbol on a string value.
    """
    try:
        symbol = EqualitySymbol(equality_symbol)
    except ValueError:
        msg = f"{equality_symbol} is not a valid symbol"
        raise ValueError(msg) from None
    try:
        type_to_use = DatastoreValueType(value_type or DatastoreValueType.STRING)
    except ValueError:
        msg = f"{value_type} is not a valid value type"
        raise ValueError(msg) from None
    if symbol is not EqualitySymbol.EQ and type_to_use is DatastoreValueType.STRING:
        msg = "Cannot use a non = symbol for a string type"
        raise ValueError(msg)
    return PropertyQuery(
        key=key,
        value=value,
        value_type=type_to_use,
        equality_symbol=symbol,
        options=MatchOptions(
            case_sensitive=case_sensitive,
            starts_with=starts_with,
            ends_with=ends_with,
        ),
    )


def text_query(
    key: str,
    value: str | None,
    *,
    case_sensitive: bool | None = None,
    starts_with: bool | None = None,
    ends_with: bool | None = None,
) -> PropertyQuery:
    return property_query(
        key,
        value,
        value_type=DatastoreValueType.STRING,
        case_sensitive=case_sensitive,
        starts_with=starts_with,
        ends_with=ends_with,
    )


def number_query(
    key: str,
    value: int | float | str | None,
    equality_symbol: EqualitySymbol | str = EqualitySymbol.EQ,
) -> PropertyQuery:
    return property_query(
        key, value, equality_symbol=equality_symbol, value_type=DatastoreValueType.NUMBER
    )


def boolean_query(key: str, value: bool | None) -> PropertyQuery:
    return property_query(key, value, value_type=DatastoreValueType.BOOLEAN)


def _date_text(when: date | str) -> str:
    if isinstance(when, date):
        return when.isoformat()
    return when


def dates_before(
    key: str,
    when: date | str,
    *,
    value_type: DatastoreValueType | str = DatastoreValueType.DATE,
    equal_to_and_before: bool = True,
) -> DatesBeforeQuery:
    return DatesBeforeQuery(
        key=key,
        date=_date_text(when),
        value_type=DatastoreValueType(value_type),
        equal_to_and_before=equal_to_and_before,
    )


def dates_after(
    key: str,
    when: date | str,
    *,
    value_type: DatastoreValueType | str = DatastoreValueType.DATE,
    equal_to_and_after: bool = True,
) -> DatesAfterQuery:
    return DatesAfterQuery(
        key=key,
        date=_date_text(when),
        value_type=DatastoreValueType(value_type),
        equal_to_and_after=equal_to_and_after,
    )


def take(max_results: int | str) -> int:
    """Parse a result limit.

    Raises:
        ValueError: If the value is not an integer.
    """
    try:
        if isinstance(max_results, bool):
            raise ValueError
        return int(str(max_results).strip())
    except ValueError:
        msg = f'Number "{max_results}" is not integerable'
        raise ValueError(msg) from None


def sort(key: str, order: SortOrder | str = SortOrder.ASC) -> SortStatement:
    try:
        resolved = SortOrder(order)
    except ValueError:
        msg = "Sort must be either asc or dsc"
        raise ValueError(msg) from None
    return SortStatement(key=key, order=resolved)


def pagination(value: Any) -> Any:
    """Page tokens are opaque to the ORM; they pass through unchanged."""
    return value


def and_() -> LinkToken:
    return AND


def or_() -> LinkToken:
    return OR


def is_link_token(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return value.lower() in ("and", "or")


def is_property_based_query(value: Any) -> bool:
    return isinstance(value, PropertyQuery | DatesBeforeQuery | DatesAfterQuery)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _thaw(token: Any) -> QueryToken:
    if isinstance(token, tuple):
        return [_thaw(t) for t in token]
    return token


def _freeze(token: Any) -> Any:
    if isinstance(token, list):
        return tuple(_freeze(t) for t in token)
    return token


@dataclass(frozen=True)
class _SearchState:
    query: tuple[Any, ...] = ()
    take: int | None = None
    sort: SortStatement | None = None
    page: Any = None

    def append(self, token: Any) -> _SearchState:
        return replace(self, query=(*self.query, token))

    def compile(self) -> OrmSearch:
        fields: dict[str, Any] = {"query": [_thaw(t) for t in self.query]}
        if self.take is not None:
            fields["take"] = self.take
        if self.sort is not None:
            fields["sort"] = self.sort
        if self.page is not None:
            fields["page"] = self.page
        return OrmSearch(**fields)


class _Builder:
    __slots__ = ("_state",)

    def __init__(self, state: _SearchState | None = None) -> None:
        self._state = state or _SearchState()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self._state.query)!r})"


class _Matchable(_Builder):
    """Builders that accept a match statement."""

    __slots__ = ()

    def _match(self, token: Query | tuple[Any, ...]) -> LinkBuilder:
        return LinkBuilder(self._state.append(token))

    def property(
        self,
        key: str,
        value: Any,
        *,
        equality_symbol: EqualitySymbol | str = EqualitySymbol.EQ,
        value_type: DatastoreValueType | str | None = None,
        case_sensitive: bool | None = None,
        starts_with: bool | None = None,
        ends_with: bool | None = None,
    ) -> LinkBuilder:
        return self._match(
            property_query(
                key,
                value,
                equality_symbol=equality_symbol,
                value_type=value_type,
                case_sensitive=case_sensitive,
                starts_with=starts_with,
                ends_with=ends_with,
            )
        )

    def dates_before(
        self,
        key: str,
        when: date | str,
        *,
        value_type: DatastoreValueType | str = DatastoreValueType.DATE,
        equal_to_and_before: bool = True,
    ) -> LinkBuilder:
        return self._match(
            dates_before(
                key, when, value_type=value_type, equal_to_and_before=equal_to_and_before
            )
        )

    def dates_after(
        self,
        key: str,
        when: date | str,
        *,
        value_type: DatastoreValueType | str = DatastoreValueType.DATE,
        equal_to_and_after: bool = True,
    ) -> LinkBuilder:
        return self._match(
            dates_after(key, when, value_type=value_type, equal_to_and_after=equal_to_and_after)
        )

    def complex(self, sub_builder: Callable[[QueryBuilder], Any]) -> LinkBuilder:
        """Embed a nested group built by *sub_builder* from a fresh builder.

        Raises:
            TypeError: If *sub_builder* does not return a compilable builder.
            ValueError: If the nested group is empty.
        """
        result = sub_builder(QueryBuilder())
        if not isinstance(result, _Modifiable):
            msg = "complex() sub builder must return a builder that can compile"
            raise TypeError(msg)
        nested = result._state.query
        if not nested:
            msg = "complex() sub builder produced an empty query"
            raise ValueError(msg)
        return self._match(nested)


class _Modifiable(_Builder):
    """Builders that accept take/sort/pagination and can compile."""

    __slots__ = ()

    def take(self, max_results: int | str) -> Self:
        return type(self)(replace(self._state, take=take(max_results)))

    def sort(self, key: str, order: SortOrder | str = SortOrder.ASC) -> Self:
        return type(self)(replace(self._state, sort=sort(key, order)))

    def pagination(self, value: Any) -> Self:
        return type(self)(replace(self._state, page=pagination(value)))

    def compile(self) -> OrmSearch:
        return self._state.compile()


class QueryBuilder(_Matchable, _Modifiable):
    """Root builder."""

    __slots__ = ()


class LinkBuilder(_Modifiable):
    """Builder positioned after a match."""

    __slots__ = ()

    def and_(self) -> MatchBuilder:
        return MatchBuilder(self._state.append(AND))

    def or_(self) -> MatchBuilder:
        return MatchBuilder(self._state.append(OR))


class MatchBuilder(_Matchable):
    """Builder positioned after a link; only a match may follow."""

    __slots__ = ()


def query_builder() -> QueryBuilder:
    """Create an empty root builder."""
    return QueryBuilder()


# ---------------------------------------------------------------------------
# Adapter utilities
# ---------------------------------------------------------------------------


T = TypeVar("T")


def threeitize(data: Sequence[T]) -> list[list[T]]:
    """Split ``match, link, match, link, match`` into overlapping triplets.

    ``[a, b, c, d, e]`` becomes ``[[a, b, c], [c, d, e]]``; fewer than two
    items give ``[]``.

    Raises:
        ValueError: If *data* has an even length of two or more.
    """
    items = list(data)
    if len(items) <= 1:
        return []
    if len(items) % 2 == 0:
        msg = "Must be an odd number of 3 or greater."
        raise ValueError(msg)
    return [items[i : i + 3] for i in range(0, len(items) - 2, 2)]


def _validate_token_types(token: Any) -> None:
    if isinstance(token, list):
        for t in token:
            _validate_token_types(t)
        return
    if is_property_based_query(token) or is_link_token(token):
        return
    msg = f"Unknown token type {token}"
    raise ValueError(msg)


def _validate_array_or_query(token: Any) -> None:
    if isinstance(token, list):
        _validate_token_structure(token)
        return
    if is_property_based_query(token):
        return
    msg = "Order of link tokens and queries invalid"
    raise ValueError(msg)


def _validate_token_structure(tokens: list[Any]) -> None:
    if not tokens:
        msg = "Nested queries cannot be empty"
        raise ValueError(msg)
    if is_link_token(tokens[0]):
        msg = "Cannot have AND or OR at the very start."
        raise ValueError(msg)
    if is_link_token(tokens[-1]):
        msg = "Cannot have AND or OR at the very end."
        raise ValueError(msg)
    links = [t for t in tokens if is_link_token(t)]
    if not links:
        # a lone statement (or several, caught below)
        if len(tokens) > 1:
            msg = "Must separate each statement with an AND or OR"
            raise ValueError(msg)
        _validate_array_or_query(tokens[0])
        return
    if len(links) != len(tokens) - len(links) - 1:
        msg = "Must separate each statement with an AND or OR"
        raise ValueError(msg)
    for first, link, second in reversed(threeitize(tokens)):
        if not is_link_token(link):
            if is_property_based_query(link):
                msg = "Must have AND/OR between property queries"
                raise ValueError(msg)
            msg = "Must have AND/OR between nested queries"
            raise ValueError(msg)
        _validate_array_or_query(first)
        _validate_array_or_query(second)


def validate_orm_search(search: OrmSearch | Mapping[str, Any]) -> None:
    """Check that a search's token list is well formed.

    Raises:
        ValueError: On a non-list query, unknown tokens, or misplaced links.
    """
    query = search.query if isinstance(search, OrmSearch) else search.get("query")
    if not isinstance(query, list):
        msg = "Query must be an array"
        raise ValueError(msg)
    if not query:
        return
    _validate_token_types(query)
    _validate_token_structure(query)
