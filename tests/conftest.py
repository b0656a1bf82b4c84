"""Shared pytest fixtures and test helpers for functional_models tests."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock

import pytest

from functional_models.config.settings import get_settings
from functional_models.domain.models import Model, ModelDefinition
from functional_models.domain.properties import Property
from functional_models.orm.models import Orm, OrmModel


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Keep the cached process-wide settings out of every test."""
    monkeypatch.delenv("FUNCTIONAL_MODELS_CONFIG", raising=False)
    monkeypatch.delenv("FUNCTIONAL_MODELS_PRIMARY_KEY_NAME", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Datastore adapter doubles
# ---------------------------------------------------------------------------


class MinimalAdapter:
    """Spec for an adapter with only the required methods."""

    async def save(self, instance: Any) -> dict[str, Any]: ...

    async def delete(self, model: Any, primary_key: Any) -> None: ...

    async def retrieve(self, model: Any, primary_key: Any) -> dict[str, Any] | None: ...

    async def search(self, model: Any, search: Any) -> dict[str, Any]: ...


class FullAdapter(MinimalAdapter):
    """Spec for an adapter with every optional fast path."""

    async def bulk_insert(self, model: Any, instances: Any) -> None: ...

    async def bulk_delete(self, model: Any, ids: Any) -> None: ...

    async def count(self, model: Any) -> int: ...

    async def create_and_save(self, instance: Any) -> dict[str, Any]: ...


async def _echo_save(instance: Any) -> dict[str, Any]:
    return await instance.to_obj()


def make_adapter(
    spec: type = MinimalAdapter, *, records: list[dict[str, Any]] | None = None
) -> AsyncMock:
    """AsyncMock adapter whose save echoes the instance and search returns *records*."""
    adapter = AsyncMock(spec=spec)
    adapter.save.side_effect = _echo_save
    adapter.retrieve.return_value = None
    adapter.search.return_value = {"instances": list(records or []), "page": None}
    return adapter


@pytest.fixture
def adapter() -> AsyncMock:
    return make_adapter()


@pytest.fixture
def full_adapter() -> AsyncMock:
    adapter = make_adapter(FullAdapter)
    adapter.create_and_save.side_effect = _echo_save
    adapter.count.return_value = 7
    return adapter


@pytest.fixture
def orm(adapter: AsyncMock) -> Orm:
    return Orm(adapter)


# ---------------------------------------------------------------------------
# Shared models
# ---------------------------------------------------------------------------


def text_property(**config: Any) -> Property:
    return Property("TextProperty", {"is_string": True, **config})


def integer_property(**config: Any) -> Property:
    return Property("IntegerProperty", {"is_integer": True, **config})


@pytest.fixture
def person_model() -> Model:
    return Model(
        ModelDefinition(
            name="Person",
            properties={
                "name": text_property(required=True),
                "age": integer_property(),
            },
        )
    )


@pytest.fixture
def orm_person_model(orm: Orm) -> OrmModel:
    return orm.model(
        {
            "name": "Person",
            "properties": {
                "name": text_property(required=True),
                "age": integer_property(),
            },
        }
    )
