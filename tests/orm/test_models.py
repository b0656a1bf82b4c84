"""Tests for Orm, OrmModel, and OrmModelInstance persistence."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

from functional_models.domain.models import Model, ModelDefinition
from functional_models.domain.properties import ReferenceProperty
from functional_models.errors import ValidationError
from functional_models.orm.contracts import OrmSearch, OrmSearchResult
from functional_models.orm.models import (
    Orm,
    OrmModel,
    OrmModelDefinition,
    OrmModelInstance,
    OrmModelOptions,
    create_orm,
)
from functional_models.orm.properties import LastModifiedDateProperty
from functional_models.orm.query import query_builder
from functional_models.orm.validation import build_orm_validator_context
from tests.conftest import FullAdapter, make_adapter, text_property


class TestOrm:
    def test_requires_adapter(self) -> None:
        with pytest.raises(ValueError, match="Must include a datastore_adapter"):
            Orm(None)  # type: ignore[arg-type]

    def test_create_orm(self, adapter: AsyncMock) -> None:
        assert create_orm(adapter).datastore_adapter is adapter

    def test_model(self, orm: Orm, orm_person_model: OrmModel) -> None:
        assert isinstance(orm_person_model, OrmModel)
        assert isinstance(orm_person_model.definition, OrmModelDefinition)
        assert isinstance(orm_person_model.options, OrmModelOptions)
        assert isinstance(orm_person_model.create({}), OrmModelInstance)

    async def test_retrieve(
        self, orm: Orm, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        adapter.retrieve.return_value = {"id": "p-1", "name": "Sam"}
        instance = await orm.retrieve(orm_person_model, "p-1")
        assert instance is not None
        assert await instance.get.name() == "Sam"
        adapter.retrieve.assert_awaited_once_with(orm_person_model, "p-1")

    async def test_fetcher_miss(self, orm: Orm, orm_person_model: OrmModel) -> None:
        assert await orm.fetcher(orm_person_model, "missing") is None

    async def test_fetcher_hydrates_references(self, orm: Orm, adapter: AsyncMock) -> None:
        authors = orm.model({"name": "Author", "properties": {"name": text_property()}})
        books = orm.model(
            {
                "name": "Book",
                "properties": {"author": ReferenceProperty(authors, {"fetcher": orm.fetcher})},
            }
        )
        adapter.retrieve.return_value = {"id": "a-1", "name": "Ann"}
        book = books.create({"author": "a-1"})
        author = await book.get.author()
        assert await author.get.name() == "Ann"
        assert (await book.to_obj())["author"] == "a-1"


class TestDefinition:
    def test_settings_primary_key_default(
        self, adapter: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FUNCTIONAL_MODELS_PRIMARY_KEY_NAME", "pk")
        model = Orm(adapter).model({"name": "Thing"})
        assert model.primary_key_name == "pk"
        assert list(model.properties) == ["pk"]

    def test_explicit_primary_key_wins(
        self, adapter: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FUNCTIONAL_MODELS_PRIMARY_KEY_NAME", "pk")
        model = Orm(adapter).model(ModelDefinition(name="Thing", primary_key_name="thing_id"))
        assert model.primary_key_name == "thing_id"

    def test_plain_definition_is_upgraded(self, adapter: AsyncMock) -> None:
        model = Orm(adapter).model(ModelDefinition(name="Thing", namespace="ns"))
        assert isinstance(model.definition, OrmModelDefinition)
        assert model.namespace == "ns"
        assert model.primary_key_name == "id"

    def test_unique_together_adds_model_validator(self, adapter: AsyncMock) -> None:
        def existing(*_: Any) -> None:
            return None

        model = Orm(adapter).model(
            {
                "name": "Person",
                "properties": {"name": text_property()},
                "model_validators": [existing],
                "unique_together": ["name"],
            }
        )
        validators = model.definition.model_validators
        assert len(validators) == 2
        assert validators[0] is existing

    async def test_unique_together_runs_on_validate(self, adapter: AsyncMock) -> None:
        adapter.search.return_value = {"instances": [{"id": "other", "name": "Sam"}]}
        model = Orm(adapter).model(
            OrmModelDefinition(
                name="Person", properties={"name": text_property()}, unique_together=("name",)
            )
        )
        instance = model.create({"id": "me", "name": "Sam"})
        assert await instance.validate() == {
            "overall": ["name must be unique. Another instance found."]
        }
        skip = build_orm_validator_context(no_orm_validation=True)
        assert await instance.validate(skip) == {}


class TestSave:
    async def test_save_returns_rehydrated_instance(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        instance = orm_person_model.create({"name": "Sam", "age": 3})
        saved = await instance.save()
        assert saved is not instance
        assert await saved.to_obj() == await instance.to_obj()
        adapter.save.assert_awaited_once()

    async def test_invalid_instance_raises(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        instance = orm_person_model.create({"age": 3})
        with pytest.raises(ValidationError) as exc_info:
            await orm_person_model.save(instance)
        assert exc_info.value.model_name == "Person"
        assert list(exc_info.value.keys_to_errors) == ["name"]
        assert str(exc_info.value) == "Person did not pass validation"
        adapter.save.assert_not_awaited()

    async def test_adapter_failure_propagates(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        adapter.save.side_effect = ConnectionError("down")
        with pytest.raises(ConnectionError, match="down"):
            await orm_person_model.create({"name": "Sam"}).save()

    async def test_last_modified_is_refreshed(self, adapter: AsyncMock) -> None:
        model = Orm(adapter).model(
            {
                "name": "Note",
                "properties": {"title": text_property(), "updated": LastModifiedDateProperty()},
            }
        )
        before = datetime.now(UTC)
        instance = model.create({"id": "n-1", "title": "x", "updated": "2000-01-01T00:00:00"})
        saved = await instance.save()

        stored = await adapter.save.await_args.args[0].to_obj()
        assert stored["id"] == "n-1"
        assert datetime.fromisoformat(stored["updated"]) >= before
        assert await instance.get.updated() == "2000-01-01T00:00:00"
        assert (await saved.to_obj())["updated"] == stored["updated"]

    async def test_save_override(self, adapter: AsyncMock) -> None:
        calls: list[Any] = []

        async def custom_save(default_save: Any, instance: OrmModelInstance) -> Any:
            calls.append(instance)
            return await default_save(instance)

        model = Orm(adapter).model(
            {"name": "Thing"}, OrmModelOptions(save=custom_save)
        )
        instance = model.create({})
        saved = await instance.save()
        assert calls == [instance]
        assert isinstance(saved, OrmModelInstance)

    async def test_instance_callbacks_still_run(self, adapter: AsyncMock) -> None:
        seen: list[Any] = []
        model = Orm(adapter).model(
            {"name": "Thing"}, OrmModelOptions(instance_created_callback=seen.append)
        )
        instance = model.create({})
        assert seen == [instance]


class TestDelete:
    async def test_instance_delete(self, adapter: AsyncMock, orm_person_model: OrmModel) -> None:
        instance = orm_person_model.create({"id": "p-1", "name": "Sam"})
        await instance.delete()
        adapter.delete.assert_awaited_once_with(orm_person_model, "p-1")

    async def test_delete_override(self, adapter: AsyncMock) -> None:
        seen: list[Any] = []

        async def soft_delete(default_delete: Any, instance: OrmModelInstance) -> None:
            seen.append(await instance.get_primary_key())

        model = Orm(adapter).model({"name": "Thing"}, OrmModelOptions(delete=soft_delete))
        await model.create({"id": "t-1"}).delete()
        assert seen == ["t-1"]
        adapter.delete.assert_not_awaited()


class TestRetrieveAndSearch:
    async def test_retrieve_missing(self, orm_person_model: OrmModel) -> None:
        assert await orm_person_model.retrieve("nope") is None

    async def test_retrieve(self, adapter: AsyncMock, orm_person_model: OrmModel) -> None:
        adapter.retrieve.return_value = {"id": "p-1", "name": "Sam"}
        instance = await orm_person_model.retrieve("p-1")
        assert instance is not None
        assert await instance.get_primary_key() == "p-1"

    async def test_search(self, adapter: AsyncMock, orm_person_model: OrmModel) -> None:
        adapter.search.return_value = {
            "instances": [{"id": "1", "name": "A"}, {"id": "2", "name": "B"}],
            "page": "next",
        }
        search = query_builder().property("name", "A").compile()
        result = await orm_person_model.search(search)
        assert isinstance(result, OrmSearchResult)
        assert result.page == "next"
        assert [await i.get.name() for i in result.instances] == ["A", "B"]
        adapter.search.assert_awaited_once_with(orm_person_model, search)

    async def test_search_accepts_result_objects(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        adapter.search.return_value = OrmSearchResult(instances=[{"id": "1"}])
        result = await orm_person_model.search(OrmSearch())
        assert len(result.instances) == 1
        assert result.page is None

    async def test_search_rejects_malformed_query(self, orm_person_model: OrmModel) -> None:
        with pytest.raises(ValueError, match="very start"):
            await orm_person_model.search(OrmSearch(query=["AND"]))

    async def test_search_one_forces_take(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        adapter.search.return_value = {"instances": [{"id": "1"}, {"id": "2"}]}
        search = query_builder().property("name", "A").take(5).compile()
        found = await orm_person_model.search_one(search)
        assert found is not None
        assert await found.get_primary_key() == "1"
        sent = adapter.search.await_args.args[1]
        assert sent.take == 1
        assert "take" in sent.to_dict()
        assert search.take == 5

    async def test_search_one_none(self, orm_person_model: OrmModel) -> None:
        assert await orm_person_model.search_one(OrmSearch()) is None


class TestBulkAndCount:
    async def test_create_and_save_fallback(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        saved = await orm_person_model.create_and_save({"id": "p-1", "name": "Sam"})
        assert await saved.get_primary_key() == "p-1"
        adapter.save.assert_awaited_once()

    async def test_create_and_save_fast_path(self, full_adapter: AsyncMock) -> None:
        model = Orm(full_adapter).model({"name": "Thing"})
        instance = model.create({"id": "t-1"})
        saved = await model.create_and_save(instance)
        assert await saved.get_primary_key() == "t-1"
        full_adapter.create_and_save.assert_awaited_once_with(instance)
        full_adapter.save.assert_not_awaited()

    async def test_bulk_insert_fallback(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        instances = [orm_person_model.create({"name": n}) for n in ("A", "B", "C")]
        await orm_person_model.bulk_insert(instances)
        assert adapter.save.await_count == 3

    async def test_bulk_insert_fast_path(self, full_adapter: AsyncMock) -> None:
        model = Orm(full_adapter).model({"name": "Thing"})
        instances = [model.create({}) for _ in range(2)]
        await model.bulk_insert(instances)
        full_adapter.bulk_insert.assert_awaited_once_with(model, instances)
        full_adapter.save.assert_not_awaited()

    async def test_bulk_delete_fallback_with_instances(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        instances = [orm_person_model.create({"id": i}) for i in ("1", "2")]
        await orm_person_model.bulk_delete(instances)
        deleted = sorted(call.args[1] for call in adapter.delete.await_args_list)
        assert deleted == ["1", "2"]

    async def test_bulk_delete_fast_path_with_ids(self, full_adapter: AsyncMock) -> None:
        model = Orm(full_adapter).model({"name": "Thing"})
        await model.bulk_delete(["1", "2"])
        full_adapter.bulk_delete.assert_awaited_once_with(model, ["1", "2"])

    async def test_count_fast_path(self, full_adapter: AsyncMock) -> None:
        model = Orm(full_adapter).model({"name": "Thing"})
        assert await model.count() == 7

    async def test_count_pages_until_token_repeats(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        adapter.search.side_effect = [
            {"instances": [{"id": "1"}, {"id": "2"}], "page": "p1"},
            {"instances": [{"id": "3"}], "page": "p2"},
            {"instances": [{"id": "4"}], "page": "p2"},
        ]
        assert await orm_person_model.count() == 4
        pages = [call.args[1].page for call in adapter.search.await_args_list]
        assert pages == [None, "p1", "p2"]

    async def test_count_stops_without_page(
        self, adapter: AsyncMock, orm_person_model: OrmModel
    ) -> None:
        adapter.search.return_value = {"instances": [{"id": "1"}]}
        assert await orm_person_model.count() == 1
        assert adapter.search.await_count == 1


class TestPlainModelCompatibility:
    def test_orm_model_is_a_model(self, orm_person_model: OrmModel) -> None:
        assert isinstance(orm_person_model, Model)

    def test_full_adapter_exposes_fast_paths(self) -> None:
        adapter = make_adapter(FullAdapter)
        assert hasattr(adapter, "bulk_insert")
        assert not hasattr(make_adapter(), "bulk_insert")

    def test_method_collision(self, adapter: AsyncMock) -> None:
        with pytest.raises(ValueError, match="collides with a protected name"):
            Orm(adapter).model({"name": "Thing", "instance_methods": {"save": lambda i: i}})
