"""Tests for telemetry primitives: Span, trace_span, @traced."""

from __future__ import annotations

import time
from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest

from functional_models.orm.models import OrmModel
from functional_models.orm.query import query_builder
from functional_models.telemetry import (
    Span,
    _current_span,
    disable_telemetry,
    enable_telemetry,
    get_current_span,
    trace_span,
    traced,
)


@pytest.fixture(autouse=True)
def _reset_telemetry_state() -> Generator[None]:
    """Ensure clean telemetry state for every test."""
    yield
    disable_telemetry()
    _current_span.set(None)


# ── Span unit tests ──────────────────────────────────────────────────


class TestSpan:
    def test_duration_before_end_is_zero(self) -> None:
        assert Span(name="test").duration_ms == 0.0

    def test_duration_after_end(self) -> None:
        span = Span(name="test")
        time.sleep(0.005)
        span.end()
        assert span.duration_ms > 0

    def test_to_dict_minimal(self) -> None:
        span = Span(name="root")
        span.end()
        d = span.to_dict()
        assert d["name"] == "root"
        assert "duration_ms" in d
        assert "children" not in d
        assert "annotations" not in d

    def test_to_dict_with_children_and_annotations(self) -> None:
        root = Span(name="root")
        child = Span(name="child", parent=root)
        root.children.append(child)
        root.annotate("records", 3)
        child.end()
        root.end()
        d = root.to_dict()
        assert d["children"][0]["name"] == "child"
        assert d["annotations"] == {"records": 3}


# ── trace_span tests ─────────────────────────────────────────────────


class TestTraceSpan:
    def test_disabled_yields_none(self) -> None:
        with trace_span("test") as span:
            assert span is None

    def test_no_root_yields_none(self) -> None:
        enable_telemetry()
        with trace_span("test") as span:
            assert span is None

    def test_nested_spans(self) -> None:
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            with trace_span("a") as a:
                assert get_current_span() is a
                with trace_span("b"):
                    pass
            assert root.children[0].name == "a"
            assert root.children[0].children[0].name == "b"
            assert root.children[0].end_time is not None
        finally:
            _current_span.reset(token)


# ── @traced decorator tests ──────────────────────────────────────────


class TestTraced:
    async def test_noop_when_disabled(self) -> None:
        @traced
        async def work() -> str:
            assert get_current_span() is None
            return "done"

        assert await work() == "done"

    async def test_nests_spans_when_enabled(self) -> None:
        seen: list[Span | None] = []

        @traced
        async def inner() -> None:
            seen.append(get_current_span())

        @traced
        async def outer() -> str:
            await inner()
            seen.append(get_current_span())
            return "ok"

        enable_telemetry()
        assert await outer() == "ok"
        inner_span, outer_span = seen
        assert inner_span is not None
        assert outer_span is not None
        assert inner_span.parent is outer_span
        assert outer_span.children == [inner_span]
        assert inner_span.end_time is not None
        assert get_current_span() is None

    async def test_failure_propagates_and_resets(self) -> None:
        @traced
        async def broken() -> None:
            msg = "boom"
            raise RuntimeError(msg)

        enable_telemetry()
        with pytest.raises(RuntimeError, match="boom"):
            await broken()
        assert get_current_span() is None

    async def test_orm_operations_are_traced(self, adapter: AsyncMock) -> None:
        model = OrmModel({"name": "Thing"}, adapter)
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            await model.retrieve("missing")
        finally:
            _current_span.reset(token)
        assert [c.name for c in root.children] == ["OrmModel.retrieve"]

    async def test_save_records_validate_and_adapter_spans(
        self, orm_person_model: OrmModel
    ) -> None:
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            await orm_person_model.create({"name": "Sam"}).save()
        finally:
            _current_span.reset(token)
        (save_span,) = root.children
        assert save_span.name == "OrmModel.save"
        assert [c.name for c in save_span.children] == ["validate", "adapter.save"]

    async def test_search_annotates_record_count(self, orm_person_model: OrmModel) -> None:
        orm_person_model.datastore_adapter.search.return_value = {
            "instances": [{"id": "1"}, {"id": "2"}],
        }
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            await orm_person_model.search(query_builder().compile())
        finally:
            _current_span.reset(token)
        (adapter_span,) = root.children[0].children
        assert adapter_span.name == "adapter.search"
        assert adapter_span.annotations == {"records": 2}

    async def test_count_annotates_pages(self, orm_person_model: OrmModel) -> None:
        orm_person_model.datastore_adapter.search.side_effect = [
            {"instances": [{"id": "1"}], "page": "p1"},
            {"instances": [{"id": "2"}], "page": "p1"},
        ]
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            assert await orm_person_model.count() == 2
        finally:
            _current_span.reset(token)
        (count_span,) = root.children
        assert count_span.annotations == {"pages": 2}
        assert [c.name for c in count_span.children] == ["OrmModel.search", "OrmModel.search"]
