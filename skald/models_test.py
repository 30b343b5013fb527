"""Tests for request serialization, response parsing and stream event decoding."""

import pytest

from skald.models import (
    ChatRequest,
    ChatResponse,
    ChatStreamEvent,
    CreateMemoResponse,
    Filter,
    FilterOperator,
    FilterType,
    GenerateDocRequest,
    GenerateDocResponse,
    GenerateDocStreamEvent,
    MemoData,
    MemoStatusResponse,
    SearchMethod,
    SearchRequest,
    SearchResponse,
    UpdateMemoData,
)


# ── Requests ──────────────────────────────────────────────────────────


class TestMemoData:
    def test_all_fields(self):
        memo = MemoData(
            title="Test Memo",
            content="Test content",
            metadata={"type": "test"},
            reference_id="ref-123",
            tags=["a", "b"],
            source="notion",
        )
        assert memo.to_dict() == {
            "title": "Test Memo",
            "content": "Test content",
            "metadata": {"type": "test"},
            "reference_id": "ref-123",
            "tags": ["a", "b"],
            "source": "notion",
        }

    def test_defaults_send_empty_metadata(self):
        assert MemoData(title="T", content="C").to_dict() == {
            "title": "T",
            "content": "C",
            "metadata": {},
        }


class TestUpdateMemoData:
    def test_only_set_fields_are_sent(self):
        update = UpdateMemoData(title="New", expiration_date="2026-12-31T00:00:00Z")
        assert update.to_dict() == {
            "title": "New",
            "expiration_date": "2026-12-31T00:00:00Z",
        }

    def test_empty_update(self):
        assert UpdateMemoData().to_dict() == {}

    def test_falsy_values_are_still_sent(self):
        assert UpdateMemoData(content="", metadata={}).to_dict() == {
            "content": "",
            "metadata": {},
        }


class TestFilters:
    def test_native_field(self):
        f = Filter.native_field("source", FilterOperator.EQ, "notion")
        assert f.filter_type is FilterType.NATIVE_FIELD
        assert f.to_dict() == {
            "field": "source",
            "operator": "eq",
            "value": "notion",
            "filter_type": "native_field",
        }

    def test_custom_metadata(self):
        f = Filter.custom_metadata("level", FilterOperator.NOT_IN, ["draft", "wip"])
        assert f.to_dict() == {
            "field": "level",
            "operator": "not_in",
            "value": ["draft", "wip"],
            "filter_type": "custom_metadata",
        }

    def test_operator_values(self):
        assert [op.value for op in FilterOperator] == [
            "eq",
            "neq",
            "contains",
            "startswith",
            "endswith",
            "in",
            "not_in",
        ]


class TestSearchRequest:
    def test_minimal(self):
        assert SearchRequest(query="goals").to_dict() == {
            "query": "goals",
            "search_method": "chunk_semantic_search",
        }

    def test_limit_and_filters(self):
        request = SearchRequest(
            query="goals",
            search_method=SearchMethod.CHUNK_SEMANTIC_SEARCH,
            limit=5,
            filters=[Filter.native_field("tags", FilterOperator.IN, ["q1"])],
        )
        data = request.to_dict()
        assert data["limit"] == 5
        assert data["filters"] == [
            {"field": "tags", "operator": "in", "value": ["q1"], "filter_type": "native_field"}
        ]


class TestGenerativeRequests:
    def test_chat_stream_flag(self):
        assert ChatRequest(query="q").to_dict() == {"query": "q", "stream": False}
        assert ChatRequest(query="q").to_dict(stream=True) == {"query": "q", "stream": True}

    def test_chat_filters(self):
        request = ChatRequest(
            query="q", filters=[Filter.native_field("source", FilterOperator.EQ, "jira")]
        )
        assert request.to_dict()["filters"][0]["value"] == "jira"

    def test_generate_doc(self):
        assert GenerateDocRequest(prompt="p", rules="r").to_dict(stream=True) == {
            "prompt": "p",
            "stream": True,
            "rules": "r",
        }
        assert "rules" not in GenerateDocRequest(prompt="p").to_dict()


# ── Responses ─────────────────────────────────────────────────────────


class TestResponses:
    def test_create_memo_response_defaults(self):
        assert CreateMemoResponse.from_dict({"ok": True}).ok is True
        assert CreateMemoResponse.from_dict({}).ok is False

    def test_memo_status_predicates(self):
        processing = MemoStatusResponse.from_dict({"memo_uuid": "u1", "status": "processing"})
        assert processing.is_processing()
        assert not processing.is_processed()
        assert not processing.is_error()
        assert processing.error_reason is None

        failed = MemoStatusResponse.from_dict(
            {"memo_uuid": "u2", "status": "error", "error_reason": "File format not supported"}
        )
        assert failed.is_error()
        assert failed.error_reason == "File format not supported"

    def test_memo_status_defaults(self):
        status = MemoStatusResponse.from_dict({})
        assert status.memo_uuid == ""
        assert status.status == "unknown"

    def test_search_response(self):
        response = SearchResponse.from_dict(
            {
                "results": [
                    {
                        "uuid": "m1",
                        "title": "Roadmap",
                        "summary": "Q1 plans",
                        "content_snippet": "ship it",
                        "distance": 0.12,
                    },
                    {
                        "uuid": "m2",
                        "title": "Title match",
                        "summary": "",
                        "content_snippet": "",
                        "distance": None,
                    },
                ]
            }
        )
        assert [r.uuid for r in response.results] == ["m1", "m2"]
        assert response.results[0].distance == 0.12
        assert response.results[1].distance is None

    def test_search_response_without_results(self):
        assert SearchResponse.from_dict({}).results == []

    def test_chat_and_generate_responses(self):
        chat = ChatResponse.from_dict({"ok": True, "response": "answer", "intermediate_steps": [1]})
        assert chat.response == "answer"
        assert chat.intermediate_steps == [1]

        doc = GenerateDocResponse.from_dict({})
        assert isinstance(doc, GenerateDocResponse)
        assert doc.ok is False
        assert doc.response == ""
        assert doc.intermediate_steps == []


# ── Stream events ─────────────────────────────────────────────────────


class TestStreamEvents:
    def test_token(self):
        event = ChatStreamEvent.from_dict({"type": "token", "content": "Hello"})
        assert event.is_token()
        assert not event.is_done()
        assert event.content == "Hello"

    def test_done_ignores_extra_fields(self):
        event = GenerateDocStreamEvent.from_dict({"type": "done", "content": "ignored"})
        assert isinstance(event, GenerateDocStreamEvent)
        assert event.is_done()
        assert event.content is None

    @pytest.mark.parametrize(
        "payload",
        [{}, {"type": "ping"}, {"type": None}, {"type": "token", "content": 3}],
    )
    def test_rejected_payloads(self, payload):
        with pytest.raises(ValueError):
            ChatStreamEvent.from_dict(payload)
