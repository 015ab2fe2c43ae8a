"""Integration tests for the HTTP endpoints."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import json

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock
from models.api import ChatResponse, ErrorInfo
from services.chat_orchestrator import ChatOrchestrator
from services.company_info_generator import CompanyInfoGenerator
from services.conversation_registry import ConversationRegistry
from services.errors import NetworkError, RateLimitError, RetrievalError
from services.intent_router import IntentRouter
from services.llm_client import LLMResponse
from services.rag_generator import RAGGenerator


def make_llm(text="RAG grounds answers in documents."):
    llm = Mock()
    llm.generate = AsyncMock(return_value=LLMResponse(
        text=text, tokens_input=40, tokens_output=8, latency_ms=3, model_used="test-model"
    ))

    async def generate_stream(messages, max_tokens=2048):
        for word in text.split(" "):
            yield {"type": "token", "content": word + " "}
        yield {"type": "metadata", "data": {"tokens_input": 40, "tokens_output": 8,
                                            "latency_ms": 3, "model_used": "test-model"}}

    llm.generate_stream = Mock(side_effect=generate_stream)
    return llm


@pytest.fixture
def services(tmp_path):
    """Real orchestrator over stubbed model and retrieval collaborators."""
    info = tmp_path / "company.md"
    info.write_text("Acme Corp is a technology consulting company.")
    llm = make_llm()
    retrieval_engine = Mock()
    retrieval_engine.retrieve = AsyncMock(return_value=[])
    orchestrator = ChatOrchestrator(
        registry=ConversationRegistry(max_conversations=10),
        router=IntentRouter(company_name="Acme Corp"),
        company_generator=CompanyInfoGenerator(llm, company_info_path=str(info), company_name="Acme Corp"),
        rag_generator=RAGGenerator(llm, retrieval_engine, stream_word_delay=0),
        stream_word_delay=0,
    )
    return orchestrator, llm, retrieval_engine


@pytest.fixture
def client(services):
    """Create a test client around the prepared orchestrator."""
    from main import create_app

    orchestrator, _, _ = services
    return TestClient(create_app(orchestrator))


def parse_sse(body):
    events = []
    for frame in body.split("\n\n"):
        if not frame.startswith("data: "):
            continue
        payload = frame[len("data: "):]
        events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["conversations"] == 0


class TestChatEndpoint:
    """Tests for POST /chat."""

    def test_chat_success(self, client):
        response = client.post("/chat", json={"message": "What is RAG?"})

        assert response.status_code == 200
        data = response.json()
        assert data["answer"] == "RAG grounds answers in documents."
        assert data["generator_used"] == "RAGService"
        assert data["conversation_id"].startswith("conv_")
        assert data["usage"] == {"prompt_tokens": 40, "completion_tokens": 8, "total_tokens": 48}
        assert data["error"] is None
        assert len(data["messages"]) == 2

    def test_chat_continues_conversation(self, client):
        first = client.post("/chat", json={"message": "My name is Alex"}).json()
        second = client.post("/chat", json={
            "message": "What is my name?",
            "conversation_id": first["conversation_id"],
        }).json()

        assert second["conversation_id"] == first["conversation_id"]
        assert len(second["messages"]) == 4

    def test_empty_message_rejected_by_schema(self, client):
        response = client.post("/chat", json={"message": ""})
        assert response.status_code == 422

    def test_too_long_message_rejected_by_schema(self, client):
        response = client.post("/chat", json={"message": "x" * 2001})
        assert response.status_code == 422

    def test_blank_message_is_400(self, client):
        response = client.post("/chat", json={"message": "   "})

        assert response.status_code == 400
        assert response.json()["detail"]["error"]["category"] == "validation_error"

    def test_rate_limit_is_429(self, client, services):
        _, llm, _ = services
        llm.generate.side_effect = RateLimitError("quota")

        response = client.post("/chat", json={"message": "What is RAG?"})

        assert response.status_code == 429
        error = response.json()["detail"]["error"]
        assert error["category"] == "rate_limit_error"
        assert error["retryable"] is True

    def test_network_error_is_504(self, client, services):
        _, llm, _ = services
        llm.generate.side_effect = NetworkError("timeout")

        assert client.post("/chat", json={"message": "What is RAG?"}).status_code == 504

    def test_retrieval_error_is_degraded_200(self, client, services):
        _, _, retrieval_engine = services
        retrieval_engine.retrieve.side_effect = RetrievalError("down", cause=NetworkError("timeout"))

        response = client.post("/chat", json={"message": "What is RAG?"})

        assert response.status_code == 200
        data = response.json()
        assert data["error"]["category"] == "retrieval_error"
        assert "couldn't search the knowledge base" in data["answer"]

    def test_internal_error_is_500(self, services):
        from main import create_app

        orchestrator = Mock(spec=ChatOrchestrator)
        orchestrator.process_message = AsyncMock(return_value=ChatResponse(
            answer="Something went wrong",
            conversation_id="c1",
            error=ErrorInfo(category="internal_error", code="INTERNAL_ERROR", message="Something went wrong"),
        ))
        client = TestClient(create_app(orchestrator))

        response = client.post("/chat", json={"message": "What is RAG?"})

        assert response.status_code == 500
        assert response.json()["detail"]["conversation_id"] == "c1"


class TestChatStreamEndpoint:
    """Tests for POST /chat/stream."""

    def test_stream_success(self, client):
        response = client.post("/chat/stream", json={"message": "What is RAG?", "conversation_id": "s1"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = parse_sse(response.text)
        assert events[0] == {"type": "start", "conversation_id": "s1"}
        assert events[-1] == "[DONE]"
        assert events[-2]["type"] == "complete"
        assert events[-2]["conversation_id"] == "s1"
        assert any(e["type"] == "chunk" for e in events[1:-2])

    def test_stream_error_event(self, client, services):
        _, llm, _ = services
        llm.generate_stream.side_effect = RateLimitError("quota")

        events = parse_sse(client.post("/chat/stream", json={"message": "What is RAG?"}).text)

        assert events[-2]["type"] == "error"
        assert events[-2]["error"]["category"] == "rate_limit_error"
        assert events[-1] == "[DONE]"


class TestConversationEndpoints:
    """Tests for conversation inspection and clearing."""

    def test_get_conversation(self, client):
        conversation_id = client.post("/chat", json={"message": "What is RAG?"}).json()["conversation_id"]

        response = client.get(f"/conversations/{conversation_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["conversation_id"] == conversation_id
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
        assert data["participant_role"] == "USER"

    def test_get_unknown_conversation(self, client):
        assert client.get("/conversations/missing").status_code == 404

    def test_stats(self, client):
        client.post("/chat", json={"message": "What is RAG?"})
        client.post("/chat", json={"message": "Who are you?"})

        response = client.get("/conversations/stats")

        assert response.status_code == 200
        assert response.json() == {"total_conversations": 2, "total_messages": 4}

    def test_delete_conversation(self, client):
        conversation_id = client.post("/chat", json={"message": "What is RAG?"}).json()["conversation_id"]

        assert client.delete(f"/conversations/{conversation_id}").status_code == 200
        assert client.get(f"/conversations/{conversation_id}").status_code == 404
        assert client.delete(f"/conversations/{conversation_id}").status_code == 404
