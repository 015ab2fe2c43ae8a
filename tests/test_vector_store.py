"""Unit tests for VectorStore and ChunkStore."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from pydantic import ValidationError as PydanticValidationError
from unittest.mock import MagicMock, Mock, patch
from models.chunk import ChunkRecord, VectorMatch, VectorRecord
from services.chunk_store import ChunkStore
from services.vector_store import VectorStore


class TestVectorStore:
    """Test suite for VectorStore."""

    @patch('services.vector_store.create_client')
    def test_initialization_success(self, mock_create_client):
        """Test successful initialization with credentials."""
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client

        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        assert store.client is mock_client
        assert store.table_name == "chunk_embeddings"
        mock_create_client.assert_called_once_with("https://test.supabase.co", "test_key")

    def test_initialization_without_credentials(self):
        """Test initialization fails without Supabase credentials."""
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            VectorStore(supabase_url=None, supabase_key="test_key")

        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            VectorStore(supabase_url="https://test.supabase.co", supabase_key=None)

    @patch('services.vector_store.create_client')
    def test_shared_client_skips_credentials(self, mock_create_client):
        client = MagicMock()
        store = VectorStore(client=client, supabase_url=None, supabase_key=None)

        assert store.client is client
        mock_create_client.assert_not_called()

    def test_query_calls_rpc_and_sorts(self):
        client = MagicMock()
        client.rpc.return_value.execute.return_value = Mock(data=[
            {"id": "c1", "similarity": 0.4, "metadata": {"page": 1}},
            {"id": 2, "similarity": 0.9, "metadata": '{"page": 7, "tags": ["a"]}'},
        ])
        store = VectorStore(client=client)

        matches = store.query([0.1, 0.2], top_k=5, filter={"document_type": "pdf"})

        client.rpc.assert_called_once_with("match_chunk_embeddings", {
            "query_embedding": [0.1, 0.2],
            "match_count": 5,
            "filter": {"document_type": "pdf"},
        })
        assert matches == [
            VectorMatch(id="2", score=0.9, metadata={"page": 7, "tags": ["a"]}),
            VectorMatch(id="c1", score=0.4, metadata={"page": 1}),
        ]

    def test_query_without_filter_sends_empty_object(self):
        client = MagicMock()
        client.rpc.return_value.execute.return_value = Mock(data=None)
        store = VectorStore(client=client)

        assert store.query([0.1]) == []
        assert client.rpc.call_args.args[1]["filter"] == {}

    def test_query_drops_unparseable_metadata(self):
        client = MagicMock()
        client.rpc.return_value.execute.return_value = Mock(data=[
            {"id": "c1", "similarity": 0.5, "metadata": "{not json"},
        ])
        matches = VectorStore(client=client).query([0.1])
        assert matches[0].metadata == {}

    def test_query_rejects_non_json_metadata(self):
        client = MagicMock()
        client.rpc.return_value.execute.return_value = Mock(data=[
            {"id": "c1", "similarity": 0.5, "metadata": {"bad": object()}},
        ])
        with pytest.raises(PydanticValidationError):
            VectorStore(client=client).query([0.1])

    def test_query_validates_arguments(self):
        store = VectorStore(client=MagicMock())
        with pytest.raises(ValueError, match="Query embedding cannot be empty"):
            store.query([])
        with pytest.raises(ValueError, match="top_k must be positive"):
            store.query([0.1], top_k=0)

    def test_upsert(self):
        client = MagicMock()
        store = VectorStore(client=client)

        store.upsert([VectorRecord(id="c1", values=[0.1, 0.2], metadata={"page": 1})])

        client.table.assert_called_with("chunk_embeddings")
        records = client.table.return_value.upsert.call_args.args[0]
        assert records == [{"id": "c1", "embedding": [0.1, 0.2], "metadata": {"page": 1}}]

    def test_upsert_empty_list(self):
        with pytest.raises(ValueError, match="Vectors list cannot be empty"):
            VectorStore(client=MagicMock()).upsert([])

    def test_delete(self):
        client = MagicMock()
        store = VectorStore(client=client)

        store.delete(["c1", "c2"])
        client.table.return_value.delete.return_value.in_.assert_called_once_with("id", ["c1", "c2"])

        client.reset_mock()
        store.delete([])
        client.table.assert_not_called()

    def test_count(self):
        client = MagicMock()
        client.table.return_value.select.return_value.execute.return_value = Mock(count=12)
        assert VectorStore(client=client).count() == 12

        client.table.return_value.select.return_value.execute.return_value = Mock(count=None)
        assert VectorStore(client=client).count() == 0


class TestChunkStore:
    """Test suite for ChunkStore."""

    def _store_with_rows(self, rows):
        client = MagicMock()
        query = client.table.return_value.select.return_value.in_.return_value
        query.execute.return_value = Mock(data=rows)
        return ChunkStore(client=client), client

    def test_initialization_without_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            ChunkStore(supabase_url=None, supabase_key=None)

    def test_get_chunks_joins_documents(self):
        store, client = self._store_with_rows([
            {
                "id": "c1",
                "chunk_text": "RAG combines retrieval and generation.",
                "document_id": "d1",
                "documents": {"id": "d1", "title": "RAG Guide", "author": "Ana", "document_type": "pdf"},
            },
        ])

        records = store.get_chunks(["c1", "missing"])

        client.table.assert_called_once_with("chunks")
        client.table.return_value.select.return_value.in_.assert_called_once_with("id", ["c1", "missing"])
        assert records == {
            "c1": ChunkRecord(
                id="c1",
                text="RAG combines retrieval and generation.",
                document_id="d1",
                document_title="RAG Guide",
                document_author="Ana",
                document_type="pdf",
            )
        }

    def test_get_chunks_handles_list_embed_and_missing_document(self):
        store, _ = self._store_with_rows([
            {"id": "c1", "chunk_text": "one", "document_id": "d1", "documents": [{"id": "d1", "title": "Doc"}]},
            {"id": "c2", "chunk_text": "two", "document_id": "d2", "documents": None},
        ])

        records = store.get_chunks(["c1", "c2"])

        assert records["c1"].document_title == "Doc"
        assert records["c2"].document_id == "d2"
        assert records["c2"].document_title == "Untitled document"

    def test_get_chunks_empty_ids(self):
        client = MagicMock()
        assert ChunkStore(client=client).get_chunks([]) == {}
        client.table.assert_not_called()
