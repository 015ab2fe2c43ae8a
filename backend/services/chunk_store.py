"""Chunk lookups against the Supabase relational store."""
import logging
from typing import Any, Dict, List, Optional
from supabase import create_client, Client
from models.chunk import ChunkRecord
from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)


class ChunkStore:
    """Resolve chunk ids to chunk text and parent-document fields."""

    CHUNK_COLUMNS = "id, chunk_text, document_id, documents(id, title, author, document_type)"

    def __init__(
        self,
        client: Optional[Client] = None,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        table_name: str = "chunks",
    ):
        """
        Initialize the chunk store.

        Args:
            client: Existing Supabase client to share
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Table holding chunk rows with a documents foreign key

        Raises:
            ValueError: If no client is given and credentials are missing
        """
        if client is None:
            if not supabase_url or not supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")
            client = create_client(supabase_url, supabase_key)

        self.client: Client = client
        self.table_name = table_name

    def get_chunks(self, chunk_ids: List[str]) -> Dict[str, ChunkRecord]:
        """
        Fetch chunks and their documents in a single query.

        Args:
            chunk_ids: Chunk ids to resolve

        Returns:
            Mapping of chunk id to ChunkRecord; ids that do not exist are absent
        """
        if not chunk_ids:
            return {}

        response = (
            self.client.table(self.table_name)
            .select(self.CHUNK_COLUMNS)
            .in_("id", list(chunk_ids))
            .execute()
        )

        records = {}
        for row in response.data or []:
            record = self._to_record(row)
            records[record.id] = record

        logger.debug(f"Resolved {len(records)} of {len(chunk_ids)} chunks")
        return records

    @staticmethod
    def _to_record(row: Dict[str, Any]) -> ChunkRecord:
        document = row.get("documents") or {}
        # One-to-one embeds come back as an object, but some PostgREST versions return a list.
        if isinstance(document, list):
            document = document[0] if document else {}

        return ChunkRecord(
            id=str(row["id"]),
            text=row["chunk_text"],
            document_id=str(document.get("id") or row.get("document_id") or ""),
            document_title=document.get("title") or "Untitled document",
            document_author=document.get("author"),
            document_type=document.get("document_type"),
        )
