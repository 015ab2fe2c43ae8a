"""Vector index backed by Supabase pgvector."""
import json
import logging
from typing import List, Optional
from supabase import create_client, Client
from models.chunk import VectorMatch, VectorRecord
from models.metadata import Metadata, normalize_metadata
from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)


class VectorStore:
    """Nearest-neighbour queries over chunk embeddings using Supabase pgvector."""

    def __init__(
        self,
        client: Optional[Client] = None,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        table_name: str = "chunk_embeddings",
        match_function: str = "match_chunk_embeddings",
    ):
        """
        Initialize the vector store.

        Args:
            client: Existing Supabase client to share (created from the
                credentials when omitted)
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Table holding id, embedding and metadata columns
            match_function: Name of the similarity-search RPC function

        Raises:
            ValueError: If no client is given and credentials are missing
        """
        if client is None:
            if not supabase_url or not supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")
            client = create_client(supabase_url, supabase_key)

        self.client: Client = client
        self.table_name = table_name
        self.match_function = match_function

        logger.info(f"Initialized VectorStore with table: {table_name}")

    def query(
        self,
        vector: List[float],
        top_k: int = 5,
        filter: Optional[Metadata] = None,
    ) -> List[VectorMatch]:
        """
        Find the chunks nearest to a query vector by cosine similarity.

        The RPC function is expected to look like:

            CREATE OR REPLACE FUNCTION match_chunk_embeddings(
              query_embedding vector(768),
              match_count int,
              filter jsonb DEFAULT '{}'
            )
            RETURNS TABLE (id text, metadata jsonb, similarity float)
            LANGUAGE sql STABLE
            AS $$
              SELECT id, metadata, 1 - (embedding <=> query_embedding) AS similarity
              FROM chunk_embeddings
              WHERE metadata @> filter
              ORDER BY embedding <=> query_embedding
              LIMIT match_count;
            $$;

        Args:
            vector: Query embedding
            top_k: Number of matches to return
            filter: Optional metadata containment filter

        Returns:
            Matches ordered by descending similarity

        Raises:
            ValueError: If vector is empty or top_k is invalid
        """
        if not vector:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        response = self.client.rpc(
            self.match_function,
            {
                "query_embedding": vector,
                "match_count": top_k,
                "filter": filter or {},
            }
        ).execute()

        matches = [
            VectorMatch(
                id=str(row["id"]),
                score=float(row["similarity"]),
                metadata=normalize_metadata(self._parse_metadata(row.get("metadata"))),
            )
            for row in response.data or []
        ]
        matches.sort(key=lambda m: m.score, reverse=True)

        logger.debug(f"Vector query returned {len(matches)} matches")
        return matches

    def upsert(self, vectors: List[VectorRecord]) -> None:
        """
        Insert or update embeddings (used by the ingestion pipeline).

        Raises:
            ValueError: If vectors list is empty
        """
        if not vectors:
            raise ValueError("Vectors list cannot be empty")

        records = [
            {"id": v.id, "embedding": v.values, "metadata": v.metadata}
            for v in vectors
        ]
        self.client.table(self.table_name).upsert(records).execute()
        logger.info(f"Upserted {len(records)} vectors")

    def delete(self, ids: List[str]) -> None:
        """Delete embeddings by chunk id."""
        if not ids:
            return
        self.client.table(self.table_name).delete().in_("id", ids).execute()
        logger.info(f"Deleted {len(ids)} vectors")

    def count(self) -> int:
        """
        Get the total number of vectors in the index.

        Returns:
            Number of vectors stored
        """
        response = self.client.table(self.table_name).select("id", count="exact").execute()
        return response.count if response.count is not None else 0

    @staticmethod
    def _parse_metadata(raw) -> Optional[dict]:
        # PostgREST returns jsonb as objects, but rows written as text come back as strings.
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Discarding unparseable vector metadata")
                return None
        return raw
