"""Retrieval engine for orchestrating query embedding and chunk retrieval."""
import asyncio
import json
import logging
from typing import List, Optional, Tuple

import httpx

from config import (
    EMPTY_QUERY_CACHE_TTL,
    QUERY_CACHE_MAX_SIZE,
    QUERY_CACHE_TTL,
    RAG_MAX_TOP_K,
    RAG_THRESHOLD,
    RAG_TOP_K,
    VECTOR_TIMEOUT,
    EMBEDDING_TOTAL_TIMEOUT,
)
from models.chunk import RetrievedPassage
from models.metadata import Metadata
from services.chunk_store import ChunkStore
from services.embedding_model import EmbeddingModel
from services.errors import ChatServiceError, NetworkError, RetrievalError
from services.query_cache import QueryCache
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, int, str, float]


class RetrievalEngine:
    """Turn a free-text query into ranked passages above a similarity floor."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingModel,
        chunk_store: ChunkStore,
        top_k: int = RAG_TOP_K,
        threshold: float = RAG_THRESHOLD,
        filter: Optional[Metadata] = None,
        cache: Optional[QueryCache] = None,
        embed_timeout: float = EMBEDDING_TOTAL_TIMEOUT,
        index_timeout: float = VECTOR_TIMEOUT,
    ):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: Vector index for similarity search
            embedding_model: Embedding client for query vectors
            chunk_store: Relational store resolving chunk text and titles
            top_k: Default number of neighbours requested (capped at 20)
            threshold: Minimum similarity score kept
            filter: Default metadata filter passed to the index
            cache: Result cache (a fresh one is created when omitted)
            embed_timeout: Seconds allowed for the whole embedding call,
                including the client's own retries and backoff
            index_timeout: Seconds allowed for each index/store call
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.chunk_store = chunk_store
        self.top_k = top_k
        self.threshold = threshold
        self.filter = filter
        self.cache: QueryCache = cache if cache is not None else QueryCache(
            default_ttl=QUERY_CACHE_TTL, max_size=QUERY_CACHE_MAX_SIZE
        )
        self.embed_timeout = embed_timeout
        self.index_timeout = index_timeout
        logger.info(f"Initialized RetrievalEngine (top_k={top_k}, threshold={threshold})")

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
        filter: Optional[Metadata] = None,
    ) -> List[RetrievedPassage]:
        """
        Retrieve relevant passages for a query.

        1. Embed the query
        2. Ask the vector index for the top_k nearest neighbours
        3. Keep matches with score >= threshold
        4. Batch-resolve surviving ids against the chunk store
        5. Drop ids the store does not know (index and store out of sync)
        6. Sort by descending score

        Results are cached per (normalized query, top_k, filter, threshold);
        empty results are cached for a shorter time so newly ingested
        documents show up quickly.

        Args:
            query: User question
            top_k: Override for the number of neighbours (clamped to 1..20)
            threshold: Override for the similarity floor
            filter: Override for the metadata filter

        Returns:
            Passages sorted by descending similarity, empty for a blank query

        Raises:
            RetrievalError: If embedding, index or store operations fail
        """
        # Handle empty query strings gracefully
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        top_k = max(1, min(top_k if top_k is not None else self.top_k, RAG_MAX_TOP_K))
        threshold = threshold if threshold is not None else self.threshold
        filter = filter if filter is not None else self.filter

        cache_key = self._cache_key(query, top_k, filter, threshold)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for query retrieval ({len(cached)} passages)")
            return list(cached)

        try:
            passages = await self._retrieve_uncached(query, top_k, threshold, filter)
        except RetrievalError:
            raise
        except Exception as e:
            cause = self._classify(e)
            logger.error(f"Failed to retrieve chunks for query: {cause.message}")
            raise RetrievalError(
                f"Failed to retrieve chunks for query: {cause.message}",
                details={"cause_code": cause.code},
                cause=cause,
            ) from e

        ttl = QUERY_CACHE_TTL if passages else EMPTY_QUERY_CACHE_TTL
        self.cache.set(cache_key, tuple(passages), ttl=ttl)
        return passages

    async def _retrieve_uncached(
        self,
        query: str,
        top_k: int,
        threshold: float,
        filter: Optional[Metadata],
    ) -> List[RetrievedPassage]:
        # Step 1: Embed the user query
        logger.debug(f"Embedding query: {query[:100]}...")
        query_embedding = await asyncio.wait_for(
            self.embedding_model.embed_text(query), timeout=self.embed_timeout
        )

        # Step 2: Nearest-neighbour search
        matches = await asyncio.wait_for(
            asyncio.to_thread(self.vector_store.query, query_embedding, top_k, filter),
            timeout=self.index_timeout,
        )
        logger.info(
            f"Found {len(matches)} vectors with scores: "
            f"{', '.join(f'{m.score:.3f}' for m in matches)}"
        )

        # Step 3: Apply similarity threshold
        relevant = [m for m in matches if m.score >= threshold]
        logger.debug(f"After threshold filtering ({threshold}): {len(relevant)} relevant vectors")
        if not relevant:
            return []

        # Step 4: Batch-resolve chunk text and document fields
        records = await asyncio.wait_for(
            asyncio.to_thread(self.chunk_store.get_chunks, [m.id for m in relevant]),
            timeout=self.index_timeout,
        )

        # Step 5: Join scores with chunk text, skipping unresolved ids
        passages = []
        for match in relevant:
            record = records.get(match.id)
            if record is None:
                logger.warning(f"Vector match {match.id} has no chunk in the store, skipping")
                continue
            passages.append(RetrievedPassage(
                chunk_id=record.id,
                document_id=record.document_id,
                document_title=record.document_title,
                document_author=record.document_author,
                text=record.text,
                similarity_score=match.score,
                metadata=match.metadata,
            ))

        # Step 6: Sort by similarity
        passages.sort(key=lambda p: p.similarity_score, reverse=True)
        logger.info(f"Retrieved {len(passages)} relevant chunks")
        return passages

    @staticmethod
    def _cache_key(query: str, top_k: int, filter: Optional[Metadata], threshold: float) -> CacheKey:
        filter_key = json.dumps(filter, sort_keys=True) if filter else "nofilter"
        return (query.lower().strip(), top_k, filter_key, threshold)

    @staticmethod
    def _classify(error: Exception) -> ChatServiceError:
        """Express an arbitrary collaborator failure as a typed error."""
        if isinstance(error, ChatServiceError):
            return error
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return NetworkError("Knowledge base request timed out", code="RETRIEVAL_TIMEOUT")
        if isinstance(error, (httpx.TimeoutException, httpx.RequestError)):
            return NetworkError(f"Knowledge base network error: {error}", code="RETRIEVAL_NETWORK_ERROR", cause=error)
        return ChatServiceError(f"{type(error).__name__}: {error}", code="RETRIEVAL_BACKEND_ERROR", cause=error)
