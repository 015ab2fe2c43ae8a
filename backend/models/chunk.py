"""Chunk and passage data models."""
from dataclasses import dataclass, field
from typing import List, Optional

from models.metadata import Metadata


@dataclass(frozen=True)
class VectorMatch:
    """Nearest-neighbour match returned by the vector index."""
    id: str
    score: float  # cosine similarity
    metadata: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class VectorRecord:
    """Embedding to be written to the vector index."""
    id: str
    values: List[float]
    metadata: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class ChunkRecord:
    """Chunk text and parent document fields resolved from the relational store."""
    id: str
    text: str
    document_id: str
    document_title: str
    document_author: Optional[str] = None
    document_type: Optional[str] = None


@dataclass(frozen=True)
class RetrievedPassage:
    """Chunk with similarity score and provenance for a given query."""
    chunk_id: str
    document_id: str
    document_title: str
    text: str
    similarity_score: float
    document_author: Optional[str] = None
    metadata: Metadata = field(default_factory=dict)
