"""Data models for the Knowledge Base Chat Assistant."""
from .conversation import ConversationState, ConversationTurn, ParticipantRole, Role
from .chunk import ChunkRecord, RetrievedPassage, VectorMatch, VectorRecord
from .metadata import Metadata, normalize_metadata
from .api import (
    ChatRequest,
    ChatResponse,
    Citation,
    ConversationMessage,
    ConversationView,
    ErrorInfo,
    RegistryStats,
    TokenUsage,
)

__all__ = [
    "ConversationState",
    "ConversationTurn",
    "ParticipantRole",
    "Role",
    "ChunkRecord",
    "RetrievedPassage",
    "VectorMatch",
    "VectorRecord",
    "Metadata",
    "normalize_metadata",
    "ChatRequest",
    "ChatResponse",
    "Citation",
    "ConversationMessage",
    "ConversationView",
    "ErrorInfo",
    "RegistryStats",
    "TokenUsage",
]
