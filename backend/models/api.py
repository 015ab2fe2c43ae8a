"""API request and response models."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from config import LLM_MAX_TOKENS, MAX_MESSAGE_LENGTH
from models.conversation import ParticipantRole
from models.metadata import Metadata


class ConversationMessage(BaseModel):
    """A {role, content} message as exchanged with clients."""
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Inbound chat message with optional client-held history."""
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    messages: Optional[List[ConversationMessage]] = None
    conversation_id: Optional[str] = None
    max_tokens: int = Field(default=LLM_MAX_TOKENS, ge=100, le=4000)
    user_role: ParticipantRole = ParticipantRole.USER


class Citation(BaseModel):
    """Source reference attached to a generated answer."""
    chunk_id: str
    document_id: str
    document_title: str
    content: str
    similarity_score: float
    metadata: Metadata = Field(default_factory=dict)


class TokenUsage(BaseModel):
    """Token counts reported for one model call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ErrorInfo(BaseModel):
    """User-safe description of a failed or degraded request."""
    category: str
    code: str
    message: str
    retryable: bool = False


class ChatResponse(BaseModel):
    """Structured result of processing one chat message."""
    answer: str
    conversation_id: str
    source_documents: List[Citation] = Field(default_factory=list)
    generator_used: Optional[str] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    messages: List[ConversationMessage] = Field(default_factory=list)
    error: Optional[ErrorInfo] = None
    latency_ms: int = 0


class ConversationView(BaseModel):
    """Snapshot of a stored conversation."""
    conversation_id: str
    participant_role: ParticipantRole
    messages: List[ConversationMessage]
    created_at: str
    updated_at: str


class RegistryStats(BaseModel):
    """Counts across all stored conversations."""
    total_conversations: int
    total_messages: int
