"""Services for the Knowledge Base Chat Assistant."""
from .errors import (
    AuthenticationError,
    ChatServiceError,
    ConversationNotFoundError,
    ErrorCategory,
    NetworkError,
    RateLimitError,
    RetrievalError,
    ValidationError,
    http_status_for,
)
from .embedding_model import EmbeddingModel
from .vector_store import VectorStore
from .chunk_store import ChunkStore
from .query_cache import QueryCache
from .retrieval_engine import RetrievalEngine
from .intent_router import IntentRouter, IntentKind, ClassifiedIntent
from .llm_client import LLMClient, LLMResponse
from .markdown_processor import MarkdownProcessor
from .response_generator import GeneratedAnswer, ResponseGenerator
from .company_info_generator import CompanyInfoGenerator
from .rag_generator import RAGGenerator
from .conversation_registry import ConversationRegistry
from .chat_orchestrator import ChatOrchestrator

__all__ = [
    'AuthenticationError', 'ChatServiceError', 'ConversationNotFoundError', 'ErrorCategory',
    'NetworkError', 'RateLimitError', 'RetrievalError', 'ValidationError', 'http_status_for',
    'EmbeddingModel', 'VectorStore', 'ChunkStore', 'QueryCache', 'RetrievalEngine',
    'IntentRouter', 'IntentKind', 'ClassifiedIntent', 'LLMClient', 'LLMResponse',
    'MarkdownProcessor', 'GeneratedAnswer', 'ResponseGenerator', 'CompanyInfoGenerator',
    'RAGGenerator', 'ConversationRegistry', 'ChatOrchestrator',
]
