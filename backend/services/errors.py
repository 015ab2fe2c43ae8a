"""Error types for the conversational pipeline.

Every collaborator boundary (embedding API, vector index, chunk store,
language model) raises one of these, so the orchestrator can classify a
failure by its type instead of inspecting message text.
"""
from enum import Enum
from typing import Any, Dict, Optional

from models.api import ErrorInfo


class ErrorCategory(str, Enum):
    """User-facing failure categories."""
    VALIDATION = "validation_error"
    AUTHENTICATION = "authentication_error"
    RATE_LIMIT = "rate_limit_error"
    NETWORK = "network_error"
    RETRIEVAL = "retrieval_error"
    CONVERSATION_NOT_FOUND = "conversation_not_found"
    INTERNAL = "internal_error"


class ChatServiceError(Exception):
    """Base error with a category, a machine code and a user-safe message."""

    category = ErrorCategory.INTERNAL
    default_code = "INTERNAL_ERROR"
    user_message = "Something went wrong while processing your message. Please try again."
    retryable = False

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or self.user_message
        self.code = code or self.default_code
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Describe the error without leaking internal detail."""
        return ErrorInfo(
            category=self.category.value,
            code=self.code,
            message=self.user_message,
            retryable=self.retryable,
        )


class ValidationError(ChatServiceError):
    """Malformed or oversized input."""
    category = ErrorCategory.VALIDATION
    default_code = "VALIDATION_ERROR"
    user_message = "The message is empty or too long."

    def to_error_info(self) -> ErrorInfo:
        # Validation messages describe the caller's own input, so they are safe to return.
        info = super().to_error_info()
        info.message = self.message
        return info


class AuthenticationError(ChatServiceError):
    """Missing or rejected upstream credentials."""
    category = ErrorCategory.AUTHENTICATION
    default_code = "AUTHENTICATION_ERROR"
    user_message = "The assistant is temporarily unavailable due to a configuration issue."


class RateLimitError(ChatServiceError):
    """Upstream quota or rate limit reached."""
    category = ErrorCategory.RATE_LIMIT
    default_code = "RATE_LIMIT_ERROR"
    user_message = "Service temporarily unavailable due to rate limits. Please try again in a moment."
    retryable = True


class NetworkError(ChatServiceError):
    """Timeout or connection failure talking to an external service."""
    category = ErrorCategory.NETWORK
    default_code = "NETWORK_ERROR"
    user_message = "A network error occurred while contacting an upstream service. Please try again shortly."
    retryable = True


class RetrievalError(ChatServiceError):
    """Embedding or vector index failure inside the knowledge-base path."""
    category = ErrorCategory.RETRIEVAL
    default_code = "RETRIEVAL_ERROR"
    user_message = "I couldn't search the knowledge base right now. Please try again in a moment."
    retryable = True

    @property
    def cause_category(self) -> ErrorCategory:
        """Category of the underlying failure (network if unknown)."""
        if isinstance(self.cause, ChatServiceError):
            return self.cause.category
        return ErrorCategory.NETWORK


class ConversationNotFoundError(ChatServiceError):
    """A client referenced a conversation the registry does not hold."""
    category = ErrorCategory.CONVERSATION_NOT_FOUND
    default_code = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found in memory")


HTTP_STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.AUTHENTICATION: 503,
    ErrorCategory.RATE_LIMIT: 429,
    ErrorCategory.NETWORK: 504,
    ErrorCategory.RETRIEVAL: 200,  # degraded answer, the turn still gets a reply
    ErrorCategory.CONVERSATION_NOT_FOUND: 404,
    ErrorCategory.INTERNAL: 500,
}


def http_status_for(category: str) -> int:
    """Map an error category value to the HTTP status the API returns."""
    try:
        return HTTP_STATUS_BY_CATEGORY[ErrorCategory(category)]
    except ValueError:
        return 500
