"""LLM Client for Groq API integration."""
import time
from functools import lru_cache
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional
from groq import AsyncGroq
from groq import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AuthenticationError as GroqAuthenticationError,
    PermissionDeniedError,
    RateLimitError as GroqRateLimitError,
)
import logging
import tiktoken

from config import CHAT_MODEL, GROQ_API_KEY, LLM_MAX_TOKENS, LLM_TEMPERATURE, LLM_TIMEOUT
from services.errors import AuthenticationError, ChatServiceError, NetworkError, RateLimitError

logger = logging.getLogger(__name__)

Message = Dict[str, str]


@lru_cache(maxsize=1)
def _encoder() -> "tiktoken.Encoding":
    # Loaded on first use; tiktoken downloads and caches the BPE file.
    return tiktoken.get_encoding("o200k_base")


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


class LLMClient:
    """Client for interfacing with Groq API for chat completions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = CHAT_MODEL,
        temperature: float = LLM_TEMPERATURE,
        timeout: float = LLM_TIMEOUT,
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat model name
            temperature: Sampling temperature
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        # Rate limits are surfaced to the caller, never retried here.
        self.client = AsyncGroq(api_key=self.api_key, timeout=timeout, max_retries=0)
        logger.info(f"LLMClient initialized successfully (model={model})")

    async def generate(
        self,
        messages: List[Message],
        max_tokens: int = LLM_MAX_TOKENS,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Ordered {role, content} messages
            max_tokens: Maximum tokens to generate
            model: Override for the configured model

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            ChatServiceError: Typed error (authentication, rate limit, network, other)
        """
        model = model or self.model
        start_time = time.time()

        try:
            logger.debug(f"Generating response with model: {model}")

            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            raise self._map_error(e, model, start_time) from e

        latency_ms = int((time.time() - start_time) * 1000)
        text = response.choices[0].message.content or ""
        tokens_input = response.usage.prompt_tokens
        tokens_output = response.usage.completion_tokens

        logger.info(
            f"Generated response: model={model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            model_used=model
        )

    async def generate_stream(
        self,
        messages: List[Message],
        max_tokens: int = LLM_MAX_TOKENS,
        model: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream a chat completion token by token.

        Yields:
            {"type": "token", "content": str} for each delta, then one
            {"type": "metadata", "data": {...}} with token counts and latency

        Raises:
            ChatServiceError: Typed error, possibly after some tokens were yielded
        """
        model = model or self.model
        start_time = time.time()
        parts: List[str] = []
        usage = None

        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=self.temperature,
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices:
                    content = chunk.choices[0].delta.content
                    if content:
                        parts.append(content)
                        yield {"type": "token", "content": content}
                # Groq reports usage on the final chunk under x_groq
                chunk_usage = getattr(getattr(chunk, "x_groq", None), "usage", None)
                if chunk_usage is not None:
                    usage = chunk_usage
        except ChatServiceError:
            raise
        except Exception as e:
            raise self._map_error(e, model, start_time) from e

        latency_ms = int((time.time() - start_time) * 1000)
        if usage is not None:
            tokens_input, tokens_output = usage.prompt_tokens, usage.completion_tokens
        else:
            tokens_input = self.count_tokens(messages)
            tokens_output = len(_encoder().encode("".join(parts)))

        logger.info(
            f"Streamed response: model={model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )
        yield {
            "type": "metadata",
            "data": {
                "tokens_input": tokens_input,
                "tokens_output": tokens_output,
                "latency_ms": latency_ms,
                "model_used": model,
            },
        }

    def count_tokens(self, messages: List[Message]) -> int:
        """Estimate prompt tokens for a message list (o200k_base)."""
        return sum(len(_encoder().encode(m["content"])) for m in messages)

    @staticmethod
    def _map_error(error: Exception, model: str, start_time: float) -> ChatServiceError:
        """Translate a Groq SDK failure into the service error taxonomy."""
        latency_ms = int((time.time() - start_time) * 1000)
        details = {"model": model, "latency_ms": latency_ms, "original_error": str(error)}

        if isinstance(error, GroqRateLimitError):
            mapped = RateLimitError("Groq rate limit exceeded", code="RATE_LIMIT_ERROR",
                                    details={**details, "retry_after": 60}, cause=error)
        elif isinstance(error, (GroqAuthenticationError, PermissionDeniedError)):
            mapped = AuthenticationError("Groq authentication failed", code="AUTHENTICATION_ERROR",
                                         details=details, cause=error)
        elif isinstance(error, APITimeoutError):
            mapped = NetworkError("Groq request timed out", code="TIMEOUT_ERROR", details=details, cause=error)
        elif isinstance(error, APIConnectionError):
            mapped = NetworkError("Could not connect to Groq", code="CONNECTION_ERROR", details=details, cause=error)
        elif isinstance(error, APIError):
            mapped = ChatServiceError(f"Groq API error: {error}", code="API_ERROR", details=details, cause=error)
        else:
            mapped = ChatServiceError(
                f"Unexpected error during generation: {error}",
                code="UNKNOWN_ERROR",
                details={**details, "error_type": type(error).__name__},
                cause=error,
            )

        logger.error(
            f"LLM error: code={mapped.code}, model={model}, latency={latency_ms}ms, error={error}",
            exc_info=error,
            extra={"error_code": mapped.code, "error_details": mapped.details}
        )
        return mapped
