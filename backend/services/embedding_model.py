"""Embedding model integration with Hugging Face Inference API."""
import asyncio
import time
import logging
from typing import List, Optional
import httpx
from config import (
    HUGGINGFACE_API_KEY,
    EMBEDDING_MODEL,
    EMBEDDING_DIMENSION,
    EMBEDDING_MAX_RETRIES,
    EMBEDDING_TIMEOUT,
)
from services.errors import AuthenticationError, ChatServiceError, NetworkError, RateLimitError

logger = logging.getLogger(__name__)

HF_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models/{model}/pipeline/feature-extraction"
MAX_BACKOFF_DELAY = 30.0


class EmbeddingModel:
    """Wrapper for Hugging Face Inference API embedding model."""

    def __init__(
        self,
        api_key: Optional[str] = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        dimension: int = EMBEDDING_DIMENSION,
        max_retries: int = EMBEDDING_MAX_RETRIES,
        initial_delay: float = 1.0,
        timeout: float = EMBEDDING_TIMEOUT,
        api_url: Optional[str] = None,
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier (default: sentence-transformers/all-mpnet-base-v2)
            dimension: Length of the vectors the model produces
            max_retries: Maximum number of attempts for 503 and transport errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Per-request timeout in seconds
            api_url: Override for the inference endpoint
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.api_key = api_key
        self.model_name = model_name
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.api_url = api_url or HF_INFERENCE_URL.format(model=model_name)
        self._dimension = dimension

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    @property
    def dimension(self) -> int:
        """Length of the embedding vectors produced by this model."""
        return self._dimension

    @property
    def retry_budget(self) -> float:
        """Worst-case seconds one embedding call spends across all attempts and backoff."""
        backoff, delay = 0.0, self.initial_delay
        for _ in range(self.max_retries - 1):
            backoff += delay
            delay = min(delay * 2, MAX_BACKOFF_DELAY)
        return self.max_retries * self.timeout + backoff

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text string.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            ValueError: If text is empty
            ChatServiceError: If the API request fails after all retries
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return (await self._embed_with_retry([text]))[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single API call.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors

        Raises:
            ValueError: If texts list is empty or contains only empty strings
            ChatServiceError: If the API request fails after all retries
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        # Filter out empty strings and log warning
        valid_texts = [t for t in texts if t and t.strip()]
        if len(valid_texts) < len(texts):
            logger.warning(f"Filtered out {len(texts) - len(valid_texts)} empty texts from batch")

        if not valid_texts:
            raise ValueError("All texts in batch are empty")

        return await self._embed_with_retry(valid_texts)

    async def _embed_with_retry(self, texts: List[str]) -> List[List[float]]:
        """
        Call the HF API with exponential backoff.

        Free-tier models "sleep" and answer 503 while loading, so 503s and
        transport errors are retried. Authentication and rate-limit
        responses are raised immediately.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors

        Raises:
            AuthenticationError: On 401/403
            RateLimitError: On 429
            NetworkError: On timeouts/transport errors after all retries
            ChatServiceError: On any other unexpected response
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "inputs": texts,
            "options": {
                "wait_for_model": True  # Wait for model to load if sleeping
            }
        }

        delay = self.initial_delay
        last_error = None

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    start_time = time.time()
                    response = await asyncio.wait_for(
                        client.post(self.api_url, headers=headers, json=payload), timeout=self.timeout
                    )
                    elapsed = time.time() - start_time
                except (httpx.TimeoutException, asyncio.TimeoutError):
                    last_error = NetworkError(
                        f"Embedding request timed out after {self.timeout}s",
                        code="EMBEDDING_TIMEOUT",
                    )
                except httpx.RequestError as e:
                    last_error = NetworkError(f"Embedding network error: {e}", code="EMBEDDING_NETWORK_ERROR", cause=e)
                else:
                    if response.status_code == 503:
                        last_error = NetworkError(
                            f"Embedding model still loading after {attempt + 1} attempts",
                            code="EMBEDDING_MODEL_LOADING",
                        )
                    else:
                        return self._parse_response(response, texts, elapsed)

                logger.warning(f"{last_error.message} (attempt {attempt + 1}/{self.max_retries})")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, MAX_BACKOFF_DELAY)

        # All retries exhausted
        logger.error(
            f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error.message}"
        )
        raise last_error

    def _parse_response(self, response: httpx.Response, texts: List[str], elapsed: float) -> List[List[float]]:
        if response.status_code in (401, 403):
            logger.error("Authentication failed for Hugging Face API")
            raise AuthenticationError("Invalid Hugging Face API key", code="EMBEDDING_AUTH_ERROR")

        if response.status_code == 429:
            logger.error("Rate limit exceeded for Hugging Face API")
            raise RateLimitError("Hugging Face rate limit exceeded", code="EMBEDDING_RATE_LIMIT")

        if response.status_code != 200:
            error_msg = f"Embedding request failed with status {response.status_code}: {response.text[:200]}"
            logger.error(error_msg)
            raise ChatServiceError(error_msg, code="EMBEDDING_API_ERROR")

        embeddings = response.json()
        if len(embeddings) != len(texts):
            raise ChatServiceError(
                f"Expected {len(texts)} embeddings, received {len(embeddings)}",
                code="EMBEDDING_API_ERROR",
            )
        for vector in embeddings:
            if len(vector) != self._dimension:
                raise ChatServiceError(
                    f"Embedding dimension {len(vector)} does not match expected {self._dimension}",
                    code="EMBEDDING_DIMENSION_MISMATCH",
                )

        logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")
        return embeddings
