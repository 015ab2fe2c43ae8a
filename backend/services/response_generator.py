"""Shared contract for response generators."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence, Union

from config import LLM_MAX_TOKENS, MAX_MESSAGE_HISTORY, STREAM_WORD_DELAY
from models.api import Citation, TokenUsage
from models.conversation import ConversationTurn
from services.errors import ChatServiceError
from services.llm_client import LLMClient
from services.markdown_processor import MarkdownProcessor
from services.message_store import format_for_model
from services.streaming import stream_words

logger = logging.getLogger(__name__)


@dataclass
class PreparedPrompt:
    """Messages for the model call plus the citations backing them."""
    messages: List[Dict[str, str]]
    citations: List[Citation] = field(default_factory=list)


@dataclass
class GeneratedAnswer:
    """Final answer produced by a generator."""
    answer: str
    citations: List[Citation] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None
    fallback_used: bool = False


StreamItem = Union[str, GeneratedAnswer]


class ResponseGenerator(ABC):
    """
    Base class for generators answering a question with conversation history.

    Subclasses build the prompt (`prepare`) and may offer a deterministic
    fallback answer for when the model call fails.
    """

    name = "Generator"

    def __init__(
        self,
        llm_client: LLMClient,
        markdown_processor: Optional[MarkdownProcessor] = None,
        max_history: int = MAX_MESSAGE_HISTORY,
        stream_word_delay: float = STREAM_WORD_DELAY,
    ):
        self.llm_client = llm_client
        self.markdown_processor = markdown_processor or MarkdownProcessor()
        self.max_history = max_history
        self.stream_word_delay = stream_word_delay

    @abstractmethod
    async def prepare(self, question: str, turns: Sequence[ConversationTurn]) -> PreparedPrompt:
        """Build model messages (and citations) for a question."""

    def fallback_answer(self) -> Optional[str]:
        """Answer to return when the model call fails, or None to propagate the failure."""
        return None

    def format_messages(
        self, system_prompt: str, question: str, turns: Sequence[ConversationTurn]
    ) -> List[Dict[str, str]]:
        return format_for_model(turns, system_prompt, self.max_history, question)

    async def generate(
        self,
        question: str,
        turns: Sequence[ConversationTurn],
        max_tokens: int = LLM_MAX_TOKENS,
    ) -> GeneratedAnswer:
        """
        Answer a question.

        Args:
            question: Current user question
            turns: Conversation history, normally ending with the question
            max_tokens: Maximum tokens to generate

        Returns:
            GeneratedAnswer with normalized markdown and citations
        """
        prepared = await self.prepare(question, turns)

        try:
            response = await self.llm_client.generate(prepared.messages, max_tokens=max_tokens)
        except ChatServiceError as e:
            fallback = self.fallback_answer()
            if fallback is None:
                raise
            logger.warning(f"{self.name} model call failed ({e.code}), using fallback answer")
            return GeneratedAnswer(answer=fallback, fallback_used=True)

        return GeneratedAnswer(
            answer=self.markdown_processor.process(response.text),
            citations=prepared.citations,
            usage=TokenUsage(
                prompt_tokens=response.tokens_input,
                completion_tokens=response.tokens_output,
                total_tokens=response.tokens_input + response.tokens_output,
            ),
            model=response.model_used,
        )

    async def stream(
        self,
        question: str,
        turns: Sequence[ConversationTurn],
        max_tokens: int = LLM_MAX_TOKENS,
    ) -> AsyncIterator[StreamItem]:
        """
        Answer a question incrementally.

        Yields raw model tokens as they arrive, then exactly one
        GeneratedAnswer whose text is the normalized full answer. If the
        model fails before the first token and a fallback exists, the
        fallback is re-streamed word by word instead.
        """
        prepared = await self.prepare(question, turns)
        parts: List[str] = []
        metadata: Dict = {}

        try:
            async for event in self.llm_client.generate_stream(prepared.messages, max_tokens=max_tokens):
                if event["type"] == "token":
                    parts.append(event["content"])
                    yield event["content"]
                elif event["type"] == "metadata":
                    metadata = event["data"]
        except ChatServiceError as e:
            fallback = self.fallback_answer()
            if fallback is None or parts:
                raise
            logger.warning(f"{self.name} model stream failed ({e.code}), streaming fallback answer")
            async for word in stream_words(fallback, self.stream_word_delay):
                yield word
            yield GeneratedAnswer(answer=fallback, fallback_used=True)
            return

        tokens_input = metadata.get("tokens_input", 0)
        tokens_output = metadata.get("tokens_output", 0)
        yield GeneratedAnswer(
            answer=self.markdown_processor.process("".join(parts)),
            citations=prepared.citations,
            usage=TokenUsage(
                prompt_tokens=tokens_input,
                completion_tokens=tokens_output,
                total_tokens=tokens_input + tokens_output,
            ),
            model=metadata.get("model_used"),
        )
