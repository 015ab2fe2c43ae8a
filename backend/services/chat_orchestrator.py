"""Single entry point for processing chat messages."""
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

from config import MAX_MESSAGE_LENGTH, STREAM_WORD_DELAY
from models.api import ChatRequest, ChatResponse, ConversationView, RegistryStats
from models.conversation import ConversationState, ConversationTurn
from services.conversation_registry import ConversationRegistry
from services.errors import ChatServiceError, RetrievalError, ValidationError
from services.intent_router import ClassifiedIntent, IntentKind, IntentRouter
from services.message_store import append_assistant, append_user, reconcile, to_messages
from services.response_generator import GeneratedAnswer, ResponseGenerator
from services.streaming import stream_words

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """
    Runs one chat request end to end.

    The request moves through validate → load conversation → append user
    turn → route → generate → append assistant turn → commit. Turns are built
    on a local copy and committed only after generation succeeds, so a failed
    or cancelled request leaves the stored conversation unchanged.
    """

    def __init__(
        self,
        registry: ConversationRegistry,
        router: IntentRouter,
        company_generator: ResponseGenerator,
        rag_generator: ResponseGenerator,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        stream_word_delay: float = STREAM_WORD_DELAY,
    ):
        """
        Initialize the orchestrator.

        Args:
            registry: Shared conversation registry
            router: Intent classifier
            company_generator: Generator for company/meta questions
            rag_generator: Generator for knowledge-base questions
            max_message_length: Maximum accepted message length in characters
            stream_word_delay: Delay between re-streamed words in seconds
        """
        self.registry = registry
        self.router = router
        self.generators = {
            IntentKind.COMPANY_INFO: company_generator,
            IntentKind.KNOWLEDGE_BASE: rag_generator,
        }
        self.max_message_length = max_message_length
        self.stream_word_delay = stream_word_delay

    async def process_message(self, request: ChatRequest) -> ChatResponse:
        """
        Process a chat message and return a structured response.

        Failures never raise: the response carries an `error` block and a
        user-safe answer instead.
        """
        start_time = time.time()
        conversation_id = request.conversation_id or ""

        try:
            # Step 1: Validate
            question = self._validate(request.message)

            # Step 2: Load conversation, held for the rest of the request
            async with self.registry.checkout(request.conversation_id, request.user_role) as state:
                conversation_id = state.conversation_id
                turns = append_user(self._load_turns(state, request), question)

                # Step 3: Route
                intent = self._route(question)
                generator = self.generators[intent.kind]

                # Step 4: Generate
                try:
                    result = await generator.generate(question, turns, request.max_tokens)
                except RetrievalError as e:
                    return self._degraded_response(e, state, generator.name, start_time)

                # Step 5: Commit user and assistant turns together
                turns = append_assistant(turns, result.answer)
                self.registry.commit(state, turns)

            latency_ms = int((time.time() - start_time) * 1000)
            logger.info(
                f"Processed message for {conversation_id} via {generator.name} in {latency_ms}ms",
                extra={"conversation_id": conversation_id, "generator": generator.name,
                       "citations": len(result.citations), "latency_ms": latency_ms},
            )
            return ChatResponse(
                answer=result.answer,
                conversation_id=conversation_id,
                source_documents=result.citations,
                generator_used=generator.name,
                usage=result.usage,
                messages=to_messages(turns),
                latency_ms=latency_ms,
            )

        except ChatServiceError as e:
            self._log_failure(e, conversation_id)
            return self._error_response(e, conversation_id, start_time)
        except Exception as e:
            logger.error(f"Unexpected error processing message: {e}", exc_info=True)
            return self._error_response(ChatServiceError(cause=e), conversation_id, start_time)

    async def stream_message(self, request: ChatRequest) -> AsyncIterator[Dict[str, Any]]:
        """
        Process a chat message, yielding stream events.

        Events, in order: one `start`, any number of `chunk`, then either
        `complete` or `error`.
        """
        start_time = time.time()
        conversation_id = request.conversation_id or ""

        try:
            question = self._validate(request.message)

            async with self.registry.checkout(request.conversation_id, request.user_role) as state:
                conversation_id = state.conversation_id
                yield {"type": "start", "conversation_id": conversation_id}

                turns = append_user(self._load_turns(state, request), question)
                intent = self._route(question)
                generator = self.generators[intent.kind]

                index = 0
                result: Optional[GeneratedAnswer] = None
                try:
                    async for item in generator.stream(question, turns, request.max_tokens):
                        if isinstance(item, GeneratedAnswer):
                            result = item
                            continue
                        yield {"type": "chunk", "content": item, "index": index}
                        index += 1
                except RetrievalError as e:
                    self._log_failure(e, conversation_id)
                    async for word in stream_words(e.user_message, self.stream_word_delay):
                        yield {"type": "chunk", "content": word, "index": index}
                        index += 1
                    yield {
                        "type": "complete",
                        "conversation_id": conversation_id,
                        "message": e.user_message,
                        "metadata": {
                            "generator_used": generator.name,
                            "source_documents": [],
                            "usage": None,
                            "messages": self._dump_messages(state.turns),
                            "error": e.to_error_info().model_dump(),
                        },
                    }
                    return

                if result is None:
                    raise ChatServiceError("Generator stream ended without a final answer",
                                           code="INCOMPLETE_STREAM")

                turns = append_assistant(turns, result.answer)
                self.registry.commit(state, turns)

            latency_ms = int((time.time() - start_time) * 1000)
            logger.info(f"Streamed {index} chunks for {conversation_id} via {generator.name} in {latency_ms}ms")
            yield {
                "type": "complete",
                "conversation_id": conversation_id,
                "message": result.answer,
                "metadata": {
                    "generator_used": generator.name,
                    "source_documents": [c.model_dump() for c in result.citations],
                    "usage": result.usage.model_dump(),
                    "messages": self._dump_messages(turns),
                    "latency_ms": latency_ms,
                },
            }

        except ChatServiceError as e:
            self._log_failure(e, conversation_id)
            yield self._error_event(e)
        except Exception as e:
            logger.error(f"Unexpected error during streaming: {e}", exc_info=True)
            yield self._error_event(ChatServiceError(cause=e))

    def get_conversation(self, conversation_id: str) -> Optional[ConversationView]:
        """Snapshot a stored conversation, or None if unknown."""
        state = self.registry.get(conversation_id)
        if state is None:
            return None
        return ConversationView(
            conversation_id=state.conversation_id,
            participant_role=state.participant_role,
            messages=to_messages(state.turns),
            created_at=state.created_at.isoformat(),
            updated_at=state.updated_at.isoformat(),
        )

    def clear_conversation(self, conversation_id: str) -> bool:
        return self.registry.clear(conversation_id)

    def stats(self) -> RegistryStats:
        return RegistryStats(**self.registry.stats())

    def _validate(self, message: str) -> str:
        question = (message or "").strip()
        if not question:
            raise ValidationError("Message is required and cannot be empty", code="EMPTY_MESSAGE")
        if len(question) > self.max_message_length:
            raise ValidationError(
                f"Message is too long (maximum {self.max_message_length} characters)",
                code="MESSAGE_TOO_LONG",
                details={"length": len(question)},
            )
        return question

    @staticmethod
    def _load_turns(state: ConversationState, request: ChatRequest) -> List[ConversationTurn]:
        if request.messages:
            return reconcile(request.messages)
        return list(state.turns)

    def _route(self, question: str) -> ClassifiedIntent:
        intent = self.router.classify(question)
        logger.info(
            f"Routed to {intent.kind.value}: {intent.reasoning}",
            extra={"intent": intent.kind.value, "keywords": intent.triggering_keywords},
        )
        return intent

    def _degraded_response(
        self,
        error: RetrievalError,
        state: ConversationState,
        generator_name: str,
        start_time: float,
    ) -> ChatResponse:
        self._log_failure(error, state.conversation_id)
        return ChatResponse(
            answer=error.user_message,
            conversation_id=state.conversation_id,
            generator_used=generator_name,
            messages=to_messages(state.turns),
            error=error.to_error_info(),
            latency_ms=int((time.time() - start_time) * 1000),
        )

    @staticmethod
    def _error_response(error: ChatServiceError, conversation_id: str, start_time: float) -> ChatResponse:
        info = error.to_error_info()
        return ChatResponse(
            answer=info.message,
            conversation_id=conversation_id,
            error=info,
            latency_ms=int((time.time() - start_time) * 1000),
        )

    @staticmethod
    def _error_event(error: ChatServiceError) -> Dict[str, Any]:
        info = error.to_error_info()
        return {
            "type": "error",
            "error": {"category": info.category, "code": info.code, "message": info.message},
        }

    @staticmethod
    def _dump_messages(turns: List[ConversationTurn]) -> List[Dict[str, str]]:
        return [m.model_dump() for m in to_messages(turns)]

    @staticmethod
    def _log_failure(error: ChatServiceError, conversation_id: str) -> None:
        extra = {"error_category": error.category.value, "error_code": error.code,
                 "conversation_id": conversation_id}
        if isinstance(error, ValidationError):
            logger.warning(f"Rejected message: {error.message}", extra=extra)
            return
        if isinstance(error, RetrievalError):
            extra["cause_category"] = error.cause_category.value
        logger.error(f"Chat request failed: {error.message}", exc_info=error.cause or error, extra=extra)
