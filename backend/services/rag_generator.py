"""Answers knowledge-base questions with retrieval-augmented generation."""
import logging
from typing import List, Sequence

from config import CONTENT_TRUNCATE_LENGTH
from models.api import Citation
from models.chunk import RetrievedPassage
from models.conversation import ConversationTurn
from services.llm_client import LLMClient
from services.response_generator import PreparedPrompt, ResponseGenerator
from services.retrieval_engine import RetrievalEngine

logger = logging.getLogger(__name__)

NO_CONTEXT_NOTICE = (
    "No relevant context was found in the knowledge base for this question. "
    "Tell the user clearly that the knowledge base does not cover it, and do not "
    "invent facts, sources or citations."
)


class RAGGenerator(ResponseGenerator):
    """Knowledge-base questions answered from retrieved passages, with citations."""

    name = "RAGService"

    def __init__(self, llm_client: LLMClient, retrieval_engine: RetrievalEngine, **kwargs):
        super().__init__(llm_client, **kwargs)
        self.retrieval_engine = retrieval_engine

    async def prepare(self, question: str, turns: Sequence[ConversationTurn]) -> PreparedPrompt:
        passages = await self.retrieval_engine.retrieve(question)
        if not passages:
            logger.info("No passages retrieved, prompting without knowledge base context")

        system_prompt = self._system_prompt(passages, question)
        return PreparedPrompt(
            messages=self.format_messages(system_prompt, question, turns),
            citations=[self._citation(p) for p in passages],
        )

    def _system_prompt(self, passages: List[RetrievedPassage], question: str) -> str:
        context = self.format_context(passages) if passages else NO_CONTEXT_NOTICE
        return f"""You are a helpful assistant answering questions based on the provided context.

Knowledge base context:
{context}

Instructions:
- Answer the question based on the provided context and conversation history
- If the context doesn't contain enough information, say so clearly
- Be conversational and natural in your response
- If appropriate, reference previous conversation points
- Format your response clearly and professionally using proper markdown
{self.markdown_processor.formatting_instructions(question)}"""

    @staticmethod
    def format_context(passages: List[RetrievedPassage]) -> str:
        """Concatenate passages into a numbered context block."""
        return "\n\n".join(
            f"[Source {i}: {p.document_title}]\n{p.text}"
            for i, p in enumerate(passages, start=1)
        )

    @staticmethod
    def _citation(passage: RetrievedPassage) -> Citation:
        content = passage.text
        if len(content) > CONTENT_TRUNCATE_LENGTH:
            content = content[:CONTENT_TRUNCATE_LENGTH].rstrip() + "..."
        return Citation(
            chunk_id=passage.chunk_id,
            document_id=passage.document_id,
            document_title=passage.document_title,
            content=content,
            similarity_score=passage.similarity_score,
            metadata=passage.metadata,
        )
