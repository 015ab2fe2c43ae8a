"""Main entry point for the Knowledge Base Chat Assistant API."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from config import CORS_ORIGINS, LOG_FORMAT, LOG_LEVEL, PORT
from logger import setup_logging
from models.api import ChatRequest, ChatResponse, ConversationView, RegistryStats
from services.chat_orchestrator import ChatOrchestrator
from services.chunk_store import ChunkStore
from services.company_info_generator import CompanyInfoGenerator
from services.conversation_registry import ConversationRegistry
from services.embedding_model import EmbeddingModel
from services.errors import http_status_for
from services.intent_router import IntentRouter
from services.llm_client import LLMClient
from services.rag_generator import RAGGenerator
from services.retrieval_engine import RetrievalEngine
from services.streaming import DONE_SENTINEL, format_sse
from services.vector_store import VectorStore

if LOG_FORMAT == "json":
    setup_logging(LOG_LEVEL)

# Initialize logging
logger = logging.getLogger(__name__)

SERVICE_NAME = "knowledge-base-chat"
VERSION = "1.0.0"


def build_orchestrator() -> ChatOrchestrator:
    """Wire the production services together."""
    logger.info("Initializing chat services...")

    embedding_model = EmbeddingModel()
    vector_store = VectorStore()
    # One Supabase client shared by the vector index and the chunk store
    chunk_store = ChunkStore(client=vector_store.client)
    retrieval_engine = RetrievalEngine(
        vector_store, embedding_model, chunk_store, embed_timeout=embedding_model.retry_budget
    )
    logger.info("Initialized RetrievalEngine")

    llm_client = LLMClient()
    orchestrator = ChatOrchestrator(
        registry=ConversationRegistry(),
        router=IntentRouter(),
        company_generator=CompanyInfoGenerator(llm_client),
        rag_generator=RAGGenerator(llm_client, retrieval_engine),
    )
    logger.info("All services initialized successfully")
    return orchestrator


def create_app(orchestrator: Optional[ChatOrchestrator] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        orchestrator: Pre-built orchestrator (built from the environment on
            startup when omitted)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.orchestrator is None:
            try:
                app.state.orchestrator = build_orchestrator()
            except Exception as e:
                logger.error(f"Failed to initialize services: {e}", exc_info=True)
                raise
        yield

    app = FastAPI(
        title="Knowledge Base Chat Assistant",
        description="Conversational assistant answering from a document knowledge base",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_orchestrator(request: Request) -> ChatOrchestrator:
        return request.app.state.orchestrator

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "message": "Knowledge Base Chat Assistant API"}

    @app.get("/health")
    async def health(orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
        """Detailed health check."""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": VERSION,
            "conversations": orchestrator.stats().total_conversations,
        }

    @app.post("/chat", response_model=ChatResponse)
    async def chat_endpoint(
        request: ChatRequest,
        orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    ) -> ChatResponse:
        """
        Answer a chat message.

        Degraded answers (knowledge base unreachable) are returned with
        status 200 and an `error` block; other failures map their error
        category to an HTTP status.

        Raises:
            HTTPException: For validation, upstream and internal failures
        """
        logger.info(f"Processing chat message: {request.message[:100]}...")
        response = await orchestrator.process_message(request)

        if response.error is not None:
            status_code = http_status_for(response.error.category)
            if status_code != 200:
                raise HTTPException(
                    status_code=status_code,
                    detail={
                        "error": response.error.model_dump(),
                        "conversation_id": response.conversation_id,
                    },
                )

        return response

    @app.post("/chat/stream")
    async def chat_stream_endpoint(
        request: ChatRequest,
        orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    ):
        """
        Streaming chat endpoint.

        Returns:
            StreamingResponse with SSE format:
            - data: {type: "start", conversation_id}
            - data: {type: "chunk", content, index} per token or word
            - data: {type: "complete", ...} or data: {type: "error", error: {...}}
            - data: [DONE]
        """
        async def generate_stream():
            async for event in orchestrator.stream_message(request):
                yield format_sse(event)
            yield DONE_SENTINEL

        return StreamingResponse(
            generate_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no"  # Disable buffering in nginx
            }
        )

    @app.get("/conversations/stats", response_model=RegistryStats)
    async def conversation_stats(orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
        return orchestrator.stats()

    @app.get("/conversations/{conversation_id}", response_model=ConversationView)
    async def get_conversation(
        conversation_id: str,
        orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    ):
        view = orchestrator.get_conversation(conversation_id)
        if view is None:
            raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
        return view

    @app.delete("/conversations/{conversation_id}")
    async def delete_conversation(
        conversation_id: str,
        orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    ):
        if not orchestrator.clear_conversation(conversation_id):
            raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
        return {"status": "cleared", "conversation_id": conversation_id}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Knowledge Base Chat Assistant API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
