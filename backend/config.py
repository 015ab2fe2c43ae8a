"""Configuration management for the Knowledge Base Chat Assistant."""
import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama-3.3-70b-versatile")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0"))
LLM_MAX_TOKENS = 2048

# Timeouts (seconds)
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "10"))  # per attempt
EMBEDDING_MAX_RETRIES = int(os.getenv("EMBEDDING_MAX_RETRIES", "3"))
# Whole embedding call: every attempt plus backoff between them
EMBEDDING_TOTAL_TIMEOUT = float(os.getenv("EMBEDDING_TOTAL_TIMEOUT", "40"))
VECTOR_TIMEOUT = float(os.getenv("VECTOR_TIMEOUT", "10"))
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "45"))

# Retrieval Configuration
RAG_TOP_K = 5
RAG_MAX_TOP_K = 20
RAG_THRESHOLD = 0.01  # the index does most of the precision work
QUERY_CACHE_TTL = 600  # seconds
EMPTY_QUERY_CACHE_TTL = 300  # seconds
QUERY_CACHE_MAX_SIZE = 1000

# Conversation Configuration
MAX_CONVERSATIONS = int(os.getenv("MAX_CONVERSATIONS", "100"))
MAX_MESSAGE_HISTORY = 6
MAX_MESSAGE_LENGTH = 2000
CONTENT_TRUNCATE_LENGTH = 200
STREAM_WORD_DELAY = 0.03  # seconds between re-streamed words

# Company Configuration
COMPANY_NAME = os.getenv("COMPANY_NAME", "Acme Corp")
COMPANY_INDUSTRY = os.getenv("COMPANY_INDUSTRY", "technology consulting")
COMPANY_EMAIL = os.getenv("COMPANY_EMAIL", "hello@acme.example")
COMPANY_PHONE = os.getenv("COMPANY_PHONE", "+1 (555) 010-0100")
COMPANY_INFO_PATH = os.getenv(
    "COMPANY_INFO_PATH",
    str(Path(__file__).parent / "data" / "company_info.md")
)

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
