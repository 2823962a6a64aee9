"""
config.py - Central configuration for the OpenMTP support bot.

This module stores all configurable constants related to:
- LLMs and embeddings (provider, model names, temperature)
- Chunking and indexing limits
- Retrieval properties
- PostgreSQL / pgvector connection
- GitHub issue scraping
- Agent memory and evaluation runs
"""

import os

from dotenv import find_dotenv, load_dotenv

# Values already in the environment take precedence over `.env`.
load_dotenv(find_dotenv(usecwd=True))

# Model configuration::
LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")        # "openai" or "ollama"
LLM_CHAT_MODEL_NAME: str = os.getenv("LLM_CHAT_MODEL_NAME", "gpt-4o-mini")
LLM_CHAT_TEMPERATURE: float = float(os.getenv("LLM_CHAT_TEMPERATURE", "0"))
EMB_MODEL_NAME: str = os.getenv("EMB_MODEL_NAME", "text-embedding-3-small")
OLLAMA_BASE_URL: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

# Only used by Ollama models, OpenAI models size their own context.
MAX_CONTENT_SIZE: int = 14000


# Verification configuration:
#   - Whether to immediately verify the connection to
#   - the LLM models and the Embeddings models after initialization.
VERIFY_LLM_CONNECTION: bool = os.getenv("VERIFY_LLM_CONNECTION", "false").lower() == "true"
VERIFY_EMB_CONNECTION: bool = os.getenv("VERIFY_EMB_CONNECTION", "false").lower() == "true"


# Document Chunking properties:
DOC_CHAR_LIMIT: int = 600                               # Char limit for each chunk.
DOC_OVERLAP_NO: int = 50                                # Char overlap between chunks.
DOC_SEPARATORS: list[str] = ["\n\n", "\n", " ", ""]
INDEX_BATCH_SIZE: int = 100                             # Chunks upserted per batch.


# Document Retrieval properties:
RETRIEVER_TOP_K: int = 5
TEST_QUERY_TOP_K: int = 3
TEST_QUERIES: list[str] = [
    "Android device not detected",
    "How to enable Kalam mode",
    "Transfer speed is slow",
    "What is OpenMTP",
    "USB debugging",
]


# PostgreSQL / pgvector configuration:
POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
POSTGRES_DB: str = os.getenv("POSTGRES_DB", "openmtp")
POSTGRES_USER: str = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_CONNECTION_STRING: str = os.getenv(
    "POSTGRES_CONNECTION_STRING",
    f"postgresql+psycopg2://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}"
)
EMBEDDING_TABLE_NAME: str = "langchain_pg_embedding"
COLLECTION_TABLE_NAME: str = "langchain_pg_collection"
LANGCHAIN_COLLECTION_NAME: str = os.getenv("LANGCHAIN_COLLECTION_NAME", "openmtp_issues")
AGENT_COLLECTION_NAME: str = os.getenv("AGENT_COLLECTION_NAME", "openmtp_embeddings")
VECTOR_DB_MAX_RETRIES: int = 5
VECTOR_DB_RETRY_DELAY: float = 2.0


# GitHub issues configuration:
GITHUB_API_BASE: str = "https://api.github.com"
GITHUB_REPO_OWNER: str = os.getenv("GITHUB_REPO_OWNER", "ganeshrvel")
GITHUB_REPO_NAME: str = os.getenv("GITHUB_REPO_NAME", "openmtp")
GITHUB_ANSWER_AUTHOR: str = os.getenv("GITHUB_ANSWER_AUTHOR", GITHUB_REPO_OWNER)
GITHUB_TOKEN: str = os.getenv("GITHUB_TOKEN", "")
GITHUB_PER_PAGE: int = 100
GITHUB_REQUEST_DELAY: float = 0.1                       # Seconds between issues.
ISSUES_DIR: str = os.getenv("ISSUES_DIR", "./openmtp-gh-issues")


# API defaults (single-user proof of concept):
DEFAULT_USER_ID: str = "poc-user"
DEFAULT_SESSION_ID: str = "default-session"
DEFAULT_THREAD_ID: str = "default-thread"
RAG_RUN_NAME: str = "openmtp-langchain-rag"
RAG_RUN_TAGS: list[str] = ["rag", "openmtp", "langchain"]


# Agent memory configuration:
AGENT_LAST_MESSAGES: int = 8
AGENT_MAX_ITERATIONS: int = 5


# Evaluation configuration:
EVAL_OUTPUT_DIR: str = os.getenv("EVAL_OUTPUT_DIR", "./eval-results")
EVAL_DELAY: float = 1.0                                 # Seconds between questions.
