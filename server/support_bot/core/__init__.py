"""Core module of the Support Bot package.
Contains following components:
- LLM: Factories for chat models and embeddings.
- Database: Manages the pgvector store holding indexed GitHub issues.
- Chat History: Manages the agent's conversational memory.
- Ingestion: Indexes scraped GitHub issues into the vector database.
"""
