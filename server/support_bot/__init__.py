"""Support Bot Package: This package contains the langchain-based RAG system answering OpenMTP support questions.
It includes modules for:
- Core: LLM factories, pgvector database, chat history and GitHub issue ingestion.
- Utils: Issue loading and text splitting utility functions.
- Chains: The retrieval chain and the tool-calling agent built on top of the core.
"""
