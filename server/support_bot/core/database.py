""" Database Module for Support Bot
- Contains the `VectorDB` class to manage the pgvector store of indexed GitHub issues.
- Provides methods to initialize the store, add chunks in batches, and perform similarity searches.
"""

import time
from typing import List, Optional, Tuple
from langchain_core.documents import Document
from langchain_community.vectorstores import PGVector

# For type hinting
from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import VectorStore

from support_bot import config
from support_bot.core.llm import get_embeddings

import pg_db
from logger import get_logger

log = get_logger(name="core_database")


class VectorDB:
    """A class to manage one pgvector collection of embedded issue chunks.

    Args:
        embed_model (str): The name of the embeddings model to use.
        collection_name (str): Name of the collection inside `langchain_pg_embedding`.
        connection_string (str): SQLAlchemy connection string for PostgreSQL.
        retriever_num_docs (int): Default number of documents returned by a similarity search.
        verify_connection (bool): Whether to verify the connection to the embeddings model.
        embeddings (Embeddings, optional): Pre-built embeddings to share between collections.

    ## Functions:
        + `get_embeddings()`: Returns the embeddings model.
        + `get_vector_store()`: Returns the PGVector store.
        + `add_documents()`: Upserts chunks in batches.
        + `similarity_search_with_score()`: Returns (document, distance) pairs.
        + `clear()`: Deletes every row of the collection.
    """

    def __init__(
        self, embed_model: str = config.EMB_MODEL_NAME,
        collection_name: str = config.LANGCHAIN_COLLECTION_NAME,
        connection_string: str = config.POSTGRES_CONNECTION_STRING,
        retriever_num_docs: int = config.RETRIEVER_TOP_K,
        verify_connection: bool = False,
        embeddings: Optional[Embeddings] = None,
    ):
        self.retriever_num_docs = retriever_num_docs
        self.collection_name = collection_name

        log.info(
            f"Initializing VectorDB with embeddings='{embed_model}', "
            f"collection='{collection_name}', k={retriever_num_docs} docs."
        )

        if embeddings is None:
            embeddings = get_embeddings(model_name=embed_model, verify_connection=verify_connection)
        self.embeddings = embeddings

        # PGVector creates the extension and the collection on init, retry while postgres boots:
        last_error = None
        for attempt in range(config.VECTOR_DB_MAX_RETRIES):
            try:
                self.db = PGVector(
                    connection_string=connection_string,
                    embedding_function=self.embeddings,
                    collection_name=self.collection_name,
                    use_jsonb=True,
                )
                log.info(f"Connected to pgvector collection '{self.collection_name}'.")
                break
            except Exception as e:
                last_error = e
                log.warning(f"pgvector connection attempt {attempt + 1}/{config.VECTOR_DB_MAX_RETRIES} failed: {e}")
                if attempt < config.VECTOR_DB_MAX_RETRIES - 1:
                    time.sleep(config.VECTOR_DB_RETRY_DELAY)
        else:
            log.error(f"Failed to initialize pgvector after {config.VECTOR_DB_MAX_RETRIES} attempts")
            raise RuntimeError(f"Couldn't connect to pgvector collection '{self.collection_name}'") from last_error

    def get_embeddings(self) -> Embeddings:
        log.info("Returning the Embeddings model instance.")
        return self.embeddings

    def get_vector_store(self) -> VectorStore:
        log.info("Returning the PGVector store instance.")
        return self.db

    def add_documents(self, documents: List[Document], batch_size: int = config.INDEX_BATCH_SIZE) -> List[str]:
        """Add documents to the collection in batches.

        Args:
            documents (List[Document]): Chunks to embed and store.
            batch_size (int): Number of chunks sent per upsert.

        Returns:
            List[str]: The ids of the stored rows.
        """

        ids: List[str] = []
        total_batches = (len(documents) + batch_size - 1) // batch_size

        for start in range(0, len(documents), batch_size):
            batch = documents[start:start + batch_size]
            ids.extend(self.db.add_documents(batch))
            log.info(f"Indexed batch {start // batch_size + 1}/{total_batches} into '{self.collection_name}'")

        log.info(f"Added {len(ids)} documents to collection '{self.collection_name}'.")
        return ids

    def similarity_search_with_score(self, query: str, k: Optional[int] = None) -> List[Tuple[Document, float]]:
        results = self.db.similarity_search_with_score(query, k=k or self.retriever_num_docs)
        log.info(f"Found {len(results)} documents in '{self.collection_name}' for: '{query[:80]}'")
        return results

    def clear(self) -> bool:
        """Delete every row of this collection. Errors are logged, not raised."""

        log.info(f"Clearing existing index '{self.collection_name}'...")
        deleted = pg_db.clear_embeddings(collection_name=self.collection_name)

        if deleted < 0:
            log.error(f"Error clearing index '{self.collection_name}'.")
            return False

        log.info(f"Index '{self.collection_name}' cleared, {deleted} rows deleted.")
        return True
