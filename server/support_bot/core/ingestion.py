""" Indexing of scraped GitHub issues into the vector database.
- `index_issues`: chunks for the LangChain RAG chain (`openmtp_issues` collection).
- `index_issues_for_agent`: chunks for the support agent (`openmtp_embeddings` collection).
- `test_indexing`: runs sample queries against an indexed collection.
"""

import os
from typing import Any, List

from langchain_core.documents import Document

from support_bot import config
from support_bot.utils.loader import load_issue, list_issue_files, load_issue_documents, issue_to_text
from support_bot.utils.splitter import split_text

# For type hinting
from support_bot.core.database import VectorDB

from logger import get_logger
log = get_logger(name="core_ingestion")


def chunk_documents(documents: List[Document]) -> tuple[bool, List[Document], str]:
    """Split each issue document on its own and tag the chunks with their position.

    Returns:
        tuple[bool, List[Document], str]: Status, the chunks and a message.
    """

    all_chunks: List[Document] = []
    for doc in documents:
        status, chunks, message = split_text([doc])
        if not status:
            return False, [], message

        for index, chunk in enumerate(chunks):
            chunk.metadata = {
                **chunk.metadata,
                "chunk_index": index,
                "chunk_size": len(chunk.page_content),
                "original_doc_length": len(doc.page_content),
            }
        all_chunks.extend(chunks)

    log.info(f"Split {len(documents)} documents into {len(all_chunks)} chunks")
    return True, all_chunks, f"Split into {len(all_chunks)} chunks."


def index_issues(issues_dir: str, vector_db: VectorDB,
                 batch_size: int = config.INDEX_BATCH_SIZE) -> tuple[bool, List[str], str]:
    """Index every scraped issue of `issues_dir` for the RAG chain.

    Args:
        issues_dir (str): Directory with the issue JSON files.
        vector_db (VectorDB): Store bound to the chain collection.
        batch_size (int): Chunks per upsert.

    Returns:
        tuple[bool, List[str], str]: A tuple containing:
            - bool: True if indexing was successful, False otherwise.
            - List[str]: Ids of the stored chunks.
            - str: Message indicating the result of the indexing.
    """

    log.info("Starting GitHub issues indexing with LangChain...")

    status, documents, message = load_issue_documents(issues_dir)
    if not status:
        return False, [], message

    status, chunks, message = chunk_documents(documents)
    if not status:
        return False, [], message

    if not chunks:
        log.warning(f"No issue content found in: {issues_dir}")
        return True, [], f"No issue content found in: {issues_dir}"

    try:
        ids = vector_db.add_documents(chunks, batch_size=batch_size)
    except Exception as e:
        log.exception(f"Failed to index issue chunks: {e}")
        return False, [], f"Failed to index issue chunks: {e}"

    log.info(f"Successfully indexed {len(chunks)} chunks from {len(documents)} GitHub issues!")
    return True, ids, f"Indexed {len(chunks)} chunks from {len(documents)} issues."


def agent_issue_record(issue: dict[str, Any]) -> dict[str, Any]:
    """Flatten an issue into the fields the agent index keeps."""
    answers = issue.get("answers") or []
    return {
        "issue_number": issue["issue_number"],
        "title": issue["title"],
        "status": issue.get("status"),
        "labels": issue.get("labels") or [],
        "has_answers": len(answers) > 0,
        "answer_count": len(answers),
        "url": issue.get("url"),
        "text": issue_to_text(issue),
    }


def agent_chunks(record: dict[str, Any]) -> List[Document]:
    status, chunks, message = split_text([Document(page_content=record["text"])])
    if not status:
        raise ValueError(message)

    return [
        Document(
            page_content=chunk.page_content,
            metadata={
                "issue_ref": f"#{record['issue_number']}-{record['title'][:50]}",
                "title": record["title"],
                "status": record["status"],
                "labels": record["labels"],
                "has_answers": record["has_answers"],
                "answer_count": record["answer_count"],
                "url": record["url"],
                "chunk_index": index,
                "text": chunk.page_content,
            },
        )
        for index, chunk in enumerate(chunks)
    ]


def index_issues_for_agent(issues_dir: str, vector_db: VectorDB,
                           batch_size: int = config.INDEX_BATCH_SIZE) -> tuple[bool, List[str], str]:
    """Index every scraped issue of `issues_dir` for the support agent."""

    log.info("Indexing OpenMTP GitHub issues for the agent...")

    if not os.path.isdir(issues_dir):
        log.error(f"GitHub issues directory not found at: {issues_dir}")
        return False, [], f"GitHub issues directory not found at: {issues_dir}"

    try:
        records = [agent_issue_record(load_issue(os.path.join(issues_dir, name))) for name in list_issue_files(issues_dir)]
        chunks: List[Document] = []
        for record in records:
            chunks.extend(agent_chunks(record))
        log.info(f"Generated {len(chunks)} chunks from {len(records)} issues")

        ids = vector_db.add_documents(chunks, batch_size=batch_size) if chunks else []
    except Exception as e:
        log.exception(f"Failed to index issues for the agent: {e}")
        return False, [], f"Failed to index issues for the agent: {e}"

    log.info(f"Successfully indexed {len(ids)} chunks into '{vector_db.collection_name}'")
    return True, ids, f"Indexed {len(ids)} chunks from {len(records)} issues."


def test_indexing(vector_db: VectorDB, queries: List[str] = config.TEST_QUERIES,
                  k: int = config.TEST_QUERY_TOP_K) -> dict[str, list[dict[str, Any]]]:
    """Run sample queries against the index and log what comes back.

    Returns:
        dict[str, list[dict]]: For each query, the hits with `issue_ref`, `title`, `url`,
            `status`, `labels`, `chunk_index`, `chunk_size`, `score` and `content`.
    """

    log.info("Testing indexed data...")
    results: dict[str, list[dict[str, Any]]] = {}

    for query in queries:
        hits = []
        for doc, score in vector_db.similarity_search_with_score(query, k=k):
            metadata = doc.metadata or {}
            hit = {
                "issue_ref": metadata.get("issue_ref", "Unknown"),
                "title": metadata.get("title"),
                "url": metadata.get("url"),
                "status": metadata.get("status"),
                "labels": ", ".join(metadata.get("labels") or []) or "None",
                "chunk_index": metadata.get("chunk_index", 0),
                "chunk_size": metadata.get("chunk_size", len(doc.page_content)),
                "score": float(score),
                "content": doc.page_content,
            }
            log.info(f"[{query}] {hit['issue_ref']} (Score: {hit['score']:.4f}) {hit['title']}")
            hits.append(hit)

        results[query] = hits

    log.info("Indexing test completed")
    return results
