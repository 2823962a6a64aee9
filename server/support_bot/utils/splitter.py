"""Chunking of issue documents before they are embedded."""

from functools import lru_cache
from typing import List
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from support_bot.config import DOC_CHAR_LIMIT, DOC_OVERLAP_NO, DOC_SEPARATORS

from logger import get_logger
log = get_logger(name="utils_splitter")


@lru_cache(maxsize=None)
def get_splitter(chunk_size: int, chunk_overlap: int) -> RecursiveCharacterTextSplitter:
    """Splitter for the given sizes, built once. Paragraphs break first, then lines, then words."""
    log.info(f"Creating text splitter (chunk_size={chunk_size}, overlap={chunk_overlap})")
    return RecursiveCharacterTextSplitter(
        chunk_size=chunk_size, chunk_overlap=chunk_overlap, separators=DOC_SEPARATORS
    )


def split_text(
        documents: List[Document],
        chunk_size: int = DOC_CHAR_LIMIT,
        chunk_overlap: int = DOC_OVERLAP_NO
) -> tuple[bool, List[Document], str]:
    """Split issue documents into chunks. Each chunk keeps the metadata of its issue.

    Returns:
        tuple[bool, List[Document], str]: Status, the chunks and a message.
            Invalid sizes (overlap larger than the chunk) give a False status.
    """

    try:
        chunks = get_splitter(chunk_size, chunk_overlap).split_documents(documents)
    except ValueError as e:
        log.error(f"Error splitting documents: {e}")
        return False, [], f"Error splitting documents: {e}"

    if not chunks:
        log.warning(f"No chunks produced from {len(documents)} documents.")
        return True, [], "No documents were split. Please check the input documents."

    log.info(f"Split {len(documents)} documents into {len(chunks)} chunks.")
    return True, chunks, f"Split {len(documents)} documents into {len(chunks)} chunks."
