import uuid
import asyncio
from operator import itemgetter
from typing import Any, AsyncIterator, List, Optional, Tuple

from langchain_core.documents import Document
from langchain_core.runnables import RunnableLambda, RunnableConfig, Runnable

from support_bot import config
from support_bot.core.llm import get_llm, get_output_parser
from .prompts import template_rag as rag_prompt

# For type hinting
from langchain_core.language_models.chat_models import BaseChatModel
from support_bot.core.database import VectorDB

from logger import get_logger
log = get_logger(name="chains_rag")


def format_documents(docs: List[Document]) -> str:
    """Render retrieved chunks as the numbered context block of the prompt."""

    formatted = []
    for index, doc in enumerate(docs, start=1):
        metadata = doc.metadata or {}
        labels = ", ".join(metadata.get("labels") or []) or "None"
        formatted.append(
            f"{index}. {metadata.get('issue_ref') or 'Issue'}\n"
            f"   Title: {metadata.get('title')}\n"
            f"   Status: {metadata.get('status')}\n"
            f"   URL: {metadata.get('url')}\n"
            f"   Labels: {labels}\n"
            f"   Answers Count: {metadata.get('answers_count') or 0}\n"
            f"   Replies Count: {metadata.get('replies_count') or 0}\n"
            f"   Chunk Index: {metadata.get('chunk_index') or 0}\n"
            f"   Chunk Size: {metadata.get('chunk_size') or 0} chars\n"
            f"   Full Content: {doc.page_content}\n\n"
        )
    return "".join(formatted)


def build_rag_chain(llm_chat: BaseChatModel) -> Runnable:
    """Builds the question-answering RAG chain.
    - {docs, question} > formatted context
    - {context, question} > RAG prompt > LLM > string

    Retrieval happens before the chain, so the same chunks feed the prompt and the response logs.

    Args:
        llm_chat (BaseChatModel): The LLM model for generating the answer.

    Returns:
        Runnable: A chain taking `{"question": str, "docs": List[Document]}` and returning the answer string.
    """

    log.info("Building the RAG Chain...")
    rag_chain = (
        {
            "context": itemgetter("docs") | RunnableLambda(format_documents),
            "question": itemgetter("question"),
        }
        | rag_prompt
        | llm_chat
        | get_output_parser()
    )
    log.info("Created the RAG chain.")
    return rag_chain


class SupportRAG:
    """Retrieval-augmented answers over the indexed OpenMTP issues.

    Args:
        vector_db (VectorDB): Store bound to the chain collection.
        llm_chat (BaseChatModel, optional): Chat model. Built from config when omitted.
        top_k (int): Number of chunks used as context.

    ## Functions:
        + `search_similar_documents()`: Scored chunks for a query.
        + `generate_response()` / `agenerate_response()`: Answer plus retrieval logs.
        + `stream_response()`: Async stream of context and answer pieces.
        + `add_documents()`: Adds chunks to the collection.
    """

    def __init__(self, vector_db: VectorDB, llm_chat: Optional[BaseChatModel] = None,
                 top_k: int = config.RETRIEVER_TOP_K):
        self.vector_db = vector_db
        self.top_k = top_k

        if llm_chat is None:
            llm_chat = get_llm(
                model_name=config.LLM_CHAT_MODEL_NAME,
                temperature=config.LLM_CHAT_TEMPERATURE,
                verify_connection=config.VERIFY_LLM_CONNECTION,
            )
        self.llm_chat = llm_chat
        self.rag_chain = build_rag_chain(self.llm_chat)
        log.info("LangChain RAG initialized successfully")

    def _retrieve(self, query: str, top_k: Optional[int] = None) -> List[Tuple[Document, float]]:
        results = self.vector_db.similarity_search_with_score(query, k=top_k or self.top_k)
        log.info(f"[LANGCHAIN RETRIEVAL] Found {len(results)} documents for: '{query}'")
        return results

    @staticmethod
    def _as_scored_dicts(results: List[Tuple[Document, float]]) -> List[dict[str, Any]]:
        return [
            {"document": doc.page_content, "metadata": dict(doc.metadata or {}), "score": float(score)}
            for doc, score in results
        ]

    def search_similar_documents(self, query: str, top_k: Optional[int] = None) -> List[dict[str, Any]]:
        return self._as_scored_dicts(self._retrieve(query, top_k))

    def _run_config(self, user_id: Optional[str], session_id: Optional[str]) -> RunnableConfig:
        """Tracing config for one generation. LangSmith picks it up when tracing is enabled."""
        return {
            "run_name": config.RAG_RUN_NAME,
            "run_id": uuid.uuid4(),
            "tags": list(config.RAG_RUN_TAGS),
            "metadata": {"user_id": user_id, "session_id": session_id},
        }

    @staticmethod
    def _build_result(question: str, answer: str, similar_docs: List[dict], run_config: RunnableConfig) -> dict:
        return {
            "answer": answer,
            "logs": {
                "question": question,
                "retrieved_count": len(similar_docs),
                "retrieved_chunks": [
                    {"content": doc["document"], "metadata": doc["metadata"], "score": doc["score"]}
                    for doc in similar_docs
                ],
                "trace_id": str(run_config["run_id"]),
            },
        }

    def generate_response(self, question: str, user_id: Optional[str] = None,
                          session_id: Optional[str] = None) -> dict[str, Any]:
        """Answer a question and report the chunks it was grounded on.

        Args:
            question (str): The user's question.
            user_id (str, optional): Recorded in the trace metadata.
            session_id (str, optional): Recorded in the trace metadata.

        Returns:
            dict: `{"answer": str, "logs": {"question", "retrieved_count", "retrieved_chunks", "trace_id"}}`
        """

        run_config = self._run_config(user_id, session_id)
        results = self._retrieve(question)

        answer = self.rag_chain.invoke(
            {"question": question, "docs": [doc for doc, _ in results]}, config=run_config
        )
        log.info(f"Generated answer for '{question[:80]}' (trace {run_config['run_id']})")
        return self._build_result(question, answer, self._as_scored_dicts(results), run_config)

    async def agenerate_response(self, question: str, user_id: Optional[str] = None,
                                 session_id: Optional[str] = None) -> dict[str, Any]:
        run_config = self._run_config(user_id, session_id)
        results = await asyncio.to_thread(self._retrieve, question)

        answer = await self.rag_chain.ainvoke(
            {"question": question, "docs": [doc for doc, _ in results]}, config=run_config
        )
        log.info(f"Generated answer for '{question[:80]}' (trace {run_config['run_id']})")
        return self._build_result(question, answer, self._as_scored_dicts(results), run_config)

    async def stream_response(self, question: str, user_id: Optional[str] = None,
                              session_id: Optional[str] = None) -> AsyncIterator[tuple[str, Any]]:
        """Yields `("metadata", {...})`, then one `("context", {...})` per chunk, then `("content", str)` pieces."""

        run_config = self._run_config(user_id, session_id)
        yield "metadata", {"trace_id": str(run_config["run_id"]), "session_id": session_id}

        results = await asyncio.to_thread(self._retrieve, question)
        for doc in self._as_scored_dicts(results):
            yield "context", {"metadata": doc["metadata"], "page_content": doc["document"], "score": doc["score"]}

        chain_input = {"question": question, "docs": [doc for doc, _ in results]}
        async for chunk in self.rag_chain.astream(chain_input, config=run_config):
            yield "content", chunk

    def add_documents(self, documents: List[Document]) -> List[str]:
        ids = self.vector_db.add_documents(documents)
        log.info(f"Added {len(documents)} documents to LangChain vector store")
        return ids
