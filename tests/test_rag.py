import uuid
import asyncio
from unittest.mock import patch

import pytest
from langchain_core.documents import Document
from langchain_core.language_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from support_bot.chains.rag import SupportRAG, build_rag_chain, format_documents
from support_bot.core import ingestion


@pytest.fixture
def rag(issues_dir, vector_db):
    ingestion.index_issues(issues_dir, vector_db)
    llm = FakeListChatModel(responses=["Uninstall Samsung SmartSwitch, see Issue #101."])
    return SupportRAG(vector_db, llm_chat=llm, top_k=2)


class TestFormatDocuments:

    def test_numbered_block(self):
        doc = Document(
            page_content="Issue #5: Crash",
            metadata={"issue_ref": "Issue #5", "title": "Crash", "status": "open", "url": "u",
                      "labels": ["bug", "mac"], "answers_count": 2, "chunk_size": 15},
        )
        block = format_documents([doc])

        assert block.startswith("1. Issue #5\n   Title: Crash\n   Status: open\n   URL: u\n")
        assert "   Labels: bug, mac\n" in block
        assert "   Answers Count: 2\n   Replies Count: 0\n" in block
        assert "   Chunk Size: 15 chars\n   Full Content: Issue #5: Crash\n\n" in block

    def test_missing_metadata_defaults(self):
        block = format_documents([Document(page_content="x")])
        assert block.startswith("1. Issue\n")
        assert "Labels: None" in block

    def test_empty(self):
        assert format_documents([]) == ""


class TestBuildRagChain:

    def test_prompt_gets_the_given_chunks(self):
        echo = RunnableLambda(lambda prompt: prompt.to_string())
        chain = build_rag_chain(echo)
        doc = Document(page_content="Use a USB 3 cable.", metadata={"issue_ref": "Issue #7", "title": "Slow"})

        prompt = chain.invoke({"question": "Why so slow?", "docs": [doc]})

        assert "1. Issue #7" in prompt
        assert "Full Content: Use a USB 3 cable." in prompt
        assert "User question: Why so slow?" in prompt


class TestSupportRAG:

    def test_search_similar_documents(self, rag):
        results = rag.search_similar_documents("Samsung device")

        assert len(results) == 2
        assert set(results[0]) == {"document", "metadata", "score"}
        assert results[0]["metadata"]["source"] == "github-issues"

    def test_search_top_k_override(self, rag):
        assert len(rag.search_similar_documents("Samsung", top_k=3)) == 3

    def test_generate_response(self, rag):
        result = rag.generate_response("Samsung not detected", user_id="u1", session_id="s1")

        assert result["answer"] == "Uninstall Samsung SmartSwitch, see Issue #101."
        logs = result["logs"]
        assert logs["question"] == "Samsung not detected"
        assert logs["retrieved_count"] == 2
        assert set(logs["retrieved_chunks"][0]) == {"content", "metadata", "score"}
        uuid.UUID(logs["trace_id"])

    def test_one_retrieval_per_answer(self, rag):
        with patch.object(rag.vector_db, "similarity_search_with_score",
                          wraps=rag.vector_db.similarity_search_with_score) as search:
            rag.generate_response("Samsung not detected")
            asyncio.run(rag.agenerate_response("Samsung not detected"))

        assert search.call_count == 2

    def test_every_response_gets_a_new_trace(self, issues_dir, vector_db):
        ingestion.index_issues(issues_dir, vector_db)
        rag = SupportRAG(vector_db, llm_chat=FakeListChatModel(responses=["a", "b"]))

        first = rag.generate_response("q1")
        second = rag.generate_response("q2")
        assert first["logs"]["trace_id"] != second["logs"]["trace_id"]

    def test_run_config(self, rag):
        run_config = rag._run_config("u1", "s1")

        assert run_config["metadata"] == {"user_id": "u1", "session_id": "s1"}
        assert "rag" in run_config["tags"]

    def test_agenerate_response(self, rag):
        result = asyncio.run(rag.agenerate_response("Samsung", user_id="u1", session_id="s1"))

        assert result["answer"] == "Uninstall Samsung SmartSwitch, see Issue #101."
        assert result["logs"]["retrieved_count"] == 2

    def test_stream_response(self, rag):
        async def collect():
            return [event async for event in rag.stream_response("Samsung", user_id="u1", session_id="s1")]

        events = asyncio.run(collect())
        kinds = [kind for kind, _ in events]

        assert kinds[0] == "metadata"
        assert events[0][1]["session_id"] == "s1"
        assert kinds[1:3] == ["context", "context"]
        assert set(events[1][1]) == {"metadata", "page_content", "score"}
        assert "".join(data for kind, data in events if kind == "content") == \
            "Uninstall Samsung SmartSwitch, see Issue #101."

    def test_add_documents(self, rag):
        ids = rag.add_documents([Document(page_content="Kalam mode is the new kernel", metadata={})])
        assert len(ids) == 1
