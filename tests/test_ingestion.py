import json
from unittest.mock import Mock

from langchain_core.documents import Document

from support_bot.core import ingestion

from conftest import make_issue


class TestChunkDocuments:

    def test_chunks_are_tagged_per_document(self):
        docs = [
            Document(page_content="alpha " * 300, metadata={"issue_ref": "Issue #1"}),
            Document(page_content="short text", metadata={"issue_ref": "Issue #2"}),
        ]
        status, chunks, _ = ingestion.chunk_documents(docs)

        assert status is True
        first = [c for c in chunks if c.metadata["issue_ref"] == "Issue #1"]
        second = [c for c in chunks if c.metadata["issue_ref"] == "Issue #2"]

        assert [c.metadata["chunk_index"] for c in first] == list(range(len(first)))
        assert second[0].metadata["chunk_index"] == 0
        assert second[0].metadata["chunk_size"] == len("short text")
        assert all(c.metadata["original_doc_length"] == len(docs[0].page_content) for c in first)


class TestIndexIssues:

    def test_indexes_all_issues(self, issues_dir, vector_db):
        status, ids, message = ingestion.index_issues(issues_dir, vector_db, batch_size=2)

        assert status is True
        assert len(ids) >= 3
        assert message.endswith("from 3 issues.")

        hits = vector_db.similarity_search_with_score("Samsung", k=10)
        refs = {doc.metadata["issue_ref"] for doc, _ in hits}
        assert refs == {"Issue #101", "Issue #202", "Issue #303"}

    def test_missing_directory(self, tmp_path, vector_db):
        status, ids, message = ingestion.index_issues(str(tmp_path / "missing"), vector_db)

        assert status is False
        assert ids == []
        assert "not found" in message

    def test_empty_directory_succeeds_with_nothing(self, tmp_path):
        store = Mock()
        status, ids, _ = ingestion.index_issues(str(tmp_path), store)

        assert status is True
        assert ids == []
        store.add_documents.assert_not_called()

    def test_store_failure(self, issues_dir):
        store = Mock()
        store.add_documents.side_effect = RuntimeError("connection refused")

        status, ids, message = ingestion.index_issues(issues_dir, store)

        assert status is False
        assert "connection refused" in message


class TestAgentIndex:

    def test_record(self, sample_issues):
        record = ingestion.agent_issue_record(sample_issues[0])

        assert record["has_answers"] is True
        assert record["answer_count"] == 1
        assert record["text"].startswith("Issue #101: Samsung device not detected")

    def test_record_without_answers(self, sample_issues):
        record = ingestion.agent_issue_record(sample_issues[2])
        assert record["has_answers"] is False
        assert record["answer_count"] == 0

    def test_chunk_metadata(self):
        title = "A very long title that goes on and on past the fifty character limit"
        record = ingestion.agent_issue_record(make_issue(9, title, body="body"))
        chunks = ingestion.agent_chunks(record)

        metadata = chunks[0].metadata
        assert metadata["issue_ref"] == f"#9-{title[:50]}"
        assert metadata["chunk_index"] == 0
        assert metadata["text"] == chunks[0].page_content
        assert metadata["has_answers"] is False

    def test_index_for_agent(self, issues_dir, vector_db):
        status, ids, message = ingestion.index_issues_for_agent(issues_dir, vector_db)

        assert status is True
        assert len(ids) >= 3
        assert "from 3 issues" in message

        hits = vector_db.similarity_search_with_score("list mode", k=10)
        assert {doc.metadata["issue_ref"][:4] for doc, _ in hits} == {"#101", "#202", "#303"}

    def test_index_for_agent_missing_directory(self, tmp_path, vector_db):
        status, ids, message = ingestion.index_issues_for_agent(str(tmp_path / "missing"), vector_db)
        assert status is False
        assert "not found" in message

    def test_index_for_agent_bad_file(self, issues_dir, vector_db):
        with open(f"{issues_dir}/404-broken.json", "w", encoding="utf-8") as f:
            json.dump({"title": "no number"}, f)

        status, ids, message = ingestion.index_issues_for_agent(issues_dir, vector_db)

        assert status is False
        assert ids == []
        assert message.startswith("Failed to index issues for the agent")


class TestSampleQueries:

    def test_hits_are_reported(self, issues_dir, vector_db):
        ingestion.index_issues(issues_dir, vector_db)
        results = ingestion.test_indexing(vector_db, queries=["Samsung", "slow"], k=2)

        assert list(results) == ["Samsung", "slow"]
        hit = results["Samsung"][0]
        assert len(results["Samsung"]) == 2
        assert set(hit) == {
            "issue_ref", "title", "url", "status", "labels", "chunk_index", "chunk_size", "score", "content"
        }
        assert isinstance(hit["score"], float)
        assert isinstance(hit["labels"], str)

    def test_no_labels_shown_as_none(self):
        store = Mock()
        store.similarity_search_with_score.return_value = [
            (Document(page_content="text", metadata={"issue_ref": "Issue #3", "labels": []}), 0.5)
        ]
        results = ingestion.test_indexing(store, queries=["q"], k=1)

        assert results["q"][0]["labels"] == "None"
        assert results["q"][0]["chunk_size"] == 4
