"""
Pytest configuration for the support bot test suite.

Configures:
- Logs written to a temp file instead of `app.log` in the working directory
- Offline fakes for the embeddings, the chat model and pgvector
- A throwaway SQLite file for the annotation storage
"""

import os
import json
import tempfile

os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "support_bot_tests.log"))

import pytest
from unittest.mock import patch
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.vectorstores import InMemoryVectorStore


def make_issue(number, title, body="", answers=(), replies=(), labels=(), status="open"):
    return {
        "issue_number": number,
        "title": title,
        "question": {"author": "someone", "body": body, "created_at": None, "updated_at": None},
        "replies": [{"author": author, "body": text} for author, text in replies],
        "answers": [{"author": "ganeshrvel", "body": text} for text in answers],
        "status": status,
        "labels": list(labels),
        "created_at": None,
        "updated_at": None,
        "closed_at": None,
        "url": f"https://github.com/ganeshrvel/openmtp/issues/{number}",
    }


@pytest.fixture
def sample_issues():
    return [
        make_issue(
            101, "Samsung device not detected",
            body="My Galaxy S21 is not showing up in OpenMTP.",
            answers=["Uninstall Samsung SmartSwitch and restart OpenMTP."],
            replies=[("alice", "Same here on a Galaxy S22.")],
            labels=["bug", "samsung"],
            status="closed",
        ),
        make_issue(
            202, "How to enable list mode",
            body="Is there a list view?",
            answers=["Settings > File Manager > turn off View as Grid."],
        ),
        make_issue(303, "Transfer speed is slow", body="Copying 4GB takes forever."),
    ]


@pytest.fixture
def issues_dir(tmp_path, sample_issues):
    """A directory of scraped issue files."""
    directory = tmp_path / "issues"
    directory.mkdir()
    for issue in sample_issues:
        (directory / f"{issue['issue_number']}-issue.json").write_text(json.dumps(issue), encoding="utf-8")
    (directory / "notes.txt").write_text("not an issue", encoding="utf-8")
    return str(directory)


@pytest.fixture
def fake_embeddings():
    return DeterministicFakeEmbedding(size=32)


@pytest.fixture
def in_memory_pgvector():
    """Replace PGVector with an in-memory store."""
    with patch("support_bot.core.database.PGVector",
               side_effect=lambda **kw: InMemoryVectorStore(kw["embedding_function"])) as mock_pgvector:
        yield mock_pgvector


@pytest.fixture
def vector_db(in_memory_pgvector, fake_embeddings):
    from support_bot.core.database import VectorDB
    return VectorDB(collection_name="test_issues", embeddings=fake_embeddings)


@pytest.fixture
def storage_db(tmp_path, monkeypatch):
    """Point the annotation storage at a fresh SQLite file."""
    import storage
    db_path = tmp_path / "annotation_data.db"
    monkeypatch.setattr(storage, "DB_PATH", db_path)
    return db_path
