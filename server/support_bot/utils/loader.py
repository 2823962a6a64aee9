"""Module dealing specifically with loading scraped GitHub issues into Document objects.
Each issue JSON file (see `gh_issues.py`) becomes one searchable Document.

## For testing:
- Run this file from `server` folder as:
- `python -m support_bot.utils.loader ./openmtp-gh-issues`
"""

import os
import json
from typing import Any, List
from langchain_core.documents import Document

from logger import get_logger
log = get_logger(name="doc_loader")


def load_issue(file_path: str) -> dict[str, Any]:
    """Read one issue JSON file."""
    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


def issue_to_text(issue: dict[str, Any]) -> str:
    """Build the searchable text of an issue.
    Developer answers come before user replies, replies keep their author.
    """

    question = issue.get("question") or {}
    text = f"Issue #{issue['issue_number']}: {issue['title']}\n\n"
    text += f"Question: {question.get('body') or ''}\n\n"

    answers = issue.get("answers") or []
    if answers:
        text += "Developer Answers:\n"
        for index, answer in enumerate(answers, start=1):
            text += f"{index}. {answer.get('body') or ''}\n\n"

    replies = issue.get("replies") or []
    if replies:
        text += "User Replies:\n"
        for index, reply in enumerate(replies, start=1):
            text += f"{index}. {reply.get('author')}: {reply.get('body') or ''}\n\n"

    labels = issue.get("labels") or []
    if labels:
        text += f"Labels: {', '.join(labels)}\n"

    text += f"Status: {issue.get('status')}\nURL: {issue.get('url')}"
    return text


def issue_metadata(issue: dict[str, Any]) -> dict[str, Any]:
    """Metadata stored alongside every chunk of the issue."""
    return {
        "issue_number": issue["issue_number"],
        "title": issue["title"],
        "status": issue.get("status"),
        "url": issue.get("url"),
        "labels": issue.get("labels") or [],
        "issue_ref": f"Issue #{issue['issue_number']}",
        "source": "github-issues",
        "answers_count": len(issue.get("answers") or []),
        "replies_count": len(issue.get("replies") or []),
    }


def list_issue_files(issues_dir: str) -> List[str]:
    """Sorted names of the `.json` files in the issues directory."""
    return sorted(f for f in os.listdir(issues_dir) if f.endswith(".json"))


def load_issue_documents(issues_dir: str) -> tuple[bool, List[Document], str]:
    """Load every issue file of a directory as one Document per issue.

    Args:
        issues_dir (str): Directory holding the scraped `*.json` issue files.

    Returns:
        tuple[bool, List[Document], str]: A tuple containing:
            - bool: True if the directory was read successfully, False otherwise.
            - List[Document]: One Document per issue.
            - str: Message indicating the result of the loading operation.
    """

    if not os.path.isdir(issues_dir):
        log.error(f"GitHub issues directory not found at: {issues_dir}")
        return False, [], f"GitHub issues directory not found at: {issues_dir}"

    files = list_issue_files(issues_dir)
    log.info(f"Found {len(files)} issue files in {issues_dir}")

    documents = []
    for file_name in files:
        issue = load_issue(os.path.join(issues_dir, file_name))
        documents.append(Document(page_content=issue_to_text(issue), metadata=issue_metadata(issue)))

    log.info(f"Created {len(documents)} documents from GitHub issues.")
    return True, documents, f"Loaded {len(documents)} documents."


if __name__ == "__main__":
    import sys

    status, docs, message = load_issue_documents(sys.argv[1] if len(sys.argv) > 1 else "./openmtp-gh-issues")
    print(status)
    print(message)

    for doc in docs[:3]:
        print("\n")
        print(repr(doc))
