"""
Indexes the scraped GitHub issues into pgvector.
- `--target langchain` fills the RAG chain collection, `--target agent` the agent collection.
- The collection is cleared first, then sample queries check the result.

## Usage:
- Run this file from `server` folder as:
- `python index_issues.py --issues-dir ./openmtp-gh-issues --target langchain`
"""

import sys
import argparse
from typing import List, Optional

from support_bot import config
from support_bot.core.database import VectorDB
from support_bot.core import ingestion

import pg_db
from logger import get_logger

log = get_logger(name="index_issues")

TARGET_COLLECTIONS = {
    "langchain": config.LANGCHAIN_COLLECTION_NAME,
    "agent": config.AGENT_COLLECTION_NAME,
}


def print_test_results(results: dict[str, list[dict]]):
    for query, hits in results.items():
        print(f"\nTesting query: \"{query}\"")
        print(f"   Found {len(hits)} similar documents:")
        for index, hit in enumerate(hits, start=1):
            print(f"   {index}. {hit['issue_ref']} (Score: {hit['score']:.4f})")
            print(f"      Title: {hit['title']}")
            print(f"      URL: {hit['url']}")
            print(f"      Status: {hit['status']}")
            print(f"      Labels: {hit['labels']}")
            print(f"      Chunk Index: {hit['chunk_index']}")
            print(f"      Chunk Size: {hit['chunk_size']} chars")
            print(f"      Full Chunk Content:\n      {hit['content']}")
            print("-" * 120)


def print_stats(collection_name: str, chunk_count: int):
    stats = pg_db.get_issue_stats(collection_name)
    print("\nStatistics:")
    print(f"  - Chunks indexed: {chunk_count}")
    print(f"  - Issues indexed: {stats['issues']}")
    print(f"  - Issues with answers: {stats['with_answers']}")
    print(f"  - Open issues: {stats['open']}")
    print(f"  - Closed issues: {stats['closed']}")


def run(issues_dir: str, target: str, run_tests: bool = True) -> bool:
    """Clear, index and check one collection. Returns True on success."""

    collection_name = TARGET_COLLECTIONS[target]
    log.info(f"Starting {target} indexing of '{issues_dir}' into '{collection_name}'")

    pg_db.ensure_vector_extension()
    vector_db = VectorDB(
        embed_model=config.EMB_MODEL_NAME,
        collection_name=collection_name,
        verify_connection=config.VERIFY_EMB_CONNECTION,
    )
    vector_db.clear()

    index_fn = ingestion.index_issues if target == "langchain" else ingestion.index_issues_for_agent
    status, ids, message = index_fn(issues_dir, vector_db)
    print(message)
    if not status:
        log.error(f"Indexing failed: {message}")
        return False

    if run_tests:
        print_test_results(ingestion.test_indexing(vector_db))

    print_stats(collection_name, len(ids))
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Index scraped OpenMTP GitHub issues into pgvector.")
    parser.add_argument("--issues-dir", default=config.ISSUES_DIR, help="Directory with the issue JSON files.")
    parser.add_argument("--target", choices=sorted(TARGET_COLLECTIONS), default="langchain",
                        help="Collection to fill.")
    parser.add_argument("--no-test", action="store_true", help="Skip the sample queries.")
    args = parser.parse_args(argv)

    try:
        ok = run(args.issues_dir, args.target, run_tests=not args.no_test)
    except Exception as e:
        log.exception(f"Indexing failed: {e}")
        print(f"Indexing failed: {e}", file=sys.stderr)
        return 1

    if ok:
        print("Indexing process completed successfully!")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
