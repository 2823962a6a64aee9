"""
Scraper for the GitHub issues of the OpenMTP repository.
- Every issue (pull requests excluded) is saved as `{number}-{sanitized-title}.json`.
- Comments from the repository owner become `answers`, all other comments become `replies`.

## Usage:
- Run this file from `server` folder as:
- `python gh_issues.py --output ./openmtp-gh-issues`
"""

import os
import re
import sys
import json
import time
import argparse
from typing import Any, List, Optional

import requests

from support_bot import config
from logger import get_logger

log = get_logger(name="gh_issues")


class GitHubAPIError(Exception):
    pass


def sanitize_filename(title: str) -> str:
    """Replace every character outside `[a-zA-Z0-9]` with `-`, then lowercase."""
    return re.sub(r"[^a-z0-9]", "-", title, flags=re.IGNORECASE).lower()


def github_request(url: str, token: Optional[str] = None, timeout: float = 30.0) -> Any:
    """GET a GitHub API url and return the decoded JSON.

    Raises:
        GitHubAPIError: On any non-2xx response.
    """

    headers = {
        "Accept": "application/vnd.github.v3+json",
        "User-Agent": "OpenMTP-Issues-Fetcher",
    }
    token = token if token is not None else config.GITHUB_TOKEN
    if token:
        headers["Authorization"] = f"Bearer {token}"

    response = requests.get(url, headers=headers, timeout=timeout)
    if not response.ok:
        raise GitHubAPIError(f"GitHub API request failed: {response.status_code} {response.reason}")

    return response.json()


def fetch_all_issues(owner: str = config.GITHUB_REPO_OWNER, repo: str = config.GITHUB_REPO_NAME) -> List[dict]:
    """Fetch every issue (open and closed) page by page until an empty page.
    A failing page stops the pagination, issues fetched so far are kept.
    """

    all_issues: List[dict] = []
    page = 1
    log.info(f"Fetching issues of {owner}/{repo} from GitHub...")

    while True:
        url = (
            f"{config.GITHUB_API_BASE}/repos/{owner}/{repo}/issues"
            f"?state=all&page={page}&per_page={config.GITHUB_PER_PAGE}"
        )
        try:
            issues = github_request(url)
        except (GitHubAPIError, requests.RequestException) as e:
            log.error(f"Error fetching page {page}: {e}")
            break

        if not issues:
            break

        all_issues.extend(issues)
        log.info(f"Fetched page {page}: {len(issues)} issues")
        page += 1

    log.info(f"Total issues fetched: {len(all_issues)}")
    return all_issues


def fetch_issue_comments(issue_number: int, owner: str = config.GITHUB_REPO_OWNER,
                         repo: str = config.GITHUB_REPO_NAME) -> List[dict]:
    """Comments of one issue, `[]` if they can't be fetched."""

    url = f"{config.GITHUB_API_BASE}/repos/{owner}/{repo}/issues/{issue_number}/comments"
    try:
        return github_request(url)
    except (GitHubAPIError, requests.RequestException) as e:
        log.error(f"Error fetching comments for issue #{issue_number}: {e}")
        return []


def process_issue_data(issue: dict, comments: List[dict],
                       owner_login: str = config.GITHUB_ANSWER_AUTHOR) -> dict[str, Any]:
    """Transform a GitHub issue and its comments into the stored issue record."""

    answers, replies = [], []
    for comment in comments:
        comment_data = {
            "author": comment["user"]["login"],
            "body": comment.get("body"),
            "created_at": comment.get("created_at"),
            "updated_at": comment.get("updated_at"),
        }
        (answers if comment_data["author"] == owner_login else replies).append(comment_data)

    return {
        "issue_number": issue["number"],
        "title": issue["title"],
        "question": {
            "author": issue["user"]["login"],
            "body": issue.get("body"),
            "created_at": issue.get("created_at"),
            "updated_at": issue.get("updated_at"),
        },
        "replies": replies,
        "answers": answers,
        "status": issue.get("state"),
        "labels": [label["name"] for label in issue.get("labels", [])],
        "created_at": issue.get("created_at"),
        "updated_at": issue.get("updated_at"),
        "closed_at": issue.get("closed_at"),
        "url": issue.get("html_url"),
    }


def issue_filename(record: dict[str, Any]) -> str:
    return f"{record['issue_number']}-{sanitize_filename(record['title'])}.json"


def save_issue_to_file(record: dict[str, Any], output_dir: str = config.ISSUES_DIR) -> Optional[str]:
    """Write the record as two-space indented JSON.

    Returns:
        Optional[str]: The file name, or None if the write failed (the error is logged).
    """

    filename = issue_filename(record)
    try:
        with open(os.path.join(output_dir, filename), "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False)
        log.info(f"Saved: {filename}")
        return filename
    except OSError as e:
        log.error(f"Error saving {filename}: {e}")
        return None


def scrape_issues(output_dir: str = config.ISSUES_DIR, owner: str = config.GITHUB_REPO_OWNER,
                  repo: str = config.GITHUB_REPO_NAME, delay: float = config.GITHUB_REQUEST_DELAY) -> List[str]:
    """Fetch, transform and save every issue of the repository.

    Returns:
        List[str]: Names of the files written.
    """

    os.makedirs(output_dir, exist_ok=True)
    saved = []

    for issue in fetch_all_issues(owner, repo):
        if issue.get("pull_request"):
            log.info(f"Skipping PR #{issue['number']}: {issue['title']}")
            continue

        log.info(f"Processing issue #{issue['number']}: {issue['title']}")
        comments = fetch_issue_comments(issue["number"], owner, repo)
        filename = save_issue_to_file(process_issue_data(issue, comments), output_dir)
        if filename:
            saved.append(filename)

        time.sleep(delay)

    log.info(f"All issues have been processed, {len(saved)} files saved in '{output_dir}'")
    return saved


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Download the GitHub issues of OpenMTP as JSON files.")
    parser.add_argument("--output", default=config.ISSUES_DIR, help="Directory for the issue files.")
    parser.add_argument("--owner", default=config.GITHUB_REPO_OWNER, help="Repository owner.")
    parser.add_argument("--repo", default=config.GITHUB_REPO_NAME, help="Repository name.")
    parser.add_argument("--delay", type=float, default=config.GITHUB_REQUEST_DELAY,
                        help="Seconds to wait between issues.")
    args = parser.parse_args(argv)

    try:
        saved = scrape_issues(args.output, args.owner, args.repo, args.delay)
    except Exception as e:
        log.exception(f"Script failed: {e}")
        print(f"Script failed: {e}", file=sys.stderr)
        return 1

    print(f"Saved {len(saved)} issues. Check the '{args.output}' directory for the JSON files.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
