"""Post stack reports as GitHub PR comments."""

import logging
import re

import requests

from stackplan.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

REPO_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+/[a-zA-Z0-9._-]+$")
API_URL = "https://api.github.com"
BOT_LOGIN = "github-actions[bot]"


def check_repo(repo: str) -> None:
    """Reject anything that is not a plain ``owner/repo`` slug."""
    if not REPO_PATTERN.match(repo):
        raise ConfigurationError(f"Invalid GitHub repo format: {repo!r} (expected 'owner/repo')")


def _headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"token {token}",
        "Accept": "application/vnd.github.v3+json",
    }


def post_to_github_pr(
    body: str,
    repo: str,
    pr_number: int,
    token: str,
    timeout: int = 30,
) -> int | None:
    """Post a report as a comment on a GitHub pull request. Returns the new comment id."""
    check_repo(repo)
    url = f"{API_URL}/repos/{repo}/issues/{pr_number}/comments"
    try:
        response = requests.post(url, json={"body": body}, headers=_headers(token), timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise TransportError(f"Posting comment to {repo}#{pr_number} failed: {exc}") from exc
    return response.json().get("id")


def list_pr_comments(repo: str, pr_number: int, token: str, timeout: int = 30) -> list[dict]:
    """Fetch every comment of a pull request, following pagination."""
    check_repo(repo)
    url = f"{API_URL}/repos/{repo}/issues/{pr_number}/comments"
    params: dict | None = {"per_page": 100}
    comments = []
    try:
        while url:
            response = requests.get(url, headers=_headers(token), params=params, timeout=timeout)
            response.raise_for_status()
            comments.extend(response.json())
            url = response.links.get("next", {}).get("url")
            # the next link already carries the query string
            params = None
    except requests.RequestException as exc:
        raise TransportError(f"Listing comments of {repo}#{pr_number} failed: {exc}") from exc
    return comments


def delete_previous_comments(
    title: str,
    repo: str,
    pr_number: int,
    token: str,
    author: str = BOT_LOGIN,
    keep: int | None = None,
    timeout: int = 30,
) -> list[int]:
    """Delete earlier report comments so the new one replaces them.

    A comment is considered an earlier report when it was written by
    ``author`` and its body contains ``title``. The comment with id ``keep``
    is never deleted. Returns the deleted ids.
    """
    if not title.strip():
        logger.warning("Empty report title, not deleting previous comments")
        return []
    deleted = []
    for comment in list_pr_comments(repo, pr_number, token, timeout=timeout):
        if keep is not None and comment.get("id") == keep:
            continue
        if (comment.get("user") or {}).get("login") != author:
            continue
        if title not in (comment.get("body") or ""):
            continue
        url = f"{API_URL}/repos/{repo}/issues/comments/{comment['id']}"
        try:
            response = requests.delete(url, headers=_headers(token), timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(f"Deleting comment {comment['id']} failed: {exc}") from exc
        logger.info("Deleted previous report comment %s", comment["id"])
        deleted.append(comment["id"])
    return deleted
