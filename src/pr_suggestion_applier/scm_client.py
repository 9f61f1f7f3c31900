# src/pr_suggestion_applier/scm_client.py
import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from urllib.parse import urlparse

import requests # Using requests library for HTTP calls

from .exceptions import SCMClientError
from .models import DiffSide, ReviewComment, ThreadComment
from .position import calculate_comment_position
from .suggestion_parser import extract_suggestion, has_suggestion

if TYPE_CHECKING:
    from .app_config import AppConfig

logger = logging.getLogger(__name__)

REVIEW_THREADS_QUERY = """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      reviewThreads(first: 100) {
        nodes {
          id
          isResolved
          comments(first: 50) {
            nodes { databaseId body url author { login } }
          }
        }
      }
    }
  }
}
"""

RESOLVE_THREAD_MUTATION = """
mutation($threadId: ID!) {
  resolveReviewThread(input: {threadId: $threadId}) { thread { id isResolved } }
}
"""

UNRESOLVE_THREAD_MUTATION = """
mutation($threadId: ID!) {
  unresolveReviewThread(input: {threadId: $threadId}) { thread { id isResolved } }
}
"""


def parse_repo_from_remote(remote_url: str) -> Optional[str]:
    """Extracts "owner/name" from an https or scp-style git remote URL."""
    if not remote_url:
        return None
    url = remote_url.strip()
    if "://" not in url and ":" in url: # git@github.com:owner/name.git
        url = "ssh://" + url.replace(":", "/", 1)
    path_segments = [segment for segment in urlparse(url).path.split('/') if segment]
    if len(path_segments) < 2:
        return None
    name = path_segments[-1]
    if name.endswith(".git"):
        name = name[:-4]
    return f"{path_segments[-2]}/{name}"


def _run_git(args: List[str]) -> Optional[str]:
    try:
        result = subprocess.run(["git"] + args, capture_output=True, text=True, check=False)
    except FileNotFoundError:
        logger.error("'git' command not found. Ensure Git is installed and in PATH.")
        return None
    if result.returncode != 0:
        logger.debug(f"git {' '.join(args)} failed: {result.stderr.strip()}")
        return None
    return result.stdout.strip()


class GitHubClient:
    """
    Minimal GitHub REST/GraphQL client: fetches review comments with their
    threads and resolves threads after a suggestion has been applied.
    """
    def __init__(self, config: 'AppConfig'):
        self.config = config
        self.api_base_url = config.github_api_url
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if config.github_token:
            self.headers["Authorization"] = f"Bearer {config.github_token}"
        self._repo: Optional[str] = config.repo
        logger.debug(f"GitHub client initialized for base URL: {self.api_base_url}")

    def _request(self, method: str, endpoint: str, params: Optional[Dict] = None,
                 json_data: Optional[Dict] = None, expected_status: int = 200) -> requests.Response:
        """Helper method to make HTTP requests. Raises SCMClientError on any failure."""
        url = endpoint if endpoint.startswith("http") else f"{self.api_base_url}{endpoint}"
        try:
            logger.debug(f"Making GitHub API {method} request to {url} with params {params}")
            response = requests.request(method, url, headers=self.headers, params=params, json=json_data, timeout=30)
        except requests.exceptions.RequestException as e:
            raise SCMClientError(f"GitHub API request to {url} failed: {e}") from e

        if response.status_code != expected_status:
            raise SCMClientError(
                f"GitHub API request to {url} failed with status {response.status_code}: {response.text[:500]}"
            )
        return response

    def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        response = self._request("POST", "/graphql", json_data={"query": query, "variables": variables})
        try:
            payload = response.json()
        except ValueError as e:
            raise SCMClientError(f"Failed to parse GraphQL response: {e}") from e
        if payload.get("errors"):
            raise SCMClientError(f"GraphQL error: {payload['errors'][0].get('message', 'unknown error')}")
        return payload.get("data") or {}

    def resolve_repo(self) -> str:
        """Returns "owner/name" from config, or from the origin remote of the working copy."""
        if self._repo:
            return self._repo
        repo = parse_repo_from_remote(_run_git(["remote", "get-url", "origin"]) or "")
        if not repo:
            raise SCMClientError("Not in a GitHub repository (or no origin remote). Use --repo OWNER/NAME.")
        self._repo = repo
        return repo

    def _owner_and_name(self) -> List[str]:
        parts = self.resolve_repo().split("/")
        if len(parts) != 2:
            raise SCMClientError(f"Invalid repo format: {self._repo}")
        return parts

    def get_current_branch_pr(self) -> int:
        """Finds the open pull request whose head is the currently checked out branch."""
        branch = _run_git(["rev-parse", "--abbrev-ref", "HEAD"])
        if not branch or branch == "HEAD":
            raise SCMClientError("Cannot determine the current branch (detached HEAD?)")
        owner, name = self._owner_and_name()
        response = self._request("GET", f"/repos/{owner}/{name}/pulls",
                                 params={"head": f"{owner}:{branch}", "state": "open"})
        pulls = response.json()
        if not pulls:
            raise SCMClientError(f"No open PR found for branch '{branch}' (pass the PR number explicitly)")
        return int(pulls[0]["number"])

    def get_review_threads(self, pr_number: int) -> Dict[int, Dict[str, Any]]:
        """
        Fetches review threads keyed by the database ID of the first comment in
        each thread. Values hold the thread node ID, resolved flag and comments.
        """
        owner, name = self._owner_and_name()
        data = self._graphql(REVIEW_THREADS_QUERY, {"owner": owner, "name": name, "number": pr_number})
        nodes = (((data.get("repository") or {}).get("pullRequest") or {})
                 .get("reviewThreads") or {}).get("nodes") or []
        logger.debug(f"Found {len(nodes)} review threads")

        threads: Dict[int, Dict[str, Any]] = {}
        for node in nodes:
            comments = (node.get("comments") or {}).get("nodes") or []
            if not comments:
                continue
            threads[comments[0]["databaseId"]] = {
                "id": node["id"],
                "is_resolved": bool(node.get("isResolved")),
                "comments": [
                    ThreadComment(
                        id=c["databaseId"],
                        body=c.get("body", ""),
                        author=(c.get("author") or {}).get("login", ""),
                        html_url=c.get("url", ""),
                    )
                    for c in comments
                ],
            }
        return threads

    def _get_paginated(self, endpoint: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        url: Optional[str] = endpoint
        params: Optional[Dict] = {"per_page": 100}
        while url:
            response = self._request("GET", url, params=params)
            items.extend(response.json())
            url = response.links.get("next", {}).get("url")
            params = None # The "next" link already carries the query string
        return items

    def fetch_review_comments(self, pr_number: int) -> List[ReviewComment]:
        """
        Fetches the top-level review comments of a PR, merged with their thread
        state, with suggestions extracted and the outdated flag computed.
        """
        owner, name = self._owner_and_name()
        try:
            threads = self.get_review_threads(pr_number)
        except SCMClientError as e:
            logger.warning(f"Could not fetch review threads: {e}")
            threads = {}

        raw_comments = self._get_paginated(f"/repos/{owner}/{name}/pulls/{pr_number}/comments")
        logger.debug(f"Processing {len(raw_comments)} review comments from REST API")

        reply_ids = {
            reply.id
            for first_id, thread in threads.items()
            for reply in thread["comments"]
            if reply.id != first_id
        }

        comments: List[ReviewComment] = []
        for raw in raw_comments:
            if raw["id"] in reply_ids:
                continue # Replies are attached to their thread instead

            diff_side = DiffSide.LEFT if raw.get("side") == "LEFT" else DiffSide.RIGHT
            line = raw.get("line") or 0
            original_line = raw.get("original_line") or 0
            diff_hunk = raw.get("diff_hunk") or ""
            body = raw.get("body") or ""

            comment = ReviewComment(
                id=raw["id"],
                path=raw.get("path", ""),
                line=line,
                original_line=original_line,
                diff_hunk=diff_hunk,
                diff_side=diff_side,
                body=body,
                author=(raw.get("user") or {}).get("login", ""),
                html_url=raw.get("html_url", ""),
                start_line=raw.get("start_line") or line,
                original_start_line=raw.get("original_start_line") or original_line,
                subject_type=raw.get("subject_type") or "",
            )

            thread = threads.get(raw["id"])
            if thread:
                comment.thread_id = thread["id"]
                comment.thread_comments = thread["comments"][1:]
                if thread["is_resolved"]:
                    comment.subject_type = "resolved"

            if diff_hunk:
                comment.is_outdated = calculate_comment_position(line, original_line, diff_hunk, diff_side).is_outdated

            if has_suggestion(body):
                comment.has_suggestion = True
                comment.suggested_code = extract_suggestion(body)

            comments.append(comment)
        return comments

    def _set_thread_resolution(self, thread_id: str, resolve: bool) -> None:
        if not thread_id:
            raise SCMClientError("thread ID is required")
        mutation = RESOLVE_THREAD_MUTATION if resolve else UNRESOLVE_THREAD_MUTATION
        key = "resolveReviewThread" if resolve else "unresolveReviewThread"
        data = self._graphql(mutation, {"threadId": thread_id})
        is_resolved = ((data.get(key) or {}).get("thread") or {}).get("isResolved")
        if bool(is_resolved) != resolve:
            raise SCMClientError(f"thread was not marked as {'resolved' if resolve else 'unresolved'}")

    def resolve_thread(self, thread_id: str) -> None:
        logger.debug(f"Resolving thread with ID: {thread_id}")
        self._set_thread_resolution(thread_id, True)

    def unresolve_thread(self, thread_id: str) -> None:
        logger.debug(f"Unresolving thread with ID: {thread_id}")
        self._set_thread_resolution(thread_id, False)

    def reply_to_review_comment(self, pr_number: int, comment_id: int, body: str) -> ThreadComment:
        """Posts a reply in the thread of an existing review comment."""
        if not body or not body.strip():
            raise SCMClientError("comment body cannot be empty")
        owner, name = self._owner_and_name()
        endpoint = f"/repos/{owner}/{name}/pulls/{pr_number}/comments/{comment_id}/replies"
        response = self._request("POST", endpoint, json_data={"body": body}, expected_status=201)
        data = response.json()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Reply payload: {json.dumps(data, indent=2)[:1000]}")
        return ThreadComment(
            id=data["id"],
            body=data.get("body", ""),
            author=(data.get("user") or {}).get("login", ""),
            html_url=data.get("html_url", ""),
        )
