"""
GitHub REST client used by the analysis pipeline and the history cache.

Only the calls the pipeline needs are implemented:
- list_tree: recursive blob listing of a branch
- read_file: raw file content
- list_commits / list_branches: history for the commit cache
- get_repository: repository metadata (default branch)
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from repo_insight.config import settings

from .exceptions import (
    GithubConfigurationError,
    GithubError,
    GithubNotFoundError,
    GithubRateLimitError,
    GithubRetryableError,
)

logger = logging.getLogger(__name__)

FALLBACK_BRANCHES = {"main": "master"}


class GitHubClient:
    """Synchronous GitHub REST client. Use as a context manager."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=api_url or settings.GITHUB_API_URL,
            headers=headers,
            timeout=timeout or settings.GITHUB_REQUEST_TIMEOUT,
            transport=transport,
        )

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _rest_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, params=params, headers=headers)
        except httpx.TransportError as e:
            raise GithubRetryableError(f"GitHub request failed: {method} {path}: {e}") from e

        if response.status_code == 404:
            raise GithubNotFoundError(f"GitHub resource not found: {path}")

        if response.status_code in (403, 429) and self._is_rate_limited(response):
            retry_after = self._retry_after(response)
            raise GithubRateLimitError(
                f"GitHub rate limit hit for {path}", retry_after=retry_after
            )

        if response.status_code >= 500:
            raise GithubRetryableError(
                f"GitHub server error {response.status_code} for {path}"
            )

        if response.status_code >= 400:
            raise GithubError(
                f"GitHub request failed with {response.status_code} for {path}: "
                f"{response.text[:200]}"
            )
        return response

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.headers.get("x-ratelimit-remaining") == "0":
            return True
        return "rate limit" in response.text.lower()

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[float]:
        if "retry-after" in response.headers:
            try:
                return float(response.headers["retry-after"])
            except ValueError:
                return None
        reset = response.headers.get("x-ratelimit-reset")
        if reset:
            try:
                return max(0.0, float(reset) - time.time())
            except ValueError:
                return None
        return None

    def _with_branch_fallback(self, branch: str, call):
        """Run ``call(branch)``, retrying on 'master' when 'main' does not exist."""
        try:
            return call(branch), branch
        except GithubNotFoundError:
            fallback = FALLBACK_BRANCHES.get(branch)
            if not fallback:
                raise
            logger.info(f"Branch '{branch}' not found, trying '{fallback}'")
            return call(fallback), fallback

    # ------------------------------------------------------------------
    # API calls
    # ------------------------------------------------------------------

    def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return self._rest_request("GET", f"/repos/{owner}/{repo}").json()

    def list_tree(
        self, owner: str, repo: str, branch: str
    ) -> tuple[List[Dict[str, Any]], str]:
        """Recursive blob listing as ``{path, size, sha}``, plus the branch read."""

        def _fetch(ref: str) -> List[Dict[str, Any]]:
            branch_data = self._rest_request(
                "GET", f"/repos/{owner}/{repo}/branches/{ref}"
            ).json()
            tree_sha = branch_data["commit"]["sha"]
            tree = self._rest_request(
                "GET",
                f"/repos/{owner}/{repo}/git/trees/{tree_sha}",
                params={"recursive": "1"},
            ).json()
            if tree.get("truncated"):
                logger.warning(f"Tree listing for {owner}/{repo}@{ref} was truncated by GitHub")
            return [
                {"path": item["path"], "size": item.get("size") or 0, "sha": item.get("sha")}
                for item in tree.get("tree", [])
                if item.get("type") == "blob"
            ]

        return self._with_branch_fallback(branch, _fetch)

    def read_file(self, owner: str, repo: str, path: str, branch: str) -> str:
        response = self._rest_request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{path}",
            params={"ref": branch},
        )
        payload = response.json()
        if isinstance(payload, list):
            raise GithubError(f"{path} is a directory")
        content = payload.get("content")
        if content is None:
            raise GithubError(f"No content returned for {path}")
        if payload.get("encoding") == "base64":
            return base64.b64decode(content).decode("utf-8", errors="replace")
        return content

    def list_commits(
        self,
        owner: str,
        repo: str,
        branch: str,
        per_page: int = 30,
        since: Optional[str] = None,
    ) -> tuple[List[Dict[str, Any]], str]:
        """Commits newest first, plus the branch that was actually read."""

        def _fetch(ref: str) -> List[Dict[str, Any]]:
            params: Dict[str, Any] = {"sha": ref, "per_page": per_page}
            if since:
                params["since"] = since
            data = self._rest_request(
                "GET", f"/repos/{owner}/{repo}/commits", params=params
            ).json()
            return [self._format_commit(commit) for commit in data]

        return self._with_branch_fallback(branch, _fetch)

    def list_branches(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        data = self._rest_request(
            "GET", f"/repos/{owner}/{repo}/branches", params={"per_page": 100}
        ).json()
        return [
            {
                "name": branch["name"],
                "protected": bool(branch.get("protected")),
                "sha": (branch.get("commit") or {}).get("sha"),
            }
            for branch in data
        ]

    @staticmethod
    def _format_commit(commit: Dict[str, Any]) -> Dict[str, Any]:
        details = commit.get("commit") or {}
        author = details.get("author") or {}
        account = commit.get("author") or {}
        return {
            "sha": commit.get("sha"),
            "message": details.get("message", ""),
            "author": {
                "name": author.get("name"),
                "email": author.get("email"),
                "login": account.get("login"),
                "avatar_url": account.get("avatar_url"),
            },
            "date": author.get("date"),
            "parents": [parent.get("sha") for parent in commit.get("parents", [])],
            "html_url": commit.get("html_url"),
        }


def get_github_client(token: Optional[str] = None) -> GitHubClient:
    """Client authenticated with the given token or the configured service token."""
    token = token or settings.GITHUB_TOKEN
    if not token:
        raise GithubConfigurationError("GITHUB_TOKEN is not configured")
    return GitHubClient(token=token)
