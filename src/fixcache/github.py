from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from jose import jwt

from .config import FixCacheConfig
from .constants import Limits
from .errors import ConfigurationError, GitHubAPIError, TransientAPIError
from .models import ChangedFile

GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "fixcache-app"
RETRYABLE_STATUS = {429, 500, 502, 503, 504}
BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 30.0


def _is_rate_limited(response: httpx.Response) -> bool:
    return response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"


def _retry_delay(response: Optional[httpx.Response], attempt: int, backoff: float) -> float:
    if response is not None:
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return min(float(retry_after), MAX_BACKOFF_SECONDS)
    return min(backoff * (2 ** attempt), MAX_BACKOFF_SECONDS)


class GitHubClient:
    """Async GitHub REST client scoped to one token (usually one installation)."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_seconds: float = BACKOFF_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """
        Send a request, retrying rate limits, 5xx and transport failures.

        Statuses in `allow_status` are returned to the caller instead of raising.
        """
        last_error = ""
        for attempt in range(self.max_retries):
            response: Optional[httpx.Response] = None
            try:
                response = await self._http.request(method, url, params=params, json=json)
            except httpx.TimeoutException as exc:
                last_error = f"timeout: {exc}"
            except httpx.TransportError as exc:
                last_error = f"transport error: {exc}"
            else:
                if response.status_code < 400 or response.status_code in allow_status:
                    return response
                if response.status_code not in RETRYABLE_STATUS and not _is_rate_limited(response):
                    raise GitHubAPIError(
                        f"{method} {url} failed with {response.status_code}: {response.text[:200]}",
                        status_code=response.status_code,
                    )
                last_error = f"status {response.status_code}"

            if attempt < self.max_retries - 1:
                await asyncio.sleep(_retry_delay(response, attempt, self.backoff_seconds))

        raise TransientAPIError(
            f"{method} {url} failed after {self.max_retries} attempts ({last_error})",
            status_code=response.status_code if response is not None else None,
        )

    async def _paginate(self, url: str, params: Optional[Dict[str, Any]] = None) -> AsyncIterator[httpx.Response]:
        """Follow `Link: rel="next"` headers, yielding every page."""
        next_url: Optional[str] = url
        next_params: Optional[Dict[str, Any]] = {"per_page": Limits.GITHUB_PAGE_SIZE, **(params or {})}
        while next_url:
            response = await self.request("GET", next_url, params=next_params)
            yield response
            next_url = response.links.get("next", {}).get("url")
            # the next link already carries the query string
            next_params = None

    async def list_commits(
        self, owner: str, repo: str, branch: str, since: datetime
    ) -> AsyncIterator[Dict[str, Any]]:
        """Commits on `branch` since `since`, newest first, one page at a time."""
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        params = {"sha": branch, "since": since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")}
        async for page in self._paginate(f"/repos/{owner}/{repo}/commits", params):
            for commit in page.json():
                yield commit

    async def get_commit_files(self, owner: str, repo: str, sha: str) -> List[ChangedFile]:
        files: List[ChangedFile] = []
        async for page in self._paginate(f"/repos/{owner}/{repo}/commits/{sha}"):
            for item in page.json().get("files") or []:
                if item.get("filename"):
                    files.append(ChangedFile(path=item["filename"], status=item.get("status", "modified")))
        return files

    async def list_pull_request_files(self, owner: str, repo: str, pr_number: int) -> List[str]:
        paths: List[str] = []
        async for page in self._paginate(f"/repos/{owner}/{repo}/pulls/{pr_number}/files"):
            paths.extend(item["filename"] for item in page.json() if item.get("filename"))
        return paths

    async def create_label(self, owner: str, repo: str, name: str, color: str) -> bool:
        """Create the label; False when it already exists."""
        response = await self.request(
            "POST",
            f"/repos/{owner}/{repo}/labels",
            json={"name": name, "color": color},
            allow_status=(422,),
        )
        return response.status_code != 422

    async def add_labels(self, owner: str, repo: str, issue_number: int, labels: List[str]) -> None:
        await self.request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/labels",
            json={"labels": labels},
        )

    async def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Optional[str]:
        response = await self.request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body},
        )
        try:
            return (response.json() or {}).get("html_url")
        except ValueError:
            return None


def create_app_jwt(app_id: str, private_key: str, now: Optional[int] = None) -> str:
    """RS256 JWT identifying the GitHub App itself (valid ~10 minutes)."""
    issued = int(now if now is not None else time.time())
    payload = {"iat": issued - 60, "exp": issued + 540, "iss": str(app_id)}
    return jwt.encode(payload, private_key, algorithm="RS256")


class GitHubClientFactory:
    """
    Builds one GitHubClient per installation for the duration of a single event.

    Clients are not pooled across events. A configured static token skips the App
    token exchange (local development).
    """

    def __init__(self, config: FixCacheConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def _client(self, token: str) -> GitHubClient:
        return GitHubClient(
            token,
            api_url=self.config.github_api_url,
            timeout=self.config.github_timeout_seconds,
            max_retries=self.config.github_max_retries,
            transport=self.transport,
        )

    async def installation_token(self, installation_id: int) -> str:
        static = self.config.github_token.get_secret_value()
        if static:
            return static
        private_key = self.config.app_private_key()
        if not self.config.github_app_id or not private_key:
            raise ConfigurationError("github_app_id and a private key are required for App authentication")

        app_token = create_app_jwt(self.config.github_app_id, private_key)
        async with self._client(app_token) as app_client:
            response = await app_client.request(
                "POST", f"/app/installations/{installation_id}/access_tokens"
            )
        token = (response.json() or {}).get("token")
        if not token:
            raise GitHubAPIError(
                f"installation {installation_id} token response had no token",
                status_code=response.status_code,
            )
        return token

    @asynccontextmanager
    async def for_installation(self, installation_id: int) -> AsyncIterator[GitHubClient]:
        token = await self.installation_token(installation_id)
        client = self._client(token)
        try:
            yield client
        finally:
            await client.aclose()
