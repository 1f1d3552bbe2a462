import aiohttp
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from gatekeeper.domain.exceptions import (
    RateLimitExceededException,
    ResourceNotFoundError,
    TransportError,
)
from gatekeeper.domain.models import Page

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
PER_PAGE = 100
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)


class GitHubRestClient:
    """
    Thin client for the GitHub REST v3 API.
    Handles authentication, Link-header pagination and maps failures onto TransportError.
    Nothing is retried here: every error is surfaced to the caller.
    """

    def __init__(
        self,
        token: str,
        session: Optional[aiohttp.ClientSession] = None,
        api_url: str = GITHUB_API_URL,
    ):
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "pr-gatekeeper",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.api_url = api_url.rstrip("/")
        self.session = session

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        accept: Iterable[int] = (),
    ) -> Tuple[int, Any, Optional[str]]:
        """
        Performs one API call.

        Returns:
            Tuple of (http_status, decoded_body, next_page_url).
        """
        url = path if path.startswith("http") else f"{self.api_url}{path}"
        try:
            async with self.session.request(
                method, url, json=json, params=params, headers=self.headers, timeout=REQUEST_TIMEOUT
            ) as response:
                if response.status >= 400 and response.status not in accept:
                    message = await self._error_message(response)
                    if response.status == 404:
                        raise ResourceNotFoundError(message, url)
                    if response.status == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
                        reset = int(response.headers.get("X-RateLimit-Reset", "0"))
                        raise RateLimitExceededException(
                            reset_at=datetime.fromtimestamp(reset, tz=timezone.utc).isoformat()
                        )
                    raise TransportError(response.status, message, url)

                data = None
                if response.status != 204:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError as e:
                        raise TransportError(response.status, f"invalid JSON: {e}", url) from e

                next_link = response.links.get("next")
                next_url = str(next_link["url"]) if next_link else None
                return response.status, data, next_url

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{method} {url} failed: {e!r}")
            raise TransportError(0, str(e) or type(e).__name__, url) from e

    @staticmethod
    async def _error_message(response) -> str:
        try:
            body = await response.json(content_type=None)
            return body.get("message", str(body))
        except (ValueError, aiohttp.ContentTypeError):
            return await response.text()

    async def _page(self, path: str, params: Optional[Dict[str, Any]] = None) -> Page:
        query = {"per_page": PER_PAGE}
        query.update(params or {})
        _, data, next_url = await self._request("GET", path, params=query)
        return Page(items=data or [], next_url=next_url)

    async def fetch_text(self, url: str) -> str:
        """Downloads a document outside the API (no credentials are sent)."""
        try:
            async with self.session.get(url, timeout=REQUEST_TIMEOUT) as response:
                if response.status == 404:
                    raise ResourceNotFoundError(await response.text(), url)
                if response.status >= 400:
                    raise TransportError(response.status, await response.text(), url)
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(0, str(e) or type(e).__name__, url) from e

    async def get_next_page(self, page: Page) -> Page:
        """Follows the continuation of a previously fetched page."""
        if not page.next_url:
            raise ValueError("No next page found")
        _, data, next_url = await self._request("GET", page.next_url)
        return Page(items=data or [], next_url=next_url)

    async def merge(self, owner: str, repo: str, base: str, head: str) -> Tuple[int, Optional[Dict[str, Any]]]:
        # 201 merged, 204 nothing to merge, 409 conflict
        status, data, _ = await self._request(
            "POST", f"/repos/{owner}/{repo}/merges", json={"base": base, "head": head}, accept=(409,)
        )
        return status, data

    async def compare_commits(self, owner: str, repo: str, base: str, head: str) -> Dict[str, Any]:
        _, data, _ = await self._request("GET", f"/repos/{owner}/{repo}/compare/{base}...{head}")
        return data

    async def list_pull_requests(self, owner: str, repo: str, state: str = "open") -> Page:
        return await self._page(f"/repos/{owner}/{repo}/pulls", {"state": state})

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        _, data, _ = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{number}")
        return data

    async def list_pull_request_commits(self, owner: str, repo: str, number: int) -> Page:
        return await self._page(f"/repos/{owner}/{repo}/pulls/{number}/commits")

    async def list_contributors(self, owner: str, repo: str) -> Page:
        return await self._page(f"/repos/{owner}/{repo}/contributors")

    async def list_commits(self, owner: str, repo: str) -> Page:
        return await self._page(f"/repos/{owner}/{repo}/commits")

    async def get_statuses(self, owner: str, repo: str, sha: str) -> Page:
        return await self._page(f"/repos/{owner}/{repo}/commits/{sha}/statuses")

    async def create_status(
        self,
        owner: str,
        repo: str,
        sha: str,
        state: str,
        context: str,
        description: str,
        target_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {"state": state, "context": context, "description": description}
        if target_url:
            payload["target_url"] = target_url
        _, data, _ = await self._request("POST", f"/repos/{owner}/{repo}/statuses/{sha}", json=payload)
        return data

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        _, data, _ = await self._request("GET", f"/repos/{owner}/{repo}/commits/{sha}")
        return data

    async def rate_limit(self) -> Dict[str, Any]:
        _, data, _ = await self._request("GET", "/rate_limit")
        return data

    async def list_hooks(self, owner: str, repo: str) -> Page:
        return await self._page(f"/repos/{owner}/{repo}/hooks")

    async def delete_hook(self, owner: str, repo: str, hook_id: int) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/hooks/{hook_id}")

    async def create_hook(self, owner: str, repo: str, url: str, events: List[str]) -> Dict[str, Any]:
        payload = {
            "name": "web",
            "active": True,
            "events": list(events),
            "config": {"url": url, "content_type": "json"},
        }
        _, data, _ = await self._request("POST", f"/repos/{owner}/{repo}/hooks", json=payload)
        return data
