import aiohttp
import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from gatekeeper.domain.exceptions import ResourceNotFoundError, TransportError

logger = logging.getLogger(__name__)

TRAVIS_API_URL = "https://api.travis-ci.com"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30, connect=10)


class TravisClient:
    """
    Client for the Travis CI v3 API, limited to what rebuild triggering needs.
    """

    def __init__(
        self,
        token: Optional[str],
        session: Optional[aiohttp.ClientSession] = None,
        api_url: str = TRAVIS_API_URL,
    ):
        self.headers = {
            "Travis-API-Version": "3",
            "User-Agent": "pr-gatekeeper",
        }
        if token:
            self.headers["Authorization"] = f"token {token}"
        self.api_url = api_url.rstrip("/")
        self.session = session

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            async with self.session.request(
                method, url, params=params, headers=self.headers, timeout=REQUEST_TIMEOUT
            ) as response:
                if response.status == 404:
                    raise ResourceNotFoundError(await response.text(), url)
                if response.status >= 400:
                    raise TransportError(response.status, await response.text(), url)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise TransportError(response.status, f"invalid JSON: {e}", url) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{method} {url} failed: {e!r}")
            raise TransportError(0, str(e) or type(e).__name__, url) from e

    async def list_builds(self, slug: str, event_type: str = "pull_request") -> List[Dict[str, Any]]:
        """Most recent builds of a repository, newest first. The lookback window is Travis' default."""
        data = await self._request(
            "GET",
            f"/repo/{quote(slug, safe='')}/builds",
            params={"event_type": event_type, "sort_by": "id:desc"},
        )
        return data.get("builds", [])

    async def restart_build(self, build_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"/build/{build_id}/restart")
