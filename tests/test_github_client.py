import json
import unittest
from unittest.mock import AsyncMock, MagicMock

import aiohttp

from gatekeeper.domain.exceptions import RateLimitExceededException, ResourceNotFoundError, TransportError
from gatekeeper.domain.models import Page, RepositoryConfig
from gatekeeper.infrastructure.github_client import GitHubRestClient
from gatekeeper.infrastructure.repository_client import RepositoryClient
from gatekeeper.infrastructure.travis_client import TravisClient


def _response(status, body=None, links=None, headers=None):
    resp = AsyncMock()
    resp.status = status
    resp.headers = headers or {}
    resp.links = links or {}
    resp.json = AsyncMock(return_value=body)
    resp.text = AsyncMock(return_value=str(body))
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _html_response(status=200, links=None):
    resp = _response(status, links=links)
    resp.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "<html></html>", 0))
    return resp


def _session(*responses):
    session = MagicMock()
    session.request = MagicMock(side_effect=list(responses))
    return session


class TestGitHubRestClient(unittest.TestCase):
    def test_pins_rest_api_version_and_bearer_token(self) -> None:
        client = GitHubRestClient(token="ghp_abc")

        self.assertEqual(client.headers["X-GitHub-Api-Version"], "2022-11-28")
        self.assertEqual(client.headers["Authorization"], "Bearer ghp_abc")

    def test_enterprise_api_url_loses_trailing_slash(self) -> None:
        client = GitHubRestClient(token="t", api_url="https://github.example.com/api/v3/")

        self.assertEqual(client.api_url, "https://github.example.com/api/v3")


class TestGitHubRequests(unittest.IsolatedAsyncioTestCase):
    async def test_page_follows_link_header(self) -> None:
        next_url = "https://api.github.com/repositories/1/contributors?page=2"
        session = _session(
            _response(200, [{"login": "alice"}], links={"next": {"url": next_url}}),
            _response(200, [{"login": "bob"}]),
        )
        client = GitHubRestClient(token="t", session=session)

        first = await client.list_contributors("acme", "widgets")
        second = await client.get_next_page(first)

        self.assertEqual(first.next_url, next_url)
        self.assertEqual(second.items, [{"login": "bob"}])
        self.assertIsNone(second.next_url)
        method, url = session.request.call_args_list[1].args
        self.assertEqual((method, url), ("GET", next_url))

    async def test_next_page_without_continuation_raises(self) -> None:
        client = GitHubRestClient(token="t", session=_session())

        with self.assertRaises(ValueError):
            await client.get_next_page(Page(items=[]))

    async def test_404_maps_to_resource_not_found(self) -> None:
        session = _session(_response(404, {"message": "Not Found"}))
        client = GitHubRestClient(token="t", session=session)

        with self.assertRaises(ResourceNotFoundError) as ctx:
            await client.get_commit("acme", "widgets", "deadbeef")

        self.assertIn("Not Found", str(ctx.exception))

    async def test_exhausted_quota_maps_to_rate_limit(self) -> None:
        session = _session(_response(
            403, {"message": "API rate limit exceeded"},
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1767225600"},
        ))
        client = GitHubRestClient(token="t", session=session)

        with self.assertRaises(RateLimitExceededException) as ctx:
            await client.rate_limit()

        self.assertTrue(ctx.exception.reset_at.startswith("2026-01-01"))

    async def test_merge_conflict_is_not_an_error(self) -> None:
        session = _session(_response(409, {"message": "Merge Conflict"}))
        client = GitHubRestClient(token="t", session=session)

        status, data = await client.merge("acme", "widgets", base="main", head="abc")

        self.assertEqual(status, 409)
        self.assertEqual(data["message"], "Merge Conflict")
        self.assertEqual(session.request.call_args.kwargs["json"], {"base": "main", "head": "abc"})

    async def test_delete_hook_handles_empty_body(self) -> None:
        resp = _response(204)
        client = GitHubRestClient(token="t", session=_session(resp))

        await client.delete_hook("acme", "widgets", 42)

        resp.json.assert_not_awaited()

    async def test_connection_errors_become_transport_errors(self) -> None:
        session = MagicMock()
        session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        client = GitHubRestClient(token="t", session=session)

        with self.assertRaises(TransportError) as ctx:
            await client.list_hooks("acme", "widgets")

        self.assertEqual(ctx.exception.status, 0)


class TestTravisClient(unittest.IsolatedAsyncioTestCase):
    async def test_list_builds_quotes_slug(self) -> None:
        session = _session(_response(200, {"builds": [{"id": 1, "pull_request_number": 2}]}))
        client = TravisClient(token="tt", session=session)

        builds = await client.list_builds("acme/widgets")

        self.assertEqual(builds, [{"id": 1, "pull_request_number": 2}])
        method, url = session.request.call_args.args
        self.assertEqual(url, "https://api.travis-ci.com/repo/acme%2Fwidgets/builds")
        self.assertEqual(session.request.call_args.kwargs["params"]["event_type"], "pull_request")
        self.assertEqual(client.headers["Authorization"], "token tt")

    async def test_restart_failure_raises(self) -> None:
        client = TravisClient(token=None, session=_session(_response(403, "forbidden")))

        with self.assertRaises(TransportError):
            await client.restart_build(1)
        self.assertNotIn("Authorization", client.headers)


class TestUndecodableBodies(unittest.IsolatedAsyncioTestCase):
    async def test_html_body_becomes_transport_error(self) -> None:
        client = GitHubRestClient(token="t", session=_session(_html_response()))

        with self.assertRaises(TransportError) as ctx:
            await client.get_commit("acme", "widgets", "abc")

        self.assertEqual(ctx.exception.status, 200)
        self.assertIn("invalid JSON", str(ctx.exception))

    async def test_html_later_page_ends_contributor_listing(self) -> None:
        next_url = "https://api.github.com/repositories/1/contributors?page=2"
        session = _session(
            _response(200, [{"login": "alice"}], links={"next": {"url": next_url}}),
            _html_response(),
        )
        config = RepositoryConfig(
            github_username="bot", github_token="t", organization="acme", repository="widgets"
        )
        repo_client = RepositoryClient(config, GitHubRestClient(token="t", session=session), None)

        contributors = await repo_client.get_contributors()

        self.assertEqual([c.login for c in contributors], ["alice"])

    async def test_travis_html_body_becomes_transport_error(self) -> None:
        client = TravisClient(token="tt", session=_session(_html_response()))

        with self.assertRaises(TransportError):
            await client.list_builds("acme/widgets")
