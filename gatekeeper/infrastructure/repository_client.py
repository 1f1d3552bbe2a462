import asyncio
import csv
import io
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from gatekeeper.domain.exceptions import (
    BuildNotFoundError,
    ResourceNotFoundError,
    TransportError,
    WebhookReconciliationError,
)
from gatekeeper.domain.models import (
    Commit,
    Contributor,
    MergeResult,
    Page,
    PullRequest,
    RateLimit,
    RepositoryConfig,
    RestartResult,
    Status,
    StatusState,
)
from gatekeeper.infrastructure.acl import GitHubTranslator, TravisTranslator
from gatekeeper.infrastructure.github_client import GitHubRestClient
from gatekeeper.infrastructure.travis_client import TravisClient

logger = logging.getLogger(__name__)

# GitHub rejects status descriptions longer than this
MAX_STATUS_DESCRIPTION = 140


class RepositoryClient:
    """
    Sole gateway to the hosting and CI services for one repository.

    Holds no cached remote state: every call asks the providers again, so results
    are only as old as the call that produced them.
    """

    def __init__(self, config: RepositoryConfig, github: GitHubRestClient, travis: TravisClient):
        self.config = config
        self.github = github
        self.travis = travis
        self.org = config.organization
        self.repo = config.repository

    @property
    def validators(self) -> Sequence[Any]:
        return self.config.validators

    @property
    def hooks(self) -> Dict[str, List[str]]:
        return self.config.hooks

    async def merge(self, head: str, base: str) -> MergeResult:
        logger.info(f"[{self}] Merging {head} into {base}...")
        status, data = await self.github.merge(self.org, self.repo, base=base, head=head)
        result = GitHubTranslator.to_merge_result(status, data)
        logger.info(f"[{self}] Merge of {head} into {base}: {result.outcome.value}")
        return result

    async def is_behind_master(self, sha: str) -> Tuple[bool, int]:
        """
        Compares `sha` with the default branch.

        Returns:
            Tuple of (is_behind, commits_behind).
        """
        data = await self.github.compare_commits(self.org, self.repo, base=self.config.default_branch, head=sha)
        behind_by = data.get("behind_by", 0)
        return behind_by > 0, behind_by

    async def get_all_open_pull_requests(self) -> List[PullRequest]:
        first = await self.github.list_pull_requests(self.org, self.repo, state="open")
        items = await self._get_remaining_pages(first)
        return [GitHubTranslator.to_pull_request(raw) for raw in items]

    async def get_pull_request(self, number: int) -> PullRequest:
        raw = await self.github.get_pull_request(self.org, self.repo, number)
        return GitHubTranslator.to_pull_request(raw)

    async def get_last_commit_on_pull_request(self, number: int) -> Commit:
        first = await self.github.list_pull_request_commits(self.org, self.repo, number)
        items = await self._get_remaining_pages(first, strict=True)
        if not items:
            raise ResourceNotFoundError(f"Pull request #{number} of {self} has no commits")
        return GitHubTranslator.to_commit(items[-1])

    async def get_contributors(self, strict: bool = False) -> List[Contributor]:
        first = await self.github.list_contributors(self.org, self.repo)
        items = await self._get_remaining_pages(first, strict=strict)
        return [GitHubTranslator.to_contributor(raw) for raw in items]

    async def get_contributor_roster(self) -> List[str]:
        """
        Logins listed in the CSV document at `contributors_url`.
        The first row is a header. Logins come from its "Github" column when
        present, otherwise from the first column.
        """
        if not self.config.contributors_url:
            return []
        text = await self.github.fetch_text(self.config.contributors_url)
        rows = [row for row in csv.reader(io.StringIO(text)) if row and row[0].strip()]
        if not rows:
            return []
        header = [cell.strip().lower() for cell in rows[0]]
        column = header.index("github") if "github" in header else 0
        return [row[column].strip() for row in rows[1:] if len(row) > column and row[column].strip()]

    async def get_commits(self, strict: bool = False) -> List[Commit]:
        first = await self.github.list_commits(self.org, self.repo)
        items = await self._get_remaining_pages(first, strict=strict)
        return [GitHubTranslator.to_commit(raw) for raw in items]

    async def get_all_statuses_for(self, sha: str) -> List[Status]:
        try:
            first = await self.github.get_statuses(self.org, self.repo, sha)
        except ResourceNotFoundError:
            return []
        items = await self._get_remaining_pages(first)
        return [GitHubTranslator.to_status(raw) for raw in items]

    async def get_commit(self, sha: str) -> Commit:
        raw = await self.github.get_commit(self.org, self.repo, sha)
        return GitHubTranslator.to_commit(raw)

    async def create_status(
        self,
        sha: str,
        state: StatusState,
        description: str,
        target_url: Optional[str] = None,
    ) -> None:
        if len(description) > MAX_STATUS_DESCRIPTION:
            description = description[:MAX_STATUS_DESCRIPTION - 3] + "..."
        logger.info(f"[{self}] Posting {state.value} status on {sha}: {description}")
        await self.github.create_status(
            self.org,
            self.repo,
            sha,
            state=state.value,
            context=self.config.status_context,
            description=description,
            target_url=target_url,
        )

    async def rate_limit(self) -> RateLimit:
        return GitHubTranslator.to_rate_limit(await self.github.rate_limit())

    async def confirm_webhook_exists(self, url: str, events: Sequence[str]) -> None:
        """
        Makes sure exactly one webhook posts `events` to `url`.

        Webhooks for `url` subscribed to a different event set are removed first,
        all at once; if any removal fails nothing is created and
        WebhookReconciliationError is raised.
        """
        wanted = frozenset(events)
        logger.info(f"[{self}] Web hook check for {url}")
        first = await self.github.list_hooks(self.org, self.repo)
        hooks = [GitHubTranslator.to_webhook(raw) for raw in await self._get_remaining_pages(first, strict=True)]
        logger.info(f"[{self}] Found {len(hooks)} webhooks")

        found = False
        stale = []
        for hook in hooks:
            if hook.url != url:
                continue
            if hook.events == wanted and not found:
                found = True
            else:
                stale.append(hook)

        if stale:
            for hook in stale:
                logger.warning(f"[{self}] Removing old webhook {hook.id} for {url}.")
            results = await asyncio.gather(
                *(self.github.delete_hook(self.org, self.repo, hook.id) for hook in stale),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, asyncio.CancelledError):
                    raise result
            failures = [result for result in results if isinstance(result, BaseException)]
            if failures:
                raise WebhookReconciliationError(url, failures)

        if not found:
            created = GitHubTranslator.to_webhook(
                await self.github.create_hook(self.org, self.repo, url, sorted(wanted))
            )
            logger.warning(
                f"[{self}] Created web hook {created.id} for {url}, "
                f"monitoring events \"{', '.join(sorted(created.events))}\""
            )

    async def confirm_configured_webhooks(self) -> None:
        for url, events in self.hooks.items():
            await self.confirm_webhook_exists(url, events)

    async def trigger_travis_for_pull_request(self, pr_number: int) -> RestartResult:
        logger.debug(f"Attempting to trigger a build for {self} PR#{pr_number}")
        raw_builds = await self.travis.list_builds(self.get_repo_slug(), event_type="pull_request")
        builds = [TravisTranslator.to_build(raw) for raw in raw_builds]
        build = next((b for b in builds if b.pull_request_number == pr_number), None)
        if build is None:
            raise BuildNotFoundError(pr_number, self.get_repo_slug())

        logger.info(f"[{self}] Triggering build restart for PR#{pr_number} (build {build.id})")
        return TravisTranslator.to_restart_result(build.id, await self.travis.restart_build(build.id))

    async def _get_remaining_pages(self, first: Page, strict: bool = False) -> List[Dict[str, Any]]:
        """
        Concatenates `first` and every following page.

        A failure fetching a later page ends the listing with what was collected so
        far, unless `strict` is set, in which case the error is raised.
        """
        all_data = list(first.items)
        page = first
        page_number = 1
        while page.next_url:
            page_number += 1
            try:
                page = await self.github.get_next_page(page)
            except TransportError as e:
                if strict:
                    raise
                logger.warning(
                    f"[{self}] Page {page_number} could not be fetched ({e}); "
                    f"returning the {len(all_data)} items collected so far."
                )
                break
            all_data.extend(page.items)
        return all_data

    def get_repo_slug(self) -> str:
        return f"{self.org}/{self.repo}"

    def __str__(self) -> str:
        return self.get_repo_slug()
