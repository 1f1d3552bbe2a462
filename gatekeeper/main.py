import asyncio
import json
import os
import sys
import logging
from typing import Optional

from aiohttp import ClientSession, TCPConnector, web
from dotenv import load_dotenv

from gatekeeper.application.event_dispatcher import EventDispatcher
from gatekeeper.application.validators import build_validators
from gatekeeper.domain.models import RepositoryConfig
from gatekeeper.infrastructure.github_client import GitHubRestClient
from gatekeeper.infrastructure.repository_client import RepositoryClient
from gatekeeper.infrastructure.travis_client import TravisClient
from gatekeeper.infrastructure.webhook_server import create_app

logger = logging.getLogger(__name__)

DEFAULT_VALIDATORS = "contributor,fast_forward,ci_status"
# Limit concurrent connections to the providers
CONNECTOR_LIMIT = 10


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def load_config() -> RepositoryConfig:
    """Builds the repository configuration from the environment, exiting when it is incomplete."""
    required = {
        name: os.getenv(name)
        for name in ("GITHUB_USERNAME", "GITHUB_TOKEN", "GITHUB_ORGANIZATION", "GITHUB_REPOSITORY")
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        logger.error(f"{', '.join(missing)} not set in the environment.")
        sys.exit(1)

    try:
        hooks = json.loads(os.getenv("WEBHOOKS") or "{}")
        validators = build_validators(os.getenv("VALIDATORS", DEFAULT_VALIDATORS).split(","))
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    return RepositoryConfig(
        github_username=required["GITHUB_USERNAME"],
        github_token=required["GITHUB_TOKEN"],
        travis_token=os.getenv("TRAVIS_TOKEN") or None,
        organization=required["GITHUB_ORGANIZATION"],
        repository=required["GITHUB_REPOSITORY"],
        validators=validators,
        hooks=hooks,
        contributors_url=os.getenv("CONTRIBUTORS_URL") or None,
        default_branch=os.getenv("DEFAULT_BRANCH", "master"),
        auto_merge=os.getenv("AUTO_MERGE", "false").lower() in ("1", "true", "yes"),
    )


def setup(dotenv_path: Optional[str] = None) -> RepositoryConfig:
    """Loads .env, then configures logging and the repository from the environment it filled."""
    load_dotenv(dotenv_path)
    configure_logging()
    return load_config()


async def main():
    config = setup()
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))

    async with ClientSession(connector=TCPConnector(limit=CONNECTOR_LIMIT)) as session:
        github = GitHubRestClient(token=config.github_token.get_secret_value(), session=session)
        travis_token = config.travis_token.get_secret_value() if config.travis_token else None
        travis = TravisClient(token=travis_token, session=session)
        repo_client = RepositoryClient(config, github, travis)

        # Webhooks must point at us before events can arrive
        await repo_client.confirm_configured_webhooks()

        dispatcher = EventDispatcher(repo_client)
        runner = web.AppRunner(create_app(dispatcher, secret=os.getenv("WEBHOOK_SECRET") or None))
        await runner.setup()
        await web.TCPSite(runner, host, port).start()
        logger.info(f"Guarding {repo_client} with {len(config.validators)} validators on {host}:{port}")

        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Exiting gracefully.")
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
