import importlib
import os
import tempfile
import unittest
from unittest.mock import patch

from pydantic import ValidationError

import gatekeeper.main
from gatekeeper.main import load_config, setup

ENV = {
    "GITHUB_USERNAME": "gatekeeper-bot",
    "GITHUB_TOKEN": "ghp_token",
    "GITHUB_ORGANIZATION": "acme",
    "GITHUB_REPOSITORY": "widgets",
}


class TestLoadConfig(unittest.TestCase):
    def test_builds_config_from_environment(self) -> None:
        env = dict(ENV, VALIDATORS="fast_forward,contributor", WEBHOOKS='{"https://x/webhook": ["push"]}')
        with patch.dict(os.environ, env, clear=True):
            config = load_config()

        self.assertEqual([v.name for v in config.validators], ["fast_forward", "contributor"])
        self.assertEqual(config.hooks, {"https://x/webhook": ["push"]})
        self.assertEqual(config.github_token.get_secret_value(), "ghp_token")
        self.assertIsNone(config.travis_token)
        self.assertFalse(config.auto_merge)

    def test_default_validators(self) -> None:
        with patch.dict(os.environ, ENV, clear=True):
            config = load_config()

        self.assertEqual([v.name for v in config.validators], ["contributor", "fast_forward", "ci_status"])

    def test_missing_credentials_exit(self) -> None:
        env = dict(ENV)
        del env["GITHUB_TOKEN"]
        with patch.dict(os.environ, env, clear=True), self.assertRaises(SystemExit):
            load_config()

    def test_invalid_webhooks_exit(self) -> None:
        with patch.dict(os.environ, dict(ENV, WEBHOOKS="not json"), clear=True), self.assertRaises(SystemExit):
            load_config()

    def test_config_is_immutable(self) -> None:
        with patch.dict(os.environ, ENV, clear=True):
            config = load_config()

        with self.assertRaises(ValidationError):
            config.repository = "other"


class TestSetup(unittest.TestCase):
    def test_log_level_from_dotenv_file_is_applied(self) -> None:
        lines = [f"{name}={value}" for name, value in ENV.items()] + ["LOG_LEVEL=warning"]
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, ".env")
            with open(path, "w") as f:
                f.write("\n".join(lines) + "\n")

            with patch.dict(os.environ, {}, clear=True), \
                    patch("gatekeeper.main.logging.basicConfig") as basic_config:
                config = setup(path)

        self.assertEqual(basic_config.call_args.kwargs["level"], "WARNING")
        self.assertEqual(config.repository, "widgets")

    def test_importing_main_leaves_logging_unconfigured(self) -> None:
        with patch("logging.basicConfig") as basic_config:
            importlib.reload(gatekeeper.main)

        basic_config.assert_not_called()
