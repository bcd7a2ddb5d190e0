"""Tests for credential stores.

Run with: pytest tests/test_credentials.py -v
"""

from __future__ import annotations

from pathlib import Path

import pytest

from git_status_wrapper.credentials import (
    ChainCredentialStore,
    EnvCredentialStore,
    FileCredentialStore,
    default_store,
    env_var_for,
)
from git_status_wrapper.errors import ConfigError

CREDENTIALS_YAML = """\
ci-bot:
  username: ci-bot
  token: ghp_from_file
  description: Bot account for commit statuses
release:
  token: ghp_release
"""


@pytest.fixture
def credentials_file(tmp_path: Path) -> Path:
    path = tmp_path / "credentials.yaml"
    path.write_text(CREDENTIALS_YAML)
    return path


class TestFileCredentialStore:
    def test_get(self, credentials_file: Path) -> None:
        credential = FileCredentialStore(credentials_file).get("ci-bot")

        assert credential is not None
        assert credential.username == "ci-bot"
        assert credential.token.get_secret_value() == "ghp_from_file"
        assert credential.description == "Bot account for commit statuses"

    def test_unknown_id(self, credentials_file: Path) -> None:
        assert FileCredentialStore(credentials_file).get("nobody") is None

    def test_list(self, credentials_file: Path) -> None:
        ids = [c.id for c in FileCredentialStore(credentials_file).list()]
        assert ids == ["ci-bot", "release"]

    def test_token_not_in_repr(self, credentials_file: Path) -> None:
        credential = FileCredentialStore(credentials_file).get("release")
        assert "ghp_release" not in repr(credential)

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert FileCredentialStore(tmp_path / "absent.yaml").list() == []

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text("ci-bot: [unclosed\n")
        with pytest.raises(ConfigError):
            FileCredentialStore(path).get("ci-bot")

    def test_entry_without_token(self, tmp_path: Path) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text("ci-bot:\n  username: ci-bot\n")
        with pytest.raises(ConfigError):
            FileCredentialStore(path).list()


class TestEnvCredentialStore:
    def test_env_var_name(self) -> None:
        assert env_var_for("ci-bot") == "GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT"
        assert env_var_for("team.release") == "GIT_STATUS_WRAPPER_CREDENTIALS_TEAM_RELEASE"

    def test_get_with_username(self) -> None:
        store = EnvCredentialStore(
            {
                "GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT": "ghp_env",
                "GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT_USERNAME": "robot",
            }
        )

        credential = store.get("ci-bot")

        assert credential is not None
        assert credential.id == "ci-bot"
        assert credential.username == "robot"
        assert credential.token.get_secret_value() == "ghp_env"

    def test_empty_value_is_missing(self) -> None:
        store = EnvCredentialStore({"GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT": ""})
        assert store.get("ci-bot") is None

    def test_list_skips_usernames_and_other_vars(self) -> None:
        store = EnvCredentialStore(
            {
                "GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT": "ghp_env",
                "GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT_USERNAME": "robot",
                "PATH": "/usr/bin",
            }
        )
        assert [c.id for c in store.list()] == ["ci_bot"]


class TestChain:
    def test_first_store_wins(self, credentials_file: Path) -> None:
        store = ChainCredentialStore(
            FileCredentialStore(credentials_file),
            EnvCredentialStore({"GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT": "ghp_env"}),
        )
        assert store.get("ci-bot").token.get_secret_value() == "ghp_from_file"

    def test_falls_through(self, tmp_path: Path) -> None:
        store = default_store(
            tmp_path / "absent.yaml", {"GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT": "ghp_env"}
        )
        assert store.get("ci-bot").token.get_secret_value() == "ghp_env"
        assert store.get("nobody") is None

    def test_list_merges_stores(self, credentials_file: Path) -> None:
        store = default_store(
            credentials_file, {"GIT_STATUS_WRAPPER_CREDENTIALS_DEPLOY": "ghp_deploy"}
        )
        assert sorted(c.id for c in store.list()) == ["ci-bot", "deploy", "release"]
