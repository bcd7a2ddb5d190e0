"""Credential lookup by opaque id.

Jobs refer to credentials by id only; the token itself lives in a store.
Two backends are provided, chained by default_store():

- FileCredentialStore: a YAML file, convenient on a build agent
- EnvCredentialStore: one environment variable per id, convenient in CI
  systems that inject secrets as env vars

File format:

    ci-bot:
      username: ci-bot
      token: ghp_...
      description: Bot account for commit statuses
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

import yaml
from pydantic import ValidationError

from git_status_wrapper.errors import ConfigError
from git_status_wrapper.schemas import Credential

ENV_CREDENTIALS_PREFIX = "GIT_STATUS_WRAPPER_CREDENTIALS_"

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    """Anything that can look credentials up by id."""

    def get(self, credentials_id: str) -> Credential | None:
        ...

    def list(self) -> list[Credential]:
        ...


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class FileCredentialStore:
    """Credentials read from a YAML file, loaded lazily on first use."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._credentials: dict[str, Credential] | None = None

    def _load(self) -> dict[str, Credential]:
        if self._credentials is not None:
            return self._credentials
        if not self._path.exists():
            self._credentials = {}
            return self._credentials

        try:
            raw = yaml.safe_load(self._path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"Expected a mapping of credentials in {self._path}")

        try:
            self._credentials = {
                str(cred_id): Credential.model_validate({"id": str(cred_id), **(entry or {})})
                for cred_id, entry in raw.items()
            }
        except (TypeError, ValidationError) as exc:
            raise ConfigError(f"Invalid credentials in {self._path}: {exc}") from exc
        return self._credentials

    def get(self, credentials_id: str) -> Credential | None:
        return self._load().get(credentials_id)

    def list(self) -> list[Credential]:
        return list(self._load().values())


def env_var_for(credentials_id: str) -> str:
    """Environment variable holding the token for a credentials id.

    ``ci-bot`` maps to ``GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT``.
    """
    return ENV_CREDENTIALS_PREFIX + re.sub(r"[^A-Za-z0-9]", "_", credentials_id).upper()


class EnvCredentialStore:
    """Credentials taken from GIT_STATUS_WRAPPER_CREDENTIALS_<ID> variables.

    An optional <VAR>_USERNAME variable supplies the username.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env if env is not None else os.environ

    def get(self, credentials_id: str) -> Credential | None:
        var = env_var_for(credentials_id)
        token = self._env.get(var)
        if not token:
            return None
        return Credential(
            id=credentials_id,
            username=self._env.get(f"{var}_USERNAME", ""),
            token=token,
        )

    def list(self) -> list[Credential]:
        found = []
        for name, value in self._env.items():
            if not name.startswith(ENV_CREDENTIALS_PREFIX) or name.endswith("_USERNAME"):
                continue
            if not value:
                continue
            cred_id = name[len(ENV_CREDENTIALS_PREFIX):].lower()
            found.append(
                Credential(
                    id=cred_id,
                    username=self._env.get(f"{name}_USERNAME", ""),
                    token=value,
                )
            )
        return found


class ChainCredentialStore:
    """Looks through several stores; the first one that knows the id wins."""

    def __init__(self, *stores: CredentialStore) -> None:
        self._stores = stores

    def get(self, credentials_id: str) -> Credential | None:
        for store in self._stores:
            credential = store.get(credentials_id)
            if credential is not None:
                return credential
        return None

    def list(self) -> list[Credential]:
        seen: dict[str, Credential] = {}
        for store in self._stores:
            for credential in store.list():
                seen.setdefault(credential.id, credential)
        return list(seen.values())


def default_store(
    credentials_file: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CredentialStore:
    """File store (when configured) followed by the environment store."""
    stores: list[CredentialStore] = []
    if credentials_file:
        stores.append(FileCredentialStore(credentials_file))
    stores.append(EnvCredentialStore(env))
    return ChainCredentialStore(*stores)
