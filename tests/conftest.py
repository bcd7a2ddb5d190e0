"""Shared fixtures: a fake GitHub API served through httpx.MockTransport."""

from __future__ import annotations

import json
import re

import httpx
import pytest

from git_status_wrapper.buildlog import BuildLog
from git_status_wrapper.credentials import EnvCredentialStore
from git_status_wrapper.schemas import StatusContext

TOKEN = "ghp_good_token"
SHA = "439ac0b0c4870bf5936e84940d73128db905e93d"

_REPO = re.compile(r"^.*/repos/([^/]+)/([^/]+)$")
_COMMIT = re.compile(r"^.*/repos/([^/]+)/([^/]+)/commits/([^/]+)$")
_STATUS = re.compile(r"^.*/repos/([^/]+)/([^/]+)/statuses/([^/]+)$")


class FakeGitHub:
    """Just enough of the GitHub REST API for the wrapper.

    Attributes:
        requests: Every request received, in order
        statuses: JSON payloads of every commit status created
        fail_states: Status states that get a 500 response
    """

    def __init__(
        self,
        token: str = TOKEN,
        repos: set[str] | None = None,
        commits: set[str] | None = None,
    ) -> None:
        self.token = token
        self.repos = repos if repos is not None else {"acme/widgets"}
        self.commits = commits if commits is not None else {SHA}
        self.requests: list[httpx.Request] = []
        self.statuses: list[dict] = []
        self.fail_states: set[str] = set()

    @property
    def states(self) -> list[str]:
        return [status["state"] for status in self.statuses]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        path = request.url.path
        if path.endswith("/user"):
            return httpx.Response(200, json={"login": "ci-bot"})

        match = _STATUS.match(path)
        if match and request.method == "POST":
            payload = json.loads(request.content)
            if payload["state"] in self.fail_states:
                return httpx.Response(500, json={"message": "Server Error"})
            self.statuses.append(payload)
            return httpx.Response(201, json={"id": len(self.statuses), **payload})

        match = _COMMIT.match(path)
        if match:
            owner, name, sha = match.groups()
            for known in self.commits:
                if f"{owner}/{name}" in self.repos and known.startswith(sha):
                    return httpx.Response(200, json={"sha": known})
            return httpx.Response(422, json={"message": "No commit found for SHA"})

        match = _REPO.match(path)
        if match:
            full_name = "/".join(match.groups())
            if full_name in self.repos:
                owner, name = match.groups()
                return httpx.Response(
                    200, json={"name": name, "full_name": full_name, "owner": {"login": owner}}
                )
            return httpx.Response(404, json={"message": "Not Found"})

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def store() -> EnvCredentialStore:
    return EnvCredentialStore({"GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT": TOKEN})


@pytest.fixture
def build_log(tmp_path) -> BuildLog:
    return BuildLog(tmp_path / "build.log", echo=False)


@pytest.fixture
def status_context() -> StatusContext:
    return StatusContext(
        context="status/context",
        account="acme",
        repo="widgets",
        sha=SHA,
        credentials_id="ci-bot",
        api_url="https://api.github.com",
        target_url="http://www.someTarget.com",
        description="OK",
        success_description="OK",
        failure_description="OK",
    )
