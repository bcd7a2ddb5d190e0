"""Tests for the GitHub client and the connectivity self-test.

All HTTP traffic goes to the FakeGitHub handler from conftest through
httpx.MockTransport.

Run with: pytest tests/test_github.py -v
"""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import SHA, TOKEN
from git_status_wrapper.credentials import EnvCredentialStore
from git_status_wrapper.errors import AuthError, InvalidReferenceError, RemoteAPIError
from git_status_wrapper.github import GitHubClient, check_connection, connect
from git_status_wrapper.schemas import CommitState


class TestGitHubClient:
    @pytest.mark.asyncio
    async def test_create_status_payload(self, fake_github) -> None:
        async with GitHubClient(TOKEN, transport=fake_github.transport()) as client:
            repo = await client.get_repository("acme", "widgets")
            commit = await client.get_commit(repo, SHA[:7])
            await client.create_commit_status(
                repo, commit.sha, CommitState.PENDING, "https://ci/1", "Running", "ci/build"
            )

        assert repo.full_name == "acme/widgets"
        assert commit.sha == SHA
        request = fake_github.requests[-1]
        assert request.method == "POST"
        assert request.url.path == f"/repos/acme/widgets/statuses/{SHA}"
        assert json.loads(request.content) == {
            "state": "pending",
            "context": "ci/build",
            "target_url": "https://ci/1",
            "description": "Running",
        }

    @pytest.mark.asyncio
    async def test_empty_optional_fields_omitted(self, fake_github) -> None:
        async with GitHubClient(TOKEN, transport=fake_github.transport()) as client:
            repo = await client.get_repository("acme", "widgets")
            await client.create_commit_status(repo, SHA, CommitState.SUCCESS, "", "", "ci")

        assert fake_github.statuses == [{"state": "success", "context": "ci"}]

    @pytest.mark.asyncio
    async def test_enterprise_endpoint(self, fake_github) -> None:
        client = GitHubClient(
            TOKEN, api_url="https://ghe.example.com/api/v3/", transport=fake_github.transport()
        )
        async with client:
            await client.get_repository("acme", "widgets")

        url = fake_github.requests[-1].url
        assert url.host == "ghe.example.com"
        assert url.path == "/api/v3/repos/acme/widgets"

    @pytest.mark.asyncio
    async def test_missing_repository(self, fake_github) -> None:
        async with GitHubClient(TOKEN, transport=fake_github.transport()) as client:
            with pytest.raises(InvalidReferenceError):
                await client.get_repository("acme", "gadgets")

    @pytest.mark.asyncio
    async def test_missing_commit(self, fake_github) -> None:
        async with GitHubClient(TOKEN, transport=fake_github.transport()) as client:
            repo = await client.get_repository("acme", "widgets")
            with pytest.raises(InvalidReferenceError):
                await client.get_commit(repo, "deadbeef")

    @pytest.mark.asyncio
    async def test_unauthorized(self, fake_github) -> None:
        async with GitHubClient("wrong", transport=fake_github.transport()) as client:
            assert await client.is_credential_valid() is False
            with pytest.raises(AuthError):
                await client.get_repository("acme", "widgets")

    @pytest.mark.asyncio
    async def test_server_error(self, fake_github) -> None:
        fake_github.fail_states = {"failure"}
        async with GitHubClient(TOKEN, transport=fake_github.transport()) as client:
            repo = await client.get_repository("acme", "widgets")
            with pytest.raises(RemoteAPIError) as exc_info:
                await client.create_commit_status(repo, SHA, CommitState.FAILURE, "", "", "ci")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with GitHubClient(TOKEN, transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(RemoteAPIError) as exc_info:
                await client.get_repository("acme", "widgets")

        assert exc_info.value.status_code is None


class TestConnect:
    @pytest.mark.asyncio
    async def test_valid_credentials(self, fake_github, store) -> None:
        client = await connect("ci-bot", "https://api.github.com", store, transport=fake_github.transport())
        try:
            assert fake_github.requests[-1].url.path == "/user"
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credentials_id", ["", None])
    async def test_missing_credentials_id(self, fake_github, store, credentials_id) -> None:
        with pytest.raises(AuthError, match="No credentials id"):
            await connect(credentials_id, "https://api.github.com", store, transport=fake_github.transport())
        assert fake_github.requests == []

    @pytest.mark.asyncio
    async def test_unknown_credentials_id(self, fake_github, store) -> None:
        with pytest.raises(AuthError, match="does not exist"):
            await connect("nobody", "https://api.github.com", store, transport=fake_github.transport())


class TestCheckConnection:
    @pytest.mark.asyncio
    async def test_ok(self, fake_github, store) -> None:
        result = await check_connection(
            "ci-bot", "https://api.github.com", store, transport=fake_github.transport()
        )
        assert result.ok is True
        assert result.message == "Success"

    @pytest.mark.asyncio
    async def test_invalid_login(self, fake_github) -> None:
        store = EnvCredentialStore({"GIT_STATUS_WRAPPER_CREDENTIALS_CI_BOT": "revoked"})

        result = await check_connection(
            "ci-bot", "https://api.github.com", store, transport=fake_github.transport()
        )

        assert result.ok is False
        assert "not valid" in result.message

    @pytest.mark.asyncio
    async def test_missing_id_reports_error(self, store) -> None:
        result = await check_connection("", "", store)
        assert result.ok is False
        assert "No credentials id" in result.message

    @pytest.mark.asyncio
    async def test_unreachable_endpoint(self, store) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await check_connection(
            "ci-bot", "https://ghe.invalid/api/v3", store, transport=httpx.MockTransport(refuse)
        )
        assert result.ok is False
