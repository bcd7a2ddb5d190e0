"""GitHub REST API client for commit statuses.

Only the handful of operations the wrapper needs are implemented:
- GET  /user                              - validate the token
- GET  /repos/{owner}/{repo}              - resolve the repository
- GET  /repos/{owner}/{repo}/commits/{sha} - resolve the commit
- POST /repos/{owner}/{repo}/statuses/{sha} - create a commit status

Design notes:
- Uses httpx, one AsyncClient per GitHubClient instance
- The endpoint is configurable for GitHub Enterprise
  (e.g. https://github.example.com/api/v3)
- HTTP failures are mapped onto the wrapper's error taxonomy; nothing is
  retried

GitHub API docs: https://docs.github.com/en/rest/commits/statuses
"""

from __future__ import annotations

from types import TracebackType

import httpx

from git_status_wrapper.credentials import CredentialStore
from git_status_wrapper.errors import (
    AuthError,
    GitStatusWrapperError,
    InvalidReferenceError,
    RemoteAPIError,
)
from git_status_wrapper.logging_config import get_logger
from git_status_wrapper.schemas import (
    CommitRef,
    CommitState,
    ConnectionCheck,
    RepositoryRef,
)

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"

NULL_CREDENTIALS_ID = "No credentials id provided"
CREDENTIALS_ID_NOT_EXISTS = "Credentials id does not exist"
CREDENTIALS_LOGIN_INVALID = "Credentials are not valid for the GitHub API"
INVALID_REPO = "Repository not found"
INVALID_COMMIT = "Commit not found"


class GitHubClient:
    """Async GitHub API client authenticated with a token.

    Usage:
        async with GitHubClient(token="ghp_...") as client:
            repo = await client.get_repository("acme", "widgets")
            commit = await client.get_commit(repo, "439ac0b")
            await client.create_commit_status(
                repo, commit.sha, CommitState.PENDING, "", "Running", "ci/build"
            )
    """

    def __init__(
        self,
        token: str,
        username: str = "",
        api_url: str = DEFAULT_API_URL,
        proxy: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token: Personal access or OAuth token
            username: Login the token belongs to (informational only)
            api_url: API endpoint, public GitHub by default
            proxy: Optional proxy URL for all requests
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.username = username
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {token}",
        }
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=timeout,
            proxy=proxy,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        not_found: str | None = None,
        **kwargs,
    ) -> httpx.Response:
        """Send a request and map failures onto wrapper errors.

        Args:
            method: HTTP method
            path: Path relative to the API endpoint
            not_found: When given, 404/422 responses raise
                       InvalidReferenceError with this message
        """
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise RemoteAPIError(f"{method} {self.api_url}{path} failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthError(f"{CREDENTIALS_LOGIN_INVALID} ({resp.status_code} from {path})")
        if not_found is not None and resp.status_code in (404, 422):
            raise InvalidReferenceError(not_found)
        if resp.is_error:
            raise RemoteAPIError(
                f"{method} {path} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp

    async def is_credential_valid(self) -> bool:
        """Whether the token authenticates against the endpoint."""
        try:
            await self._request("GET", "/user")
        except AuthError:
            return False
        return True

    async def get_repository(self, owner: str, name: str) -> RepositoryRef:
        resp = await self._request(
            "GET", f"/repos/{owner}/{name}", not_found=f"{INVALID_REPO}: {owner}/{name}"
        )
        data = resp.json()
        return RepositoryRef(
            owner=data.get("owner", {}).get("login", owner),
            name=data.get("name", name),
            full_name=data.get("full_name", f"{owner}/{name}"),
        )

    async def get_commit(self, repository: RepositoryRef, sha: str) -> CommitRef:
        resp = await self._request(
            "GET",
            f"/repos/{repository.full_name}/commits/{sha}",
            not_found=f"{INVALID_COMMIT}: {sha} in {repository.full_name}",
        )
        return CommitRef(sha=resp.json()["sha"])

    async def create_commit_status(
        self,
        repository: RepositoryRef,
        sha: str,
        state: CommitState,
        target_url: str,
        description: str,
        context: str,
    ) -> dict:
        """Attach a status to a commit.

        Empty target_url and description are left out of the payload.

        Returns:
            The status object GitHub created
        """
        payload: dict[str, str] = {"state": state.value, "context": context}
        if target_url:
            payload["target_url"] = target_url
        if description:
            payload["description"] = description

        resp = await self._request(
            "POST", f"/repos/{repository.full_name}/statuses/{sha}", json=payload
        )
        return resp.json()


# ---------------------------------------------------------------------------
# Connecting with stored credentials
# ---------------------------------------------------------------------------


async def connect(
    credentials_id: str | None,
    api_url: str,
    store: CredentialStore,
    proxy: str | None = None,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GitHubClient:
    """Open a client for the stored credentials and check they work.

    The caller owns the returned client and must close it.

    Raises:
        AuthError: If the id is empty, unknown, or the token is rejected
        RemoteAPIError: If the endpoint cannot be reached
    """
    if not credentials_id:
        raise AuthError(NULL_CREDENTIALS_ID)

    credential = store.get(credentials_id)
    if credential is None:
        raise AuthError(f"{CREDENTIALS_ID_NOT_EXISTS}: {credentials_id}")

    client = GitHubClient(
        token=credential.token.get_secret_value(),
        username=credential.username,
        api_url=api_url,
        proxy=proxy,
        timeout=timeout,
        transport=transport,
    )
    try:
        valid = await client.is_credential_valid()
    except BaseException:
        await client.aclose()
        raise
    if not valid:
        await client.aclose()
        raise AuthError(f"{CREDENTIALS_LOGIN_INVALID}: {credentials_id}")

    logger.debug("github_connected", api_url=client.api_url, credentials_id=credentials_id)
    return client


async def check_connection(
    credentials_id: str | None,
    api_url: str,
    store: CredentialStore,
    proxy: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConnectionCheck:
    """Connectivity self-test: authenticate and report ok or the error."""
    try:
        client = await connect(
            credentials_id, api_url or DEFAULT_API_URL, store, proxy=proxy, transport=transport
        )
    except GitStatusWrapperError as exc:
        return ConnectionCheck(ok=False, message=str(exc))
    await client.aclose()
    return ConnectionCheck(ok=True, message="Success")
