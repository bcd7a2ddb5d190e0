"""Pydantic models shared across the status wrapper.

These schemas describe:
- The configuration surface a job declares (WrapperOptions)
- The fully resolved, immutable context for one invocation (StatusContext)
- The ambient build metadata used to infer missing values (BuildMetadata)
- Hosting API handles and credential records

Key design decisions:
- Options keep the camelCase aliases jobs already use (gitHubContext,
  credentialsId, ...) while the Python side works with snake_case
- StatusContext is frozen: it is resolved once and never patched afterwards
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, SecretStr

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class CommitState(StrEnum):
    """Commit status states, using the hosting API's wire values."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class LifecyclePhase(StrEnum):
    """Where a single wrapped invocation is in its status lifecycle.

    NOT_STARTED: nothing has been sent yet
    PENDING_SENT: the pending status is posted, wrapped work may be running
    SUCCESS_SENT / FAILURE_SENT: terminal, exactly one is reached
    """

    NOT_STARTED = "NOT_STARTED"
    PENDING_SENT = "PENDING_SENT"
    SUCCESS_SENT = "SUCCESS_SENT"
    FAILURE_SENT = "FAILURE_SENT"


class RevisionKind(StrEnum):
    BRANCH = "branch"
    PULL_REQUEST = "pull_request"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class WrapperOptions(BaseModel):
    """Options a job declares for one wrapped block.

    Every field is optional. Empty values are filled in by the config
    resolver from environment expansion, build metadata, or defaults.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    github_context: str = Field("", alias="gitHubContext", description="Status context label")
    account: str = Field("", description="Repository owner")
    repo: str = Field("", description="Repository name")
    sha: str = Field("", description="Commit to attach statuses to")
    credentials_id: str = Field("", alias="credentialsId", description="Credential id")
    description: str = Field("", description="Status description")
    success_description: str = Field(
        "", alias="successDescription", description="Description for success, may be /regex/"
    )
    failure_description: str = Field(
        "", alias="failureDescription", description="Description for failure, may be /regex/"
    )
    target_url: str = Field("", alias="targetUrl", description="Link shown next to the status")
    git_api_url: str = Field("", alias="gitApiUrl", description="Hosting API endpoint")


class StatusContext(BaseModel):
    """Fully resolved configuration for a single wrapped execution."""

    model_config = ConfigDict(frozen=True)

    context: str
    account: str
    repo: str
    sha: str
    credentials_id: str
    api_url: str
    target_url: str = ""
    description: str = ""
    success_description: str = ""
    failure_description: str = ""


# ---------------------------------------------------------------------------
# Build metadata
# ---------------------------------------------------------------------------


class ScmRevision(BaseModel):
    """The SCM revision a build was started for.

    Attributes:
        kind: branch, pull_request, or other
        hash: commit hash of a branch revision
        pull_hash: head commit hash of a pull request revision
    """

    kind: RevisionKind = RevisionKind.BRANCH
    hash: str | None = None
    pull_hash: str | None = None


class ScmSource(BaseModel):
    """An SCM source configured on the job that owns the build."""

    kind: str = "github"
    credentials_id: str | None = None


class BuildMetadata(BaseModel):
    """Ambient build data the inference helpers work from.

    Attributes:
        remote_urls: Remote URLs of the checked-out repository, in order
        revision: SCM revision attached to the build, if any
        last_built_revision: Last revision recorded by the checkout step
        scm_sources: Sources configured on the owning job. None when the job
                     is not owned by an SCM source (e.g. a pipeline that
                     checks out code dynamically).
        run_url: URL of this run in the CI UI
    """

    remote_urls: list[str] = Field(default_factory=list)
    revision: ScmRevision | None = None
    last_built_revision: str | None = None
    scm_sources: list[ScmSource] | None = None
    run_url: str | None = None

    @classmethod
    def from_environment(
        cls,
        env: Mapping[str, str],
        scm_sources: list[ScmSource] | None = None,
    ) -> BuildMetadata:
        """Collect build metadata from standard CI environment variables.

        Understands Jenkins (GIT_URL, GIT_URL_n, GIT_COMMIT, CHANGE_ID,
        RUN_DISPLAY_URL, BUILD_URL) and GitHub Actions (GITHUB_SERVER_URL,
        GITHUB_REPOSITORY, GITHUB_SHA, GITHUB_RUN_ID).
        """
        remote_urls: list[str] = []
        if env.get("GIT_URL"):
            remote_urls.append(env["GIT_URL"])
        index = 1
        while env.get(f"GIT_URL_{index}"):
            remote_urls.append(env[f"GIT_URL_{index}"])
            index += 1

        server = env.get("GITHUB_SERVER_URL", "").rstrip("/")
        gh_repo = env.get("GITHUB_REPOSITORY", "")
        if not remote_urls and server and gh_repo:
            remote_urls.append(f"{server}/{gh_repo}.git")

        revision = None
        commit = env.get("GIT_COMMIT") or env.get("GITHUB_SHA")
        if commit and env.get("CHANGE_ID"):
            revision = ScmRevision(kind=RevisionKind.PULL_REQUEST, pull_hash=commit)

        run_url = env.get("RUN_DISPLAY_URL") or env.get("BUILD_URL")
        if not run_url and server and gh_repo and env.get("GITHUB_RUN_ID"):
            run_url = f"{server}/{gh_repo}/actions/runs/{env['GITHUB_RUN_ID']}"

        return cls(
            remote_urls=remote_urls,
            revision=revision,
            last_built_revision=commit or None,
            scm_sources=scm_sources,
            run_url=run_url,
        )


# ---------------------------------------------------------------------------
# Hosting API handles
# ---------------------------------------------------------------------------


class RepositoryRef(BaseModel):
    owner: str
    name: str
    full_name: str


class CommitRef(BaseModel):
    sha: str


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """A username/token pair stored under an opaque id."""

    id: str
    username: str = ""
    token: SecretStr
    description: str = ""


class ConnectionCheck(BaseModel):
    """Result of the connectivity self-test."""

    ok: bool
    message: str
