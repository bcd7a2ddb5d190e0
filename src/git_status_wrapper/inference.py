"""Derive missing wrapper options from build metadata.

Each helper either returns a value or raises InferenceError; none of them
guess. In particular a credentials id is only ever taken from a configured
GitHub SCM source.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from git_status_wrapper.errors import InferenceError
from git_status_wrapper.schemas import BuildMetadata, RevisionKind

GIT_COMMIT_ENV_NAME = "GIT_COMMIT"

UNABLE_TO_INFER_REPO = "Unable to infer git repo from build data"
UNABLE_TO_INFER_COMMIT = "Unable to infer commit SHA from build data"
UNABLE_TO_INFER_DATA = "Unable to infer data from a job without a GitHub SCM source"
UNABLE_TO_INFER_CREDENTIALS_ID = "Unable to infer credentials id from the GitHub SCM source"

# git@github.com:acme/widgets.git
_SCP_REMOTE = re.compile(r"^(?P<user>[^@/]+)@(?P<host>[^:/]+):(?P<path>.+)$")


def _normalize_remote(url: str) -> str:
    match = _SCP_REMOTE.match(url)
    if match:
        return f"ssh://{match['user']}@{match['host']}/{match['path']}"
    return url


def _remote_segment(metadata: BuildMetadata, index: int) -> str:
    if not metadata.remote_urls:
        raise InferenceError(UNABLE_TO_INFER_REPO)
    parts = _normalize_remote(metadata.remote_urls[0]).split("/")
    if len(parts) <= index or not parts[index]:
        raise InferenceError(f"{UNABLE_TO_INFER_REPO}: {metadata.remote_urls[0]}")
    return parts[index]


def infer_account(metadata: BuildMetadata) -> str:
    """Owner segment of the first remote URL."""
    return _remote_segment(metadata, 3)


def infer_repo(metadata: BuildMetadata) -> str:
    """Repository segment of the first remote URL, without ``.git``."""
    return _remote_segment(metadata, 4).replace(".git", "")


def infer_sha(metadata: BuildMetadata, env: Mapping[str, str]) -> str:
    """Commit the build ran against.

    Order: the SCM revision attached to the build, then the last revision
    recorded by the checkout, then the GIT_COMMIT environment variable.
    """
    try:
        return _revision_sha(metadata)
    except InferenceError:
        fallback = env.get(GIT_COMMIT_ENV_NAME)
        if fallback:
            return fallback
        raise


def _revision_sha(metadata: BuildMetadata) -> str:
    revision = metadata.revision
    if revision is not None:
        if revision.kind == RevisionKind.BRANCH and revision.hash:
            return revision.hash
        if revision.kind == RevisionKind.PULL_REQUEST and revision.pull_hash:
            return revision.pull_hash
        raise InferenceError(UNABLE_TO_INFER_COMMIT)

    if metadata.last_built_revision:
        return metadata.last_built_revision
    raise InferenceError(UNABLE_TO_INFER_COMMIT)


def infer_credentials_id(metadata: BuildMetadata) -> str:
    """Credentials id of the GitHub SCM source that owns the job.

    Jobs without SCM sources (such as pipelines that check out code
    dynamically) are not supported and raise InferenceError.
    """
    if metadata.scm_sources is None:
        raise InferenceError(UNABLE_TO_INFER_DATA)

    for source in metadata.scm_sources:
        if source.kind == "github":
            if source.credentials_id:
                return source.credentials_id
            raise InferenceError(UNABLE_TO_INFER_CREDENTIALS_ID)

    raise InferenceError(UNABLE_TO_INFER_DATA)
