"""Exception taxonomy for the status wrapper.

Every error raised on purpose by this package derives from
GitStatusWrapperError, so callers (the CLI, the HTTP service) can catch the
whole family in one place. None of these are retried internally.
"""

from __future__ import annotations


class GitStatusWrapperError(Exception):
    """Base class for all wrapper errors."""


class ConfigError(GitStatusWrapperError):
    """A settings or options file is malformed or fails validation."""


class InferenceError(GitStatusWrapperError):
    """A required value was not given and cannot be derived from build metadata."""


class InvalidReferenceError(GitStatusWrapperError):
    """The named repository or commit does not exist on the hosting API."""


class AuthError(GitStatusWrapperError):
    """Credentials are missing, unknown, or rejected by the hosting API."""


class RemoteAPIError(GitStatusWrapperError):
    """Transport or API failure talking to the hosting API.

    Attributes:
        status_code: HTTP status of the failed response, or None for
                     transport-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LogReadError(GitStatusWrapperError, OSError):
    """The build log could not be read."""


class LifecycleError(GitStatusWrapperError):
    """A commit status was sent out of order or more than once."""
