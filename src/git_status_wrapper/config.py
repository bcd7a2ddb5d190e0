"""Configuration loading and per-invocation value resolution.

Two layers of configuration exist:

- WrapperSettings: process-wide settings (API endpoint default, credential
  file, logging, proxy), loaded from YAML with GIT_STATUS_WRAPPER_* env
  overrides.
- WrapperOptions: what a single job declares. Each option is resolved with
  a fixed precedence: explicit value (macro-expanded against the build
  environment) > inference from build metadata > default.

Resolution happens once, at invocation start, and produces an immutable
StatusContext.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from git_status_wrapper.errors import ConfigError
from git_status_wrapper.github import DEFAULT_API_URL
from git_status_wrapper.inference import (
    infer_account,
    infer_credentials_id,
    infer_repo,
    infer_sha,
)
from git_status_wrapper.logging_config import LOG_LEVELS
from git_status_wrapper.schemas import (
    BuildMetadata,
    ScmSource,
    StatusContext,
    WrapperOptions,
)

DEFAULT_CONTEXT = "gitStatusWrapper"

ENV_PREFIX = "GIT_STATUS_WRAPPER_"

_MACRO = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_.]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


# ---------------------------------------------------------------------------
# Settings (YAML + env)
# ---------------------------------------------------------------------------


class WrapperSettings(BaseModel):
    """Process-level settings.

    Attributes:
        api_url: Endpoint used when a job does not set gitApiUrl
        credentials_file: YAML file of stored credentials
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        environment: "development" or "production" (selects log renderer)
        proxy: Proxy URL for hosting API requests
        timeout: HTTP timeout in seconds
        scm_sources: SCM sources configured for the job, used to infer
                     the credentials id
    """

    api_url: str = DEFAULT_API_URL
    credentials_file: str | None = None
    log_level: str = "INFO"
    environment: str = "development"
    proxy: str | None = None
    timeout: float = 30.0
    scm_sources: list[ScmSource] | None = None

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"expected one of {', '.join(LOG_LEVELS)}, got {value!r}")
        return level


def _read_yaml(path: Path) -> dict:
    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    return raw


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> WrapperSettings:
    """Load settings from a YAML file and apply environment overrides.

    Args:
        path: Path to the YAML settings file. Defaults apply if it is None
              or does not exist.
        env: Environment to read GIT_STATUS_WRAPPER_* overrides from.

    Returns:
        A validated WrapperSettings.

    Raises:
        ConfigError: If the YAML content is invalid or fails validation.
    """
    raw: dict = {}
    if path is not None and Path(path).exists():
        raw = _read_yaml(Path(path))

    for field in ("api_url", "credentials_file", "log_level", "environment", "proxy", "timeout"):
        value = (env or {}).get(ENV_PREFIX + field.upper())
        if value:
            raw[field] = value

    try:
        return WrapperSettings.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings in {path}: {exc}") from exc


def load_options(path: str | Path) -> WrapperOptions:
    """Load a job's wrapper options from a YAML file.

    Keys may use either the camelCase names (gitHubContext, credentialsId)
    or their snake_case equivalents.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or has
                     unknown keys.
    """
    options_path = Path(path)
    if not options_path.exists():
        raise ConfigError(f"Options file not found: {path}")

    try:
        return WrapperOptions.model_validate(_read_yaml(options_path))
    except ValidationError as exc:
        raise ConfigError(f"Invalid wrapper options in {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def expand(value: str, env: Mapping[str, str]) -> str:
    """Substitute ${VAR} and $VAR tokens from the build environment.

    Unknown variables are left as they are.
    """

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        return env.get(name, match.group(0))

    return _MACRO.sub(_sub, value)


def resolve(
    explicit: str | None,
    infer: Callable[[], str],
    env: Mapping[str, str],
) -> str:
    """Resolve one option value.

    The explicit value is macro-expanded and wins when the result is
    non-empty. Otherwise (including a value that expands to nothing) the
    value comes from infer(), which raises InferenceError when it has
    nothing to go on.
    """
    if explicit and (value := expand(explicit, env)):
        return value
    return infer()


def resolve_status_context(
    options: WrapperOptions,
    env: Mapping[str, str],
    metadata: BuildMetadata,
    default_api_url: str = DEFAULT_API_URL,
) -> StatusContext:
    """Build the immutable StatusContext for one invocation.

    Inference only runs for options that were left empty.

    Raises:
        InferenceError: If account, repo, sha or credentials id are neither
                        given nor derivable from the build.
    """
    description = resolve(options.description, lambda: "", env)

    return StatusContext(
        context=resolve(options.github_context, lambda: DEFAULT_CONTEXT, env),
        account=resolve(options.account, lambda: infer_account(metadata), env),
        repo=resolve(options.repo, lambda: infer_repo(metadata), env),
        sha=resolve(options.sha, lambda: infer_sha(metadata, env), env),
        credentials_id=resolve(
            options.credentials_id, lambda: infer_credentials_id(metadata), env
        ),
        api_url=resolve(options.git_api_url, lambda: default_api_url, env),
        target_url=resolve(options.target_url, lambda: metadata.run_url or "", env),
        description=description,
        success_description=resolve(options.success_description, lambda: description, env),
        failure_description=resolve(options.failure_description, lambda: description, env),
    )
