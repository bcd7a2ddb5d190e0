"""Status description resolution.

The pending status always uses the plain description. Terminal statuses
use the success/failure description, which may be written as ``/regex/``:
the regex is searched (multiline) against the full build log and the first
capture group of the first match becomes the description.

When the regex does not match, the literal ``/regex/`` string is used as
the description and a warning is emitted. This mirrors the long-standing
behaviour jobs rely on.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from git_status_wrapper.errors import ConfigError
from git_status_wrapper.logging_config import get_logger
from git_status_wrapper.schemas import CommitState, StatusContext

logger = get_logger(__name__)

FAIL_TO_MATCH_REGEX = "[gitStatusWrapper] - Failed to match regex [{}] against the build log"

LogReader = Callable[[], str]
LineWriter = Callable[[str], None]


def regex_body(description: str) -> str | None:
    """Interior of a ``/.../`` description, or None for a literal one."""
    if len(description) >= 2 and description.startswith("/") and description.endswith("/"):
        return description[1:-1]
    return None


def describe(
    state: CommitState,
    ctx: StatusContext,
    read_log: LogReader,
    warn: LineWriter | None = None,
) -> str:
    """Pick the description to send with a status.

    Args:
        state: Status being sent
        ctx: Resolved status context
        read_log: Returns the full build log; only called for regex
                  descriptions. May raise LogReadError.
        warn: Receives the build-log line emitted when a regex misses

    Returns:
        The description text
    """
    if state == CommitState.PENDING:
        return ctx.description

    description = (
        ctx.success_description if state == CommitState.SUCCESS else ctx.failure_description
    )

    pattern = regex_body(description)
    if pattern is None:
        return description

    try:
        regex = re.compile(pattern, re.MULTILINE)
    except re.error as exc:
        raise ConfigError(f"Invalid description regex /{pattern}/: {exc}") from exc

    match = regex.search(read_log())
    if match:
        return (match.group(1) if regex.groups else match.group(0)) or ""

    logger.warning("description_regex_no_match", state=state.value, pattern=pattern)
    if warn is not None:
        warn(FAIL_TO_MATCH_REGEX.format(pattern))
    return description
