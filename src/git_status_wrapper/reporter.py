"""Posts one commit status per lifecycle event."""

from __future__ import annotations

from typing import Protocol

from git_status_wrapper.description import LineWriter, LogReader, describe
from git_status_wrapper.logging_config import get_logger
from git_status_wrapper.schemas import CommitRef, CommitState, RepositoryRef, StatusContext

logger = get_logger(__name__)

PRIMARY_LOG_TEMPLATE = "[gitStatusWrapper] - Setting {state} status for {context} on commit {sha}"


class StatusClient(Protocol):
    """The slice of the hosting client the reporter needs."""

    async def create_commit_status(
        self,
        repository: RepositoryRef,
        sha: str,
        state: CommitState,
        target_url: str,
        description: str,
        context: str,
    ) -> dict:
        ...


class StatusReporter:
    """Sends commit statuses for one resolved StatusContext.

    No retries: a failed call propagates to the caller as-is.
    """

    def __init__(
        self,
        client: StatusClient,
        read_log: LogReader,
        log_line: LineWriter | None = None,
    ) -> None:
        """
        Args:
            client: Hosting API client
            read_log: Returns the full build log (for regex descriptions)
            log_line: Writes a line to the build log
        """
        self._client = client
        self._read_log = read_log
        self._log_line = log_line

    async def report(
        self,
        state: CommitState,
        ctx: StatusContext,
        repository: RepositoryRef,
        commit: CommitRef,
    ) -> None:
        if self._log_line is not None:
            self._log_line(
                PRIMARY_LOG_TEMPLATE.format(
                    state=state.value.upper(), context=ctx.context, sha=commit.sha
                )
            )
        description = describe(state, ctx, self._read_log, warn=self._log_line)

        logger.info(
            "status_posting",
            state=state.value,
            context=ctx.context,
            repo=repository.full_name,
            sha=commit.sha,
        )

        await self._client.create_commit_status(
            repository,
            commit.sha,
            state,
            ctx.target_url,
            description,
            ctx.context,
        )
