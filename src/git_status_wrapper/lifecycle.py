"""Commit-status lifecycle around a wrapped unit of work.

Every invocation sends exactly one pending status and then exactly one
terminal status (success or failure), whatever happens to the wrapped work:

    NOT_STARTED -> PENDING_SENT -> SUCCESS_SENT | FAILURE_SENT

Two entry shapes share this lifecycle:

- Classic mode (run_steps): a list of build steps run one after the other,
  stopping at the first one that fails. An interrupt (SIGINT, SIGTERM or
  task cancellation) is reported as a failure.
- Pipeline mode (run_block): a single async block started as a task; the
  task is the completion future. Cancelling the wrapper cancels the block
  and sends no further status.

Errors raised by the wrapped work are reported with a failure status and
then re-raised unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any, TypeVar

import httpx

from git_status_wrapper.buildlog import BuildLog
from git_status_wrapper.credentials import CredentialStore
from git_status_wrapper.errors import LifecycleError
from git_status_wrapper.github import GitHubClient, connect
from git_status_wrapper.logging_config import get_logger
from git_status_wrapper.reporter import StatusReporter
from git_status_wrapper.schemas import (
    CommitRef,
    CommitState,
    LifecyclePhase,
    RepositoryRef,
    StatusContext,
)
from git_status_wrapper.steps import Build, BuildStep

logger = get_logger(__name__)

T = TypeVar("T")

Block = Callable[[Mapping[str, str]], Awaitable[T]]

_NEXT_PHASE = {
    CommitState.PENDING: LifecyclePhase.PENDING_SENT,
    CommitState.SUCCESS: LifecyclePhase.SUCCESS_SENT,
    CommitState.FAILURE: LifecyclePhase.FAILURE_SENT,
}


class StatusLifecycle:
    """Enforces the order and count of status calls for one invocation."""

    def __init__(self) -> None:
        self.phase = LifecyclePhase.NOT_STARTED

    @property
    def finished(self) -> bool:
        return self.phase in (LifecyclePhase.SUCCESS_SENT, LifecyclePhase.FAILURE_SENT)

    def advance(self, state: CommitState) -> None:
        """Record that a status is about to be sent.

        The phase moves before the remote call is made, so a status whose
        call failed is never sent a second time.

        Raises:
            LifecycleError: For a second pending, a terminal status before
                            pending, or a second terminal status.
        """
        if state == CommitState.PENDING:
            allowed = self.phase == LifecyclePhase.NOT_STARTED
        else:
            allowed = self.phase == LifecyclePhase.PENDING_SENT
        if not allowed:
            raise LifecycleError(f"Cannot send {state.value} status in phase {self.phase.value}")
        self.phase = _NEXT_PHASE[state]


class GitStatusWrapper:
    """Wraps build work with pending/success/failure commit statuses.

    Usage:
        wrapper = GitStatusWrapper(ctx, store, BuildLog("build.log"))
        ok = await wrapper.run_steps([ShellStep("make test")], build)

    One instance serves a single invocation.
    """

    def __init__(
        self,
        ctx: StatusContext,
        store: CredentialStore,
        log: BuildLog,
        env: Mapping[str, str] | None = None,
        proxy: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: GitHubClient | None = None,
    ) -> None:
        """
        Args:
            ctx: Resolved status context
            store: Credential store used to authenticate
            log: Build log for status lines and regex descriptions
            env: Build environment, passed on to pipeline blocks
            proxy: Proxy URL for hosting API requests
            timeout: HTTP timeout in seconds
            transport: Custom httpx transport (used by tests)
            client: Already-connected client; skips authentication. The
                    caller keeps ownership of it.
        """
        self.ctx = ctx
        self.log = log
        self.lifecycle = StatusLifecycle()
        self._store = store
        self._env = dict(env or {})
        self._proxy = proxy
        self._timeout = timeout
        self._transport = transport
        self._client = client
        self._owns_client = client is None
        self._repository: RepositoryRef | None = None
        self._commit: CommitRef | None = None
        self._reporter: StatusReporter | None = None
        self._body: asyncio.Task | None = None

    # -- status plumbing ------------------------------------------------

    async def open(self) -> None:
        """Authenticate, resolve repository and commit, send pending.

        Raises:
            AuthError, InvalidReferenceError, RemoteAPIError: before any
            wrapped work has started.
        """
        if self._client is None:
            self._client = await connect(
                self.ctx.credentials_id,
                self.ctx.api_url,
                self._store,
                proxy=self._proxy,
                timeout=self._timeout,
                transport=self._transport,
            )

        self._repository = await self._client.get_repository(self.ctx.account, self.ctx.repo)
        self._commit = await self._client.get_commit(self._repository, self.ctx.sha)
        self._reporter = StatusReporter(self._client, self.log.read, self.log.line)

        await self._send(CommitState.PENDING)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _send(self, state: CommitState) -> None:
        if self._reporter is None or self._repository is None or self._commit is None:
            raise LifecycleError("open() must succeed before statuses can be sent")
        self.lifecycle.advance(state)
        await self._reporter.report(state, self.ctx, self._repository, self._commit)

    async def _report_failure(self, error: BaseException) -> None:
        """Send failure for an error raised by the wrapped work.

        The original error is the one the caller sees. A failure to report
        is attached to it as a note.
        """
        try:
            await self._send(CommitState.FAILURE)
        except Exception as report_error:
            logger.error(
                "failure_status_not_sent",
                context=self.ctx.context,
                sha=self.ctx.sha,
                error=str(report_error),
            )
            error.add_note(f"Sending the failure status also failed: {report_error}")

    # -- classic mode ---------------------------------------------------

    async def run_steps(self, steps: Sequence[BuildStep], build: Build) -> bool:
        """Run build steps between pending and the terminal status.

        Returns:
            True if every step succeeded, False if one returned False

        Raises:
            Whatever a step raised, after the failure status was sent.
            asyncio.CancelledError when interrupted, also after failure.
        """
        try:
            await self.open()

            all_ok = True
            try:
                for step in steps:
                    if not await step.perform(build):
                        all_ok = False
                        logger.info("wrapped_step_failed", step=repr(step), context=self.ctx.context)
                        break
            except (Exception, KeyboardInterrupt, asyncio.CancelledError) as exc:
                # Under asyncio.run an interrupt arrives as cancellation of
                # the running task; classic mode still reports it as failure.
                await asyncio.shield(self._report_failure(exc))
                raise

            await self._send(CommitState.SUCCESS if all_ok else CommitState.FAILURE)
            return all_ok
        finally:
            await self.close()

    # -- pipeline mode --------------------------------------------------

    def overlay(self) -> Mapping[str, str]:
        """Environment handed to a pipeline block: build env plus the resolved values."""
        return MappingProxyType(
            {
                **self._env,
                "GIT_STATUS_WRAPPER_CONTEXT": self.ctx.context,
                "GIT_STATUS_WRAPPER_ACCOUNT": self.ctx.account,
                "GIT_STATUS_WRAPPER_REPO": self.ctx.repo,
                "GIT_STATUS_WRAPPER_SHA": self.ctx.sha,
            }
        )

    async def run_block(self, block: Block[T]) -> T:
        """Run an async block between pending and the terminal status.

        Returns:
            Whatever the block returned

        Raises:
            Whatever the block raised, after the failure status was sent.
            asyncio.CancelledError if the wrapper was cancelled; no
            terminal status is sent in that case.
        """
        try:
            await self.open()

            self._body = asyncio.ensure_future(block(self.overlay()))
            try:
                result: Any = await self._body
            except asyncio.CancelledError:
                self._body.cancel()
                logger.info("wrapped_block_cancelled", context=self.ctx.context)
                raise
            except Exception as exc:
                await self._report_failure(exc)
                raise

            await self._send(CommitState.SUCCESS)
            return result
        finally:
            self._body = None
            await self.close()

    def stop(self) -> None:
        """Cancel a running pipeline block."""
        if self._body is not None:
            self._body.cancel()
