"""Command-line entry point.

Subcommands:
    run              wrap build steps with commit statuses
    test-connection  check that stored credentials work against an endpoint
    credentials      list the credential ids the wrapper can use
    serve            run the self-test HTTP service

Usage:
    git-status-wrapper run --context ci/tests --success-description '/Result: (\\w+)/' -- make test
    git-status-wrapper run --step 'make lint' --step 'make test'
    git-status-wrapper test-connection --credentials-id ci-bot --git-api-url https://ghe.example.com/api/v3
"""

from __future__ import annotations

import argparse
import asyncio
import os
import shlex
import signal
import sys
import tempfile
from collections.abc import Awaitable, Mapping, Sequence
from pathlib import Path

from git_status_wrapper.buildlog import BuildLog
from git_status_wrapper.config import (
    WrapperSettings,
    load_options,
    load_settings,
    resolve_status_context,
)
from git_status_wrapper.credentials import default_store
from git_status_wrapper.errors import GitStatusWrapperError
from git_status_wrapper.github import check_connection
from git_status_wrapper.lifecycle import GitStatusWrapper
from git_status_wrapper.logging_config import get_logger, setup_logging
from git_status_wrapper.schemas import BuildMetadata, WrapperOptions
from git_status_wrapper.steps import Build, ShellStep

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_STEP_FAILED = 1
EXIT_WRAPPER_ERROR = 2
EXIT_INTERRUPTED = 130

# flag -> WrapperOptions field
OPTION_FLAGS = {
    "context": "github_context",
    "account": "account",
    "repo": "repo",
    "sha": "sha",
    "credentials_id": "credentials_id",
    "description": "description",
    "success_description": "success_description",
    "failure_description": "failure_description",
    "target_url": "target_url",
    "git_api_url": "git_api_url",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-status-wrapper",
        description="Wrap build steps with GitHub commit status notifications",
    )
    parser.add_argument(
        "--settings",
        default=os.environ.get("GIT_STATUS_WRAPPER_SETTINGS"),
        help="YAML settings file (default: $GIT_STATUS_WRAPPER_SETTINGS)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run build steps between pending and final statuses")
    run.add_argument("--context", help="Status context label (default: gitStatusWrapper)")
    run.add_argument("--account", help="Repository owner (inferred from GIT_URL)")
    run.add_argument("--repo", help="Repository name (inferred from GIT_URL)")
    run.add_argument("--sha", help="Commit SHA (inferred from GIT_COMMIT)")
    run.add_argument("--credentials-id", help="Id of the stored credentials to use")
    run.add_argument("--description", help="Status description")
    run.add_argument("--success-description", help="Description on success, may be /regex/")
    run.add_argument("--failure-description", help="Description on failure, may be /regex/")
    run.add_argument("--target-url", help="Link shown with the status (default: run URL)")
    run.add_argument("--git-api-url", help="API endpoint (default: https://api.github.com)")
    run.add_argument("--options-file", help="YAML file with wrapper options")
    run.add_argument("--log-file", help="Build log to append to and match regexes against")
    run.add_argument(
        "--step",
        action="append",
        default=[],
        help="Shell command to run as a build step (repeatable)",
    )
    run.add_argument("cmd", nargs=argparse.REMAINDER, help="Command to run after --")

    check = sub.add_parser("test-connection", help="Check credentials against the API")
    check.add_argument("--credentials-id", required=True)
    check.add_argument("--git-api-url", help="API endpoint (default from settings)")

    sub.add_parser("credentials", help="List available credential ids")

    serve = sub.add_parser("serve", help="Run the self-test HTTP service")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def collect_options(args: argparse.Namespace) -> WrapperOptions:
    """Options file first, then any flag given on the command line."""
    options = load_options(args.options_file) if args.options_file else WrapperOptions()
    overrides = {
        field: getattr(args, flag)
        for flag, field in OPTION_FLAGS.items()
        if getattr(args, flag)
    }
    return options.model_copy(update=overrides)


def collect_steps(args: argparse.Namespace) -> list[ShellStep]:
    steps = [ShellStep(command) for command in args.step]
    trailing = list(args.cmd)
    if trailing and trailing[0] == "--":
        trailing = trailing[1:]
    if trailing:
        steps.append(ShellStep(shlex.join(trailing)))
    return steps


def default_log_path() -> Path:
    return Path(tempfile.gettempdir()) / f"git-status-wrapper-{os.getpid()}.log"


async def _cancel_on_sigterm(work: Awaitable[bool]) -> bool:
    """Await the wrapped run, turning SIGTERM into task cancellation.

    asyncio.run already does this for SIGINT. CI servers abort jobs with
    SIGTERM, and the failure status has to go out in that case too.
    """
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGTERM, task.cancel)
    try:
        return await work
    finally:
        loop.remove_signal_handler(signal.SIGTERM)


def _run(args: argparse.Namespace, settings: WrapperSettings, env: Mapping[str, str]) -> int:
    steps = collect_steps(args)
    if not steps:
        logger.error("no_steps", hint="pass --step CMD or a command after --")
        return EXIT_WRAPPER_ERROR

    options = collect_options(args)
    metadata = BuildMetadata.from_environment(env, settings.scm_sources)
    ctx = resolve_status_context(options, env, metadata, default_api_url=settings.api_url)

    log = BuildLog(args.log_file or default_log_path())
    wrapper = GitStatusWrapper(
        ctx,
        default_store(settings.credentials_file, env),
        log,
        env=env,
        proxy=settings.proxy,
        timeout=settings.timeout,
    )
    build = Build(env=env, log=log)
    ok = asyncio.run(_cancel_on_sigterm(wrapper.run_steps(steps, build)))
    return EXIT_OK if ok else EXIT_STEP_FAILED


def _test_connection(
    args: argparse.Namespace, settings: WrapperSettings, env: Mapping[str, str]
) -> int:
    result = asyncio.run(
        check_connection(
            args.credentials_id,
            args.git_api_url or settings.api_url,
            default_store(settings.credentials_file, env),
            proxy=settings.proxy,
        )
    )
    print(result.model_dump_json(indent=2))
    return EXIT_OK if result.ok else EXIT_STEP_FAILED


def _list_credentials(settings: WrapperSettings, env: Mapping[str, str]) -> int:
    for credential in default_store(settings.credentials_file, env).list():
        line = credential.id
        if credential.description:
            line += f"\t{credential.description}"
        print(line)
    return EXIT_OK


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("git_status_wrapper.main:app", host=args.host, port=args.port)
    return EXIT_OK


def main(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> int:
    """CLI entry point.

    Returns:
        0 on success, 1 when a wrapped step fails (or the connection check
        fails), 2 on wrapper errors such as failed inference or rejected
        credentials, 130 when interrupted by SIGINT or SIGTERM.
    """
    args = build_parser().parse_args(argv)
    env = dict(os.environ if env is None else env)

    try:
        settings = load_settings(args.settings, env)
        setup_logging(settings.environment, settings.log_level)

        if args.command == "run":
            return _run(args, settings, env)
        if args.command == "test-connection":
            return _test_connection(args, settings, env)
        if args.command == "credentials":
            return _list_credentials(settings, env)
        return _serve(args)
    except GitStatusWrapperError as exc:
        logger.error("wrapper_error", error=str(exc), error_type=type(exc).__name__)
        return EXIT_WRAPPER_ERROR
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.error("interrupted", command=args.command)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
