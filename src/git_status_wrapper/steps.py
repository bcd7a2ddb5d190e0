"""Build steps run inside the wrapper (classic mode).

A step reports success with a boolean; the wrapper stops at the first step
that returns False. Exceptions raised by a step are reported as a failure
status and then propagate.
"""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from git_status_wrapper.buildlog import BuildLog
from git_status_wrapper.logging_config import get_logger

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024


@dataclass
class Build:
    """What a step gets to work with.

    Attributes:
        env: Build environment variables
        log: Build log the step's output goes to
        workspace: Working directory for the step
    """

    env: Mapping[str, str]
    log: BuildLog
    workspace: Path = field(default_factory=Path.cwd)


class BuildStep(Protocol):
    async def perform(self, build: Build) -> bool:
        ...


class ShellStep:
    """Runs a shell command, streaming its combined output into the build log.

    Usage:
        ok = await ShellStep("make test").perform(build)
    """

    def __init__(self, command: str) -> None:
        self.command = command

    def __repr__(self) -> str:
        return f"ShellStep({self.command!r})"

    async def perform(self, build: Build) -> bool:
        build.log.line(f"+ {self.command}")
        proc = await asyncio.create_subprocess_shell(
            self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=dict(build.env),
            cwd=build.workspace,
        )
        # Fixed-size reads: a single line may be far longer than the
        # StreamReader line limit (progress bars, minified output).
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while chunk := await proc.stdout.read(READ_CHUNK_SIZE):
                text = decoder.decode(chunk)
                if text:
                    build.log.write(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                build.log.write(tail)
            exit_code = await proc.wait()
        except BaseException:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if exit_code != 0:
            logger.info("step_failed", command=self.command, exit_code=exit_code)
            return False
        return True
