import asyncio
from dataclasses import dataclass
import os
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Sequence

from sanic.log import logger

from branch_bot.config import Config
from branch_bot.exceptions import GitStepError
from branch_bot.github.models import PushEvent
from branch_bot.github.utils import redact
from branch_bot.metrics import track_git_step
from branch_bot.mutator import FileMutator
from branch_bot.state import RunState
from branch_bot.workspace import Workspace


@dataclass(frozen=True)
class GitStepResult:
    step: str
    args: tuple[str, ...]
    output: str
    diagnostic_output: str
    returncode: int

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        return (
            self.diagnostic_output.strip()
            or self.output.strip()
            or f"git exited with code {self.returncode}"
        )


Runner = Callable[[str, Sequence[str], Path], Awaitable[GitStepResult]]


class GitRunner:
    """Runs one ``git`` process per call with an argument list."""

    def __init__(self, executable: str = "git"):
        self.executable = executable
        self.env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}

    async def __call__(
        self, step: str, args: Sequence[str], cwd: Path
    ) -> GitStepResult:
        printable = redact(" ".join(["git", *args]))
        logger.debug("Command: %s (cwd=%s)", printable, cwd)

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                cwd=str(cwd),
                env=self.env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise GitStepError(step, f"Could not run git: {e}") from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            logger.warning("Killing %s after cancellation", printable)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            raise

        return GitStepResult(
            step=step,
            args=tuple(redact(a) for a in args),
            output=redact(stdout.decode("utf-8", errors="replace")),
            diagnostic_output=redact(stderr.decode("utf-8", errors="replace")),
            returncode=process.returncode,
        )


def log_git_output(result: GitStepResult):
    if result.output:
        logger.debug("[%s] stdout: %s", result.step, result.output.rstrip())
    if result.diagnostic_output:
        logger.debug("[%s] stderr: %s", result.step, result.diagnostic_output.rstrip())


class GitPipeline:
    """
    The ordered git steps that turn a push into a pushed bot branch.

    ``run`` is an async generator yielding the run state reached after each
    milestone. The first failing command raises ``GitStepError`` and nothing
    after it is executed.
    """

    def __init__(
        self,
        config: Config,
        mutator: FileMutator,
        runner: Runner | None = None,
    ):
        self.config = config
        self.mutator = mutator
        self.runner = runner if runner is not None else GitRunner()

    async def git(self, step: str, *args: str, cwd: Path) -> GitStepResult:
        with track_git_step(step):
            result = await self.runner(step, args, cwd)
            log_git_output(result)
            if not result.succeeded:
                logger.error(
                    "Step %s failed with code %d: %s",
                    step,
                    result.returncode,
                    result.diagnostic,
                )
                raise GitStepError(step, result.diagnostic, result.returncode)
        return result

    def commit_message(self, event: PushEvent) -> str:
        return f"Update {self.config.MARKER_FILE_PATH} for {event.commit_id}"

    async def clone(self, workspace: Workspace, clone_url: str):
        await self.git(
            "clone",
            "clone",
            f"--depth={self.config.CLONE_DEPTH}",
            "--",
            clone_url,
            str(workspace.path),
            cwd=workspace.path.parent,
        )

    async def configure_identity(self, workspace: Workspace):
        cwd = workspace.path
        await self.git(
            "config", "config", "user.name", self.config.GIT_AUTHOR_NAME, cwd=cwd
        )
        await self.git(
            "config", "config", "user.email", self.config.GIT_AUTHOR_EMAIL, cwd=cwd
        )

        name = await self.git("config", "config", "user.name", cwd=cwd)
        email = await self.git("config", "config", "user.email", cwd=cwd)
        logger.info(
            "Committing as %s <%s>", name.output.strip(), email.output.strip()
        )

    async def fetch(self, workspace: Workspace, ref: str):
        await self.git("fetch", "fetch", "origin", f"+{ref}", cwd=workspace.path)

    async def checkout(self, workspace: Workspace, commit_id: str):
        await self.git("checkout", "checkout", "-qf", commit_id, cwd=workspace.path)

    async def create_branch(self, workspace: Workspace):
        await self.git(
            "branch", "checkout", "-b", workspace.branch_name, cwd=workspace.path
        )

    async def status(self, workspace: Workspace):
        await self.git("status", "status", cwd=workspace.path)

    async def mutate(self, workspace: Workspace, event: PushEvent):
        try:
            await asyncio.to_thread(self.mutator.mutate, workspace, event)
        except (OSError, ValueError) as e:
            logger.error("Mutating the marker file failed: %s", e)
            raise GitStepError("mutate", str(e)) from e

    async def stage(self, workspace: Workspace):
        await self.git("stage", "add", "--all", cwd=workspace.path)

    async def commit(self, workspace: Workspace, event: PushEvent):
        await self.git(
            "commit",
            "commit",
            "--message",
            self.commit_message(event),
            cwd=workspace.path,
        )

    async def push(self, workspace: Workspace):
        await self.git(
            "push",
            "push",
            "--set-upstream",
            "origin",
            workspace.branch_name,
            cwd=workspace.path,
        )

    async def run(
        self, workspace: Workspace, event: PushEvent, clone_url: str
    ) -> AsyncIterator[RunState]:
        await self.clone(workspace, clone_url)
        yield RunState.cloned

        await self.configure_identity(workspace)
        await self.fetch(workspace, event.ref)
        await self.checkout(workspace, event.commit_id)
        await self.create_branch(workspace)
        await self.status(workspace)
        yield RunState.prepared

        await self.mutate(workspace, event)
        await self.status(workspace)
        yield RunState.mutated

        await self.stage(workspace)
        await self.status(workspace)
        await self.commit(workspace, event)
        yield RunState.committed

        await self.push(workspace)
        yield RunState.pushed
