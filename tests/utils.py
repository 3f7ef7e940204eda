import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence
from unittest.mock import AsyncMock

from branch_bot.git import GitStepResult


@dataclass
class FakeGitRunner:
    """Records git invocations instead of spawning processes.

    ``fail`` maps a step name to the stderr the step should fail with.
    """

    fail: dict[str, str] = field(default_factory=dict)
    calls: list[tuple[str, tuple[str, ...], Path]] = field(default_factory=list)

    async def __call__(self, step: str, args: Sequence[str], cwd: Path):
        args = tuple(args)
        self.calls.append((step, args, cwd))
        await asyncio.sleep(0)

        if step in self.fail:
            return GitStepResult(
                step=step,
                args=args,
                output="",
                diagnostic_output=self.fail[step],
                returncode=1,
            )

        output = ""
        if step == "clone":
            Path(args[-1]).mkdir(parents=True)
        elif args[:1] == ("config",) and len(args) == 2:
            output = "branch-bot\n"

        return GitStepResult(
            step=step, args=args, output=output, diagnostic_output="", returncode=0
        )

    @property
    def steps(self) -> list[str]:
        steps = []
        for step, _, _ in self.calls:
            if not steps or steps[-1] != step:
                steps.append(step)
        return steps

    def args_for(self, step: str) -> list[tuple[str, ...]]:
        return [args for s, args, _ in self.calls if s == step]


@dataclass
class FakeCredentials:
    token: str = "s3cr3t"
    installation_id: int = 12345
    gh: AsyncMock = field(default_factory=AsyncMock)

    def clone_url(self, clone_url: str) -> str:
        return clone_url.replace("https://", f"https://x-access-token:{self.token}@")


class FakeCredentialProvider:
    def __init__(self, credentials: FakeCredentials | None = None):
        self.credentials = credentials or FakeCredentials()
        self.requested: list[int] = []

    async def for_installation(self, installation_id: int):
        self.requested.append(installation_id)
        return self.credentials


@dataclass
class HangingGitRunner(FakeGitRunner):
    """Blocks forever once ``hang_on`` is reached, like a stalled network step."""

    hang_on: str = "push"
    reached: asyncio.Event = field(default_factory=asyncio.Event)

    async def __call__(self, step: str, args: Sequence[str], cwd: Path):
        if step == self.hang_on:
            self.calls.append((step, tuple(args), cwd))
            self.reached.set()
            await asyncio.Event().wait()
        return await super().__call__(step, args, cwd)
