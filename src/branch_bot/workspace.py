import asyncio
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
import shutil

from sanic.log import logger

from branch_bot.config import Config
from branch_bot.exceptions import CleanupError, ValidationError


@dataclass(frozen=True)
class Workspace:
    path: Path
    branch_name: str


class WorkspaceManager:
    def __init__(self, config: Config):
        self.base_dir = Path(config.REPOS_DIR)
        self.branch_prefix = config.BRANCH_PREFIX

    def branch_name(self, commit_id: str) -> str:
        return f"{self.branch_prefix}{commit_id}"

    def path_for(self, repository_full_name: str) -> Path:
        name = PurePosixPath(repository_full_name)
        if name.is_absolute() or ".." in name.parts or not name.parts:
            raise ValidationError(
                f"Refusing repository name {repository_full_name!r} as workspace path"
            )
        return self.base_dir.joinpath(*name.parts)

    async def prepare(self, repository_full_name: str, commit_id: str) -> Workspace:
        path = self.path_for(repository_full_name)

        logger.debug("Removing stale workspace %s", path)
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except FileNotFoundError:
            pass

        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)

        workspace = Workspace(path=path, branch_name=self.branch_name(commit_id))
        logger.debug(
            "Prepared workspace %s for branch %s", path, workspace.branch_name
        )
        return workspace

    async def destroy(self, workspace: Workspace) -> None:
        logger.debug("Remove dir %s", workspace.path)
        try:
            await asyncio.to_thread(shutil.rmtree, workspace.path)
        except FileNotFoundError:
            logger.debug("Workspace %s was already gone", workspace.path)
        except OSError as e:
            raise CleanupError(f"Could not remove {workspace.path}: {e}") from e
