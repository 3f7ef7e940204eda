import asyncio
import shutil

import pytest

from branch_bot.exceptions import CleanupError, ValidationError
from branch_bot.workspace import Workspace, WorkspaceManager
import branch_bot.workspace as workspace_module


def test_branch_name_is_stable(config):
    manager = WorkspaceManager(config)

    assert manager.branch_name("abc123") == "autobot/abc123"
    assert manager.branch_name("abc123") == manager.branch_name("abc123")


def test_path_is_derived_from_repository(config):
    manager = WorkspaceManager(config)

    assert manager.path_for("test_org/test_repo") == (
        config.REPOS_DIR / "test_org" / "test_repo"
    )


@pytest.mark.parametrize("name", ["../escape", "/etc/passwd", "org/../../x", ""])
def test_path_rejects_escaping_names(config, name):
    manager = WorkspaceManager(config)

    with pytest.raises(ValidationError):
        manager.path_for(name)


@pytest.mark.asyncio
async def test_prepare_without_previous_run(config):
    manager = WorkspaceManager(config)

    workspace = await manager.prepare("test_org/test_repo", "abc123")

    assert workspace == Workspace(
        path=config.REPOS_DIR / "test_org" / "test_repo",
        branch_name="autobot/abc123",
    )
    assert workspace.path.parent.is_dir()
    assert not workspace.path.exists()


@pytest.mark.asyncio
async def test_prepare_removes_stale_directory(config):
    manager = WorkspaceManager(config)
    stale = config.REPOS_DIR / "test_org" / "test_repo"
    (stale / ".git").mkdir(parents=True)
    (stale / "README.md").write_text("left over from a crashed run")

    workspace = await manager.prepare("test_org/test_repo", "abc123")

    assert not workspace.path.exists()
    assert workspace.path.parent.is_dir()


@pytest.mark.asyncio
async def test_destroy_removes_directory(config):
    manager = WorkspaceManager(config)
    workspace = await manager.prepare("test_org/test_repo", "abc123")
    (workspace.path / "sub").mkdir(parents=True)
    (workspace.path / "sub" / "file").write_text("x")

    await manager.destroy(workspace)

    assert not workspace.path.exists()


@pytest.mark.asyncio
async def test_destroy_missing_directory_is_fine(config):
    manager = WorkspaceManager(config)
    workspace = await manager.prepare("test_org/test_repo", "abc123")

    await manager.destroy(workspace)


@pytest.mark.asyncio
async def test_destroy_failure_raises_cleanup_error(config, monkeypatch):
    manager = WorkspaceManager(config)
    workspace = await manager.prepare("test_org/test_repo", "abc123")
    workspace.path.mkdir()

    def rmtree(path, *args, **kwargs):
        raise PermissionError(13, "Permission denied", str(path))

    with monkeypatch.context() as m:
        m.setattr(workspace_module.shutil, "rmtree", rmtree)
        with pytest.raises(CleanupError):
            await manager.destroy(workspace)

    assert workspace.path.exists()
    shutil.rmtree(workspace.path)


@pytest.mark.asyncio
async def test_prepare_does_filesystem_work_in_threads(config, monkeypatch):
    offloaded = []
    to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await to_thread(func, *args, **kwargs)

    monkeypatch.setattr(workspace_module.asyncio, "to_thread", recording_to_thread)

    await WorkspaceManager(config).prepare("test_org/test_repo", "abc123")

    assert offloaded == ["rmtree", "mkdir"]
