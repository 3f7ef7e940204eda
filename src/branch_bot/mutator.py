from datetime import datetime
from pathlib import Path
from typing import Callable

from sanic.log import logger

from branch_bot.github.models import PushEvent
from branch_bot.workspace import Workspace


class FileMutator:
    """Appends a line to the marker file so every bot branch has a diff."""

    def __init__(
        self,
        marker_path: str,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.marker_path = marker_path
        self.clock = clock

    def marker_file(self, workspace: Workspace) -> Path:
        root = workspace.path.resolve()
        target = (root / self.marker_path).resolve()
        if not target.is_relative_to(root):
            raise ValueError(
                f"Marker file {self.marker_path} resolves outside of {root}"
            )
        return target

    def line_for(self, event: PushEvent) -> str:
        timestamp = self.clock().strftime("%Y-%m-%d %H:%M:%S")
        return f"Updated at {timestamp} for commit {event.commit_id} of {event.ref}\n"

    def mutate(self, workspace: Workspace, event: PushEvent) -> None:
        target = self.marker_file(workspace)
        target.parent.mkdir(parents=True, exist_ok=True)

        line = self.line_for(event)
        logger.debug("Appending to %s: %s", target, line.rstrip())
        with target.open("a", encoding="utf-8") as f:
            f.write(line)
