"""
The run state machine that ties a push event to one pipeline execution.

A run reports a pending status, prepares a workspace, drives the git
pipeline, reports the outcome and always removes the workspace again. Status
and cleanup failures are logged and never replace the outcome of the git
steps.
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import pydantic
from gidgethub.abc import GitHubAPI
from sanic.log import logger

from branch_bot import metrics
from branch_bot.config import Config
from branch_bot.exceptions import (
    CleanupError,
    GitStepError,
    StatusReportError,
    ValidationError,
)
from branch_bot.git import GitPipeline
from branch_bot.github.models import PushEvent, PushPayload, StatusState
from branch_bot.github.status import StatusReporter
from branch_bot.github.utils import CredentialProvider
from branch_bot.mutator import FileMutator
from branch_bot.state import TERMINAL_STATES, RunState
from branch_bot.workspace import Workspace, WorkspaceManager


APP_NAME = "branch-bot"


@dataclass
class RunResult:
    status: int
    body: str
    states: list[RunState] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status < 400

    @property
    def final_state(self) -> RunState | None:
        return self.states[-1] if self.states else None


@dataclass
class RepositoryLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class Run:
    def __init__(self, event: PushEvent):
        self.event = event
        self.states = [RunState.idle]

    @property
    def state(self) -> RunState:
        return self.states[-1]

    def advance(self, state: RunState):
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Run for {self.event.commit_id} already finished")
        logger.debug(
            "Run %s@%s: %s -> %s",
            self.event.repository_full_name,
            self.event.commit_id,
            self.state,
            state,
        )
        self.states.append(state)

    def result(self, status: int, body: str, error: Exception | None = None):
        return RunResult(status=status, body=body, states=list(self.states), error=error)


def parse_push_event(payload: Mapping[str, Any]) -> PushEvent:
    try:
        data = PushPayload.model_validate(payload)
    except pydantic.ValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise ValidationError(
            f"Invalid push payload, missing or malformed: {', '.join(missing)}"
        ) from e
    return PushEvent.from_payload(data)


class Orchestrator:
    def __init__(
        self,
        config: Config,
        credentials: CredentialProvider,
        workspaces: WorkspaceManager | None = None,
        pipeline: GitPipeline | None = None,
        reporter_factory: Callable[[GitHubAPI, Config], StatusReporter] = StatusReporter,
    ):
        self.config = config
        self.credentials = credentials
        self.workspaces = workspaces or WorkspaceManager(config)
        self.pipeline = pipeline or GitPipeline(
            config, FileMutator(config.MARKER_FILE_PATH)
        )
        self.reporter_factory = reporter_factory
        self._locks: dict[str, RepositoryLock] = {}

    def is_own_branch(self, ref: str) -> bool:
        return ref.startswith(f"refs/heads/{self.config.BRANCH_PREFIX}")

    @contextlib.asynccontextmanager
    async def _serialized(self, repository_full_name: str):
        entry = self._locks.setdefault(repository_full_name, RepositoryLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[repository_full_name]

    async def handle(self, event_name: str, payload: Mapping[str, Any]) -> RunResult:
        metrics.webhooks_received_total.labels(event_name).inc()

        if event_name != "push":
            logger.debug("Ignoring %s event", event_name)
            metrics.pipeline_runs_total.labels("ignored").inc()
            return RunResult(status=200, body="Pong!")

        try:
            event = parse_push_event(payload)
            self.workspaces.path_for(event.repository_full_name)
        except ValidationError as e:
            logger.info("Rejecting push event: %s", e)
            metrics.pipeline_runs_total.labels("invalid").inc()
            return RunResult(status=400, body=str(e), error=e)

        if self.is_own_branch(event.ref):
            logger.debug("Push to %s was created by the bot, ignoring", event.ref)
            metrics.pipeline_runs_total.labels("ignored").inc()
            return RunResult(status=200, body=f"Created by {APP_NAME}")

        logger.info(
            "Push of %s on %s to %s",
            event.commit_id,
            event.ref,
            event.repository_full_name,
        )

        credentials = await self.credentials.for_installation(event.installation_id)
        logger.debug(
            "Acting as installation %d on %s",
            credentials.installation_id,
            event.repository_full_name,
        )
        reporter = self.reporter_factory(credentials.gh, self.config)
        return await self.execute(
            event, clone_url=credentials.clone_url(event.clone_url), reporter=reporter
        )

    async def execute(
        self, event: PushEvent, clone_url: str, reporter: StatusReporter
    ) -> RunResult:
        run = Run(event)

        await self._report(reporter, event, StatusState.pending)
        run.advance(RunState.pending_reported)

        async with self._serialized(event.repository_full_name):
            workspace = Workspace(
                path=self.workspaces.path_for(event.repository_full_name),
                branch_name=self.workspaces.branch_name(event.commit_id),
            )
            try:
                workspace = await self.workspaces.prepare(
                    event.repository_full_name, event.commit_id
                )
                async for state in self.pipeline.run(workspace, event, clone_url):
                    run.advance(state)
            except asyncio.CancelledError:
                logger.warning("Run for %s was cancelled", event.commit_id)
                # a second cancel must not interrupt the cleanup
                await asyncio.shield(self._finish_failed(run, reporter, workspace))
                raise
            except Exception as e:
                logger.error("Run for %s failed: %s", event.commit_id, e)
                await self._finish_failed(run, reporter, workspace)
                if not isinstance(e, GitStepError):
                    raise
                return run.result(400, e.diagnostic, error=e)

            await self._cleanup(workspace)

        await self._report(reporter, event, StatusState.success)
        run.advance(RunState.success_reported)
        run.advance(RunState.done)

        logger.info("Pushed %s for %s", workspace.branch_name, event.commit_id)
        metrics.pipeline_runs_total.labels("success").inc()
        return run.result(200, "Done!")

    async def _finish_failed(
        self, run: Run, reporter: StatusReporter, workspace: Workspace
    ):
        report_outcome, cleanup_outcome = await asyncio.gather(
            reporter.report(run.event, StatusState.failure),
            self.workspaces.destroy(workspace),
            return_exceptions=True,
        )
        if isinstance(report_outcome, Exception):
            logger.error("Could not report failure status: %s", report_outcome)
        run.advance(RunState.failure_reported)

        if isinstance(cleanup_outcome, Exception):
            metrics.workspace_cleanup_errors_total.inc()
            logger.error("Could not clean up workspace: %s", cleanup_outcome)
        run.advance(RunState.cleaned_up)
        run.advance(RunState.done_error)

        metrics.pipeline_runs_total.labels("failure").inc()

    async def _report(
        self, reporter: StatusReporter, event: PushEvent, state: StatusState
    ):
        try:
            await reporter.report(event, state)
        except StatusReportError as e:
            logger.error("%s", e)

    async def _cleanup(self, workspace: Workspace):
        try:
            await self.workspaces.destroy(workspace)
        except CleanupError as e:
            metrics.workspace_cleanup_errors_total.inc()
            logger.error("%s", e)
