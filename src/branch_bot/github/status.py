import aiohttp
import gidgethub
from gidgethub.abc import GitHubAPI
from sanic.log import logger

from branch_bot.config import Config
from branch_bot.exceptions import StatusReportError
from branch_bot.github.models import PushEvent, StatusState, StatusUpdate
from branch_bot import metrics


DEFAULT_DESCRIPTIONS = {
    StatusState.pending: "Working on it!",
    StatusState.success: "Victory!!!",
    StatusState.failure: "Uh-oh!",
}


class StatusReporter:
    def __init__(self, gh: GitHubAPI, config: Config):
        self.gh = gh
        self.config = config

    def make_update(
        self, event: PushEvent, state: StatusState, description: str | None = None
    ) -> StatusUpdate:
        return StatusUpdate(
            commit_sha=event.commit_id,
            state=state,
            context=self.config.STATUS_CONTEXT,
            description=description or DEFAULT_DESCRIPTIONS[state],
            target_url=self.config.STATUS_TARGET_URL,
        )

    async def report(
        self, event: PushEvent, state: StatusState, description: str | None = None
    ) -> StatusUpdate:
        update = self.make_update(event, state, description)
        url = f"/repos/{event.owner_login}/{event.repo_name}/statuses/{update.commit_sha}"

        logger.debug(
            "Posting %s status for sha %s to GitHub: %s",
            update.state,
            update.commit_sha,
            url,
        )
        if self.config.STERILE:
            logger.debug("Sterile mode: skipping status post")
            return update

        try:
            await self.gh.post(url, data=update.to_api())
        except (gidgethub.GitHubException, aiohttp.ClientError) as e:
            metrics.github_status_update_errors_total.labels(
                update.state.value, type(e).__name__
            ).inc()
            raise StatusReportError(
                f"Could not post {update.state} status for {update.commit_sha}: {e}"
            ) from e

        metrics.github_status_updates_total.labels(update.state.value).inc()
        return update
