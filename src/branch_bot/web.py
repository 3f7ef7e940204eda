import asyncio

from sanic import Sanic, response
import aiohttp
import gidgethub
from gidgethub.sansio import Event as GitHubEvent
from sanic.log import logger
import cachetools
from aiolimiter import AsyncLimiter
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from branch_bot.config import Config
from branch_bot.exceptions import UnrecoverableError
from branch_bot.github.utils import CredentialProvider
from branch_bot.orchestrator import Orchestrator, RunResult


# runs outlive the request that started them
_runs: set[asyncio.Task] = set()


async def handle_github_webhook(request, *, app: Sanic) -> RunResult:
    event = GitHubEvent.from_http(
        request.headers, request.body, secret=app.config.WEBHOOK_SECRET
    )
    logger.debug(
        "Github-Event: %s (delivery %s) with action %s",
        event.event,
        event.delivery_id,
        event.data.get("action") if isinstance(event.data, dict) else None,
    )

    orchestrator: Orchestrator = app.ctx.orchestrator
    task = asyncio.ensure_future(orchestrator.handle(event.event, event.data))
    _runs.add(task)
    task.add_done_callback(_runs.discard)
    return await asyncio.shield(task)


def create_app(config: Config | None = None):
    if config is None:
        config = Config()  # type: ignore

    app = Sanic("branch-bot")
    app.update_config(config)
    app.ctx.config = config
    logger.setLevel(config.OVERRIDE_LOGGING)

    app.ctx.cache = cachetools.LRUCache(maxsize=500)

    limiter = AsyncLimiter(10)

    @app.listener("before_server_start")
    async def init(app, loop):
        config.print_config()

        logger.debug("Creating aiohttp session")
        app.ctx.aiohttp_session = aiohttp.ClientSession()

        app.ctx.credentials = CredentialProvider(
            app.ctx.aiohttp_session, config=config, cache=app.ctx.cache
        )
        app.ctx.orchestrator = Orchestrator(config, credentials=app.ctx.credentials)

    @app.listener("after_server_stop")
    async def close(app, loop):
        if _runs:
            logger.info("Waiting for %d running pipelines", len(_runs))
            await asyncio.gather(*_runs, return_exceptions=True)
        await app.ctx.aiohttp_session.close()

    @app.route("/")
    async def index(request):
        logger.debug("status check")
        return response.text("ok")

    @app.route("/health")
    async def health(request):
        if not limiter.has_capacity():
            return response.text("Rate limited", status=429)
        await limiter.acquire()

        logger.info("Checking health")
        try:
            app_info = await app.ctx.credentials.get_app_info()
            if app_info is None:
                logger.error("GitHub App info is None")
                return response.text("GitHub: not ok", status=500)
        except Exception as e:
            logger.error("GitHub App info failed: %s", e)
            logger.exception(e)
            return response.text("GitHub: not ok", status=500)

        logger.info("GitHub ok")
        return response.text("GitHub: ok")

    @app.route("/metrics")
    async def metrics(request):
        return response.raw(generate_latest(), content_type=CONTENT_TYPE_LATEST)

    async def respond(request):
        try:
            result = await handle_github_webhook(request, app=app)
        except gidgethub.ValidationFailure as e:
            logger.warning("Rejected webhook: %s", e)
            return response.text(str(e), status=401)
        except gidgethub.BadRequest as e:
            logger.warning("Bad webhook request: %s", e)
            return response.text(str(e), status=400)
        except UnrecoverableError as e:
            logger.warning("Rejected webhook: %s", e)
            return response.text(str(e), status=400)
        except ValueError as e:
            logger.warning("Invalid webhook body: %s", e)
            return response.text("Invalid body", status=400)
        except Exception as e:
            logger.exception(e)
            return response.text(str(e), status=500)

        return response.text(result.body, status=result.status)

    @app.route("/webhook/github", methods=["POST"])
    async def github(request):
        logger.debug("Webhook received on github endpoint")
        return await respond(request)

    @app.route("/webhook", methods=["POST"])
    async def webhook(request):
        logger.debug("Webhook received on compatibility endpoint")
        return await respond(request)

    return app
