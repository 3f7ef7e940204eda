import json
from pathlib import Path

import pytest
from sanic import Sanic
from sanic_testing import TestManager
from sanic.log import logger

from branch_bot.config import Config


SAMPLES = Path(__file__).parent / "samples"


@pytest.fixture
def config(tmp_path):
    config = Config(
        WEBHOOK_SECRET="abc",
        PRIVATE_KEY="abc",
        APP_ID=123,
        REPOS_DIR=tmp_path / "repos",
        BRANCH_PREFIX="autobot/",
        GIT_AUTHOR_NAME="branch-bot",
        GIT_AUTHOR_EMAIL="branch-bot@example.com",
        MARKER_FILE_PATH="README.md",
        STATUS_CONTEXT="branch-bot",
        STATUS_TARGET_URL="https://example.com/branch-bot",
        OVERRIDE_LOGGING="DEBUG",
        STERILE=False,
    )

    logger.setLevel(config.OVERRIDE_LOGGING)

    return config


@pytest.fixture
def push_payload():
    with open(SAMPLES / "push.json") as f:
        return json.load(f)


@pytest.fixture(scope="function")
def app(config) -> Sanic:
    """Create a Sanic app for testing."""
    from branch_bot.web import create_app

    Sanic.test_mode = True
    app = create_app(config=config)
    TestManager(app)
    return app
