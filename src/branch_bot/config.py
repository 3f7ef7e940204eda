from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings
from sanic.log import logger


class Config(BaseSettings):
    WEBHOOK_SECRET: str
    PRIVATE_KEY: str
    APP_ID: int

    REPOS_DIR: Path = Path("/tmp/repos")
    BRANCH_PREFIX: str = "branch-bot/"

    GIT_AUTHOR_NAME: str = "branch-bot"
    GIT_AUTHOR_EMAIL: str = "branch-bot@users.noreply.github.com"

    MARKER_FILE_PATH: str = "README.md"
    CLONE_DEPTH: int = 50

    STATUS_CONTEXT: str = "branch-bot"
    STATUS_TARGET_URL: str = "https://github.com/apps/branch-bot"

    OVERRIDE_LOGGING: Literal[
        "CRITICAL",
        "FATAL",
        "ERROR",
        "WARNING",
        "WARN",
        "INFO",
        "DEBUG",
        "NOTSET",
    ] = "INFO"

    STERILE: bool = False

    def print_config(self):
        """Print configuration values with sensitive attributes masked"""
        sensitive_attrs = {
            "WEBHOOK_SECRET",
            "PRIVATE_KEY",
        }

        logger.info("=== Branch Bot Configuration ===")
        for field_name, field_value in self.model_dump().items():
            if field_name in sensitive_attrs:
                logger.info(f"{field_name}: ***")
            else:
                logger.info(f"{field_name}: {field_value}")
        logger.info("================================")
