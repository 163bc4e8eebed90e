"""
Entry point for the tutoring server.
"""

# ruff: noqa: E402

from pathlib import Path

import uvicorn

from tutorchat.config.config import (
    ConfigSettings,
    load_settings,
    create_default_config_file,
    DEFAULT_CONFIG_FILE,
)
from tutorchat.config.appchat import (
    ChatSettings,
    load_settings as load_chat_settings,
    create_default_config_file as create_default_chat_config_file,
    CHAT_CONFIG_FILE,
)

# logs
from tutorchat.apputils import configure_logging

logger = configure_logging("appTutor.log")

if not Path(DEFAULT_CONFIG_FILE).exists():
    create_default_config_file(DEFAULT_CONFIG_FILE)
    logger.info(f"Created default {DEFAULT_CONFIG_FILE}")

settings: ConfigSettings | None = load_settings(logger=logger)
if settings is None:
    exit()

if not Path(CHAT_CONFIG_FILE).exists():
    create_default_chat_config_file(CHAT_CONFIG_FILE)
    logger.info(f"Created default {CHAT_CONFIG_FILE}")

chat_settings: ChatSettings | None = load_chat_settings(logger=logger)
if chat_settings is None:
    exit()

from tutorchat.server import create_app
from tutorchat.session import SessionServices

services = SessionServices.from_config(
    settings, chat_settings, logger=logger
)
app = create_app(services)

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
    )
