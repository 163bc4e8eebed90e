"""CLI interface of the tutoring server"""

import logging

import typer

logger = logging.getLogger("tutorchat.cli")
app = typer.Typer()


@app.command()
def create_default_config_file() -> None:
    """
    Create a default configuration file (config.toml), or reset the
    configuration file to default values.
    """
    from tutorchat.config.config import create_default_config_file

    try:
        create_default_config_file()
    except Exception as e:
        logger.error(str(e))
        raise typer.Exit(1)


@app.command()
def create_default_chat_config_file() -> None:
    """
    Create a default chat configuration file (appchat.toml) with the
    prompts and messages of the sessions, or reset it.
    """
    from tutorchat.config.appchat import create_default_config_file

    try:
        create_default_config_file()
    except Exception as e:
        logger.error(str(e))
        raise typer.Exit(1)


@app.command()
def serve(
    config_file: str = typer.Option(
        "config.toml",
        "--config",
        "-c",
        help="Configuration file of the server",
    ),
    chat_config_file: str = typer.Option(
        "appchat.toml",
        "--chat-config",
        help="Chat configuration file (prompts and messages)",
    ),
    log_file: str = typer.Option(
        "tutorchat.log",
        "--log-file",
        help="File receiving the errors of the server",
    ),
) -> None:
    """
    Start the tutoring server at the host and port of the
    configuration file.
    """
    import uvicorn

    from tutorchat.apputils import configure_logging
    from tutorchat.config.config import load_settings
    from tutorchat.config.appchat import (
        ChatSettings,
        load_settings as load_chat_settings,
    )
    from tutorchat.server import create_app
    from tutorchat.session import SessionServices

    app_logger = configure_logging(log_file)

    try:
        settings = load_settings(file_name=config_file, logger=app_logger)
    except FileNotFoundError as e:
        app_logger.error(
            f"{e}\nCreate one with create-default-config-file."
        )
        raise typer.Exit(1)
    if settings is None:
        raise typer.Exit(1)

    try:
        chat_settings = load_chat_settings(
            file_name=chat_config_file, logger=app_logger
        )
    except FileNotFoundError:
        app_logger.info("No chat configuration file, using defaults.")
        chat_settings = ChatSettings()
    if chat_settings is None:
        raise typer.Exit(1)

    try:
        services = SessionServices.from_config(
            settings, chat_settings, logger=app_logger
        )
    except Exception as e:
        app_logger.error(f"Could not create session services: {e}")
        raise typer.Exit(1)

    uvicorn.run(
        create_app(services),
        host=settings.server.host,
        port=settings.server.port,
    )
