"""
Tutorchat - a real-time tutoring assistant.

Students open a session over a WebSocket and hold a conversation with
a language model tutor, either on a document they uploaded (answers
are grounded on the chunks of the document retrieved from a Qdrant
vector database) or on a homework topic. Answers are streamed token
by token, and every exchange is recorded in a transcript store from
which later homework sessions are resumed.

Public API
----------
Configuration:
    create_default_config_file: Create or reset config.toml
    create_default_chat_config_file: Create or reset appchat.toml

Sessions:
    SessionServices: the collaborators shared by the sessions
    create_session: create a document chat or homework help session

Server:
    create_app: the FastAPI application

Example
-------
    >>> import tutorchat
    >>> tutorchat.create_default_config_file()
    >>> app = tutorchat.create_app()
"""

# pyright: reportUnusedImport=false
# flake8: noqa

from .config.config import create_default_config_file
from .config.appchat import (
    create_default_config_file as create_default_chat_config_file,
)
from .session import SessionServices, create_session
from .server import create_app
