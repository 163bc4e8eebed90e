"""
This module provides the configuration of the tutoring server, i.e.
where the server listens, where the vector database and the transcript
stores are located, and which language models are used.

The configuration options are the following:

    server: host and port of the server
    storage: the location of the vector database, one of
        ':memory:'
        LocalStorage(folder = "./storage")  (or another folder name)
        RemoteSource(url = "1.1.1.127", port = 21465)  (or others)
    database: the collection holding the chunks of the uploaded
        documents
    major: the model that streams the answers to the student
    minor: the model that rewrites follow-up questions into
        standalone queries (not streamed)
    embeddings: the model used to encode queries for retrieval
    transcripts: where conversations, message records and document
        metadata are stored, one of
        ':memory:'
        LocalStorage(folder = "./transcripts")

Language models are given as "Provider/model", for example
"OpenAI/gpt-4o-mini". The "Debug" provider gives offline models that
return canned text, used for tests and for trying out the server.

Settings are read from config.toml, and may be overridden by
environment variables with prefix TUTORCHAT_. They are frozen after
loading: the process shares them read-only across sessions.
"""

import logging
from pathlib import Path
from tomllib import TOMLDecodeError
from typing import Literal

from pydantic import (
    BaseModel,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from .utils import (
    export_settings,
    format_pydantic_error_message,
    serialize_settings,
)

# Module-level constants
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_PORT_RANGE = (
    1024,
    65535,
)  # Valid port range excluding system ports

Provider = Literal["OpenAI", "Debug"]
PROVIDERS: tuple[str, ...] = Provider.__args__


# web server for the tutoring sessions
class ServerSettings(BaseSettings):
    """
    Server configuration settings.

    Attributes:
        port: port number
        host: server host address (defaults to 'localhost')
    """

    port: int = Field(
        default=61543,
        ge=0,
        le=65535,
        description="Server port (0 for auto-assignment)",
    )
    host: str = Field(
        default="localhost", description="Server host address"
    )

    model_config = SettingsConfigDict(frozen=True, extra='forbid')

    @field_validator('port')
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number is in acceptable range."""
        if v != 0 and not (
            DEFAULT_PORT_RANGE[0] <= v <= DEFAULT_PORT_RANGE[1]
        ):
            raise ValueError(
                f"Port must be 0 (auto-assign) or between "
                f"{DEFAULT_PORT_RANGE[0]} and {DEFAULT_PORT_RANGE[1]}"
            )
        return v


# The qdrant database may be located in memory, in a local folder,
# or on a server.
class LocalStorage(BaseModel):
    folder: str = Field(
        ..., min_length=1, description="Path to the storage folder"
    )


class RemoteSource(BaseModel):
    url: HttpUrl = Field(..., description="URL of the remote source.")
    port: int = Field(
        ...,
        gt=0,
        lt=65536,
        description="Port number for the remote source (1-65535).",
    )


DatabaseSource = Literal[':memory:'] | LocalStorage | RemoteSource
TranscriptSource = Literal[':memory:'] | LocalStorage


class DatabaseSettings(BaseModel):

    collection_name: str = Field(
        default="chunks",
        min_length=1,
        description="The name of the collection holding the chunks "
        + "of the documents uploaded by the students. Each chunk "
        + "carries the student id as namespace and the id of the "
        + "document it was taken from.",
    )


def _check_model_name(v: str) -> str:
    provider, sep, name = v.partition("/")
    if not sep or not name:
        raise ValueError(
            f"Model must be given as 'Provider/model', got '{v}'"
        )
    if provider not in PROVIDERS:
        raise ValueError(
            f"Invalid provider '{provider}', must be one of "
            f"{PROVIDERS}"
        )
    return v


class LanguageModelSettings(BaseModel):
    """A language model, given as 'Provider/model'."""

    model: str = Field(
        default="OpenAI/gpt-4o-mini",
        description="Provider and model name, separated by '/'",
    )
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_retries: int = Field(
        default=0,
        ge=0,
        description="Retries of the provider client. Sessions do not "
        + "retry failed calls themselves.",
    )

    model_config = SettingsConfigDict(frozen=True, extra='forbid')

    @field_validator('model')
    @classmethod
    def validate_model(cls, v: str) -> str:
        return _check_model_name(v)

    def get_provider(self) -> str:
        return self.model.split("/", 1)[0]

    def get_model_name(self) -> str:
        return self.model.split("/", 1)[1]


class EmbeddingSettings(BaseModel):

    model: str = Field(
        default="OpenAI/text-embedding-3-small",
        description="Provider and embedding model name",
    )
    size: int = Field(
        default=1536,
        gt=0,
        description="Dimension of the dense vectors",
    )

    model_config = SettingsConfigDict(frozen=True, extra='forbid')

    @field_validator('model')
    @classmethod
    def validate_model(cls, v: str) -> str:
        return _check_model_name(v)

    def get_provider(self) -> str:
        return self.model.split("/", 1)[0]

    def get_model_name(self) -> str:
        return self.model.split("/", 1)[1]


class TranscriptSettings(BaseModel):

    storage: TranscriptSource = Field(
        default=LocalStorage(folder="./transcripts"),
        description="Location of the conversation logs, the "
        + "conversations and the document metadata",
    )


class ConfigSettings(BaseSettings):
    """
    This object reads and writes to file the configuration options.

    Attributes:
        server: the server specification
        storage: where the vector database is located
        database: vector database settings
        major: the streaming model answering the student
        minor: the model condensing follow-up questions
        embeddings: the embedding model for retrieval
        transcripts: where conversation logs are stored
    """

    server: ServerSettings = Field(
        default_factory=ServerSettings,
        description="Server configuration",
    )

    storage: DatabaseSource = Field(
        default=LocalStorage(folder="./storage"),
        description="Vector database local or remote source",
    )

    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        description="Vector database settings",
    )

    major: LanguageModelSettings = Field(
        default_factory=LanguageModelSettings,
        description="Streaming model answering the student",
    )

    minor: LanguageModelSettings = Field(
        default_factory=LanguageModelSettings,
        description="Model rewriting follow-up questions",
    )

    embeddings: EmbeddingSettings = Field(
        default_factory=EmbeddingSettings,
        description="Embedding model",
    )

    transcripts: TranscriptSettings = Field(
        default_factory=TranscriptSettings,
        description="Transcript store settings",
    )

    model_config = SettingsConfigDict(
        toml_file=DEFAULT_CONFIG_FILE,
        env_prefix="TUTORCHAT_",  # Uppercase for environment variables
        env_nested_delimiter="__",
        frozen=True,
        validate_assignment=True,
        extra='forbid',  # Prevent unexpected fields
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources."""
        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls),
            env_settings,
        )

    def __str__(self) -> str:
        return serialize_settings(self)


def create_default_config_file(
    file_path: str | Path | None = None,
) -> None:
    """Create a default settings file.

    Args:
        file_path: config file (defaults to config.toml)

    Raises:
        OSError: If file cannot be written
        ValueError: If settings cannot be serialized

    Example:
        ```python
        # Creates config.toml in base folder with default values
        create_default_config_file()

        # Creates custom config file
        create_default_config_file(file_path="custom_config.toml")
        ```
    """
    if file_path is None:
        file_path = DEFAULT_CONFIG_FILE

    file_path = Path(file_path)

    if file_path.exists():
        # otherwise, it will be read in
        file_path.unlink()

    settings = ConfigSettings()

    export_settings(settings, file_path)


def load_settings(
    *,
    file_name: str | Path | None = None,
    logger: logging.Logger | None = None,
) -> ConfigSettings | None:
    """Load and return a ConfigSettings object from the specified file.

    Args:
        file_name: Path to settings file (defaults to config.toml)
        logger: logger to report errors to. If None, errors are
            raised instead of being logged.

    Returns:
        ConfigSettings: The loaded configuration settings object, or
        None if the file could not be read and a logger was given.

    Example:
        ```python
        settings = load_settings(
            file_name="my_config.toml",
            logger=logging.getLogger("setup"),
        )
        if settings is None:
            raise ValueError("Could not read my_config.toml")
        ```
    """
    if file_name is None:
        file_name = DEFAULT_CONFIG_FILE

    file_path = Path(file_name)

    if not file_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {file_path}"
        )

    try:
        # A temporary ConfigSettings class that uses the specified file
        class TempConfigSettings(ConfigSettings):
            model_config = SettingsConfigDict(
                toml_file=str(file_path),
                env_prefix="TUTORCHAT_",
                env_nested_delimiter="__",
                frozen=True,
                validate_assignment=True,
                extra='forbid',
            )

        return TempConfigSettings()

    except TOMLDecodeError as e:
        if logger is None:
            raise
        logger.error(
            "An invalid value was found in the config file "
            "(often, 'None').\nCheck that all values are numbers "
            f"or strings.\n{e}"
        )
        return None
    except ValidationError as e:
        if logger is None:
            raise
        logger.error(format_pydantic_error_message(e))
        return None
    except ValueError as e:
        if logger is None:
            raise
        logger.error(f"Invalid settings:\n{e}")
        return None
