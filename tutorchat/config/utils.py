"""
Serialization helpers shared by the settings modules: writing a
settings object to a TOML file, and turning pydantic validation errors
into a message that can be shown to the person editing the file.
"""

from pathlib import Path
from typing import Any

import tomlkit
from pydantic import BaseModel, ValidationError


def _drop_none(data: Any) -> Any:
    """TOML has no null value: remove None entries recursively."""
    if isinstance(data, dict):
        return {
            k: _drop_none(v)
            for k, v in data.items()  # type: ignore
            if v is not None
        }
    if isinstance(data, list):
        return [_drop_none(v) for v in data]  # type: ignore
    return data


def serialize_settings(settings: BaseModel) -> str:
    """Return the TOML text of a settings object."""
    data: dict[str, Any] = _drop_none(settings.model_dump(mode="json"))
    return tomlkit.dumps(data)


def export_settings(
    settings: BaseModel, file_path: str | Path
) -> None:
    """Write a settings object to a TOML file, replacing the file if
    it exists.

    Raises:
        OSError: if the file cannot be written
    """
    Path(file_path).write_text(
        serialize_settings(settings), encoding="utf-8"
    )


def format_pydantic_error_message(error: ValidationError | str) -> str:
    """Condense a pydantic validation error into one line per
    offending field, dropping the documentation links."""

    if isinstance(error, str):
        return "\n".join(
            line
            for line in error.splitlines()
            if "errors.pydantic.dev" not in line
        )

    lines: list[str] = [
        f"{error.error_count()} invalid setting(s) in {error.title}:"
    ]
    for err in error.errors():
        location = ".".join(str(loc) for loc in err["loc"]) or "<root>"
        lines.append(f"  {location}: {err['msg']}")
    return "\n".join(lines)
