"""taskdeck settings.

Every knob is a `TASKDECK_*` environment variable, read from the process
environment, a project `.env` or the user `.env`. The CLI turns its global
options into `AppSettings` overrides and hands the result to `TaskWorkspace`.
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayKind(str, Enum):
    """Which persistence backend the workspace talks to."""

    MEMORY = "memory"
    JSON = "json"
    HTTP = "http"


class RollbackPolicy(str, Enum):
    """How the entity store undoes a failed optimistic write.

    - STORE: restore the whole collection captured before the write. Simple, but
      it also discards other optimistic writes that were still pending.
    - ENTITY: restore only the entity the failed write touched.
    """

    STORE = "store"
    ENTITY = "entity"


def get_user_config_dir() -> Path:
    """Directory holding the user `.env` written by `doctor configure` and the default `tasks.json`."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "taskdeck"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "taskdeck"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "taskdeck"
    return Path.home() / ".config" / "taskdeck"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def get_default_data_file() -> Path:
    return get_user_config_dir() / "tasks.json"


def _parse_env_lines(text: str) -> dict[str, str]:
    # KEY=value lines only; comments, blanks and malformed lines are dropped.
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str]) -> Path:
    """Merge `values` into the user `.env`, keeping keys it already had.

    Keys are written sorted. Returns the path of the file.
    """

    env_path = get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        try:
            existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))
        except OSError:
            existing = {}

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# taskdeck user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """History size, rollback scope, backend selection and HTTP options.

    Invalid values fail here, before a workspace is built.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKDECK_",
        extra="ignore",
        case_sensitive=False,
        # Later files win: the user .env overrides a project .env.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    max_history: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum number of undoable commands kept in history.",
    )
    rollback_policy: RollbackPolicy = Field(
        default=RollbackPolicy.STORE,
        description="Whole-store or per-entity rollback of failed optimistic writes.",
    )

    gateway: GatewayKind = Field(
        default=GatewayKind.JSON,
        description="Persistence backend: memory, json (local file) or http.",
    )
    data_file: Path = Field(
        default_factory=get_default_data_file,
        description="JSON file used by the `json` gateway.",
    )

    api_base_url: str = Field(
        default="http://127.0.0.1:8765/api",
        min_length=8,
        description="Base URL of the REST backend used by the `http` gateway.",
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout per request (seconds).",
    )
    user_agent: str = Field(
        default="taskdeck/0.1",
        min_length=1,
        description="User-Agent for backend requests.",
    )

    log_level: str = Field(
        default="WARNING",
        description="Root log level (DEBUG, INFO, WARNING, ERROR).",
    )
