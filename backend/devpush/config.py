from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from devpush.errors import ConfigError


DEFAULT_UPLOAD_WORKERS = 15


def _default_work_dir() -> Path:
    return Path(tempfile.gettempdir()) / "devpush-server"


@dataclass
class Settings:
    """Server and client settings, read from the environment.

    Attributes:
        work_dir: Directory the server keeps the application tree in.
        auth_token: Shared admin token for the control endpoints. Unset disables the check.
        build_command: Overrides the runtime's build command for every build.
        run_command: Overrides the runtime's run command for every build.
        host: Interface `devpush serve` listens on.
        port: Port `devpush serve` listens on.
        proxy_timeout: Seconds to wait on the running app when forwarding traffic.
        upload_workers: Size of the client's upload worker pool.
    """

    work_dir: Path
    auth_token: str | None = None
    build_command: str | None = None
    run_command: str | None = None
    host: str = "0.0.0.0"
    port: int = 8080
    proxy_timeout: float = 60.0
    upload_workers: int = DEFAULT_UPLOAD_WORKERS

    @classmethod
    def from_env(cls) -> "Settings":
        work_dir = (os.getenv("DEVPUSH_WORK_DIR") or "").strip()
        return cls(
            work_dir=Path(work_dir).expanduser() if work_dir else _default_work_dir(),
            auth_token=os.getenv("DEVPUSH_AUTH_TOKEN") or None,
            build_command=os.getenv("DEVPUSH_BUILD_COMMAND") or None,
            run_command=os.getenv("DEVPUSH_RUN_COMMAND") or None,
            host=os.getenv("DEVPUSH_HOST", "0.0.0.0"),
            port=int(os.getenv("DEVPUSH_PORT", "8080")),
            proxy_timeout=float(os.getenv("DEVPUSH_PROXY_TIMEOUT", "60")),
            upload_workers=int(
                os.getenv("DEVPUSH_UPLOAD_WORKERS", str(DEFAULT_UPLOAD_WORKERS))
            ),
        )


class AppConfig(BaseModel):
    """The subset of the application's app.yaml the server acts on."""

    runtime: str = ""
    vm: bool | str | None = None
    env_variables: dict[str, str] = Field(default_factory=dict)
    entrypoint: str | None = None

    @field_validator("env_variables", mode="before")
    @classmethod
    def _stringify_env(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            # YAML turns `PORT: 80` and `DEBUG: true` into int/bool.
            return {
                str(k): ("true" if v is True else "false" if v is False else str(v))
                for k, v in value.items()
            }
        return value


def parse_app_config(text: str) -> AppConfig:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse yaml config: {e}") from e
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a YAML mapping.")
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}") from e
