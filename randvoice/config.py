"""Server configuration: pydantic models, JSON file merge, environment overrides."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from randvoice.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 10000

_DEFAULT_ALLOWED_ORIGINS = [
    "https://ww-five-rust.vercel.app",
    "https://anonymoluscall-1.onrender.com",
    "http://localhost:3000",
]


class MatchmakingConfig(BaseModel):
    """Settings for the pairing engine."""

    grace_delay_seconds: float = Field(default=2.0, ge=0)


class LivenessConfig(BaseModel):
    """Settings for the inactivity reaper and the stats/stale sweep."""

    inactivity_timeout_seconds: float = Field(default=300.0, gt=0)
    reaper_interval_seconds: float = Field(default=60.0, gt=0)
    stats_interval_seconds: float = Field(default=30.0, gt=0)


class TransportConfig(BaseModel):
    """Settings for the aiohttp listener and its WebSocket endpoint."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    path: str = "/socket"
    allowed_origins: list[str] = Field(default_factory=lambda: list(_DEFAULT_ALLOWED_ORIGINS))
    ping_interval_seconds: float = Field(default=25.0, gt=0)
    max_message_bytes: int = 65536

    @field_validator("path")
    @classmethod
    def _path_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            msg = "path must start with '/'"
            raise ValueError(msg)
        return value

    def origin_allowed(self, origin: str | None) -> bool:
        """Non-browser clients send no Origin and are always accepted."""
        if not origin:
            return True
        return "*" in self.allowed_origins or origin in self.allowed_origins


class ServerConfig(BaseModel):
    """Top-level configuration."""

    log_level: str = "INFO"
    log_dir: str | None = None
    shutdown_timeout_seconds: float = Field(default=10.0, gt=0)
    shutdown_message: str = "Server is shutting down. Please reconnect later."
    transport: TransportConfig = Field(default_factory=TransportConfig)
    matchmaking: MatchmakingConfig = Field(default_factory=MatchmakingConfig)
    liveness: LivenessConfig = Field(default_factory=LivenessConfig)


def deep_merge_config(
    user: dict[str, object],
    defaults: dict[str, object],
) -> tuple[dict[str, object], bool]:
    """Recursively merge *defaults* into *user*, preserving user values.

    Returns ``(merged_dict, changed)`` where *changed* is True when new keys were added.
    """
    result: dict[str, object] = dict(user)
    changed = False
    for key, default_val in defaults.items():
        if key not in result:
            result[key] = default_val
            changed = True
        elif isinstance(default_val, dict) and isinstance(result[key], dict):
            sub_merged, sub_changed = deep_merge_config(
                result[key],  # type: ignore[arg-type]
                default_val,
            )
            result[key] = sub_merged
            changed = changed or sub_changed
    return result, changed


def _env_overrides(data: dict[str, object], environ: Mapping[str, str]) -> None:
    """Apply ``PORT``, ``HOST``, ``ALLOWED_ORIGINS`` and ``LOG_LEVEL`` in place."""
    transport = data.setdefault("transport", {})
    if not isinstance(transport, dict):
        msg = "'transport' must be a JSON object"
        raise ConfigError(msg)

    port = environ.get("PORT", "").strip()
    if port:
        try:
            transport["port"] = int(port)
        except ValueError as exc:
            msg = f"PORT must be an integer, got {port!r}"
            raise ConfigError(msg) from exc

    host = environ.get("HOST", "").strip()
    if host:
        transport["host"] = host

    origins = environ.get("ALLOWED_ORIGINS", "").strip()
    if origins:
        transport["allowed_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

    level = environ.get("LOG_LEVEL", "").strip()
    if level:
        data["log_level"] = level.upper()


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServerConfig:
    """Build the server config.

    Resolution order (later wins):
    1. Pydantic defaults
    2. JSON file at *config_path* (or ``RANDVOICE_CONFIG``), deep-merged over defaults
    3. Environment variables
    """
    env = os.environ if environ is None else environ
    if config_path is None and env.get("RANDVOICE_CONFIG"):
        config_path = Path(env["RANDVOICE_CONFIG"]).expanduser()

    defaults = ServerConfig().model_dump(mode="json")
    data: dict[str, object] = defaults
    if config_path is not None:
        try:
            user_data = json.loads(config_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            msg = f"Failed to read config at {config_path}: {exc}"
            raise ConfigError(msg) from exc
        if not isinstance(user_data, dict):
            msg = f"Config at {config_path} must be a JSON object"
            raise ConfigError(msg)
        data, changed = deep_merge_config(user_data, defaults)
        if changed:
            logger.debug("Config file %s filled with default values", config_path)

    _env_overrides(data, env)

    try:
        return ServerConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
