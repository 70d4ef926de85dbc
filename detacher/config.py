"""Configuration for both modes, loaded from a JSON file and/or environment.

Uses pydantic-settings so every field can also be overridden via env vars
(``DETACHER_COMMON_DIR``, ``DETACHER_MILTER_SIZE``, ``DETACHER_SERVER_PORT``...).
A JSON config file has the same shape as the models below::

    {
        "common": {"dir": "/var/spool/detacher", "alg": "sha256", "key": ""},
        "milter": {"size": 1048576, "urlfmt": "http://{host}:{port}/{hash}"},
        "server": {"name": "files.example.com", "addr": "0.0.0.0", "port": 8080}
    }

Sections present in the file take precedence over the environment; missing
keys fall back to the defaults.
"""

from __future__ import annotations

import json
import socket
from pathlib import Path

from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

DEFAULT_MESSAGE = "An attachment has been replaced. Please visit:\n\n{url}\n"


class CommonConfig(BaseSettings):
    """Settings shared by the milter and the server."""

    model_config = SettingsConfigDict(env_prefix="DETACHER_COMMON_")

    dir: str = Field(
        default="/tmp",
        description="Directory where detached files are stored",
    )
    alg: str = Field(default="sha256", description="Hash algorithm used for digests")
    key: SecretStr = Field(
        default=SecretStr(""),
        description="Secret mixed into every digest; changing it orphans existing files",
    )


class MilterConfig(BaseSettings):
    """Milter mode: which parts to detach and how to describe them."""

    model_config = SettingsConfigDict(env_prefix="DETACHER_MILTER_")

    tmpdir: str = Field(
        default="/tmp",
        description="Directory for spooling the incoming message",
    )
    size: int = Field(
        default=1024 * 1024,
        ge=0,
        description="Parts with a decoded body larger than this many bytes are detached",
    )
    urlfmt: str = Field(
        default="http://{host}:{port}/{hash}",
        description="URL template; {host}, {port} and {hash} are substituted",
    )
    msgfmt: str = Field(
        default=DEFAULT_MESSAGE,
        description="Replacement text template; {url} is substituted",
    )


class ServerConfig(BaseSettings):
    """Server mode bind address and public identity."""

    model_config = SettingsConfigDict(env_prefix="DETACHER_SERVER_")

    name: str = Field(
        default_factory=socket.gethostname,
        description="DNS name of the server, used for {host} in URLs",
    )
    addr: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")


class DetacherConfig(BaseSettings):
    """Top-level configuration.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = SettingsConfigDict(env_prefix="DETACHER_")

    common: CommonConfig = Field(default_factory=CommonConfig)
    milter: MilterConfig = Field(default_factory=MilterConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(
        default=True,
        description="Use JSON log output (True for prod, False for dev)",
    )


def load_config(path: str | Path | None = None) -> DetacherConfig:
    """Build the configuration, optionally from a JSON file.

    Raises :class:`ConfigError` when the file cannot be read or parsed, or
    when a value fails validation.
    """
    if path is None:
        try:
            return DetacherConfig()
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc

    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read JSON from '{config_path}': {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Cannot parse JSON in '{config_path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Cannot parse JSON in '{config_path}': expected an object")

    try:
        return DetacherConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in '{config_path}': {exc}") from exc
