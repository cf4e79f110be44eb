from __future__ import annotations

import os
import tomllib
from datetime import date, datetime, time
from pathlib import Path
from typing import Literal, Mapping, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lsfront.exceptions import ConfigError

DEFAULT_CONFIG_NAME = "lsfront.toml"
ENV_PREFIX = "LSFRONT_"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]
LogLevel: TypeAlias = Literal[
    "TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"
]


class ServerSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = "lsfront"
    version: str = "0.1.0"
    engine: str = "lsfront.engine:Engine"
    watchdog_interval: float = Field(default=2.0, gt=0)
    flush_timeout: float = Field(default=1.0, gt=0)
    log_level: LogLevel = "INFO"
    transport: Literal["stdio", "tcp"] = "stdio"
    host: str = "127.0.0.1"
    port: int = Field(default=2087, ge=0, le=65535)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def server_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("server", {})
    return section if isinstance(section, dict) else {}


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    source = os.environ if environ is None else environ
    overrides: dict[str, str] = {}
    for field_name in ServerSettings.model_fields:
        value = source.get(f"{ENV_PREFIX}{field_name.upper()}", "").strip()
        if value:
            overrides[field_name] = value
    return overrides


def merge_payload(
    base: Mapping[str, object], overrides: Mapping[str, object]
) -> dict[str, object]:
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def load_settings(
    *,
    root: Path | None = None,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> ServerSettings:
    payload: dict[str, object] = dict(server_defaults(root=root, config_path=config_path))
    payload = merge_payload(payload, env_overrides(environ))
    payload = merge_payload(payload, overrides or {})
    try:
        return ServerSettings.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"invalid server settings: {exc}") from exc
