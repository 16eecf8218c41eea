"""
Configuration management for openacl.

Configuration is loaded from:
1. Environment variables (highest priority), e.g. OPENACL_PIPELINE__THREAD_COUNT=8
2. config.yaml file
3. Default values (lowest priority)
"""

from __future__ import annotations

import re
import socket
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from openacl.exceptions import ConfigurationError


class PipelineSettings(BaseSettings):
    """Permission pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENACL_PIPELINE_", extra="ignore")

    thread_count: int = Field(default=4, ge=1)
    batch_timeout: float | None = Field(default=None, gt=0)  # seconds, per dispatched batch
    expand_group_members: bool = True
    recurse_levels: int = Field(default=999, ge=0)
    ignore_domains: list[str] = Field(default_factory=list)
    group_naming_convention: str | None = None
    local_server_name: str = Field(default_factory=socket.gethostname)

    @field_validator("group_naming_convention")
    @classmethod
    def validate_naming_convention(cls, v: str | None) -> str | None:
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"group_naming_convention is not a valid regex: {e}") from e
        return v or None

    @field_validator("ignore_domains", mode="before")
    @classmethod
    def split_domains(cls, v: object) -> object:
        # config.yaml may give "CONTOSO1, CONTOSO2"; environment variables take JSON lists
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENACL_LOGGING_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: str | None = None
    json_format: bool = False


class FeedSettings(BaseSettings):
    """Issue feed delivery to a monitoring endpoint."""

    model_config = SettingsConfigDict(env_prefix="OPENACL_FEED_", extra="ignore")

    url: str | None = None
    token: str | None = None
    timeout: float = 30.0
    verify_ssl: bool = True

    @property
    def is_enabled(self) -> bool:
        return self.url is not None and self.url.strip() != ""


class Settings(BaseSettings):
    """Main settings class that combines all configuration sections."""

    model_config = SettingsConfigDict(
        env_prefix="OPENACL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; environment variables override them
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def load_yaml_config(path: Path | None = None) -> dict:
    """Load configuration from YAML file."""
    if path is None:
        # Look for config.yaml in standard locations
        candidates = [
            Path("config.yaml"),
            Path("config/config.yaml"),
            Path.home() / ".openacl" / "config.yaml",
            Path("/etc/openacl/config.yaml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path and path.exists():
        try:
            with open(path) as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML: {e}", context=f"loading {path}") from e

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings(**load_yaml_config())


def reload_settings() -> Settings:
    """Force reload of settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
