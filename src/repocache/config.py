from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from repocache.remote.github_fetcher import DEFAULT_QUERY, GITHUB_API_BASE, MAX_PER_PAGE


class GitHubConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str = GITHUB_API_BASE
    default_query: str = DEFAULT_QUERY
    per_page: int = Field(default=MAX_PER_PAGE, ge=1, le=MAX_PER_PAGE)
    timeout_seconds: float = Field(default=10.0, gt=0.0)
    token_env: str = "GITHUB_TOKEN"

    @field_validator("base_url", "default_query", "token_env")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("github settings must not be empty")
        return normalized


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: str = "data/storage/repocache.db"

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("storage.db_path must not be empty")
        return normalized


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level: {value}")
        return normalized


def load_config(path: str | Path) -> AppConfig:
    raw = Path(path).read_text(encoding="utf-8")
    payload = _parse_yaml_or_json(raw)
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _parse_yaml_or_json(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = _parse_yaml(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed


def _parse_yaml(raw: str) -> dict[str, Any]:
    try:
        import yaml  # type: ignore[import-untyped]
    except ModuleNotFoundError as exc:
        raise ValueError(
            "YAML parsing requires PyYAML. Use JSON-compatible YAML or install pyyaml."
        ) from exc

    parsed = yaml.safe_load(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed
