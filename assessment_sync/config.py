"""Configuration utilities for the assessment sync engine.

This module loads engine configuration with the following rules:
- Primary source: `assessment_sync.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
ROOT_SYNC_CONFIG = Path("assessment_sync.json")
DEFAULT_RANKING = ["Self", "Boss", "Department", "Company"]
logger = logging.getLogger(__name__)


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        # Recoverable: log and ignore unreadable override
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


class ApiConfig(BaseModel):
    base_url: str
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    flush_retries: int = Field(default=2, ge=0)
    retry_backoff_seconds: float = Field(default=0.5, ge=0)

    @field_validator("base_url")
    @classmethod
    def base_url_must_be_http(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("api.base_url must be a non-empty string")
        if not v.startswith(("http://", "https://")):
            raise ValueError("api.base_url must start with http:// or https://")
        return v.rstrip("/")


class PaginationConfig(BaseModel):
    page_size: int = Field(default=5, gt=0)
    auto_advance_delay_seconds: float = Field(default=0.3, ge=0)


class StorageConfig(BaseModel):
    url: str = "memory://"
    key_prefix: str = "assessment"

    @field_validator("key_prefix")
    @classmethod
    def prefix_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("storage.key_prefix must be a non-empty string")
        return v.strip()


class SyncConfig(BaseModel):
    api: ApiConfig
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    questionnaire_ranking: List[str] = Field(default_factory=lambda: list(DEFAULT_RANKING))


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def load_config(path: Optional[Path] = None) -> SyncConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables
    2) Text files in `config/` (optional)
    3) assessment_sync.json at project root (primary base)
    4) Safe defaults for development
    """

    base = _read_json_file(path or ROOT_SYNC_CONFIG)

    def _base(dotted: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in dotted.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        if isinstance(cur, list):
            return ",".join(str(item) for item in cur)
        return str(cur) if cur is not None else default

    # API
    base_url = _env("ASSESSMENT_API_BASE_URL") or _read_config_file("api.base_url") or _base("api.base_url") or "http://localhost:8000/api/v1"
    timeout_text = _env("ASSESSMENT_REQUEST_TIMEOUT") or _read_config_file("api.request_timeout") or _base("api.request_timeout_seconds", "10.0")
    retries_text = _env("ASSESSMENT_FLUSH_RETRIES") or _read_config_file("api.flush_retries") or _base("api.flush_retries", "2")
    backoff_text = _env("ASSESSMENT_RETRY_BACKOFF") or _read_config_file("api.retry_backoff") or _base("api.retry_backoff_seconds", "0.5")

    # Pagination
    page_size_text = _env("ASSESSMENT_PAGE_SIZE") or _read_config_file("pagination.page_size") or _base("pagination.page_size", "5")
    delay_text = _env("ASSESSMENT_AUTO_ADVANCE_DELAY") or _read_config_file("pagination.auto_advance_delay") or _base("pagination.auto_advance_delay_seconds", "0.3")

    # Storage
    storage_url = _env("ASSESSMENT_STORAGE_URL") or _read_config_file("storage.url") or _base("storage.url", "memory://")
    key_prefix = _env("ASSESSMENT_KEY_PREFIX") or _read_config_file("storage.key_prefix") or _base("storage.key_prefix", "assessment")

    ranking_text = _env("ASSESSMENT_RANKING") or _read_config_file("questionnaire.ranking") or _base("questionnaire_ranking")
    ranking = [token.strip() for token in ranking_text.split(",") if token.strip()] if ranking_text else list(DEFAULT_RANKING)

    try:
        cfg = SyncConfig(
            api=ApiConfig(
                base_url=base_url,
                request_timeout_seconds=float(str(timeout_text).strip()),
                flush_retries=int(str(retries_text).strip()),
                retry_backoff_seconds=float(str(backoff_text).strip()),
            ),
            pagination=PaginationConfig(
                page_size=int(str(page_size_text).strip()),
                auto_advance_delay_seconds=float(str(delay_text).strip()),
            ),
            storage=StorageConfig(url=str(storage_url).strip(), key_prefix=str(key_prefix)),
            questionnaire_ranking=ranking,
        )
        return cfg
    except PydanticValidationError as e:
        logger.error("Invalid sync configuration: %s", e)
        raise


__all__ = [
    "ApiConfig",
    "PaginationConfig",
    "StorageConfig",
    "SyncConfig",
    "load_config",
]
