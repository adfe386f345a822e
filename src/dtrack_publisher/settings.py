from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "DTRACK_"


class PublisherSettings(BaseSettings):
    """Per-run configuration. Built once, passed to every component, never mutated.

    Values come from keyword arguments first, then ``DTRACK_*`` environment
    variables. The API key is deliberately not part of this class.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, frozen=True, extra="ignore")

    url: str
    frontend_url: str | None = None
    auto_create_projects: bool = False
    connection_timeout: int = Field(default=5, gt=0)  # seconds
    read_timeout: int = Field(default=5, gt=0)  # seconds
    polling_interval: int = Field(default=10, gt=0)  # seconds
    polling_timeout: int = Field(default=5, gt=0)  # minutes
    project_resolution: Literal["lookup", "listing"] = "lookup"

    @field_validator("url", "frontend_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return v

    def polling_timeout_seconds(self) -> int:
        return self.polling_timeout * 60


class ApiCredentials(BaseSettings):
    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, frozen=True, extra="ignore")

    api_key: SecretStr


def load_api_key(key_file: Path | None = None) -> SecretStr:
    """Fetch the API key at run time, from ``key_file`` or ``DTRACK_API_KEY``."""
    if key_file is not None:
        key = key_file.read_text(encoding="utf-8").strip()
        if not key:
            raise ValueError(f"API key file {key_file} is empty")
        return SecretStr(key)
    return ApiCredentials().api_key
