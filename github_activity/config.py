"""Runtime configuration, loaded once at process start and immutable afterwards."""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_COMMIT_BATCH_SIZE = 100
DEFAULT_LOW_RATE_LIMIT_RATIO = 0.02
DEFAULT_REQUEST_TIMEOUT = 60

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    github_app_id: Optional[str] = None
    github_app_private_key: Optional[str] = Field(None, repr=False)
    github_app_slug: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    oauth_commit_batch_size: int = Field(DEFAULT_COMMIT_BATCH_SIZE, ge=1)
    app_commit_batch_size: int = Field(DEFAULT_COMMIT_BATCH_SIZE, ge=1)
    author_fallback_enabled: bool = True
    # remaining < limit * ratio is reported as low headroom (50 of 5000 at the default)
    low_rate_limit_ratio: float = Field(DEFAULT_LOW_RATE_LIMIT_RATIO, ge=0, le=1)
    request_timeout: float = Field(DEFAULT_REQUEST_TIMEOUT, gt=0)

    @property
    def github_app_configured(self) -> bool:
        return bool(self.github_app_id and self.github_app_private_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Builds settings from environment variables.

        When `environ` is omitted, variables from a `.env` file are loaded into the
        process environment first.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        def _get(name: str) -> Optional[str]:
            value = environ.get(name)
            return value if value else None

        values = {
            "github_app_id": _get("GITHUB_APP_ID"),
            "github_app_private_key": _get("GITHUB_APP_PRIVATE_KEY_PKCS8") or _get("GITHUB_APP_PRIVATE_KEY"),
            "github_app_slug": _get("GITHUB_APP_NAME"),
            "api_url": _get("GITHUB_API_URL") or DEFAULT_API_URL,
        }
        optional = {
            "oauth_commit_batch_size": _get("GITHUB_OAUTH_COMMIT_BATCH_SIZE"),
            "app_commit_batch_size": _get("GITHUB_APP_COMMIT_BATCH_SIZE"),
            "low_rate_limit_ratio": _get("GITHUB_LOW_RATE_LIMIT_RATIO"),
            "request_timeout": _get("GITHUB_REQUEST_TIMEOUT"),
        }
        values.update({k: v for k, v in optional.items() if v is not None})

        fallback = _get("GITHUB_AUTHOR_FALLBACK")
        if fallback is not None:
            values["author_fallback_enabled"] = fallback.strip().lower() in _TRUE_VALUES

        return cls(**values)
