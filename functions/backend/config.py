"""
Configuration and settings for the capsule backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import ENHANCE_FUNCTION_ID, PUBLIC_CAPSULES_LIMIT, SESSION_COOKIE


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Firebase project (Firestore, Auth). Unset means in-memory backends.
    firebase_project_id: Optional[str] = Field(
        default=None, env="FIREBASE_PROJECT_ID"
    )
    firebase_web_api_key: Optional[str] = Field(
        default=None, env="FIREBASE_WEB_API_KEY"
    )

    # LLM / Gemini, used when the enhancement function runs in-process
    gemini_api_key: Optional[str] = Field(default=None, env="GEMINI_API_KEY")

    # Enhancement function
    enhance_function_id: str = Field(
        default=ENHANCE_FUNCTION_ID, env="ENHANCE_FUNCTION_ID"
    )
    enhance_function_url: Optional[str] = Field(
        default=None, env="ENHANCE_FUNCTION_URL"
    )
    enhance_function_timeout_seconds: float = Field(
        default=70.0, env="ENHANCE_FUNCTION_TIMEOUT_SECONDS"
    )

    # Capsules
    public_capsules_limit: int = Field(
        default=PUBLIC_CAPSULES_LIMIT, env="PUBLIC_CAPSULES_LIMIT"
    )

    # Sessions
    session_cookie_name: str = Field(default=SESSION_COOKIE, env="SESSION_COOKIE_NAME")
    session_max_age_seconds: int = Field(
        default=14 * 24 * 3600, env="SESSION_MAX_AGE_SECONDS"
    )

    # S3-compatible media storage
    s3_endpoint: Optional[str] = Field(default=None, env="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, env="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, env="S3_BUCKET")
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
