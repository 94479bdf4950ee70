"""
Configuration and settings for the offer generator backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

A4_ASPECT_RATIO = 1.414


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Document database: Firestore wins over SQL when both are set.
    firestore_project_id: Optional[str] = Field(default=None)
    database_url: Optional[str] = Field(default=None)

    # Identity
    auth_backend: Optional[Literal["firebase", "static"]] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)

    # S3-compatible storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    max_upload_bytes: int = Field(default=5 * 1024 * 1024)

    # Offer drafts (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_draft_prefix: str = Field(default="greenskill:drafts")
    draft_ttl_seconds: int = Field(default=3600, ge=60)

    # Print layout
    canvas_width: float = Field(default=896.0, gt=0)
    signature_city: str = Field(default="Yogyakarta")
    signature_organisation: str = Field(default="GreenSkill ID")
    signatory_name: str = Field(
        default="Ir. Saprian, S.T., M.Sc., M.T., IPM., ASEAN.Eng."
    )
    signatory_title: str = Field(default="Direktur")

    @property
    def canvas_height(self) -> float:
        return round(self.canvas_width * A4_ASPECT_RATIO, 2)

    @property
    def resolved_auth_backend(self) -> str:
        if self.auth_backend:
            return self.auth_backend
        if self.use_in_memory_backends or not (
            self.firestore_project_id or self.firebase_credentials_path
        ):
            return "static"
        return "firebase"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
