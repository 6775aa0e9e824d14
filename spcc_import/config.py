"""
Configuration for the SPCC plan bulk import pipeline.

Values come from the environment (prefix ``SPCC_IMPORT_``) or a ``.env`` file.
"""

from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    # Logging
    log_level: str = "INFO"
    dev_mode: bool = False
    log_file_path: Optional[Path] = None

    # File selection
    max_file_count: int = Field(default=50, ge=1)
    max_file_size_mb: int = Field(default=10, ge=1)
    accepted_media_types: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["application/pdf"])

    # Extraction
    extraction_concurrency: int = Field(default=3, ge=1)
    extract_page_limit: Optional[int] = Field(default=1, ge=1)

    # Matching
    match_min_overlap: float = Field(default=0.6, gt=0.0, le=1.0)
    match_min_tokens: int = Field(default=2, ge=1)
    excluded_entity_statuses: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["sold", "retired"])
    stamp_date_max_distance: int = Field(default=300, ge=0)

    # Storage and stores
    storage_dir: Path = Path("storage")
    storage_bucket: str = "spcc-plans"
    storage_base_url: Optional[str] = None
    artifact_type: str = "spcc-plan"
    entity_store_path: Path = Path("facilities.json")
    tenant_config_path: Optional[Path] = None
    tenant_id: str = "default"

    model_config = SettingsConfigDict(
        env_prefix="SPCC_IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("accepted_media_types", "excluded_entity_statuses", mode="before")
    @classmethod
    def split_comma_separated(cls, v):
        """Allow comma-separated strings from the environment."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def get_log_file_path(self) -> Optional[Path]:
        """Return the log file path, creating its directory if needed."""
        if self.log_file_path is None:
            return None
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        return self.log_file_path


# Singleton instance
_settings = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
