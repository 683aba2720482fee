"""Application settings and configuration management."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_path: str = Field(
        default="~/.familytree/familytree.db",
        description="Path to the SQLite database file",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/familytree.log", description="Main log file")

    # API Server
    api_host: str = Field(default="127.0.0.1", description="Host the API binds to")
    api_port: int = Field(default=8080, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # GEDCOM
    gedcom_max_upload_bytes: int = Field(
        default=100_000_000,
        ge=1,
        description="Largest accepted GEDCOM upload (bytes)",
    )
    gedcom_preview_max_individuals: int = Field(default=5000, ge=1)
    gedcom_preview_max_family_groups: int = Field(default=2000, ge=1)
    gedcom_preview_max_warnings: int = Field(default=50, ge=0)

    # Duplicate Detection
    duplicate_default_min_confidence: int = Field(default=50, ge=0, le=100)
    duplicate_max_page_size: int = Field(default=100, ge=1, le=1000)
    trigram_similarity_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    # Relationship Analysis
    relationship_max_depth: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Maximum BFS depth when searching for a relationship path",
    )
    prediction_max_candidates_per_rule: int = Field(default=200, ge=1)
    prediction_high_confidence: float = Field(default=85.0, ge=0.0, le=100.0)

    @field_validator("database_path")
    @classmethod
    def expand_user_path(cls, v: str) -> str:
        """Expand user home directory in paths."""
        return str(Path(v).expanduser())


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
