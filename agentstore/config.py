"""Configuration settings for agentstore."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

PACKAGED_MIGRATIONS = Path(__file__).parent / "storage" / "migrations"


class Settings(BaseSettings):
    """Settings loaded from AGENTSTORE_* environment variables."""

    # Storage
    data_dir: Path = Path("./data")
    database_path: Path | None = None  # Defaults to <data_dir>/agentstore.db
    migrations_path: Path | None = None  # Defaults to the packaged migrations

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None  # Defaults to <data_dir>/logs

    # Lexical similarity defaults for MemoryRepository.find_similar
    similarity_threshold: float = 0.5
    similarity_limit: int = 10

    class Config:
        env_prefix = "AGENTSTORE_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def resolved_database_path(self) -> Path:
        return self.database_path or self.data_dir / "agentstore.db"

    def resolved_migrations_path(self) -> Path:
        return self.migrations_path or PACKAGED_MIGRATIONS

    def resolved_log_dir(self) -> Path:
        return self.log_dir or self.data_dir / "logs"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
