"""
Configuration settings for SchoolMarks.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / ".env")


def _env_bool(name: str, default: str = "False") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Settings:
    """Application settings loaded from environment."""

    # Database
    MONGODB_URL: str = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.environ.get("DATABASE_NAME", "schoolmarks")

    # Server
    PORT: int = int(os.environ.get("PORT", 8001))
    HOST: str = os.environ.get("HOST", "0.0.0.0")
    DEBUG: bool = _env_bool("DEBUG")
    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    # Settings collaborator
    SETTINGS_CACHE_TTL_SECONDS: int = int(os.environ.get("SETTINGS_CACHE_TTL_SECONDS", 300))

    # Session sweeper
    ENABLE_SESSION_SWEEP: bool = _env_bool("ENABLE_SESSION_SWEEP", "True")
    SWEEP_INTERVAL_SECONDS: int = int(os.environ.get("SWEEP_INTERVAL_SECONDS", 300))

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def validate(self):
        """Validate critical settings."""
        if not self.MONGODB_URL:
            raise ValueError("MONGODB_URI environment variable not set")
        if not self.DATABASE_NAME:
            raise ValueError("DATABASE_NAME environment variable is empty")
        if self.SETTINGS_CACHE_TTL_SECONDS < 0:
            raise ValueError("SETTINGS_CACHE_TTL_SECONDS must be >= 0")
        if self.SWEEP_INTERVAL_SECONDS <= 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must be > 0")
        return True


# Global settings instance
settings = Settings()
