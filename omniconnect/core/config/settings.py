"""
Settings for the OmniConnect messaging core.

Environment variable configuration for the provider client, realtime hub and
webhook pipeline.
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Load .env file for local development - look in current working directory
load_dotenv(".env")


def _get_version_from_pyproject() -> str:
    """
    Read version from pyproject.toml file.

    Returns:
        Version string from pyproject.toml, or fallback version
    """
    current_path = Path(__file__)
    for parent in [current_path.parent, *current_path.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            try:
                with open(pyproject_path, "rb") as f:
                    version = tomllib.load(f).get("project", {}).get("version")
                    if version:
                        return version
            except (OSError, tomllib.TOMLDecodeError):
                continue

    return "0.1.0"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings with environment-based configuration."""

    def __init__(self):
        # ================================================================
        # Version & Environment
        # ================================================================
        self.version: str = _get_version_from_pyproject()
        self.port: int = int(os.getenv("PORT", "8000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV")
        self.public_base_url: str = os.getenv(
            "PUBLIC_BASE_URL", f"http://localhost:{self.port}"
        )

        # ================================================================
        # WhatsApp provider (Z-API) Configuration
        # ================================================================
        self.zapi_base_url: str = os.getenv("ZAPI_BASE_URL", "https://api.z-api.io")
        self.provider_http_timeout_seconds: float = float(
            os.getenv("PROVIDER_HTTP_TIMEOUT_SECONDS", "10")
        )
        self.status_not_found_streak_limit: int = int(
            os.getenv("STATUS_NOT_FOUND_STREAK_LIMIT", "3")
        )

        # ================================================================
        # Realtime Hub Configuration
        # ================================================================
        self.realtime_ping_interval_seconds: float = float(
            os.getenv("REALTIME_PING_INTERVAL_SECONDS", "30")
        )
        self.realtime_reap_offset_seconds: float = float(
            os.getenv("REALTIME_REAP_OFFSET_SECONDS", "15")
        )
        self.typing_debounce_seconds: float = float(
            os.getenv("TYPING_DEBOUNCE_SECONDS", "0")
        )

        # ================================================================
        # Auto-Reply Configuration
        # ================================================================
        self.auto_reply_enabled: bool = _env_bool("AUTO_REPLY_ENABLED", False)
        self.auto_reply_confidence_threshold: float = float(
            os.getenv("AUTO_REPLY_CONFIDENCE_THRESHOLD", "0.7")
        )

        # ================================================================
        # Presence persistence (Optional Redis)
        # ================================================================
        self.presence_backend: str = os.getenv("PRESENCE_BACKEND", "memory")
        self.redis_url: str | None = os.getenv("REDIS_URL")
        self.redis_max_connections: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "64"))

        self._validate_settings()

    def _validate_settings(self):
        """Validate settings values."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        self.log_level = self.log_level.upper()

        valid_environments = ["DEV", "PROD"]
        if self.environment.upper() not in valid_environments:
            self.environment = "DEV"  # Default fallback
        self.environment = self.environment.upper()

        valid_backends = ["memory", "redis"]
        if self.presence_backend.lower() not in valid_backends:
            raise ValueError(f"PRESENCE_BACKEND must be one of {valid_backends}")
        self.presence_backend = self.presence_backend.lower()
        if self.presence_backend == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required when PRESENCE_BACKEND=redis")

        if self.provider_http_timeout_seconds <= 0:
            raise ValueError("PROVIDER_HTTP_TIMEOUT_SECONDS must be positive")
        if self.status_not_found_streak_limit < 1:
            raise ValueError("STATUS_NOT_FOUND_STREAK_LIMIT must be at least 1")
        if not 0.0 <= self.auto_reply_confidence_threshold <= 1.0:
            raise ValueError("AUTO_REPLY_CONFIDENCE_THRESHOLD must be within [0, 1]")

        self.public_base_url = self.public_base_url.rstrip("/")
        self.zapi_base_url = self.zapi_base_url.rstrip("/")

    @property
    def has_redis(self) -> bool:
        """Check if Redis is configured."""
        return self.redis_url is not None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "DEV"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "PROD"


# Global settings instance
settings = Settings()
