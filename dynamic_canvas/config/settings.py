"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional, List, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
from pathlib import Path


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="Dynamic Canvas", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3001, description="Server port")
    workers: int = Field(default=1, description="Number of worker processes")

    # Database Configuration
    database_url: Optional[str] = Field(default=None, description="PostgreSQL connection URL")
    database_min_pool: int = Field(default=2, description="Minimum pooled connections")
    database_max_pool: int = Field(default=20, description="Maximum pooled connections")
    database_command_timeout: int = Field(default=30, description="Statement timeout in seconds")

    # Storage Configuration
    storage_path: Path = Field(default=Path("./storage"), description="Storage directory path")
    uploads_path: Path = Field(default=Path("./uploads"), description="Uploaded images directory")
    fonts_path: Path = Field(default=Path("./fonts"), description="Downloaded fonts directory")
    public_base_url: Optional[str] = Field(
        default=None, description="Public URL substituted for the BASE_URL placeholder"
    )

    # Rendering Configuration
    render_cache_max_age: int = Field(
        default=3600, description="Cache-Control max-age for rendered images"
    )
    image_fetch_timeout: float = Field(default=10.0, description="Image fetch timeout in seconds")
    image_max_bytes: int = Field(
        default=20 * 1024 * 1024, description="Maximum accepted image source size"
    )

    # Font Configuration
    font_fetch_timeout: float = Field(default=30.0, description="Font download timeout in seconds")
    google_fonts_css_url: str = Field(
        default="https://fonts.googleapis.com/css2", description="Google Fonts CSS2 endpoint"
    )
    font_user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        description="User agent sent to the fonts API (selects TTF responses)",
    )

    # Scheduler Configuration
    scheduler_enabled: bool = Field(default=True, description="Run the group activation poller")
    scheduler_interval_seconds: int = Field(
        default=60, description="Seconds between schedule checks"
    )

    # API Documentation Configuration
    enable_docs: bool = Field(default=True, description="Enable FastAPI docs endpoint")

    # Security Configuration
    allowed_hosts: List[str] = Field(default=["*"], description="Allowed origins for CORS")

    # Monitoring Configuration
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse allowed hosts from string or list."""
        if isinstance(v, str):
            # Handle JSON-like string: ["*"] or ["host1", "host2"]
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            # Handle comma-separated string: "*" or "host1,host2"
            return [host.strip() for host in v.split(",") if host.strip()]
        return v

    @field_validator("storage_path", "uploads_path", "fonts_path")
    @classmethod
    def create_directories(cls, v: Path) -> Path:
        """Ensure directories exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, env_prefix="CANVAS_"
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
