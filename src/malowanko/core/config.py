"""Configuration management for the Malowanko coloring page generator.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the MALOWANKO_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (MALOWANKO_* prefix)
2. .env file in the project root
3. Default values defined in MalowankoConfig

Example .env file:
    MALOWANKO_OPENROUTER_API_KEY=sk-or-...
    MALOWANKO_IMAGE_MODEL=bytedance-seed/seedream-4.5
    MALOWANKO_DAILY_GENERATION_LIMIT=100
    MALOWANKO_DATA_DIR=data

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from malowanko.core.config import config

    print(config.database_path)
    print(config.daily_generation_limit)

Timeouts
--------
Text operations (moderation, tagging) and image generation run against the
same OpenRouter endpoint but have very different latency profiles:
- text_timeout_seconds: 15 seconds, moderation and tags are cheap
- image_timeout_seconds: 90 seconds, image generation is slow
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MalowankoConfig(BaseSettings):
    """Main configuration for the Malowanko coloring page generator.

    Values are loaded from environment variables with the MALOWANKO_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    OpenRouter Settings:
        openrouter_api_key : str | None
            API key for OpenRouter. Without it every model call fails.
        openrouter_base_url : str
            Base URL of the OpenAI-compatible OpenRouter API
        text_model : str
            Model used for moderation and tag generation
        image_model : str
            Model used for coloring page generation
        image_only_models : list[str]
            Models that only support the ``image`` output modality
        text_timeout_seconds : float
            Timeout for moderation and tagging calls
        image_timeout_seconds : float
            Timeout for a single image generation call

    Generation Settings:
        daily_generation_limit : int
            Number of colorings a user may generate per UTC day

    Paths:
        data_dir : Path
            Directory holding the SQLite database
        database_path : Path | None
            SQLite database file (defaults to ``data_dir / "malowanko.db"``)

    Server Settings:
        app_url : str
            Public URL sent to OpenRouter as the HTTP referer
        app_title : str
            Application title sent to OpenRouter
        server_host : str
            uvicorn bind address
        server_port : int
            uvicorn port
        session_ttl_hours : int
            Lifetime of a sign-in session
        image_cache_size : int
            Number of image data URLs kept in the in-process cache

    Examples
    --------
    Create a custom configuration:

        >>> custom_config = MalowankoConfig(
        ...     data_dir="/tmp/malowanko",
        ...     daily_generation_limit=10,
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MALOWANKO_",
        case_sensitive=False,
    )

    # OpenRouter settings
    openrouter_api_key: str | None = Field(
        default=None,
        description="OpenRouter API key",
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL of the OpenRouter API",
    )
    text_model: str = Field(
        default="openai/gpt-4o-mini",
        description="Cheap text model for moderation and tags",
    )
    image_model: str = Field(
        default="bytedance-seed/seedream-4.5",
        description="Image generation model",
    )
    image_only_models: list[str] = Field(
        default_factory=lambda: ["bytedance-seed/seedream-4.5"],
        description="Models whose only output modality is 'image'",
    )
    text_timeout_seconds: float = Field(default=15.0, gt=0)
    image_timeout_seconds: float = Field(default=90.0, gt=0)

    # Generation settings
    daily_generation_limit: int = Field(
        default=100,
        description="Daily generation limit shared by all users",
        ge=1,
    )

    # Paths
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for the SQLite database",
    )
    database_path: Path | None = Field(
        default=None,
        description="SQLite database file (defaults to data_dir/malowanko.db)",
    )

    # Server settings
    app_url: str = Field(default="http://localhost:8000")
    app_title: str = Field(default="Malowanko")
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=8000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    session_ttl_hours: int = Field(default=24 * 7, ge=1)
    image_cache_size: int = Field(default=256, ge=0)

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        if self.database_path is None:
            self.database_path = self.data_dir / "malowanko.db"

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
# Loads values from environment variables (MALOWANKO_* prefix) and .env file.
config = MalowankoConfig()
