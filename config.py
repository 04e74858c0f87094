"""
Configuration management for Vibe Check Service
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Vibe Check Service"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(default="sqlite:///./vibecheck.db")
    # Elevated-privilege credential used only for aggregate counts
    admin_database_url: Optional[str] = Field(default=None)

    # Identity provider
    identity_header: str = Field(default="X-User-Id")

    # Generative model
    generation_provider: str = Field(default="gemini", description="gemini or groq")
    generation_model: str = Field(default="gemini-2.0-flash")
    google_gemini_api_key: Optional[str] = Field(default=None)
    groq_api_key: Optional[str] = Field(default=None)
    llm_temperature: float = Field(default=0.7)

    # Quiz Generation
    allowed_question_counts: List[int] = [5, 10, 15, 20]

    # Circuit Breaker
    enable_circuit_breaker: bool = Field(default=True)
    cb_failure_threshold: int = Field(default=5)
    cb_timeout: float = Field(default=60.0)

    # Logging
    log_dir: str = Field(default="./logs")
    log_level: str = Field(default="INFO")

    # Performance
    enable_performance_monitoring: bool = Field(default=True)


@lru_cache()
def get_settings() -> Settings:
    """Get application settings"""
    return Settings()


def print_settings():
    """Print current settings (for debugging)"""
    settings = get_settings()
    print("=" * 50)
    print(f"{settings.app_name} v{settings.app_version}")
    print("=" * 50)
    print(f"Host: {settings.host}:{settings.port}")
    print(f"Debug Mode: {settings.debug}")
    print(f"Database: {settings.database_url}")
    print(f"Admin Database: {'separate' if settings.admin_database_url else 'shared'}")
    print(f"Generation Provider: {settings.generation_provider} ({settings.generation_model})")
    print(f"Circuit Breaker Enabled: {settings.enable_circuit_breaker}")
    print(f"Log Directory: {settings.log_dir}")
    print("=" * 50)
