"""
Configuration management for the travl booking service.
Covers the HTTP server, Stripe credentials and the booking client.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server Configuration
    host: str = "127.0.0.1"
    port: int = 3001
    debug: bool = False
    log_level: str = "INFO"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Booking client
    api_base_url: str = "http://localhost:3001"
    fallback_api_url: Optional[str] = None
    cache_ttl_seconds: float = 300.0
    currency: str = "usd"

    # User profiles (JSON file, in-memory when unset)
    profiles_path: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
