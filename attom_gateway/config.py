"""
Configuration management for the ATTOM gateway

Loads settings from:
1. config/config.yaml
2. Environment variables (.env)
3. Default values
"""

from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from attom_gateway.errors import ConfigurationError


# Load environment variables
load_dotenv()


class Config(BaseSettings):
    """Gateway configuration settings"""

    model_config = SettingsConfigDict(
        env_prefix="ATTOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # --- Upstream API ---
    api_key: str = Field(default="")
    api_base_url: str = Field(default="https://api.gateway.attomdata.com")
    api_retries: int = Field(default=2, ge=0)
    retry_base_delay_ms: int = Field(default=500, ge=0)
    request_timeout: float = 30.0

    # --- Fallback resolution ---
    fallback_max_attempts: int = Field(default=3, ge=1)
    fallback_delay_ms: int = Field(default=500, ge=0)

    # --- Cache ---
    cache_ttl_default: int = Field(default=3600, ge=0)

    # --- Per-endpoint request budget (0 disables) ---
    kind_rate_limit: int = Field(default=60, ge=0)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)

    # --- Address normalization (Google Places) ---
    google_maps_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GOOGLE_MAPS_API_KEY", "ATTOM_GOOGLE_MAPS_API_KEY"),
    )
    use_address_normalization: bool = True

    # --- HTTP API ---
    gateway_token: str = Field(default="")
    cors_origins: str = "http://localhost:3000"  # Comma-separated string
    demo_mode: bool = False

    # --- Logging ---
    log_level: str = Field(default="INFO")
    log_file: Optional[Path] = None

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def retry_base_delay(self) -> float:
        return self.retry_base_delay_ms / 1000.0

    @property
    def fallback_delay(self) -> float:
        return self.fallback_delay_ms / 1000.0

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            return cls()

        with open(yaml_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def validate_api_keys(self) -> None:
        """Validate required API keys"""
        if not self.api_key or self.api_key == "your_attom_api_key_here":
            raise ConfigurationError("ATTOM_API_KEY is required. Set it in .env file.")


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global configuration instance"""
    global _config
    if _config is None:
        _config = Config.from_yaml()
    return _config


def reload_config(yaml_path: Optional[str | Path] = None) -> Config:
    """Reload configuration from file"""
    global _config
    _config = Config.from_yaml(yaml_path) if yaml_path else Config.from_yaml()
    return _config
