import os
import yaml
from pathlib import Path
from typing import Dict, Any
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_server_config() -> Dict[str, Any]:
    """Load server configuration from config.yml"""
    config_path = Path("/app/server/config.yml")
    if not config_path.exists():
        # Fallback to relative path for development
        config_path = Path("server/config.yml")

    if config_path.exists():
        with open(config_path, "r") as f:
            return yaml.safe_load(f) or {}
    return {}


# Load server config from YAML
server_config = load_server_config()

_sessions_config = server_config.get("sessions", {})
_templates_config = server_config.get("templates", {})


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Document store settings
    MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "skirmish")

    # Session settings from config.yml with fallbacks
    SESSION_IDLE_TIMEOUT: float = float(
        os.getenv(
            "SESSION_IDLE_TIMEOUT", str(_sessions_config.get("idle_timeout", 1800.0))
        )
    )
    SESSION_SWEEP_INTERVAL: float = float(
        os.getenv(
            "SESSION_SWEEP_INTERVAL", str(_sessions_config.get("sweep_interval", 60.0))
        )
    )

    # Character template settings
    REFERENCE_TEMPLATE_PATH: str = os.getenv(
        "REFERENCE_TEMPLATE_PATH",
        _templates_config.get("reference_path", "server/data/character_template.yml"),
    )
    # Debug flag: push the reference template over the stored one on every session load
    UPDATE_TEMPLATE: bool = os.getenv(
        "UPDATE_TEMPLATE", str(_templates_config.get("update_on_load", False))
    ).lower() in ("true", "1", "yes")
    SEED_REFERENCE_TEMPLATE: bool = os.getenv(
        "SEED_REFERENCE_TEMPLATE", str(_templates_config.get("seed_if_missing", True))
    ).lower() in ("true", "1", "yes")

    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    @model_validator(mode="after")
    def validate_template_migration(self) -> "Settings":
        """Ensure the template migration debug flag is only used in development."""
        if self.ENVIRONMENT != "development" and self.UPDATE_TEMPLATE:
            raise ValueError(
                "UPDATE_TEMPLATE overwrites the stored character template on every "
                "session load and may only be enabled when ENVIRONMENT=development."
            )
        return self


settings = Settings()
