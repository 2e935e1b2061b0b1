"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """TIPS Compass server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: there is no auth layer in front of patient data.
    compass_host: str = "127.0.0.1"
    compass_port: int = 8001
    compass_log_level: str = "info"
    # Binding to a non-loopback host is refused unless this is set true.
    compass_allow_insecure_bind: bool = False

    # Storage
    db_path: str = "~/.tipscompass/compass.db"

    # Encryption (Fernet key; empty disables persistence)
    encryption_key: str = ""
    # Comma-separated retired keys, still accepted for reading during rotation
    encryption_previous_keys: str = ""

    @property
    def previous_encryption_keys(self) -> list[str]:
        return [k.strip() for k in self.encryption_previous_keys.split(",") if k.strip()]


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
