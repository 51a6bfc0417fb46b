"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Bandwidth server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: there is no auth layer in front of the MCP server.
    bandwidth_host: str = "127.0.0.1"
    bandwidth_port: int = 8001
    bandwidth_log_level: str = "info"
    # Binding to a non-loopback host requires this to be set true.
    bandwidth_allow_insecure_bind: bool = False

    # Session identity (the user this process scores for)
    user_id: str = ""

    # Storage
    db_path: str = "~/.bandwidth/bandwidth.db"

    # Encryption of raw health documents
    encryption_key: str = ""

    # Reference time zone for day truncation and alert windows
    time_zone: str = "UTC"

    # Connectors
    apple_health_export_path: str = ""

    # Push notifications
    push_gateway_url: str = ""
    push_gateway_token: str = ""

    # Daily task listener
    task_poll_interval_seconds: float = 30.0


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
