"""Configuration settings for the Agent Notifier server."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.bindings import HttpBindings


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with AGENT_NOTIFIER_ prefix.

    Examples:
        >>> settings = Settings()
        >>> settings.port
        60766
    """

    model_config = SettingsConfigDict(env_prefix="AGENT_NOTIFIER_")

    # Initial bindings, used until the settings store holds saved ones
    bind_address: str = "127.0.0.1"
    port: int = 60766

    # Storage
    settings_path: str = "~/.agent-notifier/settings.json"

    # Notification sink
    sink: Literal["desktop", "log"] = "desktop"
    disable_sound: bool = False
    sink_timeout_seconds: float = 5.0

    # Permission registry
    resolved_retention_seconds: float = 300.0

    # Listener lifecycle
    bind_timeout_seconds: float = 5.0
    shutdown_grace_seconds: float = 5.0
    allow_remote_clients: bool = False
    mcp_path: str = "/mcp"

    log_level: str = "INFO"

    def get_settings_path(self) -> Path:
        """Get expanded settings store path.

        Returns:
            Absolute path to settings JSON file
        """
        return Path(self.settings_path).expanduser()

    def default_bindings(self) -> HttpBindings:
        """Bindings to use when nothing has been saved yet."""
        return HttpBindings(bind_address=self.bind_address, port=self.port)
