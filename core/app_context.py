"""
AppContext - Dependency Injection Container.

Holds the framework configuration and the runtime state shared by the
FastAPI application (server status, event log for the health endpoint).
"""
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
import os
import logging

from dotenv import load_dotenv


@dataclass
class ConfigLoader:
    """Configuration loader from environment variables."""

    _config: Dict[str, Any] = field(default_factory=dict)

    def load(self, env_path: Optional[str] = None) -> None:
        """Load configuration from .env file."""
        if env_path:
            load_dotenv(env_path)
        else:
            # Try to find .env in project root
            project_root = Path(__file__).parent.parent
            env_file = project_root / ".env"
            if env_file.exists():
                load_dotenv(env_file)

        self._config = {
            "server": {
                "host": os.getenv("SERVER_HOST", "127.0.0.1"),
                "port": int(os.getenv("SERVER_PORT", "8000")),
                "base_url": os.getenv("BASE_URL", "")
            },
            "app": {
                "debug": os.getenv("APP_DEBUG", "false").lower() == "true",
                "log_level": os.getenv("APP_LOG_LEVEL", "INFO")
            },
            "database": {
                # Primary store: system of record for BPM forms
                "url": os.getenv("DATABASE_URL", ""),
                # Secondary store: best-effort mirror for back-office reporting
                "secondary_url": os.getenv("SECONDARY_DATABASE_URL", ""),
                "ssl_mode": os.getenv("DATABASE_SSL_MODE", "require").lower(),
                "ssl_cert_path": os.getenv("DATABASE_SSL_CERT_PATH", ""),
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot notation key."""
        keys = key.split('.')
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def is_secondary_store_configured(self) -> bool:
        """Check if a mirror database URL is set."""
        return bool(self.get("database.secondary_url"))


class AppContext:
    """
    Application Context - Central Dependency Injection Container.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)
        self._config_loader = ConfigLoader()
        self._config_loader.load()

        # Event log for the health endpoint
        self._event_log: list[str] = []
        self._max_log_entries: int = 500

        # Runtime state
        self._server_running: bool = False
        self._server_port: int = self._config_loader.get("server.port", 8000)

    @property
    def config(self) -> ConfigLoader:
        """Access the configuration loader."""
        return self._config_loader

    def log_event(self, message: str, level: str = "INFO") -> None:
        """Log an event to both logger and event log."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        formatted = f"[{timestamp}] [{level}] {message}"

        self._event_log.append(formatted)
        if len(self._event_log) > self._max_log_entries:
            self._event_log = self._event_log[-self._max_log_entries:]

        self._logger.info(message)

    def get_event_log(self) -> list[str]:
        """Get the current event log."""
        return self._event_log.copy()

    def set_server_status(self, running: bool, port: int = 8000) -> None:
        """Update server status."""
        self._server_running = running
        self._server_port = port

    def get_server_status(self) -> tuple[bool, int]:
        """Get current server status."""
        return (self._server_running, self._server_port)
