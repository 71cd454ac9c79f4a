"""
Centralized configuration for the notification bridge.

Configuration sources (priority order):
1. Environment variables (NOTIFY_BRIDGE_*)
2. Default values

Environment variables:
- NOTIFY_BRIDGE_HOST: Bind address (default: 127.0.0.1)
- NOTIFY_BRIDGE_PORT: Port number (default: 3099)
- NOTIFY_BRIDGE_IDLE_TIMEOUT: Seconds without listeners before shutdown (default: 300)
- NOTIFY_BRIDGE_KEEPALIVE_TIMEOUT: Seconds of listener silence before close (default: 60)
- NOTIFY_BRIDGE_WRITE_TIMEOUT: Seconds allowed per broadcast write (default: 2)
- NOTIFY_BRIDGE_LOG_LEVEL: Log level (default: INFO)
- NOTIFY_BRIDGE_RUNTIME_DIR: Runtime directory (default: ~/.local/share/claude-notify-bridge)
- NOTIFY_BRIDGE_PID_FILE: PID file (default: <tmp>/claude-notify-server.pid)
- NOTIFY_BRIDGE_LOCK_FILE: Launcher lock file (default: <tmp>/claude-notify-server.lock)
- NOTIFY_BRIDGE_WS_URL: Listener connect URL (default: ws://localhost:3099)
- NOTIFY_BRIDGE_STATE_FILE: Listener state/settings file
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

__all__ = ["BrokerConfig", "ClientConfig", "config", "client_config", "DEFAULT_RUNTIME_DIR"]

DEFAULT_RUNTIME_DIR = Path.home() / ".local/share/claude-notify-bridge"
DEFAULT_PID_FILE = Path(tempfile.gettempdir()) / "claude-notify-server.pid"
DEFAULT_LOCK_FILE = Path(tempfile.gettempdir()) / "claude-notify-server.lock"


def _get_env(key: str, default: str) -> str:
    """Get environment variable with NOTIFY_BRIDGE_ prefix."""
    return os.environ.get(f"NOTIFY_BRIDGE_{key}", default)


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    return int(_get_env(key, str(default)))


def _get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    return float(_get_env(key, str(default)))


def _get_env_path(key: str, default: Path) -> Path:
    """Get path environment variable."""
    val = os.environ.get(f"NOTIFY_BRIDGE_{key}")
    return Path(val).expanduser() if val else default


@dataclass(frozen=True)
class BrokerConfig:
    """Immutable broker configuration."""

    host: str = _get_env("HOST", "127.0.0.1")
    port: int = _get_env_int("PORT", 3099)
    idle_timeout: float = _get_env_float("IDLE_TIMEOUT", 300.0)
    keepalive_timeout: float = _get_env_float("KEEPALIVE_TIMEOUT", 60.0)
    write_timeout: float = _get_env_float("WRITE_TIMEOUT", 2.0)
    shutdown_timeout: float = _get_env_float("SHUTDOWN_TIMEOUT", 10.0)
    log_level: str = _get_env("LOG_LEVEL", "INFO")

    runtime_dir: Path = _get_env_path("RUNTIME_DIR", DEFAULT_RUNTIME_DIR)

    # Fixed well-known paths shared with external tooling
    pid_file: Path = _get_env_path("PID_FILE", DEFAULT_PID_FILE)
    lock_file: Path = _get_env_path("LOCK_FILE", DEFAULT_LOCK_FILE)

    # Log rotation
    log_max_bytes: int = 5 * 1024 * 1024  # 5MB
    log_backup_count: int = 3

    @property
    def log_dir(self) -> Path:
        """Log directory."""
        return self.runtime_dir / "logs"

    @property
    def log_file(self) -> Path:
        """Log file path."""
        return self.log_dir / "broker.log"

    @property
    def state_dir(self) -> Path:
        """State directory for client state, etc."""
        return self.runtime_dir / "state"

    @property
    def base_url(self) -> str:
        """HTTP base URL of the broker."""
        return f"http://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        """Listener channel URL of the broker."""
        return f"ws://{self.host}:{self.port}"

    def ensure_dirs(self) -> None:
        """Create runtime directories if they don't exist."""
        self.runtime_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(exist_ok=True)
        self.state_dir.mkdir(exist_ok=True)


@dataclass(frozen=True)
class ClientConfig:
    """Immutable listener (client side) configuration."""

    ws_url: str = _get_env("WS_URL", "ws://localhost:3099")

    # Reconnect backoff (seconds)
    reconnect_floor: float = 1.0
    reconnect_ceiling: float = 30.0

    keepalive_interval: float = 20.0
    max_recent: int = 10
    auto_dismiss: float = 5.0

    state_file: Path = _get_env_path("STATE_FILE", DEFAULT_RUNTIME_DIR / "state" / "client.json")


# Global singletons
config = BrokerConfig()
client_config = ClientConfig()
