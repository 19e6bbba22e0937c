"""Unified configuration for diary sync.

Configuration is stored in ~/.diarysync/config.toml
Local data is stored in ~/.diarysync/diary_sync.db (SQLite)
The device id is stored in ~/.diarysync/device_id
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Hostnames, entity type tags and device names end up inside TOML strings
_SAFE_VALUE_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.:/ @']*$")
_SAFE_VALUE_MAX_LEN = 256

TOKEN_ENV_VAR = "DIARYSYNC_TOKEN"


def get_diarysync_dir() -> Path:
    """Get diary sync data directory.

    Priority:
    1. DIARYSYNC_DIR environment variable
    2. ~/.diarysync/
    """
    env_dir = os.environ.get("DIARYSYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".diarysync"


def _sanitize(value: Any) -> str:
    """Strip and validate a free-form setting before it is written to TOML.

    Returns empty string if invalid.
    """
    if not isinstance(value, str):
        return ""
    cleaned = value.strip()[:_SAFE_VALUE_MAX_LEN]
    if not _SAFE_VALUE_PATTERN.match(cleaned):
        return ""
    return cleaned


def _clamp(value: Any, default: float, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _bool(value: bool) -> str:
    return "true" if value else "false"


@dataclass
class ServerConfig:
    """Where the sync API lives and how to talk to it."""

    base_url: str = ""
    api_token: str | None = None
    request_timeout: float = 30.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "api_token": self.api_token,
            "request_timeout": self.request_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerConfig:
        token = data.get("api_token")
        return cls(
            base_url=_sanitize(data.get("base_url", "")).rstrip("/"),
            api_token=token if isinstance(token, str) and token else None,
            request_timeout=_clamp(data.get("request_timeout", 30.0), 30.0, 1.0, 600.0),
        )


@dataclass(frozen=True)
class SyncSettings:
    """Sync protocol tuning."""

    entity_type: str = "Diary"
    pull_limit: int = 100
    push_batch_size: int = 50
    max_retries: int = 3
    retention_days: int = 30
    device_type: str = "ios"
    device_name: str | None = None
    auto_sync: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "pull_limit": self.pull_limit,
            "push_batch_size": self.push_batch_size,
            "max_retries": self.max_retries,
            "retention_days": self.retention_days,
            "device_type": self.device_type,
            "device_name": self.device_name,
            "auto_sync": self.auto_sync,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        return cls(
            entity_type=_sanitize(data.get("entity_type", "Diary")) or "Diary",
            pull_limit=int(_clamp(data.get("pull_limit", 100), 100, 1, 1000)),
            push_batch_size=int(_clamp(data.get("push_batch_size", 50), 50, 1, 1000)),
            max_retries=int(_clamp(data.get("max_retries", 3), 3, 1, 100)),
            retention_days=int(_clamp(data.get("retention_days", 30), 30, 0, 3650)),
            device_type=_sanitize(data.get("device_type", "ios")) or "ios",
            device_name=_sanitize(data.get("device_name", "")) or None,
            auto_sync=bool(data.get("auto_sync", True)),
        )


@dataclass(frozen=True)
class ConnectivityConfig:
    """Reachability probe settings. Host/port default to the server URL's."""

    probe_host: str = ""
    probe_port: int = 0
    check_interval: float = 30.0
    probe_timeout: float = 5.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "probe_host": self.probe_host,
            "probe_port": self.probe_port,
            "check_interval": self.check_interval,
            "probe_timeout": self.probe_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConnectivityConfig:
        return cls(
            probe_host=_sanitize(data.get("probe_host", "")),
            probe_port=int(_clamp(data.get("probe_port", 0), 0, 0, 65535)),
            check_interval=_clamp(data.get("check_interval", 30.0), 30.0, 1.0, 3600.0),
            probe_timeout=_clamp(data.get("probe_timeout", 5.0), 5.0, 0.1, 60.0),
        )


@dataclass
class UnifiedConfig:
    """Unified configuration for diary sync.

    Storage location: ~/.diarysync/config.toml
    """

    data_dir: Path = field(default_factory=get_diarysync_dir)
    server: ServerConfig = field(default_factory=ServerConfig)
    sync: SyncSettings = field(default_factory=SyncSettings)
    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)
    version: str = "1.0"

    @classmethod
    def load(cls, config_path: Path | None = None) -> UnifiedConfig:
        """Load configuration from file, or create default if doesn't exist."""
        if config_path is None:
            data_dir = get_diarysync_dir()
            config_path = data_dir / "config.toml"
        else:
            data_dir = config_path.parent

        if not config_path.exists():
            config = cls(data_dir=data_dir)
            config.save()
            logger.info("Created default config at %s", config_path)
            return config

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(
            data_dir=data_dir,
            server=ServerConfig.from_dict(data.get("server", {})),
            sync=SyncSettings.from_dict(data.get("sync", {})),
            connectivity=ConnectivityConfig.from_dict(data.get("connectivity", {})),
            version=str(data.get("version", "1.0")),
        )

    def save(self) -> None:
        """Save configuration to TOML file (atomic write via temp+rename)."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        # Build TOML content manually (no toml write dependency)
        lines = [
            "# diary-sync configuration",
            "",
            f'version = "{_sanitize(self.version) or "1.0"}"',
            "",
            "# Sync API server",
            "[server]",
            f'base_url = "{_sanitize(self.server.base_url)}"',
            f"request_timeout = {self.server.request_timeout}",
        ]
        if self.server.api_token:
            lines.append(f'api_token = "{_escape(self.server.api_token)}"')

        lines += [
            "",
            "# Sync protocol settings",
            "[sync]",
            f'entity_type = "{_sanitize(self.sync.entity_type)}"',
            f"pull_limit = {self.sync.pull_limit}",
            f"push_batch_size = {self.sync.push_batch_size}",
            f"max_retries = {self.sync.max_retries}",
            f"retention_days = {self.sync.retention_days}",
            f'device_type = "{_sanitize(self.sync.device_type)}"',
            f"auto_sync = {_bool(self.sync.auto_sync)}",
        ]
        if self.sync.device_name:
            lines.append(f'device_name = "{_sanitize(self.sync.device_name)}"')

        lines += [
            "",
            "# Reachability probe",
            "[connectivity]",
            f'probe_host = "{_sanitize(self.connectivity.probe_host)}"',
            f"probe_port = {self.connectivity.probe_port}",
            f"check_interval = {self.connectivity.check_interval}",
            f"probe_timeout = {self.connectivity.probe_timeout}",
        ]

        # Atomic write: write to temp file, then rename
        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".toml.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(self.config_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @property
    def config_path(self) -> Path:
        """Get path to config file."""
        return self.data_dir / "config.toml"

    @property
    def db_path(self) -> Path:
        """Get path to the local SQLite store."""
        return self.data_dir / "diary_sync.db"

    def get_token(self) -> str | None:
        """Bearer token: DIARYSYNC_TOKEN wins over the configured one."""
        return os.environ.get(TOKEN_ENV_VAR) or self.server.api_token


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


# Singleton instance for the CLI
_config: UnifiedConfig | None = None


def get_config(reload: bool = False) -> UnifiedConfig:
    """Get the unified configuration (singleton).

    Args:
        reload: Force reload from disk

    Returns:
        UnifiedConfig instance
    """
    global _config
    if _config is None or reload:
        _config = UnifiedConfig.load()
    return _config
