"""Device identity for the sync protocol.

Provides stable device identification by persisting a generated device ID
to disk on first access. The device name defaults to the machine hostname.
"""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from diary_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_TYPE = "ios"


@dataclass(frozen=True)
class DeviceInfo:
    """Immutable device identity record."""

    device_id: str
    device_name: str
    device_type: str
    registered_at: datetime


def get_device_id(data_dir: Path) -> str:
    """Return the persistent device ID for this install.

    Reads the ID from ``{data_dir}/device_id``.  If the file does not
    exist, a new UUID is generated, written to that file, and returned.

    Args:
        data_dir: Directory where the ``device_id`` file is stored.

    Returns:
        Device identifier string, stable for the lifetime of the install.
    """
    id_path = data_dir / "device_id"

    if id_path.exists():
        try:
            existing = id_path.read_text(encoding="utf-8").strip()
            if existing:
                return existing
        except OSError:
            logger.warning("Unreadable device_id file, minting a new one", exc_info=True)

    new_id = str(uuid4())

    data_dir.mkdir(parents=True, exist_ok=True)
    id_path.write_text(new_id, encoding="utf-8")
    logger.info("Generated device id %s", new_id)

    return new_id


def get_device_name(override: str | None = None) -> str:
    """Return the human-readable device name.

    Returns:
        ``override`` when given, else the network node name of this machine.
        Falls back to ``"unknown"`` if the hostname cannot be determined.
    """
    if override:
        return override
    name = platform.node()
    return name if name else "unknown"


def get_device_info(
    data_dir: Path,
    *,
    device_name: str | None = None,
    device_type: str = DEFAULT_DEVICE_TYPE,
) -> DeviceInfo:
    """Return a fully-populated :class:`DeviceInfo` for this install."""
    return DeviceInfo(
        device_id=get_device_id(data_dir),
        device_name=get_device_name(device_name),
        device_type=device_type,
        registered_at=utcnow(),
    )
