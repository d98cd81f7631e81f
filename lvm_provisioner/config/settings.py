"""Settings storage for provisioning configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "LVM_PROVISIONER_SETTINGS_PATH",
        "/etc/lvm-provisioner/settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_VOLUME_GROUP = "data"
DEFAULT_MIN_FILESYSTEM_BYTES = 5 * 1024**3
DEFAULT_GROWTH_DIVISOR = 5
DEFAULT_DEVICE_WAIT_ATTEMPTS = 60
DEFAULT_DEVICE_WAIT_INTERVAL = 1.0

DEFAULT_SETTINGS: dict[str, Any] = {
    "marker_path": "/etc/lvm-provisioner/provision",
    "grub_config_path": "/boot/grub/grub.cfg",
    "grub_backup_path": "/boot/grub/grub.cfg.orig",
    "volume_group": DEFAULT_VOLUME_GROUP,
    "scratch_mount": "/mnt/lvm-provisioner",
    "min_filesystem_bytes": DEFAULT_MIN_FILESYSTEM_BYTES,
    "growth_divisor": DEFAULT_GROWTH_DIVISOR,
    "device_wait_attempts": DEFAULT_DEVICE_WAIT_ATTEMPTS,
    "device_wait_interval": DEFAULT_DEVICE_WAIT_INTERVAL,
    "lock_path": "/run/lvm-provisioner.lock",
    "reject_duplicate_markers": True,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_int(key: str, default: int = 0) -> int:
    try:
        return int(get_setting(key, default))
    except (TypeError, ValueError):
        return default


def get_float(key: str, default: float = 0.0) -> float:
    try:
        return float(get_setting(key, default))
    except (TypeError, ValueError):
        return default


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


@dataclass(frozen=True)
class ProvisionSettings:
    """Immutable snapshot of the settings one provisioning run works with.

    Paths of the marker and boot-loader files are relative to the root
    filesystem being provisioned, not to the running system.
    """

    marker_path: str = DEFAULT_SETTINGS["marker_path"]
    grub_config_path: str = DEFAULT_SETTINGS["grub_config_path"]
    grub_backup_path: str = DEFAULT_SETTINGS["grub_backup_path"]
    volume_group: str = DEFAULT_VOLUME_GROUP
    scratch_mount: str = DEFAULT_SETTINGS["scratch_mount"]
    min_filesystem_bytes: int = DEFAULT_MIN_FILESYSTEM_BYTES
    growth_divisor: int = DEFAULT_GROWTH_DIVISOR
    device_wait_attempts: int = DEFAULT_DEVICE_WAIT_ATTEMPTS
    device_wait_interval: float = DEFAULT_DEVICE_WAIT_INTERVAL
    lock_path: str = DEFAULT_SETTINGS["lock_path"]
    reject_duplicate_markers: bool = True

    @classmethod
    def load(cls) -> ProvisionSettings:
        """Build a snapshot from the current settings store."""
        return cls(
            marker_path=str(get_setting("marker_path", cls.marker_path)),
            grub_config_path=str(get_setting("grub_config_path", cls.grub_config_path)),
            grub_backup_path=str(get_setting("grub_backup_path", cls.grub_backup_path)),
            volume_group=str(get_setting("volume_group", cls.volume_group)),
            scratch_mount=str(get_setting("scratch_mount", cls.scratch_mount)),
            min_filesystem_bytes=get_int("min_filesystem_bytes", cls.min_filesystem_bytes),
            growth_divisor=get_int("growth_divisor", cls.growth_divisor),
            device_wait_attempts=get_int("device_wait_attempts", cls.device_wait_attempts),
            device_wait_interval=get_float("device_wait_interval", cls.device_wait_interval),
            lock_path=str(get_setting("lock_path", cls.lock_path)),
            reject_duplicate_markers=get_bool(
                "reject_duplicate_markers", cls.reject_duplicate_markers
            ),
        )


load_settings()
