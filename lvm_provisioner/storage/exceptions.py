"""Custom exceptions for provisioning operations.

Every external command and every stage of the pipeline reports failure through
this hierarchy, so the caller can tell which step broke and with which device
and sector values in effect.

Exception Hierarchy:
    ProvisionError (base)
        ├── CommandFailedError
        ├── DiscoveryError
        │   ├── MarkerNotFoundError
        │   └── MultipleMarkersError
        ├── DeviceError
        │   ├── InvalidDeviceNameError
        │   └── DeviceNotReadyError
        ├── MountError
        ├── FilesystemError
        │   ├── FilesystemCheckError
        │   └── FilesystemResizeError
        ├── PartitionError
        │   └── InvalidSplitError
        ├── LVMError
        ├── RestoreError
        ├── ProvisionLockedError
        ├── LockFileError
        └── StageFailedError

Usage:
    from lvm_provisioner.storage.exceptions import MarkerNotFoundError

    if match is None:
        raise MarkerNotFoundError(marker_path, scanned)
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence


class ProvisionError(Exception):
    """Base exception for all provisioning operations."""


class CommandFailedError(ProvisionError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        detail = self.stderr.strip() or self.stdout.strip() or "no output"
        super().__init__(
            f"Command failed ({' '.join(self.command)}) "
            f"with exit status {returncode}: {detail}"
        )


class DiscoveryError(ProvisionError):
    """Base exception for root partition discovery errors."""


class MarkerNotFoundError(DiscoveryError):
    """No partition carries the provisioning marker file."""

    def __init__(self, marker_path: str, scanned: Iterable[str]):
        self.marker_path = marker_path
        self.scanned = list(scanned)
        scanned_str = ", ".join(self.scanned) or "none"
        super().__init__(
            f"No partition carries marker {marker_path} "
            f"(scanned: {scanned_str})"
        )


class MultipleMarkersError(DiscoveryError):
    """More than one partition carries the provisioning marker file."""

    def __init__(self, marker_path: str, partitions: Iterable[str]):
        self.marker_path = marker_path
        self.partitions = list(partitions)
        super().__init__(
            f"Marker {marker_path} found on more than one partition: "
            f"{', '.join(self.partitions)}"
        )


class DeviceError(ProvisionError):
    """Base exception for block device errors."""


class InvalidDeviceNameError(DeviceError):
    """Partition name cannot be split into disk and partition number."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cannot split partition name into disk and number: {name!r}")


class DeviceNotReadyError(DeviceError):
    """Block device node did not appear within the bounded wait."""

    def __init__(self, device_path: str, attempts: int, elapsed: float):
        self.device_path = device_path
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"Device {device_path} did not appear after {attempts} attempts "
            f"({elapsed:.1f}s)"
        )


class MountError(ProvisionError):
    """Mount or unmount failed."""

    def __init__(self, message: str, device: str | None = None, mountpoint: str | None = None):
        self.device = device
        self.mountpoint = mountpoint
        super().__init__(message)


class FilesystemError(ProvisionError):
    """Base exception for filesystem query, check and resize errors."""

    def __init__(self, message: str, device: str | None = None):
        self.device = device
        super().__init__(message)


class FilesystemCheckError(FilesystemError):
    """Forced filesystem check reported uncorrectable errors."""


class FilesystemResizeError(FilesystemError):
    """Filesystem shrink was rejected."""


class PartitionError(ProvisionError):
    """Base exception for partition table errors."""

    def __init__(self, message: str, disk: str | None = None):
        self.disk = disk
        super().__init__(message)


class InvalidSplitError(PartitionError):
    """Requested split does not fit inside the original partition."""


class LVMError(ProvisionError):
    """Physical volume or volume group creation failed."""

    def __init__(self, message: str, device: str | None = None):
        self.device = device
        super().__init__(message)


class RestoreError(ProvisionError):
    """Boot-loader configuration could not be restored."""


class ProvisionLockedError(ProvisionError):
    """Another provisioning run holds the lock file."""

    def __init__(self, lock_path: str):
        self.lock_path = lock_path
        super().__init__(f"Provisioning already running (lock held: {lock_path})")


class LockFileError(ProvisionError):
    """Lock file could not be created or opened."""

    def __init__(self, lock_path: str, cause: OSError):
        self.lock_path = lock_path
        super().__init__(f"Cannot open lock file {lock_path}: {cause}")


class StageFailedError(ProvisionError):
    """A pipeline stage failed; carries the stage name and the values in effect."""

    def __init__(
        self,
        stage: str,
        cause: BaseException,
        context: Mapping[str, Any] | None = None,
    ):
        self.stage = stage
        self.cause = cause
        self.context = dict(context or {})
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        message = f"Stage '{stage}' failed: {cause}"
        if details:
            message += f" [{details}]"
        super().__init__(message)
