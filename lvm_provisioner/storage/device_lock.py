"""Single-instance lock for provisioning runs.

The pipeline rewrites the partition table of the root disk; two runs against
the same device would corrupt it. This module takes an exclusive, non-blocking
``flock`` on a lock file for the duration of a run.

Usage:
    from lvm_provisioner.storage.device_lock import provision_lock

    with provision_lock("/run/lvm-provisioner.lock"):
        run_pipeline(...)
"""

from __future__ import annotations

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from lvm_provisioner.logging import LoggerFactory

from .exceptions import LockFileError, ProvisionLockedError


log = LoggerFactory.for_system()


@contextmanager
def provision_lock(lock_path: str) -> Generator[None, None, None]:
    """Hold an exclusive lock on ``lock_path`` while inside the block.

    Raises:
        ProvisionLockedError: If another process already holds the lock
        LockFileError: If the lock file cannot be created or opened
    """
    try:
        Path(lock_path).parent.mkdir(parents=True, exist_ok=True)
        lock_file = open(lock_path, "a+", encoding="utf-8")
    except OSError as e:
        raise LockFileError(lock_path, e) from e

    with lock_file as f:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise ProvisionLockedError(lock_path) from e

        f.seek(0)
        f.truncate()
        f.write(f"{os.getpid()}\n")
        f.flush()
        log.debug(f"Acquired provisioning lock {lock_path}")
        try:
            yield
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            log.debug(f"Released provisioning lock {lock_path}")
