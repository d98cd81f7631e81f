"""
Pytest configuration and shared fixtures for lvm-provisioner tests.

This module provides canned tool output (/proc/partitions, parted, tune2fs,
df) and subprocess fakes used across the test modules.
"""

from typing import Dict, List
from unittest.mock import Mock

import pytest

from lvm_provisioner.config.settings import ProvisionSettings


# ==============================================================================
# Canned Tool Output
# ==============================================================================


PROC_PARTITIONS = """major minor  #blocks  name

   7        0      65536 loop0
   7        1     111111 loop1
   1        0       4096 ram0
   8        0   20971520 sda
   8        1   10484736 sda1
 252        0    1048576 zram0
"""

PARTED_SINGLE = """BYT;
/dev/sda:20971520s:scsi:512:512:msdos:QEMU HARDDISK:;
1:2048s:20971519s:20969472s:ext4::boot;
"""

PARTED_SPLIT = """BYT;
/dev/sda:20971520s:scsi:512:512:msdos:QEMU HARDDISK:;
1:2048s:10487807s:10485760s:ext4::boot;
2:10487808s:20971519s:10483712s:::lvm;
"""

TUNE2FS_OUTPUT = """tune2fs 1.47.0 (5-Feb-2023)
Filesystem volume name:   cloudimg-rootfs
Filesystem UUID:          0b5c1f6a-1d8e-4b5e-9d7c-1f1f7f0e7a11
Block count:              2621184
Free blocks:              1621184
Block size:               4096
Fragment size:            4096
"""

DF_OUTPUT = """     Used
  1000000
"""


@pytest.fixture
def proc_partitions_file(tmp_path):
    """A /proc/partitions copy with loop, ram and zram noise around sda1."""
    path = tmp_path / "partitions"
    path.write_text(PROC_PARTITIONS)
    return path


@pytest.fixture
def sys_block_dir(tmp_path):
    """A /sys/class/block tree where only sda1 is a partition."""
    root = tmp_path / "sys" / "class" / "block"
    for name in ("sda", "sda1"):
        (root / name).mkdir(parents=True)
    (root / "sda1" / "partition").write_text("1\n")
    return root


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def provision_settings(tmp_path) -> ProvisionSettings:
    """Settings pointing every writable path into tmp_path."""
    return ProvisionSettings(
        scratch_mount=str(tmp_path / "mnt"),
        lock_path=str(tmp_path / "run" / "lvm-provisioner.lock"),
        device_wait_attempts=3,
        device_wait_interval=0.0,
    )


@pytest.fixture
def temp_settings_file(tmp_path):
    settings_dir = tmp_path / "etc" / "lvm-provisioner"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "settings.json"


# ==============================================================================
# Subprocess Mock Fixtures
# ==============================================================================


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> Mock:
    result = Mock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


@pytest.fixture
def mock_subprocess_run(mocker):
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run", return_value=completed())


@pytest.fixture
def fake_commands(mocker):
    """
    Route subprocess.run by executable name.

    Tests register handlers with ``fake_commands.responses[name] = result`` or
    a callable taking the argument list. Unregistered commands succeed with
    empty output. Every call is recorded in ``fake_commands.calls``.
    """

    class FakeCommands:
        def __init__(self) -> None:
            self.calls: List[List[str]] = []
            self.responses: Dict[str, object] = {}

        def names(self) -> List[str]:
            return [call[0].rsplit("/", 1)[-1] for call in self.calls]

        def __call__(self, cmd, **kwargs):
            self.calls.append(list(cmd))
            name = cmd[0].rsplit("/", 1)[-1]
            response = self.responses.get(name)
            if isinstance(response, Mock):
                return response
            if response is not None:
                return response(list(cmd))
            return completed()

    fake = FakeCommands()
    mocker.patch("subprocess.run", side_effect=fake)
    return fake


@pytest.fixture
def make_result():
    """Factory for CompletedProcess-like results."""
    return completed
