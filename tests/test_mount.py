"""Tests for storage/mount.py - scratch mount handling.

Covers:
- Device path validation
- Mounting with options and mountpoint creation
- Refusing a busy mountpoint
- Sync + unmount, and no-op unmount of an unmounted directory
- The mounted() context manager always unmounting
"""

from unittest.mock import Mock, patch

import pytest

from lvm_provisioner.storage import mount
from lvm_provisioner.storage.exceptions import MountError


class TestValidateDevicePath:
    """Tests for validate_device_path()."""

    def test_accepts_dev_path(self):
        mount.validate_device_path("/dev/nvme0n1p1")

    @pytest.mark.parametrize(
        "device",
        ["sda1", "/tmp/sda1", "/dev/sda1; rm -rf /", "/dev/sda1 ", "/dev/$(id)", None],
    )
    def test_rejects_invalid(self, device):
        with pytest.raises(ValueError):
            mount.validate_device_path(device)


class TestMountPartition:
    """Tests for mount_partition()."""

    @patch("os.path.ismount", return_value=False)
    @patch("subprocess.run")
    def test_mount_read_only(self, mock_run, mock_ismount, tmp_path):
        """Test mounting with -o ro creates the mountpoint first."""
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")
        target = tmp_path / "mnt"

        mount.mount_partition("/dev/sda1", str(target), options="ro")

        assert target.is_dir()
        assert mock_run.call_args[0][0] == ["mount", "-o", "ro", "/dev/sda1", str(target)]

    @patch("os.path.ismount", return_value=False)
    @patch("subprocess.run")
    def test_mount_without_options(self, mock_run, mock_ismount, tmp_path):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

        mount.mount_partition("/dev/sda1", str(tmp_path))

        assert mock_run.call_args[0][0] == ["mount", "/dev/sda1", str(tmp_path)]

    @patch("os.path.ismount", return_value=True)
    @patch("subprocess.run")
    def test_busy_mountpoint(self, mock_run, mock_ismount, tmp_path):
        """Test that an occupied mountpoint is never mounted over."""
        with pytest.raises(MountError, match="already a mountpoint"):
            mount.mount_partition("/dev/sda1", str(tmp_path))

        mock_run.assert_not_called()

    @patch("os.path.ismount", return_value=False)
    @patch("subprocess.run")
    def test_mount_failure(self, mock_run, mock_ismount, tmp_path):
        mock_run.return_value = Mock(
            returncode=32, stdout="", stderr="wrong fs type, bad option"
        )

        with pytest.raises(MountError) as exc_info:
            mount.mount_partition("/dev/sda14", str(tmp_path), options="ro")

        assert exc_info.value.device == "/dev/sda14"
        assert "wrong fs type" in str(exc_info.value)


class TestUnmountPartition:
    """Tests for unmount_partition()."""

    @patch("os.path.ismount", return_value=False)
    @patch("subprocess.run")
    def test_not_mounted_is_noop(self, mock_run, mock_ismount):
        mount.unmount_partition("/mnt/lvm-provisioner")

        mock_run.assert_not_called()

    @patch("os.path.ismount", return_value=True)
    @patch("subprocess.run")
    def test_syncs_then_unmounts(self, mock_run, mock_ismount):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

        mount.unmount_partition("/mnt/lvm-provisioner")

        commands = [call[0][0] for call in mock_run.call_args_list]
        assert commands == [["sync"], ["umount", "/mnt/lvm-provisioner"]]

    @patch("os.path.ismount", return_value=True)
    @patch("subprocess.run")
    def test_umount_failure(self, mock_run, mock_ismount):
        mock_run.side_effect = [
            Mock(returncode=0, stdout="", stderr=""),
            Mock(returncode=32, stdout="", stderr="target is busy"),
        ]

        with pytest.raises(MountError, match="target is busy"):
            mount.unmount_partition("/mnt/lvm-provisioner")


class TestMountedContext:
    """Tests for the mounted() context manager."""

    def test_unmounts_on_error(self, mocker, tmp_path):
        mount_mock = mocker.patch.object(mount, "mount_partition")
        unmount_mock = mocker.patch.object(mount, "unmount_partition")

        with pytest.raises(RuntimeError):
            with mount.mounted("/dev/sda1", str(tmp_path), options="ro") as root:
                assert root == tmp_path
                raise RuntimeError("boom")

        mount_mock.assert_called_once_with("/dev/sda1", str(tmp_path), "ro")
        unmount_mock.assert_called_once_with(str(tmp_path))


def test_resolve_in_root(tmp_path):
    assert mount.resolve_in_root(tmp_path, "/etc/lvm-provisioner/provision") == (
        tmp_path / "etc" / "lvm-provisioner" / "provision"
    )
