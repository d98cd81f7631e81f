"""
Tests for lvm_provisioner.config.settings module.

This test suite covers:
- Default settings initialization
- Loading and merging a JSON settings file
- Error handling for corrupted settings files
- Type conversion helpers
- The ProvisionSettings snapshot
"""

import json

import pytest

from lvm_provisioner.config import settings
from lvm_provisioner.config.settings import ProvisionSettings


@pytest.fixture(autouse=True)
def restore_store():
    saved = dict(settings.settings_store.values)
    yield
    settings.settings_store.values = saved


class TestLoadSettings:
    """Tests for load_settings() function."""

    def test_load_defaults_when_no_file(self, tmp_path, monkeypatch):
        """Test that default settings are loaded when file doesn't exist."""
        monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "missing" / "settings.json")

        settings.settings_store.values = {}
        settings.load_settings()

        assert settings.settings_store.values == settings.DEFAULT_SETTINGS

    def test_load_merges_with_defaults(self, temp_settings_file, monkeypatch):
        """Test that a partial file overrides only the keys it names."""
        temp_settings_file.write_text(json.dumps({"volume_group": "vg_data"}))
        monkeypatch.setattr(settings, "SETTINGS_PATH", temp_settings_file)

        settings.load_settings()

        assert settings.get_setting("volume_group") == "vg_data"
        assert settings.get_setting("marker_path") == "/etc/lvm-provisioner/provision"

    def test_load_handles_corrupted_json(self, temp_settings_file, monkeypatch):
        """Test that a corrupted file falls back to defaults."""
        temp_settings_file.write_text("{invalid json")
        monkeypatch.setattr(settings, "SETTINGS_PATH", temp_settings_file)

        settings.load_settings()

        assert settings.settings_store.values == settings.DEFAULT_SETTINGS

    def test_load_ignores_non_object(self, temp_settings_file, monkeypatch):
        temp_settings_file.write_text(json.dumps(["volume_group"]))
        monkeypatch.setattr(settings, "SETTINGS_PATH", temp_settings_file)

        settings.load_settings()

        assert settings.get_setting("volume_group") == "data"


class TestTypedGetters:
    """Tests for get_int(), get_float() and get_bool()."""

    def test_get_int_converts_strings(self):
        settings.settings_store.values = {"device_wait_attempts": "30"}

        assert settings.get_int("device_wait_attempts", 60) == 30

    def test_get_int_falls_back_on_garbage(self):
        settings.settings_store.values = {"device_wait_attempts": "soon"}

        assert settings.get_int("device_wait_attempts", 60) == 60

    def test_get_float(self):
        settings.settings_store.values = {"device_wait_interval": 2}

        assert settings.get_float("device_wait_interval", 1.0) == 2.0

    def test_get_bool_default(self):
        settings.settings_store.values = {}

        assert settings.get_bool("reject_duplicate_markers", True) is True


class TestProvisionSettings:
    """Tests for the ProvisionSettings snapshot."""

    def test_defaults(self):
        snapshot = ProvisionSettings()

        assert snapshot.volume_group == "data"
        assert snapshot.min_filesystem_bytes == 5 * 1024**3
        assert snapshot.growth_divisor == 5
        assert snapshot.device_wait_attempts == 60
        assert snapshot.reject_duplicate_markers is True

    def test_load_from_store(self, temp_settings_file, monkeypatch):
        temp_settings_file.write_text(
            json.dumps(
                {
                    "volume_group": "vg_data",
                    "device_wait_attempts": 10,
                    "device_wait_interval": 0.5,
                    "reject_duplicate_markers": False,
                }
            )
        )
        monkeypatch.setattr(settings, "SETTINGS_PATH", temp_settings_file)
        settings.load_settings()

        snapshot = ProvisionSettings.load()

        assert snapshot.volume_group == "vg_data"
        assert snapshot.device_wait_attempts == 10
        assert snapshot.device_wait_interval == 0.5
        assert snapshot.reject_duplicate_markers is False
        assert snapshot.grub_backup_path == "/boot/grub/grub.cfg.orig"

    def test_is_frozen(self):
        with pytest.raises(AttributeError):
            ProvisionSettings().volume_group = "other"
