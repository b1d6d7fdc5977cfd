"""
Tests for simpleos_builder.config.settings module.

This test suite covers:
- Settings loading and saving
- Default settings
- Error handling for corrupted settings files
- Environment variable overrides
- BuildConfig construction and derived paths
"""

import json
from pathlib import Path

import pytest

from simpleos_builder.config import settings
from simpleos_builder.config.settings import BuildConfig, load_config
from simpleos_builder.domain.models import DiskGeometry
from simpleos_builder.exceptions import ConfigurationError


class TestLoadSettings:
    """Tests for load_settings() function."""

    def test_load_defaults_when_no_file(self, tmp_path):
        """Test that default settings are returned when the file doesn't exist."""
        values = settings.load_settings(tmp_path / "missing.json")

        assert values == settings.DEFAULT_SETTINGS

    def test_load_defaults_without_path(self):
        """Test that no path means defaults."""
        assert settings.load_settings() == settings.DEFAULT_SETTINGS

    def test_load_from_existing_file(self, temp_settings_file, sample_settings_data):
        """Test loading settings from an existing file."""
        temp_settings_file.write_text(json.dumps(sample_settings_data))

        values = settings.load_settings(temp_settings_file)

        assert values["vm_name"] == "SimpleOS-test"
        assert values["gdb_port"] == 26001
        assert values["cargo"] == "cargo"

    def test_load_corrupted_file(self, temp_settings_file):
        """Test a malformed file falls back to defaults."""
        temp_settings_file.write_text("{not json")

        values = settings.load_settings(temp_settings_file)

        assert values == settings.DEFAULT_SETTINGS

    def test_load_non_object_file(self, temp_settings_file):
        """Test a JSON file that is not an object is ignored."""
        temp_settings_file.write_text("[1, 2, 3]")

        values = settings.load_settings(temp_settings_file)

        assert values == settings.DEFAULT_SETTINGS

    def test_ovmf_environment_override(self, temp_settings_file, monkeypatch):
        """Test SIMPLEOS_OVMF_DIR overrides the file."""
        temp_settings_file.write_text(json.dumps({"ovmf_dir": "/from/file"}))
        monkeypatch.setenv("SIMPLEOS_OVMF_DIR", "/from/env")

        values = settings.load_settings(temp_settings_file)

        assert values["ovmf_dir"] == "/from/env"

    def test_defaults_are_not_mutated(self, temp_settings_file):
        """Test loading never changes DEFAULT_SETTINGS."""
        temp_settings_file.write_text(json.dumps({"vm_name": "Other"}))

        settings.load_settings(temp_settings_file)

        assert settings.DEFAULT_SETTINGS["vm_name"] == "SimpleOS-rs"


class TestSaveSettings:
    """Tests for save_settings() function."""

    def test_save_creates_directory(self, tmp_path):
        """Test saving creates missing parent directories."""
        path = tmp_path / "nested" / "dir" / "settings.json"

        settings.save_settings({"vm_name": "X"}, path)

        assert json.loads(path.read_text()) == {"vm_name": "X"}

    def test_save_then_load(self, temp_settings_file):
        """Test saved values are loaded back."""
        settings.save_settings({"gdb_port": 1234, "qemu": "qemu-custom"}, temp_settings_file)

        values = settings.load_settings(temp_settings_file)

        assert values["gdb_port"] == 1234
        assert values["qemu"] == "qemu-custom"

    def test_save_sorts_keys(self, temp_settings_file):
        """Test keys are written sorted."""
        settings.save_settings({"b": 1, "a": 2}, temp_settings_file)

        text = temp_settings_file.read_text()

        assert text.index('"a"') < text.index('"b"')


class TestSettingsPath:
    """Tests for settings_path()."""

    def test_default_location(self, tmp_path):
        """Test the settings file lives in the project root."""
        assert settings.settings_path(tmp_path) == tmp_path / "simpleos-builder.json"

    def test_environment_override(self, tmp_path, monkeypatch):
        """Test SIMPLEOS_BUILDER_SETTINGS_PATH wins."""
        monkeypatch.setenv("SIMPLEOS_BUILDER_SETTINGS_PATH", str(tmp_path / "custom.json"))

        assert settings.settings_path(tmp_path / "project") == tmp_path / "custom.json"


class TestBuildConfig:
    """Tests for BuildConfig."""

    def test_defaults(self, tmp_path):
        """Test defaults match the reference image layout."""
        config = BuildConfig.from_settings({}, tmp_path)

        assert config.project_root == tmp_path
        assert config.filesystem_sectors == 102_400
        assert config.image_sectors == 110_000
        assert config.partition_start == 2048
        assert config.gdb_port == 26000
        assert config.vdi_uuid == "430eee2a-0fdf-4d2a-88f0-5b99ea8cffcb"
        assert config.ovmf_dir is None
        assert config.log_dir is None

    def test_derived_paths(self, tmp_path):
        """Test the target and image directories."""
        config = BuildConfig(project_root=tmp_path)

        assert config.target_dir == tmp_path / "target"
        assert config.image_root == tmp_path / "target" / "image"

    def test_geometry(self, tmp_path):
        """Test the geometry follows the sector settings."""
        config = BuildConfig.from_settings({"filesystem_sectors": 70_000, "image_sectors": 80_000}, tmp_path)

        geometry = config.geometry()

        assert geometry.partition_sectors == 70_000
        assert geometry.total_sectors == 80_000
        assert geometry.partition_start == 2048

    def test_default_geometry_matches_disk_geometry(self, tmp_path):
        """Test default settings give the default DiskGeometry."""
        assert BuildConfig(project_root=tmp_path).geometry() == DiskGeometry()

    def test_integer_coercion(self, tmp_path):
        """Test numeric settings given as strings are converted."""
        config = BuildConfig.from_settings({"gdb_port": "26010"}, tmp_path)

        assert config.gdb_port == 26010

    def test_invalid_integer(self, tmp_path):
        """Test a non-numeric sector count is a configuration error."""
        with pytest.raises(ConfigurationError) as excinfo:
            BuildConfig.from_settings({"image_sectors": "lots"}, tmp_path)

        assert excinfo.value.option == "image_sectors"

    def test_paths_are_converted(self, tmp_path):
        """Test directory settings become Paths."""
        config = BuildConfig.from_settings(
            {"ovmf_dir": "/usr/share/OVMF", "log_dir": str(tmp_path / "logs")}, tmp_path
        )

        assert config.ovmf_dir == Path("/usr/share/OVMF")
        assert config.log_dir == tmp_path / "logs"

    def test_unknown_keys_kept_as_extra(self, tmp_path):
        """Test unknown settings are preserved in extra."""
        config = BuildConfig.from_settings({"color": "blue"}, tmp_path)

        assert config.extra == {"color": "blue"}


class TestLoadConfig:
    """Tests for load_config()."""

    def test_reads_project_settings_file(self, tmp_path):
        """Test the project's settings file is used by default."""
        (tmp_path / "simpleos-builder.json").write_text(json.dumps({"vm_name": "FromFile"}))

        config = load_config(tmp_path)

        assert config.vm_name == "FromFile"

    def test_overrides_win(self, tmp_path):
        """Test keyword overrides beat the file."""
        (tmp_path / "simpleos-builder.json").write_text(json.dumps({"ovmf_dir": "/file"}))

        config = load_config(tmp_path, ovmf_dir=tmp_path / "ovmf")

        assert config.ovmf_dir == tmp_path / "ovmf"

    def test_none_overrides_ignored(self, tmp_path):
        """Test None overrides keep the loaded value."""
        (tmp_path / "simpleos-builder.json").write_text(json.dumps({"ovmf_dir": "/file"}))

        config = load_config(tmp_path, ovmf_dir=None)

        assert config.ovmf_dir == Path("/file")

    def test_explicit_path(self, tmp_path, temp_settings_file):
        """Test an explicit settings path is used instead of the project file."""
        temp_settings_file.write_text(json.dumps({"gdb": "gdb-multiarch"}))

        config = load_config(tmp_path, temp_settings_file)

        assert config.gdb == "gdb-multiarch"
