"""
Pytest configuration and shared fixtures for simpleos-builder tests.

This module provides common fixtures and utilities used across all test modules.
"""

import os
import subprocess
import time
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

from simpleos_builder.build.variants import BuildVariant
from simpleos_builder.config.settings import BuildConfig


# Source files are dated well in the past so every build output is newer.
SOURCE_MTIME = 1_000_000_000


# ==============================================================================
# Project Fixtures
# ==============================================================================


@pytest.fixture
def project_root(tmp_path) -> Path:
    """
    Fixture providing a minimal project with the two cargo crates.

    Args:
        tmp_path: pytest's built-in temporary directory fixture.

    Returns:
        Path to the project root.
    """
    root = tmp_path / "project"
    sources = {
        "Cargo.lock": "# lock\n",
        "bootloader/Cargo.toml": '[package]\nname = "bootloader"\n',
        "bootloader/src/main.rs": "fn efi_main() {}\n",
        "kernel/Cargo.toml": '[package]\nname = "kernel"\n',
        "kernel/src/main.rs": "fn kernel_main() {}\n",
        "kernel/src/arch/mod.rs": "pub mod x86_64;\n",
        "common-structures/Cargo.toml": '[package]\nname = "common-structures"\n',
        "common-structures/kernel_header.rs": "pub struct KernelHeader;\n",
        "common-structures/src/lib.rs": "pub mod config;\n",
    }
    for relative, content in sources.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        os.utime(path, (SOURCE_MTIME, SOURCE_MTIME))
    return root


@pytest.fixture
def build_config(project_root) -> BuildConfig:
    """Fixture providing a BuildConfig rooted at the test project."""
    return BuildConfig(project_root=project_root, ovmf_dir=project_root / "ovmf")


@pytest.fixture
def fake_cargo(mocker, build_config) -> List[List[str]]:
    """
    Fixture replacing cargo with a fake that writes the expected binaries
    and a dep-info file naming the crate sources and the shared crate.

    Returns:
        List that receives every cargo command line, with its crate
        directory appended.
    """
    calls = []
    shared = build_config.project_root / "common-structures"

    def run_cargo(command, cwd=None, source=None):
        crate = Path(cwd)
        calls.append(list(command) + [crate.name])
        tag = BuildVariant.OPTIMIZED.tag if "--release" in command else BuildVariant.DEBUG.tag
        triple = "x86_64-unknown-uefi" if crate.name == "bootloader" else "x86_64-unknown-none"
        binary_name = "bootloader.efi" if crate.name == "bootloader" else "kernel"
        binary = build_config.target_dir / triple / tag / binary_name
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(f"{crate.name}-{tag}".encode() * 64)
        sources = sorted(path for path in crate.rglob("*.rs") if path.is_file())
        sources += [shared / "kernel_header.rs", shared / "src" / "lib.rs"]
        prerequisites = " ".join(str(path).replace(" ", "\\ ") for path in sources)
        binary.with_suffix(".d").write_text(f"{binary}: {prerequisites}\n")
        return subprocess.CompletedProcess(command, 0, stdout="Finished\n", stderr="")

    mocker.patch("simpleos_builder.build.artifacts.require_tool", return_value="/usr/bin/cargo")
    mocker.patch("simpleos_builder.build.artifacts.run_streaming_command", side_effect=run_cargo)
    return calls


@pytest.fixture
def age_tree() -> Callable[[Path, float], None]:
    """
    Fixture providing a helper that moves every file under a directory back in time.

    Returns:
        Function taking a directory and a number of seconds.
    """

    def age(root: Path, seconds: float) -> None:
        stamp = time.time() - seconds
        for path in Path(root).rglob("*"):
            if path.is_file():
                os.utime(path, (stamp, stamp))

    return age


# ==============================================================================
# Subprocess Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_subprocess_run(mocker):
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run")


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def temp_settings_file(tmp_path) -> Path:
    """
    Fixture providing a temporary settings file path.

    Args:
        tmp_path: pytest's built-in temporary directory fixture.

    Returns:
        Path to a temporary settings file.
    """
    settings_dir = tmp_path / ".config" / "simpleos-builder"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "simpleos-builder.json"


@pytest.fixture
def sample_settings_data() -> Dict[str, Any]:
    """
    Fixture providing sample settings data.

    Returns:
        Dict with typical settings values.
    """
    return {
        "ovmf_dir": "/usr/share/OVMF",
        "vm_name": "SimpleOS-test",
        "gdb_port": 26001,
        "qemu_memory_mb": 2048,
        "volume_label": "TESTOS",
    }


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """
    Auto-use fixture that clears builder environment overrides.

    Keeps a developer's own settings from leaking into the tests.
    """
    for name in (
        "SIMPLEOS_BUILDER_SETTINGS_PATH",
        "SIMPLEOS_OVMF_DIR",
        "SIMPLEOS_BUILDER_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
