"""
Pytest configuration and shared fixtures for iso-remaster tests.

This module provides fakes for the three external capabilities (volume
mounting, tree copying, image mastering) and builders for fake installation
media trees, so the pipeline can be exercised without real images or tools.
"""

import shutil
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from iso_remaster.config.settings import BuildConfig
from iso_remaster.domain.models import CopyStatusRange, MountedTree
from iso_remaster.storage.staging import STRICT_ACCEPTED


# ==============================================================================
# Helpers
# ==============================================================================


def snapshot_tree(root: Path) -> Dict[str, Optional[bytes]]:
    """Map every relative path under root to its bytes (None for directories)."""
    result: Dict[str, Optional[bytes]] = {}
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root).as_posix()
        result[relative] = None if path.is_dir() else path.read_bytes()
    return result


# ==============================================================================
# Capability Fakes
# ==============================================================================


class FakeVolumeMounter:
    """VolumeMounter exposing an existing directory as the mounted root."""

    def __init__(
        self,
        root: Path,
        *,
        ready_after: int = 0,
        attach_error: Optional[Exception] = None,
        detach_error: Optional[Exception] = None,
        events: Optional[List[str]] = None,
    ):
        self.root = root
        self.ready_after = ready_after
        self.attach_error = attach_error
        self.detach_error = detach_error
        self.events = events if events is not None else []
        self.attached: List[Path] = []
        self.detached: List[Path] = []
        self.polls = 0

    def attach(self, image_path: Path) -> None:
        self.events.append("attach")
        if self.attach_error is not None:
            raise self.attach_error
        self.attached.append(image_path)

    def find_root(self, image_path: Path) -> Optional[Path]:
        self.polls += 1
        if self.polls <= self.ready_after:
            return None
        return self.root

    def detach(self, image_path: Path) -> None:
        self.events.append("detach")
        self.detached.append(image_path)
        if self.detach_error is not None:
            raise self.detach_error

    @property
    def is_attached(self) -> bool:
        return len(self.attached) > len(self.detached)


class FakeTreeCopier:
    """TreeCopier that copies for real, then reports a chosen status."""

    name = "fake-copy"

    def __init__(
        self,
        status: int = 0,
        accepted: CopyStatusRange = STRICT_ACCEPTED,
        error: Optional[Exception] = None,
        events: Optional[List[str]] = None,
    ):
        self.status = status
        self.accepted = accepted
        self.error = error
        self.events = events if events is not None else []
        self.calls: List[tuple] = []

    def copy_tree(self, source: Path, destination: Path) -> int:
        self.events.append("copy")
        self.calls.append((source, destination))
        if self.error is not None:
            raise self.error
        shutil.copytree(source, destination, dirs_exist_ok=True)
        return self.status


class FakeMasteringService:
    """ImageMasteringService that records options and the staged content."""

    def __init__(self, code: int = 0, events: Optional[List[str]] = None):
        self.code = code
        self.events = events if events is not None else []
        self.calls = []
        self.staged_snapshots: List[Dict[str, Optional[bytes]]] = []

    def master(self, options) -> int:
        self.events.append("master")
        self.calls.append(options)
        snapshot = snapshot_tree(options.source_dir)
        self.staged_snapshots.append(snapshot)
        if self.code == 0:
            # Deterministic stand-in for an image: the sorted staged paths.
            options.output_path.write_bytes(
                b"FAKE-ISO\n" + "\n".join(sorted(snapshot)).encode("utf-8")
            )
        return self.code


# ==============================================================================
# Media Tree Fixtures
# ==============================================================================


@pytest.fixture
def snapshot():
    """Fixture exposing snapshot_tree to tests."""
    return snapshot_tree


@pytest.fixture
def media_tree(tmp_path) -> Path:
    """
    Fixture providing a fake installation media tree.

    Contains both UEFI boot variants, the BIOS boot sector, payload files and
    an empty directory.
    """
    root = tmp_path / "media-src"
    (root / "boot").mkdir(parents=True)
    (root / "boot" / "etfsboot.com").write_bytes(b"\xeb\x52\x90ETFSBOOT")
    (root / "boot" / "bcd").write_bytes(b"BCD")
    efi_boot = root / "efi" / "microsoft" / "boot"
    efi_boot.mkdir(parents=True)
    (efi_boot / "efisys.bin").write_bytes(b"EFISYS-PROMPT")
    (efi_boot / "efisys_noprompt.bin").write_bytes(b"EFISYS-NOPROMPT")
    (root / "sources").mkdir()
    (root / "sources" / "install.wim").write_bytes(b"WIM" * 1024)
    (root / "setup.exe").write_bytes(b"MZ")
    (root / "support" / "logging").mkdir(parents=True)
    return root


@pytest.fixture
def source_image(tmp_path) -> Path:
    """Fixture providing a placeholder source image file."""
    path = tmp_path / "Win11_24H2_English_x64.iso"
    path.write_bytes(b"CD001")
    return path


@pytest.fixture
def artifact_file(tmp_path) -> Path:
    """Fixture providing an autounattend.xml to inject."""
    path = tmp_path / "tool" / "autounattend.xml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<unattend xmlns="urn:schemas-microsoft-com:unattend"/>\n',
        encoding="utf-8",
    )
    return path


@pytest.fixture
def scratch_root(tmp_path) -> Path:
    """Fixture providing an empty scratch root for staging areas."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def build_config(tmp_path, scratch_root) -> BuildConfig:
    """Fixture providing an explicit BuildConfig rooted in tmp_path."""
    return BuildConfig(
        scratch_root=scratch_root,
        tool_dir=tmp_path / "tool",
        mastering_tool_candidates=(),
        mount_timeout_seconds=1.0,
        mount_poll_interval_seconds=0.0,
    )


@pytest.fixture
def events() -> List[str]:
    """Shared event log so tests can assert ordering across fakes."""
    return []


@pytest.fixture
def fake_mounter(media_tree, events) -> FakeVolumeMounter:
    return FakeVolumeMounter(media_tree, events=events)


@pytest.fixture
def fake_copier(events) -> FakeTreeCopier:
    return FakeTreeCopier(events=events)


@pytest.fixture
def fake_master(events) -> FakeMasteringService:
    return FakeMasteringService(events=events)


# ==============================================================================
# Subprocess Fixtures
# ==============================================================================


@pytest.fixture
def mock_subprocess_run(mocker):
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run")
