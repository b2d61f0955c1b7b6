"""Staging area lifecycle, bulk copy and artifact injection.

The staged tree is a full, mutable copy of the mounted source image. Copy
backends report an exit status which is checked against an explicit accepted
range, since robocopy signals success with codes 0-7.
"""

from __future__ import annotations

import os
import shutil
import stat
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from iso_remaster.domain.models import CopyStatusRange, MountedTree, StagingArea
from iso_remaster.logging import EventLogger, LoggerFactory
from iso_remaster.storage.command_runners import run_status_command
from iso_remaster.storage.exceptions import CopyFailureError, PreconditionError

log = LoggerFactory.for_staging()

# 0 no change, 1 files copied, 2 extra files, 4 mismatches; 8+ is a failure.
ROBOCOPY_ACCEPTED = CopyStatusRange(0, 7)
STRICT_ACCEPTED = CopyStatusRange(0, 0)


class TreeCopier(Protocol):
    """Narrow capability for copying a directory tree."""

    name: str
    accepted: CopyStatusRange

    def copy_tree(self, source: Path, destination: Path) -> int:
        ...


class RobocopyTreeCopier:
    name = "robocopy"
    accepted = ROBOCOPY_ACCEPTED

    def __init__(self, executable: str = "robocopy") -> None:
        self.executable = executable

    def command(self, source: Path, destination: Path) -> list[str]:
        return [
            self.executable,
            str(source),
            str(destination),
            "/E",
            "/R:1",
            "/W:1",
            "/NP",
            "/NFL",
            "/NDL",
        ]

    def copy_tree(self, source: Path, destination: Path) -> int:
        return run_status_command(self.command(source, destination), tool=self.name)


class RsyncTreeCopier:
    name = "rsync"
    accepted = STRICT_ACCEPTED

    def __init__(self, executable: str = "rsync") -> None:
        self.executable = executable

    def command(self, source: Path, destination: Path) -> list[str]:
        # Trailing slashes copy the contents rather than the directory itself.
        return [self.executable, "-a", f"{source}/", f"{destination}/"]

    def copy_tree(self, source: Path, destination: Path) -> int:
        return run_status_command(self.command(source, destination), tool=self.name)


class ShutilTreeCopier:
    """In-process copy; returns 1 when shutil reports per-file errors."""

    name = "shutil"
    accepted = STRICT_ACCEPTED

    def copy_tree(self, source: Path, destination: Path) -> int:
        try:
            shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
        except shutil.Error as e:
            for src, dst, reason in e.args[0]:
                log.warning(f"Failed to copy {src} to {dst}: {reason}")
            return 1
        return 0


def default_tree_copier(name: str | None) -> TreeCopier:
    """Select a copy backend by name, or by platform when no name is given."""
    if name is None:
        if sys.platform == "win32":
            name = "robocopy"
        elif shutil.which("rsync"):
            name = "rsync"
        else:
            name = "shutil"
    if name == "robocopy":
        return RobocopyTreeCopier()
    if name == "rsync":
        return RsyncTreeCopier()
    if name == "shutil":
        return ShutilTreeCopier()
    raise ValueError(f"Unknown copy backend: {name}")


def make_writable(root: Path) -> None:
    """Clear read-only bits below ``root``; distribution media ship them set."""
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            if path.is_symlink():
                continue
            mode = path.stat().st_mode
            if not mode & stat.S_IWUSR:
                path.chmod(mode | stat.S_IWUSR)
    mode = root.stat().st_mode
    if not mode & stat.S_IWUSR:
        root.chmod(mode | stat.S_IWUSR)


def create_staging_area(
    scratch_root: Path,
    prefix: str = "iso-remaster",
    *,
    now: Callable[[], datetime] = datetime.now,
) -> StagingArea:
    """Create a uniquely named, time-namespaced scratch directory."""
    stamp = now().strftime("%Y%m%d-%H%M%S")
    path = scratch_root / f"{prefix}-{stamp}-{uuid.uuid4().hex[:8]}"
    path.mkdir(parents=True, exist_ok=False)
    log.debug(f"Created staging area {path}")
    return StagingArea(path=path)


def remove_staging_area(area: StagingArea | None) -> bool:
    """Remove a staging area. Never raises; returns False if removal failed."""
    if area is None or not area.path.exists():
        return True
    try:
        make_writable(area.path)
        shutil.rmtree(area.path)
        log.info(f"Removed staging area {area.path}")
        return True
    except OSError as e:
        log.error(f"Failed to remove staging area {area.path}: {e}")
        return False


class ContentStager:
    """Copies a mounted tree into a staging directory and injects the artifact."""

    def __init__(self, copier: TreeCopier) -> None:
        self.copier = copier
        self._staged: set[Path] = set()

    def stage(self, mounted_tree: MountedTree, destination: Path) -> None:
        """Copy every file and directory of ``mounted_tree`` to ``destination``.

        ``destination`` must not exist yet.

        Raises:
            CopyFailureError: If the copier's status is outside its accepted range.
        """
        destination.mkdir(parents=True, exist_ok=False)
        log.info(f"Copying {mounted_tree.root} to {destination} with {self.copier.name}")
        code = self.copier.copy_tree(mounted_tree.root, destination)
        accepted = self.copier.accepted.contains(code)
        EventLogger.log_tool_status(log, self.copier.name, code, accepted)
        if not accepted:
            raise CopyFailureError(code, self.copier.accepted, str(mounted_tree.root))
        make_writable(destination)
        self._staged.add(destination)

    def inject(self, destination: Path, artifact_path: Path, destination_name: str) -> Path:
        """Copy ``artifact_path`` to ``destination/destination_name``, replacing
        any root entry with the same name in any letter case."""
        if destination not in self._staged:
            raise RuntimeError(f"{destination} has not been staged")
        if not artifact_path.is_file():
            raise PreconditionError(f"Artifact not found: {artifact_path}", artifact_path)

        for entry in destination.iterdir():
            if entry.name.lower() != destination_name.lower():
                continue
            log.info(f"Replacing existing {entry.name} in staged tree")
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

        target = destination / destination_name
        shutil.copyfile(artifact_path, target)
        log.info(f"Injected {artifact_path} as {destination_name}")
        return target

    def is_staged(self, destination: Path) -> bool:
        return destination in self._staged

    def forget(self, destination: Path) -> None:
        """Drop ``destination`` once its staging area is removed."""
        self._staged.discard(destination)
