"""Source image attach/detach.

This module exposes a distribution image as a readable file tree for the
duration of the staging copy. It is the only place that touches
volume-attachment state.

Backends:
    - PowerShellVolumeMounter: Mount-DiskImage / Dismount-DiskImage (Windows)
    - LoopVolumeMounter: read-only loop mount onto a private directory (Linux)

Example:
    >>> mounter = SourceImageMounter(LoopVolumeMounter(Path("/tmp/mnt")))
    >>> tree = mounter.acquire(Path("Win11.iso"))
    >>> try:
    ...     print(list(tree.root.iterdir()))
    ... finally:
    ...     mounter.release(tree)
"""

from __future__ import annotations

import os
import sys
import time
import uuid
from pathlib import Path
from typing import Callable, Optional, Protocol

from iso_remaster.domain.models import MountedTree
from iso_remaster.logging import LoggerFactory
from iso_remaster.storage.command_runners import run_checked_command
from iso_remaster.storage.exceptions import MountError


# Module logger
log = LoggerFactory.for_mount()


class VolumeMounter(Protocol):
    """Narrow capability for attaching an image as a volume."""

    def attach(self, image_path: Path) -> None:
        ...

    def find_root(self, image_path: Path) -> Optional[Path]:
        ...

    def detach(self, image_path: Path) -> None:
        ...


def _ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + value.replace("'", "''") + "'"


class PowerShellVolumeMounter:
    """Attach images with the Storage module cmdlets."""

    def __init__(self, powershell: str = "powershell") -> None:
        self.powershell = powershell

    def _run(self, script: str) -> str:
        return run_checked_command(
            [
                self.powershell,
                "-NoProfile",
                "-NonInteractive",
                "-Command",
                "$ErrorActionPreference = 'Stop'; " + script,
            ]
        )

    def attach(self, image_path: Path) -> None:
        self._run(f"Mount-DiskImage -ImagePath {_ps_quote(str(image_path))} | Out-Null")

    def find_root(self, image_path: Path) -> Optional[Path]:
        output = self._run(
            f"(Get-DiskImage -ImagePath {_ps_quote(str(image_path))} | Get-Volume).DriveLetter"
        )
        letter = output.strip()
        if not letter:
            return None
        return Path(f"{letter[0]}:\\")

    def detach(self, image_path: Path) -> None:
        self._run(
            f"Dismount-DiskImage -ImagePath {_ps_quote(str(image_path))} | Out-Null"
        )


class LoopVolumeMounter:
    """Attach images read-only through a loop device."""

    def __init__(self, mount_root: Path) -> None:
        self.mount_root = mount_root
        self._mountpoints: dict[Path, Path] = {}

    def attach(self, image_path: Path) -> None:
        mountpoint = self.mount_root / f"mnt-{uuid.uuid4().hex[:8]}"
        mountpoint.mkdir(parents=True, exist_ok=False)
        try:
            run_checked_command(
                ["mount", "-o", "loop,ro", str(image_path), str(mountpoint)]
            )
        except RuntimeError:
            mountpoint.rmdir()
            raise
        self._mountpoints[image_path] = mountpoint

    def find_root(self, image_path: Path) -> Optional[Path]:
        mountpoint = self._mountpoints.get(image_path)
        if mountpoint is None or not os.path.ismount(mountpoint):
            return None
        return mountpoint

    def detach(self, image_path: Path) -> None:
        mountpoint = self._mountpoints.pop(image_path, None)
        if mountpoint is None:
            return
        if os.path.ismount(mountpoint):
            run_checked_command(["umount", str(mountpoint)])
        if mountpoint.exists():
            mountpoint.rmdir()


def default_volume_mounter(name: str | None, mount_root: Path) -> VolumeMounter:
    """Select a backend by name, or by platform when no name is given."""
    if name is None:
        name = "powershell" if sys.platform == "win32" else "loop"
    if name == "powershell":
        return PowerShellVolumeMounter()
    if name == "loop":
        return LoopVolumeMounter(mount_root)
    raise ValueError(f"Unknown mount backend: {name}")


class SourceImageMounter:
    """Acquire/release pair around a VolumeMounter backend."""

    def __init__(
        self,
        backend: VolumeMounter,
        *,
        timeout_seconds: float = 30.0,
        poll_interval_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep
        self._clock = clock
        self._held: set[Path] = set()

    def is_held(self, image_path: Path) -> bool:
        return image_path in self._held

    def acquire(self, image_path: Path) -> MountedTree:
        """Attach ``image_path`` and wait for its root to become readable.

        Raises:
            MountError: If the image cannot be attached or exposes no
                accessible root within the timeout.
        """
        log.info(f"Mounting {image_path}")
        try:
            self.backend.attach(image_path)
        except (RuntimeError, OSError) as e:
            raise MountError(image_path, str(e)) from e
        self._held.add(image_path)

        deadline = self._clock() + self.timeout_seconds
        while True:
            try:
                root = self.backend.find_root(image_path)
            except (RuntimeError, OSError) as e:
                self._abandon(image_path)
                raise MountError(image_path, str(e)) from e
            if root is not None and root.is_dir() and os.access(root, os.R_OK):
                log.info(f"Mounted {image_path.name} at {root}")
                return MountedTree(image_path=image_path, root=root)
            if self._clock() >= deadline:
                self._abandon(image_path)
                raise MountError(
                    image_path,
                    f"no accessible root after {self.timeout_seconds:g}s",
                )
            log.trace(f"Waiting for {image_path.name} to expose a root")
            self._sleep(self.poll_interval_seconds)

    def release(self, handle: Optional[MountedTree]) -> None:
        """Detach a mounted tree.

        A no-op for ``None`` or a tree that is already released.

        Raises:
            MountError: If the backend fails to detach; the image stays held
                so the release can be retried.
        """
        if handle is None:
            return
        self.release_path(handle.image_path)

    def release_path(self, image_path: Path) -> None:
        if image_path not in self._held:
            log.debug(f"{image_path} is not mounted, nothing to release")
            return
        try:
            self.backend.detach(image_path)
        except (RuntimeError, OSError) as e:
            raise MountError(image_path, f"detach failed: {e}") from e
        self._held.discard(image_path)
        log.info(f"Unmounted {image_path.name}")

    def _abandon(self, image_path: Path) -> None:
        # Used while acquire is already failing; the acquire error wins.
        try:
            self.release_path(image_path)
        except MountError as e:
            log.warning(str(e))
