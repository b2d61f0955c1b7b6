"""Hybrid-boot image mastering.

This module turns a staged tree plus its boot assets into a single image
bootable by both BIOS and UEFI firmware, using two entries in one El Torito
boot catalog.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from iso_remaster.domain.models import BootAssetSet, BootCatalogEntry, BootPlatform
from iso_remaster.logging import EventLogger, LoggerFactory
from iso_remaster.storage.command_runners import run_status_command
from iso_remaster.storage.exceptions import (
    MasteringFailureError,
    PreconditionError,
    ToolNotFoundError,
)

log = LoggerFactory.for_master()

MASTERING_TOOL_NAME = "oscdimg"

# Pinned so output compatibility never depends on tool defaults.
UDF_VERSION = "1.02"


@dataclass(frozen=True)
class MasteringOptions:
    """Recognized options handed to a mastering service."""

    source_dir: Path
    output_path: Path
    boot_entries: tuple[BootCatalogEntry, ...]
    ignore_max_size: bool = True
    dedupe_by_content: bool = True
    filesystem: str = "udf"
    udf_version: str = UDF_VERSION
    label: Optional[str] = None


class ImageMasteringService(Protocol):
    """Narrow capability for writing an image from MasteringOptions."""

    def master(self, options: MasteringOptions) -> int:
        ...


class OscdimgMasteringService:
    """Runs oscdimg from the Windows ADK Deployment Tools."""

    def __init__(self, tool_path: Path) -> None:
        self.tool_path = tool_path

    @staticmethod
    def _boot_file_argument(entry: BootCatalogEntry, source_dir: Path) -> str:
        # Relative to the staged root (oscdimg runs from there) so that
        # spaces in the scratch path never end up inside -bootdata.
        try:
            relative = entry.boot_file.relative_to(source_dir)
        except ValueError:
            return str(entry.boot_file)
        return "\\".join(relative.parts)

    def command(self, options: MasteringOptions) -> list[str]:
        args = [str(self.tool_path)]
        if options.ignore_max_size:
            args.append("-m")
        if options.dedupe_by_content:
            args.append("-o")
        if options.filesystem == "udf":
            args.extend(["-u2", "-udfver" + options.udf_version.replace(".", "")])
        if options.label:
            args.append(f"-l{options.label}")

        bootdata = f"-bootdata:{len(options.boot_entries)}"
        for entry in options.boot_entries:
            mode = "e" if entry.no_emulation else ""
            bootdata += (
                f"#p{entry.platform.value},{mode},b"
                f"{self._boot_file_argument(entry, options.source_dir)}"
            )
        args.append(bootdata)

        # Absolute, since the tool runs with source_dir as its working directory.
        args.extend([str(options.source_dir.resolve()), str(options.output_path.resolve())])
        return args

    def master(self, options: MasteringOptions) -> int:
        return run_status_command(
            self.command(options), tool=MASTERING_TOOL_NAME, cwd=options.source_dir
        )


def find_mastering_tool(
    explicit: Optional[Path] = None,
    candidates: Sequence[Path] = (),
    *,
    executable: str = MASTERING_TOOL_NAME,
    search: Optional[Callable[[str], Optional[str]]] = None,
) -> Path:
    """Locate the mastering tool.

    An explicit path must exist. Otherwise the candidates are tried in
    order, then the executable search path.

    Raises:
        PreconditionError: If an explicit path does not exist.
        ToolNotFoundError: If no candidate matches and the tool is not on PATH.
    """
    if explicit is not None:
        if not explicit.is_file():
            raise PreconditionError(f"Mastering tool not found: {explicit}", explicit)
        return explicit

    for candidate in candidates:
        if candidate.is_file():
            log.debug(f"Using mastering tool at {candidate}")
            return candidate

    found = (search or shutil.which)(executable)
    if found:
        log.debug(f"Using mastering tool from PATH: {found}")
        return Path(found)

    raise ToolNotFoundError(executable, candidates)


class ImageMaster:
    """Builds the output image from a staged tree."""

    def __init__(self, service: ImageMasteringService, *, label: Optional[str] = None) -> None:
        self.service = service
        self.label = label

    def options_for(
        self, destination: Path, boot_assets: BootAssetSet, output_path: Path
    ) -> MasteringOptions:
        return MasteringOptions(
            source_dir=destination,
            output_path=output_path,
            boot_entries=(
                BootCatalogEntry(BootPlatform.BIOS, boot_assets.legacy),
                BootCatalogEntry(BootPlatform.EFI, boot_assets.firmware),
            ),
            label=self.label,
        )

    def build(self, destination: Path, boot_assets: BootAssetSet, output_path: Path) -> None:
        """Write ``output_path`` from ``destination``.

        Raises:
            MasteringFailureError: If the mastering service returns nonzero.
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        options = self.options_for(destination, boot_assets, output_path)
        log.info(f"Mastering {output_path} from {destination}")
        code = self.service.master(options)
        EventLogger.log_tool_status(log, MASTERING_TOOL_NAME, code, code == 0)
        if code != 0:
            raise MasteringFailureError(code, output_path)
