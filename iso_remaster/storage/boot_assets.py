"""Boot-loader binary resolution inside a staged tree."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Optional

from iso_remaster.domain.models import BootAssetSet, FirmwareVariant
from iso_remaster.logging import LoggerFactory
from iso_remaster.storage.exceptions import BootAssetMissingError

log = LoggerFactory.for_master()

LEGACY_BOOT_PATH = PurePosixPath("boot/etfsboot.com")
EFI_NOPROMPT_PATH = PurePosixPath("efi/microsoft/boot/efisys_noprompt.bin")
EFI_PROMPT_PATH = PurePosixPath("efi/microsoft/boot/efisys.bin")

# Order matters: the no-prompt variant always wins when both are present.
FIRMWARE_CANDIDATES = (
    (EFI_NOPROMPT_PATH, FirmwareVariant.NO_PROMPT),
    (EFI_PROMPT_PATH, FirmwareVariant.PROMPT),
)


def resolve_relative(root: Path, relative: PurePosixPath) -> Optional[Path]:
    """Find ``relative`` under ``root`` matching each component case-insensitively."""
    current = root
    for part in relative.parts:
        exact = current / part
        if exact.exists():
            current = exact
            continue
        if not current.is_dir():
            return None
        wanted = part.lower()
        match = next(
            (entry for entry in current.iterdir() if entry.name.lower() == wanted),
            None,
        )
        if match is None:
            return None
        current = match
    return current if current.is_file() else None


class BootAssetLocator:
    """Resolves the BIOS and UEFI boot binaries of a staged tree."""

    def __init__(
        self,
        legacy_path: PurePosixPath = LEGACY_BOOT_PATH,
        firmware_candidates: tuple = FIRMWARE_CANDIDATES,
    ) -> None:
        self.legacy_path = legacy_path
        self.firmware_candidates = firmware_candidates

    def locate(self, destination: Path) -> BootAssetSet:
        """Return the boot asset set for ``destination``.

        Raises:
            BootAssetMissingError: If the legacy binary or both firmware
                variants are absent.
        """
        legacy = resolve_relative(destination, self.legacy_path)
        if legacy is None:
            raise BootAssetMissingError("legacy (BIOS)", [str(self.legacy_path)])

        for relative, variant in self.firmware_candidates:
            firmware = resolve_relative(destination, relative)
            if firmware is not None:
                log.info(
                    f"Resolved boot assets: legacy={legacy.relative_to(destination)} "
                    f"firmware={firmware.relative_to(destination)}"
                )
                return BootAssetSet(
                    legacy=legacy, firmware=firmware, firmware_variant=variant
                )

        raise BootAssetMissingError(
            "firmware (UEFI)", [str(relative) for relative, _ in self.firmware_candidates]
        )
