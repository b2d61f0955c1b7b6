"""Domain model for image re-mastering.

Type-safe objects passed between the pipeline stages instead of loose paths.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


# ==============================================================================
# Source Image Domain
# ==============================================================================


@dataclass(frozen=True)
class SourceImage:
    """A read-only distribution image on disk."""

    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    def exists(self) -> bool:
        return self.path.is_file()


@dataclass(frozen=True)
class MountedTree:
    """Handle for an attached source image; ``root`` is its readable file tree."""

    image_path: Path
    root: Path


# ==============================================================================
# Staging Domain
# ==============================================================================


@dataclass(frozen=True)
class StagingArea:
    """Scratch directory owned by exactly one pipeline invocation."""

    path: Path

    @property
    def media_dir(self) -> Path:
        """Directory holding the staged copy of the source tree."""
        return self.path / "media"


@dataclass(frozen=True)
class InjectedArtifact:
    """Configuration file copied to the staged root under a fixed name."""

    source: Path
    name: str = "autounattend.xml"


@dataclass(frozen=True)
class CopyStatusRange:
    """Inclusive range of copy-tool exit codes treated as success."""

    low: int = 0
    high: int = 0

    def __post_init__(self) -> None:
        if self.low > self.high:
            raise ValueError(f"Invalid status range: {self.low}..{self.high}")

    def contains(self, code: int) -> bool:
        return self.low <= code <= self.high

    def __str__(self) -> str:
        if self.low == self.high:
            return str(self.low)
        return f"{self.low}..{self.high}"


# ==============================================================================
# Boot Assets Domain
# ==============================================================================


class FirmwareVariant(Enum):
    """Which UEFI boot binary was resolved."""

    NO_PROMPT = "noprompt"  # boots without "Press any key to boot from CD"
    PROMPT = "prompt"


@dataclass(frozen=True)
class BootAssetSet:
    """The two boot-loader binaries required for a hybrid image."""

    legacy: Path
    firmware: Path
    firmware_variant: FirmwareVariant

    @property
    def prompts_for_key(self) -> bool:
        return self.firmware_variant is FirmwareVariant.PROMPT


class BootPlatform(Enum):
    """El Torito platform identifiers used in the boot catalog."""

    BIOS = "0"
    EFI = "EF"


@dataclass(frozen=True)
class BootCatalogEntry:
    """One boot catalog entry: a platform and the binary it loads.

    Entries are always no-emulation; the loader is read as a whole device
    image so no explicit sector count is needed.
    """

    platform: BootPlatform
    boot_file: Path
    no_emulation: bool = True


# ==============================================================================
# Build Request / Result
# ==============================================================================


@dataclass(frozen=True)
class BuildRequest:
    """Fully resolved inputs for one pipeline run."""

    source_image: SourceImage
    output_image: Path
    artifact: InjectedArtifact
    mastering_tool: Path | None = None


class PipelineState(Enum):
    """States of a pipeline run."""

    INIT = "init"
    MOUNTING = "mounting"
    STAGING = "staging"
    INJECTING = "injecting"
    UNMOUNTING = "unmounting"
    LOCATING = "locating"
    MASTERING = "mastering"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildResult:
    """Outcome of a successful pipeline run."""

    output_image: Path
    boot_assets: BootAssetSet
    sha256: str
    size_bytes: int
    elapsed_seconds: float
    states: tuple[PipelineState, ...] = field(default_factory=tuple)
