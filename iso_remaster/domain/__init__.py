"""Domain models for image re-mastering.

This package contains type-safe domain objects shared by the storage
layer and the pipeline orchestrator.
"""

from __future__ import annotations

from .models import (
    BootAssetSet,
    BootCatalogEntry,
    BootPlatform,
    BuildRequest,
    BuildResult,
    CopyStatusRange,
    FirmwareVariant,
    InjectedArtifact,
    MountedTree,
    PipelineState,
    SourceImage,
    StagingArea,
)


__all__ = [
    "BootAssetSet",
    "BootCatalogEntry",
    "BootPlatform",
    "BuildRequest",
    "BuildResult",
    "CopyStatusRange",
    "FirmwareVariant",
    "InjectedArtifact",
    "MountedTree",
    "PipelineState",
    "SourceImage",
    "StagingArea",
]
