"""Entry point for building a customized installation image.

Checks preconditions before any resource is acquired, picks the platform
backends, and runs the pipeline.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from iso_remaster.config.settings import BuildConfig
from iso_remaster.domain.models import (
    BuildRequest,
    BuildResult,
    InjectedArtifact,
    SourceImage,
)
from iso_remaster.logging import LoggerFactory
from iso_remaster.pipeline import PipelineOrchestrator
from iso_remaster.storage.boot_assets import BootAssetLocator
from iso_remaster.storage.exceptions import PreconditionError
from iso_remaster.storage.iso import (
    ImageMaster,
    ImageMasteringService,
    OscdimgMasteringService,
    find_mastering_tool,
)
from iso_remaster.storage.mount import (
    SourceImageMounter,
    VolumeMounter,
    default_volume_mounter,
)
from iso_remaster.storage.staging import ContentStager, TreeCopier, default_tree_copier

log = LoggerFactory.for_pipeline(job_id="-")

PathLike = Union[str, Path]


def resolve_request(
    source_image: PathLike,
    output_image: PathLike,
    artifact: Optional[PathLike] = None,
    mastering_tool: Optional[PathLike] = None,
    *,
    config: BuildConfig,
    require_tool: bool = True,
) -> BuildRequest:
    """Validate inputs and return an absolute, fully resolved request.

    Raises:
        PreconditionError: Source image or artifact missing.
        ToolNotFoundError: Mastering tool could not be located.
    """
    source = SourceImage(Path(source_image).expanduser().resolve())
    if not source.exists():
        raise PreconditionError(f"Source image not found: {source.path}", source.path)

    artifact_path = Path(artifact).expanduser() if artifact else config.default_artifact
    if not artifact_path.is_file():
        raise PreconditionError(f"Artifact not found: {artifact_path}", artifact_path)

    tool = None
    if require_tool:
        explicit = Path(mastering_tool).expanduser() if mastering_tool else None
        tool = find_mastering_tool(explicit, config.mastering_tool_candidates)

    # oscdimg runs from inside the staging area, so relative paths would break.
    return BuildRequest(
        source_image=source,
        output_image=Path(output_image).expanduser().resolve(),
        artifact=InjectedArtifact(source=artifact_path.resolve(), name=config.artifact_name),
        mastering_tool=tool,
    )


def build_orchestrator(
    request: BuildRequest,
    config: BuildConfig,
    *,
    volume_mounter: Optional[VolumeMounter] = None,
    tree_copier: Optional[TreeCopier] = None,
    mastering_service: Optional[ImageMasteringService] = None,
) -> PipelineOrchestrator:
    """Wire the pipeline components, defaulting each backend by platform."""
    if volume_mounter is None:
        volume_mounter = default_volume_mounter(config.mount_backend, config.scratch_root)
    if tree_copier is None:
        tree_copier = default_tree_copier(config.copy_backend)
    if mastering_service is None:
        if request.mastering_tool is None:
            raise PreconditionError("No mastering tool resolved")
        mastering_service = OscdimgMasteringService(request.mastering_tool)

    return PipelineOrchestrator(
        SourceImageMounter(
            volume_mounter,
            timeout_seconds=config.mount_timeout_seconds,
            poll_interval_seconds=config.mount_poll_interval_seconds,
        ),
        ContentStager(tree_copier),
        BootAssetLocator(),
        ImageMaster(mastering_service, label=config.volume_label),
        scratch_root=config.scratch_root,
        staging_prefix=config.staging_prefix,
    )


def build_image(
    source_image: PathLike,
    output_image: PathLike,
    artifact: Optional[PathLike] = None,
    mastering_tool: Optional[PathLike] = None,
    *,
    config: Optional[BuildConfig] = None,
    volume_mounter: Optional[VolumeMounter] = None,
    tree_copier: Optional[TreeCopier] = None,
    mastering_service: Optional[ImageMasteringService] = None,
) -> BuildResult:
    """Build ``output_image`` from ``source_image`` with the artifact injected.

    Raises:
        RemasterError: Exactly one error; no mount or staging directory
            from this call remains afterwards.
    """
    config = config or BuildConfig.from_settings()
    request = resolve_request(
        source_image,
        output_image,
        artifact,
        mastering_tool,
        config=config,
        require_tool=mastering_service is None,
    )
    log.info(
        f"Building {request.output_image.name} from {request.source_image.name} "
        f"with {request.artifact.source}"
    )
    config.scratch_root.mkdir(parents=True, exist_ok=True)
    orchestrator = build_orchestrator(
        request,
        config,
        volume_mounter=volume_mounter,
        tree_copier=tree_copier,
        mastering_service=mastering_service,
    )
    return orchestrator.run(request)
