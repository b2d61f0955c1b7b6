"""Pipeline orchestration for a single re-mastering run.

States::

    INIT -> MOUNTING -> STAGING -> INJECTING -> UNMOUNTING -> LOCATING
         -> MASTERING -> DONE

Any state may move to FAILED. On failure the source mount is released
(best effort), the staging area is removed, and the original error is
re-raised. Exceptions outside the pipeline's own hierarchy are wrapped in
UnexpectedError naming the state they escaped from.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Optional

from iso_remaster.domain.models import (
    BootAssetSet,
    BuildRequest,
    BuildResult,
    MountedTree,
    PipelineState,
    StagingArea,
)
from iso_remaster.logging import EventLogger, LoggerFactory, operation_context
from iso_remaster.storage.boot_assets import BootAssetLocator
from iso_remaster.storage.exceptions import RemasterError, UnexpectedError
from iso_remaster.storage.iso import ImageMaster
from iso_remaster.storage.mount import SourceImageMounter
from iso_remaster.storage.staging import (
    ContentStager,
    create_staging_area,
    remove_staging_area,
)
from iso_remaster.storage.verification import compute_sha256

log = LoggerFactory.for_pipeline()


class PipelineOrchestrator:
    """Sequences mount, stage, inject, unmount, locate and master."""

    def __init__(
        self,
        mounter: SourceImageMounter,
        stager: ContentStager,
        locator: BootAssetLocator,
        master: ImageMaster,
        *,
        scratch_root: Path,
        staging_prefix: str = "iso-remaster",
        checksum: Callable[[Path], str] = compute_sha256,
    ) -> None:
        self.mounter = mounter
        self.stager = stager
        self.locator = locator
        self.master = master
        self.scratch_root = scratch_root
        self.staging_prefix = staging_prefix
        self.checksum = checksum

        self.state = PipelineState.INIT
        self.states: list[PipelineState] = []
        self._tree: Optional[MountedTree] = None
        self._area: Optional[StagingArea] = None

    @property
    def staging_area(self) -> Optional[StagingArea]:
        """Staging area of the current run, None once removed."""
        return self._area

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        self.states.append(state)
        EventLogger.log_stage_entered(log, state.value)

    def run(self, request: BuildRequest) -> BuildResult:
        """Run the pipeline for ``request``.

        Raises:
            RemasterError: The first error encountered, after cleanup.
        """
        self.states = []
        self._tree = None
        self._area = None
        self._enter(PipelineState.INIT)
        start_time = time.time()

        with operation_context(
            "remaster",
            source=str(request.source_image.path),
            output=str(request.output_image),
        ):
            try:
                assets, sha256, size_bytes = self._run_stages(request)
            except RemasterError:
                self._fail()
                raise
            except Exception as e:
                stage = self.state.value
                self._fail()
                raise UnexpectedError(stage, e) from e
            except BaseException:
                self._fail()
                raise

            self._remove_staging()
            self._enter(PipelineState.DONE)

        return BuildResult(
            output_image=request.output_image,
            boot_assets=assets,
            sha256=sha256,
            size_bytes=size_bytes,
            elapsed_seconds=round(time.time() - start_time, 2),
            states=tuple(self.states),
        )

    def _run_stages(self, request: BuildRequest) -> tuple[BootAssetSet, str, int]:
        self._area = create_staging_area(self.scratch_root, self.staging_prefix)

        self._enter(PipelineState.MOUNTING)
        self._tree = self.mounter.acquire(request.source_image.path)

        self._enter(PipelineState.STAGING)
        media_dir = self._area.media_dir
        self.stager.stage(self._tree, media_dir)

        self._enter(PipelineState.INJECTING)
        self.stager.inject(media_dir, request.artifact.source, request.artifact.name)

        self._enter(PipelineState.UNMOUNTING)
        # Cleared only once detach succeeds.
        self.mounter.release(self._tree)
        self._tree = None

        self._enter(PipelineState.LOCATING)
        assets = self.locator.locate(media_dir)

        self._enter(PipelineState.MASTERING)
        self.master.build(media_dir, assets, request.output_image)
        sha256 = self.checksum(request.output_image)
        size_bytes = request.output_image.stat().st_size
        EventLogger.log_image_produced(
            log, str(request.output_image), size_bytes, sha256
        )
        return assets, sha256, size_bytes

    def _fail(self) -> None:
        failed_in = self.state
        self._enter(PipelineState.FAILED)
        log.error(f"Pipeline failed during {failed_in.value}, cleaning up")

        tree, self._tree = self._tree, None
        if tree is not None:
            try:
                self.mounter.release(tree)
            except Exception as e:
                log.warning(f"Ignoring error while releasing {tree.image_path}: {e}")

        self._remove_staging()

    def _remove_staging(self) -> None:
        if self._area is not None:
            self.stager.forget(self._area.media_dir)
        remove_staging_area(self._area)
        self._area = None
