"""Custom exceptions for the re-mastering pipeline.

This module defines a hierarchy of exceptions so that every failure surfaces
as exactly one error naming the stage or resource that failed.

Exception Hierarchy:
    RemasterError (base)
        ├── PreconditionError
        │   └── ToolNotFoundError
        ├── MountError
        ├── CopyFailureError
        ├── BootAssetMissingError
        ├── MasteringFailureError
        └── UnexpectedError

Usage:
    from iso_remaster.storage.exceptions import CopyFailureError

    if not accepted.contains(code):
        raise CopyFailureError(code, accepted)
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


ADK_DOWNLOAD_URL = (
    "https://learn.microsoft.com/windows-hardware/get-started/adk-install"
)


class RemasterError(Exception):
    """Base exception for all pipeline failures."""



class PreconditionError(RemasterError):
    """A required input is missing before any resource is acquired."""

    def __init__(self, message: str, path: Path | str | None = None):
        self.path = path
        super().__init__(message)


class ToolNotFoundError(PreconditionError):
    """The mastering tool could not be located."""

    def __init__(self, tool: str, searched: Sequence[Path | str] = ()):
        self.tool = tool
        self.searched = [str(p) for p in searched]
        msg = f"{tool} not found"
        if self.searched:
            msg += f" (searched: {', '.join(self.searched)} and PATH)"
        msg += (
            f". Install the Windows ADK Deployment Tools from {ADK_DOWNLOAD_URL} "
            "or pass the tool path explicitly"
        )
        super().__init__(msg)


class MountError(RemasterError):
    """The source image could not be attached or exposed no readable root."""

    def __init__(self, image_path: Path | str, reason: str = ""):
        self.image_path = image_path
        self.reason = reason
        msg = f"Failed to mount {image_path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class CopyFailureError(RemasterError):
    """The staging copy finished with a status outside the accepted range."""

    def __init__(self, code: int, accepted: object = None, source: str = None):
        self.code = code
        self.accepted = accepted
        self.source = source
        msg = f"Staging copy failed with status {code}"
        if accepted is not None:
            msg += f" (accepted: {accepted})"
        if source:
            msg += f" while copying {source}"
        super().__init__(msg)


class BootAssetMissingError(RemasterError):
    """A mandatory boot-loader binary is absent from the staged tree."""

    def __init__(self, which: str, expected: Sequence[str]):
        self.which = which
        self.expected = list(expected)
        super().__init__(
            f"Missing {which} boot binary; expected "
            f"{' or '.join(self.expected)}"
        )


class MasteringFailureError(RemasterError):
    """The mastering tool exited with a nonzero status."""

    def __init__(self, code: int, output_path: Path | str | None = None):
        self.code = code
        self.output_path = output_path
        msg = f"Image mastering failed with status {code}"
        if output_path is not None:
            msg += f" while writing {output_path}"
        super().__init__(msg)


class UnexpectedError(RemasterError):
    """Wraps any non-pipeline exception raised inside a stage."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(
            f"Unexpected error during {stage}: {type(cause).__name__}: {cause}"
        )
