from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "ISO_REMASTER_LOG_DIR",
        Path.home() / ".local" / "state" / "iso-remaster" / "logs",
    )
)

TOOL_OUTPUT_TAG = "tool-output"


def _should_log_tool_output(record, min_level: str = "DEBUG") -> bool:
    """Hide raw robocopy/oscdimg output lines below the given level."""
    tags = record["extra"].get("tags", [])

    if record["level"].no >= logger.level("WARNING").no:
        return True

    if TOOL_OUTPUT_TAG in tags:
        return record["level"].no >= logger.level(min_level).no

    return True


def _console_filter(record) -> bool:
    """Console filter: tool output never reaches the console below DEBUG."""
    return _should_log_tool_output(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Pipeline failures
    - SUCCESS/INFO: Stage transitions, resolved inputs, produced images
    - DEBUG: Command lines and external tool output
    - TRACE: Per-file details from the staging copy

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/iso-remaster/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_console_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <18} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <18} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking a pipeline run
        tags: Tags for filtering (e.g., ["mount", "storage"])
        source: Source component (e.g., "mount", "stage", "master")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Automatically logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "remaster")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("remaster", source="win.iso") as log:
            log.debug("Mounting source image")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source, tags, and context for the domain.
    """

    @staticmethod
    def for_pipeline(job_id: str | None = None, **details) -> Logger:
        """Logger for pipeline orchestration."""
        if job_id is None:
            job_id = f"remaster-{uuid.uuid4().hex[:8]}"
        return logger.bind(
            job_id=job_id, source="pipeline", tags=["pipeline"], **details
        )

    @staticmethod
    def for_mount() -> Logger:
        """Logger for source image attach/detach."""
        return logger.bind(source="mount", tags=["mount", "storage"])

    @staticmethod
    def for_staging() -> Logger:
        """Logger for the staging copy and artifact injection."""
        return logger.bind(source="stage", tags=["stage", "storage"])

    @staticmethod
    def for_master() -> Logger:
        """Logger for boot asset resolution and image mastering."""
        return logger.bind(source="master", tags=["master", "iso"])

    @staticmethod
    def for_tool_output(tool: str) -> Logger:
        """Logger for raw lines printed by an external tool."""
        return logger.bind(source=tool, tags=[TOOL_OUTPUT_TAG, tool])


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides type-safe methods for logging common events with
    consistent structure and fields.
    """

    @staticmethod
    def log_stage_entered(log: Logger, state: str, **extra) -> None:
        """Log a pipeline state transition."""
        log.debug(
            f"Entering {state}",
            event_type="stage_entered",
            state=state,
            **extra,
        )

    @staticmethod
    def log_tool_status(
        log: Logger, tool: str, returncode: int, accepted: bool, **extra
    ) -> None:
        """Log an external tool's completion status."""
        log.info(
            f"{tool} exited with status {returncode}",
            event_type="tool_status",
            tool=tool,
            returncode=returncode,
            accepted=accepted,
            **extra,
        )

    @staticmethod
    def log_image_produced(
        log: Logger, path: str, size_bytes: int, sha256: str, **extra
    ) -> None:
        """Log the produced output image."""
        log.info(
            f"Image written to {path}",
            event_type="image_produced",
            output_path=path,
            size_bytes=size_bytes,
            sha256=sha256,
            **extra,
        )
