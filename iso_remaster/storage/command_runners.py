"""Command execution utilities for external tools."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Sequence

from iso_remaster.logging import LoggerFactory, get_logger

log = get_logger(source="command", tags=["command"])


def _format_command(command: Sequence[str]) -> str:
    return " ".join(str(part) for part in command)


def run_checked_command(command: Sequence[str], input_text: str | None = None) -> str:
    """Run a command and raise RuntimeError if it fails."""
    command = [str(part) for part in command]
    log.debug(f"Running command: {_format_command(command)}")
    result = subprocess.run(
        command,
        input=input_text,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        stdout = (result.stdout or "").strip()
        message = stderr or stdout or "Command failed"
        raise RuntimeError(f"Command failed ({_format_command(command)}): {message}")
    return result.stdout


def run_status_command(
    command: Sequence[str],
    *,
    tool: str | None = None,
    cwd: Path | None = None,
) -> int:
    """Run a command to completion and return its exit status.

    Output is streamed line by line to the log at DEBUG, tagged as tool
    output. Interpreting the status is left to the caller: some tools
    (robocopy) report success with nonzero codes.
    """
    command = [str(part) for part in command]
    tool = tool or command[0]
    tool_log = LoggerFactory.for_tool_output(tool)
    log.debug(f"Starting command: {_format_command(command)}")
    process = subprocess.Popen(
        command,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=cwd,
    )
    if process.stdout is not None:
        for line in process.stdout:
            line = line.rstrip()
            if line:
                tool_log.debug(line)
    returncode = process.wait()
    log.debug(f"Command finished with status {returncode}: {_format_command(command)}")
    return returncode


__all__ = [
    "run_checked_command",
    "run_status_command",
]
