"""Settings storage for pipeline configuration."""

from __future__ import annotations

import json
import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "ISO_REMASTER_SETTINGS_PATH",
        Path.home() / ".config" / "iso-remaster" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_ARTIFACT_NAME = "autounattend.xml"
DEFAULT_STAGING_PREFIX = "iso-remaster"
DEFAULT_MOUNT_TIMEOUT_SECONDS = 30.0
DEFAULT_MOUNT_POLL_INTERVAL_SECONDS = 0.5

_ADK_DEPLOYMENT_TOOLS = (
    r"C:\Program Files (x86)\Windows Kits\10\Assessment and Deployment Kit"
    r"\Deployment Tools"
)

# Ordered; the first existing candidate wins before PATH is consulted.
DEFAULT_MASTERING_TOOL_CANDIDATES = [
    _ADK_DEPLOYMENT_TOOLS + r"\amd64\Oscdimg\oscdimg.exe",
    _ADK_DEPLOYMENT_TOOLS + r"\x86\Oscdimg\oscdimg.exe",
    _ADK_DEPLOYMENT_TOOLS + r"\arm64\Oscdimg\oscdimg.exe",
]

DEFAULT_SETTINGS: dict[str, Any] = {
    "scratch_root": None,
    "staging_prefix": DEFAULT_STAGING_PREFIX,
    "artifact_name": DEFAULT_ARTIFACT_NAME,
    "mastering_tool_candidates": list(DEFAULT_MASTERING_TOOL_CANDIDATES),
    "mount_timeout_seconds": DEFAULT_MOUNT_TIMEOUT_SECONDS,
    "mount_poll_interval_seconds": DEFAULT_MOUNT_POLL_INTERVAL_SECONDS,
    "copy_backend": None,
    "mount_backend": None,
    "volume_label": None,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def save_settings() -> None:
    SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
    SETTINGS_PATH.write_text(
        json.dumps(settings_store.values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def set_setting(key: str, value: Any) -> None:
    settings_store.values[key] = value
    save_settings()


def default_tool_dir() -> Path:
    """Directory of the invoking script; the default artifact lives here."""
    if sys.argv and sys.argv[0]:
        return Path(sys.argv[0]).resolve().parent
    return Path.cwd()


@dataclass(frozen=True)
class BuildConfig:
    """Resolved, immutable configuration handed to the pipeline.

    Components receive scratch paths and search candidates from here rather
    than reading process-wide temp or environment state themselves.
    """

    scratch_root: Path
    tool_dir: Path
    staging_prefix: str = DEFAULT_STAGING_PREFIX
    artifact_name: str = DEFAULT_ARTIFACT_NAME
    mastering_tool_candidates: tuple[Path, ...] = ()
    mount_timeout_seconds: float = DEFAULT_MOUNT_TIMEOUT_SECONDS
    mount_poll_interval_seconds: float = DEFAULT_MOUNT_POLL_INTERVAL_SECONDS
    copy_backend: str | None = None
    mount_backend: str | None = None
    volume_label: str | None = None

    @property
    def default_artifact(self) -> Path:
        return self.tool_dir / self.artifact_name

    @classmethod
    def from_settings(cls, **overrides: Any) -> BuildConfig:
        """Build a config from the settings store, applying non-None overrides."""
        values = dict(settings_store.values or DEFAULT_SETTINGS)
        values.update({k: v for k, v in overrides.items() if v is not None})

        scratch_root = Path(values.get("scratch_root") or tempfile.gettempdir())
        tool_dir = values.get("tool_dir") or default_tool_dir()
        candidates = values.get("mastering_tool_candidates") or []

        return cls(
            scratch_root=scratch_root.expanduser().resolve(),
            tool_dir=Path(tool_dir),
            staging_prefix=values.get("staging_prefix") or DEFAULT_STAGING_PREFIX,
            artifact_name=values.get("artifact_name") or DEFAULT_ARTIFACT_NAME,
            mastering_tool_candidates=tuple(Path(c) for c in candidates),
            mount_timeout_seconds=float(
                values.get("mount_timeout_seconds", DEFAULT_MOUNT_TIMEOUT_SECONDS)
            ),
            mount_poll_interval_seconds=float(
                values.get(
                    "mount_poll_interval_seconds", DEFAULT_MOUNT_POLL_INTERVAL_SECONDS
                )
            ),
            copy_backend=values.get("copy_backend"),
            mount_backend=values.get("mount_backend"),
            volume_label=values.get("volume_label"),
        )


load_settings()
