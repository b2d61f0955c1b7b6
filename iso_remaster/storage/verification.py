"""Output image checksums."""

from __future__ import annotations

import hashlib
from pathlib import Path

from iso_remaster.logging import get_logger

log = get_logger(source=__name__, tags=["verify"])

CHUNK_SIZE = 4 * 1024 * 1024


def compute_sha256(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the SHA256 checksum of a file."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    checksum = digest.hexdigest()
    log.debug(f"sha256 for {path}: {checksum}")
    return checksum
