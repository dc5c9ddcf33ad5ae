"""Artifact directory layout and atomic file writes."""

from __future__ import annotations

import logging
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from .utils import canonical_json

logger = logging.getLogger(__name__)


class StorageSubdirectory(str, Enum):
    SCREENS = "Screens"
    OCR = "OCR"
    LLM = "LLM"
    EXTRACTED = "Extracted"
    RUNS = "Runs"


class StoragePaths:
    """Resolves stage-named artifact directories under one root."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()

    def path_for(self, subdirectory: StorageSubdirectory, *, create: bool = True) -> Path:
        directory = self.root / subdirectory.value
        if create:
            directory.mkdir(parents=True, exist_ok=True)
        return directory

    def artifact_path(self, subdirectory: StorageSubdirectory, artifact_id: str, suffix: str) -> Path:
        return self.path_for(subdirectory) / f"{artifact_id}.{suffix}"

    def bootstrap(self) -> None:
        for subdirectory in StorageSubdirectory:
            self.path_for(subdirectory)


def write_bytes_atomic(destination: Path, data: bytes) -> Path:
    """Write to a sibling temp file and rename it over the destination."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=f".{destination.name}.")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, destination)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.debug("Wrote %d bytes to %s", len(data), destination)
    return destination


def write_text_atomic(destination: Path, text: str) -> Path:
    return write_bytes_atomic(destination, text.encode("utf-8"))


def write_json_artifact(destination: Path, payload: Any) -> Path:
    return write_text_atomic(destination, canonical_json(payload))
