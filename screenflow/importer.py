"""Photo import and share-sheet inbox ingestion."""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import EmptyInputError
from .models import ScenarioType, ScreenRecord, ScreenSource
from .preprocessor import Preprocessor
from .repository import RecordRepository
from .storage import StoragePaths, StorageSubdirectory, write_bytes_atomic, write_json_artifact
from .utils import format_timestamp, stable_screen_id, utc_now

logger = logging.getLogger(__name__)

METADATA_SCHEMA_VERSION = "screenshot-artifact.v1"
_PENDING_SUFFIX = ".original.img"
_METADATA_SUFFIX = ".metadata.json"


class PhotoImporter:
    """Stores an imported image under its stable id and records the screen."""

    def __init__(
        self,
        paths: StoragePaths,
        repository: RecordRepository,
        *,
        processing_version: str = "1.0.0",
        preprocessor: Preprocessor | None = None,
    ) -> None:
        self.paths = paths
        self.repository = repository
        self.processing_version = processing_version
        self.preprocessor = preprocessor or Preprocessor()

    def import_photo(self, data: bytes, source: ScreenSource = ScreenSource.PHOTO_PICKER) -> ScreenRecord:
        if not data:
            raise EmptyInputError("image data is empty")
        normalized = self.preprocessor.run(data)
        screen_id = stable_screen_id(normalized.png_bytes, self.processing_version)

        original_path = self.paths.artifact_path(StorageSubdirectory.SCREENS, screen_id, "original.img")
        normalized_path = self.paths.artifact_path(StorageSubdirectory.SCREENS, screen_id, "normalized.png")
        metadata_path = self.paths.artifact_path(StorageSubdirectory.SCREENS, screen_id, "metadata.json")
        write_bytes_atomic(original_path, data)
        write_bytes_atomic(normalized_path, normalized.png_bytes)

        imported_at = utc_now()
        write_json_artifact(
            metadata_path,
            {
                "schemaVersion": METADATA_SCHEMA_VERSION,
                "screenId": screen_id,
                "source": source.value,
                "importedAt": format_timestamp(imported_at),
                "processingVersion": self.processing_version,
                "originalImagePath": str(original_path),
                "normalizedImagePath": str(normalized_path),
                "originalByteCount": len(data),
                "normalizedByteCount": len(normalized.png_bytes),
                "imageWidth": normalized.width,
                "imageHeight": normalized.height,
            },
        )

        record = self.repository.upsert(
            ScreenRecord(
                id=screen_id,
                source=source,
                image_path=str(original_path),
                image_width=normalized.width,
                image_height=normalized.height,
                processing_version=self.processing_version,
                scenario=ScenarioType.UNKNOWN,
                scenario_confidence=0.0,
                created_at=imported_at,
            )
        )
        logger.info("Imported screen %s from %s (%dx%d)", screen_id, source.value, normalized.width, normalized.height)
        return record

    def ingest_pending(self, directory: Path | str) -> int:
        """Import every pending share-sheet capture in ``directory``.

        Files are taken in name order. Each one is deleted along with its
        metadata sidecar once imported. A missing directory has nothing
        pending.
        """

        inbox = Path(directory).expanduser()
        if not inbox.is_dir():
            return 0
        pending = sorted(
            (path for path in inbox.iterdir() if path.name.endswith(_PENDING_SUFFIX)),
            key=lambda path: path.name,
        )
        for path in pending:
            self.import_photo(path.read_bytes(), ScreenSource.SHARE_SHEET)
            sidecar = path.with_name(path.name[: -len(_PENDING_SUFFIX)] + _METADATA_SUFFIX)
            sidecar.unlink(missing_ok=True)
            path.unlink(missing_ok=True)
        if pending:
            logger.info("Ingested %d shared screens from %s", len(pending), inbox)
        return len(pending)
