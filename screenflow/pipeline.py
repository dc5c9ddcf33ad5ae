"""End-to-end orchestration for ScreenFlow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .actions import ActionExecutor, ActionOutcome
from .config import ScreenFlowConfig
from .graph import IntentGraph, build_intent_graph
from .importer import PhotoImporter
from .interpretation import InterpretationOutcome, InterpretationService, ModelOrchestrator
from .models import ExtractionResult, OCRArtifact, ScreenRecord, ScreenSource
from .ocr import OCRBlockSpec, OCREngine, OpenVINOOCREngine
from .packs import CATALOG, ActionPackDefinition, PackSelection, find_pack, select_packs
from .persistence import ArtifactStore
from .repository import RecordRepository, SQLiteRecordRepository
from .runtime import ModelRuntime
from .spec import ScreenFlowSpec
from .storage import StoragePaths
from .utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProcessResult:
    screen: ScreenRecord
    ocr_artifact: OCRArtifact
    interpretation: InterpretationOutcome
    extraction: ExtractionResult
    graph: IntentGraph
    selections: List[PackSelection]

    @property
    def spec(self) -> ScreenFlowSpec:
        return self.interpretation.spec


class ScreenFlow:
    """Coordinates import, OCR, interpretation, extraction and action packs."""

    def __init__(
        self,
        config: ScreenFlowConfig | None = None,
        *,
        repository: RecordRepository | None = None,
        ocr_engine: OCREngine | None = None,
        runtime: ModelRuntime | None = None,
        registry: Sequence[ActionPackDefinition] = CATALOG,
    ) -> None:
        self.config = config or ScreenFlowConfig.from_env()
        self.paths = StoragePaths(self.config.home)
        self.paths.bootstrap()
        self.repository = repository or SQLiteRecordRepository(self.config.db_path)
        self.ocr_engine = ocr_engine or OpenVINOOCREngine(
            language_hint=self.config.language_hint,
            engine_version=self.config.engine_version,
        )
        self.runtime = runtime or ModelRuntime(self.config.model)
        self.registry = tuple(registry)
        self.artifacts = ArtifactStore(self.paths, self.repository)
        self.importer = PhotoImporter(
            self.paths, self.repository, processing_version=self.config.processing_version
        )
        self.interpreter = InterpretationService(
            ModelOrchestrator(self.runtime), self.artifacts, self.repository
        )
        self.executor = ActionExecutor(self.paths, self.repository)

    def import_image(self, data: bytes, source: ScreenSource = ScreenSource.PHOTO_PICKER) -> ScreenRecord:
        return self.importer.import_photo(data, source)

    def ingest_shared(self, directory: Path | str | None = None) -> int:
        inbox = directory or self.config.shared_dir
        if inbox is None:
            logger.debug("No shared inbox configured")
            return 0
        return self.importer.ingest_pending(inbox)

    def run_ocr(self, screen: ScreenRecord) -> Tuple[OCRBlockSpec, OCRArtifact]:
        image_bytes = Path(screen.image_path).read_bytes()
        ocr_spec = self.ocr_engine.extract(image_bytes, screen.source, screen.processing_version)
        artifact = self.artifacts.persist_ocr(
            screen.id, ocr_spec, engine_version=self.ocr_engine.engine_version
        )
        return ocr_spec, artifact

    def interpret(self, ocr_spec: OCRBlockSpec, screen: ScreenRecord) -> InterpretationOutcome:
        return self.interpreter.interpret(ocr_spec, screen)

    def persist_extraction(self, screen_id: str, spec: ScreenFlowSpec) -> Tuple[ExtractionResult, IntentGraph]:
        graph = build_intent_graph(spec)
        return self.artifacts.persist_extraction(screen_id, spec, graph=graph), graph

    def select_packs(self, spec: ScreenFlowSpec) -> List[PackSelection]:
        return select_packs(spec, self.registry)

    def process(self, data: bytes, source: ScreenSource = ScreenSource.PHOTO_PICKER) -> ProcessResult:
        """Run one image through every stage up to pack selection."""

        screen = self.import_image(data, source)
        ocr_spec, ocr_artifact = self.run_ocr(screen)
        outcome = self.interpret(ocr_spec, screen)
        extraction, graph = self.persist_extraction(screen.id, outcome.spec)
        return ProcessResult(
            screen=outcome.screen,
            ocr_artifact=ocr_artifact,
            interpretation=outcome,
            extraction=extraction,
            graph=graph,
            selections=self.select_packs(outcome.spec),
        )

    def latest_spec(self, screen_id: str) -> Optional[ScreenFlowSpec]:
        extractions = self.repository.list(ExtractionResult, screen_id=screen_id)
        if not extractions:
            return None
        return ScreenFlowSpec.from_json(Path(extractions[0].entities_json_path).read_text(encoding="utf-8"))

    def run_pack(
        self,
        screen_id: str,
        pack_id: str,
        *,
        spec: ScreenFlowSpec | None = None,
        created_at: datetime | None = None,
    ) -> ActionOutcome:
        pack = find_pack(pack_id, self.registry)
        if pack is None:
            raise ValueError(f"unknown action pack: {pack_id}")
        spec = spec or self.latest_spec(screen_id)
        if spec is None:
            raise ValueError(f"no extraction stored for screen {screen_id}")
        selection = next(
            (item for item in self.select_packs(spec) if item.pack.id == pack_id),
            PackSelection(pack=pack),
        )
        return self.executor.execute(selection, spec, screen_id, created_at=created_at)

    def mark_opened(self, screen_id: str) -> Optional[ScreenRecord]:
        screen = self.repository.fetch(ScreenRecord, screen_id)
        if screen is None:
            return None
        screen.last_opened_at = utc_now()
        return self.repository.upsert(screen)

    def close(self) -> None:
        self.repository.close()
