"""Content-addressed persistence of OCR, model and extraction artifacts."""

from __future__ import annotations

import logging
from datetime import datetime

from .graph import IntentGraph, build_intent_graph
from .models import ExtractionResult, LLMResult, OCRArtifact, ResolutionTier
from .ocr import OCRBlockSpec
from .repository import RecordRepository
from .spec import ScreenFlowSpec
from .storage import StoragePaths, StorageSubdirectory, write_text_atomic
from .utils import content_id, utc_now

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Writes each stage's artifact under its own id, then upserts its record.

    Artifact ids hash the stage's canonical inputs, so persisting the same
    content twice rewrites the same files and the same record.
    """

    def __init__(self, paths: StoragePaths, repository: RecordRepository) -> None:
        self.paths = paths
        self.repository = repository

    def persist_ocr(
        self,
        screen_id: str,
        ocr_spec: OCRBlockSpec,
        *,
        engine_version: str,
        created_at: datetime | None = None,
    ) -> OCRArtifact:
        payload = ocr_spec.to_json()
        artifact_id = content_id(
            "ocr-artifact-v1", screen_id, engine_version, ocr_spec.processing_version, payload
        )
        path = self.paths.artifact_path(StorageSubdirectory.OCR, artifact_id, "ocr.json")
        write_text_atomic(path, payload)
        record = self.repository.upsert(
            OCRArtifact(
                id=artifact_id,
                screen_id=screen_id,
                engine_version=engine_version,
                blocks_json_path=str(path),
                language_hint=ocr_spec.language_hint,
                created_at=created_at or utc_now(),
            )
        )
        logger.info("Stored OCR artifact %s for screen %s (%d blocks)", artifact_id, screen_id, len(ocr_spec.blocks))
        return record

    def persist_llm(
        self,
        screen_id: str,
        *,
        model: str,
        prompt_version: str,
        resolution: ResolutionTier,
        raw_response_text: str,
        validated_spec: ScreenFlowSpec,
        created_at: datetime | None = None,
    ) -> LLMResult:
        result_id = content_id("llm-result-v1", screen_id, model, prompt_version, raw_response_text)
        raw_path = self.paths.artifact_path(StorageSubdirectory.LLM, result_id, "raw.json")
        validated_path = self.paths.artifact_path(StorageSubdirectory.LLM, result_id, "validated.json")
        write_text_atomic(raw_path, raw_response_text)
        write_text_atomic(validated_path, validated_spec.to_json())
        record = self.repository.upsert(
            LLMResult(
                id=result_id,
                screen_id=screen_id,
                model=model,
                prompt_version=prompt_version,
                resolution=resolution,
                raw_response_json_path=str(raw_path),
                validated_json_path=str(validated_path),
                created_at=created_at or utc_now(),
            )
        )
        logger.info("Stored %s model result %s for screen %s", resolution.value, result_id, screen_id)
        return record

    def persist_extraction(
        self,
        screen_id: str,
        spec: ScreenFlowSpec,
        *,
        graph: IntentGraph | None = None,
        created_at: datetime | None = None,
    ) -> ExtractionResult:
        payload = spec.to_json()
        extraction_id = content_id("extraction-result-v1", screen_id, spec.schema_version, payload)
        graph = graph or build_intent_graph(spec)
        entities_path = self.paths.artifact_path(StorageSubdirectory.EXTRACTED, extraction_id, "entities.json")
        graph_path = self.paths.artifact_path(StorageSubdirectory.EXTRACTED, extraction_id, "graph.json")
        write_text_atomic(entities_path, payload)
        write_text_atomic(graph_path, graph.to_json())
        record = self.repository.upsert(
            ExtractionResult(
                id=extraction_id,
                screen_id=screen_id,
                schema_version=spec.schema_version,
                entities_json_path=str(entities_path),
                intent_graph_json_path=str(graph_path),
                created_at=created_at or utc_now(),
            )
        )
        logger.info(
            "Stored extraction %s for screen %s (%d nodes)", extraction_id, screen_id, len(graph.nodes)
        )
        return record
