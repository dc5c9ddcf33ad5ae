import json
from pathlib import Path

import pytest

from screenflow.errors import EmptyInputError, InvalidImageDataError
from screenflow.importer import PhotoImporter
from screenflow.models import (
    ActionPackRun,
    ActionRunStatus,
    ExtractionResult,
    OCRArtifact,
    ResolutionTier,
    ScenarioType,
    ScreenRecord,
    ScreenSource,
)
from screenflow.pipeline import ScreenFlow
from screenflow.storage import StorageSubdirectory, write_json_artifact

from conftest import FakeOCREngine, FakeProvider, job_spec, make_runtime, png_bytes

JOB_LINES = ["Senior iOS Engineer", "Role at Acme Corp", "Remote", "Apply https://acme.example/jobs/42"]


@pytest.fixture
def importer(storage_paths, repository):
    return PhotoImporter(storage_paths, repository)


@pytest.fixture
def flow(screenflow_config, runtime_config, repository):
    def build(responses=(), lines=JOB_LINES):
        return ScreenFlow(
            screenflow_config,
            repository=repository,
            ocr_engine=FakeOCREngine(lines),
            runtime=make_runtime(runtime_config, FakeProvider(responses)),
        )

    return build


class TestPhotoImporter:
    def test_import_writes_artifacts_and_record(self, importer, storage_paths, repository):
        data = png_bytes()
        screen = importer.import_photo(data)

        screens_dir = storage_paths.path_for(StorageSubdirectory.SCREENS)
        assert (screens_dir / f"{screen.id}.original.img").read_bytes() == data
        assert (screens_dir / f"{screen.id}.normalized.png").exists()
        metadata = json.loads((screens_dir / f"{screen.id}.metadata.json").read_text())
        assert metadata["schemaVersion"] == "screenshot-artifact.v1"
        assert metadata["screenId"] == screen.id
        assert metadata["source"] == "photo_picker"
        assert metadata["originalByteCount"] == len(data)
        assert (metadata["imageWidth"], metadata["imageHeight"]) == (64, 48)

        stored = repository.fetch(ScreenRecord, screen.id)
        assert stored.scenario is ScenarioType.UNKNOWN
        assert stored.scenario_confidence == 0.0

    def test_reimport_does_not_duplicate(self, importer, repository):
        first = importer.import_photo(png_bytes())
        second = importer.import_photo(png_bytes())
        assert first.id == second.id
        assert len(repository.list(ScreenRecord)) == 1

    def test_different_images_get_different_ids(self, importer):
        assert importer.import_photo(png_bytes((0, 0, 0))).id != importer.import_photo(png_bytes((1, 0, 0))).id

    def test_empty_and_invalid_data_are_rejected(self, importer, storage_paths):
        with pytest.raises(EmptyInputError):
            importer.import_photo(b"")
        with pytest.raises(InvalidImageDataError):
            importer.import_photo(b"definitely not a png")
        assert list(storage_paths.path_for(StorageSubdirectory.SCREENS).iterdir()) == []

    def test_ingest_pending_imports_and_cleans_up(self, importer, repository, tmp_path):
        inbox = tmp_path / "inbox"
        inbox.mkdir()
        (inbox / "002.original.img").write_bytes(png_bytes((0, 0, 255)))
        (inbox / "001.original.img").write_bytes(png_bytes((255, 0, 0)))
        write_json_artifact(inbox / "001.metadata.json", {"source": "share_sheet"})
        (inbox / "notes.txt").write_text("ignored")

        assert importer.ingest_pending(inbox) == 2

        assert sorted(path.name for path in inbox.iterdir()) == ["notes.txt"]
        screens = repository.list(ScreenRecord)
        assert len(screens) == 2
        assert {screen.source for screen in screens} == {ScreenSource.SHARE_SHEET}

    def test_ingest_pending_missing_directory(self, importer, tmp_path):
        assert importer.ingest_pending(tmp_path / "nope") == 0


class TestScreenFlow:
    def test_process_end_to_end(self, flow, repository):
        pipeline = flow([job_spec().to_json()])
        result = pipeline.process(png_bytes())

        assert result.interpretation.resolution is ResolutionTier.PRIMARY
        assert result.screen.scenario is ScenarioType.JOB_LISTING
        assert [s.pack.id for s in result.selections] == [
            "job_listing.save_tracker",
            "job_listing.draft_application_email",
        ]
        ocr = repository.fetch(OCRArtifact, result.ocr_artifact.id)
        assert ocr.engine_version == "fake-ocr-v1"
        assert json.loads(Path(ocr.blocks_json_path).read_text())["blocks"][0]["text"] == "Senior iOS Engineer"

        extraction = repository.fetch(ExtractionResult, result.extraction.id)
        graph = json.loads(Path(extraction.intent_graph_json_path).read_text())
        assert any(node["id"] == "entity:job" for node in graph["nodes"])
        assert Path(extraction.entities_json_path).read_text() == result.spec.to_json()

    def test_process_falls_back_when_model_fails(self, flow):
        pipeline = flow(["garbage", "still garbage"])
        result = pipeline.process(png_bytes())
        assert result.interpretation.resolution is ResolutionTier.FALLBACK
        assert result.spec.scenario is ScenarioType.JOB_LISTING
        assert result.selections[0].pack.id == "job_listing.save_tracker"

    def test_run_pack_uses_latest_extraction(self, flow, repository):
        pipeline = flow([job_spec().to_json()])
        result = pipeline.process(png_bytes())

        outcome = pipeline.run_pack(result.screen.id, "job_listing.draft_application_email")

        assert outcome.run.status is ActionRunStatus.SUCCESS
        text = Path(outcome.trace.steps[0].output_path).read_text()
        assert "Company: Acme Corp" in text
        assert "Skills: Swift, SwiftUI" in text
        assert repository.list(ActionPackRun, screen_id=result.screen.id)[0].id == outcome.run.id

    def test_run_pack_rejects_unknown_pack_and_screen(self, flow):
        pipeline = flow()
        with pytest.raises(ValueError):
            pipeline.run_pack("x" * 64, "no.such.pack")
        with pytest.raises(ValueError):
            pipeline.run_pack("x" * 64, "job_listing.save_tracker")

    def test_mark_opened(self, flow, repository):
        pipeline = flow()
        screen = pipeline.import_image(png_bytes())
        assert screen.last_opened_at is None
        assert pipeline.mark_opened(screen.id).last_opened_at is not None
        assert repository.fetch(ScreenRecord, screen.id).last_opened_at is not None
        assert pipeline.mark_opened("missing") is None

    def test_ingest_shared_uses_configured_inbox(self, flow, screenflow_config):
        inbox = screenflow_config.shared_dir
        inbox.mkdir(parents=True)
        (inbox / "a.original.img").write_bytes(png_bytes())
        assert flow().ingest_shared() == 1
