"""Shared pytest fixtures for the ScreenFlow test suite.

Provides temporary storage roots, an in-memory repository, and fake OCR
engines and model providers so tests run without OpenVINO or a model server.
"""

import io
import sys
from pathlib import Path
from typing import List, Sequence, Union

import pytest
from PIL import Image

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from screenflow.config import ModelRuntimeConfig, ModelRuntimeStrategy, ScreenFlowConfig
from screenflow.models import ScenarioType, ScreenSource
from screenflow.ocr import BoundingBox, OCRBlockSpec, OCRCandidate, OCREngine, PageSize, make_ocr_spec
from screenflow.prompts import ModelRequest
from screenflow.repository import SQLiteRecordRepository
from screenflow.runtime import ModelProvider, ModelProviderType, ModelRuntime
from screenflow.spec import (
    ErrorEntities,
    EventEntities,
    JobEntities,
    ModelMeta,
    PackSuggestion,
    SalaryRange,
    ScreenFlowEntities,
    ScreenFlowSpec,
)
from screenflow.storage import StoragePaths


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeOCREngine(OCREngine):
    """Returns the configured lines as top-to-bottom blocks."""

    engine_version = "fake-ocr-v1"

    def __init__(self, lines: Sequence[str] = ()):
        self.lines = list(lines)
        self.calls = 0

    def extract(self, image_bytes, source, processing_version):
        self.calls += 1
        return ocr_spec_from_lines(self.lines, source=source, processing_version=processing_version)


class FakeProvider(ModelProvider):
    """Replays canned responses; exceptions in the script are raised."""

    def __init__(
        self,
        responses: Sequence[Union[str, Exception]] = (),
        *,
        provider_type: ModelProviderType = ModelProviderType.SELF_HOSTED,
        model: str = "fake-model",
    ):
        self.provider_type = provider_type
        self.model = model
        self.responses = list(responses)
        self.requests: List[ModelRequest] = []

    def run(self, request):
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("unexpected provider call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def ocr_spec_from_lines(lines, *, source=ScreenSource.PHOTO_PICKER, processing_version="1.0.0") -> OCRBlockSpec:
    candidates = [
        OCRCandidate(
            text=line,
            bbox=BoundingBox(x=0.05, y=round(0.05 + index * 0.05, 6), width=0.9, height=0.04),
            confidence=0.9,
        )
        for index, line in enumerate(lines)
    ]
    return make_ocr_spec(
        candidates,
        page_size=PageSize(width=1170, height=2532),
        source=source,
        processing_version=processing_version,
        language_hint="en-US",
    )


def job_spec(**overrides) -> ScreenFlowSpec:
    job = JobEntities(
        company="Acme Corp",
        role="Senior iOS Engineer",
        location="Remote",
        skills=["Swift", "SwiftUI"],
        salary_range=SalaryRange(min=150000.0, max=190000.0, currency="USD"),
        link="https://acme.example/jobs/42",
    )
    values = dict(
        scenario=ScenarioType.JOB_LISTING,
        scenario_confidence=0.91,
        entities=ScreenFlowEntities(job=job),
        pack_suggestions=[PackSuggestion(pack_id="job_listing.save_tracker", confidence=0.8)],
        model_meta=ModelMeta(model="fake-model", prompt_version="screenflow-spec-v1"),
    )
    values.update(overrides)
    return ScreenFlowSpec(**values)


def event_spec(**overrides) -> ScreenFlowSpec:
    values = dict(
        scenario=ScenarioType.EVENT_FLYER,
        scenario_confidence=0.75,
        entities=ScreenFlowEntities(
            event=EventEntities(
                title="Swift Meetup",
                date_time="2026-03-14T18:30:00Z",
                venue="Community Hall",
                address="1 Main St",
            )
        ),
        pack_suggestions=[],
        model_meta=ModelMeta(model="fake-model", prompt_version="screenflow-spec-v1"),
    )
    values.update(overrides)
    return ScreenFlowSpec(**values)


def error_spec(**overrides) -> ScreenFlowSpec:
    values = dict(
        scenario=ScenarioType.ERROR_LOG,
        scenario_confidence=0.66,
        entities=ScreenFlowEntities(
            error=ErrorEntities(
                error_type="Fatal error",
                message="Unexpectedly found nil",
                tool_name="Xcode",
                file_paths=["App/ContentView.swift"],
            )
        ),
        pack_suggestions=[],
        model_meta=ModelMeta(model="fake-model", prompt_version="screenflow-spec-v1"),
    )
    values.update(overrides)
    return ScreenFlowSpec(**values)


def png_bytes(color=(255, 255, 255), size=(64, 48)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def storage_paths(tmp_path):
    paths = StoragePaths(tmp_path / "home")
    paths.bootstrap()
    return paths


@pytest.fixture
def repository():
    repo = SQLiteRecordRepository()
    yield repo
    repo.close()


@pytest.fixture
def runtime_config():
    return ModelRuntimeConfig(
        strategy=ModelRuntimeStrategy.SELF_HOSTED_ONLY,
        self_hosted_endpoint="http://127.0.0.1:11434",
    )


@pytest.fixture
def screenflow_config(tmp_path, runtime_config):
    home = tmp_path / "home"
    return ScreenFlowConfig(
        home=home,
        db_path=home / "screenflow.db",
        shared_dir=tmp_path / "inbox",
        engine_version="fake-ocr-v1",
        model=runtime_config,
    )


def make_runtime(config, provider: FakeProvider) -> ModelRuntime:
    return ModelRuntime(config, self_hosted=provider)
