"""Prompt templates mapping OCR specs to model requests."""

from __future__ import annotations

from dataclasses import dataclass

from .ocr import OCRBlockSpec
from .spec import SPEC_SCHEMA_VERSION

DEFAULT_PROMPT_VERSION = "screenflow-spec-v1"

SYSTEM_PROMPT = """You are ScreenFlow's deterministic extraction model.
Return only valid JSON matching ScreenFlowSpec.v1.
Do not include markdown.
Keep unknown values as null."""

_FIELD_GUIDE = """Required top-level fields:
- schemaVersion (must be "ScreenFlowSpec.v1")
- scenario (unknown|job_listing|event_flyer|error_log)
- scenarioConfidence (0...1)
- entities (populate only the group matching the scenario: job, event or error)
- packSuggestions (array of {packId, confidence, bindings})
- modelMeta ({model, promptVersion})"""


@dataclass(slots=True)
class ModelRequest:
    schema_version: str
    prompt_version: str
    ocr_spec: OCRBlockSpec
    system_prompt: str
    user_prompt: str


class PromptMapper:
    """Builds the primary and repair prompts from a canonical OCR spec."""

    def __init__(self, prompt_version: str = DEFAULT_PROMPT_VERSION) -> None:
        self.prompt_version = prompt_version

    def make_request(self, ocr_spec: OCRBlockSpec) -> ModelRequest:
        user_prompt = (
            "Convert this OCRBlockSpec.v1 JSON into ScreenFlowSpec.v1 JSON.\n\n"
            f"{_FIELD_GUIDE}\n\n"
            "OCR input:\n"
            f"{ocr_spec.to_json()}"
        )
        return ModelRequest(
            schema_version=SPEC_SCHEMA_VERSION,
            prompt_version=self.prompt_version,
            ocr_spec=ocr_spec,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=user_prompt,
        )

    def make_repair_request(self, request: ModelRequest, invalid_response: str, reason: str) -> ModelRequest:
        user_prompt = (
            "The previous response was not a valid ScreenFlowSpec.v1 document.\n"
            f"Problem: {reason}\n\n"
            "Return corrected JSON only.\n\n"
            f"{_FIELD_GUIDE}\n\n"
            "OCR input:\n"
            f"{request.ocr_spec.to_json()}\n\n"
            "Invalid response:\n"
            f"{invalid_response}"
        )
        return ModelRequest(
            schema_version=request.schema_version,
            prompt_version=request.prompt_version,
            ocr_spec=request.ocr_spec,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=user_prompt,
        )
