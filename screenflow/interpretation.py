"""Three-tier resolution of a ScreenFlowSpec from OCR text.

Each tier takes the request and the previous tier's ``Unresolved`` state and
returns either ``Resolved`` or a new ``Unresolved``. The orchestrator folds
over primary, repair and fallback in order and stops at the first resolution.
The fallback tier always resolves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from .canonical import canonicalize
from .errors import ModelRuntimeError, ResolutionError, SpecDecodeError, SpecValidationError
from .heuristics import FALLBACK_MODEL, make_fallback_spec
from .models import LLMResult, ResolutionTier, ScreenRecord
from .ocr import OCRBlockSpec
from .persistence import ArtifactStore
from .prompts import ModelRequest, PromptMapper
from .repository import RecordRepository
from .runtime import ModelRuntime
from .spec import ScreenFlowSpec

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Resolved:
    spec: ScreenFlowSpec
    tier: ResolutionTier
    model: str
    raw_response_text: str


@dataclass(slots=True)
class Unresolved:
    raw_response_text: Optional[str] = None
    reason: Optional[str] = None


Tier = Callable[[ModelRequest, Unresolved], Union[Resolved, Unresolved]]


@dataclass(slots=True)
class InterpretationOutcome:
    screen: ScreenRecord
    llm_result: LLMResult
    spec: ScreenFlowSpec
    resolution: ResolutionTier


class ModelOrchestrator:
    """Resolves a canonical spec with at most one provider call per tier."""

    def __init__(self, runtime: ModelRuntime, prompt_mapper: PromptMapper | None = None) -> None:
        self.runtime = runtime
        self.prompt_mapper = prompt_mapper or PromptMapper(runtime.config.prompt_version)

    @property
    def tiers(self) -> List[Tier]:
        return [self._primary, self._repair, self._fallback]

    def resolve(self, ocr_spec: OCRBlockSpec) -> Resolved:
        request = self.prompt_mapper.make_request(ocr_spec)
        state = Unresolved()
        for tier in self.tiers:
            result = tier(request, state)
            if isinstance(result, Resolved):
                return result
            state = result
        raise ResolutionError(f"no tier resolved a spec: {state.reason}")

    def _primary(self, request: ModelRequest, previous: Unresolved) -> Union[Resolved, Unresolved]:
        return self._attempt(request, ResolutionTier.PRIMARY)

    def _repair(self, request: ModelRequest, previous: Unresolved) -> Union[Resolved, Unresolved]:
        if previous.raw_response_text is None:
            logger.debug("Skipping repair tier: no response to repair")
            return previous
        repair_request = self.prompt_mapper.make_repair_request(
            request, previous.raw_response_text, previous.reason or "invalid response"
        )
        return self._attempt(repair_request, ResolutionTier.REPAIR)

    def _fallback(self, request: ModelRequest, previous: Unresolved) -> Resolved:
        spec = canonicalize(make_fallback_spec(request.ocr_spec, prompt_version=request.prompt_version))
        logger.info("Using heuristic fallback (scenario %s)", spec.scenario.value)
        return Resolved(
            spec=spec,
            tier=ResolutionTier.FALLBACK,
            model=FALLBACK_MODEL,
            raw_response_text=spec.to_json(),
        )

    def _attempt(self, request: ModelRequest, tier: ResolutionTier) -> Union[Resolved, Unresolved]:
        try:
            output = self.runtime.run(request)
        except ModelRuntimeError as exc:
            logger.warning("%s tier model call failed: %s", tier.value, exc)
            return Unresolved(reason=str(exc))
        try:
            spec = canonicalize(ScreenFlowSpec.from_json(output.raw_response_text))
        except (SpecDecodeError, SpecValidationError) as exc:
            logger.warning("%s tier returned an invalid spec: %s", tier.value, exc)
            return Unresolved(raw_response_text=output.raw_response_text, reason=str(exc))
        return Resolved(spec=spec, tier=tier, model=output.model, raw_response_text=output.raw_response_text)


class InterpretationService:
    """Resolves a screen's spec, stores the model artifacts and updates the screen."""

    def __init__(
        self,
        orchestrator: ModelOrchestrator,
        artifacts: ArtifactStore,
        repository: RecordRepository,
    ) -> None:
        self.orchestrator = orchestrator
        self.artifacts = artifacts
        self.repository = repository

    def interpret(self, ocr_spec: OCRBlockSpec, screen: ScreenRecord) -> InterpretationOutcome:
        resolved = self.orchestrator.resolve(ocr_spec)
        llm_result = self.artifacts.persist_llm(
            screen.id,
            model=resolved.model,
            prompt_version=self.orchestrator.prompt_mapper.prompt_version,
            resolution=resolved.tier,
            raw_response_text=resolved.raw_response_text,
            validated_spec=resolved.spec,
        )
        screen.scenario = resolved.spec.scenario
        screen.scenario_confidence = resolved.spec.scenario_confidence
        updated = self.repository.upsert(screen)
        logger.info(
            "Interpreted screen %s as %s (%.2f) via %s tier",
            screen.id,
            resolved.spec.scenario.value,
            resolved.spec.scenario_confidence,
            resolved.tier.value,
        )
        return InterpretationOutcome(
            screen=updated, llm_result=llm_result, spec=resolved.spec, resolution=resolved.tier
        )
