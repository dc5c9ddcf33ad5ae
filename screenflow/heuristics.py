"""Keyword-based fallback extraction used when the model tiers fail."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from .models import ScenarioType
from .ocr import OCRBlockSpec
from .spec import (
    ErrorEntities,
    EventEntities,
    JobEntities,
    ModelMeta,
    PackSuggestion,
    ScreenFlowEntities,
    ScreenFlowSpec,
)
from .utils import parse_iso8601

FALLBACK_MODEL = "screenflow-heuristic-fallback-v1"
FALLBACK_CONFIDENCE = 0.2

JOB_KEYWORDS = ("job", "role", "salary", "apply", "company", "remote", "experience")
EVENT_KEYWORDS = ("event", "date", "time", "venue", "rsvp", "ticket", "location")
ERROR_KEYWORDS = ("error", "exception", "stack", "trace", "fatal", "warning", "failed")

# ties between nonzero scores resolve in this order
_PRECEDENCE = (
    (ScenarioType.ERROR_LOG, ERROR_KEYWORDS),
    (ScenarioType.JOB_LISTING, JOB_KEYWORDS),
    (ScenarioType.EVENT_FLYER, EVENT_KEYWORDS),
)

_DEFAULT_PACKS: Dict[ScenarioType, str] = {
    ScenarioType.JOB_LISTING: "job_listing.save_tracker",
    ScenarioType.EVENT_FLYER: "event_flyer.add_to_calendar",
    ScenarioType.ERROR_LOG: "error_log.generate_issue_template",
}

_FILE_PATH = re.compile(r"[A-Za-z0-9_./-]+\.(?:swift|m|mm|kt|js|ts|py|java|rb|go|rs)\b")


def make_fallback_spec(ocr_spec: OCRBlockSpec, *, prompt_version: str) -> ScreenFlowSpec:
    """Build a low-confidence spec from OCR lines alone.

    The result always passes canonicalization: entities only ever populate
    the group matching the inferred scenario.
    """

    lines = ocr_spec.lines
    lowered = [line.lower() for line in lines]
    scenario = infer_scenario(lowered)
    suggestions: List[PackSuggestion] = []
    if scenario in _DEFAULT_PACKS:
        suggestions.append(PackSuggestion(pack_id=_DEFAULT_PACKS[scenario], confidence=FALLBACK_CONFIDENCE))
    return ScreenFlowSpec(
        scenario=scenario,
        scenario_confidence=FALLBACK_CONFIDENCE,
        entities=infer_entities(scenario, lines, lowered),
        pack_suggestions=suggestions,
        model_meta=ModelMeta(model=FALLBACK_MODEL, prompt_version=prompt_version),
    )


def score(lines: Sequence[str], keywords: Sequence[str]) -> int:
    return sum(1 for line in lines for keyword in keywords if keyword in line)


def infer_scenario(lowered_lines: Sequence[str]) -> ScenarioType:
    scores = [(scenario, score(lowered_lines, keywords)) for scenario, keywords in _PRECEDENCE]
    best = max(value for _, value in scores)
    if best == 0:
        return ScenarioType.UNKNOWN
    for scenario, value in scores:
        if value == best:
            return scenario
    return ScenarioType.UNKNOWN


def infer_entities(scenario: ScenarioType, lines: Sequence[str], lowered: Sequence[str]) -> ScreenFlowEntities:
    first = lines[0] if lines else None
    if scenario is ScenarioType.JOB_LISTING:
        return ScreenFlowEntities(
            job=JobEntities(
                company=first_line_containing((" at ", "company"), lines, lowered),
                role=first,
                location=first_line_containing(("remote", "location"), lines, lowered),
                link=first_link(lines),
            )
        )
    if scenario is ScenarioType.EVENT_FLYER:
        return ScreenFlowEntities(
            event=EventEntities(
                title=first,
                date_time=first_iso8601(lines),
                venue=first_line_containing(("venue", "location"), lines, lowered),
                link=first_link(lines),
            )
        )
    if scenario is ScenarioType.ERROR_LOG:
        return ScreenFlowEntities(
            error=ErrorEntities(
                error_type=first_line_containing(("error", "exception", "fatal"), lines, lowered),
                message=first,
                tool_name=first_line_containing(("xcode", "android studio", "terminal"), lines, lowered),
                file_paths=extract_file_paths(lines),
            )
        )
    return ScreenFlowEntities()


def first_line_containing(needles: Sequence[str], lines: Sequence[str], lowered: Sequence[str]) -> Optional[str]:
    for line, lower in zip(lines, lowered):
        if any(needle in lower for needle in needles):
            return line
    return None


def first_link(lines: Sequence[str]) -> Optional[str]:
    return next((line for line in lines if "http://" in line or "https://" in line), None)


def first_iso8601(lines: Sequence[str]) -> Optional[str]:
    return next((line for line in lines if parse_iso8601(line) is not None), None)


def extract_file_paths(lines: Sequence[str]) -> Optional[List[str]]:
    matches = {match.group(0) for line in lines for match in _FILE_PATH.finditer(line)}
    return sorted(matches) or None
