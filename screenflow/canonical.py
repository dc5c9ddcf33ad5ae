"""Validation and canonical normalization of ScreenFlowSpec records."""

from __future__ import annotations

import math
from dataclasses import fields
from typing import Any, Dict, List, Optional

from .errors import SpecValidationError
from .models import ScenarioType
from .spec import (
    SPEC_SCHEMA_VERSION,
    ErrorEntities,
    EventEntities,
    JobEntities,
    ModelMeta,
    PackSuggestion,
    SalaryRange,
    ScreenFlowEntities,
    ScreenFlowSpec,
)
from .utils import collapse_whitespace, format_timestamp, parse_iso8601, round_half_away

# which entity group each scenario is allowed to populate
_SCENARIO_GROUP = {
    ScenarioType.JOB_LISTING: "job",
    ScenarioType.EVENT_FLYER: "event",
    ScenarioType.ERROR_LOG: "error",
    ScenarioType.UNKNOWN: None,
}


def canonicalize(spec: ScreenFlowSpec) -> ScreenFlowSpec:
    """Validate ``spec`` and return its canonical form.

    Rejects instead of repairing: a wrong schema version, a confidence that
    would change under clamping to [0, 1], an empty pack id, or an entity
    group that contradicts the scenario all raise ``SpecValidationError``.
    Canonicalizing an already canonical spec returns an equal spec.
    """

    if spec.schema_version != SPEC_SCHEMA_VERSION:
        raise SpecValidationError("schemaVersion", spec.schema_version, "unsupported schema version")

    _require_unit_interval(spec.scenario_confidence, "scenarioConfidence")

    entities = _normalize_entities(spec.entities, spec.scenario)
    suggestions = [
        _normalize_suggestion(suggestion, f"packSuggestions[{index}]")
        for index, suggestion in enumerate(spec.pack_suggestions)
    ]
    suggestions.sort(key=lambda s: (s.pack_id, -s.confidence, len(s.bindings)))

    return ScreenFlowSpec(
        schema_version=spec.schema_version,
        scenario=spec.scenario,
        scenario_confidence=spec.scenario_confidence,
        entities=entities,
        pack_suggestions=suggestions,
        model_meta=ModelMeta(
            model=collapse_whitespace(spec.model_meta.model),
            prompt_version=collapse_whitespace(spec.model_meta.prompt_version),
        ),
    )


def _require_unit_interval(value: float, field: str) -> None:
    if min(1.0, max(0.0, value)) != value:
        raise SpecValidationError(field, value, "confidence outside [0, 1]")


def _normalize_entities(entities: ScreenFlowEntities, scenario: ScenarioType) -> ScreenFlowEntities:
    groups = {
        "job": _normalize_job(entities.job),
        "event": _normalize_event(entities.event),
        "error": _normalize_error(entities.error),
    }
    allowed = _SCENARIO_GROUP[scenario]
    for name, group in list(groups.items()):
        if name == allowed or group is None:
            continue
        if _is_populated(group):
            raise SpecValidationError(
                f"entities.{name}", name, f"entity group does not match scenario {scenario.value!r}"
            )
        groups[name] = None
    return ScreenFlowEntities(job=groups["job"], event=groups["event"], error=groups["error"])


def _is_populated(group: Any) -> bool:
    return any(getattr(group, item.name) is not None for item in fields(group))


def _normalize_job(job: Optional[JobEntities]) -> Optional[JobEntities]:
    if job is None:
        return None
    return JobEntities(
        company=normalize_optional(job.company),
        role=normalize_optional(job.role),
        location=normalize_optional(job.location),
        skills=normalize_string_array(job.skills),
        salary_range=_normalize_salary(job.salary_range),
        link=normalize_optional(job.link),
    )


def _normalize_event(event: Optional[EventEntities]) -> Optional[EventEntities]:
    if event is None:
        return None
    return EventEntities(
        title=normalize_optional(event.title),
        date_time=normalize_date_time(event.date_time),
        venue=normalize_optional(event.venue),
        address=normalize_optional(event.address),
        link=normalize_optional(event.link),
    )


def _normalize_error(error: Optional[ErrorEntities]) -> Optional[ErrorEntities]:
    if error is None:
        return None
    return ErrorEntities(
        error_type=normalize_optional(error.error_type),
        message=normalize_optional(error.message),
        stack_trace=normalize_optional(error.stack_trace),
        tool_name=normalize_optional(error.tool_name),
        file_paths=normalize_string_array(error.file_paths),
    )


def _normalize_salary(salary: Optional[SalaryRange]) -> Optional[SalaryRange]:
    if salary is None:
        return None
    low = _salary_amount(salary.min, "entities.job.salaryRange.min")
    high = _salary_amount(salary.max, "entities.job.salaryRange.max")
    if low is not None and high is not None and low > high:
        low, high = high, low
    currency = normalize_optional(salary.currency)
    return SalaryRange(min=low, max=high, currency=currency.upper() if currency else None)


def _salary_amount(value: Optional[float], field: str) -> Optional[float]:
    if value is None:
        return None
    # cents must stay representable
    if not math.isfinite(value * 100):
        raise SpecValidationError(field, value, "salary amount out of range")
    return round_half_away(value, 2)


def _normalize_suggestion(suggestion: PackSuggestion, field: str) -> PackSuggestion:
    pack_id = collapse_whitespace(suggestion.pack_id)
    if not pack_id:
        raise SpecValidationError(f"{field}.packId", suggestion.pack_id, "pack id is empty")
    _require_unit_interval(suggestion.confidence, f"{field}.confidence")
    bindings: Dict[str, str] = {}
    for key, value in suggestion.bindings.items():
        cleaned_key = collapse_whitespace(key)
        if cleaned_key:
            bindings[cleaned_key] = collapse_whitespace(value)
    return PackSuggestion(pack_id=pack_id, confidence=suggestion.confidence, bindings=bindings)


def normalize_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = collapse_whitespace(value)
    return cleaned or None


def normalize_string_array(values: Optional[List[str]]) -> Optional[List[str]]:
    """Deduplicate and sort; an empty result is reported as absent."""

    if values is None:
        return None
    normalized = {collapse_whitespace(value) for value in values}
    normalized.discard("")
    return sorted(normalized) or None


def normalize_date_time(value: Optional[str]) -> Optional[str]:
    cleaned = normalize_optional(value)
    if cleaned is None:
        return None
    parsed = parse_iso8601(cleaned)
    if parsed is None:
        return cleaned
    return format_timestamp(parsed)
