"""Typed ScreenFlowSpec.v1 records and their JSON decoding."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import SpecDecodeError
from .models import ScenarioType
from .utils import canonical_json

SPEC_SCHEMA_VERSION = "ScreenFlowSpec.v1"


@dataclass(slots=True)
class SalaryRange:
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None


@dataclass(slots=True)
class JobEntities:
    company: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None
    skills: Optional[List[str]] = None
    salary_range: Optional[SalaryRange] = None
    link: Optional[str] = None


@dataclass(slots=True)
class EventEntities:
    title: Optional[str] = None
    date_time: Optional[str] = None
    venue: Optional[str] = None
    address: Optional[str] = None
    link: Optional[str] = None


@dataclass(slots=True)
class ErrorEntities:
    error_type: Optional[str] = None
    message: Optional[str] = None
    stack_trace: Optional[str] = None
    tool_name: Optional[str] = None
    file_paths: Optional[List[str]] = None


@dataclass(slots=True)
class ScreenFlowEntities:
    job: Optional[JobEntities] = None
    event: Optional[EventEntities] = None
    error: Optional[ErrorEntities] = None


@dataclass(slots=True)
class PackSuggestion:
    pack_id: str
    confidence: float
    bindings: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ModelMeta:
    model: str
    prompt_version: str


@dataclass(slots=True)
class ScreenFlowSpec:
    """Structured interpretation of a screen's text."""

    scenario: ScenarioType
    scenario_confidence: float
    entities: ScreenFlowEntities
    pack_suggestions: List[PackSuggestion]
    model_meta: ModelMeta
    schema_version: str = SPEC_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "scenario": self.scenario.value,
            "scenarioConfidence": self.scenario_confidence,
            "entities": _entities_to_dict(self.entities),
            "packSuggestions": [
                {"packId": s.pack_id, "confidence": s.confidence, "bindings": dict(s.bindings)}
                for s in self.pack_suggestions
            ],
            "modelMeta": {
                "model": self.model_meta.model,
                "promptVersion": self.model_meta.prompt_version,
            },
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> "ScreenFlowSpec":
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise SpecDecodeError("$", text[:200], f"not valid JSON: {exc}") from exc
        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, payload: Any) -> "ScreenFlowSpec":
        root = _expect_object(payload, "$")
        schema_version = _required(root, "schemaVersion", "$")
        if not isinstance(schema_version, str):
            raise SpecDecodeError("schemaVersion", schema_version, "expected string")
        scenario_raw = _required(root, "scenario", "$")
        if not isinstance(scenario_raw, str):
            raise SpecDecodeError("scenario", scenario_raw, "expected string")
        confidence = _number(_required(root, "scenarioConfidence", "$"), "scenarioConfidence")
        entities = _decode_entities(_required(root, "entities", "$"))

        suggestions_raw = _required(root, "packSuggestions", "$")
        if not isinstance(suggestions_raw, list):
            raise SpecDecodeError("packSuggestions", suggestions_raw, "expected array")
        suggestions = [
            _decode_suggestion(item, f"packSuggestions[{index}]")
            for index, item in enumerate(suggestions_raw)
        ]

        meta = _expect_object(_required(root, "modelMeta", "$"), "modelMeta")
        model = _required(meta, "model", "modelMeta")
        prompt_version = _required(meta, "promptVersion", "modelMeta")
        if not isinstance(model, str):
            raise SpecDecodeError("modelMeta.model", model, "expected string")
        if not isinstance(prompt_version, str):
            raise SpecDecodeError("modelMeta.promptVersion", prompt_version, "expected string")

        return cls(
            scenario=ScenarioType.parse(scenario_raw),
            scenario_confidence=confidence,
            entities=entities,
            pack_suggestions=suggestions,
            model_meta=ModelMeta(model=model, prompt_version=prompt_version),
            schema_version=schema_version,
        )


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def _entities_to_dict(entities: ScreenFlowEntities) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if entities.job is not None:
        job = entities.job
        salary = None
        if job.salary_range is not None:
            salary = _drop_none(
                {
                    "min": job.salary_range.min,
                    "max": job.salary_range.max,
                    "currency": job.salary_range.currency,
                }
            )
        payload["job"] = _drop_none(
            {
                "company": job.company,
                "role": job.role,
                "location": job.location,
                "skills": job.skills,
                "salaryRange": salary,
                "link": job.link,
            }
        )
    if entities.event is not None:
        event = entities.event
        payload["event"] = _drop_none(
            {
                "title": event.title,
                "dateTime": event.date_time,
                "venue": event.venue,
                "address": event.address,
                "link": event.link,
            }
        )
    if entities.error is not None:
        error = entities.error
        payload["error"] = _drop_none(
            {
                "errorType": error.error_type,
                "message": error.message,
                "stackTrace": error.stack_trace,
                "toolName": error.tool_name,
                "filePaths": error.file_paths,
            }
        )
    return payload


def _expect_object(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise SpecDecodeError(path, value, "expected object")
    return value


def _required(payload: Mapping[str, Any], key: str, parent: str) -> Any:
    if key not in payload:
        path = key if parent == "$" else f"{parent}.{key}"
        raise SpecDecodeError(path, None, "missing required field")
    return payload[key]


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SpecDecodeError(path, value, "expected number")
    try:
        number = float(value)
    except OverflowError:
        raise SpecDecodeError(path, value, "number out of range") from None
    if not math.isfinite(number):
        raise SpecDecodeError(path, value, "expected finite number")
    return number


def _optional_number(payload: Mapping[str, Any], key: str, path: str) -> Optional[float]:
    value = payload.get(key)
    if value is None:
        return None
    return _number(value, f"{path}.{key}")


def _optional_str(payload: Mapping[str, Any], key: str, path: str) -> Optional[str]:
    value = payload.get(key)
    if value is None or isinstance(value, str):
        return value
    raise SpecDecodeError(f"{path}.{key}", value, "expected string")


def _optional_str_list(payload: Mapping[str, Any], key: str, path: str) -> Optional[List[str]]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise SpecDecodeError(f"{path}.{key}", value, "expected array of strings")
    return list(value)


def _decode_entities(value: Any) -> ScreenFlowEntities:
    root = _expect_object(value, "entities")
    job = event = error = None

    if root.get("job") is not None:
        raw = _expect_object(root["job"], "entities.job")
        path = "entities.job"
        salary = None
        if raw.get("salaryRange") is not None:
            salary_raw = _expect_object(raw["salaryRange"], f"{path}.salaryRange")
            salary_path = f"{path}.salaryRange"
            salary = SalaryRange(
                min=_optional_number(salary_raw, "min", salary_path),
                max=_optional_number(salary_raw, "max", salary_path),
                currency=_optional_str(salary_raw, "currency", salary_path),
            )
        job = JobEntities(
            company=_optional_str(raw, "company", path),
            role=_optional_str(raw, "role", path),
            location=_optional_str(raw, "location", path),
            skills=_optional_str_list(raw, "skills", path),
            salary_range=salary,
            link=_optional_str(raw, "link", path),
        )

    if root.get("event") is not None:
        raw = _expect_object(root["event"], "entities.event")
        path = "entities.event"
        event = EventEntities(
            title=_optional_str(raw, "title", path),
            date_time=_optional_str(raw, "dateTime", path),
            venue=_optional_str(raw, "venue", path),
            address=_optional_str(raw, "address", path),
            link=_optional_str(raw, "link", path),
        )

    if root.get("error") is not None:
        raw = _expect_object(root["error"], "entities.error")
        path = "entities.error"
        error = ErrorEntities(
            error_type=_optional_str(raw, "errorType", path),
            message=_optional_str(raw, "message", path),
            stack_trace=_optional_str(raw, "stackTrace", path),
            tool_name=_optional_str(raw, "toolName", path),
            file_paths=_optional_str_list(raw, "filePaths", path),
        )

    return ScreenFlowEntities(job=job, event=event, error=error)


def _decode_suggestion(value: Any, path: str) -> PackSuggestion:
    raw = _expect_object(value, path)
    pack_id = _required(raw, "packId", path)
    if not isinstance(pack_id, str):
        raise SpecDecodeError(f"{path}.packId", pack_id, "expected string")
    confidence = _number(_required(raw, "confidence", path), f"{path}.confidence")
    bindings_raw = _expect_object(_required(raw, "bindings", path), f"{path}.bindings")
    bindings: Dict[str, str] = {}
    for key, binding in bindings_raw.items():
        if not isinstance(binding, str):
            raise SpecDecodeError(f"{path}.bindings.{key}", binding, "expected string")
        bindings[key] = binding
    return PackSuggestion(pack_id=pack_id, confidence=confidence, bindings=bindings)
