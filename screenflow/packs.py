"""Action pack catalog, selection and binding validation."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .canonical import normalize_optional
from .errors import (
    FailedPreconditionError,
    InvalidBindingTypeError,
    MissingRequiredBindingError,
    ScenarioMismatchError,
)
from .models import ScenarioType
from .spec import ScreenFlowSpec
from .utils import collapse_whitespace

logger = logging.getLogger(__name__)


class BindingValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"


class StepType(str, Enum):
    RENDER_TEXT_TEMPLATE = "render_text_template"
    EXPORT_BINDINGS_JSON = "export_bindings_json"


@dataclass(frozen=True, slots=True)
class BindingRequirement:
    key: str
    value_type: BindingValueType = BindingValueType.STRING


@dataclass(frozen=True, slots=True)
class Precondition:
    key: str
    contains: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PackStep:
    id: str
    type: StepType
    output_file_name: str
    template: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ActionPackDefinition:
    id: str
    version: str
    scenario: ScenarioType
    required_bindings: Tuple[BindingRequirement, ...]
    optional_binding_keys: Tuple[str, ...] = ()
    preconditions: Tuple[Precondition, ...] = ()
    steps: Tuple[PackStep, ...] = ()

    @property
    def binding_keys(self) -> Tuple[str, ...]:
        return tuple(req.key for req in self.required_bindings) + self.optional_binding_keys


CATALOG: Tuple[ActionPackDefinition, ...] = (
    ActionPackDefinition(
        id="job_listing.save_tracker",
        version="1.0.0",
        scenario=ScenarioType.JOB_LISTING,
        required_bindings=(BindingRequirement("job.company"), BindingRequirement("job.role")),
        optional_binding_keys=(
            "job.location",
            "job.link",
            "job.salaryRange.min",
            "job.salaryRange.max",
            "job.salaryRange.currency",
        ),
        steps=(PackStep("save-job-json", StepType.EXPORT_BINDINGS_JSON, "job-tracker.json"),),
    ),
    ActionPackDefinition(
        id="job_listing.draft_application_email",
        version="1.0.0",
        scenario=ScenarioType.JOB_LISTING,
        required_bindings=(BindingRequirement("job.company"), BindingRequirement("job.role")),
        optional_binding_keys=("job.skills", "job.location", "job.link"),
        steps=(
            PackStep(
                "render-email-outline",
                StepType.RENDER_TEXT_TEMPLATE,
                "application-email-outline.txt",
                template=(
                    "Application Draft\n"
                    "Company: {{job.company}}\n"
                    "Role: {{job.role}}\n"
                    "Location: {{job.location}}\n"
                    "Skills: {{job.skills}}\n"
                    "Link: {{job.link}}"
                ),
            ),
        ),
    ),
    ActionPackDefinition(
        id="event_flyer.add_to_calendar",
        version="1.0.0",
        scenario=ScenarioType.EVENT_FLYER,
        required_bindings=(BindingRequirement("event.title"), BindingRequirement("event.dateTime")),
        optional_binding_keys=("event.venue", "event.address", "event.link"),
        steps=(
            PackStep(
                "render-calendar-request",
                StepType.RENDER_TEXT_TEMPLATE,
                "calendar-request.txt",
                template=(
                    "Calendar Request\n"
                    "Title: {{event.title}}\n"
                    "DateTime: {{event.dateTime}}\n"
                    "Venue: {{event.venue}}\n"
                    "Address: {{event.address}}\n"
                    "Link: {{event.link}}"
                ),
            ),
        ),
    ),
    ActionPackDefinition(
        id="event_flyer.create_share_card",
        version="1.0.0",
        scenario=ScenarioType.EVENT_FLYER,
        required_bindings=(BindingRequirement("event.title"),),
        optional_binding_keys=("event.dateTime", "event.venue", "event.address"),
        steps=(
            PackStep(
                "render-share-card",
                StepType.RENDER_TEXT_TEMPLATE,
                "share-card.txt",
                template="{{event.title}}\n{{event.dateTime}}\n{{event.venue}}\n{{event.address}}",
            ),
        ),
    ),
    ActionPackDefinition(
        id="error_log.generate_issue_template",
        version="1.0.0",
        scenario=ScenarioType.ERROR_LOG,
        required_bindings=(BindingRequirement("error.message"),),
        optional_binding_keys=("error.errorType", "error.toolName", "error.filePaths", "error.stackTrace"),
        steps=(
            PackStep(
                "render-issue-template",
                StepType.RENDER_TEXT_TEMPLATE,
                "issue-template.md",
                template=(
                    "# Error Report\n"
                    "Type: {{error.errorType}}\n"
                    "Tool: {{error.toolName}}\n"
                    "Message: {{error.message}}\n"
                    "Files: {{error.filePaths}}\n"
                    "\n"
                    "## Stack Trace\n"
                    "{{error.stackTrace}}"
                ),
            ),
        ),
    ),
    ActionPackDefinition(
        id="error_log.create_debug_checklist",
        version="1.0.0",
        scenario=ScenarioType.ERROR_LOG,
        required_bindings=(BindingRequirement("error.message"),),
        optional_binding_keys=("error.filePaths",),
        steps=(
            PackStep(
                "render-debug-checklist",
                StepType.RENDER_TEXT_TEMPLATE,
                "debug-checklist.txt",
                template=(
                    "Debug Checklist\n"
                    "[ ] Reproduce error: {{error.message}}\n"
                    "[ ] Inspect files: {{error.filePaths}}\n"
                    "[ ] Add test case\n"
                    "[ ] Verify fix"
                ),
            ),
        ),
    ),
)


def all_packs(registry: Iterable[ActionPackDefinition] = CATALOG) -> List[ActionPackDefinition]:
    return sorted(registry, key=lambda pack: pack.id)


def find_pack(pack_id: str, registry: Iterable[ActionPackDefinition] = CATALOG) -> Optional[ActionPackDefinition]:
    return next((pack for pack in registry if pack.id == pack_id), None)


@dataclass(frozen=True, slots=True)
class PackSelection:
    pack: ActionPackDefinition
    suggested_bindings: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ValidatedBindings:
    bindings: Dict[str, str]


def select_packs(
    spec: ScreenFlowSpec, registry: Sequence[ActionPackDefinition] = CATALOG
) -> List[PackSelection]:
    """Rank the packs eligible for ``spec``.

    Suggested packs come first, ordered by confidence then id and carrying
    their suggested bindings. Every other pack for the scenario follows in
    registry order with no bindings. Each pack id appears at most once.
    """

    eligible = [pack for pack in registry if pack.scenario is spec.scenario]
    by_id = {pack.id: pack for pack in eligible}
    selected: List[PackSelection] = []
    seen: set[str] = set()
    for suggestion in sorted(spec.pack_suggestions, key=lambda s: (-s.confidence, s.pack_id)):
        pack = by_id.get(suggestion.pack_id)
        if pack is None or pack.id in seen:
            continue
        seen.add(pack.id)
        selected.append(PackSelection(pack=pack, suggested_bindings=dict(suggestion.bindings)))
    for pack in eligible:
        if pack.id not in seen:
            seen.add(pack.id)
            selected.append(PackSelection(pack=pack))
    logger.debug("Selected %d packs for scenario %s", len(selected), spec.scenario.value)
    return selected


def resolve_bindings(spec: ScreenFlowSpec) -> Dict[str, str]:
    """Flatten entity fields into dotted binding keys; absent values map to ""."""

    bindings: Dict[str, str] = {}
    job = spec.entities.job
    if job is not None:
        bindings["job.company"] = _text(job.company)
        bindings["job.role"] = _text(job.role)
        bindings["job.location"] = _text(job.location)
        bindings["job.skills"] = _joined(job.skills)
        bindings["job.link"] = _text(job.link)
        if job.salary_range is not None:
            salary = job.salary_range
            bindings["job.salaryRange.min"] = str(salary.min) if salary.min is not None else ""
            bindings["job.salaryRange.max"] = str(salary.max) if salary.max is not None else ""
            bindings["job.salaryRange.currency"] = _text(salary.currency)
    event = spec.entities.event
    if event is not None:
        bindings["event.title"] = _text(event.title)
        bindings["event.dateTime"] = _text(event.date_time)
        bindings["event.venue"] = _text(event.venue)
        bindings["event.address"] = _text(event.address)
        bindings["event.link"] = _text(event.link)
    error = spec.entities.error
    if error is not None:
        bindings["error.errorType"] = _text(error.error_type)
        bindings["error.message"] = _text(error.message)
        bindings["error.stackTrace"] = _text(error.stack_trace)
        bindings["error.toolName"] = _text(error.tool_name)
        bindings["error.filePaths"] = _joined(error.file_paths)
    return bindings


def validate_selection(selection: PackSelection, spec: ScreenFlowSpec) -> ValidatedBindings:
    pack = selection.pack
    if pack.scenario is not spec.scenario:
        raise ScenarioMismatchError(pack.scenario.value, spec.scenario.value)

    merged = resolve_bindings(spec)
    for key, value in selection.suggested_bindings.items():
        merged[key] = collapse_whitespace(value)

    for requirement in pack.required_bindings:
        value = merged.get(requirement.key, "")
        if not value:
            raise MissingRequiredBindingError(requirement.key)
        if requirement.value_type is BindingValueType.NUMBER and not _is_number(value):
            raise InvalidBindingTypeError(requirement.key, requirement.value_type.value)

    for precondition in pack.preconditions:
        if precondition.contains is None:
            continue
        actual = merged.get(precondition.key, "")
        if precondition.contains.casefold() not in actual.casefold():
            raise FailedPreconditionError(precondition.key, precondition.contains)

    allowed = set(pack.binding_keys)
    bindings = {
        key: collapse_whitespace(value)
        for key, value in merged.items()
        if key in allowed and value
    }
    return ValidatedBindings(bindings=bindings)


def _text(value: Optional[str]) -> str:
    return normalize_optional(value) or ""


def _joined(values: Optional[List[str]]) -> str:
    if not values:
        return ""
    return ", ".join(cleaned for cleaned in (collapse_whitespace(v) for v in values) if cleaned)


_DECIMAL = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _is_number(value: str) -> bool:
    # plain decimal literals only: no digit separators, padding or inf/nan
    return _DECIMAL.fullmatch(value) is not None and math.isfinite(float(value))
