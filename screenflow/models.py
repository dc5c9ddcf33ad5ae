"""Persistent record types and shared enumerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .utils import format_timestamp, parse_timestamp, utc_now


class ScreenSource(str, Enum):
    PHOTO_PICKER = "photo_picker"
    SHARE_SHEET = "share_sheet"


class ScenarioType(str, Enum):
    UNKNOWN = "unknown"
    JOB_LISTING = "job_listing"
    EVENT_FLYER = "event_flyer"
    ERROR_LOG = "error_log"

    @classmethod
    def parse(cls, raw: str) -> "ScenarioType":
        """Map a raw scenario string, treating unrecognised values as unknown."""

        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


class ActionRunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ResolutionTier(str, Enum):
    PRIMARY = "primary"
    REPAIR = "repair"
    FALLBACK = "fallback"


def _optional_timestamp(value: Optional[datetime]) -> Optional[str]:
    return format_timestamp(value) if value is not None else None


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


@dataclass(slots=True)
class ScreenRecord:
    """An imported screen, keyed by the hash of its normalized image."""

    id: str
    source: ScreenSource
    image_path: str
    image_width: int
    image_height: int
    processing_version: str
    scenario: ScenarioType = ScenarioType.UNKNOWN
    scenario_confidence: float = 0.0
    created_at: datetime = field(default_factory=utc_now)
    last_opened_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "image_path": self.image_path,
            "image_width": self.image_width,
            "image_height": self.image_height,
            "processing_version": self.processing_version,
            "scenario": self.scenario.value,
            "scenario_confidence": self.scenario_confidence,
            "created_at": format_timestamp(self.created_at),
            "last_opened_at": _optional_timestamp(self.last_opened_at),
        }

    @classmethod
    def from_row(cls, row: Any) -> "ScreenRecord":
        return cls(
            id=row["id"],
            source=ScreenSource(row["source"]),
            image_path=row["image_path"],
            image_width=row["image_width"],
            image_height=row["image_height"],
            processing_version=row["processing_version"],
            scenario=ScenarioType.parse(row["scenario"]),
            scenario_confidence=row["scenario_confidence"],
            created_at=parse_timestamp(row["created_at"]),
            last_opened_at=_optional_datetime(row["last_opened_at"]),
        )


@dataclass(slots=True)
class OCRArtifact:
    id: str
    screen_id: str
    engine_version: str
    blocks_json_path: str
    language_hint: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "screen_id": self.screen_id,
            "engine_version": self.engine_version,
            "blocks_json_path": self.blocks_json_path,
            "language_hint": self.language_hint,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Any) -> "OCRArtifact":
        return cls(
            id=row["id"],
            screen_id=row["screen_id"],
            engine_version=row["engine_version"],
            blocks_json_path=row["blocks_json_path"],
            language_hint=row["language_hint"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass(slots=True)
class LLMResult:
    """Summary of one resolved interpretation and where its artifacts live."""

    id: str
    screen_id: str
    model: str
    prompt_version: str
    resolution: ResolutionTier
    raw_response_json_path: str
    validated_json_path: str
    created_at: datetime = field(default_factory=utc_now)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "screen_id": self.screen_id,
            "model": self.model,
            "prompt_version": self.prompt_version,
            "resolution": self.resolution.value,
            "raw_response_json_path": self.raw_response_json_path,
            "validated_json_path": self.validated_json_path,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Any) -> "LLMResult":
        return cls(
            id=row["id"],
            screen_id=row["screen_id"],
            model=row["model"],
            prompt_version=row["prompt_version"],
            resolution=ResolutionTier(row["resolution"]),
            raw_response_json_path=row["raw_response_json_path"],
            validated_json_path=row["validated_json_path"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass(slots=True)
class ExtractionResult:
    id: str
    screen_id: str
    schema_version: str
    entities_json_path: str
    intent_graph_json_path: str
    user_overrides_json_path: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "screen_id": self.screen_id,
            "schema_version": self.schema_version,
            "entities_json_path": self.entities_json_path,
            "intent_graph_json_path": self.intent_graph_json_path,
            "user_overrides_json_path": self.user_overrides_json_path,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Any) -> "ExtractionResult":
        return cls(
            id=row["id"],
            screen_id=row["screen_id"],
            schema_version=row["schema_version"],
            entities_json_path=row["entities_json_path"],
            intent_graph_json_path=row["intent_graph_json_path"],
            user_overrides_json_path=row["user_overrides_json_path"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass(slots=True)
class ActionPackRun:
    """Outcome of executing one action pack against one screen."""

    id: str
    screen_id: str
    pack_id: str
    pack_version: str
    input_params_json_path: str
    trace_json_path: str
    status: ActionRunStatus
    created_at: datetime = field(default_factory=utc_now)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "screen_id": self.screen_id,
            "pack_id": self.pack_id,
            "pack_version": self.pack_version,
            "input_params_json_path": self.input_params_json_path,
            "trace_json_path": self.trace_json_path,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Any) -> "ActionPackRun":
        return cls(
            id=row["id"],
            screen_id=row["screen_id"],
            pack_id=row["pack_id"],
            pack_version=row["pack_version"],
            input_params_json_path=row["input_params_json_path"],
            trace_json_path=row["trace_json_path"],
            status=ActionRunStatus(row["status"]),
            created_at=parse_timestamp(row["created_at"]),
        )
