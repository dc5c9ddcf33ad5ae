"""Execution of validated action packs with an auditable trace."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import ActionPackExecutionError, StepTemplateMissingError
from .models import ActionPackRun, ActionRunStatus
from .packs import PackSelection, PackStep, StepType, validate_selection
from .repository import RecordRepository
from .spec import ScreenFlowSpec
from .storage import StoragePaths, StorageSubdirectory, write_json_artifact, write_text_atomic
from .utils import canonical_json, content_id, format_timestamp, utc_now

logger = logging.getLogger(__name__)

TRACE_SCHEMA_VERSION = "action-pack-trace.v1"
_RUN_NAMESPACE = "action-pack-run-v1"


@dataclass(slots=True)
class StepTrace:
    step_id: str
    status: ActionRunStatus
    output_path: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"stepId": self.step_id, "status": self.status.value}
        if self.output_path is not None:
            payload["outputPath"] = self.output_path
        if self.message is not None:
            payload["message"] = self.message
        return payload


@dataclass(slots=True)
class ExecutionTrace:
    run_id: str
    screen_id: str
    pack_id: str
    pack_version: str
    started_at: datetime
    finished_at: datetime
    status: ActionRunStatus
    steps: List[StepTrace] = field(default_factory=list)
    schema_version: str = TRACE_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "runId": self.run_id,
            "screenId": self.screen_id,
            "packId": self.pack_id,
            "packVersion": self.pack_version,
            "startedAt": format_timestamp(self.started_at),
            "finishedAt": format_timestamp(self.finished_at),
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
        }


@dataclass(slots=True)
class ActionOutcome:
    run: ActionPackRun
    trace: ExecutionTrace
    bindings: Dict[str, str]


def make_run_id(screen_id: str, pack_id: str, pack_version: str, bindings: Dict[str, str], created_at: datetime) -> str:
    """Content-addressed run id; identical inputs at the same instant collide."""

    return content_id(
        _RUN_NAMESPACE,
        screen_id,
        pack_id,
        pack_version,
        canonical_json(bindings),
        json.dumps(format_timestamp(created_at)),
    )


def render_template(template: str, bindings: Dict[str, str]) -> str:
    rendered = template
    for key in sorted(bindings):
        rendered = rendered.replace("{{" + key + "}}", bindings[key])
    return rendered


class ActionExecutor:
    """Runs the steps of a selected pack and records the outcome.

    Validation errors propagate to the caller. Once bindings validate, step
    failures are recorded in the trace and the run is marked failed instead
    of raising.
    """

    def __init__(
        self,
        paths: StoragePaths,
        repository: RecordRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.paths = paths
        self.repository = repository
        self.clock = clock

    def execute(
        self,
        selection: PackSelection,
        spec: ScreenFlowSpec,
        screen_id: str,
        created_at: datetime | None = None,
    ) -> ActionOutcome:
        validated = validate_selection(selection, spec)
        pack = selection.pack
        created_at = created_at or self.clock()
        bindings = validated.bindings
        run_id = make_run_id(screen_id, pack.id, pack.version, bindings, created_at)

        input_path = self.paths.artifact_path(StorageSubdirectory.RUNS, run_id, "input.json")
        trace_path = self.paths.artifact_path(StorageSubdirectory.RUNS, run_id, "trace.json")
        write_json_artifact(input_path, bindings)

        status = ActionRunStatus.SUCCESS
        steps: List[StepTrace] = []
        for step in pack.steps:
            try:
                output = self._run_step(step, bindings, run_id)
            except (ActionPackExecutionError, OSError) as exc:
                logger.warning("Step %s of %s failed: %s", step.id, pack.id, exc)
                status = ActionRunStatus.FAILED
                steps.append(StepTrace(step.id, ActionRunStatus.FAILED, message=str(exc)))
                break
            logger.debug("Step %s of %s wrote %s", step.id, pack.id, output)
            steps.append(StepTrace(step.id, ActionRunStatus.SUCCESS, output_path=str(output)))

        trace = ExecutionTrace(
            run_id=run_id,
            screen_id=screen_id,
            pack_id=pack.id,
            pack_version=pack.version,
            started_at=created_at,
            finished_at=self.clock(),
            status=status,
            steps=steps,
        )
        write_json_artifact(trace_path, trace.to_dict())

        run = self.repository.upsert(
            ActionPackRun(
                id=run_id,
                screen_id=screen_id,
                pack_id=pack.id,
                pack_version=pack.version,
                input_params_json_path=str(input_path),
                trace_json_path=str(trace_path),
                status=status,
                created_at=created_at,
            )
        )
        logger.info("Action pack %s finished with %s (run %s)", pack.id, status.value, run_id)
        return ActionOutcome(run=run, trace=trace, bindings=bindings)

    def _run_step(self, step: PackStep, bindings: Dict[str, str], run_id: str) -> Path:
        destination = self.paths.path_for(StorageSubdirectory.RUNS) / f"{run_id}.{step.output_file_name}"
        if step.type is StepType.RENDER_TEXT_TEMPLATE:
            if step.template is None:
                raise StepTemplateMissingError(step.id)
            return write_text_atomic(destination, render_template(step.template, bindings))
        return write_json_artifact(destination, bindings)
