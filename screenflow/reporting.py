"""Plain-text reports for the command line."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .actions import ActionOutcome
from .models import ActionPackRun, ActionRunStatus, ScreenRecord
from .packs import ActionPackDefinition, PackSelection
from .utils import format_timestamp


@dataclass(slots=True)
class Report:
    title: str
    summary_lines: List[str]

    def render_text(self) -> str:
        return "\n".join([self.title, "-" * len(self.title), *self.summary_lines])


def history_report(screens: Sequence[ScreenRecord], runs: Iterable[ActionPackRun]) -> Report:
    if not screens:
        return Report(title="ScreenFlow History", summary_lines=["No screens imported."])
    runs_by_screen: dict[str, List[ActionPackRun]] = {}
    for run in runs:
        runs_by_screen.setdefault(run.screen_id, []).append(run)
    scenarios = Counter(screen.scenario.value for screen in screens)
    lines = [f"Screens: {len(screens)}"]
    for scenario, count in scenarios.most_common():
        lines.append(f"- {scenario}: {count}")
    for screen in screens:
        lines.append(
            f"{format_timestamp(screen.created_at)} {screen.id[:12]} "
            f"{screen.scenario.value} ({screen.scenario_confidence:.2f}) via {screen.source.value}"
        )
        screen_runs = runs_by_screen.get(screen.id, [])
        failed = sum(1 for run in screen_runs if run.status is ActionRunStatus.FAILED)
        for run in screen_runs:
            lines.append(f"    {run.pack_id}@{run.pack_version}: {run.status.value}")
        if failed:
            lines.append(f"    {failed} failed run(s)")
    return Report(title="ScreenFlow History", summary_lines=lines)


def selection_report(screen: ScreenRecord, selections: Sequence[PackSelection]) -> Report:
    title = f"Screen {screen.id[:12]}: {screen.scenario.value} ({screen.scenario_confidence:.2f})"
    if not selections:
        return Report(title=title, summary_lines=["No action packs available."])
    lines = []
    for selection in selections:
        suffix = f" [{len(selection.suggested_bindings)} suggested bindings]" if selection.suggested_bindings else ""
        lines.append(f"- {selection.pack.id}{suffix}")
    return Report(title=title, summary_lines=lines)


def catalog_report(packs: Sequence[ActionPackDefinition]) -> Report:
    lines = []
    for pack in packs:
        required = ", ".join(req.key for req in pack.required_bindings)
        lines.append(f"- {pack.id}@{pack.version} ({pack.scenario.value}) requires {required}")
    return Report(title="Action Packs", summary_lines=lines)


def run_report(outcome: ActionOutcome) -> Report:
    trace = outcome.trace
    lines = [f"Status: {trace.status.value}", f"Run: {trace.run_id}"]
    for step in trace.steps:
        detail = step.output_path or step.message or ""
        lines.append(f"- {step.step_id}: {step.status.value} {detail}".rstrip())
    return Report(title=f"{trace.pack_id}@{trace.pack_version}", summary_lines=lines)
