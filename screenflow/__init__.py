"""ScreenFlow turns captured screens into structured intents and action pack runs."""

from .actions import ActionExecutor, ActionOutcome
from .config import ModelRuntimeConfig, ModelRuntimeStrategy, ScreenFlowConfig
from .graph import IntentGraph, build_intent_graph
from .models import ActionRunStatus, ScenarioType, ScreenRecord, ScreenSource
from .packs import CATALOG, PackSelection, all_packs, select_packs, validate_selection
from .pipeline import ProcessResult, ScreenFlow
from .spec import ScreenFlowSpec

__all__ = [
    "ScreenFlow",
    "ProcessResult",
    "ScreenFlowConfig",
    "ModelRuntimeConfig",
    "ModelRuntimeStrategy",
    "ScreenFlowSpec",
    "ScreenRecord",
    "ScreenSource",
    "ScenarioType",
    "ActionRunStatus",
    "IntentGraph",
    "build_intent_graph",
    "CATALOG",
    "PackSelection",
    "all_packs",
    "select_packs",
    "validate_selection",
    "ActionExecutor",
    "ActionOutcome",
]
