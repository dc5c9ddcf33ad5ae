"""Projection of a canonical ScreenFlowSpec into a node/edge intent graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .spec import ScreenFlowSpec
from .utils import canonical_json

GRAPH_SCHEMA_VERSION = "IntentGraph.v1"


class NodeType(str, Enum):
    SCENARIO = "scenario"
    ENTITY_GROUP = "entity_group"
    ATTRIBUTE = "attribute"


class EdgeType(str, Enum):
    CONTAINS = "contains"
    HAS_ATTRIBUTE = "has_attribute"


@dataclass(frozen=True, slots=True)
class IntentGraphNode:
    id: str
    type: NodeType
    key_path: str
    string_value: Optional[str] = None
    number_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "type": self.type.value, "keyPath": self.key_path}
        if self.string_value is not None:
            payload["stringValue"] = self.string_value
        if self.number_value is not None:
            payload["numberValue"] = self.number_value
        return payload


@dataclass(frozen=True, slots=True)
class IntentGraphEdge:
    id: str
    source_id: str
    target_id: str
    type: EdgeType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "type": self.type.value,
        }


@dataclass(slots=True)
class IntentGraph:
    nodes: List[IntentGraphNode] = field(default_factory=list)
    edges: List[IntentGraphEdge] = field(default_factory=list)
    schema_version: str = GRAPH_SCHEMA_VERSION

    def node(self, node_id: str) -> Optional[IntentGraphNode]:
        return next((node for node in self.nodes if node.id == node_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())


class _GraphBuilder:
    def __init__(self) -> None:
        self.nodes: Dict[str, IntentGraphNode] = {}
        self.edges: Dict[str, IntentGraphEdge] = {}

    def add(self, node: IntentGraphNode, parent_id: Optional[str] = None, edge_type: EdgeType = EdgeType.HAS_ATTRIBUTE) -> str:
        self.nodes[node.id] = node
        if parent_id is not None:
            edge_id = f"edge:{parent_id}->{node.id}"
            self.edges[edge_id] = IntentGraphEdge(edge_id, parent_id, node.id, edge_type)
        return node.id

    def attribute(self, key_path: str, value: Any, parent_id: str) -> None:
        if isinstance(value, dict):
            for key in sorted(value):
                self.attribute(f"{key_path}.{key}", value[key], parent_id)
        elif isinstance(value, list):
            for index, item in enumerate(value):
                self.attribute(f"{key_path}[{index}]", item, parent_id)
        elif isinstance(value, str):
            self.add(IntentGraphNode(f"field:{key_path}", NodeType.ATTRIBUTE, key_path, string_value=value), parent_id)
        elif value is not None:
            self.add(
                IntentGraphNode(f"field:{key_path}", NodeType.ATTRIBUTE, key_path, number_value=float(value)),
                parent_id,
            )

    def build(self) -> IntentGraph:
        return IntentGraph(
            nodes=[self.nodes[key] for key in sorted(self.nodes)],
            edges=[self.edges[key] for key in sorted(self.edges)],
        )


def build_intent_graph(spec: ScreenFlowSpec) -> IntentGraph:
    """Project ``spec`` into a graph whose ids derive from key paths.

    One scenario node carries a confidence attribute; every populated entity
    group hangs off the scenario with a ``contains`` edge, and each non-null
    field becomes an attribute node. Array fields expand to one node per
    element with an indexed key path. Output is sorted by id, so equal specs
    always serialize to identical bytes.
    """

    builder = _GraphBuilder()
    scenario_id = builder.add(
        IntentGraphNode(
            f"scenario:{spec.scenario.value}",
            NodeType.SCENARIO,
            "scenario",
            string_value=spec.scenario.value,
        )
    )
    builder.add(
        IntentGraphNode(
            "scenario:confidence",
            NodeType.ATTRIBUTE,
            "scenarioConfidence",
            number_value=spec.scenario_confidence,
        ),
        scenario_id,
    )

    entities = spec.to_dict()["entities"]
    for group in sorted(entities):
        group_path = f"entities.{group}"
        group_id = builder.add(
            IntentGraphNode(f"entity:{group}", NodeType.ENTITY_GROUP, group_path),
            scenario_id,
            EdgeType.CONTAINS,
        )
        fields = entities[group]
        for key in sorted(fields):
            builder.attribute(f"{group_path}.{key}", fields[key], group_id)
    return builder.build()
