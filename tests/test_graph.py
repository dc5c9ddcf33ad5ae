import json

from screenflow.canonical import canonicalize
from screenflow.graph import EdgeType, NodeType, build_intent_graph
from screenflow.models import ScenarioType
from screenflow.spec import ModelMeta, ScreenFlowEntities, ScreenFlowSpec

from conftest import error_spec, job_spec


def test_job_graph_nodes_and_edges():
    graph = build_intent_graph(canonicalize(job_spec()))
    ids = [node.id for node in graph.nodes]
    assert ids == sorted(ids)
    assert "scenario:job_listing" in ids
    assert "entity:job" in ids
    assert "field:entities.job.company" in ids
    assert "field:entities.job.skills[0]" in ids
    assert "field:entities.job.skills[1]" in ids
    assert "field:entities.job.salaryRange.min" in ids

    confidence = graph.node("scenario:confidence")
    assert confidence.type is NodeType.ATTRIBUTE
    assert confidence.number_value == 0.91
    assert graph.node("entity:job").type is NodeType.ENTITY_GROUP
    assert graph.node("field:entities.job.salaryRange.max").number_value == 190000.0
    assert graph.node("field:entities.job.company").string_value == "Acme Corp"

    edges = {edge.id: edge for edge in graph.edges}
    assert edges["edge:scenario:job_listing->entity:job"].type is EdgeType.CONTAINS
    assert edges["edge:scenario:job_listing->scenario:confidence"].type is EdgeType.HAS_ATTRIBUTE
    assert edges["edge:entity:job->field:entities.job.link"].source_id == "entity:job"
    assert [edge.id for edge in graph.edges] == sorted(edges)


def test_each_scalar_field_contributes_one_node():
    graph = build_intent_graph(canonicalize(error_spec()))
    attribute_paths = [node.key_path for node in graph.nodes if node.type is NodeType.ATTRIBUTE]
    assert len(attribute_paths) == len(set(attribute_paths))
    # confidence, errorType, message, toolName, one file path
    assert len(attribute_paths) == 5


def test_graph_json_is_byte_stable():
    first = build_intent_graph(canonicalize(job_spec())).to_json()
    second = build_intent_graph(canonicalize(job_spec())).to_json()
    assert first == second
    payload = json.loads(first)
    assert payload["schemaVersion"] == "IntentGraph.v1"
    assert set(payload["edges"][0]) == {"id", "sourceId", "targetId", "type"}


def test_unknown_spec_has_only_scenario_nodes():
    spec = ScreenFlowSpec(
        scenario=ScenarioType.UNKNOWN,
        scenario_confidence=0.2,
        entities=ScreenFlowEntities(),
        pack_suggestions=[],
        model_meta=ModelMeta(model="m", prompt_version="p"),
    )
    graph = build_intent_graph(spec)
    assert [node.id for node in graph.nodes] == ["scenario:confidence", "scenario:unknown"]
    assert len(graph.edges) == 1
