from __future__ import annotations

from typing import Any, Dict, List

from permit_cli.graph.assemble import generate_graph_data
from permit_cli.graph.identity import build_identity_index
from permit_cli.graph.model import GraphData, ResourceInstance
from permit_cli.graph.relationships import normalize_relationships
from permit_cli.graph.roles import flatten_role_assignments


def _build(resources: List[Dict[str, Any]], users: List[Dict[str, Any]], edge_mode: str = "canonical") -> GraphData:
    instances = [ResourceInstance.from_api(r) for r in resources]
    index = build_identity_index(instances)
    relationships = normalize_relationships(instances, index)
    assignments = flatten_role_assignments(users, index)
    return generate_graph_data(instances, relationships, assignments, edge_mode=edge_mode)


def _assert_invariants(graph: GraphData) -> None:
    ids = graph.node_ids()
    assert len(ids) == len(set(ids))
    for edge in graph.edges:
        assert edge.source in ids
        assert edge.target in ids
        if edge.classes == "relationship-connection":
            assert edge.source != edge.target


DOC = {
    "id": "A",
    "resource": "document",
    "resource_id": "doc-type",
    "key": "d1",
    "relationships": [{"subject": "document:d1", "relation": "parent", "object": "folder:f1"}],
}
FOLDER = {"id": "B", "resource": "folder", "resource_id": "folder-type", "key": "f1"}


def test_end_to_end_document_folder_and_user_without_tenants() -> None:
    graph = _build([DOC, FOLDER], [{"key": "u1", "associated_tenants": []}])

    assert graph.node_ids() == ["A", "B", "u1"]
    assert len(graph.edges) == 1
    edge = graph.edges[0]
    assert (edge.source, edge.target) == ("A", "B")
    assert "PARENT" in edge.label
    assert not any(n.label.startswith("Node ") for n in graph.nodes)
    _assert_invariants(graph)


def test_resource_nodes_have_prefixed_labels_and_class() -> None:
    graph = _build([FOLDER], [])

    (node,) = graph.nodes
    assert node.label == " folder#folder-type"
    assert node.classes == "resource-instance-node"


def test_unresolved_object_becomes_bare_node_and_edge_target() -> None:
    doc = dict(DOC, relationships=[{"subject": "document:d1", "relation": "owner", "object": "team:t9"}])

    graph = _build([doc], [])

    assert graph.node_ids() == ["A", "team:t9"]
    assert graph.nodes[1].classes is None
    assert graph.nodes[1].label == "team:t9"
    assert [(e.source, e.target, e.label) for e in graph.edges] == [("A", "team:t9", "OWNER")]
    _assert_invariants(graph)


def test_self_loops_are_suppressed() -> None:
    doc = dict(DOC, relationships=[{"subject": "document:d1", "relation": "self", "object": "document:d1"}])

    graph = _build([doc], [])

    assert graph.edges == []
    assert graph.node_ids() == ["A"]


def test_unresolved_subject_gets_placeholder_node() -> None:
    doc = dict(DOC, relationships=[{"subject": "user:ghost", "relation": "viewer", "object": "document:d1"}])

    graph = _build([doc], [])

    assert graph.node_ids() == ["A", "user:ghost"]
    assert graph.nodes[-1].label == "Node user:ghost"
    assert graph.nodes[-1].classes == "resource-instance-node"
    _assert_invariants(graph)


def test_role_assignments_add_user_and_instance_nodes_and_edges() -> None:
    users = [
        {
            "key": "alice",
            "associated_tenants": [
                {
                    "resource_instance_roles": [
                        {"resource": "folder", "resource_instance": "f1", "role": "editor"},
                        {"resource": "folder", "resource_instance": "f404", "role": "viewer"},
                    ]
                }
            ],
        },
        {"key": "bob", "associated_tenants": [{"resource_instance_roles": []}]},
    ]

    graph = _build([FOLDER], users)

    assert graph.node_ids() == ["B", "alice", "f404", "bob"]
    classes = {n.id: n.classes for n in graph.nodes}
    assert classes["alice"] == "user-node"
    assert classes["bob"] == "user-node"
    assert classes["f404"] == "resource-instance-node"
    assert [(e.source, e.target, e.label, e.classes) for e in graph.edges] == [
        ("alice", "B", "editor", None),
        ("alice", "f404", "viewer", None),
    ]
    _assert_invariants(graph)


def test_duplicate_relationships_produce_duplicate_edges() -> None:
    rel = {"subject": "document:d1", "relation": "parent", "object": "folder:f1"}
    doc = dict(DOC, relationships=[rel, rel])

    graph = _build([doc, FOLDER], [])

    assert len(graph.edges) == 2
    assert graph.node_ids() == ["A", "B"]


def test_legacy_mode_keeps_both_relationship_passes() -> None:
    graph = _build([DOC, FOLDER], [{"key": "u1"}], edge_mode="legacy")

    assert graph.node_ids() == ["A", "B", "folder:f1", "u1"]
    assert [(e.source, e.target, e.label) for e in graph.edges] == [
        ("A", "folder:f1", "IS PARENT OF"),
        ("A", "B", "PARENT"),
    ]
    assert all(e.classes == "relationship-connection" for e in graph.edges)
    _assert_invariants(graph)


def test_node_order_follows_stages() -> None:
    doc = dict(DOC, relationships=[{"subject": "ghost:g1", "relation": "parent", "object": "folder:zz"}])
    users = [{"key": "carol", "associated_tenants": [{"resource_instance_roles": [{"resource": "x", "resource_instance": "y", "role": "r"}]}]}]

    graph = _build([doc, FOLDER], users)

    # resources, relationship objects, role users/instances, then placeholders
    assert graph.node_ids() == ["A", "B", "folder:zz", "carol", "y", "ghost:g1"]
    _assert_invariants(graph)


def test_duplicate_resource_ids_yield_one_node() -> None:
    graph = _build([FOLDER, dict(FOLDER, key="f2")], [])

    assert graph.node_ids() == ["B"]


def test_generate_graph_accepts_flat_relationship_list() -> None:
    instances = [ResourceInstance.from_api(DOC), ResourceInstance.from_api(FOLDER)]
    index = build_identity_index(instances)
    flat = [rel for rels in normalize_relationships(instances, index).values() for rel in rels]

    graph = generate_graph_data(instances, flat, [])

    assert [(e.source, e.target) for e in graph.edges] == [("A", "B")]


def test_to_cytoscape_always_sets_edge_classes() -> None:
    graph = _build([FOLDER], [{"key": "u", "associated_tenants": [{"resource_instance_roles": [{"resource": "folder", "resource_instance": "f1", "role": "admin"}]}]}])

    payload = graph.to_cytoscape()

    assert payload["nodes"][0] == {"data": {"id": "B", "label": " folder#folder-type"}, "classes": "resource-instance-node"}
    assert payload["edges"] == [{"data": {"source": "u", "target": "B", "label": "admin"}, "classes": ""}]
