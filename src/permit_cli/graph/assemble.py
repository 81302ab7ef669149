from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence, Set, Union

from .model import (
    RELATIONSHIP_CLASS,
    RESOURCE_INSTANCE_CLASS,
    USER_CLASS,
    EdgeMode,
    GraphData,
    GraphEdge,
    GraphNode,
    NormalizedRelationship,
    ResourceInstance,
    RoleAssignment,
)

RelationshipInput = Union[Mapping[str, Sequence[NormalizedRelationship]], Iterable[NormalizedRelationship]]


class _GraphBuilder:
    """Accumulates nodes in insertion order, keeping node ids unique."""

    def __init__(self) -> None:
        self.graph = GraphData()
        self._ids: Set[str] = set()

    def has(self, node_id: str) -> bool:
        return node_id in self._ids

    def add_node(self, node_id: str, label: str, classes: Optional[str] = None) -> None:
        if node_id in self._ids:
            return
        self._ids.add(node_id)
        self.graph.nodes.append(GraphNode(id=node_id, label=label, classes=classes))

    def add_edge(self, source: str, target: str, label: str, classes: Optional[str] = None) -> None:
        self.graph.edges.append(GraphEdge(source=source, target=target, label=label, classes=classes))


def _flat(relationships: RelationshipInput) -> List[NormalizedRelationship]:
    if isinstance(relationships, Mapping):
        out: List[NormalizedRelationship] = []
        for relations in relationships.values():
            out.extend(relations)
        return out
    return list(relationships)


def _add_owner_edges(builder: _GraphBuilder, relationships: Sequence[NormalizedRelationship]) -> None:
    # owning instance -> raw object reference
    for rel in relationships:
        builder.add_node(rel.raw_object, rel.raw_object)
        if rel.owner_id != rel.raw_object:
            builder.add_edge(rel.owner_id, rel.raw_object, f"IS {rel.label} OF", RELATIONSHIP_CLASS)


def _add_subject_object_edges(builder: _GraphBuilder, relationships: Sequence[NormalizedRelationship]) -> None:
    for rel in relationships:
        builder.add_node(rel.object_id, rel.object_id)
        if rel.subject_id != rel.object_id:
            builder.add_edge(rel.subject_id, rel.object_id, rel.label, RELATIONSHIP_CLASS)


def _add_role_assignments(builder: _GraphBuilder, assignments: Iterable[RoleAssignment]) -> None:
    for assignment in assignments:
        builder.add_node(assignment.user, assignment.user, USER_CLASS)
        if assignment.resource_instance is not None:
            target = assignment.resource_instance.value
            builder.add_node(target, target, RESOURCE_INSTANCE_CLASS)
        if assignment.assigned and assignment.resource_instance is not None:
            builder.add_edge(assignment.user, assignment.resource_instance.value, assignment.role_label)


def _reconcile_endpoints(builder: _GraphBuilder) -> None:
    for edge in builder.graph.edges:
        for endpoint in (edge.source, edge.target):
            if not builder.has(endpoint):
                builder.add_node(endpoint, f"Node {endpoint}", RESOURCE_INSTANCE_CLASS)


def generate_graph_data(
    resources: Iterable[ResourceInstance],
    relationships: RelationshipInput,
    role_assignments: Iterable[RoleAssignment],
    *,
    edge_mode: Union[EdgeMode, str] = EdgeMode.CANONICAL,
) -> GraphData:
    """
    Merge resource instances, normalized relationships and role assignments into
    one graph.

    Node order follows the stages: resource instances, relationship objects,
    role-assignment users and instances, then placeholders for any edge endpoint
    still missing a node. Node ids are unique; edges may repeat.

    edge_mode "canonical" emits one subject -> object edge per relationship.
    "legacy" additionally emits the owner -> raw object "IS <RELATION> OF" edge
    ahead of it, reproducing the older two-pass output.
    """
    mode = EdgeMode(edge_mode)
    builder = _GraphBuilder()

    for res in resources:
        builder.add_node(res.id, f" {res.label}", RESOURCE_INSTANCE_CLASS)

    flat = _flat(relationships)
    if mode is EdgeMode.LEGACY:
        _add_owner_edges(builder, flat)
    _add_subject_object_edges(builder, flat)

    _add_role_assignments(builder, role_assignments)
    _reconcile_endpoints(builder)
    return builder.graph
