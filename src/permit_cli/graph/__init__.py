from __future__ import annotations

from .assemble import generate_graph_data
from .fetch import GRAPH_PAGE_SIZE, GraphBuildStats, build_graph, fetch_resource_instances, fetch_users
from .identity import IdentityIndex, build_identity_index
from .model import EdgeMode, GraphData, GraphEdge, GraphNode, Ref, RoleAssignment, Sentinel
from .relationships import normalize_relationships
from .roles import flatten_role_assignments

__all__ = [
    "GRAPH_PAGE_SIZE",
    "EdgeMode",
    "GraphBuildStats",
    "GraphData",
    "GraphEdge",
    "GraphNode",
    "IdentityIndex",
    "Ref",
    "RoleAssignment",
    "Sentinel",
    "build_graph",
    "build_identity_index",
    "fetch_resource_instances",
    "fetch_users",
    "flatten_role_assignments",
    "generate_graph_data",
    "normalize_relationships",
]
