from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..api.client import PermitClient, facts_path
from ..logging import get_logger
from ..util.errors import PermitAPIError
from ..util.pagination import extract_items, fetch_all_pages
from .assemble import generate_graph_data
from .identity import build_identity_index
from .model import EdgeMode, GraphData, ResourceInstance
from .relationships import flatten, normalize_relationships
from .roles import flatten_role_assignments

LOG = get_logger(__name__)

GRAPH_PAGE_SIZE = 100

PageCallback = Callable[[str, int, int], None]


@dataclass
class GraphBuildStats:
    resource_instances: int = 0
    users: int = 0
    relationships: int = 0
    role_assignments: int = 0
    unresolved_references: int = 0
    pages: Dict[str, int] = field(default_factory=dict)


def _page_hook(what: str, on_page: Optional[PageCallback], stats: Optional[GraphBuildStats]):
    def _hook(page: int, count: int) -> None:
        if stats is not None:
            stats.pages[what] = page
        if on_page is not None:
            on_page(what, page, count)

    return _hook


def fetch_resource_instances(
    client: PermitClient,
    project: str,
    environment: str,
    *,
    per_page: int = GRAPH_PAGE_SIZE,
    on_page: Optional[PageCallback] = None,
    stats: Optional[GraphBuildStats] = None,
) -> List[ResourceInstance]:
    path = facts_path(project, environment, "resource_instances/detailed")

    def _fetch(page: int) -> List[Any]:
        body = client.get(path, params={"page": page, "per_page": per_page})
        return extract_items(body, what="resource instances")

    items = fetch_all_pages(_fetch, per_page, on_page=_page_hook("resource_instances", on_page, stats))
    return [ResourceInstance.from_api(item) for item in items]


def fetch_users(
    client: PermitClient,
    project: str,
    environment: str,
    *,
    per_page: int = GRAPH_PAGE_SIZE,
    on_page: Optional[PageCallback] = None,
    stats: Optional[GraphBuildStats] = None,
) -> List[Mapping[str, Any]]:
    path = facts_path(project, environment, "users")

    def _fetch(page: int) -> List[Any]:
        body = client.get(
            path,
            params={"include_resource_instance_roles": "true", "page": page, "per_page": per_page},
        )
        return extract_items(body, what="users")

    users = fetch_all_pages(_fetch, per_page, on_page=_page_hook("users", on_page, stats))
    for user in users:
        if not isinstance(user, Mapping):
            raise PermitAPIError("Malformed users response: expected user objects")
    return users


def build_graph(
    client: PermitClient,
    project: str,
    environment: str,
    *,
    per_page: int = GRAPH_PAGE_SIZE,
    edge_mode: Union[EdgeMode, str] = EdgeMode.CANONICAL,
    on_page: Optional[PageCallback] = None,
    stats: Optional[GraphBuildStats] = None,
) -> Optional[GraphData]:
    """
    Fetch resource instances and users of one environment and assemble the ReBAC graph.

    Returns None when the environment holds no resource instances; users are not
    fetched in that case. Fetch errors propagate and no graph is produced.
    """
    instances = fetch_resource_instances(
        client, project, environment, per_page=per_page, on_page=on_page, stats=stats
    )
    if not instances:
        LOG.info("No resource instances found", extra={"project": project, "environment": environment})
        return None

    index = build_identity_index(instances)
    LOG.debug("Identity index built", extra={"instances": len(instances), "identities": len(index)})
    relationships = normalize_relationships(instances, index)

    users = fetch_users(client, project, environment, per_page=per_page, on_page=on_page, stats=stats)
    assignments = flatten_role_assignments(users, index)

    graph = generate_graph_data(instances, relationships, assignments, edge_mode=edge_mode)

    if stats is not None:
        flat = flatten(relationships)
        stats.resource_instances = len(instances)
        stats.users = len(users)
        stats.relationships = len(flat)
        stats.role_assignments = len(assignments)
        stats.unresolved_references = sum(
            (not rel.subject.resolved) + (not rel.object.resolved) for rel in flat
        ) + sum(1 for a in assignments if a.resource_instance is not None and not a.resource_instance.resolved)
    LOG.info(
        "Graph assembled",
        extra={"nodes": len(graph.nodes), "edges": len(graph.edges), "resource_instances": len(instances)},
    )
    return graph
