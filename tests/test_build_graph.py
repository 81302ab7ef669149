from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from permit_cli.graph.fetch import GraphBuildStats, build_graph, fetch_resource_instances, fetch_users
from permit_cli.util.errors import PermitAPIError


class FakeClient:
    def __init__(self, routes: Dict[str, Any]) -> None:
        self.routes = routes
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def get(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        params = dict(params or {})
        self.calls.append((path, params))
        route = self.routes[path]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(params)
        return route


RI_PATH = "v2/facts/proj/env/resource_instances/detailed"
USERS_PATH = "v2/facts/proj/env/users"


def _resource(i: int) -> Dict[str, Any]:
    return {"id": f"id-{i}", "resource": "document", "resource_id": "doc", "key": f"d{i}"}


def test_fetch_resource_instances_pages_until_short_page() -> None:
    def route(params):
        page = params["page"]
        start = (page - 1) * 2
        count = 2 if page < 3 else 1
        return {"data": [_resource(start + i) for i in range(count)]}

    client = FakeClient({RI_PATH: route})
    stats = GraphBuildStats()

    instances = fetch_resource_instances(client, "proj", "env", per_page=2, stats=stats)

    assert [i.id for i in instances] == ["id-0", "id-1", "id-2", "id-3", "id-4"]
    assert [c[1]["page"] for c in client.calls] == [1, 2, 3]
    assert all(c[1]["per_page"] == 2 for c in client.calls)
    assert stats.pages == {"resource_instances": 3}


def test_fetch_users_requests_instance_roles_and_accepts_bare_lists() -> None:
    client = FakeClient({USERS_PATH: [{"key": "u1"}]})

    users = fetch_users(client, "proj", "env")

    assert users == [{"key": "u1"}]
    assert client.calls[0][1]["include_resource_instance_roles"] == "true"


def test_build_graph_end_to_end() -> None:
    resources = [
        {
            "id": "A",
            "resource": "document",
            "resource_id": "doc",
            "key": "d1",
            "relationships": [{"subject": "document:d1", "relation": "parent", "object": "folder:f1"}],
        },
        {"id": "B", "resource": "folder", "resource_id": "folder", "key": "f1"},
    ]
    client = FakeClient({RI_PATH: {"data": resources}, USERS_PATH: {"data": [{"key": "u1", "associated_tenants": []}]}})
    stats = GraphBuildStats()
    pages = []

    graph = build_graph(client, "proj", "env", stats=stats, on_page=lambda what, page, count: pages.append((what, page, count)))

    assert graph is not None
    assert graph.node_ids() == ["A", "B", "u1"]
    assert [(e.source, e.target, e.label) for e in graph.edges] == [("A", "B", "PARENT")]
    assert stats.resource_instances == 2
    assert stats.users == 1
    assert stats.relationships == 1
    assert stats.unresolved_references == 0
    assert pages == [("resource_instances", 1, 2), ("users", 1, 1)]


def test_build_graph_returns_none_without_fetching_users_when_empty() -> None:
    client = FakeClient({RI_PATH: {"data": []}, USERS_PATH: PermitAPIError("should not be called")})

    assert build_graph(client, "proj", "env") is None
    assert [c[0] for c in client.calls] == [RI_PATH]


def test_build_graph_propagates_fetch_errors() -> None:
    client = FakeClient({RI_PATH: {"data": [_resource(1)]}, USERS_PATH: PermitAPIError("503", status=503)})

    with pytest.raises(PermitAPIError):
        build_graph(client, "proj", "env")


def test_build_graph_rejects_malformed_page() -> None:
    client = FakeClient({RI_PATH: {"unexpected": True}})

    with pytest.raises(PermitAPIError):
        build_graph(client, "proj", "env")
