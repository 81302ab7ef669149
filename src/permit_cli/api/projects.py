from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..util.errors import PermitAPIError
from ..util.pagination import extract_items
from .client import PermitClient


@dataclass(frozen=True)
class ApiKeyScope:
    organization_id: Optional[str] = None
    project_id: Optional[str] = None
    environment_id: Optional[str] = None


@dataclass(frozen=True)
class Choice:
    """A selectable project or environment: display label plus id."""

    label: str
    value: str


def _as_dict(body: Any, what: str) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise PermitAPIError(f"Malformed {what} response: expected an object")
    return body


def get_api_key_scope(client: PermitClient) -> ApiKeyScope:
    body = _as_dict(client.get("v2/api-key/scope"), "api key scope")
    return ApiKeyScope(
        organization_id=body.get("organization_id") or None,
        project_id=body.get("project_id") or None,
        environment_id=body.get("environment_id") or None,
    )


def _choices(items: List[Any]) -> List[Choice]:
    out: List[Choice] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        out.append(Choice(label=str(item.get("name") or item.get("key") or item["id"]), value=str(item["id"])))
    return out


def list_projects(client: PermitClient) -> List[Choice]:
    return _choices(extract_items(client.get("v2/projects"), what="projects"))


def list_environments(client: PermitClient, project_id: str) -> List[Choice]:
    return _choices(extract_items(client.get(f"v2/projects/{project_id}/envs"), what="environments"))


def get_organization(client: PermitClient, org_id: str) -> Dict[str, Any]:
    return _as_dict(client.get(f"v2/orgs/{org_id}"), "organization")


def get_project(client: PermitClient, project_id: str) -> Dict[str, Any]:
    return _as_dict(client.get(f"v2/projects/{project_id}"), "project")


def get_environment(client: PermitClient, project_id: str, environment_id: str) -> Dict[str, Any]:
    return _as_dict(client.get(f"v2/projects/{project_id}/envs/{environment_id}"), "environment")
