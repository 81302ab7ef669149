from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..util.concurrency import fetch_pages_parallel
from ..util.errors import ConfigError, PermitAPIError
from ..util.pagination import extract_items
from .client import PermitClient, facts_path

DEFAULT_USERS_PER_PAGE = 50
KEY_DISPLAY_WIDTH = 7


@dataclass(frozen=True)
class UsersPage:
    data: List[Dict[str, Any]]
    total_count: int
    page: int = 1
    pages: List[int] = field(default_factory=list)


def _users_endpoint(tenant: Optional[str]) -> str:
    return f"tenants/{tenant}/users" if tenant else "users"


def _parse_users_page(body: Any, page: int) -> UsersPage:
    data = extract_items(body, what="users")
    total = len(data)
    if isinstance(body, dict):
        raw_total = body.get("total_count")
        if isinstance(raw_total, int) and not isinstance(raw_total, bool):
            total = raw_total
        raw_page = body.get("page")
        if isinstance(raw_page, int) and not isinstance(raw_page, bool):
            page = raw_page
    return UsersPage(data=data, total_count=total, page=page, pages=[page])


def list_users(
    client: PermitClient,
    project: str,
    environment: str,
    *,
    page: int = 1,
    per_page: int = DEFAULT_USERS_PER_PAGE,
    role: Optional[str] = None,
    tenant: Optional[str] = None,
) -> UsersPage:
    if page < 1 or per_page < 1:
        raise ConfigError("page and per_page must be >= 1")
    body = client.get(
        facts_path(project, environment, _users_endpoint(tenant)),
        params={"page": page, "per_page": per_page, "role": role},
    )
    return _parse_users_page(body, page)


def list_all_users(
    client: PermitClient,
    project: str,
    environment: str,
    *,
    per_page: int = DEFAULT_USERS_PER_PAGE,
    role: Optional[str] = None,
    tenant: Optional[str] = None,
    max_workers: int = 4,
) -> UsersPage:
    """
    Fetch page 1, derive the page count from total_count, then fetch the
    remaining pages in parallel. Results keep page order.
    """
    first = list_users(client, project, environment, page=1, per_page=per_page, role=role, tenant=tenant)
    total_pages = math.ceil(first.total_count / per_page) if first.total_count else 1
    if total_pages <= 1:
        return first

    def _fetch(page: int) -> List[Dict[str, Any]]:
        return list_users(
            client, project, environment, page=page, per_page=per_page, role=role, tenant=tenant
        ).data

    rest = fetch_pages_parallel(_fetch, range(2, total_pages + 1), max_workers=max_workers)
    data = list(first.data)
    for chunk in rest:
        data.extend(chunk)
    return UsersPage(data=data, total_count=first.total_count, page=first.page, pages=list(range(1, total_pages + 1)))


def _require_assignment_args(user: Optional[str], role: Optional[str], tenant: Optional[str], action: str) -> None:
    if not user or not role or not tenant:
        raise ConfigError(f"User ID, role key, and tenant key are required for {action}")


def assign_role(client: PermitClient, project: str, environment: str, *, user: str, role: str, tenant: str) -> Any:
    _require_assignment_args(user, role, tenant, "assignment")
    return client.post(facts_path(project, environment, f"users/{user}/roles/{role}"), json={"tenant": tenant})


def unassign_role(client: PermitClient, project: str, environment: str, *, user: str, role: str, tenant: str) -> Any:
    _require_assignment_args(user, role, tenant, "unassignment")
    return client.delete(facts_path(project, environment, f"users/{user}/roles/{role}"), json={"tenant": tenant})


# -------
# Display
# -------


def truncate_key(key: str, expand: bool = False) -> str:
    if expand or len(key) <= KEY_DISPLAY_WIDTH:
        return key
    return key[:KEY_DISPLAY_WIDTH] + "..."


def format_roles(roles: Optional[List[Dict[str, Any]]]) -> str:
    if not roles:
        return ""
    return "\n".join(str(r.get("role") or "") for r in roles)


def tenant_label(roles: Optional[List[Dict[str, Any]]]) -> str:
    if not roles:
        return ""
    tenant = str(roles[0].get("tenant") or "")
    return truncate_key(tenant)


def user_rows(page: UsersPage, *, start_index: int = 1, expand_keys: bool = False) -> List[Dict[str, str]]:
    rows: List[Dict[str, str]] = []
    for offset, user in enumerate(page.data):
        if not isinstance(user, dict):
            raise PermitAPIError("Malformed users response: expected user objects")
        roles = user.get("roles") or []
        rows.append(
            {
                "#": str(start_index + offset),
                "key": truncate_key(str(user.get("key") or ""), expand_keys),
                "email": str(user.get("email") or ""),
                "first_name": str(user.get("first_name") or ""),
                "last_name": str(user.get("last_name") or ""),
                "tenant": tenant_label(roles),
                "roles": format_roles(roles),
            }
        )
    return rows
