from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from ..util.errors import PermitAPIError
from .identity import IdentityIndex
from .model import Ref, RoleAssignment, Sentinel


def _unassigned(user: str, email: str) -> RoleAssignment:
    return RoleAssignment(user=user, email=email, role=None, resource_instance=None)


def _records(value: Any, field: str) -> List[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, Mapping) for v in value):
        raise PermitAPIError(f"Malformed users response: '{field}' must be a list of objects")
    return value


def flatten_user(user: Mapping[str, Any], index: IdentityIndex) -> List[RoleAssignment]:
    """
    Role assignments for one user. Always returns at least one record:
      - one per resource-instance role of every associated tenant,
      - one unassigned record per tenant without resource-instance roles,
      - a single unassigned record when the user has no tenants.
    """
    name = str(user.get("key") or Sentinel.UNKNOWN_USER.value)
    email = str(user.get("email") or "")
    tenants = _records(user.get("associated_tenants"), "associated_tenants")
    if not tenants:
        return [_unassigned(name, email)]

    out: List[RoleAssignment] = []
    for tenant in tenants:
        ri_roles = _records(tenant.get("resource_instance_roles"), "resource_instance_roles")
        if not ri_roles:
            out.append(_unassigned(name, email))
            continue
        for ri_role in ri_roles:
            resource = str(ri_role.get("resource") or "")
            instance = str(ri_role.get("resource_instance") or "")
            ref = index.resolve(f"{resource}:{instance}")
            if not ref.resolved:
                ref = Ref(value=instance or Sentinel.UNKNOWN_RESOURCE_INSTANCE.value, resolved=False)
            out.append(
                RoleAssignment(
                    user=name,
                    email=email,
                    role=str(ri_role.get("role") or ""),
                    resource_instance=ref,
                )
            )
    return out


def flatten_role_assignments(users: Iterable[Mapping[str, Any]], index: IdentityIndex) -> List[RoleAssignment]:
    out: List[RoleAssignment] = []
    for user in users:
        out.extend(flatten_user(user, index))
    return out
