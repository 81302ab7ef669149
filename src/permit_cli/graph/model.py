from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..util.errors import PermitAPIError

RESOURCE_INSTANCE_CLASS = "resource-instance-node"
USER_CLASS = "user-node"
RELATIONSHIP_CLASS = "relationship-connection"


class Sentinel(str, Enum):
    """Display text for absent data. Never compared against API values."""

    NO_ROLE = "No Role Assigned"
    UNKNOWN_ROLE = "Unknown Role"
    NO_RESOURCE_INSTANCE = "No Resource Instance"
    UNKNOWN_RESOURCE_INSTANCE = "Unknown Resource Instance"
    UNKNOWN_RELATION = "UNKNOWN RELATION"
    UNKNOWN_USER = "Unknown User"


class EdgeMode(str, Enum):
    CANONICAL = "canonical"
    LEGACY = "legacy"


@dataclass(frozen=True)
class Ref:
    """
    A reference to a graph node: either resolved to a resource instance id,
    or the raw reference kept verbatim because nothing matched.
    """

    value: str
    resolved: bool

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RawRelationship:
    subject: str
    relation: str
    object: str

    @classmethod
    def from_api(cls, item: Mapping[str, Any]) -> RawRelationship:
        return cls(
            subject=str(item.get("subject") or ""),
            relation=str(item.get("relation") or ""),
            object=str(item.get("object") or ""),
        )


@dataclass(frozen=True)
class ResourceInstance:
    id: str
    id2: str
    label: str
    key: str
    relationships: Tuple[RawRelationship, ...] = ()

    @classmethod
    def from_api(cls, item: Any) -> ResourceInstance:
        if not isinstance(item, Mapping):
            raise PermitAPIError("Malformed resource instance: expected an object")
        instance_id = item.get("id")
        if not instance_id:
            raise PermitAPIError("Malformed resource instance: missing 'id'")
        resource = str(item.get("resource") or "")
        key = str(item.get("key") or "")
        relationships = item.get("relationships") or []
        return cls(
            id=str(instance_id),
            id2=f"{resource}:{key}",
            label=f"{resource}#{item.get('resource_id') or ''}",
            key=key,
            relationships=tuple(RawRelationship.from_api(r) for r in relationships if isinstance(r, Mapping)),
        )


@dataclass(frozen=True)
class NormalizedRelationship:
    label: str
    subject: Ref
    object: Ref
    raw_object: str
    owner_id: str

    @property
    def subject_id(self) -> str:
        return self.subject.value

    @property
    def object_id(self) -> str:
        return self.object.value


@dataclass(frozen=True)
class RoleAssignment:
    """
    role None: the user holds no resource-instance role in that tenant (or has no tenant).
    role "": a role record exists without a role name.
    resource_instance None: no resource instance is involved.
    """

    user: str
    email: str
    role: Optional[str]
    resource_instance: Optional[Ref]

    @property
    def assigned(self) -> bool:
        return self.role is not None

    @property
    def role_label(self) -> str:
        if self.role is None:
            return Sentinel.NO_ROLE.value
        return self.role or Sentinel.UNKNOWN_ROLE.value

    @property
    def resource_instance_label(self) -> str:
        if self.resource_instance is None:
            return Sentinel.NO_RESOURCE_INSTANCE.value
        return self.resource_instance.value


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    classes: Optional[str] = None

    def to_cytoscape(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"data": {"id": self.id, "label": self.label}}
        if self.classes:
            out["classes"] = self.classes
        return out


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    label: str
    classes: Optional[str] = None

    def to_cytoscape(self) -> Dict[str, Any]:
        return {
            "data": {"source": self.source, "target": self.target, "label": self.label},
            "classes": self.classes or "",
        }


@dataclass
class GraphData:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def to_cytoscape(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "nodes": [n.to_cytoscape() for n in self.nodes],
            "edges": [e.to_cytoscape() for e in self.edges],
        }
