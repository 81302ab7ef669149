from __future__ import annotations

from typing import Dict, Iterable, List, Mapping

from .identity import IdentityIndex
from .model import NormalizedRelationship, RawRelationship, ResourceInstance, Sentinel


def relation_label(relation: str) -> str:
    return relation.upper() if relation else Sentinel.UNKNOWN_RELATION.value


def normalize_relationship(raw: RawRelationship, owner_id: str, index: IdentityIndex) -> NormalizedRelationship:
    return NormalizedRelationship(
        label=relation_label(raw.relation),
        subject=index.resolve(raw.subject),
        object=index.resolve(raw.object),
        raw_object=raw.object,
        owner_id=owner_id,
    )


def normalize_relationships(
    instances: Iterable[ResourceInstance], index: IdentityIndex
) -> Dict[str, List[NormalizedRelationship]]:
    """
    Normalize every instance's relationship tuples, grouped by owning instance id.
    Unresolvable subjects/objects keep their raw reference.
    """
    grouped: Dict[str, List[NormalizedRelationship]] = {}
    for inst in instances:
        # a repeated instance id replaces the earlier group but keeps its position
        grouped[inst.id] = [normalize_relationship(r, inst.id, index) for r in inst.relationships]
    return grouped


def flatten(grouped: Mapping[str, List[NormalizedRelationship]]) -> List[NormalizedRelationship]:
    out: List[NormalizedRelationship] = []
    for relations in grouped.values():
        out.extend(relations)
    return out
