from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from .model import Ref, ResourceInstance


@dataclass(frozen=True)
class IdentityIndex:
    """
    Read-only lookup from a composite "type:key" reference to a resource instance id.
    """

    by_id2: Mapping[str, str]

    def __len__(self) -> int:
        return len(self.by_id2)

    def get(self, reference: str) -> Optional[str]:
        return self.by_id2.get(reference)

    def resolve(self, reference: str) -> Ref:
        # exact string match only
        matched = self.by_id2.get(reference)
        if matched:
            return Ref(value=matched, resolved=True)
        return Ref(value=reference, resolved=False)


def build_identity_index(instances: Iterable[ResourceInstance]) -> IdentityIndex:
    """
    Single pass over the fetched instances. When two instances share the same
    "type:key", the later one wins.
    """
    mapping: Dict[str, str] = {}
    for inst in instances:
        mapping[inst.id2] = inst.id
    return IdentityIndex(by_id2=MappingProxyType(mapping))
