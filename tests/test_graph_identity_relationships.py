from __future__ import annotations

import pytest

from permit_cli.graph.identity import build_identity_index
from permit_cli.graph.model import RawRelationship, Ref, ResourceInstance
from permit_cli.graph.relationships import flatten, normalize_relationships, relation_label
from permit_cli.util.errors import PermitAPIError


def _instance(id_: str, resource: str, key: str, relationships=()) -> ResourceInstance:
    return ResourceInstance.from_api(
        {
            "id": id_,
            "resource": resource,
            "resource_id": f"{resource}-type-id",
            "key": key,
            "relationships": list(relationships),
        }
    )


def test_resource_instance_from_api_builds_composite_key_and_label() -> None:
    inst = _instance("inst-1", "document", "d1", [{"subject": "document:d1", "relation": "parent", "object": "folder:f1"}])

    assert inst.id == "inst-1"
    assert inst.id2 == "document:d1"
    assert inst.label == "document#document-type-id"
    assert inst.relationships == (RawRelationship(subject="document:d1", relation="parent", object="folder:f1"),)


def test_resource_instance_without_relationships() -> None:
    inst = ResourceInstance.from_api({"id": "x", "resource": "doc", "key": "k", "relationships": None})
    assert inst.relationships == ()


def test_resource_instance_requires_id() -> None:
    with pytest.raises(PermitAPIError):
        ResourceInstance.from_api({"resource": "doc", "key": "k"})


def test_identity_index_resolves_exact_matches_only() -> None:
    index = build_identity_index([_instance("a", "document", "d1")])

    assert index.resolve("document:d1") == Ref(value="a", resolved=True)
    assert index.resolve("Document:d1") == Ref(value="Document:d1", resolved=False)
    assert len(index) == 1


def test_identity_index_last_write_wins_on_duplicate_keys() -> None:
    index = build_identity_index([_instance("first", "document", "d1"), _instance("second", "document", "d1")])

    assert index.get("document:d1") == "second"


def test_identity_index_is_read_only() -> None:
    index = build_identity_index([_instance("a", "document", "d1")])

    with pytest.raises(TypeError):
        index.by_id2["folder:f1"] = "b"  # type: ignore[index]


def test_relation_label_uppercases_and_defaults() -> None:
    assert relation_label("parent") == "PARENT"
    assert relation_label("") == "UNKNOWN RELATION"


def test_normalize_relationships_resolves_and_falls_back_to_raw() -> None:
    doc = _instance(
        "a",
        "document",
        "d1",
        [
            {"subject": "document:d1", "relation": "parent", "object": "folder:f1"},
            {"subject": "document:d1", "relation": "", "object": "folder:missing"},
        ],
    )
    folder = _instance("b", "folder", "f1")
    instances = [doc, folder]
    index = build_identity_index(instances)

    grouped = normalize_relationships(instances, index)

    assert list(grouped.keys()) == ["a", "b"]
    assert grouped["b"] == []
    first, second = grouped["a"]
    assert first.label == "PARENT"
    assert first.subject == Ref("a", True)
    assert first.object == Ref("b", True)
    assert first.raw_object == "folder:f1"
    assert first.owner_id == "a"
    assert second.label == "UNKNOWN RELATION"
    assert second.object_id == "folder:missing"
    assert second.object.resolved is False
    assert flatten(grouped) == [first, second]
