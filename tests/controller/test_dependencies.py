"""Tests for dependency scanning and response normalization."""

import pytest

from recordsync import Client
from recordsync.controller import (
    RecordDependencyScanner,
    class_path,
    decode_save_response,
    decode_server_data,
    normalize_batch_response,
    unique_dependencies,
)
from recordsync.core import ABSENT, Identity
from recordsync.core.errors import ErrorCode, InvalidPointerError, TransportError
from recordsync.core.values import ACL, Relation, RemoteFile


@pytest.fixture
def scanner() -> RecordDependencyScanner:
    return RecordDependencyScanner()


def test_unsaved_children_collects_records_then_files(client: Client, scanner: RecordDependencyScanner):
    file = RemoteFile(name="a.txt", data=b"a")
    grandchild = client.create("Node", {"name": "gc"})
    child = client.create("Node", {"child": grandchild, "files": [file, file]})
    root = client.create("Node", {"items": [{"nested": child}]})

    assert scanner.unsaved_children(root) == [child, grandchild, file]


def test_deep_unsaved_record_raises_without_cascade(client: Client, scanner: RecordDependencyScanner):
    """Unsaved records below a direct child are refused when not cascading.

    Why: A non-cascading save only takes care of direct children.
    """
    grandchild = client.create("Node")
    child = client.create("Node", {"child": grandchild})
    root = client.create("Node", {"child": child})

    with pytest.raises(InvalidPointerError):
        scanner.unsaved_children(root, cascade=False)
    assert scanner.unsaved_children(client.create("Node", {"child": grandchild}), cascade=False) == [grandchild]


def test_clean_saved_children_and_relations_are_skipped(client: Client, scanner: RecordDependencyScanner):
    saved = client.pointer("Node", "n1")
    root = client.create("Node", {"saved": saved, "likes": Relation(target_class_name="User")})
    assert scanner.unsaved_children(root) == []


def test_can_be_serialized(client: Client, scanner: RecordDependencyScanner):
    unsaved = client.create("Node")
    assert scanner.can_be_serialized(client.create("Node", {"ok": client.pointer("Node", "n1")}))
    assert not scanner.can_be_serialized(client.create("Node", {"bad": [unsaved]}))
    assert not scanner.can_be_serialized(client.create("Node", {"file": RemoteFile(name="a")}))


def test_unique_dependencies(client: Client):
    file = RemoteFile(name="a")
    record = client.pointer("Node", "n1")
    same = client.pointer("Node", "n1")
    assert unique_dependencies([record, file, same, file]) == [record, file]


def test_class_path():
    assert class_path("Post") == "classes/Post"
    assert class_path("_User") == "users"
    assert class_path("_User", "u1") == "classes/_User/u1"


def test_normalize_batch_response():
    results = normalize_batch_response(
        [{"success": {"objectId": "a"}, "_status": 201}, {"error": {"code": 137, "error": "dup"}}],
        expected=2,
    )
    assert results[0].ok and results[0].status == 201
    assert not results[1].ok
    assert results[1].error.code == ErrorCode.DUPLICATE_VALUE
    assert results[1].error.message == "dup"


def test_normalize_rejects_wrong_shape():
    with pytest.raises(TransportError):
        normalize_batch_response({"not": "a list"}, expected=1)
    with pytest.raises(TransportError):
        normalize_batch_response([], expected=1)
    with pytest.raises(TransportError):
        normalize_batch_response([{"neither": 1}], expected=1)


def test_decode_server_data():
    identity = Identity("Post", "p1")
    decoded = decode_server_data(
        {
            "objectId": "p1",
            "_status": 200,
            "ACL": {"*": {"read": True}},
            "createdAt": "2024-01-01T00:00:00.000Z",
            "likes": {"__type": "Relation", "className": "User"},
        },
        identity,
    )
    assert "objectId" not in decoded and "_status" not in decoded
    assert isinstance(decoded["ACL"], ACL)
    assert decoded["updatedAt"] == decoded["createdAt"]
    assert decoded["likes"].parent == identity
    assert decoded["likes"].key == "likes"


def test_decode_save_response_merges_nested_dicts():
    changes = decode_save_response(
        {"profile": {"age": 2}, "gone": {"__op": "Delete"}, "updatedAt": "2024-01-01T00:00:00.000Z"},
        {"profile": {"name": "a", "age": 1}},
    )
    assert changes["profile"] == {"name": "a", "age": 2}
    assert changes["gone"] is ABSENT
    assert changes["updatedAt"].year == 2024
