"""Tests for record identities.

Critical Invariants:
- Local ids are recognizable and unique
- Identity equality ignores the per-handle instance token
- Re-identifying keeps the handle's instance token
"""

from recordsync.core.identity import (
    Identity,
    IdentityPolicy,
    is_local_id,
    new_local_id,
    next_instance_token,
)


def test_local_ids_are_unique_and_recognizable():
    first, second = new_local_id(), new_local_id()
    assert first != second
    assert is_local_id(first)
    assert not is_local_id("xWMyZ4YEGZ")


def test_identity_equality_ignores_instance():
    """CRITICAL: Two handles to one object compare and hash equal.

    Why: Under the shared policy the store keys on (class, id); sets and dict
    lookups keyed by Identity must agree with that.
    """
    a = Identity("Post", "p1", instance=1)
    b = Identity("Post", "p1", instance=2)
    assert a == b
    assert hash(a) == hash(b)
    assert a != Identity("Comment", "p1")


def test_with_object_id_keeps_instance():
    local = Identity("Post", new_local_id(), instance=7)
    assert local.is_local
    saved = local.with_object_id("p1")
    assert saved.object_id == "p1"
    assert saved.instance == 7
    assert not saved.is_local
    assert str(saved) == "Post:p1"


def test_instance_tokens_increase():
    assert next_instance_token() < next_instance_token()


def test_policy_values():
    assert IdentityPolicy("shared") is IdentityPolicy.SHARED
    assert IdentityPolicy("isolated") is IdentityPolicy.ISOLATED
