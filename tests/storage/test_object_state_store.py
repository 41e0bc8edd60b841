"""Tests for ObjectStateStore.

Critical Invariants:
- pending_ops is never empty across push/pop/merge cycles
- Estimates fold layers over server data oldest first
- Failed merges leave state untouched
- Migration keeps layers, server data and the task queue
- The identity policy decides whether handles share state
"""

import asyncio

import pytest

from recordsync.core import ABSENT, Identity, IdentityPolicy, new_local_id
from recordsync.core.errors import IncompatibleMergeError
from recordsync.core.operation import AddOp, AddUniqueOp, IncrementOp, RemoveOp, SetOp, UnsetOp
from recordsync.storage import ObjectState, ObjectStateStore


@pytest.fixture
def identity() -> Identity:
    return Identity("GameScore", "g1", instance=1)


def test_get_or_create_is_lazy(store: ObjectStateStore, identity: Identity):
    assert store.get_state(identity) is None
    state = store.get_or_create(identity)
    assert isinstance(state, ObjectState)
    assert state.pending_ops == [{}]
    assert store.get_or_create(identity) is state
    assert identity in store


def test_reads_on_unknown_identity_do_not_create_state(store: ObjectStateStore, identity: Identity):
    assert store.get_server_data(identity) == {}
    assert store.get_pending_ops(identity) == [{}]
    assert store.estimate_attributes(identity) == {}
    assert len(store) == 0


def test_set_pending_op_merges_into_newest_layer(store: ObjectStateStore, identity: Identity):
    """Set(x, 5) then Increment(x, 3) estimates 8."""
    store.set_pending_op(identity, "x", SetOp(5))
    store.set_pending_op(identity, "x", IncrementOp(3))
    assert store.get_pending_ops(identity) == [{"x": SetOp(8)}]
    assert store.estimate_attribute(identity, "x") == 8


def test_add_unique_scenario(store: ObjectStateStore, identity: Identity):
    store.set_pending_op(identity, "tags", AddUniqueOp(("a", "b")))
    store.set_pending_op(identity, "tags", AddUniqueOp(("b", "c")))
    assert store.get_pending_ops(identity)[-1]["tags"] == AddUniqueOp(("a", "b", "c"))


def test_incompatible_merge_propagates_and_keeps_state(store: ObjectStateStore, identity: Identity):
    """CRITICAL: A failed merge raises synchronously and changes nothing.

    Why: Swallowing it would silently drop an edit; half-applying it would
    corrupt the pending layer.
    """
    store.set_pending_op(identity, "tags", AddOp(("a",)))
    with pytest.raises(IncompatibleMergeError):
        store.set_pending_op(identity, "tags", RemoveOp(("a",)))
    assert store.get_pending_ops(identity) == [{"tags": AddOp(("a",))}]


def test_set_pending_op_none_clears_entry(store: ObjectStateStore, identity: Identity):
    store.set_pending_op(identity, "x", SetOp(1))
    store.set_pending_op(identity, "x", None)
    assert store.get_pending_ops(identity) == [{}]


def test_layers_apply_oldest_first(store: ObjectStateStore, identity: Identity):
    store.set_server_data(identity, {"score": 10})
    store.set_pending_op(identity, "score", IncrementOp(1))
    store.push_layer(identity)
    store.set_pending_op(identity, "score", SetOp(100))
    store.push_layer(identity)
    store.set_pending_op(identity, "score", IncrementOp(5))
    assert store.estimate_attribute(identity, "score") == 105
    assert store.get_server_data(identity) == {"score": 10}


def test_unset_removes_attribute_from_estimate(store: ObjectStateStore, identity: Identity):
    store.set_server_data(identity, {"name": "a"})
    store.set_pending_op(identity, "name", UnsetOp())
    assert "name" not in store.estimate_attributes(identity)
    assert store.estimate_attribute(identity, "name") is ABSENT


def test_pending_ops_never_empty_across_lifecycle(store: ObjectStateStore, identity: Identity):
    """CRITICAL: Push, pop and merge keep at least one layer.

    Why: New edits always land in the last layer; an empty list would have nowhere to put them.
    """
    store.set_pending_op(identity, "a", SetOp(1))
    store.push_layer(identity)
    assert len(store.get_pending_ops(identity)) == 2
    assert store.pop_front_layer(identity) == {"a": SetOp(1)}
    assert store.get_pending_ops(identity) == [{}]

    store.push_layer(identity)
    store.merge_front_into_second(identity)
    assert len(store.get_pending_ops(identity)) >= 1

    assert store.pop_front_layer(identity) == {}
    assert store.get_pending_ops(identity) == [{}]


def test_merge_front_keeps_edit_order(store: ObjectStateStore, identity: Identity):
    """Failed layer folds under the edits queued after it."""
    store.set_pending_op(identity, "count", IncrementOp(2))
    store.push_layer(identity)
    store.set_pending_op(identity, "count", IncrementOp(3))
    store.set_pending_op(identity, "name", SetOp("late"))
    store.merge_front_into_second(identity)
    assert store.get_pending_ops(identity) == [{"count": IncrementOp(5), "name": SetOp("late")}]


def test_incompatible_merge_across_layers_raises_up_front(store: ObjectStateStore, identity: Identity):
    """CRITICAL: An edit that cannot fold over an in-flight layer is refused when made.

    Why: A failed save folds the in-flight layer forward; discovering the
    conflict then would drop the in-flight edit.
    """
    store.set_pending_op(identity, "tags", AddOp(("a",)))
    store.push_layer(identity)
    with pytest.raises(IncompatibleMergeError):
        store.set_pending_op(identity, "tags", AddUniqueOp(("b",)))
    assert store.get_pending_ops(identity) == [{"tags": AddOp(("a",))}, {}]


def test_failed_merge_forward_keeps_both_layers(store: ObjectStateStore, identity: Identity):
    state = store.get_or_create(identity)
    state.pending_ops = [{"tags": AddOp(("a",))}, {"tags": AddUniqueOp(("b",))}]
    with pytest.raises(IncompatibleMergeError):
        store.merge_front_into_second(identity)
    assert store.get_pending_ops(identity) == [{"tags": AddOp(("a",))}, {"tags": AddUniqueOp(("b",))}]


def test_commit_server_changes_supports_dot_notation(store: ObjectStateStore, identity: Identity):
    store.commit_server_changes(identity, {"profile": {"name": "a", "age": 1}})
    store.commit_server_changes(identity, {"profile.age": 2, "gone": ABSENT})
    assert store.get_server_data(identity) == {"profile": {"name": "a", "age": 2}}


def test_estimate_dot_notation_copies_nested_dicts(store: ObjectStateStore, identity: Identity):
    store.commit_server_changes(identity, {"stats": {"wins": 1}})
    store.set_pending_op(identity, "stats.wins", IncrementOp(2))
    assert store.estimate_attributes(identity)["stats"] == {"wins": 3}
    assert store.get_server_data(identity)["stats"] == {"wins": 1}


def test_clear_pending_ops(store: ObjectStateStore, identity: Identity):
    store.set_pending_op(identity, "a", SetOp(1))
    store.set_pending_op(identity, "b", SetOp(2))
    store.clear_pending_ops(identity, ["a"])
    assert store.get_pending_ops(identity) == [{"b": SetOp(2)}]
    store.clear_pending_ops(identity)
    assert store.get_pending_ops(identity) == [{}]


# Dirty containers


def test_in_place_mutation_is_dirty(store: ObjectStateStore, identity: Identity):
    """Containers mutated in place are reported dirty without any operation.

    Why: Applications append to lists they read; the next save must send them.
    """
    store.commit_server_changes(identity, {"tags": ["a"], "score": 1})
    assert store.compute_dirty_container_fields(identity) == set()
    store.estimate_attributes(identity)["tags"].append("b")
    assert store.compute_dirty_container_fields(identity) == {"tags"}


def test_dirty_check_is_a_heuristic(store: ObjectStateStore, identity: Identity):
    """A container mutated back to an equal serialization reads as clean.

    Why: Detection compares JSON snapshots, not history. This documents the limit.
    """
    store.commit_server_changes(identity, {"tags": ["a"]})
    tags = store.estimate_attributes(identity)["tags"]
    tags.append("b")
    tags.pop()
    assert store.compute_dirty_container_fields(identity) == set()


def test_uncommitted_container_is_dirty(store: ObjectStateStore, identity: Identity):
    store.set_pending_op(identity, "meta", SetOp({"k": 1}))
    assert store.compute_dirty_container_fields(identity) == {"meta"}


def test_dot_notation_commit_refreshes_parent_snapshot(store: ObjectStateStore, identity: Identity):
    store.commit_server_changes(identity, {"stats": {"wins": 1}})
    store.commit_server_changes(identity, {"stats.wins": 2})
    assert store.get_server_data(identity) == {"stats": {"wins": 2}}
    assert store.compute_dirty_container_fields(identity) == set()


# Migration and policy


def test_migrate_identity_moves_everything(store: ObjectStateStore):
    """CRITICAL: Migration rekeys state without recreating it.

    Why: Edits made while the create request was in flight live in later layers
    and in queued tasks; recreating state would lose them.
    """
    local = Identity("Post", new_local_id(), instance=3)
    store.set_pending_op(local, "title", SetOp("t"))
    store.push_layer(local)
    state = store.get_state(local)

    saved = local.with_object_id("p1")
    store.migrate_identity(local, saved)
    assert store.get_state(local) is None
    assert store.get_state(saved) is state
    assert len(state.pending_ops) == 2


def test_migrate_unknown_identity_is_noop(store: ObjectStateStore):
    store.migrate_identity(Identity("Post", "a"), Identity("Post", "b"))
    assert len(store) == 0


def test_shared_policy_merges_handles(identity: Identity):
    store = ObjectStateStore(policy=IdentityPolicy.SHARED)
    other = Identity(identity.class_name, identity.object_id, instance=2)
    store.set_pending_op(identity, "x", SetOp(1))
    assert store.estimate_attribute(other, "x") == 1


def test_isolated_policy_separates_handles(identity: Identity):
    store = ObjectStateStore(policy=IdentityPolicy.ISOLATED)
    other = Identity(identity.class_name, identity.object_id, instance=2)
    store.set_pending_op(identity, "x", SetOp(1))
    assert store.estimate_attribute(other, "x") is ABSENT


def test_policy_switch_affects_later_lookups(store: ObjectStateStore, identity: Identity):
    store.set_pending_op(identity, "x", SetOp(1))
    store.policy = IdentityPolicy.ISOLATED
    assert store.get_state(identity) is None
    store.policy = IdentityPolicy.SHARED
    assert store.estimate_attribute(identity, "x") == 1


def test_reset_clears_everything(store: ObjectStateStore, identity: Identity):
    store.set_pending_op(identity, "x", SetOp(1))
    store.reset()
    assert len(store) == 0


@pytest.mark.asyncio
async def test_enqueue_task_runs_on_identity_queue(store: ObjectStateStore, identity: Identity):
    order = []

    async def task(label: str) -> str:
        order.append(label)
        await asyncio.sleep(0)
        return label

    results = await asyncio.gather(
        store.enqueue_task(identity, lambda: task("first")),
        store.enqueue_task(identity, lambda: task("second")),
    )
    assert results == ["first", "second"]
    assert order == ["first", "second"]
