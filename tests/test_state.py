import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from apps.cases.state import (
    ConversationContext,
    ConversationState,
    FilterLock,
    MemoryStore,
    PendingPick,
    PickOption,
)


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _pending():
    return PendingPick(
        type="person_pick",
        prompt="Which one?",
        options=[PickOption("Ana Perez", "Ana Perez"), PickOption("Ana Gil", "Ana Gil")],
        dim_key="person",
        original_message="give me the cases of Ana",
    )


def test_memory_store_expires_lazily():
    clock = _Clock()
    store = MemoryStore(ttl_seconds=10, clock=clock)
    store.set("a", {"x": 1})
    clock.now += 9
    assert store.get("a") == {"x": 1}
    clock.now += 2
    assert store.get("a") is None
    assert len(store) == 0


def test_memory_store_evicts_oldest_write():
    store = MemoryStore(ttl_seconds=60, max_entries=2)
    store.set("a", 1)
    store.set("b", 2)
    store.set("a", 3)
    store.set("c", 4)
    assert store.get("b") is None
    assert store.get("a") == 3
    assert store.get("c") == 4


def test_memory_store_copies_values():
    store = MemoryStore()
    value = {"filters": {"office": {"value": "Miami"}}}
    store.set("k", value)
    value["filters"]["office"]["value"] = "Tampa"
    got = store.get("k")
    got["filters"].clear()
    assert store.get("k") == {"filters": {"office": {"value": "Miami"}}}


def test_sweep_removes_expired():
    clock = _Clock()
    store = MemoryStore(ttl_seconds=5, clock=clock)
    store.set("a", 1)
    clock.now += 3
    store.set("b", 2)
    clock.now += 3
    assert store.sweep() == 1
    assert store.get("b") == 2


def test_context_round_trip_through_store():
    state = ConversationState()
    ctx = ConversationContext()
    ctx.filters["person"] = FilterLock("Ana Perez", locked=True, exact=True)
    ctx.last_person = "Ana Perez"
    state.set_context("u1", ctx)

    got = state.get_context("u1")
    assert got.filters["person"] == FilterLock("Ana Perez", True, True)
    assert got.last_person == "Ana Perez"
    assert state.get_context("other") is None


def test_unlocked_or_empty_filters_are_inactive():
    ctx = ConversationContext(filters={"office": FilterLock("Miami", locked=False), "team": FilterLock("  ")})
    assert ctx.active_locks() == {}
    assert FilterLock.from_dict({"value": ""}) is None


def test_lock_filter_clears_pending_pick():
    state = ConversationState()
    state.set_pending("u1", _pending())
    assert state.get_pending("u1").options[1].label == "Ana Gil"

    ctx = state.lock_filter("u1", "person", FilterLock("Ana Gil", exact=True), last_person="Ana Gil")
    assert state.get_pending("u1") is None
    assert ctx.last_person == "Ana Gil"
    assert state.get_context("u1").filters["person"].exact is True


def test_merge_context_keeps_untouched_fields():
    state = ConversationState()
    state.merge_context("u1", last_person="Ana")
    state.merge_context("u1", filters={"office": FilterLock("Miami")})
    ctx = state.get_context("u1")
    assert ctx.last_person == "Ana"
    assert ctx.filters["office"].value == "Miami"


def test_snapshot_and_restore():
    state = ConversationState()
    assert state.snapshot("u1") is None
    state.merge_context("u1", last_person="Ana")
    snap = state.snapshot("u1")
    state.merge_context("u1", last_person="Luis")
    state.restore("u1", snap)
    assert state.get_context("u1").last_person == "Ana"
    state.restore("u1", None)
    assert state.get_context("u1") is None


def test_empty_session_id_is_ignored():
    state = ConversationState()
    state.set_pending("", _pending())
    state.merge_context("", last_person="Ana")
    assert state.get_pending("") is None
    assert state.get_context("") is None


def test_set_pending_drops_the_lock_it_re_decides():
    state = ConversationState()
    state.set_context(
        "u1",
        ConversationContext(
            filters={"person": FilterLock("Ana"), "office": FilterLock("Miami", exact=True)},
            last_person="Ana",
        ),
    )
    state.set_pending("u1", _pending())

    ctx = state.get_context("u1")
    assert set(ctx.filters) == {"office"}
    assert ctx.last_person is None
    assert state.get_pending("u1").dim_key == "person"


def test_role_pick_leaves_dimension_locks_alone():
    state = ConversationState()
    state.set_context("u1", ConversationContext(filters={"office": FilterLock("Miami")}))
    role = PendingPick(type="role_pick", prompt="What do you mean?", options=[], dim_key="__role__")
    state.set_pending("u1", role)

    assert set(state.get_context("u1").filters) == {"office"}
    assert state.get_pending("u1").type == "role_pick"
