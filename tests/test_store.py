"""tests for the in-memory document store."""

import pytest

from canvas_copilot.core.errors import MutationError
from canvas_copilot.core.models import ElementKind, MindmapTree, Rect
from canvas_copilot.core.store import MAX_UNDO_HISTORY, DocumentStore


@pytest.fixture
def events(store):
    """change events received by a listener."""
    received = []
    store.subscribe(received.append)
    return received


class TestWrites:
    """tests for element writes."""

    def test_add_element_wraps_itself_in_a_transaction(self, store, events):
        eid = store.add_element(ElementKind.NOTE, Rect(0, 0, 800, 95))
        assert store.get_element_by_id(eid).kind == ElementKind.NOTE
        assert store.transaction_count == 1
        assert [e.element_ids for e in events] == [[eid]]

    def test_get_missing_returns_none(self, store):
        assert store.get_element_by_id("nope") is None

    def test_duplicate_id_rejected(self, store):
        store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1), element_id="n1")
        with pytest.raises(MutationError):
            store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1), element_id="n1")

    def test_unknown_parent_raises_key_error(self, store):
        with pytest.raises(KeyError):
            store.add_element(ElementKind.PARAGRAPH, Rect(0, 0, 0, 0), parent_id="missing")

    def test_root_and_surface_are_containers(self, store):
        store.add_block("note", {}, store.root_id)
        store.add_block("embed-html", {}, store.surface_id)
        assert len(store.elements) == 2

    def test_add_block_parses_xywh(self, store):
        bid = store.add_block("note", {"xywh": "[1,2,3,4]", "display_mode": "edgeless"}, store.root_id)
        note = store.elements[bid]
        assert note.xywh == Rect(1, 2, 3, 4)
        assert note.props == {"display_mode": "edgeless"}

    def test_add_block_unknown_flavour(self, store):
        with pytest.raises(ValueError):
            store.add_block("table", {}, store.root_id)

    def test_child_blocks_are_ordered(self, store):
        note = store.add_block("note", {}, store.root_id)
        p1 = store.add_block("paragraph", {"text": "one"}, note)
        p2 = store.add_block("list", {"text": "two"}, note)
        assert store.elements[note].children_ids == [p1, p2]

    def test_image_requires_bound_blob(self, store):
        with pytest.raises(MutationError):
            store.add_element(ElementKind.IMAGE, Rect(0, 0, 10, 10), props={"source_id": "a1"})
        assert store.elements == {}

        store.bind_blob("a1", b"png")
        eid = store.add_element(ElementKind.IMAGE, Rect(0, 0, 10, 10), props={"source_id": "a1"})
        assert store.elements[eid].props["source_id"] == "a1"

    def test_update_merges_props(self, store):
        eid = store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1), props={"text": "a", "color": "red"})
        store.update_element(eid, props={"text": "b"}, xywh=Rect(5, 5, 1, 1))
        element = store.elements[eid]
        assert element.props == {"text": "b", "color": "red"}
        assert element.xywh == Rect(5, 5, 1, 1)

    def test_update_rejects_unknown_fields(self, store):
        eid = store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1))
        with pytest.raises(ValueError):
            store.update_element(eid, kind=ElementKind.NOTE)

    def test_update_unknown_element(self, store):
        with pytest.raises(KeyError):
            store.update_element("missing", xywh=Rect(0, 0, 1, 1))

    def test_reparent(self, store):
        n1 = store.add_block("note", {}, store.root_id)
        n2 = store.add_block("note", {}, store.root_id)
        p = store.add_block("paragraph", {}, n1)
        store.reparent(p, n2)
        assert store.elements[n1].children_ids == []
        assert store.elements[n2].children_ids == [p]
        assert store.elements[p].parent_id == n2


class TestRemove:
    """tests for cascading removal."""

    def test_remove_note_removes_children(self, store):
        note = store.add_block("note", {}, store.root_id)
        store.add_block("paragraph", {}, note)
        store.remove_element(note)
        assert store.elements == {}

    def test_remove_child_detaches_from_parent(self, store):
        note = store.add_block("note", {}, store.root_id)
        p = store.add_block("paragraph", {}, note)
        store.remove_element(p)
        assert store.elements[note].children_ids == []

    def test_remove_mindmap_removes_shapes(self, store):
        tree = MindmapTree()
        tree.add_slot("s1")
        store.add_element(ElementKind.MINDMAP, Rect(0, 0, 1, 1), tree=tree, element_id="m1")
        store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1), group_id="m1", element_id="s1")
        store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1), element_id="loose")

        store.remove_element("m1")
        assert list(store.elements) == ["loose"]

    def test_elements_of_kind(self, store):
        store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1))
        store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        assert len(store.elements_of_kind(ElementKind.SHAPE)) == 1


class TestTransact:
    """tests for atomic batches."""

    def test_batch_notifies_once(self, store, events):
        def batch():
            a = store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1))
            b = store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1))
            return [a, b]

        ids = store.transact(batch)
        assert len(events) == 1
        assert events[0].element_ids == ids
        assert store.transaction_count == 1

    def test_failure_restores_snapshot(self, store, events):
        keep = store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        events.clear()

        def batch():
            store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1))
            store.update_element(keep, xywh=Rect(9, 9, 9, 9))
            store.bind_blob("a1", b"data")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.transact(batch)

        assert list(store.elements) == [keep]
        assert store.elements[keep].xywh == Rect(0, 0, 1, 1)
        assert store.blobs == {}
        assert events == []
        assert not store.in_transaction

    def test_nested_transact_joins_outer(self, store, events):
        def batch():
            store.transact(lambda: store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1)))
            store.add_element(ElementKind.SHAPE, Rect(0, 0, 1, 1))

        store.transact(batch)
        assert len(events) == 1
        assert len(events[0].element_ids) == 2

    def test_empty_batch_is_silent(self, store, events):
        store.transact(lambda: None)
        assert events == []
        assert store.transaction_count == 0
        assert not store.can_undo()

    def test_unsubscribe(self, store):
        received = []
        unsubscribe = store.subscribe(received.append)
        unsubscribe()
        store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        assert received == []


class TestUndoRedo:
    """tests for snapshot undo history."""

    def test_undo_redo(self, store):
        eid = store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        assert store.undo()
        assert eid not in store.elements
        assert store.can_redo()

        assert store.redo()
        assert eid in store.elements
        assert not store.can_redo()

    def test_undo_empty(self, store):
        assert not store.undo()
        assert not store.redo()

    def test_new_transaction_clears_redo(self, store):
        store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        store.undo()
        store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        assert not store.can_redo()

    def test_history_is_bounded(self):
        store = DocumentStore()
        for _ in range(MAX_UNDO_HISTORY + 5):
            store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        undone = 0
        while store.undo():
            undone += 1
        assert undone == MAX_UNDO_HISTORY
        assert len(store.elements) == 5

    def test_undo_notifies(self, store, events):
        store.add_element(ElementKind.NOTE, Rect(0, 0, 1, 1))
        store.undo()
        assert len(events) == 2


def test_to_dict(store):
    eid = store.add_block("note", {"xywh": "[0,0,800,95]"}, store.root_id)
    store.bind_blob("b", b"x")
    data = store.to_dict()
    assert data["root_id"] == "page"
    assert data["elements"][eid]["xywh"] == "[0,0,800,95]"
    assert data["blobs"] == ["b"]
