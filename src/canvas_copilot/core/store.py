"""in-memory document store.

stands in for the host's storage/sync engine. every write runs inside
transact(): a failure restores the pre-transaction snapshot, and listeners
hear about a transaction once, after it has fully applied.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .errors import MutationError
from .models import BLOCK_FLAVOURS, DocumentElement, ElementKind, MindmapTree, Rect, generate_id


# --- configuration ---

MAX_UNDO_HISTORY = 50
ROOT_ID = "page"
SURFACE_ID = "surface"

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UPDATABLE_FIELDS = {"xywh", "props", "tree", "group_id"}


@dataclass
class ChangeEvent:
    """emitted once per committed transaction."""

    transaction_id: int
    element_ids: list[str]


class DocumentStore:
    """flat element table with atomic transactions and undo history."""

    def __init__(self, root_id: str = ROOT_ID, surface_id: str = SURFACE_ID):
        self.root_id = root_id
        self.surface_id = surface_id
        self.elements: dict[str, DocumentElement] = {}
        self.blobs: dict[str, bytes] = {}
        self.transaction_count = 0

        self._in_transaction = False
        self._touched: list[str] = []
        self._listeners: list[Callable[[ChangeEvent], None]] = []

        # undo/redo - whole-document snapshots
        self._undo_stack: list[dict] = []
        self._redo_stack: list[dict] = []

    # --- transactions ---

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def transact(self, fn: Callable[[], T]) -> T:
        """run fn as one atomic batch.

        nested calls join the outer batch. on any exception the document is
        restored to its state before the batch and the exception propagates.
        """
        if self._in_transaction:
            return fn()

        before = self._snapshot()
        self._in_transaction = True
        self._touched = []
        try:
            result = fn()
        except Exception:
            self._restore_snapshot(before)
            logger.debug("transaction rolled back")
            raise
        finally:
            self._in_transaction = False

        touched = list(dict.fromkeys(self._touched))
        self._touched = []
        if touched:
            self.transaction_count += 1
            self._push_undo(before)
            self._notify(ChangeEvent(self.transaction_count, touched))
        return result

    def subscribe(self, listener: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        """register a change listener. returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _write(self, fn: Callable[[], T]) -> T:
        if self._in_transaction:
            return fn()
        return self.transact(fn)

    def _touch(self, *element_ids: str) -> None:
        self._touched.extend(element_ids)

    # --- reads ---

    def get_element_by_id(self, element_id: str) -> Optional[DocumentElement]:
        return self.elements.get(element_id)

    def elements_of_kind(self, kind: ElementKind) -> list[DocumentElement]:
        return [e for e in self.elements.values() if e.kind == kind]

    def is_container(self, element_id: Optional[str]) -> bool:
        """check if an id can own blocks (root, surface, or an element)."""
        return element_id in (self.root_id, self.surface_id) or element_id in self.elements

    # --- writes ---

    def add_element(
        self,
        kind: ElementKind,
        xywh: Rect,
        props: Optional[dict] = None,
        parent_id: Optional[str] = None,
        group_id: Optional[str] = None,
        tree: Optional[MindmapTree] = None,
        element_id: Optional[str] = None,
    ) -> str:
        """add an element and return its id."""

        def apply() -> str:
            eid = element_id or generate_id()
            if eid in self.elements:
                raise MutationError(f"duplicate element id: {eid}")
            if parent_id is not None and not self.is_container(parent_id):
                raise KeyError(parent_id)
            if group_id is not None and group_id not in self.elements:
                raise KeyError(group_id)
            element_props = copy.deepcopy(props or {})
            if kind == ElementKind.IMAGE:
                source_id = element_props.get("source_id")
                if not source_id or source_id not in self.blobs:
                    raise MutationError(f"image references unbound asset: {source_id}")

            self.elements[eid] = DocumentElement(
                id=eid,
                kind=kind,
                xywh=xywh,
                props=element_props,
                parent_id=parent_id,
                group_id=group_id,
                tree=copy.deepcopy(tree),
            )
            if parent_id in self.elements:
                self.elements[parent_id].children_ids.append(eid)
            self._touch(eid)
            return eid

        return self._write(apply)

    def add_block(
        self,
        flavour: str,
        props: Optional[dict] = None,
        parent_id: Optional[str] = None,
        block_id: Optional[str] = None,
    ) -> str:
        """add a block by flavour. props may carry an "xywh" rect or string."""
        if flavour not in BLOCK_FLAVOURS:
            raise ValueError(f"unknown block flavour: {flavour}")
        props = dict(props or {})
        xywh = props.pop("xywh", None)
        if isinstance(xywh, str):
            xywh = Rect.parse(xywh)
        return self.add_element(
            BLOCK_FLAVOURS[flavour],
            xywh or Rect(0, 0, 0, 0),
            props=props,
            parent_id=parent_id,
            element_id=block_id,
        )

    def remove_element(self, element_id: str) -> None:
        """remove an element with its tree shapes and child blocks."""

        def apply() -> None:
            element = self.elements[element_id]
            doomed = self._collect_owned(element_id)
            parent = self.elements.get(element.parent_id or "")
            if parent is not None:
                parent.children_ids = [c for c in parent.children_ids if c != element_id]
            for eid in doomed:
                del self.elements[eid]
            self._touch(*doomed)

        self._write(apply)

    def update_element(self, element_id: str, **changes: Any) -> None:
        """update fields of an element. props are merged, not replaced."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")

        def apply() -> None:
            element = self.elements[element_id]
            for name, value in changes.items():
                if name == "props":
                    element.props.update(copy.deepcopy(value))
                elif name == "tree":
                    element.tree = copy.deepcopy(value)
                else:
                    setattr(element, name, value)
            self._touch(element_id)

        self._write(apply)

    def reparent(self, element_id: str, parent_id: str) -> None:
        """move an element under a new owning block."""

        def apply() -> None:
            element = self.elements[element_id]
            if not self.is_container(parent_id):
                raise KeyError(parent_id)
            old_parent = self.elements.get(element.parent_id or "")
            if old_parent is not None:
                old_parent.children_ids = [c for c in old_parent.children_ids if c != element_id]
            element.parent_id = parent_id
            if parent_id in self.elements:
                self.elements[parent_id].children_ids.append(element_id)
            self._touch(element_id)

        self._write(apply)

    def bind_blob(self, asset_id: str, data: bytes) -> None:
        """store binary payload for an asset id."""

        def apply() -> None:
            self.blobs[asset_id] = data
            self._touch(asset_id)

        self._write(apply)

    def _collect_owned(self, element_id: str) -> list[str]:
        """element plus everything it owns, depth first."""
        owned: list[str] = []
        stack = [element_id]
        while stack:
            eid = stack.pop()
            if eid in owned or eid not in self.elements:
                continue
            owned.append(eid)
            element = self.elements[eid]
            stack.extend(element.children_ids)
            if element.kind == ElementKind.MINDMAP:
                stack.extend(e.id for e in self.elements.values() if e.group_id == eid)
        return owned

    # --- undo/redo ---

    def _snapshot(self) -> dict:
        return {
            "elements": copy.deepcopy(self.elements),
            "blobs": dict(self.blobs),
        }

    def _restore_snapshot(self, state: dict) -> None:
        self.elements = state["elements"]
        self.blobs = state["blobs"]

    def _push_undo(self, state: dict) -> None:
        self._undo_stack.append(state)
        if len(self._undo_stack) > MAX_UNDO_HISTORY:
            self._undo_stack.pop(0)
        # clear redo stack on new transaction
        self._redo_stack.clear()

    def undo(self) -> bool:
        """undo last transaction. returns True if successful."""
        if not self._undo_stack:
            return False
        self._redo_stack.append(self._snapshot())
        self._swap_to(self._undo_stack.pop())
        return True

    def redo(self) -> bool:
        """redo last undone transaction. returns True if successful."""
        if not self._redo_stack:
            return False
        self._undo_stack.append(self._snapshot())
        self._swap_to(self._redo_stack.pop())
        return True

    def _swap_to(self, state: dict) -> None:
        changed = set(self.elements) | set(state["elements"])
        self._restore_snapshot(state)
        self.transaction_count += 1
        self._notify(ChangeEvent(self.transaction_count, sorted(changed)))

    def can_undo(self) -> bool:
        return len(self._undo_stack) > 0

    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    def to_dict(self) -> dict:
        """serialize to dict for json."""
        return {
            "root_id": self.root_id,
            "surface_id": self.surface_id,
            "elements": {eid: e.to_dict() for eid, e in self.elements.items()},
            "blobs": sorted(self.blobs),
        }
