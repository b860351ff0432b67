"""tree merge engine: grafts generated trees into mind maps.

sizes are fitted bottom-up (post-order) because a slot's branch extent is
derived from its children's extents. positions are then assigned top-down,
keeping the root shape where it was anchored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .geometry import DEFAULT_MARGIN, H_GAP, V_GAP, branch_size, measure_text
from .models import DocumentElement, ElementKind, MindmapTree, Rect, TreeNode, generate_id
from .store import DocumentStore
from .transaction import MutationTransaction

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """what a merge created."""

    container_id: str
    root_element_id: str
    created_ids: list[str] = field(default_factory=list)


class TreeMergeEngine:
    """builds and extends mind maps inside a mutation transaction."""

    def __init__(self, store: DocumentStore):
        self.store = store

    # --- public operations ---

    def expand(
        self,
        tx: MutationTransaction,
        container_id: str,
        target_element_id: str,
        node: Optional[TreeNode],
    ) -> Optional[MergeResult]:
        """attach node's children under the slot owning target_element_id."""
        if node is None or not node.children:
            return None
        node.validate()

        container = self.store.elements[container_id]
        if container.tree is None:
            raise ValueError(f"element {container_id} is not a mind map")
        tree = container.tree.copy()
        target = tree.slot_for_element(target_element_id)
        if target is None:
            raise KeyError(target_element_id)

        texts: dict[str, str] = {}
        sizes: dict[str, tuple[float, float]] = {}
        for slot in tree.slots.values():
            element = self.store.elements[slot.element_id]
            texts[slot.element_id] = element.text
            sizes[slot.element_id] = (element.xywh.w, element.xywh.h)

        created: list[str] = []
        for child in node.children:
            self._graft(tree, target.id, child, texts, created)

        self._fit(tree, texts, sizes, refit=set(created))
        root_element = self.store.elements[tree.slots[tree.root_id].element_id]
        rects = self._layout(tree, sizes, (root_element.xywh.x, root_element.xywh.y))

        for element_id in created:
            tx.create_element(
                ElementKind.SHAPE,
                rects[element_id],
                props={"text": texts[element_id]},
                group_id=container_id,
                element_id=element_id,
            )
        for element_id, rect in rects.items():
            if element_id not in created and self.store.elements[element_id].xywh != rect:
                tx.update_geometry(element_id, rect)
        tx.update_element(container_id, tree=tree, xywh=tree.slots[tree.root_id].branch)

        logger.debug("expanded %s with %d nodes", target_element_id, len(created))
        return MergeResult(container_id, root_element.id, created)

    def create(
        self,
        tx: MutationTransaction,
        node: Optional[TreeNode],
        anchor: Optional[tuple[float, float]] = None,
        style: Optional[str] = None,
    ) -> Optional[MergeResult]:
        """build a new mind map with node as root, root shape at anchor."""
        if node is None:
            return None
        node.validate()

        container_id = generate_id()
        tree = MindmapTree()
        texts: dict[str, str] = {}
        sizes: dict[str, tuple[float, float]] = {}
        created: list[str] = []
        self._graft(tree, None, node, texts, created)

        self._fit(tree, texts, sizes, refit=set(created))
        rects = self._layout(tree, sizes, anchor or (DEFAULT_MARGIN, DEFAULT_MARGIN))

        props = {"style": style} if style else {}
        tx.create_element(
            ElementKind.MINDMAP,
            tree.slots[tree.root_id].branch,
            props=props,
            tree=tree,
            element_id=container_id,
        )
        for element_id in created:
            tx.create_element(
                ElementKind.SHAPE,
                rects[element_id],
                props={"text": texts[element_id]},
                group_id=container_id,
                element_id=element_id,
            )

        root_element_id = tree.slots[tree.root_id].element_id
        logger.debug("created mind map %s with %d nodes", container_id, len(created))
        return MergeResult(container_id, root_element_id, created)

    def move_tree(self, container_id: str, x: float, y: float) -> None:
        """move a committed mind map so its bounding box starts at (x, y)."""
        container = self.store.elements[container_id]
        dx = x - container.xywh.x
        dy = y - container.xywh.y
        if dx == 0 and dy == 0:
            return

        tree = container.tree.copy() if container.tree else MindmapTree()
        with MutationTransaction(self.store) as tx:
            for slot in tree.slots.values():
                slot.branch = slot.branch.translate(dx, dy)
                element = self.store.elements[slot.element_id]
                tx.update_geometry(element.id, element.xywh.translate(dx, dy))
            tx.update_element(container_id, tree=tree, xywh=container.xywh.translate(dx, dy))

    # --- passes ---

    def _graft(
        self,
        tree: MindmapTree,
        parent_slot_id: Optional[str],
        node: TreeNode,
        texts: dict[str, str],
        created: list[str],
    ) -> None:
        """add node and its descendants as new slots, keeping child order."""
        stack: list[tuple[TreeNode, Optional[str]]] = [(node, parent_slot_id)]
        while stack:
            current, parent = stack.pop()
            element_id = generate_id()
            slot = tree.add_slot(element_id, parent)
            texts[element_id] = current.text
            created.append(element_id)
            for child in reversed(current.children):
                stack.append((child, slot.id))

    def _fit(
        self,
        tree: MindmapTree,
        texts: dict[str, str],
        sizes: dict[str, tuple[float, float]],
        refit: set[str],
    ) -> None:
        """post-order: fit new shapes to their text, then derive branch extents."""
        for slot_id in tree.post_order():
            slot = tree.slots[slot_id]
            if slot.element_id in refit:
                sizes[slot.element_id] = measure_text(texts[slot.element_id])
            children = [tree.slots[c].branch for c in slot.children_ids]
            w, h = branch_size(sizes[slot.element_id], [(b.w, b.h) for b in children])
            slot.branch = slot.branch.resized(w, h)

    def _layout(
        self,
        tree: MindmapTree,
        sizes: dict[str, tuple[float, float]],
        root_origin: tuple[float, float],
    ) -> dict[str, Rect]:
        """pre-order: place every shape, children to the right of parents."""
        rects: dict[str, Rect] = {}
        root = tree.slots[tree.root_id]
        _, root_h = sizes[root.element_id]
        ox, oy = root_origin
        stack = [(root.id, ox, oy - (root.branch.h - root_h) / 2)]
        while stack:
            slot_id, bx, by = stack.pop()
            slot = tree.slots[slot_id]
            w, h = sizes[slot.element_id]
            slot.branch = slot.branch.moved_to(bx, by)
            rects[slot.element_id] = Rect(bx, by + (slot.branch.h - h) / 2, w, h)

            children = [tree.slots[c] for c in slot.children_ids]
            if not children:
                continue
            stacked = sum(c.branch.h for c in children) + V_GAP * (len(children) - 1)
            cy = by + (slot.branch.h - stacked) / 2
            for child in children:
                stack.append((child.id, bx + w + H_GAP, cy))
                cy += child.branch.h + V_GAP
        return rects


def container_of(store: DocumentStore, element: DocumentElement) -> Optional[DocumentElement]:
    """mind map that owns element, if any."""
    if element.group_id is None:
        return None
    return store.get_element_by_id(element.group_id)


def is_mindmap_root(store: DocumentStore, element: DocumentElement) -> bool:
    """check if element is the root shape of a mind map."""
    container = container_of(store, element)
    if container is None or container.tree is None or container.tree.root_id is None:
        return False
    return container.tree.slots[container.tree.root_id].element_id == element.id
