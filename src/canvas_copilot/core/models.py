"""core data model for the edgeless document.

elements live in a flat table keyed by id. mind map containers keep their
tree as an arena of slots, also keyed by id, so traversal never aliases.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, Optional


class ElementKind(Enum):
    MINDMAP = "mindmap"        # tree container
    SHAPE = "shape"            # visual node owned by a tree slot
    IMAGE = "image"
    EMBED_HTML = "embed-html"
    NOTE = "note"              # text block on the canvas
    PARAGRAPH = "paragraph"    # content blocks inside a note
    LIST = "list"
    CODE = "code"
    DIVIDER = "divider"


# flavours accepted by add_block
BLOCK_FLAVOURS = {
    "note": ElementKind.NOTE,
    "embed-html": ElementKind.EMBED_HTML,
    "paragraph": ElementKind.PARAGRAPH,
    "list": ElementKind.LIST,
    "code": ElementKind.CODE,
    "divider": ElementKind.DIVIDER,
    "image": ElementKind.IMAGE,
}


@dataclass(frozen=True)
class Rect:
    """axis-aligned rectangle in model space."""

    x: float
    y: float
    w: float
    h: float

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    def translate(self, dx: float, dy: float) -> Rect:
        return replace(self, x=self.x + dx, y=self.y + dy)

    def moved_to(self, x: float, y: float) -> Rect:
        return replace(self, x=x, y=y)

    def resized(self, w: float, h: float) -> Rect:
        return replace(self, w=w, h=h)

    def union(self, other: Rect) -> Rect:
        """smallest rect containing both."""
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Rect(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)

    def serialize(self) -> str:
        """xywh string as stored by the host document, e.g. "[0,0,800,95]"."""
        return "[" + ",".join(_fmt(v) for v in (self.x, self.y, self.w, self.h)) + "]"

    @classmethod
    def parse(cls, xywh: str) -> Rect:
        """parse an xywh string. raises ValueError on malformed input."""
        parts = xywh.strip().strip("[]").split(",")
        if len(parts) != 4:
            raise ValueError(f"invalid xywh: {xywh!r}")
        x, y, w, h = (float(p) for p in parts)
        return cls(x, y, w, h)

    def to_list(self) -> list[float]:
        return [self.x, self.y, self.w, self.h]


@dataclass(frozen=True)
class SelectionRegion:
    """the user's active selection rectangle at action time."""

    x: float
    y: float
    width: float
    height: float

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


# --- ai payload trees ---

@dataclass
class TreeNode:
    """hierarchical content proposal, e.g. a mind map subtree."""

    text: str
    children: list[TreeNode] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict) -> TreeNode:
        """build from nested {"text", "children"} dicts."""
        return cls(
            text=str(d.get("text", "")),
            children=[cls.from_dict(c) for c in d.get("children") or []],
        )

    def to_dict(self) -> dict:
        return {"text": self.text, "children": [c.to_dict() for c in self.children]}

    def walk(self) -> Iterator[TreeNode]:
        """pre-order iteration. raises ValueError if a node is its own ancestor."""
        stack: list[tuple[TreeNode, frozenset[int]]] = [(self, frozenset())]
        while stack:
            node, ancestors = stack.pop()
            if id(node) in ancestors:
                raise ValueError("tree payload contains a cycle")
            yield node
            below = ancestors | {id(node)}
            for child in reversed(node.children):
                stack.append((child, below))

    def validate(self) -> None:
        for _ in self.walk():
            pass

    def count(self) -> int:
        return sum(1 for _ in self.walk())


# --- tree container arena ---

@dataclass
class TreeSlot:
    """one position in a mind map: owns exactly one shape element."""

    id: str
    element_id: str
    parent_id: Optional[str] = None
    children_ids: list[str] = field(default_factory=list)
    branch: Rect = field(default_factory=lambda: Rect(0, 0, 0, 0))  # subtree extent

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "element_id": self.element_id,
            "parent_id": self.parent_id,
            "children_ids": list(self.children_ids),
            "branch": self.branch.to_list(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> TreeSlot:
        return cls(
            id=d["id"],
            element_id=d["element_id"],
            parent_id=d.get("parent_id"),
            children_ids=list(d.get("children_ids", [])),
            branch=Rect(*d.get("branch", [0, 0, 0, 0])),
        )


@dataclass
class MindmapTree:
    """rooted, ordered hierarchy of slots, stored as an indexed table."""

    root_id: Optional[str] = None
    slots: dict[str, TreeSlot] = field(default_factory=dict)

    def add_slot(self, element_id: str, parent_id: Optional[str] = None) -> TreeSlot:
        """append a new slot under parent (or as root)."""
        slot = TreeSlot(id=generate_id(), element_id=element_id, parent_id=parent_id)
        self.slots[slot.id] = slot
        if parent_id is None:
            self.root_id = slot.id
        else:
            self.slots[parent_id].children_ids.append(slot.id)
        return slot

    def slot_for_element(self, element_id: str) -> Optional[TreeSlot]:
        for slot in self.slots.values():
            if slot.element_id == element_id:
                return slot
        return None

    def pre_order(self, start: Optional[str] = None) -> list[str]:
        start = start or self.root_id
        if start is None:
            return []
        order: list[str] = []
        stack = [start]
        while stack:
            sid = stack.pop()
            order.append(sid)
            stack.extend(reversed(self.slots[sid].children_ids))
        return order

    def post_order(self, start: Optional[str] = None) -> list[str]:
        """children before parents, siblings left to right."""
        start = start or self.root_id
        if start is None:
            return []
        order: list[str] = []
        stack: list[tuple[str, bool]] = [(start, False)]
        while stack:
            sid, expanded = stack.pop()
            if expanded:
                order.append(sid)
                continue
            stack.append((sid, True))
            for child in reversed(self.slots[sid].children_ids):
                stack.append((child, False))
        return order

    def subtree_ids(self, slot_id: str) -> list[str]:
        return self.pre_order(slot_id)

    def element_ids(self) -> list[str]:
        return [self.slots[sid].element_id for sid in self.pre_order()]

    def copy(self) -> MindmapTree:
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "root_id": self.root_id,
            "slots": {sid: s.to_dict() for sid, s in self.slots.items()},
        }

    @classmethod
    def from_dict(cls, d: dict) -> MindmapTree:
        return cls(
            root_id=d.get("root_id"),
            slots={sid: TreeSlot.from_dict(s) for sid, s in d.get("slots", {}).items()},
        )


# --- document elements ---

@dataclass
class DocumentElement:
    """single element in the document graph."""

    id: str
    kind: ElementKind
    xywh: Rect
    props: dict = field(default_factory=dict)
    parent_id: Optional[str] = None     # owning block, root or surface
    group_id: Optional[str] = None      # owning mind map for tree shapes
    children_ids: list[str] = field(default_factory=list)
    tree: Optional[MindmapTree] = None  # mind map containers only

    @property
    def text(self) -> str:
        return self.props.get("text", "")

    def to_dict(self) -> dict:
        """serialize to dict for json."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "xywh": self.xywh.serialize(),
            "props": copy.deepcopy(self.props),
            "parent_id": self.parent_id,
            "group_id": self.group_id,
            "children_ids": list(self.children_ids),
            "tree": self.tree.to_dict() if self.tree else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> DocumentElement:
        """deserialize from dict."""
        return cls(
            id=d["id"],
            kind=ElementKind(d["kind"]),
            xywh=Rect.parse(d["xywh"]),
            props=copy.deepcopy(d.get("props", {})),
            parent_id=d.get("parent_id"),
            group_id=d.get("group_id"),
            children_ids=list(d.get("children_ids", [])),
            tree=MindmapTree.from_dict(d["tree"]) if d.get("tree") else None,
        )


def generate_id() -> str:
    """generate a short unique id."""
    return uuid.uuid4().hex[:8]


def _fmt(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else str(v)
