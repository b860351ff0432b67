"""typed action payloads and the per-invocation context that carries them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, TypeVar, Union

from .assets import Slide
from .errors import PayloadEmpty
from .models import TreeNode


class ActionKind(str, Enum):
    EXPAND_MINDMAP = "expandMindmap"
    BRAINSTORM_MINDMAP = "brainstormMindmap"
    MAKE_IT_REAL = "makeItReal"
    CREATE_SLIDES = "createSlides"
    CREATE_IMAGE = "createImage"


@dataclass
class MindmapExpansion:
    """grow the selected mind map node with generated children."""

    kind: ClassVar[ActionKind] = ActionKind.EXPAND_MINDMAP

    selected_ids: list[str] = field(default_factory=list)
    node: Optional[TreeNode] = None


@dataclass
class MindmapBrainstorm:
    """build a new mind map from a generated tree."""

    kind: ClassVar[ActionKind] = ActionKind.BRAINSTORM_MINDMAP

    selected_ids: list[str] = field(default_factory=list)
    node: Optional[TreeNode] = None
    style: Optional[str] = None


@dataclass
class SlideDeck:
    """generated slides with the remote images each one needs."""

    kind: ClassVar[ActionKind] = ActionKind.CREATE_SLIDES

    slides: list[Slide] = field(default_factory=list)


ActionPayload = Union[MindmapExpansion, MindmapBrainstorm, SlideDeck]

P = TypeVar("P", MindmapExpansion, MindmapBrainstorm, SlideDeck)


class ActionContext:
    """payloads for one action invocation, at most one per action kind."""

    def __init__(self, *payloads: ActionPayload):
        self._payloads: dict[ActionKind, ActionPayload] = {}
        for payload in payloads:
            self.set(payload)

    def set(self, payload: ActionPayload) -> None:
        self._payloads[payload.kind] = payload

    def get(self, payload_type: type[P]) -> Optional[P]:
        payload = self._payloads.get(payload_type.kind)
        if payload is None:
            return None
        if not isinstance(payload, payload_type):
            raise TypeError(f"{payload_type.kind.value} holds {type(payload).__name__}")
        return payload

    def require(self, payload_type: type[P]) -> P:
        payload = self.get(payload_type)
        if payload is None:
            raise PayloadEmpty(f"no {payload_type.kind.value} payload")
        return payload

    def __contains__(self, kind: ActionKind) -> bool:
        return kind in self._payloads

    def kinds(self) -> list[ActionKind]:
        return list(self._payloads)
