"""host collaborators: overlay panel, selection, and the bundle handed to handlers.

the protocols are the narrow surfaces the core depends on. AIPanel and
CanvasSelection are in-memory implementations used by the api and tests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

from .client import ClientProtocol
from .errors import ErrorReporter, get_reporter
from .geometry import Viewport
from .models import SelectionRegion
from .store import DocumentStore
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)


class OverlayPanel(Protocol):
    """transient surface showing the ai answer."""

    answer: Optional[str]

    def show(self) -> None:
        ...

    def hide(self) -> None:
        ...

    def discard(self, on_discarded: Optional[Callable[[], None]] = None) -> None:
        ...

    def generate(self) -> None:
        ...


class SelectionController(Protocol):
    """current on-canvas selection."""

    region: Optional[SelectionRegion]
    selected_ids: list[str]

    def select(self, ids: list[str], editing: bool = False) -> None:
        ...

    def hide_copilot_panel(self) -> None:
        ...


class PanelState(Enum):
    IDLE = "idle"
    GENERATING = "generating"
    FINISHED = "finished"
    ERROR = "error"


class AIPanel:
    """overlay panel holding the current answer."""

    def __init__(
        self,
        client: Optional[ClientProtocol] = None,
        tasks: Optional[BackgroundTasks] = None,
    ):
        self.client = client
        self.tasks = tasks or BackgroundTasks()
        self.visible = False
        self.state = PanelState.IDLE
        self.answer: Optional[str] = None
        self.prompt: Optional[str] = None

    def show(self) -> None:
        self.visible = True

    def hide(self) -> None:
        self.visible = False

    def set_answer(self, answer: Optional[str]) -> None:
        self.answer = answer
        self.state = PanelState.FINISHED if answer is not None else PanelState.IDLE

    def discard(self, on_discarded: Optional[Callable[[], None]] = None) -> None:
        """drop the current answer, then run on_discarded."""
        self.answer = None
        self.state = PanelState.IDLE
        if on_discarded:
            on_discarded()

    def request(self, prompt: str) -> Optional[asyncio.Task]:
        self.prompt = prompt
        return self.generate()

    def generate(self) -> Optional[asyncio.Task]:
        """(re)generate the answer for the last prompt in the background."""
        if self.client is None or self.prompt is None:
            logger.warning("nothing to generate: no client or prompt")
            return None
        self.answer = None
        self.state = PanelState.GENERATING
        self.show()
        return self.tasks.spawn(self._generate(self.prompt), "generate answer")

    async def _generate(self, prompt: str) -> None:
        try:
            result = await self.client.complete(prompt)
        except Exception:
            self.state = PanelState.ERROR
            raise
        self.set_answer(result.text)


class CanvasSelection:
    """selection state of the edgeless canvas."""

    def __init__(
        self,
        region: Optional[SelectionRegion] = None,
        selected_ids: Optional[list[str]] = None,
    ):
        self.region = region
        self.selected_ids: list[str] = list(selected_ids or [])
        self.editing = False
        self.copilot_visible = region is not None

    def select(self, ids: list[str], editing: bool = False) -> None:
        self.selected_ids = list(ids)
        self.editing = editing

    def set_region(self, region: Optional[SelectionRegion]) -> None:
        self.region = region
        self.copilot_visible = region is not None

    def hide_copilot_panel(self) -> None:
        self.copilot_visible = False

    def trigger_entry(self) -> str:
        """where the action was started from."""
        return "selection" if self.copilot_visible else "toolbar"


@dataclass
class CopilotHost:
    """collaborators every handler receives."""

    store: DocumentStore
    panel: OverlayPanel
    selection: SelectionController
    viewport: Viewport = field(default_factory=Viewport)
    tasks: BackgroundTasks = field(default_factory=BackgroundTasks)
    reporter: ErrorReporter = field(default_factory=get_reporter)
