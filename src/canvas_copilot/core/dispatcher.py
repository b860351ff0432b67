"""action dispatcher: picks the insert handler for an action and builds the
result menu shown under a finished answer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .assets import AssetFetcher, AssetPipeline, HttpAssetFetcher
from .context import ActionContext
from .host import CopilotHost, OverlayPanel
from .responses import Handler, ResponseHandlers

logger = logging.getLogger(__name__)


@dataclass
class MenuItem:
    name: str
    icon: str
    handler: Callable[[], None]


@dataclass
class MenuGroup:
    name: str
    items: list[MenuItem] = field(default_factory=list)


@dataclass
class ResultMenu:
    """declarative menu consumed by the rendering layer."""

    responses: list[MenuGroup] = field(default_factory=list)
    actions: list[MenuGroup] = field(default_factory=list)

    def items(self) -> list[MenuItem]:
        return [item for group in self.responses for item in group.items]

    def find(self, name: str) -> Optional[MenuItem]:
        for item in self.items():
            if item.name.lower() == name.lower():
                return item
        return None


class ActionDispatcher:
    """maps action identifiers to handlers, falling back to a default."""

    def __init__(
        self,
        panel: OverlayPanel,
        handlers: dict[str, Handler],
        default_handler: Handler,
        on_continue_in_chat: Optional[Callable[[bool], None]] = None,
    ):
        self.panel = panel
        self.handlers = dict(handlers)
        self.default_handler = default_handler
        self.on_continue_in_chat = on_continue_in_chat

    def register(self, action_id: str, handler: Handler) -> None:
        self.handlers[action_id] = handler

    def handler_for(self, action_id: str) -> Handler:
        return self.handlers.get(action_id, self.default_handler)

    def dispatch(
        self,
        action_id: str,
        ctx: ActionContext,
        on_discarded: Optional[Callable[[], None]] = None,
    ) -> ResultMenu:
        """run the handler once, then build the follow-up menu."""
        handler = self.handler_for(action_id)
        logger.info("dispatching %s", action_id)
        handler(ctx)
        return self.build_menu(action_id, ctx, on_discarded)

    def build_menu(
        self,
        action_id: str,
        ctx: ActionContext,
        on_discarded: Optional[Callable[[], None]] = None,
    ) -> ResultMenu:
        items = [
            MenuItem("Continue in chat", "chat-with-ai", self._continue_in_chat),
            self._insert_item(action_id, ctx),
            MenuItem("Retry", "reset", self.panel.generate),
            self._discard_item(on_discarded),
        ]
        return ResultMenu(responses=[MenuGroup("Response", items)], actions=[])

    def _continue_in_chat(self) -> None:
        if self.on_continue_in_chat:
            self.on_continue_in_chat(True)
        self.panel.hide()

    def _insert_item(self, action_id: str, ctx: ActionContext) -> MenuItem:
        handler = self.handler_for(action_id)

        def insert() -> None:
            handler(ctx)
            self.panel.hide()

        return MenuItem("Insert below", "insert-below", insert)

    def _discard_item(self, on_discarded: Optional[Callable[[], None]]) -> MenuItem:
        def discarded() -> None:
            if on_discarded:
                on_discarded()
            self.panel.hide()

        return MenuItem("Discard", "delete", lambda: self.panel.discard(discarded))


def create_dispatcher(
    host: CopilotHost,
    fetcher: Optional[AssetFetcher] = None,
    on_continue_in_chat: Optional[Callable[[bool], None]] = None,
) -> ActionDispatcher:
    """dispatcher wired with the standard handlers."""
    pipeline = AssetPipeline(fetcher or HttpAssetFetcher(), host.reporter)
    responses = ResponseHandlers(host, pipeline)
    return ActionDispatcher(
        host.panel,
        responses.registry(),
        responses.insert_text,
        on_continue_in_chat=on_continue_in_chat,
    )
