"""insert handlers, one per ai action kind, plus the default text handler.

handlers are synchronous. work that has to wait on the network or on
conversion is spawned as a background task and reports its own failures.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from typing import Callable, Optional

from .assets import AssetBinding, AssetPipeline, Slide
from .context import ActionContext, ActionKind, MindmapBrainstorm, MindmapExpansion, SlideDeck
from .errors import ConversionError, MutationError, SchedulingError
from .geometry import DEFAULT_SIZES, GAP, GeometryResolver, Viewport
from .host import CopilotHost
from .markdown import insert_from_markdown
from .models import ElementKind, Rect
from .store import DocumentStore
from .transaction import MutationTransaction
from .tree_merge import TreeMergeEngine, container_of, is_mindmap_root

logger = logging.getLogger(__name__)

Handler = Callable[[ActionContext], None]

HTML_FENCE_PATTERN = re.compile(r"```(?:html)?[^\n]*\n(.*?)```", re.DOTALL | re.IGNORECASE)


def preprocess_html(answer: str) -> str:
    """pull the document out of a fenced ```html answer."""
    match = HTML_FENCE_PATTERN.search(answer)
    if match:
        return match.group(1).strip()
    return answer.strip()


async def insert_images(
    store: DocumentStore,
    viewport: Viewport,
    blobs: list[bytes],
    point: tuple[float, float],
) -> list[str]:
    """bind blobs and place image elements left to right from a view point."""
    await asyncio.sleep(0)
    x, y = viewport.to_model_coord(*point)
    w, h = DEFAULT_SIZES[ElementKind.IMAGE]

    ids: list[str] = []
    with MutationTransaction(store) as tx:
        for i, data in enumerate(blobs):
            # blob storage is content addressed
            asset_id = hashlib.sha256(data).hexdigest()[:16]
            tx.bind_blob(asset_id, data)
            ids.append(tx.create_element(
                ElementKind.IMAGE,
                Rect(x + i * (w + GAP), y, w, h),
                props={"source_id": asset_id},
                parent_id=store.surface_id,
            ))
    return ids


def instantiate_slide(store: DocumentStore, slide: Slide, binding: AssetBinding) -> list[str]:
    """copy a slide's bound assets into the store and create its elements."""
    needed = list(dict.fromkeys([a.id for a in slide.assets] + slide.template.asset_ids()))
    missing = binding.missing(needed)
    if missing:
        raise MutationError(f"slide references unbound assets: {missing}")

    ids: list[str] = []
    with MutationTransaction(store) as tx:
        for asset_id in needed:
            tx.bind_blob(asset_id, binding.get(asset_id))
        for spec in slide.template.elements:
            ids.append(tx.create_element(spec.kind, spec.xywh, props=spec.props, parent_id=store.surface_id))
    return ids


class ResponseHandlers:
    """realizes ai answers as document edits."""

    def __init__(
        self,
        host: CopilotHost,
        pipeline: AssetPipeline,
        geometry: Optional[GeometryResolver] = None,
        engine: Optional[TreeMergeEngine] = None,
    ):
        self.host = host
        self.store = host.store
        self.pipeline = pipeline
        self.geometry = geometry or GeometryResolver(host.viewport)
        self.engine = engine or TreeMergeEngine(host.store)

    def registry(self) -> dict[str, Handler]:
        return {
            ActionKind.EXPAND_MINDMAP.value: self.expand_mindmap,
            ActionKind.BRAINSTORM_MINDMAP.value: self.brainstorm_mindmap,
            ActionKind.MAKE_IT_REAL.value: self.make_it_real,
            ActionKind.CREATE_SLIDES.value: self.create_slides,
            ActionKind.CREATE_IMAGE.value: self.create_image,
        }

    def _transaction(self) -> MutationTransaction:
        return MutationTransaction(self.store, self.host.reporter)

    def _can_continue(self, label: str) -> bool:
        # continuations need a loop; check before touching the document
        if self.host.tasks.can_spawn():
            return True
        self.host.reporter.report(SchedulingError(f"{label}: no running event loop"), label)
        return False

    # --- mind maps ---

    def expand_mindmap(self, ctx: ActionContext) -> None:
        self.host.panel.hide()

        payload = ctx.get(MindmapExpansion)
        if payload is None or payload.node is None or not payload.selected_ids:
            return

        element = self.store.elements[payload.selected_ids[0]]
        container = container_of(self.store, element)
        if container is None:
            logger.warning("cannot expand %s: not part of a mind map", element.id)
            return

        with self._transaction() as tx:
            self.engine.expand(tx, container.id, element.id, payload.node)

    def brainstorm_mindmap(self, ctx: ActionContext) -> None:
        payload = ctx.get(MindmapBrainstorm)
        region = self.host.selection.region
        self.host.selection.hide_copilot_panel()
        self.host.panel.hide()

        if payload is None or payload.node is None:
            return

        selected = self.store.get_element_by_id(payload.selected_ids[0]) if payload.selected_ids else None
        reused: Optional[tuple[float, float]] = None

        with self._transaction() as tx:
            if selected is not None and is_mindmap_root(self.store, selected):
                # replace the old tree, keeping its root where it was
                reused = (selected.xywh.x, selected.xywh.y)
                tx.remove_element(selected.group_id)

            anchor = reused or self.geometry.anchor_point(region)
            result = self.engine.create(tx, payload.node, anchor=anchor, style=payload.style)

            if reused is None and region is not None:
                tx.defer(lambda: self.engine.move_tree(result.container_id, region.x, region.y))
            if reused is not None:
                tx.defer(lambda: self.host.selection.select([result.root_element_id], editing=False))

    # --- markup and media ---

    def make_it_real(self, ctx: ActionContext) -> None:
        answer = self.host.panel.answer
        if not answer:
            return
        html = preprocess_html(answer)
        if not html:
            return

        region = self.host.selection.region
        self.host.selection.hide_copilot_panel()
        self.host.panel.hide()

        rect = self.geometry.place_below(region, kind=ElementKind.EMBED_HTML)
        with self._transaction() as tx:
            tx.add_block("embed-html", {"html": html, "xywh": rect}, self.store.surface_id)

    def create_slides(self, ctx: ActionContext) -> None:
        payload = ctx.get(SlideDeck)
        if payload is None or not payload.slides:
            return
        if not self._can_continue("create slides"):
            return
        self.host.tasks.spawn(
            self.pipeline.run(payload.slides, self._insert_slide),
            "create slides",
        )

    def _insert_slide(self, slide: Slide, binding: AssetBinding) -> None:
        instantiate_slide(self.store, slide, binding)

    def create_image(self, ctx: ActionContext) -> None:
        # data url or remote url
        answer = self.host.panel.answer
        if not answer:
            return
        if not self._can_continue("create image"):
            return

        region = self.host.selection.region
        self.host.selection.hide_copilot_panel()
        self.host.panel.hide()

        rect = self.geometry.place_below(region, kind=ElementKind.IMAGE)
        point = self.geometry.to_view_coord(rect.x, rect.y)
        self.host.tasks.spawn(self._insert_image(answer.strip(), point), "create image")

    async def _insert_image(self, url: str, point: tuple[float, float]) -> None:
        data = await self.pipeline.fetch_image(url)
        if not data:
            logger.warning("image answer resolved to an empty payload")
            return
        await insert_images(self.store, self.host.viewport, [data], point)

    # --- fallback ---

    def insert_text(self, ctx: ActionContext) -> None:
        """default: put the answer in a new note below the selection."""
        answer = self.host.panel.answer
        if not answer:
            return
        if not self._can_continue("insert answer"):
            return

        rect = self.geometry.place_below(self.host.selection.region, kind=ElementKind.NOTE)
        with self._transaction() as tx:
            note_id = tx.add_block(
                "note",
                {"xywh": rect, "display_mode": "edgeless"},
                self.store.root_id,
            )
        self.host.tasks.spawn(self._fill_note(note_id, answer), "insert answer")

    async def _fill_note(self, note_id: str, answer: str) -> None:
        try:
            await insert_from_markdown(self.store, answer, note_id)
        except ConversionError as e:
            # the empty note stays
            self.host.reporter.report(e, "convert answer")
            return
        self.host.selection.select([note_id], editing=False)
