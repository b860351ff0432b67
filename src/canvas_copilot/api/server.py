"""fastapi server for canvas copilot.

exposes the document, the selection, the overlay panel and action dispatch
as REST endpoints for a frontend or for scripting.
"""

from __future__ import annotations

import argparse
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.assets import DEFAULT_FETCH_TIMEOUT, AssetFetcher, AssetRef, ElementSpec, HttpAssetFetcher, Slide, SlideTemplate
from ..core.client import ClaudeClient, MockClient
from ..core.context import ActionContext, ActionKind, MindmapBrainstorm, MindmapExpansion, SlideDeck
from ..core.dispatcher import ResultMenu, create_dispatcher
from ..core.errors import ErrorReporter, MutationError
from ..core.geometry import Viewport
from ..core.host import AIPanel, CanvasSelection, CopilotHost
from ..core.models import DocumentElement, ElementKind, Rect, SelectionRegion, TreeNode
from ..core.store import DocumentStore
from ..core.tasks import BackgroundTasks
from ..logging import get_logger, setup_logging

log = get_logger("api")


# --- pydantic models for api ---

class TreeNodeBody(BaseModel):
    """generated tree node."""
    text: str
    children: list[TreeNodeBody] = []

    def to_node(self) -> TreeNode:
        return TreeNode(text=self.text, children=[c.to_node() for c in self.children])


TreeNodeBody.model_rebuild()


class AssetBody(BaseModel):
    id: str
    url: str


class ElementSpecBody(BaseModel):
    kind: str
    xywh: list[float] = Field(min_length=4, max_length=4)
    props: dict = {}

    def to_spec(self) -> ElementSpec:
        return ElementSpec(kind=ElementKind(self.kind), xywh=Rect(*self.xywh), props=dict(self.props))


class SlideBody(BaseModel):
    elements: list[ElementSpecBody] = []
    assets: list[AssetBody] = []

    def to_slide(self) -> Slide:
        return Slide(
            template=SlideTemplate(elements=[e.to_spec() for e in self.elements]),
            assets=[AssetRef(id=a.id, url=a.url) for a in self.assets],
        )


class ActionRequest(BaseModel):
    """payload for an action. fields are read according to the action id."""
    selected_ids: Optional[list[str]] = None
    node: Optional[TreeNodeBody] = None
    style: Optional[str] = None
    slides: list[SlideBody] = []

    def to_context(self, action_id: str, default_selection: list[str]) -> ActionContext:
        """build the typed context. raises ValueError on bad element kinds."""
        selected = self.selected_ids if self.selected_ids is not None else list(default_selection)
        node = self.node.to_node() if self.node else None
        ctx = ActionContext()
        if action_id == ActionKind.EXPAND_MINDMAP.value:
            ctx.set(MindmapExpansion(selected_ids=selected, node=node))
        elif action_id == ActionKind.BRAINSTORM_MINDMAP.value:
            ctx.set(MindmapBrainstorm(selected_ids=selected, node=node, style=self.style))
        elif action_id == ActionKind.CREATE_SLIDES.value:
            ctx.set(SlideDeck(slides=[s.to_slide() for s in self.slides]))
        return ctx


class SelectionUpdate(BaseModel):
    """request to set the canvas selection."""
    x: Optional[float] = None
    y: Optional[float] = None
    width: float = 0
    height: float = 0
    selected_ids: list[str] = []

    def to_region(self) -> Optional[SelectionRegion]:
        if self.x is None or self.y is None:
            return None
        return SelectionRegion(self.x, self.y, self.width, self.height)


class AnswerUpdate(BaseModel):
    """request to set the panel's answer (or prompt)."""
    answer: Optional[str] = None
    prompt: Optional[str] = None


class ElementResponse(BaseModel):
    """element in api response."""
    id: str
    kind: str
    xywh: list[float]
    props: dict
    parent_id: Optional[str]
    group_id: Optional[str]
    children_ids: list[str]

    @classmethod
    def from_element(cls, element: DocumentElement) -> "ElementResponse":
        return cls(
            id=element.id,
            kind=element.kind.value,
            xywh=element.xywh.to_list(),
            props=element.props,
            parent_id=element.parent_id,
            group_id=element.group_id,
            children_ids=element.children_ids,
        )


class DocumentResponse(BaseModel):
    """document in api response."""
    elements: dict[str, ElementResponse]
    blobs: list[str]
    can_undo: bool
    can_redo: bool

    @classmethod
    def from_store(cls, store: DocumentStore) -> "DocumentResponse":
        return cls(
            elements={eid: ElementResponse.from_element(e) for eid, e in store.elements.items()},
            blobs=sorted(store.blobs),
            can_undo=store.can_undo(),
            can_redo=store.can_redo(),
        )


class DispatchResponse(BaseModel):
    """result of dispatching an action or a menu command."""
    action_id: str
    menu: list[str]
    document: DocumentResponse
    errors: list[str] = []


# --- app state ---

class AppState:
    """shared application state: one document and its collaborators."""

    def __init__(
        self,
        mock: bool = False,
        image_proxy: Optional[str] = None,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        fetcher: Optional[AssetFetcher] = None,
    ):
        self.mock = mock
        self.store = DocumentStore()
        self.reporter = ErrorReporter()
        self.tasks = BackgroundTasks(self.reporter)
        self.panel = AIPanel(client=MockClient() if mock else ClaudeClient(), tasks=self.tasks)
        self.selection = CanvasSelection()
        self.host = CopilotHost(
            store=self.store,
            panel=self.panel,
            selection=self.selection,
            viewport=Viewport(),
            tasks=self.tasks,
            reporter=self.reporter,
        )
        self.fetcher = fetcher or HttpAssetFetcher(image_proxy=image_proxy, timeout=fetch_timeout)
        self.dispatcher = create_dispatcher(self.host, self.fetcher, on_continue_in_chat=self._continue_in_chat)
        self.menus: dict[str, ResultMenu] = {}
        self.chat_requested = False

    def _continue_in_chat(self, show: bool) -> None:
        self.chat_requested = show

    async def close(self) -> None:
        await self.tasks.wait_idle()
        if isinstance(self.fetcher, HttpAssetFetcher):
            await self.fetcher.close()


state = AppState()


def _dispatch_response(action_id: str, menu: ResultMenu, errors_before: int) -> DispatchResponse:
    new_errors = state.reporter.errors[errors_before:] if errors_before <= len(state.reporter.errors) else []
    return DispatchResponse(
        action_id=action_id,
        menu=[_slug(item.name) for item in menu.items()],
        document=DocumentResponse.from_store(state.store),
        errors=[str(e.error) for e in new_errors],
    )


def _slug(name: str) -> str:
    return name.lower().replace(" ", "-")


# --- lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # shutdown: let background work finish, release the http client
    await state.close()


# --- app ---

app = FastAPI(
    title="canvas copilot api",
    description="REST API for turning ai answers into canvas edits",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    """malformed request bodies are a 400, like bad element kinds."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# --- endpoints ---

@app.get("/health")
async def health():
    """health check."""
    return {"status": "ok"}


@app.get("/status")
async def status():
    """panel, selection and background work at a glance."""
    return {
        "element_count": len(state.store.elements),
        "panel_visible": state.panel.visible,
        "panel_state": state.panel.state.value,
        "has_answer": state.panel.answer is not None,
        "selected_ids": state.selection.selected_ids,
        "trigger_entry": state.selection.trigger_entry(),
        "pending_tasks": state.tasks.pending,
        "error_count": len(state.reporter.errors),
        "chat_requested": state.chat_requested,
    }


@app.get("/document", response_model=DocumentResponse)
async def get_document():
    return DocumentResponse.from_store(state.store)


@app.put("/selection")
async def set_selection(req: SelectionUpdate):
    """set the selection region and selected element ids."""
    for element_id in req.selected_ids:
        if state.store.get_element_by_id(element_id) is None:
            raise HTTPException(status_code=404, detail=f"element not found: {element_id}")
    state.selection.set_region(req.to_region())
    state.selection.select(req.selected_ids)
    return {"selected_ids": state.selection.selected_ids, "trigger_entry": state.selection.trigger_entry()}


@app.put("/panel/answer")
async def set_answer(req: AnswerUpdate):
    """set the answer directly, or request one for a prompt."""
    if req.prompt is not None:
        state.panel.request(req.prompt)
        await state.tasks.wait_idle()
    else:
        state.panel.set_answer(req.answer)
        state.panel.show()
    return {"answer": state.panel.answer, "state": state.panel.state.value}


@app.post("/actions/{action_id}", response_model=DispatchResponse)
async def dispatch_action(action_id: str, req: ActionRequest):
    """run the insert handler for an action and return its result menu."""
    try:
        ctx = req.to_context(action_id, state.selection.selected_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    errors_before = len(state.reporter.errors)
    try:
        menu = state.dispatcher.dispatch(action_id, ctx)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"element not found: {e.args[0]}")
    except MutationError as e:
        raise HTTPException(status_code=409, detail=str(e))

    await state.tasks.wait_idle()
    state.menus[action_id] = menu
    log.info("action %s: %d elements", action_id, len(state.store.elements))
    return _dispatch_response(action_id, menu, errors_before)


@app.post("/actions/{action_id}/menu/{item}", response_model=DispatchResponse)
async def run_menu_item(action_id: str, item: str):
    """invoke a result-menu command (continue-in-chat, insert-below, retry, discard)."""
    menu = state.menus.get(action_id)
    if menu is None:
        raise HTTPException(status_code=404, detail=f"no menu for action: {action_id}")
    entry = next((i for i in menu.items() if _slug(i.name) == item), None)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"menu item not found: {item}")

    errors_before = len(state.reporter.errors)
    try:
        entry.handler()
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"element not found: {e.args[0]}")
    except MutationError as e:
        raise HTTPException(status_code=409, detail=str(e))

    await state.tasks.wait_idle()
    return _dispatch_response(action_id, menu, errors_before)


@app.post("/undo", response_model=DocumentResponse)
async def undo():
    if not state.store.undo():
        raise HTTPException(status_code=400, detail="nothing to undo")
    return DocumentResponse.from_store(state.store)


@app.post("/redo", response_model=DocumentResponse)
async def redo():
    if not state.store.redo():
        raise HTTPException(status_code=400, detail="nothing to redo")
    return DocumentResponse.from_store(state.store)


# --- cli ---

def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="canvas copilot api server")
    parser.add_argument("--host", default="127.0.0.1", help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    parser.add_argument("--mock", "-m", action="store_true", help="use mock client")
    parser.add_argument("--image-proxy", help="proxy url for remote image fetches")
    parser.add_argument(
        "--fetch-timeout",
        type=float,
        default=DEFAULT_FETCH_TIMEOUT,
        help=f"asset fetch timeout in seconds (default: {DEFAULT_FETCH_TIMEOUT})",
    )
    parser.add_argument("--verbose", "-v", type=int, default=2, help="0=errors .. 3=debug")
    parser.add_argument("--log-file", help="log to this file instead of stderr")
    parser.add_argument("--reload", action="store_true", help="enable auto-reload")

    args = parser.parse_args()
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    # configure state
    global state
    state = AppState(
        mock=args.mock,
        image_proxy=args.image_proxy,
        fetch_timeout=args.fetch_timeout,
    )

    # with --reload uvicorn re-imports the module, so state falls back to defaults
    uvicorn.run(
        "canvas_copilot.api.server:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
