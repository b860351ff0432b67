"""action response dispatch and document mutation core."""

from .models import (
    DocumentElement,
    ElementKind,
    MindmapTree,
    Rect,
    SelectionRegion,
    TreeNode,
    TreeSlot,
)
from .errors import (
    AssetFetchError,
    ConversionError,
    CopilotError,
    ErrorReporter,
    MutationError,
    PayloadEmpty,
    SchedulingError,
    TransactionError,
    get_reporter,
)
from .store import DocumentStore, ChangeEvent
from .transaction import MutationTransaction
from .geometry import GeometryResolver, Viewport
from .assets import AssetBinding, AssetPipeline, AssetRef, ElementSpec, HttpAssetFetcher, Slide, SlideTemplate
from .context import ActionContext, ActionKind, MindmapBrainstorm, MindmapExpansion, SlideDeck
from .tree_merge import TreeMergeEngine
from .host import AIPanel, CanvasSelection, CopilotHost
from .client import ClaudeClient, MockClient, ClientProtocol, CompletionResult
from .dispatcher import ActionDispatcher, ResultMenu, MenuItem, create_dispatcher

__all__ = [
    # models
    "DocumentElement",
    "ElementKind",
    "MindmapTree",
    "Rect",
    "SelectionRegion",
    "TreeNode",
    "TreeSlot",
    # errors
    "AssetFetchError",
    "ConversionError",
    "CopilotError",
    "ErrorReporter",
    "MutationError",
    "PayloadEmpty",
    "SchedulingError",
    "TransactionError",
    "get_reporter",
    # mutation
    "DocumentStore",
    "ChangeEvent",
    "MutationTransaction",
    "GeometryResolver",
    "Viewport",
    "TreeMergeEngine",
    # assets
    "AssetBinding",
    "AssetPipeline",
    "AssetRef",
    "ElementSpec",
    "HttpAssetFetcher",
    "Slide",
    "SlideTemplate",
    # dispatch
    "ActionContext",
    "ActionKind",
    "MindmapBrainstorm",
    "MindmapExpansion",
    "SlideDeck",
    "AIPanel",
    "CanvasSelection",
    "CopilotHost",
    "ActionDispatcher",
    "ResultMenu",
    "MenuItem",
    "create_dispatcher",
    # client
    "ClaudeClient",
    "MockClient",
    "ClientProtocol",
    "CompletionResult",
]
