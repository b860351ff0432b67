"""pytest fixtures for canvas copilot tests."""

import asyncio

import pytest

from canvas_copilot.core.client import MockClient
from canvas_copilot.core.dispatcher import create_dispatcher
from canvas_copilot.core.errors import ErrorReporter
from canvas_copilot.core.geometry import Viewport
from canvas_copilot.core.host import AIPanel, CanvasSelection, CopilotHost
from canvas_copilot.core.models import SelectionRegion, TreeNode
from canvas_copilot.core.store import DocumentStore
from canvas_copilot.core.tasks import BackgroundTasks
from canvas_copilot.core.transaction import MutationTransaction
from canvas_copilot.core.tree_merge import TreeMergeEngine


class FakeFetcher:
    """in-memory fetcher. records every request in order."""

    def __init__(self, payloads=None, delays=None, errors=None):
        self.payloads = payloads or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.requested = []
        self.completed = []

    async def fetch(self, url):
        self.requested.append(url)
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        if url in self.errors:
            raise self.errors[url]
        self.completed.append(url)
        return self.payloads.get(url, url.encode())


@pytest.fixture
def reporter():
    """isolated error reporter."""
    return ErrorReporter()


@pytest.fixture
def store():
    return DocumentStore()


@pytest.fixture
def region():
    """selection at (100, 200), 300 wide, 50 tall."""
    return SelectionRegion(100, 200, 300, 50)


@pytest.fixture
def selection(region):
    return CanvasSelection(region=region)


@pytest.fixture
def tasks(reporter):
    return BackgroundTasks(reporter)


@pytest.fixture
def panel(tasks):
    """visible panel with a finished answer."""
    p = AIPanel(client=MockClient(), tasks=tasks)
    p.prompt = "summarize the selection"
    p.set_answer("hello world")
    p.show()
    return p


@pytest.fixture
def host(store, panel, selection, tasks, reporter):
    return CopilotHost(
        store=store,
        panel=panel,
        selection=selection,
        viewport=Viewport(),
        tasks=tasks,
        reporter=reporter,
    )


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def make_fetcher():
    """factory for fetchers with custom payloads, delays or errors."""
    return FakeFetcher


@pytest.fixture
def dispatcher(host, fetcher):
    return create_dispatcher(host, fetcher)


@pytest.fixture
def mindmap(store, reporter):
    """committed mind map at (0, 0): "topic" with one child "a"."""
    engine = TreeMergeEngine(store)
    with MutationTransaction(store, reporter) as tx:
        result = engine.create(tx, TreeNode("topic", [TreeNode("a")]), anchor=(0, 0))
    return result
